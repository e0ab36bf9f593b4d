"""
llama.cpp backend implementation for transcript refinement.

Handles one-shot refinement via the llama-cli executable. Exit status is
either success or failure; a timeout comes from the runner. When a GPU run
fails with an out-of-memory style stderr, the request is retried exactly
once with GPU offload disabled, within what is left of the request timeout.
"""

import shutil
import time
from pathlib import Path
from typing import List, Optional

from ..base import RefinementBackend, RefinementRequest
from ..prompts import build_system_prompt, build_user_prompt
from ...config import RefinementConfig, get_config
from ...errors import BackendError, EmptyOutputError, ProcessTimeoutError
from ...runner import ExitClass, invoke, log_classification
from ...utils import log

# Offload every layer when GPU acceleration is on
GPU_LAYERS = 99

# Options whose values carry the dictated text
SENSITIVE_OPTIONS = ("-p",)


class LlamaCLIBackend(RefinementBackend):
    """Refinement backend using the llama.cpp command line."""

    def __init__(self, settings: Optional[RefinementConfig] = None):
        self._settings = settings if settings is not None else get_config().refinement

    @property
    def name(self) -> str:
        return "llama.cpp"

    @property
    def cli_path(self) -> str:
        path = self._settings.cli_path
        return str(Path(path).expanduser()) if "/" in path else path

    def start(self) -> bool:
        """Check that llama-cli and the model are present."""
        ready = True
        if not shutil.which(self.cli_path) and not Path(self.cli_path).is_file():
            log(f"llama.cpp executable not found: {self.cli_path}", "WARN")
            ready = False
        if not self._settings.model.is_file():
            log(f"Refinement model not found: {self._settings.model}", "WARN")
            ready = False
        if ready:
            log(f"Refinement ready: {self.name} ({self._settings.model.name})", "OK")
        return ready

    def build_args(self, request: RefinementRequest, gpu: bool) -> List[str]:
        settings = self._settings
        system_prompt = build_system_prompt(request.mode, request.glossary)
        args = [
            "-m", str(settings.model),
            "-p", build_user_prompt(system_prompt, request.text),
            "-sys", system_prompt,
            "--temp", f"{settings.temperature:.1f}",
            "--top-p", f"{settings.top_p:.2f}",
            "--repeat-penalty", f"{settings.repeat_penalty:.2f}",
            "-n", str(settings.max_tokens),
        ]
        if gpu:
            args += ["-ngl", str(GPU_LAYERS)]
        args += ["--no-display-prompt", "--log-disable"]
        return args

    def is_gpu_failure(self, stderr: str) -> bool:
        lowered = (stderr or "").lower()
        return any(p.lower() in lowered for p in self._settings.gpu_error_patterns)

    def refine(self, request: RefinementRequest) -> str:
        gpu = self._settings.gpu_acceleration
        deadline = time.monotonic() + request.timeout
        try:
            return self._run(request, gpu, request.timeout)
        except (ProcessTimeoutError, EmptyOutputError):
            raise
        except BackendError as e:
            if not (gpu and self.is_gpu_failure(e.stderr)):
                raise
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ProcessTimeoutError(
                    f"llama-cli: no time left for CPU retry after {request.timeout:g}s",
                    timeout=request.timeout,
                    stderr=e.stderr,
                ) from e
            log(f"GPU failure in refinement, retrying once on CPU ({remaining:.1f}s left)", "WARN")
        return self._run(request, False, remaining)

    def _run(self, request: RefinementRequest, gpu: bool, timeout: float) -> str:
        result = invoke(self.cli_path, self.build_args(request, gpu), timeout=timeout,
                        sensitive=SENSITIVE_OPTIONS)
        exit_class = ExitClass.SUCCESS if result.exit_code == 0 else ExitClass.GENERIC_ERROR
        log_classification(self.cli_path, result, exit_class)
        if exit_class is not ExitClass.SUCCESS:
            raise BackendError(
                f"llama-cli failed with exit code {result.exit_code}",
                exit_code=result.exit_code,
                stderr=result.stderr,
            )

        text = self._clean_result(self._strip_preamble(result.stdout, self._settings.preamble_patterns))
        if not text:
            raise EmptyOutputError("llama-cli returned no text", exit_code=0, stderr=result.stderr)
        log(f"Refined: {text}", "DEBUG")
        return text
