# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Base refinement backend interface for Local Dictation.

All refinement backends must inherit from RefinementBackend
and implement the required methods.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional


class RefinementMode(Enum):
    PLAIN = "plain"
    MARKDOWN = "markdown"


@dataclass(frozen=True)
class RefinementRequest:
    text: str
    mode: RefinementMode = RefinementMode.PLAIN
    glossary: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    timeout: float = 5


@dataclass
class RefinementResult:
    text: str
    mode: RefinementMode
    succeeded: bool
    error: Optional[Exception] = None


class RefinementBackend(ABC):
    """
    Abstract base class for refinement backends.

    Provides output cleanup shared by all backends and defines the
    interface that all refinement backends must implement.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name of the backend."""
        pass

    @abstractmethod
    def start(self) -> bool:
        """
        Verify the backend can run (executable and model present).

        Returns True if backend is ready, False otherwise.
        """
        pass

    @abstractmethod
    def refine(self, request: RefinementRequest) -> str:
        """
        Reformat the request text.

        Returns:
            The refined text, never empty.

        Raises:
            BackendError: The process failed, timed out or produced no text.
        """
        pass

    def close(self) -> None:
        """Clean up resources when shutting down."""
        pass

    # ─────────────────────────────────────────────────────────────────
    # Shared output cleanup
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _strip_preamble(output: str, patterns: Iterable[str]) -> str:
        """Drop engine banner/timing lines matching any pattern."""
        compiled: List[re.Pattern] = [re.compile(p, re.IGNORECASE) for p in patterns]
        kept = [line for line in output.splitlines()
                if not any(p.search(line) for p in compiled)]
        return "\n".join(kept)

    @staticmethod
    def _clean_result(result: str) -> str:
        """
        Clean common artifacts from model output.

        Removes role labels, conversational openers and a wrapping code
        block that models sometimes add despite instructions.
        """
        result = result.strip()

        # Echoed role labels from the prompt template
        result = re.sub(r'^(?:assistant|output|result)\s*:\s*', '', result, flags=re.IGNORECASE)

        label_patterns = [
            r'^here(?:\s+is|\s+are|\'s)\s+(?:the\s+)?(?:formatted|corrected|edited|cleaned)(?:\s+(?:text|transcript))?:\s*',
            r'^(?:formatted|corrected|edited)(?:\s+(?:text|transcript))?:\s*',
            r'^sure[,!.]\s+(?:here\'s|here is)[^:\n]*:\s*',
        ]
        for pattern in label_patterns:
            result = re.sub(pattern, '', result, flags=re.IGNORECASE)

        code_block_match = re.match(
            r'^```(?:text|plain|markdown|md)?\s*\n?(.*?)\n?```\s*$',
            result,
            re.DOTALL | re.IGNORECASE
        )
        if code_block_match:
            result = code_block_match.group(1)

        # Collapse runs of blank lines left behind by removed preamble lines
        result = re.sub(r'\n{3,}', '\n\n', result)
        return result.strip()
