# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Refinement module for Local Dictation.

This module provides a unified interface to refinement backends.
The backend is selected based on the [refinement] configuration.

Usage:
    from local_dictation.refiner import Refiner

    refiner = Refiner()
    result = refiner.refine("some text")
    if not result.succeeded:
        text = "some text"
"""

import re
from typing import Mapping, Optional, Tuple

from .backends import RefinementBackend, RefinementMode, RefinementRequest, RefinementResult, create_backend
from .config import RefinementConfig, get_config
from .errors import DictationError
from .glossary import EMPTY_GLOSSARY, load_glossary
from .utils import log

# Trigger phrase is only honoured near the start or end of a dictation
MARKDOWN_TRIGGER = re.compile(r"\bmarkdown\s+mode\b", re.IGNORECASE)
TRIGGER_WINDOW_WORDS = 20

_TRIGGER_AT_START = re.compile(r"^\s*markdown\s+mode\s*[.,;:!]?\s*", re.IGNORECASE)
_TRIGGER_AT_END = re.compile(r"\s*[.,;:]?\s*markdown\s+mode\s*[.!]?\s*$", re.IGNORECASE)


def strip_markdown_trigger(text: str) -> str:
    """Remove a leading and/or trailing "markdown mode" phrase."""
    if not text or not text.strip():
        return text
    cleaned = _TRIGGER_AT_START.sub("", text)
    cleaned = _TRIGGER_AT_END.sub("", cleaned)
    return cleaned.strip()


def detect_markdown_mode(text: str) -> Tuple[RefinementMode, str]:
    """
    Pick the refinement mode for a transcript.

    Returns:
        (mode, text) where text has the trigger phrase removed in
        markdown mode and is unchanged otherwise.
    """
    if not text or not text.strip():
        return RefinementMode.PLAIN, text
    words = text.split()
    head = " ".join(words[:TRIGGER_WINDOW_WORDS])
    tail = " ".join(words[-TRIGGER_WINDOW_WORDS:])
    if MARKDOWN_TRIGGER.search(head) or MARKDOWN_TRIGGER.search(tail):
        return RefinementMode.MARKDOWN, strip_markdown_trigger(text)
    return RefinementMode.PLAIN, text


class Refiner:
    """
    Unified refinement interface.

    Wraps the configured backend and never raises for backend failures:
    the result's succeeded flag tells the caller whether to fall back.
    """

    def __init__(self, settings: Optional[RefinementConfig] = None,
                 backend: Optional[RefinementBackend] = None,
                 glossary: Optional[Mapping[str, str]] = None):
        self._settings = settings if settings is not None else get_config().refinement
        if backend is None:
            try:
                backend = create_backend(self._settings.backend, self._settings)
            except ValueError as e:
                log(f"Failed to create refinement backend '{self._settings.backend}': {e}", "ERR")
                raise
        self._backend = backend
        if glossary is None:
            glossary = load_glossary(self._settings.glossary) if self._settings.use_glossary else EMPTY_GLOSSARY
        self._glossary = glossary
        log(f"Refinement backend: {self._backend.name}", "INFO")

    @property
    def name(self) -> str:
        return self._backend.name

    @property
    def glossary(self) -> Mapping[str, str]:
        return self._glossary

    def start(self) -> bool:
        """Verify backend availability."""
        return self._backend.start()

    def close(self) -> None:
        self._backend.close()

    def refine(self, text: str) -> RefinementResult:
        """
        Refine a transcript.

        Returns:
            RefinementResult with succeeded=True and the refined text, or
            succeeded=False with the original text and the error.
        """
        mode, cleaned = detect_markdown_mode(text)
        if mode is RefinementMode.MARKDOWN:
            log("Markdown mode requested", "AI")
        if not cleaned.strip():
            # Only the trigger phrase was spoken
            return RefinementResult(text=text, mode=mode, succeeded=False,
                                    error=ValueError("Nothing to refine"))

        request = RefinementRequest(
            text=cleaned,
            mode=mode,
            glossary=self._glossary,
            timeout=self._settings.timeout,
        )
        try:
            refined = self._backend.refine(request)
        except DictationError as e:
            log(f"Refinement failed: {e}", "WARN")
            return RefinementResult(text=text, mode=mode, succeeded=False, error=e)
        return RefinementResult(text=refined, mode=mode, succeeded=True)
