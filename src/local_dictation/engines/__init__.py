# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Transcription engines for Local Dictation.

To add a new engine:
1. Create a new module under engines/ implementing TranscriptionEngine
2. Add an entry to ENGINE_REGISTRY below

Usage:
    from local_dictation.engines import create_engine, ENGINE_REGISTRY

    engine = create_engine("whisper_cli")
    if engine.start():
        result = engine.transcribe(request)
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from .base import (
    Segment,
    TranscriptionEngine,
    TranscriptionRequest,
    TranscriptionResult,
)


@dataclass
class EngineInfo:
    """Metadata for a transcription engine."""
    id: str                              # Config identifier (e.g., "whisper_cli")
    name: str                            # Display name (e.g., "whisper.cpp")
    description: str                     # Short description for status output
    factory: Callable[..., TranscriptionEngine]  # Function to create instance


def _create_whisper_cli(settings=None) -> TranscriptionEngine:
    from .whisper_cli import WhisperCLIEngine
    return WhisperCLIEngine(settings)


# ============================================================================
# ENGINE REGISTRY - Add new engines here
# ============================================================================
ENGINE_REGISTRY: Dict[str, EngineInfo] = {
    "whisper_cli": EngineInfo(
        id="whisper_cli",
        name="whisper.cpp",
        description="whisper.cpp command line, JSON output",
        factory=_create_whisper_cli,
    ),
}


def create_engine(engine_id: str, settings=None) -> TranscriptionEngine:
    """
    Factory function to create a transcription engine instance.

    Args:
        engine_id: Engine ID from ENGINE_REGISTRY
        settings: [transcription] section to use instead of the global config

    Returns:
        An instance of the requested engine.

    Raises:
        ValueError: If engine_id is not recognized.
    """
    if engine_id not in ENGINE_REGISTRY:
        available = ", ".join(ENGINE_REGISTRY.keys())
        raise ValueError(f"Unknown engine: {engine_id}. Available: {available}")

    return ENGINE_REGISTRY[engine_id].factory(settings)


def get_engine_info(engine_id: str) -> Optional[EngineInfo]:
    """Get metadata for an engine type."""
    return ENGINE_REGISTRY.get(engine_id)


def get_engine_choices() -> List[Tuple[str, str]]:
    """Return [(id, name), ...] for all registered engines."""
    return [(info.id, info.name) for info in ENGINE_REGISTRY.values()]


__all__ = [
    "Segment",
    "TranscriptionEngine",
    "TranscriptionRequest",
    "TranscriptionResult",
    "EngineInfo",
    "ENGINE_REGISTRY",
    "create_engine",
    "get_engine_info",
    "get_engine_choices",
]
