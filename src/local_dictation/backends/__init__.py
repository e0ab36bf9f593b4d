# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Refinement backends for Local Dictation.

To add a new backend:
1. Create a new folder under backends/ with __init__.py and backend.py
2. Add an entry to BACKEND_REGISTRY below

Usage:
    from local_dictation.backends import create_backend, BACKEND_REGISTRY

    backend = create_backend("llama_cli")
    if backend.start():
        refined = backend.refine(RefinementRequest(text="some text"))
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .base import RefinementBackend, RefinementMode, RefinementRequest, RefinementResult


@dataclass
class BackendInfo:
    """Metadata for a refinement backend."""
    id: str                    # Config identifier (e.g., "llama_cli")
    name: str                  # Display name (e.g., "llama.cpp")
    description: str           # Short description for status output
    factory: Callable[..., RefinementBackend]  # Function to create instance


def _create_llama_cli(settings=None) -> RefinementBackend:
    from .llama_cli import LlamaCLIBackend
    return LlamaCLIBackend(settings)


# ============================================================================
# BACKEND REGISTRY - Add new backends here
# ============================================================================
BACKEND_REGISTRY: Dict[str, BackendInfo] = {
    "llama_cli": BackendInfo(
        id="llama_cli",
        name="llama.cpp",
        description="llama.cpp command line, local GGUF model",
        factory=_create_llama_cli,
    ),
}


def create_backend(backend_type: str, settings=None) -> RefinementBackend:
    """
    Factory function to create a refinement backend instance.

    Args:
        backend_type: Backend ID from BACKEND_REGISTRY
        settings: [refinement] section to use instead of the global config

    Returns:
        An instance of the requested backend.

    Raises:
        ValueError: If backend_type is not recognized.
    """
    if backend_type not in BACKEND_REGISTRY:
        available = ", ".join(BACKEND_REGISTRY.keys())
        raise ValueError(f"Unknown backend: {backend_type}. Available: {available}")

    return BACKEND_REGISTRY[backend_type].factory(settings)


def get_backend_info(backend_type: str) -> Optional[BackendInfo]:
    """Get metadata for a backend type."""
    return BACKEND_REGISTRY.get(backend_type)


__all__ = [
    "RefinementBackend",
    "RefinementMode",
    "RefinementRequest",
    "RefinementResult",
    "BackendInfo",
    "BACKEND_REGISTRY",
    "create_backend",
    "get_backend_info",
]
