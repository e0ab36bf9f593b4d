"""
llama.cpp backend for transcript refinement.

Runs llama-cli once per transcript with a local GGUF model.
"""

from .backend import LlamaCLIBackend

__all__ = ["LlamaCLIBackend"]
