"""
Local Dictation - hands-free, fully local dictation

Hold the hotkey -> speak -> release -> transcript (optionally refined) is
copied to the clipboard and saved to history. No internet. No cloud.
"""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("local-dictation")
except PackageNotFoundError:
    __version__ = "0.0.0"  # Not installed

__all__ = ["__version__"]
