# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Abbreviation glossary for refinement prompts.

File format, one entry per line:

    # comment
    asap = as soon as possible
    k8s = Kubernetes

Blank lines, comments and lines without "=" (or with an empty side) are
skipped. At most MAX_ENTRIES entries are read. The loaded glossary is a
read-only mapping shared by every session.
"""

from pathlib import Path
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from .utils import log

MAX_ENTRIES = 500

EMPTY_GLOSSARY: Mapping[str, str] = MappingProxyType({})


def load_glossary(path: Optional[Path]) -> Mapping[str, str]:
    """Load a glossary file. A missing or unreadable file yields an empty glossary."""
    if path is None:
        return EMPTY_GLOSSARY
    path = Path(path).expanduser()
    if not path.is_file():
        log(f"Glossary not found: {path}", "WARN")
        return EMPTY_GLOSSARY

    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError) as e:
        log(f"Glossary unreadable: {e}", "WARN")
        return EMPTY_GLOSSARY

    entries: Dict[str, str] = {}
    for line in lines:
        if len(entries) >= MAX_ENTRIES:
            log(f"Glossary truncated at {MAX_ENTRIES} entries", "WARN")
            break
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        key, sep, value = stripped.partition("=")
        key, value = key.strip(), value.strip()
        if not sep or not key or not value:
            continue
        entries[key] = value

    log(f"Glossary loaded: {len(entries)} entries", "OK")
    return MappingProxyType(entries)


def format_glossary(glossary: Mapping[str, str]) -> str:
    """Render the glossary as a system prompt appendix ("" when empty)."""
    if not glossary:
        return ""
    lines = [f"{key} = {value}" for key, value in glossary.items()]
    return "\n\nAPPLY THESE ABBREVIATIONS:\n" + "\n".join(lines) + "\n"
