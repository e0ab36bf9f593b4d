# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
System prompts for transcript refinement.

Plain mode produces plain text with simple lists. Markdown mode is chosen
when the speaker says "markdown mode" at the start or end of a dictation.
"""

from typing import Mapping

from ..glossary import format_glossary
from .base import RefinementMode

_PROMPT_HEAD = """System: You are a careful transcript formatter and light copy editor.

INPUT: Raw text from speech recognition (Whisper). May contain run-on sentences, missing punctuation.

YOUR GOAL: Make text easy to read while preserving intent and personality.

DO:
- Fix grammar, punctuation, capitalization.
- Split long sentences when it improves clarity.
- Insert paragraph breaks between distinct topics.
"""

_DONT = """
DON'T:
- Don't add new ideas or explanations.
- Don't change meaning.
- Don't summarize or shorten.
- Don't change technical terms or names.
"""

PLAIN_SYSTEM_PROMPT = (
    _PROMPT_HEAD
    + """- Turn clearly spoken lists into simple bullets (- item) or numbers (1. item).
- Remove filler words ("uh", "um", "like") when safe.
"""
    + _DONT
    + """- Don't use Markdown headings, bold, italics.

OUTPUT: Plain text only. Blank lines between paragraphs. Simple lists only."""
)

MARKDOWN_SYSTEM_PROMPT = (
    _PROMPT_HEAD
    + """- Use Markdown formatting (## Heading, **bold**, - lists).
- Remove filler words ("uh", "um", "like") when safe.
"""
    + _DONT
    + """
OUTPUT: Markdown formatted text."""
)


def build_system_prompt(mode: RefinementMode, glossary: Mapping[str, str]) -> str:
    """System prompt for the mode, with the glossary appended if any."""
    prompt = MARKDOWN_SYSTEM_PROMPT if mode is RefinementMode.MARKDOWN else PLAIN_SYSTEM_PROMPT
    return prompt + format_glossary(glossary)


def build_user_prompt(system_prompt: str, text: str) -> str:
    """Single-turn completion prompt for engines without chat templates."""
    return f"{system_prompt}\n\nUser: {text}\n\nAssistant:"
