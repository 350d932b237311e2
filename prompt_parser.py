"""Split one freeform LLM response into the per-variation generation prompts."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, List

log = logging.getLogger(__name__)

MAX_PROMPTS = 4

COMBINE_SENTINEL = "Combine these product images into one cohesive scene"

# **PROMPT 1:**  /  PROMPT 2:  /  prompt   3 :
_HEADER_RE = re.compile(r"(?:\*\*)?\s*\bPROMPT\s*(\d+)\s*:\s*(?:\*\*)?", re.IGNORECASE)
_COMBINE_RE = re.compile(
    re.escape(COMBINE_SENTINEL) + r":?\s*(.*?)(?=" + re.escape(COMBINE_SENTINEL) + r"|\Z)",
    re.IGNORECASE | re.DOTALL,
)

_MIN_HEADER_BLOCK = 20
_MIN_COMBINE_BLOCK = 50
_MIN_LINE = 30


def canonical_text(value: Any) -> str:
    """Coerce whatever the client sent as the brand prompt into plain text."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        for key in ("brandPrompt", "text"):
            inner = value.get(key)
            if isinstance(inner, str) and inner:
                return inner
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError):
        return str(value)


def _header_blocks(text: str) -> List[str]:
    headers = list(_HEADER_RE.finditer(text))
    blocks = []
    for i, header in enumerate(headers):
        end = headers[i + 1].start() if i + 1 < len(headers) else len(text)
        block = text[header.end():end].strip()
        if len(block) > _MIN_HEADER_BLOCK:
            blocks.append(block)
    return blocks


def _combine_blocks(text: str) -> List[str]:
    blocks = []
    for match in _COMBINE_RE.finditer(text):
        remainder = match.group(1).strip()
        if not remainder:
            continue
        block = f"{COMBINE_SENTINEL}: {remainder}"
        if len(block) > _MIN_COMBINE_BLOCK:
            blocks.append(block)
    return blocks


def _line_blocks(text: str) -> List[str]:
    return [line.strip() for line in text.splitlines() if len(line.strip()) > _MIN_LINE]


def parse_prompts(value: Any) -> List[str]:
    """Return up to four prompts, or [] when the text cannot be split.

    Rules are tried in order and the first one producing at least four
    prompts wins: ``PROMPT n:`` headers, then combination-sentinel blocks,
    then long lines.  A partial result is never returned.
    """
    try:
        text = canonical_text(value)
        for rule in (_header_blocks, _combine_blocks, _line_blocks):
            found = rule(text)
            if len(found) >= MAX_PROMPTS:
                log.debug("Parsed %d prompts via %s", len(found), rule.__name__)
                return found[:MAX_PROMPTS]
    except Exception as exc:
        log.warning("Prompt parsing failed: %s", exc)
        return []

    log.info("Could not parse %d prompts; caller will reuse the full text", MAX_PROMPTS)
    return []
