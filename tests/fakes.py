"""Test doubles for the image provider and helpers for building inputs."""

from __future__ import annotations

import asyncio
import io
import re
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Sequence

from PIL import Image

_SLOT_RE = re.compile(r"slot (\d+)")


def png_bytes(colour=(200, 40, 40), size=(8, 8)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color=colour).save(buf, format="PNG")
    return buf.getvalue()


def jpeg_bytes(size=(64, 64)) -> bytes:
    img = Image.effect_noise(size, 64).convert("RGB")
    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=95)
    return buf.getvalue()


def slot_prompt_text(count: int = 4) -> str:
    """LLM-style response with one ``PROMPT n:`` block per slot."""
    return "\n\n".join(
        f"**PROMPT {i}:**\nCombine these product images into one cohesive scene: "
        f"slot {i} studio composition with soft window light"
        for i in range(1, count + 1)
    )


def slot_of(prompt: str) -> int:
    match = _SLOT_RE.search(prompt)
    return int(match.group(1)) if match else 0


class Forbidden(Exception):
    status = 403


class FakeProvider:
    """Image provider driven by ``behaviour(slot, call_number)``.

    The behaviour returns the raw provider output or raises; the default
    returns PNG bytes for every call.
    """

    name = "fake"

    def __init__(
        self,
        behaviour: Optional[Callable[[int, int], Any]] = None,
        delay: float = 0.0,
    ) -> None:
        self.behaviour = behaviour or (lambda slot, n: png_bytes())
        self.delay = delay
        self.calls: List[str] = []
        self.inputs: List[Sequence[str]] = []
        self.per_slot: Dict[int, int] = defaultdict(int)

    async def generate(self, prompt: str, input_images: Sequence[str]) -> Any:
        self.calls.append(prompt)
        self.inputs.append(list(input_images))
        slot = slot_of(prompt)
        self.per_slot[slot] += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.behaviour(slot, self.per_slot[slot])


def failing_slots(*slots: int, exc: Callable[[], Exception] = lambda: RuntimeError("upstream 502")):
    """Behaviour: the listed slots always raise, the others succeed."""

    def behaviour(slot: int, n: int) -> Any:
        if slot in slots:
            raise exc()
        return png_bytes()

    return behaviour
