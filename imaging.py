"""Local image work: branded placeholders and side-by-side stitching."""

from __future__ import annotations

import io
import logging
from typing import List, Sequence, Tuple

from PIL import Image, ImageDraw, ImageFont

log = logging.getLogger(__name__)

PLACEHOLDER_SIZE = (768, 768)

FONT_PATHS = [
    "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
    "/System/Library/Fonts/Supplemental/Arial.ttf",
    "/Library/Fonts/Arial.ttf",
    "C:/Windows/Fonts/arialbd.ttf",
]


def _font(size: int) -> ImageFont.ImageFont:
    for path in FONT_PATHS:
        try:
            return ImageFont.truetype(path, size=size)
        except OSError:
            continue
    return ImageFont.load_default()


def _hex_to_rgb(value: str, fallback: Tuple[int, int, int]) -> Tuple[int, int, int]:
    value = (value or "").lstrip("#")
    if len(value) != 6:
        return fallback
    try:
        return tuple(int(value[i:i + 2], 16) for i in (0, 2, 4))  # type: ignore[return-value]
    except ValueError:
        return fallback


def _luminance(rgb: Tuple[int, int, int]) -> float:
    r, g, b = rgb
    return 0.299 * r + 0.587 * g + 0.114 * b


def _wrap(draw: ImageDraw.ImageDraw, text: str, font, max_width: int, max_lines: int) -> List[str]:
    lines: List[str] = []
    line = ""
    for word in text.split():
        candidate = f"{line} {word}".strip()
        if draw.textlength(candidate, font=font) <= max_width or not line:
            line = candidate
        else:
            lines.append(line)
            line = word
        if len(lines) == max_lines:
            break
    if line and len(lines) < max_lines:
        lines.append(line)
    return lines


def render_placeholder(
    brand_name: str,
    palette: Sequence[str],
    index: int,
    caption: str = "",
    size: Tuple[int, int] = PLACEHOLDER_SIZE,
) -> bytes:
    """Render a deterministic branded placeholder PNG.

    Background and accent colours rotate through the brand palette by slot
    index so the four placeholders of one job are visually distinct.
    """
    colours = [_hex_to_rgb(c, (200, 200, 200)) for c in palette] or [(230, 230, 230)]
    bg = colours[(index - 1) % len(colours)]
    accent = colours[index % len(colours)]
    if accent == bg:
        accent = (30, 30, 30) if _luminance(bg) > 128 else (240, 240, 240)
    ink = (20, 20, 20) if _luminance(bg) > 128 else (245, 245, 245)

    w, h = size
    img = Image.new("RGB", size, color=bg)
    draw = ImageDraw.Draw(img)

    margin = w // 12
    draw.rectangle([margin, margin, w - margin, h - margin], outline=accent, width=max(4, w // 96))
    for i, colour in enumerate(colours):
        x0 = margin + i * (w - 2 * margin) // len(colours)
        x1 = margin + (i + 1) * (w - 2 * margin) // len(colours)
        draw.rectangle([x0, h - 2 * margin, x1, h - margin], fill=colour, outline=accent)

    title_font = _font(w // 11)
    body_font = _font(w // 30)

    title = brand_name or "Brand"
    tw = draw.textlength(title, font=title_font)
    draw.text(((w - tw) / 2, h * 0.22), title, fill=ink, font=title_font)

    label = f"Variation {index}"
    lw = draw.textlength(label, font=body_font)
    draw.text(((w - lw) / 2, h * 0.36), label, fill=ink, font=body_font)

    if caption:
        y = h * 0.46
        for line in _wrap(draw, caption, body_font, w - 3 * margin, max_lines=5):
            line_w = draw.textlength(line, font=body_font)
            draw.text(((w - line_w) / 2, y), line, fill=ink, font=body_font)
            y += w // 24

    footer = "preview placeholder"
    fw = draw.textlength(footer, font=body_font)
    draw.text(((w - fw) / 2, h - 2 * margin - w // 20), footer, fill=ink, font=body_font)

    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def stitch_side_by_side(images: Sequence[bytes], max_height: int = 1024, quality: int = 90) -> bytes:
    """Join images horizontally into one JPEG, scaling each to a common height."""
    if not images:
        raise ValueError("no images to stitch")
    opened = [Image.open(io.BytesIO(data)).convert("RGB") for data in images]
    height = min(max_height, min(im.height for im in opened))
    scaled = [
        im.resize((max(1, round(im.width * height / im.height)), height), Image.LANCZOS)
        for im in opened
    ]
    canvas = Image.new("RGB", (sum(im.width for im in scaled), height), color=(255, 255, 255))
    x = 0
    for im in scaled:
        canvas.paste(im, (x, 0))
        x += im.width
    log.debug("Stitched %d images into %dx%d", len(scaled), canvas.width, canvas.height)

    buf = io.BytesIO()
    canvas.save(buf, format="JPEG", quality=quality)
    return buf.getvalue()
