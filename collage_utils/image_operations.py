"""Reusable image manipulation operations.

This module centralizes the pixel helpers used by the render pipeline so
they can be shared and tested on their own.  Functions are intentionally
small and pure.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from PIL import Image, ImageColor, ImageDraw, ImageFont


@dataclass(frozen=True, slots=True)
class CoverCrop:
    """Source window that fills a destination with cover-fit scaling."""

    scale: float
    left: float
    top: float
    width: float
    height: float

    @property
    def box(self) -> tuple[float, float, float, float]:
        """Return the window as a Pillow ``(left, top, right, bottom)`` box."""
        return (self.left, self.top, self.left + self.width, self.top + self.height)


def cover_crop(source_size: tuple[int, int], dest_size: tuple[float, float]) -> Optional[CoverCrop]:
    """Return the centred source window for drawing into ``dest_size``.

    The source is scaled by ``max(dest_w / src_w, dest_h / src_h)`` so it
    covers the destination completely, and the overflow is cropped evenly
    from both sides.  Returns ``None`` when either size is empty.
    """
    src_w, src_h = source_size
    dest_w, dest_h = dest_size
    if src_w <= 0 or src_h <= 0 or dest_w <= 0 or dest_h <= 0:
        return None

    scale = max(dest_w / src_w, dest_h / src_h)
    crop_w = min(float(src_w), max(1.0, dest_w / scale))
    crop_h = min(float(src_h), max(1.0, dest_h / scale))
    left = max(0.0, (src_w - crop_w) / 2)
    top = max(0.0, (src_h - crop_h) / 2)
    return CoverCrop(scale=scale, left=left, top=top, width=crop_w, height=crop_h)


def create_demo_image(index: int, size: tuple[int, int]) -> Image.Image:
    """Render a numbered gradient placeholder image.

    Hues rotate with ``index`` so neighbouring demo images are easy to tell
    apart in a collage.
    """
    width, height = size
    hue = (index * 31) % 360
    start = Image.new("RGB", size, ImageColor.getrgb(f"hsl({hue}, 85%, 55%)"))
    end = Image.new("RGB", size, ImageColor.getrgb(f"hsl({(hue + 120) % 360}, 85%, 45%)"))
    mask = Image.linear_gradient("L").rotate(90).resize(size)
    image = Image.composite(end, start, mask)

    draw = ImageDraw.Draw(image)
    font = ImageFont.load_default(size=max(12, min(width, height) // 6))
    label = str(index + 1)
    left, top, right, bottom = draw.textbbox((0, 0), label, font=font)
    origin = ((width - (right - left)) / 2 - left, (height - (bottom - top)) / 2 - top)
    draw.text(origin, label, fill=(255, 255, 255), font=font)
    return image


__all__ = [
    "CoverCrop",
    "cover_crop",
    "create_demo_image",
]
