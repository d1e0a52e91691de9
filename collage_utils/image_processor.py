"""Pillow-backed decoding and export encoding for the render pipeline."""

from __future__ import annotations

import io
import logging
import random
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, BinaryIO, Callable, Dict, List, Optional, Tuple, Union

from PIL import ExifTags, Image, ImageOps, UnidentifiedImageError

from smartcollage import config

from .errors import DecodeFailureError, EncodeFailureError
from .image_operations import create_demo_image
from .validation import validate_output_path

ImageSource = Union[str, Path, bytes, bytearray, BinaryIO]

_PIL_FORMATS: Dict[str, str] = {
    "image/png": "PNG",
    "image/jpeg": "JPEG",
    "image/webp": "WEBP",
}

_MIME_BY_SUFFIX: Dict[str, str] = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
}


@dataclass(slots=True)
class DecodedImage:
    """A decoded, drawable image owned by a single render step.

    Attributes:
        source (Image.Image): Pixel data in ``RGB`` or ``RGBA`` mode.
        width (int): Width of ``source`` in pixels.
        height (int): Height of ``source`` in pixels.
        release (Optional[Callable[[], None]]): Frees the pixel data; may be
            absent when the decoder leaves cleanup to garbage collection.

    Use it as a context manager so ``release`` runs whether or not drawing
    succeeds.
    """

    source: Image.Image
    width: int
    height: int
    release: Optional[Callable[[], None]] = None

    def close(self) -> None:
        """Run ``release`` once, if present."""
        release, self.release = self.release, None
        if release is not None:
            release()

    def __enter__(self) -> "DecodedImage":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def _describe(source: ImageSource) -> str:
    if isinstance(source, (str, Path)):
        return str(source)
    if isinstance(source, (bytes, bytearray)):
        return f"<{len(source)} bytes>"
    return str(getattr(source, "name", "<stream>"))


def _draft_size(img: Image.Image, target_size: Tuple[int, int]) -> Tuple[int, int]:
    """Return ``target_size`` in stored pixel orientation.

    Orientations 5-8 are transposed by 90 degrees, so the draft request is
    swapped to match the pixels before ``exif_transpose``.
    """
    orientation = img.getexif().get(ExifTags.Base.Orientation, 1)
    if orientation in (5, 6, 7, 8):
        return target_size[1], target_size[0]
    return target_size


def decode_image(source: ImageSource, target_size: Optional[Tuple[int, int]] = None) -> DecodedImage:
    """Decode ``source`` into an upright ``RGB``/``RGBA`` image.

    Args:
        source: Path, raw bytes or a binary file object.
        target_size: Optional destination size; JPEG decoders use it to
            downscale while decoding.

    Raises:
        DecodeFailureError: If the data is not a readable image.
    """
    stream = io.BytesIO(source) if isinstance(source, (bytes, bytearray)) else source
    try:
        with Image.open(stream) as img:
            if target_size:
                img.draft("RGB", _draft_size(img, target_size))
            oriented = ImageOps.exif_transpose(img)
        if oriented.mode not in ("RGB", "RGBA"):
            has_alpha = "A" in oriented.getbands() or "transparency" in oriented.info
            oriented = oriented.convert("RGBA" if has_alpha else "RGB")
        oriented.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        logging.error("Failed to decode %s: %s", _describe(source), exc)
        raise DecodeFailureError(f"Failed to decode image {_describe(source)}: {exc}") from exc

    return DecodedImage(
        source=oriented,
        width=oriented.width,
        height=oriented.height,
        release=oriented.close,
    )


def mime_type_for_path(path: Union[str, Path]) -> str:
    """Return the export MIME type implied by ``path``'s extension."""
    suffix = Path(path).suffix.lower()
    try:
        return _MIME_BY_SUFFIX[suffix]
    except KeyError:
        raise ValueError(f"Unsupported export extension: {suffix}") from None


def _pil_quality(quality: Optional[float]) -> int:
    """Map a ``[0, 1]`` quality onto Pillow's ``QUALITY_MIN..QUALITY_MAX`` scale."""
    if quality is None:
        quality = config.QUALITY_DEFAULT
    fraction = min(1.0, max(0.0, quality))
    return max(config.QUALITY_MIN, min(config.QUALITY_MAX, round(fraction * config.QUALITY_MAX)))


def _save_params(fmt: str, quality: Optional[float]) -> Dict[str, Any]:
    """Return encoder options for ``fmt``."""
    if fmt == "JPEG":
        return {
            "quality": _pil_quality(quality),
            "optimize": True,
            "progressive": True,
            "subsampling": "4:2:0",
        }
    if fmt == "WEBP":
        return {"quality": _pil_quality(quality), "method": 6}
    return {"optimize": True, "compress_level": 6}


def encode_canvas(image: Image.Image, mime_type: str = "image/png", quality: Optional[float] = None) -> bytes:
    """Encode a rendered canvas.

    Args:
        image: The rendered collage.
        mime_type: ``image/png``, ``image/jpeg`` or ``image/webp``.
        quality: Lossy quality in ``[0, 1]``; ignored for PNG.

    Raises:
        EncodeFailureError: If the type is unsupported or encoding produced
            no data.
    """
    fmt = _PIL_FORMATS.get(mime_type.lower())
    if fmt is None:
        raise EncodeFailureError(f"Unsupported export type: {mime_type}")

    output = image.convert("RGB") if fmt == "JPEG" and image.mode != "RGB" else image
    buffer = io.BytesIO()
    try:
        output.save(buffer, format=fmt, **_save_params(fmt, quality))
    except (OSError, ValueError) as exc:
        logging.error("Export encoding failed: %s", exc)
        raise EncodeFailureError(f"Failed to export canvas: {exc}") from exc

    data = buffer.getvalue()
    if not data:
        raise EncodeFailureError("Failed to export canvas.")
    return data


def save_collage(image: Image.Image, output_path: Union[str, Path], quality: Optional[float] = None) -> Path:
    """Encode ``image`` according to ``output_path``'s extension and write it."""
    safe_path = validate_output_path(output_path)
    data = encode_canvas(image, mime_type_for_path(safe_path), quality)
    safe_path.write_bytes(data)
    logging.info("Saved collage to %s (%d bytes)", safe_path, len(data))
    return safe_path


def safe_filename_part(value: str) -> str:
    """Reduce ``value`` to a short, filesystem friendly fragment."""
    cleaned = re.sub(r"[^a-zA-Z0-9._-]+", "-", value)
    return re.sub(r"-+", "-", cleaned)[:80]


def build_export_filename(
    main_name: str,
    size: int,
    mime_type: str = "image/png",
    now: Optional[datetime] = None,
) -> str:
    """Return ``smartcollage-<main>-<size>x<size>-<timestamp>.<ext>``."""
    if mime_type not in config.EXPORT_FORMATS:
        raise ValueError(f"Unsupported export type: {mime_type}")
    moment = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    stamp = f"{moment:%Y-%m-%dT%H-%M-%S}-{moment.microsecond // 1000:03d}Z"
    ext = config.EXPORT_FORMATS[mime_type]
    return (
        f"{config.EXPORT_FILENAME_PREFIX}-{safe_filename_part(main_name)}"
        f"-{size}x{size}-{stamp}.{ext}"
    )


def write_demo_images(
    directory: Union[str, Path],
    count: int = config.DEMO_IMAGE_COUNT,
    *,
    rng: Optional[random.Random] = None,
    base_size: Tuple[int, int] = (900, 600),
    jitter: Tuple[int, int] = (900, 900),
) -> List[Path]:
    """Write ``count`` numbered demo JPEGs of varying size into ``directory``."""
    rng = rng or random.Random()
    out_dir = Path(directory)
    out_dir.mkdir(parents=True, exist_ok=True)

    paths: List[Path] = []
    for index in range(count):
        size = (
            base_size[0] + rng.randrange(max(1, jitter[0])),
            base_size[1] + rng.randrange(max(1, jitter[1])),
        )
        path = out_dir / f"demo-{index + 1:03d}.jpg"
        path.write_bytes(encode_canvas(create_demo_image(index, size), "image/jpeg", 0.92))
        paths.append(path)

    logging.info("Wrote %d demo images to %s", len(paths), out_dir)
    return paths


__all__ = [
    "ImageSource",
    "DecodedImage",
    "decode_image",
    "mime_type_for_path",
    "encode_canvas",
    "save_collage",
    "safe_filename_part",
    "build_export_filename",
    "write_demo_images",
]
