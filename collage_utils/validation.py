"""Input validation helpers for collage source images and export targets."""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional, Union
from urllib.parse import urlparse

from smartcollage import config

IMAGE_EXTENSIONS = frozenset(f".{fmt}" for fmt in config.SUPPORTED_IMAGE_FORMATS)
EXPORT_EXTENSIONS = frozenset(
    {f".{ext}" for ext in config.EXPORT_FORMATS.values()} | {".jpeg"}
)


def _has_url_scheme(path_str: str) -> bool:
    """Return True if *path_str* looks like a URL with a scheme.

    Single-letter schemes such as ``"C"`` are Windows drive letters and are
    not treated as URLs.
    """
    parsed = urlparse(path_str)
    return bool(parsed.scheme and len(parsed.scheme) > 1)


def _local_path(path: Union[str, Path]) -> Path:
    path_str = str(path)
    if _has_url_scheme(path_str):
        raise ValueError(f"URLs are not allowed: {path_str}")
    return Path(path_str).expanduser()


def _require_extension(p: Path, allowed_exts: Optional[Iterable[str]], default: Iterable[str]) -> None:
    allowed = {ext.lower() for ext in (default if allowed_exts is None else allowed_exts)}
    if p.suffix.lower() not in allowed:
        raise ValueError(f"Unsupported file extension: {p.suffix or '(none)'}")


def is_supported_image(path: Union[str, Path]) -> bool:
    """Return True when *path* has an extension the decoder accepts."""
    return Path(path).suffix.lower() in IMAGE_EXTENSIONS


def validate_image_path(
    path: Union[str, Path], allowed_exts: Optional[Iterable[str]] = None
) -> Path:
    """Return *path* resolved if it names a local image file the decoder accepts."""
    p = _local_path(path)
    if not p.is_file():
        raise ValueError(f"Not an existing file: {path}")
    _require_extension(p, allowed_exts, IMAGE_EXTENSIONS)
    return p.resolve()


def validate_output_path(
    path: Union[str, Path], allowed_exts: Optional[Iterable[str]] = None
) -> Path:
    """Validate an export *path* and return it resolved.

    The extension must be one of the export formats, the parent directory
    must already exist and *path* itself must not be a directory.
    """
    p = _local_path(path).resolve()
    _require_extension(p, allowed_exts, EXPORT_EXTENSIONS)
    if not p.parent.is_dir():
        raise ValueError(f"Output directory does not exist: {p.parent}")
    if p.is_dir():
        raise ValueError(f"Output path is a directory: {p}")
    return p
