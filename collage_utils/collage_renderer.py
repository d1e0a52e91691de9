"""Render pipeline: decode source images and composite them into a layout.

The pipeline runs on the caller's thread.  Progress, cancellation, the
frame-yield hook and the random source used for shuffling are all passed in
explicitly so front ends (CLI, Qt worker, tests) can drive it the same way.
"""

from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass
from typing import Callable, List, Literal, Optional, Protocol, Sequence, Tuple

from PIL import Image, ImageColor

from smartcollage import config

from .collage_layouts import (
    CollageLayout,
    CollageLayoutOptions,
    Rect,
    compute_collage_layout,
    compute_flat_layout,
    normalize_canvas_size,
)
from .errors import (
    CanceledError,
    CollageError,
    DecodeFailureError,
    EmptyInputError,
    LayoutAllocationShortfallError,
    SurfaceUnavailableError,
)
from .image_operations import cover_crop
from .image_processor import DecodedImage, ImageSource, decode_image

logger = logging.getLogger("smartcollage.render")

ProgressPhase = Literal["layout", "decode", "render", "export"]


@dataclass(frozen=True, slots=True)
class CollageProgress:
    """A progress checkpoint reported by the pipeline."""

    phase: ProgressPhase
    done: int
    total: int
    message: str = ""


@dataclass(frozen=True, slots=True)
class CollageImageItem:
    """An input image identified by ``id``."""

    id: str
    file: ImageSource


@dataclass(frozen=True, slots=True)
class RenderCollageOptions:
    """Rendering options shared by previews and exports."""

    size: int = config.DEFAULT_PREVIEW_SIZE
    main_ratio: float = config.DEFAULT_MAIN_RATIO
    gap: int = config.DEFAULT_GAP
    background: str = config.DEFAULT_BACKGROUND
    shuffle_others: bool = False
    use_main: bool = True


ProgressSink = Callable[[CollageProgress], None]
ImageDecoder = Callable[[ImageSource, Optional[Tuple[int, int]]], DecodedImage]


class CancellationToken:
    """Thread-safe flag polled by the pipeline between images."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_canceled(self) -> bool:
        return self._event.is_set()

    def raise_if_canceled(self) -> None:
        if self._event.is_set():
            raise CanceledError()


class DrawingSurface(Protocol):
    """Destination the pipeline draws on."""

    def resize(self, width: int, height: int) -> None:
        ...

    def fill(self, rect: Rect, color: str) -> None:
        ...

    def draw(
        self,
        image: Image.Image,
        source_box: Tuple[float, float, float, float],
        dest: Rect,
    ) -> None:
        ...


class PillowSurface:
    """RGB canvas backed by a Pillow image."""

    def __init__(self, max_size: int = config.MAX_CANVAS_SIZE) -> None:
        self.max_size = max_size
        self._image: Optional[Image.Image] = None

    @property
    def image(self) -> Image.Image:
        if self._image is None:
            raise SurfaceUnavailableError("Surface has not been sized yet")
        return self._image

    def resize(self, width: int, height: int) -> None:
        if not (0 < width <= self.max_size and 0 < height <= self.max_size):
            raise SurfaceUnavailableError(
                f"Canvas size {width}x{height} exceeds the {self.max_size}px limit"
            )
        try:
            self._image = Image.new("RGB", (width, height))
        except (MemoryError, ValueError) as exc:
            raise SurfaceUnavailableError(f"Cannot allocate {width}x{height} canvas: {exc}") from exc

    def fill(self, rect: Rect, color: str) -> None:
        self.image.paste(ImageColor.getrgb(color), rect.box)

    def draw(
        self,
        image: Image.Image,
        source_box: Tuple[float, float, float, float],
        dest: Rect,
    ) -> None:
        if dest.is_empty:
            return
        tile = image.resize((dest.width, dest.height), Image.Resampling.LANCZOS, box=source_box)
        mask = tile if tile.mode == "RGBA" else None
        self.image.paste(tile, (dest.x, dest.y), mask)


def draw_image_cover(surface: DrawingSurface, decoded: DecodedImage, dest: Rect) -> None:
    """Draw ``decoded`` into ``dest``, scaling to cover and centre-cropping."""
    crop = cover_crop((decoded.width, decoded.height), (dest.width, dest.height))
    if crop is None:
        return
    surface.draw(decoded.source, crop.box, dest)


def shuffle_in_place(items: List, rng: random.Random) -> None:
    """Fisher-Yates shuffle of ``items`` using ``rng``."""
    for i in range(len(items) - 1, 0, -1):
        j = rng.randrange(i + 1)
        items[i], items[j] = items[j], items[i]


def _decode(decoder: ImageDecoder, item: CollageImageItem, dest: Rect) -> DecodedImage:
    try:
        return decoder(item.file, (dest.width, dest.height))
    except CollageError:
        raise
    except Exception as exc:
        raise DecodeFailureError(f"Failed to decode image {item.id}: {exc}") from exc


def render_collage(
    surface: Optional[DrawingSurface],
    images: Sequence[CollageImageItem],
    main_id: Optional[str],
    options: RenderCollageOptions,
    *,
    decoder: ImageDecoder = decode_image,
    cancel_token: Optional[CancellationToken] = None,
    on_progress: Optional[ProgressSink] = None,
    rng: Optional[random.Random] = None,
    yield_frame: Optional[Callable[[], None]] = None,
) -> CollageLayout:
    """Render ``images`` onto ``surface`` and return the layout used.

    With ``options.use_main`` the image whose id is ``main_id`` (or the first
    image) fills the centre square and the rest fill the ring cells in
    order.  Otherwise every image goes into one full-canvas grid.  Decode
    failures abort the whole render; whatever was drawn before the failure
    must be discarded by the caller.

    Raises:
        EmptyInputError: No images were supplied.
        SurfaceUnavailableError: ``surface`` is missing or cannot be sized.
        LayoutAllocationShortfallError: Fewer cells than images.
        DecodeFailureError: An image could not be decoded.
        CanceledError: ``cancel_token`` was cancelled.
    """
    if not images:
        raise EmptyInputError("No images provided.")
    if surface is None:
        raise SurfaceUnavailableError("Drawing surface is not available.")

    size = normalize_canvas_size(options.size)
    surface.resize(size, size)

    emit = on_progress or (lambda progress: None)
    check = cancel_token.raise_if_canceled if cancel_token else (lambda: None)

    main: Optional[CollageImageItem] = None
    if options.use_main:
        main = next((item for item in images if item.id == main_id), images[0])
        others = [item for item in images if item.id != main.id]
    else:
        others = list(images)
    if options.shuffle_others:
        shuffle_in_place(others, rng or random.SystemRandom())

    total = len(others) + (1 if main else 0)
    emit(CollageProgress("layout", 0, total, "Computing layout…"))
    if main:
        layout = compute_collage_layout(
            CollageLayoutOptions(
                size=size,
                main_ratio=options.main_ratio,
                gap=options.gap,
                others_count=len(others),
            )
        )
    else:
        layout = compute_flat_layout(size, options.gap, len(others))
    if len(layout.ring_cells) < len(others):
        raise LayoutAllocationShortfallError(
            f"Layout has {len(layout.ring_cells)} cells for {len(others)} images",
            expected=len(others),
            actual=len(layout.ring_cells),
        )

    surface.fill(Rect(0, 0, size, size), options.background)

    drawn = 0
    for idx, (item, dest) in enumerate(zip(others, layout.ring_cells)):
        check()
        emit(CollageProgress("decode", drawn, total, f"Decoding image {drawn + 1}/{total}…"))
        with _decode(decoder, item, dest) as decoded:
            emit(CollageProgress("render", drawn, total, f"Drawing image {drawn + 1}/{total}…"))
            draw_image_cover(surface, decoded, dest)
        drawn += 1
        if yield_frame is not None and idx % config.FRAME_YIELD_INTERVAL == 0:
            yield_frame()

    if main is not None and layout.main_rect is not None:
        check()
        emit(CollageProgress("decode", drawn, total, "Decoding main image…"))
        with _decode(decoder, main, layout.main_rect) as decoded:
            emit(CollageProgress("render", drawn, total, "Drawing main image…"))
            draw_image_cover(surface, decoded, layout.main_rect)
        drawn += 1

    emit(CollageProgress("render", drawn, total, "Done"))
    logger.info("Rendered %d images onto a %dpx canvas", drawn, size)
    return layout


def render_collage_to_image(
    images: Sequence[CollageImageItem],
    main_id: Optional[str],
    options: RenderCollageOptions,
    **kwargs,
) -> Image.Image:
    """Render onto a fresh :class:`PillowSurface` and return its image."""
    surface = PillowSurface()
    render_collage(surface, images, main_id, options, **kwargs)
    return surface.image


__all__ = [
    "CollageProgress",
    "CollageImageItem",
    "RenderCollageOptions",
    "CancellationToken",
    "DrawingSurface",
    "PillowSurface",
    "ProgressSink",
    "ImageDecoder",
    "draw_image_cover",
    "shuffle_in_place",
    "render_collage",
    "render_collage_to_image",
]
