"""Session controller for collage inputs and render lifecycle.

:class:`CollageSessionController` keeps the ordered image list and the main
image selection, and guarantees that at most one render is in flight: a new
render cancels the token of the previous one before it starts.  It has no
Qt dependency so the CLI, the Qt worker and tests share it.
"""

from __future__ import annotations

import logging
import threading
import uuid
from typing import Callable, Iterable, List, Optional, Tuple

from PIL import Image

from collage_utils.collage_renderer import (
    CancellationToken,
    CollageImageItem,
    RenderCollageOptions,
    render_collage_to_image,
)
from collage_utils.image_processor import ImageSource


class UnknownImageError(KeyError):
    """Raised when an image id is not part of the session."""


class CollageSessionController:
    """Manage the collage image list and the active render."""

    def __init__(self, *, id_factory: Optional[Callable[[], str]] = None) -> None:
        self._id_factory = id_factory or (lambda: uuid.uuid4().hex)
        self._items: List[CollageImageItem] = []
        self._main_id: Optional[str] = None
        self._active_token: Optional[CancellationToken] = None
        self._lock = threading.RLock()
        self.logger = logging.getLogger("smartcollage.session")

    @property
    def items(self) -> Tuple[CollageImageItem, ...]:
        with self._lock:
            return tuple(self._items)

    @property
    def main_id(self) -> Optional[str]:
        """Return the selected main id, falling back to the first image."""

        with self._lock:
            if any(item.id == self._main_id for item in self._items):
                return self._main_id
            return self._items[0].id if self._items else None

    @property
    def main_item(self) -> Optional[CollageImageItem]:
        main_id = self.main_id
        return next((item for item in self.items if item.id == main_id), None)

    @property
    def is_rendering(self) -> bool:
        with self._lock:
            return self._active_token is not None

    def add_files(self, files: Iterable[ImageSource]) -> List[CollageImageItem]:
        """Append *files* to the session and return the new items."""

        added = [CollageImageItem(id=self._id_factory(), file=f) for f in files]
        with self._lock:
            self._items.extend(added)
        return added

    def remove(self, item_id: str) -> None:
        with self._lock:
            remaining = [item for item in self._items if item.id != item_id]
            if len(remaining) == len(self._items):
                raise UnknownImageError(item_id)
            self._items = remaining

    def set_main(self, item_id: str) -> None:
        with self._lock:
            if not any(item.id == item_id for item in self._items):
                raise UnknownImageError(item_id)
            self._main_id = item_id

    def clear(self) -> None:
        """Cancel any active render and drop all images."""

        self.cancel()
        with self._lock:
            self._items.clear()
            self._main_id = None

    def begin_render(self) -> CancellationToken:
        """Cancel the in-flight render, if any, and return a fresh token."""

        token = CancellationToken()
        with self._lock:
            previous, self._active_token = self._active_token, token
        if previous is not None:
            self.logger.info("Cancelling previous render")
            previous.cancel()
        return token

    def finish_render(self, token: CancellationToken) -> None:
        """Forget *token* if it still belongs to the active render."""

        with self._lock:
            if self._active_token is token:
                self._active_token = None

    def cancel(self) -> bool:
        """Cancel the active render; return whether one was running."""

        with self._lock:
            token = self._active_token
        if token is None:
            return False
        token.cancel()
        return True

    def render(self, options: RenderCollageOptions, **render_kwargs) -> Image.Image:
        """Render the current images with *options* on a fresh Pillow canvas."""

        token = self.begin_render()
        try:
            return render_collage_to_image(
                self.items,
                self.main_id,
                options,
                cancel_token=token,
                **render_kwargs,
            )
        finally:
            self.finish_render(token)
