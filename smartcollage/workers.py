# workers.py
"""
Background render execution for Qt front ends.
Defines RenderWorker, a QRunnable that runs the collage pipeline off the UI
thread and reports progress, results, errors and cancellation via signals.
"""
import logging
from typing import Optional, Sequence

from PySide6.QtCore import QObject, QRunnable, QThreadPool, Signal

from collage_utils.collage_renderer import (
    CancellationToken,
    CollageImageItem,
    RenderCollageOptions,
    render_collage_to_image,
)
from collage_utils.errors import CanceledError

from .controllers import CollageSessionController


class RenderSignals(QObject):
    started = Signal()
    progress = Signal(object)
    result = Signal(object)
    error = Signal(str)
    canceled = Signal()
    finished = Signal()


class RenderWorker(QRunnable):
    """Runs one collage render in a QThreadPool."""
    def __init__(
        self,
        images: Sequence[CollageImageItem],
        main_id: Optional[str],
        options: RenderCollageOptions,
        *,
        session: Optional[CollageSessionController] = None,
        **render_kwargs
    ):
        super().__init__()
        self.images = list(images)
        self.main_id = main_id
        self.options = options
        self.render_kwargs = render_kwargs
        self.session = session
        self.cancel_token = session.begin_render() if session else CancellationToken()
        self.signals = RenderSignals()

    @classmethod
    def from_session(cls, session: CollageSessionController, options: RenderCollageOptions, **render_kwargs):
        """Snapshot *session*'s images and take over its active render slot."""
        return cls(session.items, session.main_id, options, session=session, **render_kwargs)

    def cancel(self) -> None:
        self.cancel_token.cancel()

    def run(self) -> None:
        try:
            self.signals.started.emit()
            image = render_collage_to_image(
                self.images,
                self.main_id,
                self.options,
                cancel_token=self.cancel_token,
                on_progress=self.signals.progress.emit,
                **self.render_kwargs,
            )
            self.signals.result.emit(image)
        except CanceledError:
            logging.info("Render worker canceled")
            self.signals.canceled.emit()
        except Exception as e:
            logging.error("Render worker error: %s", e)
            self.signals.error.emit(str(e))
        finally:
            if self.session is not None:
                self.session.finish_render(self.cancel_token)
            self.signals.finished.emit()


def start_render(worker: RenderWorker, pool: Optional[QThreadPool] = None) -> RenderWorker:
    """Queue *worker* on *pool* (the global pool by default) and return it."""
    (pool or QThreadPool.globalInstance()).start(worker)
    return worker
