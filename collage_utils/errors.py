"""Error hierarchy shared by the layout engine and the render pipeline.

Every failure raised by :mod:`collage_utils` derives from
:class:`CollageError` so front ends can surface ``message`` from the most
specific error.  :class:`CanceledError` is kept distinct so callers can
skip error reporting for an intentional cancellation.
"""

from __future__ import annotations


class CollageError(Exception):
    """Base class for collage failures."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class EmptyInputError(CollageError):
    """Raised when a render is requested without any images."""


class SurfaceUnavailableError(CollageError):
    """Raised when the drawing surface cannot be acquired or sized."""


class LayoutAllocationShortfallError(CollageError):
    """Raised when the packer produced a different number of cells than required.

    This indicates a defect in the rectangle/count relationship rather than
    a recoverable runtime condition.
    """

    def __init__(self, message: str, *, expected: int, actual: int) -> None:
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class DecodeFailureError(CollageError):
    """Raised when a single image cannot be decoded."""


class CanceledError(CollageError):
    """Raised when cooperative cancellation is observed."""

    def __init__(self, message: str = "Render canceled") -> None:
        super().__init__(message)


class EncodeFailureError(CollageError):
    """Raised when export encoding produced no output."""


__all__ = [
    "CollageError",
    "EmptyInputError",
    "SurfaceUnavailableError",
    "LayoutAllocationShortfallError",
    "DecodeFailureError",
    "CanceledError",
    "EncodeFailureError",
]
