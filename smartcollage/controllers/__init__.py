"""Controller layer for decoupling collage state management from front ends."""

from .session import (
    CollageSessionController,
    UnknownImageError,
)

__all__ = [
    "CollageSessionController",
    "UnknownImageError",
]
