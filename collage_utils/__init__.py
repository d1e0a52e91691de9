"""Utility package for SmartCollage: layout engine, imaging and rendering."""

from . import collage_layouts, collage_renderer, image_operations, image_processor

__all__ = ["collage_layouts", "collage_renderer", "image_operations", "image_processor"]
