"""Article clips: geometry checks and lifecycle management."""

from .geometry import (
    DEFAULT_PAGE_CEILING,
    placeholder_layout,
    validate_clip_geometry,
    validate_page_number,
)
from .manager import ClipManager

__all__ = [
    "ClipManager",
    "DEFAULT_PAGE_CEILING",
    "placeholder_layout",
    "validate_clip_geometry",
    "validate_page_number",
]
