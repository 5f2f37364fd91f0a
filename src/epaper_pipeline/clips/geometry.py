"""Geometric validation of clip rectangles in PDF point space."""

import math

from schemas.clip import ClipCandidate, PageSize

# Upper bound applied when the caller does not declare the page size
DEFAULT_PAGE_CEILING = PageSize(width=2000, height=3000)

# US Letter split down the middle, used by the placeholder detector
LETTER_PAGE = PageSize(width=612, height=792)


def validate_clip_geometry(
    x: float,
    y: float,
    width: float,
    height: float,
    page_size: PageSize | None = None,
) -> str | None:
    """Check a rectangle against the page bounds.

    Args:
        x: Left edge in points
        y: Bottom edge in points
        width: Horizontal extent in points
        height: Vertical extent in points
        page_size: Declared page size; the default ceiling is used when None

    Returns:
        A message naming the first violated bound, or None when the
        rectangle is valid
    """
    if not all(math.isfinite(v) for v in (x, y, width, height)):
        return "coordinates must be finite numbers"
    bounds = page_size or DEFAULT_PAGE_CEILING
    if x < 0:
        return "x must be >= 0"
    if y < 0:
        return "y must be >= 0"
    if width <= 0:
        return "width must be > 0"
    if height <= 0:
        return "height must be > 0"
    if x + width > bounds.width:
        return f"x + width ({x + width:g}) exceeds max page width ({bounds.width:g})"
    if y + height > bounds.height:
        return f"y + height ({y + height:g}) exceeds max page height ({bounds.height:g})"
    return None


def validate_page_number(page_number: int, page_count: int | None) -> str | None:
    """Check a 1-based page number against the issue's page count, if known."""
    if page_number < 1:
        return "page_number must be >= 1"
    if page_count and page_number > page_count:
        return f"page_number ({page_number}) exceeds issue page count ({page_count})"
    return None


def placeholder_layout(page_count: int, page: PageSize = LETTER_PAGE) -> list[ClipCandidate]:
    """Two-column layout used in place of real article boundary detection.

    Every page gets a full-height left and right half.
    """
    half = page.width / 2
    candidates = []
    for page_number in range(1, max(page_count, 1) + 1):
        candidates.append(
            ClipCandidate(
                page_number=page_number,
                x=0,
                y=0,
                width=half,
                height=page.height,
                column="left",
                confidence=0.5,
            )
        )
        candidates.append(
            ClipCandidate(
                page_number=page_number,
                x=half,
                y=0,
                width=half,
                height=page.height,
                column="right",
                confidence=0.5,
            )
        )
    return candidates
