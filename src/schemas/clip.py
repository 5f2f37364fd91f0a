"""Article clip schemas.

Clip coordinates are PDF points (1/72 inch) in the PDF's native coordinate
space, where the origin is the bottom-left corner of the page.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict


class ClipSource(str, Enum):
    """How a clip came to exist."""

    MANUAL = "manual"
    AUTO = "auto"
    IMPORT = "import"


class ClipState(str, Enum):
    """Lifecycle state of a clip. There is no transition out of INACTIVE."""

    ACTIVE = "active"
    INACTIVE = "inactive"


@dataclass(frozen=True)
class PageSize:
    """Declared page dimensions in PDF points."""

    width: float
    height: float


class ClipMetadata(BaseModel):
    """Editorial metadata attached to a clip."""

    column: str | None = None
    title: str | None = None
    article_ref: str | None = None


class ClipCandidate(ClipMetadata):
    """A clip proposed for bulk creation.

    Attributes:
        page_number: 1-based page the clip sits on
        x: Left edge
        y: Bottom edge
        width: Horizontal extent
        height: Vertical extent
        confidence: Detection confidence, when produced by a detector
    """

    page_number: int
    x: float
    y: float
    width: float
    height: float
    confidence: float | None = None


class ClipUpdate(BaseModel):
    """Partial clip update. Only fields that were explicitly set are applied."""

    page_number: int | None = None
    x: float | None = None
    y: float | None = None
    width: float | None = None
    height: float | None = None
    column: str | None = None
    title: str | None = None
    article_ref: str | None = None


class ClipView(BaseModel):
    """A persisted clip."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    issue_id: str
    page_number: int
    x: float
    y: float
    width: float
    height: float
    column: str | None = None
    title: str | None = None
    article_ref: str | None = None
    source: ClipSource
    confidence: float | None = None
    state: ClipState
    deleted_at: datetime | None = None
    deleted_by: str | None = None
    deletion_reason: str | None = None
    created_by: str
    updated_by: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.state is ClipState.ACTIVE
