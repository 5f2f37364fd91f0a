"""Issue schemas.

These are the read models returned by the ingestion orchestrator. They are
built from ORM rows inside a session so callers never touch lazy-loaded
database state.
"""

from datetime import date, datetime, time, timezone

from pydantic import BaseModel, ConfigDict

from .page import PageView
from .target import Target, TargetKind, target_for


class IssueView(BaseModel):
    """A persisted issue with its ordered pages.

    Attributes:
        id: Issue identifier
        tenant_id: Owning tenant
        issue_date: Publication date (calendar date, UTC-anchored)
        target_kind: "edition" or "sub-edition"
        target_id: Identifier of the edition or sub-edition
        pdf_url: Public URL of the master PDF
        cover_image_url: Public URL of page 1's PNG master
        cover_image_url_delivery: Public URL of page 1's WebP derivative
        cover_preview_url: Public URL of the letterboxed social-preview JPEG
        page_count: Number of pages produced by rasterization
        source_page_count: Number of pages in the PDF before any page cap
        uploaded_by_user_id: User who ingested the current PDF
        pages: Pages ordered by page number
    """

    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    issue_date: date
    target_kind: TargetKind
    target_id: str
    pdf_url: str
    cover_image_url: str | None = None
    cover_image_url_delivery: str | None = None
    cover_preview_url: str | None = None
    page_count: int
    source_page_count: int | None = None
    uploaded_by_user_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    pages: list[PageView] = []

    @property
    def target(self) -> Target:
        return target_for(self.target_kind, self.target_id)

    @property
    def issue_datetime_utc(self) -> datetime:
        """The issue date as UTC midnight."""
        return datetime.combine(self.issue_date, time.min, tzinfo=timezone.utc)

    @property
    def is_truncated(self) -> bool:
        """True when a page cap dropped trailing pages of the source PDF."""
        return (
            self.source_page_count is not None
            and self.source_page_count > self.page_count
        )


class ExistenceAction(BaseModel):
    """What a caller may do about an existing issue."""

    can_replace: bool = True
    can_delete: bool = True
    suggestion: str = "Delete existing issue first or upload again to replace it"


class ExistenceCheck(BaseModel):
    """Result of probing for an issue before uploading.

    Attributes:
        exists: Whether an issue already exists for the key
        message: Human-readable summary
        issue: The existing issue, when there is one
        action: Hint for the caller, when there is an existing issue
    """

    exists: bool
    message: str
    issue: IssueView | None = None
    action: ExistenceAction | None = None

    @property
    def can_upload(self) -> bool:
        return not self.exists


class DeletionResult(BaseModel):
    """Outcome of deleting an issue.

    Attributes:
        issue_id: Identifier of the deleted issue
        attempted_keys: Every storage key a deletion was attempted for
        failed_keys: Keys whose deletion raised (logged, not retried)
    """

    issue_id: str
    attempted_keys: list[str] = []
    failed_keys: list[str] = []
