"""Deterministic object key layout for issue artifacts.

Downstream viewers and the CDN rely on these keys being stable:

    {root}/{tenant}/{edition|sub-edition}/{target}/{YYYY-MM-DD}/issue.pdf
    {root}/{tenant}/{edition|sub-edition}/{target}/{YYYY-MM-DD}/pages/page-0001.png
"""

from dataclasses import dataclass
from datetime import date

from schemas.target import Target

DEFAULT_STORAGE_ROOT = "epaper/pdf-issues"

PNG_CONTENT_TYPE = "image/png"
WEBP_CONTENT_TYPE = "image/webp"
JPEG_CONTENT_TYPE = "image/jpeg"
PDF_CONTENT_TYPE = "application/pdf"


@dataclass(frozen=True)
class IssueKeys:
    """Key builder for one (tenant, target, date) issue."""

    tenant_id: str
    target: Target
    issue_date: date
    root: str = DEFAULT_STORAGE_ROOT

    @property
    def prefix(self) -> str:
        root = self.root.strip("/")
        return (
            f"{root}/{self.tenant_id}/{self.target.kind}/{self.target.id}/"
            f"{self.issue_date.isoformat()}"
        )

    @property
    def pdf_key(self) -> str:
        return f"{self.prefix}/issue.pdf"

    @property
    def page_prefix(self) -> str:
        return f"{self.prefix}/pages"

    def page_key(self, page_number: int, extension: str = "png") -> str:
        """Key of a page object, zero-padded to four digits and 1-based."""
        if page_number < 1:
            raise ValueError(f"page_number must be >= 1, got {page_number}")
        return f"{self.page_prefix}/page-{page_number:04d}.{extension}"

    def delivery_key(self, page_number: int) -> str:
        return self.page_key(page_number, "webp")

    def preview_key(self, page_number: int) -> str:
        return self.page_key(page_number, "jpg")

    @property
    def cover_preview_key(self) -> str:
        return f"{self.page_prefix}/cover-og.jpg"
