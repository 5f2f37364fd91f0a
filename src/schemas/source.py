"""PDF intake sources."""

from dataclasses import dataclass


@dataclass(frozen=True)
class PdfUpload:
    """PDF bytes received directly from the caller.

    Attributes:
        data: Raw PDF bytes
        filename: Original filename, if known
        content_type: Declared MIME type, if known
    """

    data: bytes
    filename: str | None = None
    content_type: str | None = None


@dataclass(frozen=True)
class PdfUrl:
    """A remote PDF to be downloaded before ingestion."""

    url: str


PdfSource = PdfUpload | PdfUrl
