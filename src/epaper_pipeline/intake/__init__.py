"""PDF intake for issue ingestion."""

from .pdf_fetcher import (
    PdfFetcher,
    is_private_or_local_host,
    require_safe_public_url,
    validate_upload,
)

__all__ = [
    "PdfFetcher",
    "is_private_or_local_host",
    "require_safe_public_url",
    "validate_upload",
]
