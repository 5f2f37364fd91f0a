"""PDF intake: checks on uploaded bytes and guarded downloads of remote PDFs."""

import ipaddress
import logging
from urllib.parse import urlsplit

import httpx

from epaper_pipeline.exceptions import (
    FetchError,
    SizeLimitError,
    UnsupportedTypeError,
    ValidationError,
)
from schemas.source import PdfSource, PdfUpload, PdfUrl

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF-"
DEFAULT_MAX_BYTES = 30 * 1024 * 1024
DEFAULT_TIMEOUT = 45.0
MAX_REDIRECTS = 5
USER_AGENT = "epaper-pipeline/0.1 (+pdf-intake)"
ACCEPT_HEADER = "application/pdf,application/octet-stream;q=0.9,*/*;q=0.8"


def is_private_or_local_host(hostname: str) -> bool:
    """Return True for hosts that must never be fetched server-side.

    Covers localhost names, mDNS ``.local`` names, and IP literals that are
    loopback, private, link-local, unspecified or reserved.
    """
    host = hostname.strip().strip("[]").rstrip(".").lower()
    if not host:
        return True
    if host == "localhost" or host.endswith(".localhost") or host.endswith(".local"):
        return True
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
        address = address.ipv4_mapped
    return (
        address.is_loopback
        or address.is_private
        or address.is_link_local
        or address.is_unspecified
        or address.is_reserved
        or address.is_multicast
    )


def require_safe_public_url(url: str) -> str:
    """Validate that ``url`` is an http(s) URL to a public host.

    Raises:
        ValidationError: If the URL is malformed, not http(s) or points to a
                         private or local host
    """
    try:
        parts = urlsplit(url.strip())
    except ValueError as e:
        raise ValidationError(f"Invalid PDF URL: {url}", code="INVALID_URL") from e
    if parts.scheme not in ("http", "https"):
        raise ValidationError("Only http(s) PDF URLs are allowed", code="INVALID_URL")
    if not parts.hostname:
        raise ValidationError(f"Invalid PDF URL: {url}", code="INVALID_URL")
    if is_private_or_local_host(parts.hostname):
        raise ValidationError("PDF URL host is not allowed", code="URL_NOT_ALLOWED")
    return url.strip()


def validate_upload(upload: PdfUpload, max_bytes: int = DEFAULT_MAX_BYTES) -> bytes:
    """Check directly uploaded PDF bytes.

    Raises:
        ValidationError: If the payload is empty
        SizeLimitError: If the payload is larger than ``max_bytes``
        UnsupportedTypeError: If neither the MIME type nor the filename says PDF
    """
    if not upload.data:
        raise ValidationError("PDF file is required", code="PDF_REQUIRED")
    if len(upload.data) > max_bytes:
        raise SizeLimitError(max_bytes=max_bytes)

    content_type = (upload.content_type or "").split(";")[0].strip().lower()
    filename = (upload.filename or "").lower()
    if content_type != "application/pdf" and not filename.endswith(".pdf"):
        raise UnsupportedTypeError("Only PDF files are allowed", code="INVALID_FILE_TYPE")
    return upload.data


class PdfFetcher:
    """Loads PDF bytes from an upload or a remote URL.

    Remote downloads are streamed with a byte ceiling and every redirect hop
    is re-checked against the private-host guard.

    Example:
        with PdfFetcher(max_bytes=config.pdf_max_bytes) as fetcher:
            pdf_bytes = fetcher.load(PdfUrl("https://cdn.example.com/today.pdf"))
    """

    def __init__(
        self,
        http_client: httpx.Client | None = None,
        max_bytes: int = DEFAULT_MAX_BYTES,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """Initialize the fetcher.

        Args:
            http_client: Optional HTTP client for downloads.
                         If not provided, one will be created internally.
            max_bytes: Largest accepted PDF
            timeout: Download timeout in seconds for the internal client
        """
        self._client = http_client
        self._owns_client = http_client is None
        self.max_bytes = max_bytes
        self.timeout = timeout

    def _get_client(self) -> httpx.Client:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout, follow_redirects=False)
        return self._client

    def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "PdfFetcher":
        """Enter context manager."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit context manager."""
        self.close()

    def load(self, source: PdfSource) -> bytes:
        """Return validated PDF bytes for either kind of source."""
        if isinstance(source, PdfUpload):
            return validate_upload(source, self.max_bytes)
        if isinstance(source, PdfUrl):
            return self.fetch(source.url)
        raise ValidationError("PDF file or URL is required", code="PDF_REQUIRED")

    def fetch(self, url: str) -> bytes:
        """Download a remote PDF.

        Args:
            url: Public http(s) URL of the PDF

        Returns:
            The PDF bytes

        Raises:
            ValidationError: If the URL or a redirect target is not allowed,
                             or the body is empty
            SizeLimitError: If the body exceeds ``max_bytes``
            UnsupportedTypeError: If the response is not a PDF
            FetchError: On network failure or an error status
        """
        current = require_safe_public_url(url)
        client = self._get_client()
        headers = {"User-Agent": USER_AGENT, "Accept": ACCEPT_HEADER}

        for _ in range(MAX_REDIRECTS + 1):
            try:
                with client.stream("GET", current, headers=headers) as response:
                    if response.is_redirect:
                        location = response.headers.get("location")
                        if not location:
                            raise FetchError("Redirect without location", code="FETCH_FAILED")
                        current = require_safe_public_url(
                            str(response.url.join(location))
                        )
                        logger.debug(f"Following redirect to {current}")
                        continue
                    return self._read_pdf(response)
            except httpx.RequestError as e:
                logger.error(f"Failed to fetch PDF from {current}: {e}")
                raise FetchError(f"Failed to fetch PDF: {e}", code="FETCH_FAILED") from e

        raise FetchError("Too many redirects while fetching PDF", code="FETCH_FAILED")

    def _read_pdf(self, response: httpx.Response) -> bytes:
        if response.status_code >= 400:
            logger.error(f"PDF fetch returned HTTP {response.status_code} for {response.url}")
            raise FetchError(
                f"Failed to fetch PDF (HTTP {response.status_code})", code="FETCH_FAILED"
            )

        content_type = response.headers.get("content-type", "").lower()
        if content_type and "pdf" not in content_type and "octet-stream" not in content_type:
            raise UnsupportedTypeError(
                "URL did not return a PDF", code="INVALID_FILE_TYPE"
            )

        declared = response.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > self.max_bytes:
            raise SizeLimitError(max_bytes=self.max_bytes)

        body = bytearray()
        for chunk in response.iter_bytes():
            body.extend(chunk)
            if len(body) > self.max_bytes:
                raise SizeLimitError(max_bytes=self.max_bytes)

        if not body:
            raise ValidationError("Downloaded PDF is empty", code="PDF_EMPTY")
        if bytes(body[: len(PDF_MAGIC)]) != PDF_MAGIC:
            raise UnsupportedTypeError(
                "Downloaded file is not a valid PDF", code="INVALID_FILE_TYPE"
            )
        logger.info(f"Fetched PDF ({len(body)} bytes) from {response.url}")
        return bytes(body)
