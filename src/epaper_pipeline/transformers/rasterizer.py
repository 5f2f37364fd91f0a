"""Rasterizers that turn a PDF into an ordered list of PNG pages.

The default backend shells out to Poppler's ``pdftoppm``. A PyMuPDF backend
renders in-process for hosts without Poppler installed.
"""

import logging
import re
import subprocess
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

import fitz  # PyMuPDF

from epaper_pipeline.config import PipelineConfig
from epaper_pipeline.exceptions import RasterizationError

logger = logging.getLogger(__name__)

PAGE_FILE_PATTERN = re.compile(r"^page-(\d+)\.png$")

PDFTOPPM_HINT = (
    "pdftoppm not available. Install Poppler (pdftoppm) and/or set EPAPER_PDFTOPPM_PATH"
)


class Rasterizer(ABC):
    """Abstract base class for PDF rasterizers."""

    @abstractmethod
    def rasterize(
        self, pdf_bytes: bytes, dpi: int = 150, max_pages: int | None = None
    ) -> list[bytes]:
        """Render the pages of a PDF to PNG images.

        Args:
            pdf_bytes: The PDF document
            dpi: Rendering resolution
            max_pages: Optional cap; only the first ``max_pages`` pages are rendered

        Returns:
            PNG bytes per page, in page order (element i is page i+1)

        Raises:
            RasterizationError: If rendering fails or produces no pages
        """
        pass


class PdftoppmRasterizer(Rasterizer):
    """Rasterize with the ``pdftoppm`` command-line tool.

    The PDF is written into a private temporary directory which is removed
    once the pages have been read back, whether or not the tool succeeds.
    """

    def __init__(self, executable: str = "pdftoppm", timeout: float | None = None):
        """Initialize the rasterizer.

        Args:
            executable: Path or name of the pdftoppm executable
            timeout: Optional subprocess timeout in seconds
        """
        self.executable = executable
        self.timeout = timeout

    def build_command(
        self, pdf_path: Path, out_prefix: Path, dpi: int, max_pages: int | None
    ) -> list[str]:
        args = [self.executable, "-png", "-r", str(dpi)]
        if max_pages is not None and max_pages > 0:
            args += ["-f", "1", "-l", str(max_pages)]
        args += [str(pdf_path), str(out_prefix)]
        return args

    def rasterize(
        self, pdf_bytes: bytes, dpi: int = 150, max_pages: int | None = None
    ) -> list[bytes]:
        with tempfile.TemporaryDirectory(prefix="epaper-pdf-") as tmp:
            tmp_dir = Path(tmp)
            pdf_path = tmp_dir / "input.pdf"
            pdf_path.write_bytes(pdf_bytes)

            command = self.build_command(pdf_path, tmp_dir / "page", dpi, max_pages)
            logger.debug(f"Running {' '.join(command)}")
            try:
                result = subprocess.run(
                    command, capture_output=True, timeout=self.timeout, check=False
                )
            except FileNotFoundError as e:
                logger.error(f"{PDFTOPPM_HINT} ({self.executable})")
                raise RasterizationError(PDFTOPPM_HINT) from e
            except subprocess.TimeoutExpired as e:
                logger.error(f"pdftoppm timed out after {self.timeout}s")
                raise RasterizationError(
                    f"pdftoppm timed out after {self.timeout}s"
                ) from e

            if result.returncode != 0:
                stderr = (result.stderr or b"").decode("utf-8", errors="replace").strip()
                logger.error(f"pdftoppm failed (exit {result.returncode}): {stderr}")
                raise RasterizationError(
                    f"pdftoppm failed (exit {result.returncode}). {stderr}".strip(),
                    exit_code=result.returncode,
                    stderr=stderr,
                )

            pages = self._collect_pages(tmp_dir)

        if not pages:
            logger.error("pdftoppm produced no PNG pages")
            raise RasterizationError("pdftoppm produced no PNG pages.")
        logger.info(f"Rasterized {len(pages)} pages at {dpi} DPI")
        return pages

    def _collect_pages(self, directory: Path) -> list[bytes]:
        """Read ``page-<n>.png`` outputs sorted by their numeric suffix."""
        numbered = []
        for path in directory.iterdir():
            match = PAGE_FILE_PATTERN.match(path.name)
            if match:
                numbered.append((int(match.group(1)), path))
        numbered.sort(key=lambda item: item[0])
        return [path.read_bytes() for _, path in numbered]


class PyMuPDFRasterizer(Rasterizer):
    """Rasterize in-process with PyMuPDF."""

    def rasterize(
        self, pdf_bytes: bytes, dpi: int = 150, max_pages: int | None = None
    ) -> list[bytes]:
        try:
            doc = fitz.open(stream=pdf_bytes, filetype="pdf")
        except Exception as e:
            logger.error(f"PyMuPDF could not open PDF: {e}")
            raise RasterizationError(f"Could not open PDF: {e}") from e

        try:
            page_total = len(doc)
            if max_pages is not None and max_pages > 0:
                page_total = min(page_total, max_pages)

            scale = dpi / 72
            mat = fitz.Matrix(scale, scale)
            pages = []
            for index in range(page_total):
                pix = doc[index].get_pixmap(matrix=mat)
                pages.append(pix.tobytes("png"))
        finally:
            doc.close()

        if not pages:
            raise RasterizationError("PDF produced no pages.")
        logger.info(f"Rasterized {len(pages)} pages at {dpi} DPI")
        return pages


def count_pdf_pages(pdf_bytes: bytes) -> int | None:
    """Count the pages of a PDF, or return None if it cannot be parsed."""
    try:
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    except Exception as e:
        logger.debug(f"Could not count PDF pages: {e}")
        return None
    try:
        return len(doc)
    finally:
        doc.close()


def create_rasterizer(config: PipelineConfig) -> Rasterizer:
    """Create the rasterizer backend selected by the configuration."""
    if config.rasterizer == "pymupdf":
        return PyMuPDFRasterizer()
    return PdftoppmRasterizer(config.pdftoppm_path)
