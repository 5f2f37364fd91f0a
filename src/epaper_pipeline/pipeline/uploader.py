"""Page uploads: masters, derivatives and the cover social preview."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from epaper_pipeline.exceptions import EncodingError, StorageError
from epaper_pipeline.storage.keys import (
    JPEG_CONTENT_TYPE,
    PNG_CONTENT_TYPE,
    WEBP_CONTENT_TYPE,
    IssueKeys,
)
from epaper_pipeline.storage.object_storage import ObjectStorage
from epaper_pipeline.transformers.derivatives import DerivativeEncoder

from .concurrency import indexed_parallel_map

logger = logging.getLogger(__name__)


@dataclass
class UploadedPage:
    """Public URLs of one uploaded page.

    Attributes:
        page_number: 1-based page number
        image_url: URL of the PNG master
        delivery_image_url: URL of the WebP derivative, if it was produced
        preview_image_url: URL of the JPEG derivative, if it was produced
    """

    page_number: int
    image_url: str
    delivery_image_url: str | None = None
    preview_image_url: str | None = None


class PageUploader:
    """Upload rasterized pages with a bounded worker pool.

    A master write failure aborts the whole upload. Derivatives are
    best-effort: a failure is logged and leaves that URL empty.
    """

    def __init__(
        self,
        storage: ObjectStorage,
        encoder: DerivativeEncoder | None = None,
        concurrency: int = 4,
    ):
        """Initialize the uploader.

        Args:
            storage: Destination object storage
            encoder: Derivative encoder, or None to upload masters only
            concurrency: Maximum number of pages uploaded at once
        """
        self.storage = storage
        self.encoder = encoder
        self.concurrency = concurrency

    def upload_pages(self, keys: IssueKeys, pngs: Sequence[bytes]) -> list[UploadedPage]:
        """Upload every page master (and derivatives) of an issue.

        Args:
            keys: Key layout of the issue
            pngs: PNG bytes in page order

        Returns:
            One UploadedPage per input, where result[i].page_number == i + 1

        Raises:
            StorageError: If any master upload fails
        """

        def upload(item: tuple[int, bytes]) -> UploadedPage:
            page_number, png = item
            image_url = self.storage.put(keys.page_key(page_number), png, PNG_CONTENT_TYPE)
            delivery_url, preview_url = self._upload_derivatives(keys, page_number, png)
            logger.debug(f"Uploaded page {page_number} to {keys.page_key(page_number)}")
            return UploadedPage(page_number, image_url, delivery_url, preview_url)

        pages = indexed_parallel_map(
            list(enumerate(pngs, start=1)), upload, workers=self.concurrency
        )
        logger.info(f"Uploaded {len(pages)} pages under {keys.page_prefix}")
        return pages

    def rebuild_derivatives(
        self, keys: IssueKeys, page_numbers: Sequence[int]
    ) -> list[UploadedPage]:
        """Re-encode derivatives from the stored page masters.

        Masters are read back and never rewritten.

        Raises:
            StorageError: If a page master cannot be read
        """

        def rebuild(page_number: int) -> UploadedPage:
            key = keys.page_key(page_number)
            png = self.storage.get(key)
            delivery_url, preview_url = self._upload_derivatives(keys, page_number, png)
            return UploadedPage(
                page_number, self.storage.public_url(key), delivery_url, preview_url
            )

        return indexed_parallel_map(list(page_numbers), rebuild, workers=self.concurrency)

    def upload_cover_preview(self, keys: IssueKeys, cover_png: bytes) -> str | None:
        """Upload the letterboxed social preview of the cover page.

        Returns:
            Public URL of the preview, or None when it could not be produced
        """
        if self.encoder is None:
            return None
        try:
            data = self.encoder.encode_preview(cover_png, letterbox=True)
            return self.storage.put(keys.cover_preview_key, data, JPEG_CONTENT_TYPE)
        except (EncodingError, StorageError) as e:
            logger.warning(f"Cover preview failed for {keys.prefix}: {e}")
            return None

    def _upload_derivatives(
        self, keys: IssueKeys, page_number: int, png: bytes
    ) -> tuple[str | None, str | None]:
        if self.encoder is None:
            return None, None

        delivery_url = None
        try:
            delivery_url = self.storage.put(
                keys.delivery_key(page_number),
                self.encoder.encode_delivery(png),
                WEBP_CONTENT_TYPE,
            )
        except (EncodingError, StorageError) as e:
            logger.warning(f"WebP derivative failed for page {page_number}: {e}")

        preview_url = None
        try:
            preview_url = self.storage.put(
                keys.preview_key(page_number),
                self.encoder.encode_preview(png),
                JPEG_CONTENT_TYPE,
            )
        except (EncodingError, StorageError) as e:
            logger.warning(f"JPEG derivative failed for page {page_number}: {e}")

        return delivery_url, preview_url
