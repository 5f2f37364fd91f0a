"""Delivery and preview derivatives encoded from lossless page masters."""

import io
import logging

from PIL import Image

from epaper_pipeline.config import PipelineConfig
from epaper_pipeline.exceptions import EncodingError

logger = logging.getLogger(__name__)


def _flatten(image: Image.Image, background=(255, 255, 255)) -> Image.Image:
    """Composite an image onto an opaque background and return it as RGB."""
    if image.mode in ("RGBA", "LA") or (
        image.mode == "P" and "transparency" in image.info
    ):
        rgba = image.convert("RGBA")
        flattened = Image.new("RGB", rgba.size, background)
        flattened.paste(rgba, mask=rgba.split()[-1])
        return flattened
    if image.mode != "RGB":
        return image.convert("RGB")
    return image


class DerivativeEncoder:
    """Encode WebP delivery images and JPEG previews from PNG masters.

    The master bytes are only read; every derivative is a fresh encoding.

    Attributes:
        delivery_quality: WebP quality for the bandwidth-efficient rendition
        preview_quality: JPEG quality for previews
        preview_size: Canvas size for letterboxed social previews, or None
    """

    def __init__(
        self,
        delivery_quality: int = 80,
        preview_quality: int = 85,
        preview_size: tuple[int, int] | None = (1200, 630),
    ):
        self.delivery_quality = delivery_quality
        self.preview_quality = preview_quality
        self.preview_size = preview_size

    @classmethod
    def from_config(cls, config: PipelineConfig) -> "DerivativeEncoder":
        return cls(
            delivery_quality=config.delivery_quality,
            preview_quality=config.preview_quality,
            preview_size=config.preview_size,
        )

    def _open(self, png: bytes) -> Image.Image:
        try:
            image = Image.open(io.BytesIO(png))
            image.load()
        except Exception as e:
            raise EncodingError(f"Could not decode page image: {e}") from e
        return image

    def encode_delivery(self, png: bytes) -> bytes:
        """Encode a WebP with the same pixel dimensions as the master.

        Raises:
            EncodingError: If the master cannot be decoded or encoded
        """
        image = self._open(png)
        if image.mode not in ("RGB", "RGBA"):
            image = image.convert("RGBA" if "A" in image.getbands() else "RGB")
        buffer = io.BytesIO()
        try:
            image.save(buffer, format="WEBP", quality=self.delivery_quality)
        except Exception as e:
            raise EncodingError(f"WebP encoding failed: {e}") from e
        return buffer.getvalue()

    def encode_preview(self, png: bytes, letterbox: bool = False) -> bytes:
        """Encode a JPEG preview, with transparency flattened onto white.

        Args:
            png: Master PNG bytes
            letterbox: Scale to fit and pad onto a white canvas of exactly
                       ``preview_size``

        Raises:
            EncodingError: If the master cannot be decoded or encoded
        """
        image = _flatten(self._open(png))

        if letterbox and self.preview_size:
            canvas_width, canvas_height = self.preview_size
            fitted = image.copy()
            fitted.thumbnail((canvas_width, canvas_height), Image.Resampling.LANCZOS)
            canvas = Image.new("RGB", (canvas_width, canvas_height), (255, 255, 255))
            offset = (
                (canvas_width - fitted.width) // 2,
                (canvas_height - fitted.height) // 2,
            )
            canvas.paste(fitted, offset)
            image = canvas

        buffer = io.BytesIO()
        try:
            image.save(buffer, format="JPEG", quality=self.preview_quality, optimize=True)
        except Exception as e:
            raise EncodingError(f"JPEG encoding failed: {e}") from e
        return buffer.getvalue()
