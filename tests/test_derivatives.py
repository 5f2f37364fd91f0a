"""Tests for the derivative encoder."""

import io

import pytest
from PIL import Image

from epaper_pipeline.config import PipelineConfig
from epaper_pipeline.exceptions import EncodingError
from epaper_pipeline.transformers.derivatives import DerivativeEncoder

from conftest import make_png


def _open(data: bytes) -> Image.Image:
    return Image.open(io.BytesIO(data))


class TestEncodeDelivery:
    """Tests for DerivativeEncoder.encode_delivery()."""

    def test_webp_keeps_dimensions(self):
        """The delivery image is a WebP the same size as the master."""
        data = DerivativeEncoder().encode_delivery(make_png(120, 160))

        image = _open(data)
        assert image.format == "WEBP"
        assert image.size == (120, 160)

    def test_master_bytes_untouched(self):
        """Encoding never alters the master."""
        master = make_png(50, 50)
        copy = bytes(master)

        DerivativeEncoder().encode_delivery(master)

        assert master == copy

    def test_invalid_master(self):
        """Undecodable input raises EncodingError."""
        with pytest.raises(EncodingError):
            DerivativeEncoder().encode_delivery(b"not an image")


class TestEncodePreview:
    """Tests for DerivativeEncoder.encode_preview()."""

    def test_jpeg_keeps_dimensions(self):
        """A plain preview is a JPEG the same size as the master."""
        image = _open(DerivativeEncoder().encode_preview(make_png(90, 70)))

        assert image.format == "JPEG"
        assert image.size == (90, 70)

    def test_transparency_flattened_on_white(self):
        """Fully transparent pixels become white."""
        master = make_png(40, 40, color=(0, 0, 0, 0), mode="RGBA")

        image = _open(DerivativeEncoder().encode_preview(master)).convert("RGB")

        r, g, b = image.getpixel((20, 20))
        assert min(r, g, b) > 245

    def test_letterbox_exact_canvas(self):
        """Letterboxed previews are exactly the configured size."""
        encoder = DerivativeEncoder(preview_size=(1200, 630))

        image = _open(encoder.encode_preview(make_png(612, 792), letterbox=True))

        assert image.size == (1200, 630)
        # The tall page is centred, leaving white bars at the sides
        r, g, b = image.getpixel((5, 315))
        assert min(r, g, b) > 245

    def test_letterbox_without_size_keeps_dimensions(self):
        """No preview size means no letterboxing."""
        encoder = DerivativeEncoder(preview_size=None)

        image = _open(encoder.encode_preview(make_png(30, 20), letterbox=True))

        assert image.size == (30, 20)


class TestFromConfig:
    """Tests for DerivativeEncoder.from_config()."""

    def test_reads_qualities_and_size(self):
        """Encoder settings come from the pipeline config."""
        config = PipelineConfig(
            delivery_quality=60, preview_quality=70, preview_width=800, preview_height=400
        )

        encoder = DerivativeEncoder.from_config(config)

        assert encoder.delivery_quality == 60
        assert encoder.preview_quality == 70
        assert encoder.preview_size == (800, 400)
