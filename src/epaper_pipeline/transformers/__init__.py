"""Transformers for converting PDFs into page images and derivatives."""

from .derivatives import DerivativeEncoder
from .rasterizer import (
    PdftoppmRasterizer,
    PyMuPDFRasterizer,
    Rasterizer,
    count_pdf_pages,
    create_rasterizer,
)

__all__ = [
    "Rasterizer",
    "PdftoppmRasterizer",
    "PyMuPDFRasterizer",
    "DerivativeEncoder",
    "count_pdf_pages",
    "create_rasterizer",
]
