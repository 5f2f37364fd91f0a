"""Configuration models for the ePaper pipeline.

All tunables are gathered into explicit values that are passed to the
components that need them. The environment is read once, by ``from_env``.
"""

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, model_validator

ENV_PREFIX = "EPAPER_"


def _env_values(environ: Mapping[str, str] | None, fields: dict[str, str]) -> dict:
    """Collect non-empty environment values for the given field -> variable map."""
    env = os.environ if environ is None else environ
    values = {}
    for field_name, var in fields.items():
        raw = env.get(ENV_PREFIX + var)
        if raw is not None and raw.strip() != "":
            values[field_name] = raw.strip()
    return values


class PipelineConfig(BaseModel):
    """Settings for PDF conversion, encoding and upload."""

    dpi: int = Field(150, gt=0, description="Rasterization resolution")
    max_pages: int | None = Field(
        None,
        gt=0,
        description="Optional page cap; trailing pages beyond it are not rasterized",
    )
    upload_concurrency: int = Field(4, ge=1, description="Worker pool size for page uploads")
    rasterizer: Literal["pdftoppm", "pymupdf"] = Field(
        "pdftoppm", description="Rasterization backend"
    )
    pdftoppm_path: str = Field("pdftoppm", description="Path to the pdftoppm executable")
    generate_derivatives: bool = Field(
        True, description="Whether to produce WebP and JPEG derivatives per page"
    )
    delivery_quality: int = Field(80, ge=1, le=100, description="WebP quality")
    preview_quality: int = Field(85, ge=1, le=100, description="JPEG preview quality")
    preview_width: int = Field(1200, gt=0, description="Cover social-preview width")
    preview_height: int = Field(630, gt=0, description="Cover social-preview height")
    pdf_max_mb: float = Field(30, gt=0, description="Maximum accepted PDF size in MB")
    fetch_timeout: float = Field(45.0, gt=0, description="Timeout for PDF URL downloads")
    storage_root: str = Field(
        "epaper/pdf-issues", description="Key prefix for all issue objects"
    )
    production: bool = Field(
        False, description="Hide internal error detail from callers"
    )

    @property
    def pdf_max_bytes(self) -> int:
        return max(1, int(self.pdf_max_mb * 1024 * 1024))

    @property
    def preview_size(self) -> tuple[int, int]:
        return (self.preview_width, self.preview_height)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "PipelineConfig":
        """Build a config from ``EPAPER_*`` environment variables.

        Zero or empty values for the page cap mean "no cap".
        """
        values = _env_values(
            environ,
            {
                "dpi": "PDF_DPI",
                "max_pages": "PDF_MAX_PAGES",
                "upload_concurrency": "UPLOAD_CONCURRENCY",
                "rasterizer": "RASTERIZER",
                "pdftoppm_path": "PDFTOPPM_PATH",
                "generate_derivatives": "GENERATE_DERIVATIVES",
                "delivery_quality": "WEBP_QUALITY",
                "preview_quality": "JPEG_QUALITY",
                "preview_width": "PREVIEW_WIDTH",
                "preview_height": "PREVIEW_HEIGHT",
                "pdf_max_mb": "PDF_MAX_MB",
                "fetch_timeout": "PDF_FETCH_TIMEOUT",
                "storage_root": "STORAGE_ROOT",
                "production": "PRODUCTION",
            },
        )
        if values.get("max_pages") in ("0", "-1"):
            values.pop("max_pages")
        return cls.model_validate(values)


class StorageConfig(BaseModel):
    """Object storage backend selection."""

    provider: Literal["local", "s3", "bunny"] = Field(
        "local", description="Storage backend for issue objects"
    )
    local_path: Path = Field(
        Path("./workspace/storage"), description="Root directory for local storage"
    )
    public_base_url: str | None = Field(
        None, description="Base URL objects are served from"
    )
    bucket: str | None = Field(None, description="S3 bucket name")
    region: str | None = Field(None, description="S3 region")
    endpoint_url: str | None = Field(
        None, description="S3-compatible endpoint (e.g. Cloudflare R2)"
    )
    access_key_id: str | None = Field(None, description="S3 access key id")
    secret_access_key: str | None = Field(None, description="S3 secret access key")
    bunny_zone: str | None = Field(None, description="Bunny storage zone name")
    bunny_api_key: str | None = Field(None, description="Bunny storage API key")
    bunny_endpoint: str = Field(
        "https://storage.bunnycdn.com", description="Bunny storage API endpoint"
    )

    @model_validator(mode="after")
    def _validate_provider(self) -> "StorageConfig":
        if self.provider == "s3" and not self.bucket:
            raise ValueError("S3 storage requires 'bucket'.")
        if self.provider == "bunny":
            missing = [
                name
                for name, value in (
                    ("bunny_zone", self.bunny_zone),
                    ("bunny_api_key", self.bunny_api_key),
                    ("public_base_url", self.public_base_url),
                )
                if not value
            ]
            if missing:
                raise ValueError(f"Bunny storage requires: {', '.join(missing)}")
        return self

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "StorageConfig":
        """Build a storage config from ``EPAPER_*`` environment variables."""
        values = _env_values(
            environ,
            {
                "provider": "STORAGE_PROVIDER",
                "local_path": "STORAGE_PATH",
                "public_base_url": "STORAGE_PUBLIC_URL",
                "bucket": "S3_BUCKET",
                "region": "S3_REGION",
                "endpoint_url": "S3_ENDPOINT_URL",
                "access_key_id": "S3_ACCESS_KEY_ID",
                "secret_access_key": "S3_SECRET_ACCESS_KEY",
                "bunny_zone": "BUNNY_STORAGE_ZONE",
                "bunny_api_key": "BUNNY_STORAGE_API_KEY",
                "bunny_endpoint": "BUNNY_STORAGE_ENDPOINT",
            },
        )
        return cls.model_validate(values)
