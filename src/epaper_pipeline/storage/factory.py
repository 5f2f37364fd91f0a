"""Build an object storage backend from configuration."""

import logging

from epaper_pipeline.config import StorageConfig

from .bunny_storage import BunnyObjectStorage
from .object_storage import LocalObjectStorage, ObjectStorage
from .s3_storage import S3ObjectStorage

logger = logging.getLogger(__name__)


def create_object_storage(config: StorageConfig) -> ObjectStorage:
    """Create the storage backend selected by ``config.provider``."""
    logger.debug(f"Using {config.provider} object storage")
    if config.provider == "s3":
        return S3ObjectStorage(
            config.bucket,
            public_base_url=config.public_base_url,
            region=config.region,
            endpoint_url=config.endpoint_url,
            access_key_id=config.access_key_id,
            secret_access_key=config.secret_access_key,
        )
    if config.provider == "bunny":
        return BunnyObjectStorage(
            config.bunny_zone,
            config.bunny_api_key,
            config.public_base_url,
            endpoint=config.bunny_endpoint,
        )
    return LocalObjectStorage(config.local_path, config.public_base_url)
