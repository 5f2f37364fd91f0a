"""Object storage backends and the issue key layout."""

from .bunny_storage import BunnyObjectStorage
from .factory import create_object_storage
from .keys import IssueKeys
from .object_storage import LocalObjectStorage, ObjectStorage
from .s3_storage import S3ObjectStorage

__all__ = [
    "ObjectStorage",
    "LocalObjectStorage",
    "S3ObjectStorage",
    "BunnyObjectStorage",
    "IssueKeys",
    "create_object_storage",
]
