"""S3-compatible object storage (AWS S3, Cloudflare R2, MinIO)."""

import logging
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from epaper_pipeline.exceptions import StorageError

from .object_storage import ObjectStorage, join_url

logger = logging.getLogger(__name__)


def _error_code(error: Exception) -> str:
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Code", "")
    return ""


class S3ObjectStorage(ObjectStorage):
    """Object storage backed by an S3 bucket.

    Example:
        storage = S3ObjectStorage("epaper-media", public_base_url="https://cdn.example.com")
        url = storage.put("epaper/pdf-issues/t1/issue.pdf", data, "application/pdf")
    """

    def __init__(
        self,
        bucket: str,
        *,
        public_base_url: str | None = None,
        region: str | None = None,
        endpoint_url: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        client: Any = None,
    ) -> None:
        """Initialize the S3 storage.

        Args:
            bucket: Bucket objects are written to
            public_base_url: Base URL objects are served from (CDN or custom domain)
            region: AWS region
            endpoint_url: Endpoint for S3-compatible services
            access_key_id: Access key; falls back to the default credential chain
            secret_access_key: Secret key; falls back to the default credential chain
            client: Optional pre-built boto3 S3 client
        """
        self.bucket = bucket
        self.public_base_url = public_base_url
        self.region = region
        self._client = client or boto3.client(
            "s3",
            region_name=region,
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
        )

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return join_url(self.public_base_url, key)
        region = self.region or "us-east-1"
        return f"https://{self.bucket}.s3.{region}.amazonaws.com/{key}"

    def put(self, key: str, data: bytes, content_type: str) -> str:
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type or "application/octet-stream",
            )
        except (BotoCoreError, ClientError) as e:
            code = _error_code(e)
            logger.error(f"S3 put failed for {key} ({code or 'no code'}): {e}")
            raise StorageError(f"Failed to upload {key}: {e}", key=key) from e
        return self.public_url(key)

    def delete(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to delete {key}: {e}", key=key) from e

    def get(self, key: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to read {key}: {e}", key=key) from e
