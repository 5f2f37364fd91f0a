"""Bunny.net Storage object storage."""

import logging
from urllib.parse import quote

import httpx

from epaper_pipeline.exceptions import StorageError

from .object_storage import ObjectStorage, join_url

logger = logging.getLogger(__name__)

DEFAULT_BUNNY_ENDPOINT = "https://storage.bunnycdn.com"


class BunnyObjectStorage(ObjectStorage):
    """Object storage backed by a Bunny storage zone.

    Objects are written through the storage HTTP API and served from the
    zone's pull zone, configured as ``public_base_url``.

    Example:
        with BunnyObjectStorage("epaper", api_key, "https://epaper.b-cdn.net") as storage:
            url = storage.put(key, data, "image/png")
    """

    def __init__(
        self,
        zone: str,
        api_key: str,
        public_base_url: str,
        endpoint: str = DEFAULT_BUNNY_ENDPOINT,
        http_client: httpx.Client | None = None,
        timeout: float = 60.0,
    ):
        """Initialize the Bunny storage.

        Args:
            zone: Storage zone name
            api_key: Storage zone password, sent as the AccessKey header
            public_base_url: Pull zone URL objects are served from
            endpoint: Regional storage API endpoint
            http_client: Optional HTTP client. If not provided, one will be
                         created internally.
            timeout: Request timeout in seconds for the internal client
        """
        self.zone = zone
        self.api_key = api_key
        self.public_base_url = public_base_url
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout
        self._client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.Client:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout)
        return self._client

    def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "BunnyObjectStorage":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _object_url(self, key: str) -> str:
        return f"{self.endpoint}/{quote(self.zone)}/{quote(key.lstrip('/'))}"

    def public_url(self, key: str) -> str:
        return join_url(self.public_base_url, key)

    def _request(self, method: str, key: str, **kwargs) -> httpx.Response:
        headers = {"AccessKey": self.api_key, **kwargs.pop("headers", {})}
        try:
            return self._get_client().request(
                method, self._object_url(key), headers=headers, **kwargs
            )
        except httpx.RequestError as e:
            raise StorageError(f"Bunny {method} {key} failed: {e}", key=key) from e

    def put(self, key: str, data: bytes, content_type: str) -> str:
        response = self._request(
            "PUT",
            key,
            content=data,
            headers={"Content-Type": content_type or "application/octet-stream"},
        )
        if response.status_code not in (200, 201):
            logger.error(
                f"Bunny upload failed for {key}: HTTP {response.status_code} "
                f"{response.text[:200]}"
            )
            raise StorageError(
                f"Bunny upload failed ({response.status_code}): {response.text[:200]}",
                key=key,
            )
        return self.public_url(key)

    def delete(self, key: str) -> None:
        response = self._request("DELETE", key)
        if response.status_code == 404:
            logger.debug(f"Bunny object already absent: {key}")
            return
        if response.status_code >= 400:
            raise StorageError(
                f"Bunny delete failed ({response.status_code}): {response.text[:200]}",
                key=key,
            )

    def get(self, key: str) -> bytes:
        response = self._request("GET", key)
        if response.status_code != 200:
            raise StorageError(
                f"Bunny download failed ({response.status_code}) for {key}", key=key
            )
        return response.content
