"""Blob storage for source lists and generated documents.

Paths are dispatched by prefix:
    gs://bucket/object   Google Cloud Storage (google-cloud-storage client)
    http(s)://...        Read-only, fetched with aiohttp
    anything else        Local filesystem

The GCS client is synchronous, so its calls run in a worker thread.
"""

import asyncio
import logging
from pathlib import Path
from typing import Protocol

import aiohttp
from google.cloud import storage

from tools.utils import USER_AGENT, create_ssl_context, is_gcs_uri, is_http_url, parse_gcs_uri

logger = logging.getLogger(__name__)


class BlobStore(Protocol):
    """Capability for reading inputs and writing the final document."""

    async def read_text(self, path: str) -> str:
        ...

    async def write_text(self, path: str, content: str, content_type: str = "text/plain") -> None:
        ...


class DefaultBlobStore:
    """BlobStore over the local filesystem, GCS and plain HTTP."""

    def __init__(self, timeout: float = 30.0, gcs_client: storage.Client | None = None):
        """Initialize the store.

        Args:
            timeout: Timeout for HTTP reads in seconds
            gcs_client: Optional pre-built GCS client (created on first use otherwise)
        """
        self.timeout = timeout
        self._gcs_client = gcs_client

    def _gcs(self) -> storage.Client:
        if self._gcs_client is None:
            self._gcs_client = storage.Client()
        return self._gcs_client

    async def read_text(self, path: str) -> str:
        """Read a text object.

        Raises:
            FileNotFoundError: If a local path does not exist
            ValueError: If a gs:// URI is malformed
        """
        if is_gcs_uri(path):
            bucket, name = parse_gcs_uri(path)
            logger.debug("Reading GCS object | bucket=%s object=%s", bucket, name)
            blob = self._gcs().bucket(bucket).blob(name)
            return await asyncio.to_thread(blob.download_as_text)

        if is_http_url(path):
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    path,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                    headers={"User-Agent": USER_AGENT},
                    ssl=create_ssl_context(True),
                ) as resp:
                    resp.raise_for_status()
                    return await resp.text()

        local = Path(path)
        if not local.is_file():
            raise FileNotFoundError(f"File not found: {path}")
        return local.read_text(encoding="utf-8")

    async def write_text(self, path: str, content: str, content_type: str = "text/plain") -> None:
        """Write a text object, creating parent directories for local paths.

        Raises:
            ValueError: For http(s) destinations or malformed gs:// URIs
        """
        if is_gcs_uri(path):
            bucket, name = parse_gcs_uri(path)
            blob = self._gcs().bucket(bucket).blob(name)
            await asyncio.to_thread(blob.upload_from_string, content, content_type=content_type)
            logger.info("Uploaded to GCS | bucket=%s object=%s chars=%d", bucket, name, len(content))
            return

        if is_http_url(path):
            raise ValueError(f"Cannot write to an HTTP URL: '{path}'")

        local = Path(path)
        local.parent.mkdir(parents=True, exist_ok=True)
        local.write_text(content, encoding="utf-8")
        logger.info("File written | path=%s chars=%d", local, len(content))
