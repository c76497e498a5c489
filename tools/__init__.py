"""I/O tools for the Gleaner pipeline.

WebExtractor:
    Concrete Fetcher. Downloads pages with a shared aiohttp session,
    handles SSL fallback and compressed bodies, and extracts readable text.

DefaultBlobStore:
    Reads source lists and writes documents on local disk, GCS or HTTP
    (read-only).

Example:
    >>> from tools import WebExtractor
    >>> async with WebExtractor(timeout=15) as extractor:
    ...     text, found = await extractor.fetch("https://example.com")
"""

from tools.utils import create_ssl_context, USER_AGENT, is_gcs_uri, parse_gcs_uri
from tools.fetch import WebExtractor, extract_text
from tools.storage import BlobStore, DefaultBlobStore

__all__ = [
    "WebExtractor",
    "extract_text",
    "BlobStore",
    "DefaultBlobStore",
    "create_ssl_context",
    "USER_AGENT",
    "is_gcs_uri",
    "parse_gcs_uri",
]
