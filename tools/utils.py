"""Shared utilities for the tools package.

This module contains shared constants and helpers used by the web
extractor and the blob store.
"""

import ssl

import certifi

# Browser-like User-Agent to avoid being blocked by some servers
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)

GCS_SCHEME = "gs://"


def create_ssl_context(verify: bool = True) -> ssl.SSLContext:
    """Create SSL context with optional certificate verification.

    Args:
        verify: If True, verify SSL certificates using certifi bundle.
                If False, disable verification (for problematic servers).

    Returns:
        Configured SSL context
    """
    if verify:
        return ssl.create_default_context(cafile=certifi.where())
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return ctx


def is_gcs_uri(path: str) -> bool:
    return path.startswith(GCS_SCHEME)


def is_http_url(path: str) -> bool:
    return path.startswith(("http://", "https://"))


def parse_gcs_uri(uri: str) -> tuple[str, str]:
    """Split gs://bucket/object into (bucket, object).

    Raises:
        ValueError: If the URI is not of that form
    """
    if not is_gcs_uri(uri):
        raise ValueError(f"Not a GCS URI: '{uri}'")
    bucket, _, name = uri[len(GCS_SCHEME):].partition("/")
    if not bucket or not name:
        raise ValueError(f"Invalid GCS URI '{uri}' - expected gs://bucket/object")
    return bucket, name
