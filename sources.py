"""Source list parsing.

A source list is newline-delimited text with one source (URL) per line.
Blank lines and lines starting with '#' are ignored.

Example:
    # news
    https://example.com/a

    https://example.com/b
"""

import logging

from errors import ConfigError
from tools.storage import BlobStore

logger = logging.getLogger(__name__)


def parse_source_list(text: str) -> list[str]:
    """Return the sources in text, in order, skipping blanks and comments."""
    sources = []
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        sources.append(line)
    return sources


async def load_sources(path: str, store: BlobStore) -> list[str]:
    """Read and parse a source list.

    Args:
        path: Local path, gs://bucket/object or http(s) URL
        store: Blob store used for reading

    Returns:
        Non-empty list of sources

    Raises:
        ConfigError: If no path is given, it cannot be read, or it lists no sources
    """
    if not path:
        raise ConfigError("No source list given")
    try:
        text = await store.read_text(path)
    except (OSError, ValueError) as e:
        raise ConfigError(f"Cannot read source list '{path}': {e}") from e

    sources = parse_source_list(text)
    if not sources:
        raise ConfigError(f"No sources found in '{path}'")
    logger.info("Sources loaded | path=%s count=%d", path, len(sources))
    return sources
