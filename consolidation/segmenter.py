"""Paragraph-aware text segmentation for the map phase.

Long page content is split into slices no longer than max_chars so each
fits a single generation call. Cuts prefer the last paragraph break in the
window; a break in the first half of the window is rejected so segments
stay reasonably full, and the window is then cut hard at max_chars.

Lengths are measured in code points, so a cut never splits a character.
Concatenating the segments always reproduces the input exactly.
"""

import logging
from typing import Iterable

from models.source import Segment, SourceResult

logger = logging.getLogger(__name__)

DEFAULT_SEPARATOR = "\n\n"
MAX_SEGMENT_CHARS = 400_000


def segment_text(text: str, max_chars: int = MAX_SEGMENT_CHARS) -> list[str]:
    """Split text into segments of at most max_chars characters.

    Args:
        text: Text to split
        max_chars: Maximum segment length in characters

    Returns:
        Ordered segments whose concatenation equals text. Text that already
        fits (including empty text) is returned as a single segment.

    Raises:
        ValueError: If max_chars is not positive
    """
    if max_chars <= 0:
        raise ValueError(f"max_chars must be positive, got {max_chars}")
    if len(text) <= max_chars:
        return [text]

    segments: list[str] = []
    rest = text
    while len(rest) > max_chars:
        window = rest[:max_chars]
        pos = window.rfind(DEFAULT_SEPARATOR)
        if pos > max_chars // 2:
            cut = pos + len(DEFAULT_SEPARATOR)
        else:
            cut = max_chars
            logger.warning(
                "Forced segment cut | max_chars=%d offset=%d",
                max_chars, len(text) - len(rest) + cut,
            )
        segments.append(rest[:cut])
        rest = rest[cut:]

    if rest:
        segments.append(rest)
    return segments


def segment_results(results: Iterable[SourceResult], max_chars: int = MAX_SEGMENT_CHARS) -> list[Segment]:
    """Segment every result, keeping source order and in-source order."""
    segments: list[Segment] = []
    for result in results:
        for text in segment_text(result.content, max_chars):
            segments.append(Segment(text=text, source_id=result.source_id))
    return segments
