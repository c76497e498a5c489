"""Map/Reduce consolidation of fetched page content.

segment_text:
    Paragraph-aware splitting of long content into bounded segments.

MapExecutor:
    Rate-limited, bounded-concurrency summaries of every segment.

ReduceExecutor:
    Single consolidation call and final-marker extraction.

Consolidator:
    Segment + map + reduce over a list of fetch results.

Example:
    >>> from consolidation import Consolidator
    >>> result = await Consolidator(config, generator).consolidate(ctx, results)
    >>> print(result.text)
"""

from consolidation.segmenter import segment_text, segment_results
from consolidation.executor import (
    MapExecutor,
    ReduceExecutor,
    SUMMARY_SEPARATOR,
    extract_final_payload,
)
from consolidation.consolidator import Consolidator, ConsolidationResult

__all__ = [
    "segment_text",
    "segment_results",
    "MapExecutor",
    "ReduceExecutor",
    "SUMMARY_SEPARATOR",
    "extract_final_payload",
    "Consolidator",
    "ConsolidationResult",
]
