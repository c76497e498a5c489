"""Data models for the Gleaner pipeline.

SourceResult:
    Outcome of fetching one source (content or FetchError).

Segment:
    Bounded slice of a source's content for the map phase.

MapOutcome:
    Summary or error produced by one map-phase call.

MapPayload / ReducePayload:
    Pydantic-validated prompt inputs; empty text is rejected.

Example:
    >>> from models import SourceResult
    >>> SourceResult("https://example.com", content="text").ok
    True
"""

from models.source import SourceResult, Segment, MapOutcome
from models.payloads import MapPayload, ReducePayload

__all__ = [
    "SourceResult",
    "Segment",
    "MapOutcome",
    "MapPayload",
    "ReducePayload",
]
