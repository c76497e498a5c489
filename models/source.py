"""Per-source data flowing between the fetch and consolidation stages."""

from dataclasses import dataclass

from errors import FetchCancelledError, FetchError, GleanerError


@dataclass(frozen=True)
class SourceResult:
    """Outcome of one fetch attempt for one source.

    Attributes:
        source_id: URL (or other identifier) of the source
        content: Extracted text, empty on failure
        error: Failure reason, None on success
    """

    source_id: str
    content: str = ""
    error: FetchError | None = None

    @property
    def ok(self) -> bool:
        """A result is usable only with no error and non-empty content."""
        return self.error is None and bool(self.content)

    @property
    def cancelled(self) -> bool:
        return isinstance(self.error, FetchCancelledError)


@dataclass(frozen=True)
class Segment:
    """Bounded slice of one source's content, tagged with its origin."""

    text: str
    source_id: str


@dataclass(frozen=True)
class MapOutcome:
    """Result of one map-phase generation call."""

    index: int
    summary: str = ""
    error: GleanerError | None = None
