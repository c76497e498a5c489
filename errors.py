"""Exception hierarchy for the Gleaner pipeline.

Per-source fetch failures are recorded on results and absorbed by the
fetcher. Everything else is fatal for the run and reaches the CLI wrapped
in a PhaseError naming the stage that failed.

Hierarchy:
    GleanerError
        ConfigError
        FetchError
            TransientFetchError
            EmptyContentError
            FetchCancelledError
        BatchExhaustedError
        SegmentGenerationError
        ReduceError
        CancellationError
        PhaseError
"""


class GleanerError(Exception):
    """Base class for all pipeline errors."""


class ConfigError(GleanerError, ValueError):
    """Invalid configuration or unusable source list."""


class FetchError(GleanerError):
    """Failure to retrieve usable content for one source."""

    def __init__(self, source_id: str, message: str):
        super().__init__(f"{source_id}: {message}")
        self.source_id = source_id
        self.message = message


class TransientFetchError(FetchError):
    """Network, protocol or timeout failure while fetching a source."""

    def __init__(self, source_id: str, cause: BaseException):
        super().__init__(source_id, f"content extraction failed: {cause}")
        self.cause = cause


class EmptyContentError(FetchError):
    """The source responded but no body text could be extracted."""

    def __init__(self, source_id: str):
        super().__init__(source_id, "no valid body from URL")


class FetchCancelledError(FetchError):
    """The fetch was skipped or abandoned because the run was cancelled."""

    def __init__(self, source_id: str, reason: str = "cancelled"):
        super().__init__(source_id, f"cancelled: {reason}")
        self.reason = reason


class BatchExhaustedError(GleanerError):
    """No source yielded usable content, even after the retry pass."""

    def __init__(self, total: int):
        super().__init__(f"could not retrieve any processable web content ({total} sources tried)")
        self.total = total


class SegmentGenerationError(GleanerError):
    """A map-phase generation call failed for one segment."""

    def __init__(self, index: int, source_id: str, cause: BaseException):
        super().__init__(f"map failed for segment {index} ({source_id}): {cause}")
        self.index = index
        self.source_id = source_id
        self.cause = cause


class ReduceError(GleanerError):
    """The single reduce-phase generation call failed."""

    def __init__(self, cause: BaseException):
        super().__init__(f"reduce failed: {cause}")
        self.cause = cause


class CancellationError(GleanerError):
    """The run was cancelled or its deadline expired."""

    def __init__(self, reason: str = "cancelled"):
        super().__init__(reason)
        self.reason = reason


class PhaseError(GleanerError):
    """A fatal error annotated with the pipeline phase it occurred in."""

    def __init__(self, phase: str, cause: BaseException):
        super().__init__(f"phase '{phase}' failed: {cause}")
        self.phase = phase
        self.cause = cause

    @property
    def cancelled(self) -> bool:
        """True when the phase stopped because of cancellation or timeout."""
        return isinstance(self.cause, CancellationError)
