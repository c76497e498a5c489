"""Resilient parallel fetching of document sources.

Fetch Flow:
    1. BATCH: Fetch every source concurrently (bounded worker pool)
    2. CLASSIFY: Split results into successes and failures
    3. COOL-DOWN: Wait initial_delay before acting on the classification
    4. RETRY: After retry_delay, retry each failure once, sequentially
    5. REPORT: Log counts; fail only when nothing usable remains

A single bad source never fails the run. Per-source errors are kept on the
SourceResult and logged; the batch is fatal only when it is exhausted.
Cancellation is always fatal for the stage, after every source still
waiting for its retry has been recorded as failed.
"""

import logging
from dataclasses import dataclass, field
from typing import Protocol, Sequence

from errors import (
    BatchExhaustedError,
    CancellationError,
    EmptyContentError,
    FetchCancelledError,
    TransientFetchError,
)
from models.source import SourceResult
from runtime import RunContext, fan_out

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 10
INITIAL_FETCH_DELAY = 2.0
RETRY_FETCH_DELAY = 5.0
_MAX_ERROR_LOG_CHARS = 160


class Fetcher(Protocol):
    """Capability that retrieves and extracts the text of one source."""

    async def fetch(self, source_id: str) -> tuple[str, bool]:
        """Return (content, found). Raise on network or protocol failure."""
        ...


@dataclass
class FetchReport:
    """Outcome of a full fetch pass.

    Attributes:
        results: Successful results (initial successes, then retried ones)
        failed: Results still failing after the retry pass
        initial_successes: Sources that succeeded on the first attempt
        retried_successes: Sources recovered by the retry pass
    """

    results: list[SourceResult] = field(default_factory=list)
    failed: list[SourceResult] = field(default_factory=list)
    initial_successes: int = 0
    retried_successes: int = 0

    @property
    def total(self) -> int:
        return len(self.results) + len(self.failed)


def classify_results(results: Sequence[SourceResult]) -> tuple[list[SourceResult], list[SourceResult]]:
    """Partition results into (successful, failed), keeping relative order.

    A result is successful exactly when SourceResult.ok holds.
    """
    successful = [r for r in results if r.ok]
    failed = [r for r in results if not r.ok]
    return successful, failed


def format_error_log(error: BaseException | None) -> str:
    """Shorten an error message for single-line log output."""
    if error is None:
        return "empty content"
    message = " ".join(str(error).split())
    if len(message) > _MAX_ERROR_LOG_CHARS:
        message = message[:_MAX_ERROR_LOG_CHARS] + "..."
    return message


class ResilientFetcher:
    """Fetches a batch of sources with classification and one retry pass.

    Example:
        >>> fetcher = ResilientFetcher(WebExtractor(...))
        >>> report = await fetcher.fetch_all(ctx, urls, max_concurrency=5)
        >>> len(report.results)
    """

    def __init__(
        self,
        fetcher: Fetcher,
        initial_delay: float = INITIAL_FETCH_DELAY,
        retry_delay: float = RETRY_FETCH_DELAY,
    ):
        """Initialize the fetcher.

        Args:
            fetcher: Capability used to fetch each source
            initial_delay: Cool-down after the first batch, in seconds
            retry_delay: Cool-down before the retry pass, in seconds
        """
        self.fetcher = fetcher
        self.initial_delay = initial_delay
        self.retry_delay = retry_delay

    async def fetch_one(self, ctx: RunContext, source_id: str) -> SourceResult:
        """Fetch a single source and convert any failure into a SourceResult."""
        if ctx.cancelled:
            return SourceResult(source_id, error=FetchCancelledError(source_id, ctx.reason))
        try:
            content, found = await ctx.guard(self.fetcher.fetch(source_id))
        except CancellationError as e:
            return SourceResult(source_id, error=FetchCancelledError(source_id, e.reason))
        except Exception as e:
            logger.debug("Fetch failed | source=%s error=%s", source_id, e)
            return SourceResult(source_id, error=TransientFetchError(source_id, e))

        if not found or not content.strip():
            return SourceResult(source_id, error=EmptyContentError(source_id))
        logger.debug("Fetch ok | source=%s chars=%d", source_id, len(content))
        return SourceResult(source_id, content=content)

    async def fetch_all(
        self,
        ctx: RunContext,
        sources: Sequence[str],
        max_concurrency: int,
        report: FetchReport | None = None,
    ) -> FetchReport:
        """Fetch all sources, retry failures once, and report the outcome.

        Args:
            ctx: Run context (cancellation and deadline)
            sources: Source identifiers in input order
            max_concurrency: Parallel workers (<= 0 falls back to 10)
            report: Report to fill in place (a new one is created if omitted)

        Returns:
            FetchReport whose results hold every usable source

        Raises:
            BatchExhaustedError: If no source produced usable content
            CancellationError: If the run was cancelled during the stage.
                The report still accounts for every source.
        """
        if max_concurrency <= 0:
            logger.warning(
                "Invalid fetch concurrency | value=%d using=%d",
                max_concurrency, DEFAULT_CONCURRENCY,
            )
            max_concurrency = DEFAULT_CONCURRENCY

        logger.info("Fetch started | sources=%d workers=%d", len(sources), max_concurrency)
        report = report if report is not None else FetchReport()

        async def worker(index: int, source_id: str) -> SourceResult:
            return await self.fetch_one(ctx, source_id)

        def skipped(index: int, source_id: str, error: CancellationError) -> SourceResult:
            return SourceResult(source_id, error=FetchCancelledError(source_id, error.reason))

        results = await fan_out(ctx, sources, worker, max_concurrency, on_cancel=skipped)
        successful, pending = classify_results(results)
        report.results.extend(successful)
        report.initial_successes = len(successful)

        try:
            await ctx.sleep(self.initial_delay)
            logger.info(
                "Initial fetch done | successful=%d failed=%d",
                len(successful), len(pending),
            )

            if pending:
                await ctx.sleep(self.retry_delay)
            while pending:
                source_id = pending[0].source_id
                logger.info("Retrying source | source=%s", source_id)
                retried = await self.fetch_one(ctx, source_id)
                pending.pop(0)
                if retried.ok:
                    report.results.append(retried)
                    report.retried_successes += 1
                else:
                    report.failed.append(retried)
            ctx.ensure_not_cancelled()
        except CancellationError:
            report.failed.extend(pending)
            logger.warning(
                "Fetch interrupted | successful=%d failed=%d",
                len(report.results), len(report.failed),
            )
            raise

        for result in report.failed:
            logger.warning(
                "Source failed | source=%s error=%s",
                result.source_id, format_error_log(result.error),
            )

        if not report.results:
            raise BatchExhaustedError(len(sources))

        logger.info(
            "Fetch complete | successful=%d total=%d initial=%d retried=%d",
            len(report.results), len(sources),
            report.initial_successes, report.retried_successes,
        )
        return report
