"""Main pipeline orchestration.

This module coordinates one Gleaner run:

Pipeline Flow:
    1. URL GENERATION: Read and parse the source list
    2. CONTENT FETCH: Fetch all sources in parallel, retry failures once
    3. AI CLEANUP: Segment, map, reduce, then write the final document

Stages are separated by strict barriers and share one RunContext, so the
run deadline is observed at every suspension point. Any fatal error is
re-raised as a PhaseError naming the stage it happened in.
"""

import logging
import time
import uuid
from dataclasses import dataclass, asdict
from typing import Any, Awaitable, TypeVar

from agents.generator import AgentGenerator, Generator
from config import Config
from consolidation.consolidator import Consolidator
from errors import PhaseError
from fetcher import Fetcher, ResilientFetcher
from output import emit_document
from runtime import RunContext
from sources import load_sources
from tools.fetch import WebExtractor
from tools.storage import BlobStore, DefaultBlobStore
from observability.logging import set_run_context, set_phase_context, clear_context
from observability.tracing import setup_tracing, trace_operation

logger = logging.getLogger(__name__)

T = TypeVar("T")

PHASE_URL_GENERATION = "url-generation"
PHASE_CONTENT_FETCH = "content-fetch"
PHASE_AI_CLEANUP = "ai-cleanup"


@dataclass
class PipelineStats:
    """Statistics from a single pipeline run.

    Attributes:
        sources: Sources listed in the input
        fetched: Sources with usable content after the retry pass
        initial_successes: Sources fetched on the first attempt
        retried_successes: Sources recovered by the retry pass
        failed: Sources still failing after the retry pass
        segments: Segments sent to the map phase
        summaries: Intermediate summaries produced
        output_chars: Length of the final document
        input_tokens: Total input tokens used by map and reduce calls
        output_tokens: Total output tokens used by map and reduce calls
        destination: Where the document was written
        duration: Total run time in seconds
    """

    run_id: str = ""
    sources: int = 0
    fetched: int = 0
    initial_successes: int = 0
    retried_successes: int = 0
    failed: int = 0
    segments: int = 0
    summaries: int = 0
    output_chars: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    destination: str = ""
    duration: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        d = asdict(self)
        d["duration"] = round(d["duration"], 2)
        return d


class Pipeline:
    """Fetch-and-consolidate pipeline.

    Collaborators are injected so tests can substitute deterministic
    doubles; defaults build the real aiohttp, PydanticAI and storage
    implementations from the configuration.
    """

    def __init__(
        self,
        config: Config,
        fetcher: Fetcher | None = None,
        generator: Generator | None = None,
        store: BlobStore | None = None,
    ):
        """Initialize the pipeline.

        Args:
            config: Application configuration
            fetcher: Per-source fetch capability (default: WebExtractor)
            generator: Generation capability (default: AgentGenerator)
            store: Blob store for input and output (default: DefaultBlobStore)
        """
        self.config = config
        self._owns_fetcher = fetcher is None
        self.fetcher = fetcher or WebExtractor(
            timeout=config.fetch_timeout,
            max_retries=config.http_max_retries,
            retry_base_delay=config.retry_base_delay,
            max_connections=max(config.max_fetch_concurrency, 1),
        )
        self.generator = generator or AgentGenerator(config)
        self.store = store or DefaultBlobStore(timeout=config.fetch_timeout)
        self.resilient_fetcher = ResilientFetcher(
            self.fetcher,
            initial_delay=config.initial_fetch_delay,
            retry_delay=config.retry_fetch_delay,
        )
        self.consolidator = Consolidator(config, self.generator)

        if config.enable_logfire:
            setup_tracing(enabled=True, service_name="gleaner", token=config.logfire_token)

    async def _phase(self, name: str, awaitable: Awaitable[T]) -> T:
        set_phase_context(name)
        try:
            with trace_operation(name):
                return await awaitable
        except PhaseError:
            raise
        except Exception as e:
            logger.error("Phase failed | phase=%s type=%s error=%s", name, type(e).__name__, e)
            raise PhaseError(name, e) from e

    async def execute(self, ctx: RunContext) -> PipelineStats:
        """Execute one complete run.

        Args:
            ctx: Run context carrying cancellation and the run deadline

        Returns:
            PipelineStats with counts from each stage

        Raises:
            PhaseError: If any stage fails fatally
        """
        run_id = uuid.uuid4().hex[:8]
        set_run_context(run_id)
        start = time.time()
        stats = PipelineStats(run_id=run_id)

        logger.info("Pipeline started | source_file=%s", self.config.source_file)

        try:
            sources = await self._phase(
                PHASE_URL_GENERATION,
                ctx.guard(load_sources(self.config.source_file, self.store)),
            )
            stats.sources = len(sources)

            report = await self._phase(
                PHASE_CONTENT_FETCH,
                self.resilient_fetcher.fetch_all(ctx, sources, self.config.max_fetch_concurrency),
            )
            stats.fetched = len(report.results)
            stats.initial_successes = report.initial_successes
            stats.retried_successes = report.retried_successes
            stats.failed = len(report.failed)

            result = await self._phase(
                PHASE_AI_CLEANUP,
                self.consolidator.consolidate(ctx, report.results),
            )
            stats.segments = result.segments
            stats.summaries = len(result.summaries)
            stats.output_chars = len(result.text)
            stats.input_tokens = self.generator.input_tokens
            stats.output_tokens = self.generator.output_tokens

            stats.destination = await self._phase(
                PHASE_AI_CLEANUP,
                ctx.guard(emit_document(
                    result.text,
                    self.config.output_path,
                    self.store,
                    preview_lines=self.config.preview_lines,
                )),
            )
        finally:
            stats.duration = time.time() - start
            clear_context()

        logger.info(
            "Pipeline done | duration=%.1fs fetched=%d/%d segments=%d tokens=%d/%d destination=%s",
            stats.duration, stats.fetched, stats.sources, stats.segments,
            stats.input_tokens, stats.output_tokens, stats.destination,
        )
        return stats

    async def close(self) -> None:
        """Clean up resources owned by the pipeline."""
        if self._owns_fetcher and isinstance(self.fetcher, WebExtractor):
            await self.fetcher.close()


async def run_once(
    config: Config,
    fetcher: Fetcher | None = None,
    generator: Generator | None = None,
    store: BlobStore | None = None,
) -> dict[str, Any]:
    """Run the pipeline once under the configured deadline and return stats.

    Args:
        config: Application configuration
        fetcher: Optional fetch capability override
        generator: Optional generation capability override
        store: Optional blob store override
    """
    ctx = RunContext(timeout=config.run_timeout)
    pipeline = Pipeline(config, fetcher=fetcher, generator=generator, store=store)
    try:
        return (await pipeline.execute(ctx)).to_dict()
    finally:
        ctx.close()
        await pipeline.close()
