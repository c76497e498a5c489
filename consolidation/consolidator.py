"""Segment, map and reduce fetched content into one document."""

import logging
from dataclasses import dataclass, field
from typing import Sequence

from agents.generator import Generator
from config import Config
from consolidation.executor import MapExecutor, ReduceExecutor
from consolidation.segmenter import segment_results
from models.source import SourceResult
from runtime import RunContext

logger = logging.getLogger(__name__)


@dataclass
class ConsolidationResult:
    """Final document plus the intermediate counts of the run."""

    text: str
    segments: int = 0
    summaries: list[str] = field(default_factory=list)


class Consolidator:
    """Drives the Map/Reduce consolidation of successful fetch results."""

    def __init__(self, config: Config, generator: Generator):
        """Build map and reduce executors from configuration.

        Args:
            config: Application configuration
            generator: Generation capability shared by both phases
        """
        self.max_segment_chars = config.max_segment_chars
        self.mapper = MapExecutor(
            generator,
            config.map_model,
            max_concurrency=config.max_map_concurrency,
            rate_interval=config.map_rate_interval,
            timeout=config.llm_timeout,
            language=config.language,
        )
        self.reducer = ReduceExecutor(
            generator,
            config.reduce_model,
            timeout=config.llm_timeout,
            language=config.language,
        )

    async def consolidate(self, ctx: RunContext, results: Sequence[SourceResult]) -> ConsolidationResult:
        """Segment every result, summarize the segments, and merge the summaries."""
        segments = segment_results(results, self.max_segment_chars)
        logger.info("Segmentation done | sources=%d segments=%d", len(results), len(segments))

        summaries = await self.mapper.map(ctx, segments)
        text = await self.reducer.reduce(ctx, summaries)
        return ConsolidationResult(text=text, segments=len(segments), summaries=summaries)
