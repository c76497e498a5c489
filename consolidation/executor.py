"""Map and reduce executors for the consolidation stage.

MapExecutor:
    Summarizes every segment with a bounded, rate-limited worker pool.
    All workers share one ticker, so calls are spaced by rate_interval
    across the whole pool. The first failure fails the phase.

ReduceExecutor:
    Joins the intermediate summaries and makes a single generation call,
    then extracts the payload between the final-output markers.
"""

import asyncio
import logging
from typing import Sequence

from agents.generator import Generator
from agents.prompts import FINAL_END, FINAL_START, build_map_prompt, build_reduce_prompt
from errors import CancellationError, ReduceError, SegmentGenerationError
from models.source import MapOutcome, Segment
from runtime import RunContext, Ticker, fan_out

logger = logging.getLogger(__name__)

SUMMARY_SEPARATOR = "\n\n--- INTERMEDIATE SUMMARY END ---\n\n"
DEFAULT_MAP_CONCURRENCY = 2
DEFAULT_RATE_INTERVAL = 2.0


def extract_final_payload(response: str) -> str:
    """Return the text between the final-output markers, trimmed.

    Uses the first occurrence of each marker. When either marker is
    missing, or the start marker does not come before the end marker,
    the whole response is returned trimmed and a warning is logged.
    """
    start = response.find(FINAL_START)
    end = response.find(FINAL_END)
    if start == -1 or end == -1 or start >= end:
        logger.warning(
            "Final markers not found, using full response | start=%d end=%d chars=%d",
            start, end, len(response),
        )
        return response.strip()
    return response[start + len(FINAL_START):end].strip()


class MapExecutor:
    """Runs the map phase over an ordered list of segments."""

    def __init__(
        self,
        generator: Generator,
        model: str,
        max_concurrency: int = DEFAULT_MAP_CONCURRENCY,
        rate_interval: float = DEFAULT_RATE_INTERVAL,
        timeout: float | None = None,
        language: str = "en",
    ):
        """Initialize the executor.

        Args:
            generator: Generation capability
            model: Model used for every map call
            max_concurrency: Parallel map workers (values below 1 become 1)
            rate_interval: Seconds between consecutive calls across the pool
            timeout: Per-call timeout in seconds (None = no limit)
            language: Prompt language
        """
        if max_concurrency < 1:
            logger.warning("Invalid map concurrency | value=%d using=1", max_concurrency)
            max_concurrency = 1
        self.generator = generator
        self.model = model
        self.max_concurrency = max_concurrency
        self.rate_interval = rate_interval
        self.timeout = timeout
        self.language = language

    async def map(self, ctx: RunContext, segments: Sequence[Segment]) -> list[str]:
        """Summarize every segment.

        Returns:
            One summary per segment. Order follows completion, not input.

        Raises:
            SegmentGenerationError: First failed segment in emission order
            CancellationError: If the run was cancelled
        """
        logger.info(
            "Map started | segments=%d workers=%d model=%s",
            len(segments), self.max_concurrency, self.model,
        )

        async with Ticker(self.rate_interval) as ticker:

            async def worker(index: int, segment: Segment) -> MapOutcome:
                try:
                    await ctx.guard(ticker.wait())
                    prompt = build_map_prompt(segment.text, segment.source_id, self.language)
                    summary = await ctx.guard(
                        asyncio.wait_for(self.generator.generate(prompt, self.model), self.timeout)
                    )
                except CancellationError as e:
                    return MapOutcome(index, error=e)
                except asyncio.TimeoutError:
                    error = TimeoutError(f"generation timed out after {self.timeout:g}s")
                    return MapOutcome(index, error=SegmentGenerationError(index, segment.source_id, error))
                except Exception as e:
                    return MapOutcome(index, error=SegmentGenerationError(index, segment.source_id, e))
                logger.debug(
                    "Segment summarized | index=%d source=%s chars=%d",
                    index, segment.source_id, len(summary),
                )
                return MapOutcome(index, summary=summary)

            def skipped(index: int, segment: Segment, error: CancellationError) -> MapOutcome:
                return MapOutcome(index, error=error)

            outcomes = await fan_out(ctx, segments, worker, self.max_concurrency, on_cancel=skipped)

        summaries: list[str] = []
        for outcome in outcomes:
            if outcome.error is not None:
                logger.error("Map failed | segment=%d error=%s", outcome.index, outcome.error)
                raise outcome.error
            summaries.append(outcome.summary)

        logger.info("Map complete | summaries=%d", len(summaries))
        return summaries


class ReduceExecutor:
    """Runs the single reduce call and extracts the final document."""

    def __init__(
        self,
        generator: Generator,
        model: str,
        timeout: float | None = None,
        language: str = "en",
    ):
        self.generator = generator
        self.model = model
        self.timeout = timeout
        self.language = language

    async def reduce(self, ctx: RunContext, summaries: Sequence[str]) -> str:
        """Consolidate summaries into the final document.

        Raises:
            ReduceError: If prompt construction or the generation call fails
            CancellationError: If the run was cancelled
        """
        combined = SUMMARY_SEPARATOR.join(summaries)
        logger.info(
            "Reduce started | summaries=%d chars=%d model=%s",
            len(summaries), len(combined), self.model,
        )
        try:
            prompt = build_reduce_prompt(combined, self.language)
            raw = await ctx.guard(
                asyncio.wait_for(self.generator.generate(prompt, self.model), self.timeout)
            )
        except CancellationError:
            raise
        except asyncio.TimeoutError:
            raise ReduceError(TimeoutError(f"generation timed out after {self.timeout:g}s"))
        except Exception as e:
            raise ReduceError(e) from e

        final = extract_final_payload(raw)
        logger.info("Reduce complete | chars=%d", len(final))
        return final
