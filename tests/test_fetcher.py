import asyncio
import logging

import pytest

from conftest import FakeFetcher
from errors import (
    BatchExhaustedError,
    CancellationError,
    EmptyContentError,
    FetchCancelledError,
    FetchError,
    TransientFetchError,
)
from fetcher import FetchReport, ResilientFetcher, classify_results, format_error_log
from models.source import SourceResult
from runtime import RunContext


async def _fetch_all(fake, sources, max_concurrency=5, cancel=False):
    ctx = RunContext()
    if cancel:
        ctx.cancel("test")
    try:
        fetcher = ResilientFetcher(fake, initial_delay=0, retry_delay=0)
        return await fetcher.fetch_all(ctx, sources, max_concurrency)
    finally:
        ctx.close()


def test_classify_partitions_results():
    results = [
        SourceResult("a", content="text"),
        SourceResult("b", content=""),
        SourceResult("c", content="text", error=FetchError("c", "boom")),
        SourceResult("d", content="more"),
    ]
    successful, failed = classify_results(results)
    assert [r.source_id for r in successful] == ["a", "d"]
    assert [r.source_id for r in failed] == ["b", "c"]
    assert len(successful) + len(failed) == len(results)
    assert not set(map(id, successful)) & set(map(id, failed))


def test_all_sources_succeed_first_time():
    fake = FakeFetcher({"a": [("A", True)], "b": [("B", True)]})
    report = asyncio.run(_fetch_all(fake, ["a", "b"]))
    assert {r.content for r in report.results} == {"A", "B"}
    assert report.initial_successes == 2
    assert report.retried_successes == 0
    assert report.failed == []
    assert sorted(fake.calls) == ["a", "b"]


def test_failed_source_recovered_on_retry(caplog):
    fake = FakeFetcher({
        "a": [("A", True)],
        "b": [("B", True)],
        "c": [ConnectionError("reset"), ("C", True)],
    })
    with caplog.at_level(logging.INFO, logger="fetcher"):
        report = asyncio.run(_fetch_all(fake, ["a", "b", "c"]))

    assert len(report.results) == 3
    assert report.initial_successes == 2
    assert report.retried_successes == 1
    assert report.results[-1].source_id == "c"
    assert fake.calls.count("c") == 2
    assert "successful=3 total=3 initial=2 retried=1" in caplog.text


def test_source_is_retried_exactly_once(caplog):
    fake = FakeFetcher({"a": [("A", True)], "bad": [ConnectionError("down")]})
    with caplog.at_level(logging.WARNING, logger="fetcher"):
        report = asyncio.run(_fetch_all(fake, ["a", "bad"]))

    assert fake.calls.count("bad") == 2
    assert [r.source_id for r in report.failed] == ["bad"]
    assert isinstance(report.failed[0].error, TransientFetchError)
    assert "Source failed | source=bad" in caplog.text


def test_not_found_and_blank_content_are_empty_errors():
    fake = FakeFetcher({
        "ok": [("body", True)],
        "missing": [("ignored", False)],
        "blank": [("   \n ", True)],
    })
    report = asyncio.run(_fetch_all(fake, ["ok", "missing", "blank"]))
    assert [r.source_id for r in report.results] == ["ok"]
    assert all(isinstance(r.error, EmptyContentError) for r in report.failed)


def test_nothing_usable_is_fatal():
    fake = FakeFetcher({"a": [ConnectionError("x")], "b": [("", True)]})
    with pytest.raises(BatchExhaustedError):
        asyncio.run(_fetch_all(fake, ["a", "b"]))


def test_concurrency_is_bounded():
    sources = [f"s{i}" for i in range(12)]
    fake = FakeFetcher({s: [(s, True)] for s in sources}, delay=0.01)
    report = asyncio.run(_fetch_all(fake, sources, max_concurrency=3))
    assert len(report.results) == 12
    assert fake.max_active <= 3


def test_non_positive_concurrency_uses_default(caplog):
    sources = [f"s{i}" for i in range(15)]
    fake = FakeFetcher({s: [(s, True)] for s in sources}, delay=0.01)
    with caplog.at_level(logging.WARNING, logger="fetcher"):
        report = asyncio.run(_fetch_all(fake, sources, max_concurrency=0))
    assert len(report.results) == 15
    assert 1 <= fake.max_active <= 10
    assert "using=10" in caplog.text


def test_cancelled_context_makes_no_calls():
    fake = FakeFetcher({"a": [("A", True)]})
    with pytest.raises(CancellationError):
        asyncio.run(_fetch_all(fake, ["a"], cancel=True))
    assert fake.calls == []


def test_format_error_log_shortens_messages():
    long_error = RuntimeError("line one\n" + "x" * 500)
    message = format_error_log(long_error)
    assert "\n" not in message
    assert message.endswith("...")
    assert len(message) < 200
    assert format_error_log(None) == "empty content"


class RetryTrackingFetcher(FakeFetcher):
    """FakeFetcher that also records concurrency of repeat calls."""

    def __init__(self, script, delay=0.0):
        super().__init__(script, delay)
        self.retry_active = 0
        self.max_retry_active = 0

    async def fetch(self, source_id):
        if source_id not in self.calls:
            return await super().fetch(source_id)
        self.retry_active += 1
        self.max_retry_active = max(self.max_retry_active, self.retry_active)
        try:
            return await super().fetch(source_id)
        finally:
            self.retry_active -= 1


def test_retry_pass_is_sequential():
    sources = ["a", "b", "c", "d"]
    fake = RetryTrackingFetcher(
        {s: [ConnectionError("reset"), (s.upper(), True)] for s in sources},
        delay=0.01,
    )
    report = asyncio.run(_fetch_all(fake, sources, max_concurrency=4))

    assert fake.max_active == 4
    assert fake.max_retry_active == 1
    assert report.retried_successes == 4
    assert sorted(r.source_id for r in report.results) == sources


def test_cancelled_fetch_reports_cancellation_kind():
    async def run():
        ctx = RunContext()
        ctx.cancel("deadline")
        return await ResilientFetcher(FakeFetcher({"a": [("A", True)]})).fetch_one(ctx, "a")

    result = asyncio.run(run())
    assert isinstance(result.error, FetchCancelledError)
    assert isinstance(result.error, FetchError)
    assert result.error.reason == "deadline"
    assert result.cancelled
    assert not result.ok


def test_cancellation_during_cool_down_is_raised_and_counted():
    fake = FakeFetcher({"a": [("A", True)], "b": [ConnectionError("x")], "c": [ConnectionError("y")]})
    report = FetchReport()

    async def run():
        ctx = RunContext(timeout=0.05)
        try:
            fetcher = ResilientFetcher(fake, initial_delay=0, retry_delay=5)
            await fetcher.fetch_all(ctx, ["a", "b", "c"], 5, report=report)
        finally:
            ctx.close()

    with pytest.raises(CancellationError):
        asyncio.run(run())

    assert report.total == 3
    assert [r.source_id for r in report.results] == ["a"]
    assert sorted(r.source_id for r in report.failed) == ["b", "c"]
    assert sorted(fake.calls) == ["a", "b", "c"]


def test_cancellation_during_retry_pass_skips_remaining_sources():
    fake = FakeFetcher(
        {"a": [("A", True)], "b": [ConnectionError("x"), ("B", True)], "c": [ConnectionError("y"), ("C", True)]},
        delay=0.2,
    )
    report = FetchReport()

    async def run():
        ctx = RunContext(timeout=0.3)
        try:
            fetcher = ResilientFetcher(fake, initial_delay=0, retry_delay=0)
            await fetcher.fetch_all(ctx, ["a", "b", "c"], 5, report=report)
        finally:
            ctx.close()

    with pytest.raises(CancellationError):
        asyncio.run(run())

    assert report.total == 3
    assert sorted(r.source_id for r in report.failed) == ["b", "c"]
    assert all(r.cancelled for r in report.failed)
    assert fake.calls.count("c") == 1
