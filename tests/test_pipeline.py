import asyncio
from dataclasses import replace
from pathlib import Path

import pytest

from conftest import FakeFetcher, FakeGenerator, MemoryStore
from errors import BatchExhaustedError, ConfigError, PhaseError, ReduceError, SegmentGenerationError
from pipeline import PHASE_AI_CLEANUP, PHASE_CONTENT_FETCH, PHASE_URL_GENERATION, run_once

SOURCE_LIST = """# reading list
https://example.com/a

https://example.com/b
https://example.com/c
"""


def _fetcher():
    return FakeFetcher({
        "https://example.com/a": [("Alpha paragraph.\n\nAlpha more.", True)],
        "https://example.com/b": [("Beta text.", True)],
        "https://example.com/c": [TimeoutError("slow"), ("Gamma text.", True)],
    })


def test_full_run_writes_final_document(config):
    store = MemoryStore({"sources.txt": SOURCE_LIST})
    generator = FakeGenerator(reduce_response="<FINAL_START>\n# Final\n<FINAL_END>")

    stats = asyncio.run(run_once(config, fetcher=_fetcher(), generator=generator, store=store))

    assert stats["sources"] == 3
    assert stats["fetched"] == 3
    assert stats["initial_successes"] == 2
    assert stats["retried_successes"] == 1
    assert stats["segments"] == 3
    assert stats["summaries"] == 3
    assert stats["destination"] == config.output_path
    assert stats["input_tokens"] == generator.input_tokens > 0
    assert stats["output_tokens"] == generator.output_tokens > 0
    assert store.writes == [(config.output_path, "# Final", "text/markdown; charset=utf-8")]
    map_calls = [c for c in generator.calls if c[1] == "map-model"]
    reduce_calls = [c for c in generator.calls if c[1] == "reduce-model"]
    assert len(map_calls) == 3
    assert len(reduce_calls) == 1


def test_large_source_is_segmented(config):
    config = replace(config, max_segment_chars=10)
    store = MemoryStore({"sources.txt": "https://example.com/a\n"})
    fetcher = FakeFetcher({"https://example.com/a": [("12345678\n\nabcdefgh\n\nxyz", True)]})

    stats = asyncio.run(run_once(config, fetcher=fetcher, generator=FakeGenerator(), store=store))
    assert stats["segments"] == 3


def test_empty_output_path_previews_on_stdout(config, capsys):
    config = replace(config, output_path="", preview_lines=2)
    store = MemoryStore({"sources.txt": SOURCE_LIST})
    generator = FakeGenerator(reduce_response="<FINAL_START>l1\nl2\nl3\nl4<FINAL_END>")

    stats = asyncio.run(run_once(config, fetcher=_fetcher(), generator=generator, store=store))

    out = capsys.readouterr().out
    assert stats["destination"] == "stdout"
    assert "l1\nl2" in out
    assert "l3" not in out
    assert "2 more lines" in out
    assert store.writes == []


def test_missing_source_list_fails_in_url_generation(config):
    with pytest.raises(PhaseError) as exc_info:
        asyncio.run(run_once(config, fetcher=_fetcher(), generator=FakeGenerator(), store=MemoryStore()))
    assert exc_info.value.phase == PHASE_URL_GENERATION
    assert isinstance(exc_info.value.cause, ConfigError)


def test_empty_source_list_fails_in_url_generation(config):
    store = MemoryStore({"sources.txt": "# nothing here\n\n"})
    with pytest.raises(PhaseError) as exc_info:
        asyncio.run(run_once(config, fetcher=_fetcher(), generator=FakeGenerator(), store=store))
    assert exc_info.value.phase == PHASE_URL_GENERATION


def test_all_sources_failing_is_content_fetch_error(config):
    store = MemoryStore({"sources.txt": "https://example.com/x\n"})
    fetcher = FakeFetcher({"https://example.com/x": [ConnectionError("refused")]})
    generator = FakeGenerator()

    with pytest.raises(PhaseError) as exc_info:
        asyncio.run(run_once(config, fetcher=fetcher, generator=generator, store=store))

    assert exc_info.value.phase == PHASE_CONTENT_FETCH
    assert isinstance(exc_info.value.cause, BatchExhaustedError)
    assert not exc_info.value.cancelled
    assert generator.calls == []


def test_map_failure_aborts_before_output(config):
    store = MemoryStore({"sources.txt": SOURCE_LIST})
    generator = FakeGenerator(fail_on=("Beta",))

    with pytest.raises(PhaseError) as exc_info:
        asyncio.run(run_once(config, fetcher=_fetcher(), generator=generator, store=store))

    assert exc_info.value.phase == PHASE_AI_CLEANUP
    assert isinstance(exc_info.value.cause, SegmentGenerationError)
    assert not any(model == "reduce-model" for _, model in generator.calls)
    assert store.writes == []
    assert not Path(config.output_path).exists()


def test_reduce_failure_aborts_before_output(config):
    store = MemoryStore({"sources.txt": SOURCE_LIST})
    generator = FakeGenerator(fail_on=("INTERMEDIATE SUMMARY END",))

    with pytest.raises(PhaseError) as exc_info:
        asyncio.run(run_once(config, fetcher=_fetcher(), generator=generator, store=store))

    assert isinstance(exc_info.value.cause, ReduceError)
    assert store.writes == []


def test_run_deadline_is_reported_as_cancellation(config):
    config = replace(config, run_timeout=0.05)
    store = MemoryStore({"sources.txt": SOURCE_LIST})
    fetcher = FakeFetcher({
        "https://example.com/a": [("A", True)],
        "https://example.com/b": [("B", True)],
        "https://example.com/c": [("C", True)],
    }, delay=5.0)

    with pytest.raises(PhaseError) as exc_info:
        asyncio.run(run_once(config, fetcher=fetcher, generator=FakeGenerator(), store=store))

    assert exc_info.value.phase == PHASE_CONTENT_FETCH
    assert exc_info.value.cancelled


def test_deadline_in_retry_cool_down_is_reported_by_content_fetch(config):
    config = replace(config, run_timeout=0.1, retry_fetch_delay=5.0)
    store = MemoryStore({"sources.txt": SOURCE_LIST})
    generator = FakeGenerator()

    with pytest.raises(PhaseError) as exc_info:
        asyncio.run(run_once(config, fetcher=_fetcher(), generator=generator, store=store))

    assert exc_info.value.phase == PHASE_CONTENT_FETCH
    assert exc_info.value.cancelled
    assert generator.calls == []
    assert store.writes == []


class SlowStore(MemoryStore):
    """MemoryStore whose reads or writes take a long time."""

    def __init__(self, files=None, read_delay=0.0, write_delay=0.0):
        super().__init__(files)
        self.read_delay = read_delay
        self.write_delay = write_delay

    async def read_text(self, path):
        await asyncio.sleep(self.read_delay)
        return await super().read_text(path)

    async def write_text(self, path, content, content_type="text/plain"):
        await asyncio.sleep(self.write_delay)
        await super().write_text(path, content, content_type)


def test_deadline_applies_to_source_list_read(config):
    config = replace(config, run_timeout=0.05)
    store = SlowStore({"sources.txt": SOURCE_LIST}, read_delay=5.0)

    with pytest.raises(PhaseError) as exc_info:
        asyncio.run(run_once(config, fetcher=_fetcher(), generator=FakeGenerator(), store=store))

    assert exc_info.value.phase == PHASE_URL_GENERATION
    assert exc_info.value.cancelled


def test_deadline_applies_to_output_upload(config):
    config = replace(config, run_timeout=0.2)
    store = SlowStore({"sources.txt": SOURCE_LIST}, write_delay=5.0)

    with pytest.raises(PhaseError) as exc_info:
        asyncio.run(run_once(config, fetcher=_fetcher(), generator=FakeGenerator(), store=store))

    assert exc_info.value.phase == PHASE_AI_CLEANUP
    assert exc_info.value.cancelled
    assert store.writes == []
