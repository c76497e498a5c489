"""Deterministic doubles for the Fetcher, Generator and BlobStore capabilities."""

import asyncio
from dataclasses import replace

import pytest

from agents.prompts import FINAL_END, FINAL_START
from config import Config


class FakeFetcher:
    """Fetcher driven by a script of per-source responses.

    Each source maps to a list of responses consumed one per call; the last
    response repeats. A response is either (content, found) or an exception.
    """

    def __init__(self, script: dict, delay: float = 0.0):
        self.script = {k: list(v) for k, v in script.items()}
        self.delay = delay
        self.calls: list[str] = []
        self.active = 0
        self.max_active = 0

    async def fetch(self, source_id: str) -> tuple[str, bool]:
        self.calls.append(source_id)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            responses = self.script[source_id]
            response = responses.pop(0) if len(responses) > 1 else responses[0]
            if isinstance(response, BaseException):
                raise response
            return response
        finally:
            self.active -= 1


class FakeGenerator:
    """Generator returning canned text and recording prompts.

    Map prompts get "summary:<n>"; the reduce prompt gets reduce_response.
    Prompts containing any text from fail_on raise RuntimeError.
    """

    def __init__(
        self,
        reduce_response: str = f"{FINAL_START}final document{FINAL_END}",
        fail_on: tuple[str, ...] = (),
        delay: float = 0.0,
        reduce_model: str = "reduce-model",
    ):
        self.reduce_response = reduce_response
        self.fail_on = fail_on
        self.delay = delay
        self.reduce_model = reduce_model
        self.calls: list[tuple[str, str]] = []
        self.active = 0
        self.max_active = 0
        self.input_tokens = 0
        self.output_tokens = 0

    async def generate(self, prompt: str, model: str) -> str:
        self.calls.append((prompt, model))
        self.input_tokens += len(prompt.split())
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            for needle in self.fail_on:
                if needle in prompt:
                    raise RuntimeError(f"generation failed for {needle}")
            response = self.reduce_response if model == self.reduce_model else f"summary:{len(self.calls)}"
            self.output_tokens += len(response.split())
            return response
        finally:
            self.active -= 1


class MemoryStore:
    """In-memory BlobStore."""

    def __init__(self, files: dict[str, str] | None = None):
        self.files = dict(files or {})
        self.writes: list[tuple[str, str, str]] = []

    async def read_text(self, path: str) -> str:
        if path not in self.files:
            raise FileNotFoundError(f"File not found: {path}")
        return self.files[path]

    async def write_text(self, path: str, content: str, content_type: str = "text/plain") -> None:
        self.writes.append((path, content, content_type))
        self.files[path] = content


@pytest.fixture
def config(tmp_path):
    """Fast configuration: no delays, no rate limiting, local models."""
    return replace(
        Config(),
        gemini_api_key="test-key",
        map_model="map-model",
        reduce_model="reduce-model",
        source_file="sources.txt",
        output_path=str(tmp_path / "out" / "final.md"),
        initial_fetch_delay=0.0,
        retry_fetch_delay=0.0,
        map_rate_interval=0.0,
        run_timeout=0.0,
        llm_timeout=5.0,
        log_dir=tmp_path / "log",
    )
