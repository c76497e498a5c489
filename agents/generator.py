"""Generation capability backed by PydanticAI agents.

One agent is created lazily per model string, so the map and reduce phases
can use different models through the same Generator.

Model strings:
    google-gla:{model}            Gemini via the Generative Language API
    openai:{model}@{base_url}     Local OpenAI-compatible server
    anything else                 Passed to PydanticAI unchanged
"""

import logging
from dataclasses import dataclass
from typing import Protocol

from openai import AsyncOpenAI
from pydantic_ai import Agent, RunContext, UsageLimits
from pydantic_ai.models.google import GoogleModel
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.profiles.openai import OpenAIModelProfile
from pydantic_ai.providers.google import GoogleProvider
from pydantic_ai.providers.openai import OpenAIProvider

from config import Config, parse_local_model

logger = logging.getLogger(__name__)

_GOOGLE_PREFIX = "google-gla:"

SYSTEM_PROMPTS = {
    "en": (
        "You turn noisy web page text into clean, faithful Markdown. "
        "Follow the task instructions exactly and never invent facts."
    ),
    "ja": (
        "あなたはノイズの多いWebページのテキストを、正確で読みやすいMarkdownに整える担当者です。"
        "指示に正確に従い、事実を捏造しないでください。"
    ),
}


class Generator(Protocol):
    """Capability that performs one text generation call.

    Implementations keep running totals of the tokens they used.
    """

    input_tokens: int
    output_tokens: int

    async def generate(self, prompt: str, model: str) -> str:
        """Return the generated text for prompt using model."""
        ...


@dataclass
class GeneratorContext:
    """Runtime context passed to the agent.

    Attributes:
        language: Output language ('en' or 'ja')
    """

    language: str = "en"


def _create_model(model_str: str, api_key: str = ""):
    """Create a PydanticAI model instance or pass through the model string."""
    parsed = parse_local_model(model_str)
    if parsed:
        model_name, base_url = parsed
        logger.info("Using local model | model=%s base_url=%s", model_name, base_url)
        client = AsyncOpenAI(base_url=base_url, api_key="local-model")
        profile = OpenAIModelProfile(supports_json_object_output=False)
        return OpenAIChatModel(
            model_name=model_name,
            provider=OpenAIProvider(openai_client=client),
            profile=profile,
        )
    if model_str.startswith(_GOOGLE_PREFIX) and api_key:
        return GoogleModel(
            model_str[len(_GOOGLE_PREFIX):],
            provider=GoogleProvider(api_key=api_key),
        )
    return model_str


def _create_agent(model: str, api_key: str = "") -> Agent[GeneratorContext, str]:
    """Create a plain-text PydanticAI agent for one model."""
    agent = Agent(
        _create_model(model, api_key),
        deps_type=GeneratorContext,
        output_type=str,
        system_prompt=SYSTEM_PROMPTS["en"],  # Default fallback
        retries=2,
    )

    @agent.system_prompt
    def dynamic_prompt(ctx: RunContext[GeneratorContext]) -> str:
        return SYSTEM_PROMPTS.get(ctx.deps.language, SYSTEM_PROMPTS["en"])

    return agent


class AgentGenerator:
    """Generator implementation that runs prompts through PydanticAI."""

    def __init__(self, config: Config):
        """Initialize the generator.

        Args:
            config: Application configuration with API key and language
        """
        self.config = config
        self._agents: dict[str, Agent[GeneratorContext, str]] = {}
        self._context = GeneratorContext(language=config.language)
        self.input_tokens = 0
        self.output_tokens = 0

    def _agent_for(self, model: str) -> Agent[GeneratorContext, str]:
        if model not in self._agents:
            self._agents[model] = _create_agent(model, self.config.gemini_api_key)
        return self._agents[model]

    async def generate(self, prompt: str, model: str) -> str:
        """Run one generation call and return the text output.

        Args:
            prompt: Fully rendered prompt
            model: Model string (see module docstring)

        Returns:
            Generated text
        """
        result = await self._agent_for(model).run(
            prompt,
            deps=self._context,
            usage_limits=UsageLimits(request_limit=3),
        )
        usage = result.usage()
        input_tokens = usage.input_tokens or 0
        output_tokens = usage.output_tokens or 0
        self.input_tokens += input_tokens
        self.output_tokens += output_tokens
        logger.info(
            "Generation done | model=%s prompt_chars=%d input_tokens=%d output_tokens=%d",
            model, len(prompt), input_tokens, output_tokens,
        )
        return result.output
