"""PydanticAI generation and prompt construction.

AgentGenerator:
    Generator implementation running prompts through a PydanticAI agent.
    Supports Gemini (google-gla:*) and local OpenAI-compatible servers.

build_map_prompt / build_reduce_prompt:
    Language-keyed prompt templates over validated payloads.

Example:
    >>> from agents import AgentGenerator, build_map_prompt
    >>> generator = AgentGenerator(config)
    >>> text = await generator.generate(build_map_prompt(segment, url), config.map_model)
"""

from agents.generator import AgentGenerator, Generator
from agents.prompts import build_map_prompt, build_reduce_prompt, FINAL_START, FINAL_END

__all__ = [
    "AgentGenerator",
    "Generator",
    "build_map_prompt",
    "build_reduce_prompt",
    "FINAL_START",
    "FINAL_END",
]
