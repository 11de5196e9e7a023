"""LLM package - provider clients and text-generation primitives."""

from newsroom.llm.generator import (
    AnthropicGenerator,
    GeminiGenerator,
    TextGenerator,
    get_text_generator,
)
from newsroom.llm.json_output import parse_json_object

__all__ = [
    "AnthropicGenerator",
    "GeminiGenerator",
    "TextGenerator",
    "get_text_generator",
    "parse_json_object",
]
