"""
Structured generation on top of the Anthropic Messages API.

A prompt template is rendered with an input payload, sent to Claude, and the
reply is parsed as JSON and validated against a pydantic output model.
"""
import asyncio
import json
import logging
from typing import Any, Optional, Protocol, TypeVar

import anthropic
import pydantic
from pydantic import BaseModel

from errors import GenerationError, SchemaViolationError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

SYSTEM_PROMPT = "You are a task management assistant for a voice-driven to-do list. Only respond with valid JSON, no other text."


class StructuredGenerator(Protocol):
    async def generate(self, prompt: str, payload: dict[str, Any], output_model: type[T]) -> T: ...


def strip_code_fence(text: str) -> str:
    """Strip a markdown code block (```json ... ```) around the reply, if present."""
    text = text.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        lines = lines[1:]  # Remove first line (```json)
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]  # Remove last line (```)
        text = "\n".join(lines)
    return text.strip()


def parse_structured(text: str, output_model: type[T]) -> T:
    """Parse a model reply into output_model; SchemaViolationError when it does not fit."""
    try:
        parsed = json.loads(strip_code_fence(text))
    except json.JSONDecodeError as e:
        raise SchemaViolationError(f"Model reply is not valid JSON: {e}") from e
    try:
        return output_model.model_validate(parsed)
    except pydantic.ValidationError as e:
        raise SchemaViolationError(f"Model reply does not match {output_model.__name__}: {e}") from e


class AnthropicGenerator:
    def __init__(
        self,
        api_key: Optional[str],
        *,
        model: str = "claude-sonnet-4-5",
        max_tokens: int = 512,
        timeout_seconds: float = 30.0,
        client: Optional[anthropic.AsyncAnthropic] = None,
    ):
        self._api_key = api_key
        self._model = model
        self._max_tokens = max_tokens
        self._timeout_seconds = timeout_seconds
        self._client = client
        if self._client is None and api_key:
            self._client = anthropic.AsyncAnthropic(api_key=api_key, max_retries=0)

    async def generate(self, prompt: str, payload: dict[str, Any], output_model: type[T]) -> T:
        if self._client is None:
            raise GenerationError("API key not configured")

        content = prompt.format(**payload)
        try:
            response = await asyncio.wait_for(
                self._client.messages.create(
                    model=self._model,
                    max_tokens=self._max_tokens,
                    system=SYSTEM_PROMPT,
                    messages=[{"role": "user", "content": content}],
                ),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise GenerationError(f"Model call timed out after {self._timeout_seconds:.0f}s") from e
        except anthropic.APIError as e:
            raise GenerationError(f"API error: {e}") from e

        text = "".join(block.text for block in response.content if getattr(block, "type", None) == "text")
        if not text.strip():
            raise SchemaViolationError("Model returned an empty reply")
        logger.debug("Claude response for %s: %s", output_model.__name__, text)

        return parse_structured(text, output_model)
