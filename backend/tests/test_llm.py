"""
Tests for llm.py - reply parsing and the Anthropic-backed generator.
Uses a stand-in client object; no network calls.
"""
import asyncio
from types import SimpleNamespace

import anthropic
import httpx
import pytest

from errors import GenerationError, SchemaViolationError
from llm import AnthropicGenerator, SYSTEM_PROMPT, parse_structured, strip_code_fence
from models import CompletionOutput, TimeExtractionOutput
from prompts import MARK_COMPLETE_PROMPT


class StubMessages:
    def __init__(self, reply=None, error=None, delay=0.0):
        self.reply = reply
        self.error = error
        self.delay = delay
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return SimpleNamespace(content=[SimpleNamespace(type="text", text=self.reply)])


def make_generator(**stub_kwargs):
    messages = StubMessages(**stub_kwargs)
    client = SimpleNamespace(messages=messages)
    return AnthropicGenerator(None, model="test-model", timeout_seconds=0.2, client=client), messages


class TestStripCodeFence:
    def test_plain_json_untouched(self):
        assert strip_code_fence('{"a": 1}') == '{"a": 1}'

    def test_json_fence_removed(self):
        assert strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_bare_fence_removed(self):
        assert strip_code_fence('```\n{"a": 1}\n```\n') == '{"a": 1}'


class TestParseStructured:
    def test_valid_reply(self):
        output = parse_structured('{"completed_task_id": "t1", "reason": "done"}', CompletionOutput)
        assert output.completed_task_id == "t1"

    def test_invalid_json(self):
        with pytest.raises(SchemaViolationError):
            parse_structured("Sure! Here is the task.", CompletionOutput)

    def test_wrong_shape(self):
        with pytest.raises(SchemaViolationError):
            parse_structured('{"completed_task_id": ["t1"]}', CompletionOutput)


@pytest.mark.asyncio
class TestAnthropicGenerator:
    async def test_generate_renders_prompt_and_parses(self):
        generator, messages = make_generator(reply='```json\n{"completed_task_id": "t1", "reason": "ok"}\n```')

        output = await generator.generate(
            MARK_COMPLETE_PROMPT, {"command": "I did it", "task_list": "- Task ID: t1"}, CompletionOutput
        )

        assert output.completed_task_id == "t1"
        call = messages.calls[0]
        assert call["model"] == "test-model"
        assert call["system"] == SYSTEM_PROMPT
        assert 'Voice command: "I did it"' in call["messages"][0]["content"]

    async def test_missing_api_key(self):
        generator = AnthropicGenerator(None)
        with pytest.raises(GenerationError, match="API key not configured"):
            await generator.generate("{text}", {"text": "x"}, TimeExtractionOutput)

    async def test_api_error_wrapped(self):
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        generator, _ = make_generator(error=anthropic.APIConnectionError(request=request))

        with pytest.raises(GenerationError):
            await generator.generate("{text}", {"text": "x"}, TimeExtractionOutput)

    async def test_timeout(self):
        generator, _ = make_generator(reply="{}", delay=5)

        with pytest.raises(GenerationError, match="timed out"):
            await generator.generate("{text}", {"text": "x"}, TimeExtractionOutput)

    async def test_empty_reply(self):
        generator, _ = make_generator(reply="   ")

        with pytest.raises(SchemaViolationError):
            await generator.generate("{text}", {"text": "x"}, TimeExtractionOutput)
