"""Tests for tolerant JSON parsing of LLM completions."""

import pytest

from careform.services.json_parsing import (
    parse_brace_span, parse_code_fence, parse_direct, parse_llm_json, parse_llm_json_object,
)
from careform.services.llm_client import LLMResponseError


class TestStrategies:
    def test_direct(self):
        assert parse_direct('  {"a": 1}\n').value == {"a": 1}
        assert parse_direct("not json").ok is False

    def test_code_fence(self):
        text = 'Here you go:\n```json\n{"a": 1}\n```\nDone.'
        attempt = parse_code_fence(text)
        assert attempt.ok is True
        assert attempt.value == {"a": 1}

    def test_code_fence_without_language(self):
        assert parse_code_fence('```\n{"a": [1, 2]}\n```').value == {"a": [1, 2]}

    def test_code_fence_missing(self):
        attempt = parse_code_fence('{"a": 1}')
        assert attempt.ok is False
        assert attempt.error == "no fenced code block"

    def test_brace_span(self):
        text = 'Sure! {"header": {"recipientName": "Bob"}} Hope this helps.'
        assert parse_brace_span(text).value == {"header": {"recipientName": "Bob"}}

    def test_brace_span_missing(self):
        assert parse_brace_span("no braces here").ok is False


class TestParseLLMJson:
    def test_first_success_wins(self):
        assert parse_llm_json('{"a": 1}') == {"a": 1}

    def test_falls_through_to_fence(self):
        assert parse_llm_json('```json\n{"a": 2}\n```') == {"a": 2}

    def test_falls_through_to_brace_span(self):
        assert parse_llm_json('Output: {"a": 3} (end)') == {"a": 3}

    def test_broken_fence_falls_through_to_brace_span(self):
        """A fenced block that isn't JSON does not stop the brace-span attempt."""
        text = '```\nnot json\n``` but later {"a": 4}'
        assert parse_llm_json(text) == {"a": 4}

    def test_all_strategies_fail(self):
        with pytest.raises(LLMResponseError, match="Could not parse JSON"):
            parse_llm_json("I could not read the form, sorry.")

    def test_empty_output(self):
        with pytest.raises(LLMResponseError):
            parse_llm_json("")

    def test_object_required(self):
        assert parse_llm_json("[1, 2]") == [1, 2]
        with pytest.raises(LLMResponseError, match="Expected a JSON object"):
            parse_llm_json_object("[1, 2]")
