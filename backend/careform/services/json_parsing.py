"""Tolerant JSON extraction for LLM completions.

Small local models wrap their JSON in prose or markdown fences. Each parse
strategy returns a ParseAttempt; strategies are tried in order and the first
success wins.
"""

import json
import logging
import re
from typing import Any, Callable, NamedTuple, Optional, Tuple

from careform.services.llm_client import LLMResponseError

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)\n?```", re.IGNORECASE)
_BRACE_SPAN = re.compile(r"\{[\s\S]*\}")


class ParseAttempt(NamedTuple):
    ok: bool
    value: Any = None
    error: Optional[str] = None


def _loads(text: str) -> ParseAttempt:
    try:
        return ParseAttempt(ok=True, value=json.loads(text))
    except json.JSONDecodeError as e:
        return ParseAttempt(ok=False, error=str(e))


def parse_direct(text: str) -> ParseAttempt:
    return _loads(text.strip())


def parse_code_fence(text: str) -> ParseAttempt:
    match = _CODE_FENCE.search(text)
    if not match:
        return ParseAttempt(ok=False, error="no fenced code block")
    return _loads(match.group(1).strip())


def parse_brace_span(text: str) -> ParseAttempt:
    """Parse from the first '{' to the last '}'."""
    match = _BRACE_SPAN.search(text)
    if not match:
        return ParseAttempt(ok=False, error="no JSON object found")
    return _loads(match.group(0))


PARSE_STRATEGIES: Tuple[Tuple[str, Callable[[str], ParseAttempt]], ...] = (
    ("direct", parse_direct),
    ("code-fence", parse_code_fence),
    ("brace-span", parse_brace_span),
)


def parse_llm_json(text: str) -> Any:
    """Return the first successfully parsed value; raise LLMResponseError if every strategy fails."""
    text = text or ""
    failures = []
    for name, strategy in PARSE_STRATEGIES:
        attempt = strategy(text)
        if attempt.ok:
            if name != "direct":
                logger.info(f"Parsed LLM JSON using {name} strategy")
            return attempt.value
        failures.append(f"{name}: {attempt.error}")

    logger.warning(f"All JSON parse strategies failed for {len(text)} chars of LLM output")
    raise LLMResponseError("Could not parse JSON from LLM output (" + "; ".join(failures) + ")")


def parse_llm_json_object(text: str) -> dict:
    """Like parse_llm_json, but the value must be a JSON object."""
    value = parse_llm_json(text)
    if not isinstance(value, dict):
        raise LLMResponseError(f"Expected a JSON object from LLM, got {type(value).__name__}")
    return value
