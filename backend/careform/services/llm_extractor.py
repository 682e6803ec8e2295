import json
import logging
import time
from typing import Any, List, Optional

from careform.config import settings
from careform.models.form import (
    ExtractionMethod, FormRecord, ParseResult, create_empty_form, safe_validate_form,
)
from careform.services.confidence import score_fields
from careform.services.json_parsing import parse_llm_json
from careform.services.llm_client import LLMClient, LLMResponseError

logger = logging.getLogger(__name__)

PROMPT_TEXT_LIMIT = 4000


def example_form_json(**values: Any) -> str:
    """Compact camelCase JSON for a form with the given nested overrides, used in prompt examples."""
    form = create_empty_form().to_wire()
    for path, value in values.items():
        group, leaf = path.split("__")
        form[group][leaf] = value
    return json.dumps(form, separators=(",", ":"))


TEXT_PROMPT_EXAMPLE_INPUT = "Name: Bob Smith, Date: 03/15/2024, SIH checked, Client doing well"
TEXT_PROMPT_EXAMPLE_OUTPUT = example_form_json(
    header__recipientName="Bob Smith",
    header__date="03/15/2024",
    careCoordinationType__sih=True,
    narrative__recipientAndVisitObservations="Client doing well",
)


def build_text_prompt(text: str) -> str:
    return f"""Extract form data from caregiver notes into JSON format.

INSTRUCTIONS:
- Find recipient name, date, time, ID, DOB, location
- Identify if SIH and/or HCBW is checked (true/false)
- Copy all narrative text into appropriate sections
- Use empty string "" for missing fields
- Format dates as MM/DD/YYYY

EXAMPLE:
Input: "{TEXT_PROMPT_EXAMPLE_INPUT}"
Output: {TEXT_PROMPT_EXAMPLE_OUTPUT}

NOW EXTRACT FROM:
{(text or "")[:PROMPT_TEXT_LIMIT]}

JSON OUTPUT ONLY:"""


def build_parse_result(
    data: Any,
    ocr_confidence: float,
    method: ExtractionMethod,
    validation_issues: Optional[List[str]] = None,
) -> ParseResult:
    """Run untyped LLM output through the schema validator and score it.

    Raises LLMResponseError when the output does not match the form schema,
    so the caller falls back to the next strategy.
    """
    validation = safe_validate_form(data)
    if not validation.ok:
        raise LLMResponseError(f"{method.value} output validation failed: {validation.error}")

    form: FormRecord = validation.value
    return ParseResult(
        form=form,
        confidence=score_fields(form, ocr_confidence, method),
        extraction_method=method,
        ollama_available=True,
        validation_issues=validation_issues or None,
    )


class LLMTextExtractor:
    """Structures OCR text into the form schema with a single text completion."""

    method = ExtractionMethod.llm_structured

    def __init__(self, llm_client: LLMClient, timeout: Optional[float] = None):
        self.llm = llm_client
        self.timeout = settings.llm_text_timeout if timeout is None else timeout

    async def extract(self, text: str, ocr_confidence: float) -> ParseResult:
        prompt = build_text_prompt(text)

        start_time = time.time()
        response_text = await self.llm.generate(
            prompt,
            temperature=0.1,
            num_predict=2000,
            stop=["\n\n"],
            timeout=self.timeout,
        )
        duration_ms = int((time.time() - start_time) * 1000)
        logger.debug(f"LLM raw response: {len(response_text)} chars in {duration_ms}ms")

        parsed = parse_llm_json(response_text)
        result = build_parse_result(parsed, ocr_confidence, self.method)

        logger.info(f"LLM extraction successful ({duration_ms}ms)")
        return result
