"""
Two-phase LLM categorization of OCR text.

Phase 1 asks the model to sort the transcript into form fields. Phase 2 runs
advisory checks on the untyped result (placeholders, date formats,
conflicting checkboxes, missing name, thin narrative). Phase 3 merges the
cleaned values over an empty form and records the advisories at the top of
``additionalNotes``. Advisories never fail the extraction.
"""

import copy
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from careform.config import settings
from careform.models.form import ExtractionMethod, ParseResult, create_empty_form
from careform.services.json_parsing import parse_llm_json_object
from careform.services.llm_client import LLMClient
from careform.services.llm_extractor import PROMPT_TEXT_LIMIT, build_parse_result, example_form_json
from careform.services.progress_service import ProgressService, ProgressTracker

logger = logging.getLogger(__name__)

DATE_FORMAT_PATTERN = re.compile(r"(0[1-9]|1[0-2])/([0-2][0-9]|3[01])/\d{4}")
PLACEHOLDER_MARKER = "string"
NARRATIVE_MIN_CONTENT_CHARS = 20

NOTES_HEADING = "EXTRACTION NOTES:"
NOTES_DIVIDER = "\n\n---\n\n"

# Groups whose string values get placeholder detection with a reported issue
_CHECKED_STRING_GROUPS = ("header", "signature")
_STRING_GROUPS = ("header", "narrative", "signature")

CATEGORIZER_EXAMPLES = (
    (
        "Simple extraction",
        "Name: John Doe, Date: 03/15/2024, SIH checked",
        example_form_json(
            header__recipientName="John Doe",
            header__date="03/15/2024",
            careCoordinationType__sih=True,
        ),
    ),
    (
        "With narrative",
        "Client Mary Smith visited 02/10/2024. BP 140/90. HCBW service. Client doing well.",
        example_form_json(
            header__recipientName="Mary Smith",
            header__date="02/10/2024",
            careCoordinationType__hcbw=True,
            narrative__recipientAndVisitObservations="Client doing well.",
            narrative__healthEmotionalStatus="BP 140/90.",
        ),
    ),
)


def build_categorizer_prompt(text: str) -> str:
    examples = "\n\n".join(
        f'EXAMPLE {i} - {title}:\nInput: "{example_input}"\nOutput: {example_output}'
        for i, (title, example_input, example_output) in enumerate(CATEGORIZER_EXAMPLES, start=1)
    )
    return f"""Extract form data from caregiver notes into JSON.

{examples}

NOW EXTRACT FROM THIS TEXT (respond with ONLY JSON):
---
{(text or "")[:PROMPT_TEXT_LIMIT]}
---

JSON OUTPUT:"""


@dataclass
class ValidationIssue:
    field: str
    issue: str
    suggestion: Optional[str] = None

    def to_line(self) -> str:
        if self.suggestion:
            return f"{self.field}: {self.issue} ({self.suggestion})"
        return f"{self.field}: {self.issue}"


@dataclass
class CategorizationResult:
    form: Dict[str, Any]
    validation_notes: List[str] = field(default_factory=list)


def _group(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = data.get(name)
    return value if isinstance(value, dict) else {}


def _is_placeholder(value: Any) -> bool:
    return isinstance(value, str) and PLACEHOLDER_MARKER in value.lower()


class LLMCategorizer:
    method = ExtractionMethod.llm_categorized

    def __init__(
        self,
        llm_client: LLMClient,
        progress_service: Optional[ProgressService] = None,
        timeout: Optional[float] = None,
    ):
        self.llm = llm_client
        self.progress_service = progress_service
        self.timeout = settings.llm_text_timeout if timeout is None else timeout

    async def categorize(self, text: str) -> Dict[str, Any]:
        """Phase 1: ask the model for the form JSON. Raises on any failure."""
        response_text = await self.llm.generate(
            build_categorizer_prompt(text),
            temperature=0.1,
            num_predict=2000,
            stop=["\n\n", "Input:", "Output:"],
            timeout=self.timeout,
        )
        logger.debug(f"Categorizer raw output: {len(response_text)} chars")
        return parse_llm_json_object(response_text.strip())

    def validate(self, data: Dict[str, Any]) -> Tuple[Dict[str, Any], List[ValidationIssue]]:
        """Phase 2: advisory checks over the untyped model output.

        Works on a copy. Placeholder values are cleared; everything else is
        only flagged, never corrected.
        """
        data = copy.deepcopy(data)
        issues: List[ValidationIssue] = []

        for group_name in _CHECKED_STRING_GROUPS:
            group = _group(data, group_name)
            for key, value in group.items():
                if _is_placeholder(value):
                    issues.append(ValidationIssue(
                        field=f"{group_name}.{key}",
                        issue=f'Placeholder value found: "{value}"',
                        suggestion="Field not properly extracted from source text",
                    ))
                    group[key] = ""

        header = _group(data, "header")
        for key, label in (("date", "date"), ("dob", "DOB")):
            value = header.get(key)
            if isinstance(value, str) and value and not DATE_FORMAT_PATTERN.fullmatch(value):
                issues.append(ValidationIssue(
                    field=f"header.{key}",
                    issue=f"Invalid {label} format: {value}",
                    suggestion="Should be MM/DD/YYYY",
                ))

        care_type = _group(data, "careCoordinationType")
        if care_type.get("sih") is True and care_type.get("hcbw") is True:
            issues.append(ValidationIssue(
                field="careCoordinationType",
                issue="Both SIH and HCBW are checked",
                suggestion="Usually only one is selected",
            ))

        recipient_name = header.get("recipientName")
        if not isinstance(recipient_name, str) or not recipient_name.strip():
            issues.append(ValidationIssue(
                field="header.recipientName",
                issue="Recipient name not found in text",
                suggestion="Check OCR quality or manually enter",
            ))

        narrative = _group(data, "narrative")
        has_narrative_content = any(
            isinstance(value, str) and len(value) > NARRATIVE_MIN_CONTENT_CHARS and not _is_placeholder(value)
            for key, value in narrative.items()
            if key != "followUpTasks"
        )
        if not has_narrative_content:
            issues.append(ValidationIssue(
                field="narrative",
                issue="No narrative content extracted",
                suggestion="OCR may have failed to capture text",
            ))

        for key, value in narrative.items():
            if _is_placeholder(value):
                narrative[key] = ""

        logger.debug(f"Categorizer validation complete: {len(issues)} issues")
        return data, issues

    def merge(self, data: Dict[str, Any], issues: List[ValidationIssue]) -> CategorizationResult:
        """Phase 3: overlay cleaned values on an empty form and prepend the advisories."""
        merged = create_empty_form().to_wire()

        for group_name in _STRING_GROUPS:
            source = _group(data, group_name)
            for key, default in merged[group_name].items():
                merged[group_name][key] = source.get(key) or default

        source = _group(data, "careCoordinationType")
        for key, default in merged["careCoordinationType"].items():
            value = source.get(key)
            merged["careCoordinationType"][key] = default if value is None else value

        validation_notes = [issue.to_line() for issue in issues]
        if validation_notes:
            notes_block = NOTES_HEADING + "\n" + "\n".join(f"- {line}" for line in validation_notes)
            existing_notes = merged["narrative"]["additionalNotes"]
            if existing_notes:
                merged["narrative"]["additionalNotes"] = notes_block + NOTES_DIVIDER + existing_notes
            else:
                merged["narrative"]["additionalNotes"] = notes_block

        return CategorizationResult(form=merged, validation_notes=validation_notes)

    async def extract(self, text: str, ocr_confidence: float) -> ParseResult:
        progress = ProgressTracker("LLM_CATEGORIZER", self.progress_service)
        await progress.start("Starting LLM categorization")

        await progress.update(25, "Categorizing OCR text into form fields")
        categorized = await self.categorize(text)

        await progress.update(60, "Validating extracted data")
        cleaned, issues = self.validate(categorized)

        await progress.update(90, "Merging results")
        result = self.merge(cleaned, issues)

        parse_result = build_parse_result(
            result.form, ocr_confidence, self.method, validation_issues=result.validation_notes,
        )
        await progress.complete("Categorization complete")

        logger.info(f"LLM categorization complete: validation_issues={len(issues)}")
        return parse_result
