import logging
import re
from typing import Dict, List, Tuple

from careform.models.form import ExtractionMethod, ParseResult, create_empty_form
from careform.services.confidence import score_fields

logger = logging.getLogger(__name__)

NARRATIVE_MAX_CHARS = 1000
NARRATIVE_MIN_CHARS = 10

OCR_ONLY_NOTE = "OCR-only mode: local LLM not available. Fields extracted using pattern matching only."
REVIEW_NOTE = "Please review all fields carefully as automated extraction may contain errors."

_DATE = r"(\d{1,2}[/\-.]\d{1,2}[/\-.]\d{2,4})"
_LEADING_COLON = re.compile(r"^\s*:")

NAME_PATTERN = re.compile(r"(?:recipient name|name)\s*[:\-]?\s*(.+)", re.IGNORECASE)
DATE_PATTERN = re.compile(r"date\s*[:\-]?\s*" + _DATE, re.IGNORECASE)
TIME_PATTERN = re.compile(r"time\s*[:\-]?\s*(\d{1,2}:\d{2}\s*(?:AM|PM)?)", re.IGNORECASE)
DOB_PATTERN = re.compile(r"(?:dob|date of birth)\s*[:\-]?\s*" + _DATE, re.IGNORECASE)
LOCATION_PATTERN = re.compile(r"location\s*[:\-]?\s*(.+)", re.IGNORECASE)
IDENTIFIER_PATTERN = re.compile(r"\b(?:recipient identifier|identifier|id)\b\s*[:\-#]?\s*(.+)", re.IGNORECASE)

# "[x]", a standalone X (not "x-ray"), "checked" or "yes"; "unchecked" does not count
CHECKED_PATTERN = re.compile(r"\[x\]|(?<![\w-])x(?![\w-])|\bchecked\b|\byes\b", re.IGNORECASE)
CHECKBOX_KEYWORDS = {
    "sih": re.compile(r"\bsih\b", re.IGNORECASE),
    "hcbw": re.compile(r"\bhcbw\b", re.IGNORECASE),
}

# Alias lists are matched against the lower-cased full text, in order
NARRATIVE_SECTION_ALIASES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("recipient_and_visit_observations", (
        "recipient & visit observations", "recipient and visit observations", "visit observations",
    )),
    ("health_emotional_status", (
        "health/emotional status", "health emotional status", "med changes", "health status",
    )),
    ("review_of_services", ("review of services", "services review")),
    ("progress_toward_goals", ("progress toward goals", "progress to goals", "goals progress")),
    ("additional_notes", ("additional notes", "notes")),
    ("follow_up_tasks", ("follow up tasks", "followup tasks", "care coordinator follow up")),
)

# Any of these ends the section that precedes it
SECTION_BOUNDARY_HEADERS: Tuple[str, ...] = (
    "recipient & visit observations",
    "recipient and visit observations",
    "health/emotional status",
    "review of services",
    "progress toward goals",
    "additional notes",
    "follow up tasks",
    "followup tasks",
    "care coordinator follow up",
    "signature",
)


class RuleBasedExtractor:
    """Regex/keyword extraction over OCR text. Makes no external calls and never fails."""

    method = ExtractionMethod.ocr_only

    def extract(self, text: str, ocr_confidence: float, ollama_available: bool) -> ParseResult:
        text = text or ""
        form = create_empty_form()
        lines = split_lines(text)

        logger.debug(f"Starting rule-based parsing ({len(lines)} lines)")

        for line in lines:
            self._apply_header_patterns(form.header, line)
            self._apply_checkbox_patterns(form.care_coordination_type, line)

        for key, content in extract_narrative_sections(text).items():
            setattr(form.narrative, key, content)

        notes = []
        if not ollama_available:
            notes.append(OCR_ONLY_NOTE)
        notes.append(REVIEW_NOTE)
        note_block = "\n".join(notes)
        if form.narrative.additional_notes:
            form.narrative.additional_notes = note_block + "\n\n" + form.narrative.additional_notes
        else:
            form.narrative.additional_notes = note_block

        confidence = score_fields(form, ocr_confidence, self.method)

        header_fields = sum(1 for v in form.header.model_dump().values() if v)
        checkboxes = sum(1 for v in form.care_coordination_type.model_dump().values() if v)
        logger.info(f"Rule-based extraction complete: header_fields={header_fields}, checkboxes={checkboxes}")

        return ParseResult(
            form=form,
            confidence=confidence,
            extraction_method=self.method,
            ollama_available=ollama_available,
        )

    def _apply_header_patterns(self, header, line: str) -> None:
        lower = line.lower()

        if ("recipient name" in lower or re.search(r"\bname\s*:", lower)) and "coordinator" not in lower:
            match = NAME_PATTERN.search(line)
            if match:
                header.recipient_name = match.group(1).strip()

        if "date" in lower and "birth" not in lower:
            match = DATE_PATTERN.search(line)
            if match:
                header.date = match.group(1).strip()

        if "time" in lower:
            match = TIME_PATTERN.search(line)
            if match:
                header.time = match.group(1).strip()

        if "dob" in lower or "date of birth" in lower:
            match = DOB_PATTERN.search(line)
            if match:
                header.dob = match.group(1).strip()

        if "location" in lower:
            match = LOCATION_PATTERN.search(line)
            if match:
                header.location = match.group(1).strip()

        if "identifier" in lower or re.search(r"\bid\b", lower):
            match = IDENTIFIER_PATTERN.search(line)
            if match:
                header.recipient_identifier = match.group(1).strip()

    def _apply_checkbox_patterns(self, care_type, line: str) -> None:
        for attr, keyword in CHECKBOX_KEYWORDS.items():
            if keyword.search(line) and CHECKED_PATTERN.search(line):
                setattr(care_type, attr, True)


def extract_narrative_sections(text: str) -> Dict[str, str]:
    """Locate narrative section headers in the full text and slice out their bodies."""
    sections: Dict[str, str] = {}
    lower_text = text.lower()

    for key, aliases in NARRATIVE_SECTION_ALIASES:
        for alias in aliases:
            idx = lower_text.find(alias)
            if idx == -1:
                continue
            start = idx + len(alias)
            end = find_next_section_index(lower_text, start)
            content = _LEADING_COLON.sub("", text[start:end]).strip()
            if len(content) > NARRATIVE_MIN_CHARS:
                sections[key] = content[:NARRATIVE_MAX_CHARS]
                break

    return sections


def find_next_section_index(lower_text: str, start: int) -> int:
    next_index = len(lower_text)
    for header in SECTION_BOUNDARY_HEADERS:
        idx = lower_text.find(header, start)
        if idx != -1 and idx < next_index:
            next_index = idx
    return next_index


def split_lines(text: str) -> List[str]:
    return [line.strip() for line in (text or "").split("\n") if line.strip()]
