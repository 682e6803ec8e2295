"""Canonical Monthly Care Coordination Monitoring Contact form schema.

The record is always fully populated: strings default to "" and booleans to
False. Wire keys are camelCase (``header.recipientName``), Python attributes
are snake_case (``form.header.recipient_name``).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, ValidationError
from pydantic.alias_generators import to_camel


class ConfidenceLevel(str, Enum):
    high = "high"
    medium = "medium"
    low = "low"


class ExtractionMethod(str, Enum):
    ocr_only = "ocr-only"
    llm_structured = "llm-structured"
    llm_categorized = "llm-categorized"
    vision_llm = "vision-llm"
    manual = "manual"


class FieldKind(str, Enum):
    text = "text"
    checkbox = "checkbox"
    textarea = "textarea"


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class FormHeader(WireModel):
    recipient_name: StrictStr = ""
    date: StrictStr = ""
    time: StrictStr = ""
    recipient_identifier: StrictStr = ""
    dob: StrictStr = ""
    location: StrictStr = ""


class CareCoordinationType(WireModel):
    sih: StrictBool = False
    hcbw: StrictBool = False


class NarrativeSections(WireModel):
    recipient_and_visit_observations: StrictStr = ""
    health_emotional_status: StrictStr = ""
    review_of_services: StrictStr = ""
    progress_toward_goals: StrictStr = ""
    additional_notes: StrictStr = ""  # Also carries review annotations, prepended
    follow_up_tasks: StrictStr = ""


class Signature(WireModel):
    care_coordinator_name: StrictStr = ""
    signature: StrictStr = ""
    date_signed: StrictStr = ""


class FormRecord(WireModel):
    header: FormHeader = Field(default_factory=FormHeader)
    care_coordination_type: CareCoordinationType = Field(default_factory=CareCoordinationType)
    narrative: NarrativeSections = Field(default_factory=NarrativeSections)
    signature: Signature = Field(default_factory=Signature)

    def to_wire(self) -> Dict[str, Any]:
        """Dump using camelCase keys (the JSON shape shared with the UI and LLM prompts)."""
        return self.model_dump(by_alias=True, mode="json")


class FieldConfidence(WireModel):
    field: str
    confidence: ConfidenceLevel
    ocr_confidence: float = Field(..., ge=0, le=100)
    source: ExtractionMethod


class ParseResult(WireModel):
    """Uniform result shape returned by every extraction strategy."""
    form: FormRecord
    confidence: List[FieldConfidence]
    extraction_method: ExtractionMethod
    ollama_available: bool
    validation_issues: Optional[List[str]] = None


class ExtractionResult(ParseResult):
    """Pipeline output envelope; raw_text is the OCR transcript, carried through unmodified."""
    raw_text: str


# Validation

class FormValidationError(ValueError):
    """Raised when arbitrary input does not match the form shape."""

    def __init__(self, field_errors: Dict[str, str]):
        self.field_errors = field_errors
        summary = "; ".join(f"{path}: {message}" for path, message in field_errors.items())
        super().__init__(f"Form validation failed: {summary}")

    @classmethod
    def from_pydantic(cls, exc: ValidationError) -> "FormValidationError":
        field_errors: Dict[str, str] = {}
        for error in exc.errors():
            path = ".".join(str(part) for part in error.get("loc", ())) or "form"
            message = error.get("msg", "invalid value")
            if path in field_errors:
                field_errors[path] = f"{field_errors[path]}, {message}"
            else:
                field_errors[path] = message
        return cls(field_errors)


@dataclass
class SafeValidation:
    ok: bool
    value: Optional[FormRecord] = None
    error: Optional[FormValidationError] = None


def create_empty_form() -> FormRecord:
    return FormRecord()


def validate_form(data: Any) -> FormRecord:
    """Validate untyped input into a fresh FormRecord.

    Leaf values are never coerced (``"true"`` is not a boolean, ``5`` is not a
    string); only declared defaults are applied for absent keys. Raises
    FormValidationError with per-field messages.
    """
    if isinstance(data, FormRecord):
        data = data.model_dump(by_alias=True)
    try:
        return FormRecord.model_validate(data)
    except ValidationError as e:
        raise FormValidationError.from_pydantic(e) from e


def safe_validate_form(data: Any) -> SafeValidation:
    try:
        return SafeValidation(ok=True, value=validate_form(data))
    except FormValidationError as e:
        return SafeValidation(ok=False, error=e)


# Field metadata

@dataclass(frozen=True)
class FieldMetadata:
    path: str
    label: str
    kind: FieldKind
    required: bool
    section: str
    placeholder: Optional[str] = None


FORM_FIELDS: Tuple[FieldMetadata, ...] = (
    # Header
    FieldMetadata("header.recipientName", "Recipient Name", FieldKind.text, True, "Header", "Enter recipient name"),
    FieldMetadata("header.date", "Date", FieldKind.text, True, "Header", "MM/DD/YYYY"),
    FieldMetadata("header.time", "Time", FieldKind.text, False, "Header", "HH:MM"),
    FieldMetadata("header.recipientIdentifier", "Recipient Identifier", FieldKind.text, False, "Header", "ID number"),
    FieldMetadata("header.dob", "Date of Birth", FieldKind.text, False, "Header", "MM/DD/YYYY"),
    FieldMetadata("header.location", "Location", FieldKind.text, False, "Header", "Visit location"),

    # Care Coordination Type
    FieldMetadata("careCoordinationType.sih", "SIH", FieldKind.checkbox, False, "Care Coordination Type"),
    FieldMetadata("careCoordinationType.hcbw", "HCBW", FieldKind.checkbox, False, "Care Coordination Type"),

    # Narrative sections
    FieldMetadata(
        "narrative.recipientAndVisitObservations",
        "Recipient & Visit Observations",
        FieldKind.textarea, False, "Observations",
        "What are they doing, communicating, any concerns regarding home/site status, misc. information, etc.",
    ),
    FieldMetadata(
        "narrative.healthEmotionalStatus",
        "Health/Emotional Status, Med Changes, Doctor Visits, Behavior Changes, "
        "Critical Incidents, Falls, Hospital/Urgent Care Visits",
        FieldKind.textarea, False, "Health",
        "Describe health status, medication changes, doctor visits, behaviors, incidents, falls, hospital visits...",
    ),
    FieldMetadata(
        "narrative.reviewOfServices", "Review of Services",
        FieldKind.textarea, False, "Services", "Review current services being provided",
    ),
    FieldMetadata(
        "narrative.progressTowardGoals", "Progress Toward Goals",
        FieldKind.textarea, False, "Goals",
        "How is the recipient doing on their goals? Are current goals supporting the recipient? Any changes needed?",
    ),
    FieldMetadata(
        "narrative.additionalNotes", "Additional Notes",
        FieldKind.textarea, False, "Notes", "Any additional information",
    ),
    FieldMetadata(
        "narrative.followUpTasks", "Care Coordinator Follow Up Tasks",
        FieldKind.textarea, False, "Follow Up", "List any follow-up tasks for the care coordinator",
    ),

    # Signature
    FieldMetadata("signature.careCoordinatorName", "Care Coordinator Name", FieldKind.text, False, "Signature", "Your name"),
    FieldMetadata("signature.signature", "Signature", FieldKind.text, False, "Signature", "Type your signature"),
    FieldMetadata("signature.dateSigned", "Date Signed", FieldKind.text, False, "Signature", "MM/DD/YYYY"),
)

FIELD_PATHS: Tuple[str, ...] = tuple(f.path for f in FORM_FIELDS)


def schema_leaf_paths() -> List[str]:
    """Dotted wire paths of every scalar leaf, in model declaration order."""
    paths = []
    for group_name, group_info in FormRecord.model_fields.items():
        group_alias = group_info.alias or group_name
        for leaf_name, leaf_info in group_info.annotation.model_fields.items():
            paths.append(f"{group_alias}.{leaf_info.alias or leaf_name}")
    return paths


def get_value_at_path(form: Any, path: str) -> Any:
    """Look up a dotted wire path (e.g. ``header.recipientName``); None if absent."""
    current = form.to_wire() if isinstance(form, FormRecord) else form
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current
