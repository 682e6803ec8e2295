from pydantic import Field
from typing import Optional, List, Dict, Literal

from careform.models.form import WireModel


# Extraction requests
class FillRequest(WireModel):
    raw_text: Optional[str] = None
    ocr_confidence: float = 50  # Accepted for compatibility; /extract/fill runs at a fixed confidence


# Summary schemas
class SummarizeRequest(WireModel):
    text: Optional[str] = None


class SummaryResponse(WireModel):
    summary: str
    key_points: List[str] = Field(default_factory=list)
    concerns: List[str] = Field(default_factory=list)
    actions: List[str] = Field(default_factory=list)


# Health schemas
class HealthResponse(WireModel):
    status: str = "ok"
    ollama: Literal["connected", "disconnected"]
    models: List[str] = Field(default_factory=list)


# Template mapping schemas
class TemplateFieldMapping(WireModel):
    pdf_field: str
    type: Literal["text", "checkbox", "textarea"] = "text"
    required: bool = False
    label: Optional[str] = None


class TemplateMapping(WireModel):
    version: str
    fields: Dict[str, TemplateFieldMapping]
