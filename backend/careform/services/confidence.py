import logging
from typing import List

from careform.models.form import (
    FORM_FIELDS, ConfidenceLevel, ExtractionMethod, FieldConfidence, FieldKind,
    FormRecord, get_value_at_path,
)

logger = logging.getLogger(__name__)

HIGH_CONFIDENCE_THRESHOLD = 80
MEDIUM_CONFIDENCE_THRESHOLD = 50

_DEMOTE = {
    ConfidenceLevel.high: ConfidenceLevel.medium,
    ConfidenceLevel.medium: ConfidenceLevel.low,
    ConfidenceLevel.low: ConfidenceLevel.low,
}
_PROMOTE = {
    ConfidenceLevel.low: ConfidenceLevel.medium,
    ConfidenceLevel.medium: ConfidenceLevel.high,
    ConfidenceLevel.high: ConfidenceLevel.high,
}


def base_tier(ocr_confidence: float) -> ConfidenceLevel:
    """Map a 0-100 OCR score to a coarse tier."""
    if ocr_confidence > HIGH_CONFIDENCE_THRESHOLD:
        return ConfidenceLevel.high
    if ocr_confidence > MEDIUM_CONFIDENCE_THRESHOLD:
        return ConfidenceLevel.medium
    return ConfidenceLevel.low


def field_tier(base: ConfidenceLevel, method: ExtractionMethod, populated: bool) -> ConfidenceLevel:
    """Apply the method adjustments and the empty-field floor to a base tier."""
    level = base
    if method == ExtractionMethod.ocr_only:
        # Pattern matching is less trustworthy than the OCR signal alone
        level = _DEMOTE[level]
    if method == ExtractionMethod.llm_categorized and populated:
        level = _PROMOTE[level]
    if not populated:
        level = ConfidenceLevel.low
    return level


def score_fields(form: FormRecord, ocr_confidence: float, method: ExtractionMethod) -> List[FieldConfidence]:
    """
    Score every schema leaf of a validated form.

    Returns one FieldConfidence per entry of FORM_FIELDS, in that order,
    regardless of extraction method. Checkbox fields always count as
    populated; any other empty field scores low.
    """
    ocr_confidence = min(max(float(ocr_confidence), 0.0), 100.0)
    base = base_tier(ocr_confidence)
    wire = form.to_wire()

    confidence = []
    for meta in FORM_FIELDS:
        if meta.kind == FieldKind.checkbox:
            populated = True
        else:
            populated = bool(get_value_at_path(wire, meta.path))
        confidence.append(FieldConfidence(
            field=meta.path,
            confidence=field_tier(base, method, populated),
            ocr_confidence=ocr_confidence,
            source=method,
        ))

    logger.debug(
        f"Scored {len(confidence)} fields: base={base.value}, method={method.value}, "
        f"high={sum(1 for c in confidence if c.confidence == ConfidenceLevel.high)}"
    )
    return confidence
