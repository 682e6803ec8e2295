from fastapi import APIRouter, HTTPException
from typing import Any, Dict
import logging
from careform.models.form import FormRecord
from careform.services.template_mapping import TemplateNotFoundError

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/template/{version}/mapping")
async def get_template_mapping(version: str):
    """Raw mapping.json for a template version."""
    from careform.main import template_service

    logger.debug(f"Template mapping requested: version={version}")
    try:
        return template_service.load_raw(version)
    except TemplateNotFoundError as e:
        logger.error(f"Template not found: version={version}: {e}")
        raise HTTPException(status_code=404, detail="Template not found")


@router.post("/template/{version}/fields", response_model=Dict[str, Any])
async def resolve_template_fields(version: str, form: FormRecord):
    """PDF field values for a reviewed record, keyed by the template's field names."""
    from careform.main import template_service

    try:
        values = template_service.resolve(form, version)
    except TemplateNotFoundError as e:
        logger.error(f"Template not found: version={version}: {e}")
        raise HTTPException(status_code=404, detail="Template not found")

    logger.info(f"Resolved {len(values)} PDF fields for template {version}")
    return values
