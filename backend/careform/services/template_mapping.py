import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from careform.config import settings
from careform.models.form import FormRecord, get_value_at_path, validate_form
from careform.models.schemas import TemplateMapping

logger = logging.getLogger(__name__)

MAPPING_FILENAME = "mapping.json"
_VERSION_PATTERN = re.compile(r"^[A-Za-z0-9_\-]+$")


class TemplateNotFoundError(LookupError):
    pass


class TemplateMappingService:
    """Reads ``<templates_dir>/<version>/mapping.json`` and resolves form values for PDF fields."""

    def __init__(self, templates_dir: Optional[Union[str, Path]] = None):
        self.templates_dir = Path(templates_dir or settings.templates_dir)

    def _mapping_path(self, version: str) -> Path:
        # Version names come from the URL; keep them inside templates_dir
        if not _VERSION_PATTERN.match(version or ""):
            raise TemplateNotFoundError(f"Invalid template version: {version!r}")
        return self.templates_dir / version / MAPPING_FILENAME

    def load_raw(self, version: str) -> Dict[str, Any]:
        mapping_path = self._mapping_path(version)
        try:
            raw = json.loads(mapping_path.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise TemplateNotFoundError(f"Template mapping not found: {version}") from e
        except json.JSONDecodeError as e:
            logger.error(f"Template mapping for {version} is not valid JSON: {e}")
            raise TemplateNotFoundError(f"Template mapping unreadable: {version}") from e

        logger.debug(f"Template mapping loaded: version={version}, fields={len(raw.get('fields', {}))}")
        return raw

    def load(self, version: str) -> TemplateMapping:
        raw = self.load_raw(version)
        try:
            return TemplateMapping.model_validate(raw)
        except ValidationError as e:
            logger.error(f"Template mapping for {version} has an invalid shape: {e}")
            raise TemplateNotFoundError(f"Template mapping invalid: {version}") from e

    def resolve(self, form: Any, version: str) -> Dict[str, Any]:
        """
        Map a form record onto PDF field names.

        Every mapped path yields a value: checkbox fields a bool, everything
        else a string. Paths missing from the record fall back to ""/False.
        """
        mapping = self.load(version)
        record = form if isinstance(form, FormRecord) else validate_form(form)
        wire = record.to_wire()

        values: Dict[str, Any] = {}
        for path, field_mapping in mapping.fields.items():
            value = get_value_at_path(wire, path)
            if field_mapping.type == "checkbox":
                values[field_mapping.pdf_field] = bool(value)
            else:
                values[field_mapping.pdf_field] = "" if value is None else str(value)

        missing = [path for path in mapping.fields if get_value_at_path(wire, path) is None]
        if missing:
            logger.warning(f"Template {version} maps {len(missing)} paths not present in the form: {missing}")
        return values
