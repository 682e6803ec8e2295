"""Tests for the form schema, validator and field metadata."""

import json

import pytest

from careform.models.form import (
    FIELD_PATHS, FORM_FIELDS, ExtractionMethod, ExtractionResult, FieldConfidence, FieldKind,
    FormRecord, FormValidationError, create_empty_form, get_value_at_path, safe_validate_form,
    schema_leaf_paths, validate_form,
)


class TestEmptyForm:
    def test_all_defaults(self):
        """Empty form has every string empty and every checkbox unchecked."""
        wire = create_empty_form().to_wire()

        assert set(wire) == {"header", "careCoordinationType", "narrative", "signature"}
        assert all(value == "" for value in wire["header"].values())
        assert wire["careCoordinationType"] == {"sih": False, "hcbw": False}
        assert all(value == "" for value in wire["narrative"].values())
        assert all(value == "" for value in wire["signature"].values())

    def test_validate_empty_form_is_idempotent(self):
        """Validating the empty record returns an equal record."""
        empty = create_empty_form()
        assert validate_form(empty) == empty
        assert validate_form(empty.to_wire()) == empty

    def test_missing_groups_are_defaulted(self):
        form = validate_form({"header": {"recipientName": "Bob"}})
        assert form.header.recipient_name == "Bob"
        assert form.care_coordination_type.sih is False
        assert form.signature.date_signed == ""


class TestValidation:
    def test_round_trip_preserves_special_characters(self, populated_form_data):
        """Serialize -> deserialize -> validate yields an equal record."""
        original = validate_form(populated_form_data)
        restored = validate_form(json.loads(json.dumps(original.to_wire())))

        assert restored == original
        assert restored.narrative.follow_up_tasks == "Call pharmacy\n- refill by 03/20"

    def test_accepts_attribute_names(self):
        form = validate_form({"header": {"recipient_name": "Bob"}})
        assert form.header.recipient_name == "Bob"

    def test_unknown_keys_are_ignored(self):
        form = validate_form({"header": {"recipientName": "Bob", "favouriteColour": "blue"}, "extra": 1})
        assert form.header.recipient_name == "Bob"

    def test_string_is_not_coerced_to_bool(self):
        """Checkbox values must be real booleans."""
        with pytest.raises(FormValidationError) as exc_info:
            validate_form({"careCoordinationType": {"sih": "true"}})

        assert "careCoordinationType.sih" in exc_info.value.field_errors

    def test_number_is_not_coerced_to_string(self):
        with pytest.raises(FormValidationError) as exc_info:
            validate_form({"header": {"recipientIdentifier": 12345}})

        assert "header.recipientIdentifier" in exc_info.value.field_errors

    def test_non_object_input_rejected(self):
        with pytest.raises(FormValidationError):
            validate_form(["not", "a", "form"])

    def test_validation_error_is_value_error(self):
        with pytest.raises(ValueError):
            validate_form({"header": "Bob"})

    def test_safe_validate_success(self, populated_form_data):
        result = safe_validate_form(populated_form_data)
        assert result.ok is True
        assert isinstance(result.value, FormRecord)
        assert result.error is None

    def test_safe_validate_failure(self):
        result = safe_validate_form({"header": {"date": None}})
        assert result.ok is False
        assert result.value is None
        assert "header.date" in result.error.field_errors


class TestFieldMetadata:
    def test_field_paths_match_schema_leaves(self):
        """The metadata table covers exactly the schema's leaves, in order."""
        assert list(FIELD_PATHS) == schema_leaf_paths()
        assert len(FIELD_PATHS) == 17

    def test_required_fields(self):
        required = [f.path for f in FORM_FIELDS if f.required]
        assert required == ["header.recipientName", "header.date"]

    def test_checkbox_fields(self):
        checkboxes = [f.path for f in FORM_FIELDS if f.kind == FieldKind.checkbox]
        assert checkboxes == ["careCoordinationType.sih", "careCoordinationType.hcbw"]

    def test_get_value_at_path(self, populated_form_data):
        form = validate_form(populated_form_data)
        assert get_value_at_path(form, "header.recipientName") == "Bob Smith"
        assert get_value_at_path(form, "careCoordinationType.sih") is True
        assert get_value_at_path(form, "header.missing") is None
        assert get_value_at_path(form, "header.recipientName.deeper") is None


class TestResultModels:
    def test_extraction_result_serializes_camel_case(self):
        result = ExtractionResult(
            form=create_empty_form(),
            confidence=[],
            extraction_method=ExtractionMethod.ocr_only,
            ollama_available=False,
            raw_text="abc",
        )
        data = result.model_dump(by_alias=True, mode="json")

        assert data["extractionMethod"] == "ocr-only"
        assert data["ollamaAvailable"] is False
        assert data["rawText"] == "abc"
        assert data["validationIssues"] is None

    def test_field_confidence_bounds(self):
        with pytest.raises(ValueError):
            FieldConfidence(field="header.date", confidence="high", ocr_confidence=120, source="ocr-only")
