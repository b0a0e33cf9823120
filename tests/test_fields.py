"""Tests for the field registry and structured-output schemas."""

import json

import pytest

from conftest import evidence_payload

from park_facts.errors import InputValidationError, SchemaValidationError
from park_facts.schemas.fields import (
    BACKFILL_FIELDS,
    FIELD_KEYS,
    FIELD_SPECS,
    SchemaVariant,
    build_schema,
    get_field_spec,
    project_single_field,
    validate_structured,
)


class TestFieldSpecs:
    def test_canonical_order(self):
        assert FIELD_KEYS == (
            "officialWebsite",
            "level",
            "speciesCount",
            "endangeredSpecies",
            "forestCoverage",
            "area",
            "establishedYear",
            "internationalCert",
            "annualVisitors",
        )

    def test_backfill_fields_exclude_official_website(self):
        assert "officialWebsite" not in BACKFILL_FIELDS
        assert len(BACKFILL_FIELDS) == 8

    def test_sentinels(self):
        assert FIELD_SPECS["officialWebsite"].sentinel == ""
        assert FIELD_SPECS["area"].sentinel == -1

    def test_international_cert_zero_is_a_value(self):
        """0 means "confirmed no"; only -1 means unknown."""
        spec = FIELD_SPECS["internationalCert"]
        assert not spec.is_missing(0)
        assert spec.is_missing(-1)

    def test_bool_never_missing(self):
        assert not FIELD_SPECS["level"].is_missing(True)

    def test_float_sentinel(self):
        assert FIELD_SPECS["forestCoverage"].is_missing(-1.0)

    def test_unknown_field(self):
        with pytest.raises(InputValidationError, match="Unknown field"):
            get_field_spec("elevation")

    def test_registry_is_read_only(self):
        with pytest.raises(TypeError):
            FIELD_SPECS["elevation"] = FIELD_SPECS["area"]


class TestBuildSchema:
    def test_bare_has_values_only(self):
        assert set(build_schema(SchemaVariant.BARE).model_fields) == set(FIELD_KEYS)

    def test_evidence_text_variant(self):
        fields = build_schema(SchemaVariant.WITH_EVIDENCE_TEXT).model_fields
        assert len(fields) == 18
        assert "areaSourceText" in fields
        assert "areaSourceUrl" not in fields

    def test_evidence_url_variant(self):
        fields = build_schema("withEvidenceTextAndUrl").model_fields
        assert len(fields) == 27
        assert "annualVisitorsSourceUrl" in fields

    def test_cached_per_variant(self):
        assert build_schema(SchemaVariant.BARE) is build_schema(SchemaVariant.BARE)

    def test_descriptions_in_json_schema(self):
        schema = build_schema(SchemaVariant.BARE).model_json_schema()
        assert "square kilometers" in schema["properties"]["area"]["description"]


class TestValidateStructured:
    def test_valid_payload(self):
        value = validate_structured(build_schema(SchemaVariant.WITH_EVIDENCE_TEXT), evidence_payload())
        assert value["establishedYear"] == 1872
        assert isinstance(value["establishedYear"], int)
        assert value["forestCoverage"] == 80.0

    def test_json_text_payload(self):
        value = validate_structured(
            build_schema(SchemaVariant.WITH_EVIDENCE_TEXT), json.dumps(evidence_payload(area=95.9))
        )
        assert value["area"] == 95.9

    def test_missing_key_rejected(self):
        payload = evidence_payload()
        del payload["areaSourceText"]
        with pytest.raises(SchemaValidationError) as exc_info:
            validate_structured(build_schema(SchemaVariant.WITH_EVIDENCE_TEXT), payload)
        assert exc_info.value.errors[0]["loc"] == ["areaSourceText"]

    def test_wrong_type_rejected(self):
        """No partial acceptance: a numeric string is not a number."""
        with pytest.raises(SchemaValidationError):
            validate_structured(build_schema(SchemaVariant.WITH_EVIDENCE_TEXT), evidence_payload(area="8983"))

    def test_invalid_json_rejected(self):
        with pytest.raises(SchemaValidationError):
            validate_structured(build_schema(SchemaVariant.BARE), "{not json")

    def test_parsing_is_idempotent(self):
        schema = build_schema(SchemaVariant.WITH_EVIDENCE_TEXT)
        text = json.dumps(evidence_payload())
        first = json.dumps(validate_structured(schema, text))
        second = json.dumps(validate_structured(schema, text))
        assert first == second


class TestProjectSingleField:
    def test_projection_keys(self):
        schema = project_single_field(build_schema(SchemaVariant.WITH_EVIDENCE_TEXT_AND_URL), "area")
        assert set(schema.model_fields) == {"area", "areaSourceText", "areaSourceUrl"}
        assert schema.__name__ == "AreaField"

    def test_projection_keeps_strict_types(self):
        schema = project_single_field(build_schema(SchemaVariant.WITH_EVIDENCE_TEXT_AND_URL), "area")
        with pytest.raises(SchemaValidationError):
            validate_structured(schema, {"area": "8983", "areaSourceText": "", "areaSourceUrl": ""})

    def test_projection_drops_unrelated_fields(self):
        schema = project_single_field(build_schema(SchemaVariant.WITH_EVIDENCE_TEXT_AND_URL), "area")
        value = validate_structured(
            schema, {"area": 8983, "areaSourceText": "x", "areaSourceUrl": "u", "level": 2}
        )
        assert "level" not in value

    def test_unknown_field(self):
        with pytest.raises(InputValidationError):
            project_single_field(build_schema(SchemaVariant.WITH_EVIDENCE_TEXT_AND_URL), "elevation")
