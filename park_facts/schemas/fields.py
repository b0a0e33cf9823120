"""Field registry for park fact extraction.

Declares the canonical set of extractable park attributes, their "not found"
sentinels, and the pydantic schemas used to validate structured model output.

Sentinel comparison happens only through FieldSpec.is_missing; nothing else in
the pipeline compares raw -1 / "" literals.
"""

import json
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Mapping, Union

from pydantic import BaseModel, Field, StrictFloat, StrictInt, StrictStr, ValidationError, create_model

from ..errors import InputValidationError, SchemaValidationError

# Numbers stay int when the model returns an int (e.g. 1872) and float otherwise (e.g. 95.9).
Number = Union[StrictInt, StrictFloat]


class ValueType(str, Enum):
    STRING = "string"
    NUMBER = "number"


class SchemaVariant(str, Enum):
    """Which companion fields accompany each value."""

    BARE = "bare"
    WITH_EVIDENCE_TEXT = "withEvidenceText"
    WITH_EVIDENCE_TEXT_AND_URL = "withEvidenceTextAndUrl"


@dataclass(frozen=True)
class FieldSpec:
    """Declaration of one extractable park attribute."""

    key: str
    value_type: ValueType
    description: str
    label: str
    backfillable: bool = True

    @property
    def sentinel(self) -> Union[str, int]:
        """The value meaning "not stated in the source"."""
        return "" if self.value_type is ValueType.STRING else -1

    def is_missing(self, value: Any) -> bool:
        """Whether value is this field's sentinel."""
        if self.value_type is ValueType.STRING:
            return value == ""
        # bool is an int subclass; True/False are never sentinels
        return not isinstance(value, bool) and isinstance(value, (int, float)) and value == -1

    @property
    def python_type(self) -> Any:
        return StrictStr if self.value_type is ValueType.STRING else Number


_SPECS = (
    FieldSpec(
        key="officialWebsite",
        value_type=ValueType.STRING,
        description="Official website URL of the park. Return an empty string if not found.",
        label="Official website",
        backfillable=False,
    ),
    # Ecological integrity
    FieldSpec(
        key="level",
        value_type=ValueType.NUMBER,
        description="Level of the park: 2 if it is a World Heritage site, otherwise 1. Return -1 if not stated.",
        label="Level (World Heritage = 2, otherwise 1)",
    ),
    FieldSpec(
        key="speciesCount",
        value_type=ValueType.NUMBER,
        description=(
            "Total number of species in the park, including ALL ANIMAL and PLANT species. "
            "If the text gives separate counts for different groups (e.g. mammals, birds, fish, "
            "amphibians, reptiles, plants), sum them up. Return -1 if not stated."
        ),
        label="Species count",
    ),
    FieldSpec(
        key="endangeredSpecies",
        value_type=ValueType.NUMBER,
        description="Count of endangered species listed in the IUCN Red List. Return -1 if not stated.",
        label="Endangered species count",
    ),
    FieldSpec(
        key="forestCoverage",
        value_type=ValueType.NUMBER,
        description="Forest coverage percentage with one decimal place (e.g., 95.9). Return -1 if not stated.",
        label="Forest coverage (%)",
    ),
    # Governance resilience
    FieldSpec(
        key="area",
        value_type=ValueType.NUMBER,
        description=(
            "Total area of the park in square kilometers. Convert to km² if another unit is provided. "
            "Return -1 if missing."
        ),
        label="Area (km²)",
    ),
    FieldSpec(
        key="establishedYear",
        value_type=ValueType.NUMBER,
        description=(
            "Year the park was established; use four digits format. Return -1 if the text does not contain it."
        ),
        label="Established year",
    ),
    FieldSpec(
        key="internationalCert",
        value_type=ValueType.NUMBER,
        description=(
            "Whether the park is a World Heritage site or Biosphere Reserve (1=yes, 0=no). "
            "Return -1 if not stated."
        ),
        label="International certification (1=yes, 0=no)",
    ),
    # Nature immersion
    FieldSpec(
        key="annualVisitors",
        value_type=ValueType.NUMBER,
        description=(
            "Annual visitors as an integer count of ten-thousands of people. Return -1 if not stated."
        ),
        label="Annual visitors (ten-thousands)",
    ),
)

FIELD_SPECS: Mapping[str, FieldSpec] = MappingProxyType({spec.key: spec for spec in _SPECS})
FIELD_KEYS: tuple[str, ...] = tuple(FIELD_SPECS)
BACKFILL_FIELDS: tuple[str, ...] = tuple(spec.key for spec in _SPECS if spec.backfillable)


def source_text_key(key: str) -> str:
    return f"{key}SourceText"


def source_url_key(key: str) -> str:
    return f"{key}SourceUrl"


def get_field_spec(key: str) -> FieldSpec:
    """Look up a FieldSpec, raising InputValidationError for unknown keys."""
    try:
        return FIELD_SPECS[key]
    except KeyError:
        raise InputValidationError(f"Unknown field: {key!r}. Available: {list(FIELD_KEYS)}") from None


def is_backfill_field(key: str) -> bool:
    return key in BACKFILL_FIELDS


@lru_cache(maxsize=None)
def build_schema(variant: SchemaVariant) -> type[BaseModel]:
    """
    Build the validation schema for a variant.

    Every field key maps to its value type. WITH_EVIDENCE_TEXT adds a
    <key>SourceText string per field; WITH_EVIDENCE_TEXT_AND_URL also adds
    <key>SourceUrl. All keys are required.

    Args:
        variant: Schema variant

    Returns:
        pydantic model class (cached per variant)
    """
    variant = SchemaVariant(variant)
    definitions: dict[str, Any] = {}

    for spec in FIELD_SPECS.values():
        definitions[spec.key] = (spec.python_type, Field(..., description=spec.description))
        if variant in (SchemaVariant.WITH_EVIDENCE_TEXT, SchemaVariant.WITH_EVIDENCE_TEXT_AND_URL):
            definitions[source_text_key(spec.key)] = (
                StrictStr,
                Field(..., description=f"Evidence text for {spec.key}; empty string if not found."),
            )
        if variant is SchemaVariant.WITH_EVIDENCE_TEXT_AND_URL:
            definitions[source_url_key(spec.key)] = (
                StrictStr,
                Field(..., description=f"URL source for {spec.key}; empty string if not found."),
            )

    name = {
        SchemaVariant.BARE: "ParkDetails",
        SchemaVariant.WITH_EVIDENCE_TEXT: "ParkDetailsWithEvidence",
        SchemaVariant.WITH_EVIDENCE_TEXT_AND_URL: "ParkDetailsWithEvidenceUrl",
    }[variant]
    return create_model(name, **definitions)


def project_single_field(full_schema: type[BaseModel], key: str) -> type[BaseModel]:
    """
    Restrict a schema to {key, <key>SourceText, <key>SourceUrl}.

    Used when backfilling exactly one field so the constrained call cannot
    populate unrelated fields.
    """
    get_field_spec(key)
    wanted = (key, source_text_key(key), source_url_key(key))
    definitions = {
        name: (info.rebuild_annotation(), Field(..., description=info.description))
        for name, info in full_schema.model_fields.items()
        if name in wanted
    }
    return create_model(f"{key[0].upper()}{key[1:]}Field", **definitions)


def validate_structured(schema: type[BaseModel], payload: Union[str, bytes, Mapping[str, Any]]) -> dict[str, Any]:
    """
    Validate model output against a schema.

    Args:
        schema: pydantic model class from build_schema / project_single_field
        payload: JSON text or an already-decoded mapping

    Returns:
        Validated values as a plain dict (schema fields only)

    Raises:
        SchemaValidationError: Wrong type, missing key, or invalid JSON
    """
    try:
        if isinstance(payload, (str, bytes)):
            validated = schema.model_validate_json(payload)
        else:
            validated = schema.model_validate(dict(payload))
    except ValidationError as e:
        raise SchemaValidationError(
            f"Model output does not match {schema.__name__}: {e.error_count()} error(s)",
            errors=json.loads(e.json()),
        ) from e
    return validated.model_dump()
