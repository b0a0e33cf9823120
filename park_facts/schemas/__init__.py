"""Field registry and structured-output schemas."""

from .fields import (
    BACKFILL_FIELDS,
    FIELD_KEYS,
    FIELD_SPECS,
    FieldSpec,
    SchemaVariant,
    ValueType,
    build_schema,
    get_field_spec,
    is_backfill_field,
    project_single_field,
    source_text_key,
    source_url_key,
    validate_structured,
)

__all__ = [
    "BACKFILL_FIELDS",
    "FIELD_KEYS",
    "FIELD_SPECS",
    "FieldSpec",
    "SchemaVariant",
    "ValueType",
    "build_schema",
    "get_field_spec",
    "is_backfill_field",
    "project_single_field",
    "source_text_key",
    "source_url_key",
    "validate_structured",
]
