"""
Extraction result models.

ExtractionRecord holds one value per park field together with its evidence:
the verbatim excerpt it came from and the URL of the page. The flat JSON form
({area, areaSourceText, areaSourceUrl, ...}) is the contract exchanged with the
HTTP layer and the park repository.
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..schemas.fields import FIELD_SPECS, get_field_spec, source_text_key, source_url_key

FieldScalar = Union[str, int, float]


@dataclass(frozen=True)
class FieldValue:
    """One extracted value with its evidence."""

    value: FieldScalar
    evidence_text: str = ""
    evidence_url: str = ""


class ExtractionRecord:
    """
    Structured result for one park/source pair.

    Created by the text transformer, overwritten per field by the backfill
    stage, then frozen by the orchestrator before it is returned.
    """

    def __init__(self, fields: Mapping[str, FieldValue]):
        missing = [key for key in FIELD_SPECS if key not in fields]
        if missing:
            raise ValueError(f"ExtractionRecord missing fields: {missing}")
        self._fields: Dict[str, FieldValue] = {key: fields[key] for key in FIELD_SPECS}
        self._frozen = False

    @classmethod
    def from_structured(cls, data: Mapping[str, Any], source_url: str) -> "ExtractionRecord":
        """
        Build a record from a validated withEvidenceText payload.

        The evidence URL of every field with non-empty evidence text is stamped
        to source_url (the whole page came from one URL).
        """
        fields = {}
        for key in FIELD_SPECS:
            evidence_text = data.get(source_text_key(key), "") or ""
            fields[key] = FieldValue(
                value=data[key],
                evidence_text=evidence_text,
                evidence_url=source_url if evidence_text else "",
            )
        return cls(fields)

    @classmethod
    def from_flat_dict(cls, data: Mapping[str, Any]) -> "ExtractionRecord":
        """Inverse of to_flat_dict. Missing evidence keys default to ""."""
        return cls(
            {
                key: FieldValue(
                    value=data[key],
                    evidence_text=data.get(source_text_key(key), "") or "",
                    evidence_url=data.get(source_url_key(key), "") or "",
                )
                for key in FIELD_SPECS
            }
        )

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> "ExtractionRecord":
        self._frozen = True
        return self

    def get(self, key: str) -> FieldValue:
        return self._fields[get_field_spec(key).key]

    def value(self, key: str) -> FieldScalar:
        return self.get(key).value

    def set_field(self, key: str, field_value: FieldValue) -> None:
        """Overwrite one field in place (last write wins)."""
        if self._frozen:
            raise RuntimeError("ExtractionRecord is frozen")
        self._fields[get_field_spec(key).key] = field_value

    def apply_backfill(self, key: str, flat_value: Mapping[str, Any]) -> None:
        """Overwrite a field from a backfill payload {key, keySourceText, keySourceUrl}."""
        self.set_field(
            key,
            FieldValue(
                value=flat_value[key],
                evidence_text=flat_value.get(source_text_key(key), "") or "",
                evidence_url=flat_value.get(source_url_key(key), "") or "",
            ),
        )

    def to_flat_dict(self) -> Dict[str, FieldScalar]:
        """{key, keySourceText, keySourceUrl} for every field, in canonical order."""
        flat: Dict[str, FieldScalar] = {}
        for key, field_value in self._fields.items():
            flat[key] = field_value.value
            flat[source_text_key(key)] = field_value.evidence_text
            flat[source_url_key(key)] = field_value.evidence_url
        return flat

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ExtractionRecord):
            return NotImplemented
        return self._fields == other._fields

    def __repr__(self) -> str:
        values = ", ".join(f"{key}={fv.value!r}" for key, fv in self._fields.items())
        return f"ExtractionRecord({values})"


class GroundingSupport(BaseModel):
    """A generated segment linked to the retrieved source that supports it."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    text: str = Field(..., description="Verbatim segment text")
    url_index: Optional[int] = Field(None, description="Index into GroundingMetadata.urls")
    confidence_score: Optional[float] = Field(None, description="Provider confidence score")


class GroundingMetadata(BaseModel):
    """Retrieval grounding reported by the provider for a free-text call."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    urls: list[str] = Field(default_factory=list, description="URLs retrieved during generation")
    support: list[GroundingSupport] = Field(default_factory=list, description="Claim-to-source links")

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
