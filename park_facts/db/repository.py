"""Data access for the national_parks table.

Each extracted field is stored as three columns: value, evidence text and
evidence URL (e.g. area, area_source_text, area_source_url). Writes are keyed
by an explicit UniquenessPolicy; there is no default key.
"""

import re
import uuid
from dataclasses import dataclass, fields
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping

from ..constants import DURATION_PRECISION
from ..errors import ConfigurationError, InputValidationError, require_text
from ..llm.usage import sum_usage
from ..schemas.fields import FIELD_SPECS, ValueType, source_text_key, source_url_key
from .client import execute_query

if TYPE_CHECKING:
    from ..services.extraction_orchestrator import ExtractionOutcome

TABLE = "national_parks"

UNSET_KEY_MESSAGE = "PARK_UNIQUE_KEY is not set; choose 'name' or 'source_url' to persist parks."


def _column(key: str) -> str:
    """camelCase field key -> snake_case column name."""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()


# (json key, column) for the 27 field columns, in canonical order
FIELD_COLUMNS: list[tuple[str, str]] = [
    (name, _column(name))
    for key in FIELD_SPECS
    for name in (key, source_text_key(key), source_url_key(key))
]


def _escape_like(text: str) -> str:
    """Escape LIKE wildcards (MySQL's default escape character is backslash)."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _generate_uuid() -> str:
    return str(uuid.uuid4())


class UniquenessPolicy(str, Enum):
    """Which identity attribute a persisted park is keyed by."""

    NAME = "name"
    SOURCE_URL = "source_url"

    @classmethod
    def from_setting(cls, value: str | None) -> "UniquenessPolicy":
        """Parse PARK_UNIQUE_KEY. Unset is an error: the caller must choose."""
        if not value:
            raise ConfigurationError(UNSET_KEY_MESSAGE)
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ConfigurationError(
                f"PARK_UNIQUE_KEY must be one of {[p.value for p in cls]}, got {value!r}"
            ) from None


@dataclass(frozen=True)
class ParkIdentity:
    """Identity a park is persisted under."""

    name: str
    source_url: str
    country: str | None = None


@dataclass
class NationalPark:
    """national_parks row."""

    id: str
    name: str
    country: str | None = None
    wiki_url: str | None = None
    wiki_text: str | None = None
    wiki_input_token: int | None = None
    wiki_output_token: int | None = None
    wiki_url_token: int | None = None
    wiki_process_time: float | None = None
    official_website: str = ""
    official_website_source_text: str = ""
    official_website_source_url: str = ""
    # Ecological integrity
    level: float = -1
    level_source_text: str = ""
    level_source_url: str = ""
    species_count: float = -1
    species_count_source_text: str = ""
    species_count_source_url: str = ""
    endangered_species: float = -1
    endangered_species_source_text: str = ""
    endangered_species_source_url: str = ""
    forest_coverage: float = -1
    forest_coverage_source_text: str = ""
    forest_coverage_source_url: str = ""
    # Governance resilience
    area: float = -1
    area_source_text: str = ""
    area_source_url: str = ""
    established_year: float = -1
    established_year_source_text: str = ""
    established_year_source_url: str = ""
    international_cert: float = -1
    international_cert_source_text: str = ""
    international_cert_source_url: str = ""
    # Nature immersion
    annual_visitors: float = -1
    annual_visitors_source_text: str = ""
    annual_visitors_source_url: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "NationalPark":
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in row.items():
            if key not in known:
                continue
            values[key] = float(value) if isinstance(value, Decimal) else value
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        """camelCase API shape."""
        data = {
            "id": self.id,
            "name": self.name,
            "country": self.country,
            "wiki": self.wiki_text,
            "wikiUrl": self.wiki_url,
            "wikiInputToken": self.wiki_input_token,
            "wikiOutputToken": self.wiki_output_token,
            "wikiUrlToken": self.wiki_url_token,
            "wikiProcessTime": self.wiki_process_time,
        }
        for key, column in FIELD_COLUMNS:
            data[key] = getattr(self, column)
        data["createdAt"] = self.created_at.isoformat() if self.created_at else None
        data["updatedAt"] = self.updated_at.isoformat() if self.updated_at else None
        return data


def _as_number(value: Any) -> float | int:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value != value:
        return -1
    return value


def _as_string(value: Any) -> str:
    return value if isinstance(value, str) else ""


def park_row_from_outcome(outcome: "ExtractionOutcome") -> dict[str, Any]:
    """Map an extraction outcome onto national_parks column values.

    Values of the wrong type are stored as the field's "not found" value
    (-1 for numbers, "" for strings).
    """
    flat = outcome.record.to_flat_dict()
    # Token counts and process time cover the page-text and transform calls only
    usage = sum_usage([outcome.text_usage, outcome.json_usage])

    row: dict[str, Any] = {
        "wiki_text": outcome.text,
        "wiki_url": outcome.source_url,
        "wiki_input_token": usage.input_tokens if usage else None,
        "wiki_output_token": usage.output_tokens if usage else None,
        "wiki_url_token": usage.url_tokens if usage else None,
        "wiki_process_time": round(
            outcome.text_duration_seconds + outcome.json_duration_seconds, DURATION_PRECISION
        ),
    }
    for key, spec in FIELD_SPECS.items():
        coerce = _as_string if spec.value_type is ValueType.STRING else _as_number
        row[_column(key)] = coerce(flat.get(key))
        row[_column(source_text_key(key))] = _as_string(flat.get(source_text_key(key)))
        row[_column(source_url_key(key))] = _as_string(flat.get(source_url_key(key)))
    return row


class NationalParkRepository:
    """national_parks table operations."""

    # Columns that can be inserted/updated
    COLUMNS = [
        "name",
        "country",
        "wiki_url",
        "wiki_text",
        "wiki_input_token",
        "wiki_output_token",
        "wiki_url_token",
        "wiki_process_time",
    ] + [column for _, column in FIELD_COLUMNS]

    def __init__(self, unique_by: UniquenessPolicy | str | None = None):
        """
        Args:
            unique_by: Key for create_or_update. Reads work without one; writes
                raise ConfigurationError until it is set.
        """
        self.unique_by = UniquenessPolicy.from_setting(unique_by) if unique_by else None

    def _require_policy(self) -> UniquenessPolicy:
        if self.unique_by is None:
            raise ConfigurationError(UNSET_KEY_MESSAGE)
        return self.unique_by

    def get(self, park_id: str) -> NationalPark | None:
        """Get park by id."""
        row = execute_query(f"SELECT * FROM {TABLE} WHERE id = %s", (park_id,), fetch="one")
        return NationalPark.from_row(row) if row else None

    def get_by_name(self, name: str) -> NationalPark | None:
        row = execute_query(f"SELECT * FROM {TABLE} WHERE name = %s LIMIT 1", (name,), fetch="one")
        return NationalPark.from_row(row) if row else None

    def get_by_wiki_url(self, wiki_url: str) -> NationalPark | None:
        row = execute_query(f"SELECT * FROM {TABLE} WHERE wiki_url = %s LIMIT 1", (wiki_url,), fetch="one")
        return NationalPark.from_row(row) if row else None

    def find_existing(self, identity: ParkIdentity) -> NationalPark | None:
        """Look up a park by the attribute this repository is keyed on."""
        policy = self._require_policy()
        if policy is UniquenessPolicy.NAME:
            return self.get_by_name(require_text(identity.name, "parkName"))
        return self.get_by_wiki_url(require_text(identity.source_url, "wikiUrl"))

    def create_or_update(self, identity: ParkIdentity, values: Mapping[str, Any]) -> tuple[NationalPark, bool]:
        """Insert a park, or update the one sharing its unique key.

        Args:
            identity: Name, source URL and optional country
            values: Column values (see park_row_from_outcome); unknown keys are dropped

        Returns:
            (persisted park, True if a new row was created)
        """
        self._require_policy()
        name = require_text(identity.name, "parkName")
        source_url = require_text(identity.source_url, "wikiUrl")

        # Filter to known columns only (prevents SQL injection via dict keys)
        data = {k: v for k, v in values.items() if k in self.COLUMNS}
        data["name"] = name
        data["wiki_url"] = source_url
        if identity.country:
            data["country"] = identity.country.strip()

        existing = self.find_existing(identity)
        if existing:
            set_clause = ", ".join(f"`{column}` = %s" for column in data)
            execute_query(
                f"UPDATE {TABLE} SET {set_clause}, updated_at = CURRENT_TIMESTAMP WHERE id = %s",
                tuple(data.values()) + (existing.id,),
                fetch="none",
            )
            park_id, created = existing.id, False
        else:
            park_id, created = _generate_uuid(), True
            data = {"id": park_id, **data}
            placeholders = ", ".join(["%s"] * len(data))
            execute_query(
                f"INSERT INTO {TABLE} ({', '.join(f'`{c}`' for c in data)}) VALUES ({placeholders})",
                tuple(data.values()),
                fetch="none",
            )

        park = self.get(park_id)
        if park is None:
            raise RuntimeError(f"Park {park_id} vanished after write")
        return park, created

    def delete(self, park_id: str) -> NationalPark:
        """Delete a park by id.

        Raises:
            InputValidationError: Empty id
            KeyError: No park with this id
        """
        park_id = require_text(park_id, "id")
        existing = self.get(park_id)
        if existing is None:
            raise KeyError(park_id)
        execute_query(f"DELETE FROM {TABLE} WHERE id = %s", (park_id,), fetch="none")
        return existing

    def search(self, search: str | None = None, skip: int = 0, take: int = 20) -> tuple[list[NationalPark], int]:
        """Page through parks, newest first.

        search matches name, country, wiki URL or official website (substring,
        case-insensitive under the table collation). % and _ in search
        match literally.
        """
        if skip < 0 or take <= 0:
            raise InputValidationError(f"Invalid paging: skip={skip}, take={take}")

        where = ""
        params: tuple = ()
        if search and search.strip():
            pattern = f"%{_escape_like(search.strip())}%"
            where = "WHERE name LIKE %s OR country LIKE %s OR wiki_url LIKE %s OR official_website LIKE %s"
            params = (pattern,) * 4

        rows = execute_query(
            f"SELECT * FROM {TABLE} {where} ORDER BY created_at DESC LIMIT %s OFFSET %s",
            params + (take, skip),
        )
        total_row = execute_query(f"SELECT COUNT(*) AS cnt FROM {TABLE} {where}", params, fetch="one")

        items = [NationalPark.from_row(row) for row in rows or []]
        return items, int(total_row["cnt"]) if total_row else 0

    def count(self) -> int:
        row = execute_query(f"SELECT COUNT(*) AS cnt FROM {TABLE}", fetch="one")
        return int(row["cnt"]) if row else 0
