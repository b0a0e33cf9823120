"""Missing-field detection for extraction records."""

from typing import Sequence

from ..constants import MAX_BACKFILL_FIELDS
from ..models.park import ExtractionRecord
from ..schemas.fields import BACKFILL_FIELDS, FIELD_SPECS


def find_missing(record: ExtractionRecord) -> list[str]:
    """
    Backfillable fields whose value is still the "not found" sentinel.

    Canonical order; officialWebsite is never returned (it has no backfill path).
    """
    return [key for key in BACKFILL_FIELDS if FIELD_SPECS[key].is_missing(record.value(key))]


def should_backfill(missing: Sequence[str], limit: int = MAX_BACKFILL_FIELDS) -> bool:
    """Backfill only when something is missing and no more than limit fields are."""
    return 0 < len(missing) <= limit
