"""
Missing-field backfill using Gemini google_search + url_context.

For one field at a time: a free-text call with web search constrained to a
strict three-line answer, then a schema-constrained call that parses that
answer into {value, evidence text, evidence URL}.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from ..config import ExtractionSettings
from ..constants import DURATION_PRECISION
from ..errors import InputValidationError, MissingModelOutput, require_text
from ..llm.base import ModelClient, ModelTool
from ..llm.prompt_loader import render_prompt
from ..llm.usage import CostDetail, UsageDetail, cost_from_usage, normalize_usage, sum_costs, sum_usage
from ..schemas.fields import (
    SchemaVariant,
    build_schema,
    get_field_spec,
    is_backfill_field,
    project_single_field,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ThreeLineAnswer:
    """A first-pass answer in the `<field>: / SourceText: / SourceURL:` grammar."""

    summary: str
    source_text: str
    source_url: str


def parse_three_line_answer(text: str, field: str) -> Optional[ThreeLineAnswer]:
    """
    Parse the strict three-line answer grammar.

    Returns None when the text does not follow it (wrong line count or prefixes).
    """
    lines = text.strip().splitlines()
    if len(lines) != 3:
        return None

    prefixes = (f"{field}:", "SourceText:", "SourceURL:")
    parts = []
    for line, prefix in zip(lines, prefixes):
        if not line.startswith(prefix):
            return None
        parts.append(line[len(prefix) :].strip())

    return ThreeLineAnswer(summary=parts[0], source_text=parts[1], source_url=parts[2])


@dataclass
class BackfillResult:
    """Result of backfilling one field."""

    field: str
    value: Dict[str, Any]  # {field, fieldSourceText, fieldSourceUrl}
    usage: Optional[UsageDetail]
    cost: Optional[CostDetail]
    duration_seconds: float
    raw_first_pass_text: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON response shape."""
        return {
            "field": self.field,
            "value": self.value,
            "usage": self.usage.to_dict() if self.usage else None,
            "cost": self.cost.to_dict() if self.cost else None,
            "durationSeconds": self.duration_seconds,
            "rawFirstPassText": self.raw_first_pass_text,
        }


class FieldBackfillService:
    """
    Resolve one missing park field with web search.

    Example:
        service = FieldBackfillService(client, settings)
        result = service.backfill("Yellowstone National Park", "area")
        print(result.value)  # {"area": 8983, "areaSourceText": "...", "areaSourceUrl": "https://..."}
    """

    def __init__(self, client: ModelClient, settings: Optional[ExtractionSettings] = None):
        self.client = client
        self.settings = settings or ExtractionSettings()

    def backfill(self, park_name: str, field: str) -> BackfillResult:
        """
        Backfill a single field.

        Args:
            park_name: Name of the park
            field: A backfillable field key (not officialWebsite)

        Raises:
            InputValidationError: Empty park name or non-backfillable field
            MissingModelOutput: The search call returned empty text
            SchemaValidationError: The parse call output does not match the schema
            UpstreamProviderError: A provider call failed
        """
        park_name = require_text(park_name, "parkName")
        field = require_text(field, "field")
        spec = get_field_spec(field)
        if not is_backfill_field(field):
            raise InputValidationError(f"Field {field!r} cannot be backfilled.")

        started = time.perf_counter()

        search_prompt = render_prompt(
            "field_search",
            park_name=park_name,
            field=field,
            field_description=spec.description,
        )
        logger.info(f"Backfilling {field} for: {park_name}")
        search_response = self.client.generate_free_text(
            search_prompt,
            tools=[ModelTool.GOOGLE_SEARCH, ModelTool.URL_CONTEXT],
            max_retries=self.settings.max_retries,
        )
        first_pass = search_response.text
        if not first_pass:
            logger.error(f"Empty search answer for {field} of {park_name}")
            raise MissingModelOutput(f"Missing search response for field {field}.")

        if parse_three_line_answer(first_pass, field) is None:
            logger.warning(f"Search answer for {field} of {park_name} does not follow the 3-line format")
            logger.debug(f"Raw answer (first 500 chars): {first_pass[:500]}")

        schema = project_single_field(build_schema(SchemaVariant.WITH_EVIDENCE_TEXT_AND_URL), field)
        parse_response = self.client.generate_structured(
            render_prompt("field_search_to_json", field=field, text=first_pass),
            schema=schema,
            max_retries=self.settings.max_retries,
        )

        duration = round(time.perf_counter() - started, DURATION_PRECISION)
        search_usage = normalize_usage(search_response.usage, provider=search_response.provider)
        parse_usage = normalize_usage(parse_response.usage, provider=parse_response.provider)
        usage = sum_usage([search_usage, parse_usage])
        cost = sum_costs(
            [
                cost_from_usage(search_usage, self.settings.text_rates),
                cost_from_usage(parse_usage, self.settings.structured_rates),
            ]
        )

        logger.info(
            f"Backfill {field} for {park_name}: value={parse_response.value.get(field)!r}, "
            f"cost=${cost.usd.total if cost else 0.0:.6f}, {duration}s"
        )

        return BackfillResult(
            field=field,
            value=dict(parse_response.value),
            usage=usage,
            cost=cost,
            duration_seconds=duration,
            raw_first_pass_text=first_pass,
        )

    def backfill_many(self, park_name: str, fields: Iterable[str]) -> list[BackfillResult]:
        """Backfill fields one after another (never concurrently)."""
        return [self.backfill(park_name, field) for field in fields]
