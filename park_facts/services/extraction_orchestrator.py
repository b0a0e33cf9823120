"""
Extraction pipeline entry point.

    START -> TEXT_EXTRACTED -> FIELDS_TRANSFORMED
          -> [MISSING_CHECKED -> BACKFILLED]? -> DONE

Stages run strictly in sequence within a run. Backfill runs only when between
1 and max_backfill_fields (3) fields are missing; above that it is skipped
entirely to bound cost. A failure at any stage aborts the run; no partial
record is returned.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from ..config import ExtractionSettings
from ..constants import DURATION_PRECISION
from ..errors import ParkExtractionError, require_text
from ..llm.base import ModelClient
from ..llm.usage import CostDetail, UsageDetail, sum_costs, sum_usage
from ..models.park import ExtractionRecord, GroundingMetadata
from .field_backfill_service import BackfillResult, FieldBackfillService
from .missing_fields import find_missing, should_backfill
from .page_text_extractor import PageTextExtractor
from .park_text_transformer import ParkTextTransformer

logger = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    START = "START"
    TEXT_EXTRACTED = "TEXT_EXTRACTED"
    FIELDS_TRANSFORMED = "FIELDS_TRANSFORMED"
    MISSING_CHECKED = "MISSING_CHECKED"
    BACKFILLED = "BACKFILLED"
    DONE = "DONE"


def _usage_dict(usage: Optional[UsageDetail]) -> Optional[Dict[str, Any]]:
    return usage.to_dict() if usage else None


def _cost_dict(cost: Optional[CostDetail]) -> Optional[Dict[str, Any]]:
    return cost.to_dict() if cost else None


@dataclass
class ExtractionOutcome:
    """Final record plus the usage/cost/timing of every stage."""

    park_name: str
    source_url: str
    text: str
    record: ExtractionRecord
    text_usage: Optional[UsageDetail]
    text_cost: Optional[CostDetail]
    text_duration_seconds: float
    json_usage: Optional[UsageDetail]
    json_cost: Optional[CostDetail]
    json_duration_seconds: float
    grounding_metadata: Optional[GroundingMetadata] = None
    missing_fields: list[str] = field(default_factory=list)
    backfill_results: list[BackfillResult] = field(default_factory=list)
    backfill_skipped: bool = False
    backfill_usage: Optional[UsageDetail] = None
    backfill_cost: Optional[CostDetail] = None
    backfill_duration_seconds: Optional[float] = None
    total_usage: Optional[UsageDetail] = None
    total_cost: Optional[CostDetail] = None
    total_duration_seconds: float = 0.0

    @property
    def backfilled_fields(self) -> list[str]:
        return [result.field for result in self.backfill_results]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON response shape."""
        return {
            "parkName": self.park_name,
            "sourceUrl": self.source_url,
            "text": self.text,
            "json": self.record.to_flat_dict(),
            "textUsage": _usage_dict(self.text_usage),
            "textCost": _cost_dict(self.text_cost),
            "textDurationSeconds": self.text_duration_seconds,
            "jsonUsage": _usage_dict(self.json_usage),
            "jsonCost": _cost_dict(self.json_cost),
            "jsonDurationSeconds": self.json_duration_seconds,
            "groundingMetadata": self.grounding_metadata.to_dict() if self.grounding_metadata else None,
            "missingFields": list(self.missing_fields),
            "googleSearchSkipped": self.backfill_skipped,
            "googleSearchDetails": [result.to_dict() for result in self.backfill_results],
            "googleSearchUsage": _usage_dict(self.backfill_usage),
            "googleSearchCost": _cost_dict(self.backfill_cost),
            "googleSearchDurationSeconds": self.backfill_duration_seconds,
            "totalUsage": _usage_dict(self.total_usage),
            "totalCost": _cost_dict(self.total_cost),
            "totalDurationSeconds": self.total_duration_seconds,
        }


class ExtractionOrchestrator:
    """
    Runs the full extraction for one park/source pair.

    Holds no per-run state, so one instance can serve concurrent runs.

    Example:
        orchestrator = ExtractionOrchestrator(client, settings)
        outcome = orchestrator.run("Yellowstone National Park", "https://en.wikipedia.org/wiki/Yellowstone_National_Park")
        print(outcome.record.to_flat_dict())
        print(outcome.total_cost.usd.total)
    """

    def __init__(self, client: ModelClient, settings: Optional[ExtractionSettings] = None):
        self.settings = settings or ExtractionSettings()
        self.extractor = PageTextExtractor(client, self.settings)
        self.transformer = ParkTextTransformer(client, self.settings)
        self.backfill_service = FieldBackfillService(client, self.settings)

    def run(self, park_name: str, reference_url: str) -> ExtractionOutcome:
        """
        Extract, transform, and (when warranted) backfill.

        Raises:
            ParkExtractionError: Any stage failure, unchanged
        """
        park_name = require_text(park_name, "parkName")
        reference_url = require_text(reference_url, "wikiUrl")

        stage = PipelineStage.START
        try:
            page = self.extractor.extract(park_name, reference_url)
            stage = PipelineStage.TEXT_EXTRACTED

            transformed = self.transformer.transform(page.text, reference_url)
            record = transformed.record
            stage = PipelineStage.FIELDS_TRANSFORMED

            missing = find_missing(record)
            stage = PipelineStage.MISSING_CHECKED

            backfill_results: list[BackfillResult] = []
            skipped = False
            if should_backfill(missing, self.settings.max_backfill_fields):
                logger.info(f"{park_name}: backfilling {len(missing)} field(s): {missing}")
                for key in missing:
                    result = self.backfill_service.backfill(park_name, key)
                    record.apply_backfill(key, result.value)
                    backfill_results.append(result)
                stage = PipelineStage.BACKFILLED
            elif missing:
                skipped = True
                logger.info(
                    f"{park_name}: {len(missing)} missing fields exceeds limit of "
                    f"{self.settings.max_backfill_fields}, skipping backfill"
                )
        except ParkExtractionError as e:
            logger.error(f"Extraction failed for {park_name} after stage {stage.value}: {type(e).__name__}: {e}")
            raise

        record.freeze()

        backfill_usage = sum_usage(result.usage for result in backfill_results) if backfill_results else None
        backfill_cost = sum_costs(result.cost for result in backfill_results)
        backfill_duration = (
            round(sum(result.duration_seconds for result in backfill_results), DURATION_PRECISION)
            if backfill_results
            else None
        )
        total_usage = sum_usage(
            [page.usage, transformed.usage, *(result.usage for result in backfill_results)]
        )
        total_duration = round(
            page.duration_seconds + transformed.duration_seconds + (backfill_duration or 0.0),
            DURATION_PRECISION,
        )

        outcome = ExtractionOutcome(
            park_name=park_name,
            source_url=reference_url,
            text=page.text,
            record=record,
            text_usage=page.usage,
            text_cost=page.cost,
            text_duration_seconds=page.duration_seconds,
            json_usage=transformed.usage,
            json_cost=transformed.cost,
            json_duration_seconds=transformed.duration_seconds,
            grounding_metadata=page.grounding_metadata,
            missing_fields=missing,
            backfill_results=backfill_results,
            backfill_skipped=skipped,
            backfill_usage=backfill_usage,
            backfill_cost=backfill_cost,
            backfill_duration_seconds=backfill_duration,
            total_usage=total_usage,
            total_cost=sum_costs([page.cost, transformed.cost, backfill_cost]),
            total_duration_seconds=total_duration,
        )

        logger.info(
            f"{PipelineStage.DONE.value}: {park_name} | missing={len(missing)} "
            f"backfilled={len(backfill_results)} | cost=${outcome.total_cost.usd.total if outcome.total_cost else 0.0:.6f}"
        )
        return outcome
