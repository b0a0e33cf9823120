"""
Page text -> structured park fields.

One schema-constrained call against the withEvidenceText schema. The source
URL is stamped onto every field that has evidence text.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from ..config import ExtractionSettings
from ..constants import DURATION_PRECISION
from ..errors import require_text
from ..llm.base import ModelClient
from ..llm.prompt_loader import render_prompt
from ..llm.usage import CostDetail, UsageDetail, cost_from_usage, normalize_usage
from ..models.park import ExtractionRecord
from ..schemas.fields import SchemaVariant, build_schema

logger = logging.getLogger(__name__)


@dataclass
class TransformResult:
    record: ExtractionRecord
    usage: Optional[UsageDetail]
    cost: Optional[CostDetail]
    duration_seconds: float


class ParkTextTransformer:
    """Stage 2 of the pipeline: free text -> ExtractionRecord."""

    def __init__(self, client: ModelClient, settings: Optional[ExtractionSettings] = None):
        self.client = client
        self.settings = settings or ExtractionSettings()

    def transform(self, text: str, source_url: str) -> TransformResult:
        """
        Parse page text into an ExtractionRecord.

        Args:
            text: Output of PageTextExtractor
            source_url: URL the text was read from

        Raises:
            InputValidationError: Empty text or source URL
            SchemaValidationError: Output does not match the schema
            UpstreamProviderError: The provider call failed
        """
        text = require_text(text, "text")
        source_url = require_text(source_url, "sourceUrl")

        schema = build_schema(SchemaVariant.WITH_EVIDENCE_TEXT)
        prompt = render_prompt("park_text_to_fields", text=text)

        started = time.perf_counter()
        response = self.client.generate_structured(prompt, schema=schema, max_retries=self.settings.max_retries)
        duration = round(time.perf_counter() - started, DURATION_PRECISION)

        record = ExtractionRecord.from_structured(response.value, source_url=source_url)
        usage = normalize_usage(response.usage, provider=response.provider)
        cost = cost_from_usage(usage, self.settings.structured_rates)

        logger.debug(f"Transformed page text from {source_url} in {duration}s")

        return TransformResult(record=record, usage=usage, cost=cost, duration_seconds=duration)
