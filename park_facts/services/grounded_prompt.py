"""
Ad-hoc prompt with url_context and google_search enabled.

Used to check what a single grounded call costs: returns the answer text with
its usage, cost, response time and grounding.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..config import ExtractionSettings
from ..errors import require_text
from ..llm.base import ModelClient, ModelTool
from ..llm.usage import CostDetail, UsageDetail, cost_from_usage, normalize_usage
from ..models.park import GroundingMetadata
from .page_text_extractor import parse_grounding_metadata

logger = logging.getLogger(__name__)


@dataclass
class GroundedAnswer:
    text: str
    usage: Optional[UsageDetail]
    cost: Optional[CostDetail]
    response_time_ms: int
    grounding_metadata: Optional[GroundingMetadata] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "responseTimeMs": self.response_time_ms,
            "usage": self.usage.to_dict() if self.usage else None,
            "cost": self.cost.to_dict() if self.cost else None,
            "groundingMetadata": self.grounding_metadata.to_dict() if self.grounding_metadata else None,
        }


class GroundedPromptRunner:
    """Run one free-text prompt with both retrieval tools."""

    def __init__(self, client: ModelClient, settings: Optional[ExtractionSettings] = None):
        self.client = client
        self.settings = settings or ExtractionSettings()

    def run(self, prompt: str) -> GroundedAnswer:
        """
        Raises:
            InputValidationError: Empty prompt (no call issued)
            UpstreamProviderError: The provider call failed
        """
        prompt = require_text(prompt, "prompt")

        started = time.perf_counter()
        response = self.client.generate_free_text(
            prompt,
            tools=[ModelTool.URL_CONTEXT, ModelTool.GOOGLE_SEARCH],
            max_retries=self.settings.max_retries,
        )
        response_time_ms = int((time.perf_counter() - started) * 1000)

        usage = normalize_usage(response.usage, provider=response.provider)
        cost = cost_from_usage(usage, self.settings.text_rates)
        logger.info(f"Grounded prompt answered in {response_time_ms}ms ({len(response.text)} chars)")

        return GroundedAnswer(
            text=response.text,
            usage=usage,
            cost=cost,
            response_time_ms=response_time_ms,
            grounding_metadata=parse_grounding_metadata(response.provider_metadata),
        )
