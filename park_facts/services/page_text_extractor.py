"""
Page-text extraction using Gemini url_context.

Reads one reference page (usually Wikipedia) for a park and returns a
free-text summary of the nine park facts, each with a verbatim evidence
excerpt, plus usage/cost/timing and the retrieval grounding the provider
reported.
"""

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional

from ..config import ExtractionSettings
from ..constants import DURATION_PRECISION
from ..errors import MissingModelOutput, require_text
from ..llm.base import ModelClient, ModelTool
from ..llm.prompt_loader import render_prompt
from ..llm.usage import CostDetail, UsageDetail, cost_from_usage, normalize_usage
from ..models.park import GroundingMetadata, GroundingSupport

logger = logging.getLogger(__name__)


@dataclass
class PageTextResult:
    """Raw page text plus accounting for the call that produced it."""

    text: str
    usage: Optional[UsageDetail]
    cost: Optional[CostDetail]
    duration_seconds: float
    grounding_metadata: Optional[GroundingMetadata] = None
    raw_grounding: Optional[dict] = None


def _get(obj: Any, name: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def _chunk_uri(chunk: Any) -> Optional[str]:
    """Prefer the retrieved-context URI, fall back to the web URI."""
    uri = _get(_get(chunk, "retrieved_context"), "uri") or _get(_get(chunk, "web"), "uri")
    return uri if isinstance(uri, str) else None


def _first(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def parse_grounding_metadata(raw: Any) -> Optional[GroundingMetadata]:
    """
    Map provider grounding metadata onto GroundingMetadata.

    Chunks become URLs; supports become {segment text, first chunk index,
    first confidence score}. Supports without segment text are dropped.

    Args:
        raw: Grounding metadata (mapping or object) from the provider

    Returns:
        GroundingMetadata, or None when the provider reported nothing
    """
    if not raw:
        return None

    urls = []
    for chunk in _get(raw, "grounding_chunks") or []:
        uri = _chunk_uri(chunk)
        if uri is not None:
            urls.append(uri)

    support = []
    for item in _get(raw, "grounding_supports") or []:
        text = _get(_get(item, "segment"), "text")
        if not text:
            continue
        url_index = _first(_get(item, "grounding_chunk_indices"))
        confidence = _first(_get(item, "confidence_scores"))
        support.append(
            GroundingSupport(
                text=text,
                url_index=url_index if isinstance(url_index, int) else None,
                confidence_score=float(confidence) if isinstance(confidence, (int, float)) else None,
            )
        )

    return GroundingMetadata(urls=urls, support=support)


class PageTextExtractor:
    """
    Stage 1 of the pipeline: reference page -> free-text fact summary.

    Example:
        extractor = PageTextExtractor(client, settings)
        result = extractor.extract("Yellowstone National Park", "https://en.wikipedia.org/wiki/Yellowstone_National_Park")
        print(result.text)
    """

    def __init__(self, client: ModelClient, settings: Optional[ExtractionSettings] = None):
        self.client = client
        self.settings = settings or ExtractionSettings()

    def extract(self, park_name: str, reference_url: str) -> PageTextResult:
        """
        Summarize the park facts found on reference_url.

        Raises:
            InputValidationError: Empty park name or URL (no call issued)
            MissingModelOutput: The model returned empty text
            UpstreamProviderError: The provider call failed
        """
        park_name = require_text(park_name, "parkName")
        reference_url = require_text(reference_url, "wikiUrl")

        prompt = render_prompt("park_page_text", park_name=park_name, reference_url=reference_url)

        logger.info(f"Extracting page text for: {park_name} ({reference_url})")
        started = time.perf_counter()
        response = self.client.generate_free_text(
            prompt,
            tools=[ModelTool.URL_CONTEXT],
            max_retries=self.settings.max_retries,
        )

        if not response.text:
            logger.error(f"Empty page text for {park_name} from {reference_url}")
            raise MissingModelOutput("Missing text response from model.")

        duration = round(time.perf_counter() - started, DURATION_PRECISION)
        usage = normalize_usage(response.usage, provider=response.provider)
        cost = cost_from_usage(usage, self.settings.text_rates)
        grounding = parse_grounding_metadata(response.provider_metadata)

        logger.info(
            f"Page text for {park_name}: {len(response.text)} chars, "
            f"{len(grounding.urls) if grounding else 0} grounding urls, {duration}s"
        )

        return PageTextResult(
            text=response.text,
            usage=usage,
            cost=cost,
            duration_seconds=duration,
            grounding_metadata=grounding,
            raw_grounding=response.provider_metadata,
        )
