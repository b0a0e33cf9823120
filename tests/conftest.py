"""Shared fixtures for park_facts tests.

No test here reaches a model provider or a database: model calls go through
FakeModelClient and repository tests patch execute_query.
"""

import sys
from collections import deque
from pathlib import Path
from typing import Any, Sequence

import pytest

# Add project root to path so tests run without an install
sys.path.insert(0, str(Path(__file__).parent.parent))

from park_facts.config import ExtractionSettings  # noqa: E402
from park_facts.llm.base import FreeTextResponse, ModelTool, StructuredResponse  # noqa: E402
from park_facts.llm.usage import UsageProvider  # noqa: E402
from park_facts.schemas.fields import validate_structured  # noqa: E402

YELLOWSTONE = "Yellowstone National Park"
YELLOWSTONE_URL = "https://en.wikipedia.org/wiki/Yellowstone_National_Park"


class FakeModelClient:
    """Scripted ModelClient: returns queued responses in order and records every call.

    Structured payloads are validated against the requested schema, like the
    production client does.
    """

    def __init__(self, free_text: Sequence[Any] = (), structured: Sequence[Any] = ()):
        self.free_text = deque(free_text)
        self.structured = deque(structured)
        self.free_text_calls: list[dict] = []
        self.structured_calls: list[dict] = []

    def generate_free_text(self, prompt: str, tools: Sequence[ModelTool] = (), max_retries: int = 1):
        self.free_text_calls.append({"prompt": prompt, "tools": list(tools), "max_retries": max_retries})
        item = self.free_text.popleft()
        if isinstance(item, Exception):
            raise item
        if isinstance(item, FreeTextResponse):
            return item
        return FreeTextResponse(text=item, usage=None, provider=UsageProvider.GOOGLE)

    def generate_structured(self, prompt: str, schema, max_retries: int = 1):
        self.structured_calls.append({"prompt": prompt, "schema": schema, "max_retries": max_retries})
        item = self.structured.popleft()
        if isinstance(item, Exception):
            raise item
        usage = None
        if isinstance(item, tuple):
            item, usage = item
        return StructuredResponse(
            value=validate_structured(schema, item),
            usage=usage,
            provider=UsageProvider.LITELLM,
        )


def google_usage(prompt: int, candidates: int, total: int) -> dict:
    """A Google GenAI usage_metadata payload."""
    return {"prompt_token_count": prompt, "candidates_token_count": candidates, "total_token_count": total}


def litellm_usage(prompt: int, completion: int) -> dict:
    """An OpenAI-style usage payload, as LiteLLM reports it."""
    return {"prompt_tokens": prompt, "completion_tokens": completion, "total_tokens": prompt + completion}


def evidence_payload(**overrides) -> dict:
    """A complete withEvidenceText payload for Yellowstone (nothing missing)."""
    payload = {
        "officialWebsite": "https://www.nps.gov/yell/",
        "officialWebsiteSourceText": "Website: nps.gov/yell",
        "level": 2,
        "levelSourceText": "UNESCO World Heritage Site",
        "speciesCount": 1350,
        "speciesCountSourceText": "nearly 1,350 species of flowering plants",
        "endangeredSpecies": 5,
        "endangeredSpeciesSourceText": "five species listed as endangered or threatened",
        "forestCoverage": 80.0,
        "forestCoverageSourceText": "forests comprise 80 percent of the land areas",
        "area": 8983,
        "areaSourceText": "Area: 8,983 km2 (3,468 sq mi)",
        "establishedYear": 1872,
        "establishedYearSourceText": "Established March 1, 1872",
        "internationalCert": 1,
        "internationalCertSourceText": "designated a World Heritage Site in 1978",
        "annualVisitors": 450,
        "annualVisitorsSourceText": "Visitors: 4,501,382 (in 2023)",
    }
    payload.update(overrides)
    return payload


def missing(payload: dict, *keys: str) -> dict:
    """Set keys to their "not found" values (-1 / "") in a withEvidenceText payload."""
    for key in keys:
        payload[key] = "" if key == "officialWebsite" else -1
        payload[f"{key}SourceText"] = ""
    return payload


def backfill_answer(field: str, value: Any, text: str, url: str) -> tuple[str, dict]:
    """(three-line search answer, parsed single-field payload) for one backfill."""
    answer = f"{field}: {value}\nSourceText: {text}\nSourceURL: {url}"
    return answer, {field: value, f"{field}SourceText": text, f"{field}SourceUrl": url}


@pytest.fixture
def settings():
    return ExtractionSettings(api_key="test-key")


@pytest.fixture
def fake_client():
    return FakeModelClient()
