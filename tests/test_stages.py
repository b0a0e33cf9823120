"""Tests for the page-text, transform and backfill stages."""

import pytest

from conftest import (
    YELLOWSTONE,
    YELLOWSTONE_URL,
    FakeModelClient,
    backfill_answer,
    evidence_payload,
    google_usage,
    litellm_usage,
)

from park_facts.config import ExtractionSettings
from park_facts.errors import (
    InputValidationError,
    MissingModelOutput,
    SchemaValidationError,
    UpstreamProviderError,
)
from park_facts.llm.base import FreeTextResponse, ModelTool
from park_facts.llm.usage import UsageProvider
from park_facts.services.field_backfill_service import FieldBackfillService, parse_three_line_answer
from park_facts.services.grounded_prompt import GroundedPromptRunner
from park_facts.services.page_text_extractor import PageTextExtractor, parse_grounding_metadata
from park_facts.services.park_text_transformer import ParkTextTransformer

GROUNDING = {
    "grounding_chunks": [
        {"retrieved_context": {"uri": YELLOWSTONE_URL}, "web": {"uri": "https://ignored.example"}},
        {"web": {"uri": "https://www.nps.gov/yell/"}},
        {"web": {}},
    ],
    "grounding_supports": [
        {"segment": {"text": "Area: 8,983 km2"}, "grounding_chunk_indices": [0, 1], "confidence_scores": [0.9, 0.2]},
        {"segment": {}, "grounding_chunk_indices": [1]},
        {"segment": {"text": "Established 1872"}},
    ],
}


# ─── Grounding metadata ──────────────────────────────────────────────────────


class TestParseGroundingMetadata:
    def test_absent(self):
        assert parse_grounding_metadata(None) is None
        assert parse_grounding_metadata({}) is None

    def test_urls_prefer_retrieved_context(self):
        grounding = parse_grounding_metadata(GROUNDING)
        assert grounding.urls == [YELLOWSTONE_URL, "https://www.nps.gov/yell/"]

    def test_supports_without_text_dropped(self):
        grounding = parse_grounding_metadata(GROUNDING)
        assert [s.text for s in grounding.support] == ["Area: 8,983 km2", "Established 1872"]

    def test_first_index_and_score(self):
        support = parse_grounding_metadata(GROUNDING).support
        assert support[0].url_index == 0
        assert support[0].confidence_score == pytest.approx(0.9)
        assert support[1].url_index is None

    def test_camel_case_json(self):
        data = parse_grounding_metadata(GROUNDING).to_dict()
        assert data["support"][0] == {"text": "Area: 8,983 km2", "urlIndex": 0, "confidenceScore": 0.9}


# ─── PageTextExtractor ───────────────────────────────────────────────────────


class TestPageTextExtractor:
    def test_single_url_context_call(self, settings):
        client = FakeModelClient(
            free_text=[
                FreeTextResponse(
                    text="area: 8,983 km2 ...",
                    usage=google_usage(1000, 200, 4200),
                    provider=UsageProvider.GOOGLE,
                    provider_metadata=GROUNDING,
                )
            ]
        )
        result = PageTextExtractor(client, settings).extract(YELLOWSTONE, YELLOWSTONE_URL)

        assert result.text == "area: 8,983 km2 ..."
        assert len(client.free_text_calls) == 1
        call = client.free_text_calls[0]
        assert call["tools"] == [ModelTool.URL_CONTEXT]
        assert call["max_retries"] == 1
        assert YELLOWSTONE_URL in call["prompt"]
        assert YELLOWSTONE in call["prompt"]
        assert result.usage.url_tokens == 3000
        assert result.cost.usd.total > 0
        assert result.grounding_metadata.urls[0] == YELLOWSTONE_URL

    def test_inputs_trimmed(self, settings):
        client = FakeModelClient(free_text=["text"])
        PageTextExtractor(client, settings).extract(f"  {YELLOWSTONE} ", f" {YELLOWSTONE_URL}\n")
        assert f'"{YELLOWSTONE}"' in client.free_text_calls[0]["prompt"]

    @pytest.mark.parametrize("name, url", [("", YELLOWSTONE_URL), ("   ", YELLOWSTONE_URL), (YELLOWSTONE, "")])
    def test_empty_input_no_call(self, settings, name, url):
        client = FakeModelClient()
        with pytest.raises(InputValidationError):
            PageTextExtractor(client, settings).extract(name, url)
        assert client.free_text_calls == []

    def test_empty_text_is_missing_output(self, settings):
        client = FakeModelClient(free_text=[""])
        with pytest.raises(MissingModelOutput, match="Missing text response from model."):
            PageTextExtractor(client, settings).extract(YELLOWSTONE, YELLOWSTONE_URL)

    def test_no_usage_reported(self, settings):
        result = PageTextExtractor(FakeModelClient(free_text=["text"]), settings).extract(YELLOWSTONE, YELLOWSTONE_URL)
        assert result.usage is None
        assert result.cost is None
        assert result.grounding_metadata is None

    def test_upstream_error_propagates(self, settings):
        client = FakeModelClient(free_text=[UpstreamProviderError("429 rate limited", provider="google")])
        with pytest.raises(UpstreamProviderError):
            PageTextExtractor(client, settings).extract(YELLOWSTONE, YELLOWSTONE_URL)


# ─── ParkTextTransformer ─────────────────────────────────────────────────────


class TestParkTextTransformer:
    def test_builds_record(self, settings):
        client = FakeModelClient(structured=[(evidence_payload(), litellm_usage(500, 300))])
        result = ParkTextTransformer(client, settings).transform("page text", YELLOWSTONE_URL)

        assert result.record.value("establishedYear") == 1872
        assert result.record.get("establishedYear").evidence_url == YELLOWSTONE_URL
        assert result.usage.input_tokens == 500
        assert "page text" in client.structured_calls[0]["prompt"]
        assert client.structured_calls[0]["schema"].__name__ == "ParkDetailsWithEvidence"

    def test_priced_at_structured_model_rates(self):
        settings = ExtractionSettings(api_key="k", text_model="gemini-2.5-flash-lite", structured_model="gemini-2.5-pro")
        client = FakeModelClient(structured=[(evidence_payload(), litellm_usage(1_000_000, 0))])
        result = ParkTextTransformer(client, settings).transform("page text", YELLOWSTONE_URL)
        assert result.cost.usd.input == pytest.approx(1.25)

    def test_empty_text_rejected(self, settings):
        client = FakeModelClient()
        with pytest.raises(InputValidationError):
            ParkTextTransformer(client, settings).transform("  ", YELLOWSTONE_URL)
        assert client.structured_calls == []

    def test_schema_violation_is_fatal(self, settings):
        payload = evidence_payload()
        del payload["area"]
        client = FakeModelClient(structured=[payload])
        with pytest.raises(SchemaValidationError):
            ParkTextTransformer(client, settings).transform("page text", YELLOWSTONE_URL)

    def test_identical_output_identical_records(self, settings):
        client = FakeModelClient(structured=[evidence_payload(), evidence_payload()])
        transformer = ParkTextTransformer(client, settings)
        first = transformer.transform("page text", YELLOWSTONE_URL).record
        second = transformer.transform("page text", YELLOWSTONE_URL).record
        assert first == second
        assert first.to_flat_dict() == second.to_flat_dict()


# ─── Three-line answers ──────────────────────────────────────────────────────


class TestParseThreeLineAnswer:
    def test_valid(self):
        answer = parse_three_line_answer(
            f"area: 8983 km²\nSourceText: Area: 8,983 km2 (3,468 sq mi)\nSourceURL: {YELLOWSTONE_URL}", "area"
        )
        assert answer.summary == "8983 km²"
        assert answer.source_text == "Area: 8,983 km2 (3,468 sq mi)"
        assert answer.source_url == YELLOWSTONE_URL

    def test_not_found_form(self):
        answer = parse_three_line_answer("area: not specify\nSourceText:\nSourceURL:", "area")
        assert answer.source_text == ""
        assert answer.source_url == ""

    @pytest.mark.parametrize(
        "text",
        [
            "area: 1\nSourceText: x",
            "Here you go:\narea: 1\nSourceText: x\nSourceURL: u",
            "level: 1\nSourceText: x\nSourceURL: u",
            "area: 1\nSource: x\nSourceURL: u",
        ],
    )
    def test_malformed(self, text):
        assert parse_three_line_answer(text, "area") is None


# ─── FieldBackfillService ────────────────────────────────────────────────────


class TestFieldBackfillService:
    def test_yellowstone_area(self, settings):
        answer, parsed = backfill_answer("area", 8983, "Area: 8,983 km2 (3,468 sq mi)", YELLOWSTONE_URL)
        client = FakeModelClient(
            free_text=[FreeTextResponse(text=answer, usage=google_usage(100, 30, 930))],
            structured=[(parsed, litellm_usage(80, 40))],
        )
        result = FieldBackfillService(client, settings).backfill(YELLOWSTONE, "area")

        assert result.value == {
            "area": 8983,
            "areaSourceText": "Area: 8,983 km2 (3,468 sq mi)",
            "areaSourceUrl": YELLOWSTONE_URL,
        }
        assert client.free_text_calls[0]["tools"] == [ModelTool.GOOGLE_SEARCH, ModelTool.URL_CONTEXT]
        assert client.structured_calls[0]["schema"].__name__ == "AreaField"
        assert answer in client.structured_calls[0]["prompt"]
        assert result.raw_first_pass_text == answer

    def test_usage_summed_across_both_calls(self, settings):
        answer, parsed = backfill_answer("area", 8983, "x", YELLOWSTONE_URL)
        client = FakeModelClient(
            free_text=[FreeTextResponse(text=answer, usage=google_usage(100, 30, 930))],
            structured=[(parsed, litellm_usage(80, 40))],
        )
        result = FieldBackfillService(client, settings).backfill(YELLOWSTONE, "area")
        assert result.usage.input_tokens == 180
        assert result.usage.output_tokens == 70
        assert result.usage.url_tokens == 800
        assert result.cost.usd.total > 0

    def test_each_call_priced_at_its_model_rates(self):
        settings = ExtractionSettings(api_key="k", text_model="gemini-2.5-flash-lite", structured_model="gemini-2.5-pro")
        answer, parsed = backfill_answer("area", 8983, "x", YELLOWSTONE_URL)
        client = FakeModelClient(
            free_text=[FreeTextResponse(text=answer, usage=google_usage(1_000_000, 0, 1_000_000))],
            structured=[(parsed, litellm_usage(1_000_000, 0))],
        )
        result = FieldBackfillService(client, settings).backfill(YELLOWSTONE, "area")
        # 1M input tokens at 0.10 (flash-lite) plus 1M at 1.25 (pro)
        assert result.cost.usd.input == pytest.approx(1.35)

    def test_official_website_not_backfillable(self, settings):
        client = FakeModelClient()
        with pytest.raises(InputValidationError, match="cannot be backfilled"):
            FieldBackfillService(client, settings).backfill(YELLOWSTONE, "officialWebsite")
        assert client.free_text_calls == []

    def test_unknown_field(self, settings):
        with pytest.raises(InputValidationError):
            FieldBackfillService(FakeModelClient(), settings).backfill(YELLOWSTONE, "elevation")

    def test_empty_park_name(self, settings):
        with pytest.raises(InputValidationError):
            FieldBackfillService(FakeModelClient(), settings).backfill(" ", "area")

    def test_empty_search_answer(self, settings):
        client = FakeModelClient(free_text=[""])
        with pytest.raises(MissingModelOutput):
            FieldBackfillService(client, settings).backfill(YELLOWSTONE, "area")
        assert client.structured_calls == []

    def test_malformed_answer_still_parsed(self, settings, caplog):
        """A broken 3-line grammar is logged; the parse call decides the value."""
        _, parsed = backfill_answer("area", -1, "", "")
        client = FakeModelClient(free_text=["I could not find it."], structured=[parsed])
        result = FieldBackfillService(client, settings).backfill(YELLOWSTONE, "area")
        assert result.value["area"] == -1
        assert "does not follow the 3-line format" in caplog.text

    def test_parse_output_cannot_set_other_fields(self, settings):
        answer, parsed = backfill_answer("area", 8983, "x", YELLOWSTONE_URL)
        parsed["level"] = 2
        client = FakeModelClient(free_text=[answer], structured=[parsed])
        result = FieldBackfillService(client, settings).backfill(YELLOWSTONE, "area")
        assert set(result.value) == {"area", "areaSourceText", "areaSourceUrl"}

    def test_backfill_many_sequential(self, settings):
        area_answer, area = backfill_answer("area", 8983, "x", YELLOWSTONE_URL)
        year_answer, year = backfill_answer("establishedYear", 1872, "y", YELLOWSTONE_URL)
        client = FakeModelClient(free_text=[area_answer, year_answer], structured=[area, year])
        results = FieldBackfillService(client, settings).backfill_many(YELLOWSTONE, ["area", "establishedYear"])
        assert [r.field for r in results] == ["area", "establishedYear"]



# ─── GroundedPromptRunner ────────────────────────────────────────────────────


class TestGroundedPromptRunner:
    def test_answer_with_grounding(self, settings):
        client = FakeModelClient(
            free_text=[
                FreeTextResponse("It covers 8,983 km2.", google_usage(1_000_000, 0, 1_000_000), provider_metadata=GROUNDING)
            ]
        )

        answer = GroundedPromptRunner(client, settings).run("  How large is Yellowstone?  ")

        assert client.free_text_calls[0]["prompt"] == "How large is Yellowstone?"
        assert client.free_text_calls[0]["tools"] == [ModelTool.URL_CONTEXT, ModelTool.GOOGLE_SEARCH]
        assert answer.text == "It covers 8,983 km2."
        assert answer.usage.input_tokens == 1_000_000
        assert answer.cost.usd.input == pytest.approx(0.10)
        assert answer.grounding_metadata.urls == [YELLOWSTONE_URL, "https://www.nps.gov/yell/"]
        assert answer.to_dict()["groundingMetadata"] is not None

    def test_blank_prompt_rejected(self, settings):
        client = FakeModelClient()
        with pytest.raises(InputValidationError):
            GroundedPromptRunner(client, settings).run("   ")
        assert client.free_text_calls == []
