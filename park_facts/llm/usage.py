"""
Token usage normalization and cost accounting.

Every model call reports token usage in its provider's own shape. This module
normalizes those reports into a canonical UsageDetail (one adapter per
provider, selected by an explicit provider tag) and converts token counts into
USD/CNY cost under a fixed per-token rate table.

Usage:
    from park_facts.llm.usage import UsageProvider, cost_from_usage, normalize_usage

    usage = normalize_usage(response.usage_metadata, provider=UsageProvider.GOOGLE)
    cost = cost_from_usage(usage)
    print(cost.usd.total, cost.cny.total)
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ..constants import DEFAULT_TEXT_MODEL, DEFAULT_USD_TO_CNY

logger = logging.getLogger(__name__)


# =============================================================================
# RATE REGISTRY - USD per 1M tokens
# =============================================================================

MODEL_RATES: Dict[str, Dict[str, float]] = {
    "gemini-2.5-flash-lite": {"cost_per_1m_input": 0.10, "cost_per_1m_output": 0.40},
    "gemini-2.5-flash": {"cost_per_1m_input": 0.30, "cost_per_1m_output": 2.50},
    "gemini-2.0-flash": {"cost_per_1m_input": 0.10, "cost_per_1m_output": 0.40},
    "gemini-2.5-pro": {"cost_per_1m_input": 1.25, "cost_per_1m_output": 10.00},
}


@dataclass(frozen=True)
class Rates:
    """Fixed per-token rates used to price a UsageDetail."""

    input_usd_per_token: float
    output_usd_per_token: float
    usd_to_cny: float = DEFAULT_USD_TO_CNY

    @classmethod
    def for_model(cls, model: str, usd_to_cny: float = DEFAULT_USD_TO_CNY) -> "Rates":
        """Build rates for a registered model, falling back to the default model's prices."""
        name = model.split("/")[-1]
        if name not in MODEL_RATES:
            logger.warning(f"No rates registered for {model}, using {DEFAULT_TEXT_MODEL} rates")
        prices = MODEL_RATES.get(name, MODEL_RATES[DEFAULT_TEXT_MODEL])
        return cls(
            input_usd_per_token=prices["cost_per_1m_input"] / 1_000_000,
            output_usd_per_token=prices["cost_per_1m_output"] / 1_000_000,
            usd_to_cny=usd_to_cny,
        )


DEFAULT_RATES = Rates.for_model(DEFAULT_TEXT_MODEL)


# =============================================================================
# CANONICAL SHAPES
# =============================================================================


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with camelCase keys, omitting absent fields."""
        return self.model_dump(by_alias=True, exclude_none=True)


class UsageDetail(_CamelModel):
    """Canonical token usage. Every count is optional (absent when not reported)."""

    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    url_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


class CurrencyCost(_CamelModel):
    input: float = 0.0
    output: float = 0.0
    url: float = 0.0
    total: float = 0.0


class CostDetail(_CamelModel):
    """Cost of a UsageDetail in USD and CNY."""

    usd: CurrencyCost
    cny: CurrencyCost


# =============================================================================
# PROVIDER ADAPTERS
# =============================================================================


class UsageProvider(str, Enum):
    """Which shape a raw usage report has."""

    AI_SDK = "ai_sdk"  # camelCase: promptTokens/inputTokens, completionTokens/outputTokens
    GOOGLE = "google"  # Google GenAI usage_metadata
    LITELLM = "litellm"  # OpenAI-style prompt_tokens/completion_tokens


def _read(raw: Any, *names: str) -> Optional[int]:
    """Return the first present integer among names, from a mapping or an object."""
    for name in names:
        if isinstance(raw, Mapping):
            value = raw.get(name)
        else:
            value = getattr(raw, name, None)
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            return int(value)
    return None


def _adapt_ai_sdk(raw: Any) -> tuple:
    return (
        _read(raw, "promptTokens", "inputTokens"),
        _read(raw, "completionTokens", "outputTokens"),
        _read(raw, "totalTokens"),
        _read(raw, "urlTokens"),
    )


def _adapt_google(raw: Any) -> tuple:
    # url_context / google_search retrieval tokens are folded into total_token_count
    return (
        _read(raw, "prompt_token_count"),
        _read(raw, "candidates_token_count"),
        _read(raw, "total_token_count"),
        None,
    )


def _adapt_litellm(raw: Any) -> tuple:
    return (
        _read(raw, "prompt_tokens"),
        _read(raw, "completion_tokens"),
        _read(raw, "total_tokens"),
        None,
    )


_ADAPTERS = {
    UsageProvider.AI_SDK: _adapt_ai_sdk,
    UsageProvider.GOOGLE: _adapt_google,
    UsageProvider.LITELLM: _adapt_litellm,
}


def normalize_usage(raw: Any, provider: UsageProvider | str = UsageProvider.AI_SDK) -> Optional[UsageDetail]:
    """
    Normalize a provider usage report into a UsageDetail.

    url_tokens is derived as total - (input + output) when the provider does not
    report it, total is present, and at least one of input/output is present.
    A negative derived value means the provider's accounting is inconsistent;
    it is clamped to 0 and logged.

    Args:
        raw: Usage report (mapping or object); None/empty yields None
        provider: Which adapter to apply

    Returns:
        UsageDetail, or None if raw is absent
    """
    if raw is None or (isinstance(raw, Mapping) and not raw):
        return None

    adapter = _ADAPTERS[UsageProvider(provider)]
    input_tokens, output_tokens, total_tokens, url_tokens = adapter(raw)

    if url_tokens is None and total_tokens is not None and (input_tokens is not None or output_tokens is not None):
        url_tokens = total_tokens - ((input_tokens or 0) + (output_tokens or 0))
        if url_tokens < 0:
            logger.warning(
                f"Inconsistent usage report from {UsageProvider(provider).value}: "
                f"total={total_tokens} < input={input_tokens} + output={output_tokens}; clamping urlTokens to 0"
            )
            url_tokens = 0

    return UsageDetail(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        url_tokens=url_tokens,
        total_tokens=total_tokens,
    )


def sum_usage(usages: Iterable[Optional[UsageDetail]]) -> Optional[UsageDetail]:
    """
    Sum usage details elementwise.

    Missing entries and missing fields contribute 0. Returns None if no entry
    contributed any defined field; otherwise every field is present (0 when no
    entry reported it).
    """
    totals = {"input_tokens": 0, "output_tokens": 0, "url_tokens": 0, "total_tokens": 0}
    has_usage = False

    for usage in usages:
        if usage is None:
            continue
        for name in totals:
            value = getattr(usage, name)
            if value is not None:
                totals[name] += value
                has_usage = True

    if not has_usage:
        return None
    return UsageDetail(**totals)


def cost_from_usage(usage: Optional[UsageDetail], rates: Rates = DEFAULT_RATES) -> Optional[CostDetail]:
    """
    Price a UsageDetail.

    URL (retrieval) tokens are billed at the input rate. Missing counts are 0.
    Returns None iff usage is None.
    """
    if usage is None:
        return None

    input_cost = (usage.input_tokens or 0) * rates.input_usd_per_token
    output_cost = (usage.output_tokens or 0) * rates.output_usd_per_token
    url_cost = (usage.url_tokens or 0) * rates.input_usd_per_token

    usd = CurrencyCost(
        input=input_cost,
        output=output_cost,
        url=url_cost,
        total=input_cost + output_cost + url_cost,
    )
    cny = CurrencyCost(
        input=usd.input * rates.usd_to_cny,
        output=usd.output * rates.usd_to_cny,
        url=usd.url * rates.usd_to_cny,
        total=usd.total * rates.usd_to_cny,
    )
    return CostDetail(usd=usd, cny=cny)


def _add_currency(amounts: list[CurrencyCost]) -> CurrencyCost:
    return CurrencyCost(
        input=sum(a.input for a in amounts),
        output=sum(a.output for a in amounts),
        url=sum(a.url for a in amounts),
        total=sum(a.total for a in amounts),
    )


def sum_costs(costs: Iterable[Optional[CostDetail]]) -> Optional[CostDetail]:
    """
    Sum costs priced under (possibly) different rates.

    Calls to different models are priced separately and then added, so a
    stage mixing a text call and a structured call keeps each call's rate.
    Returns None if every entry is None.
    """
    present = [cost for cost in costs if cost is not None]
    if not present:
        return None
    return CostDetail(
        usd=_add_currency([cost.usd for cost in present]),
        cny=_add_currency([cost.cny for cost in present]),
    )
