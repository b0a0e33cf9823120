"""
Central configuration for the extraction pipeline.

Settings come from environment variables (a local .env file is loaded first
if present):
  - PARK_FACTS_TEXT_MODEL (default: gemini-2.5-flash-lite)
  - PARK_FACTS_STRUCTURED_MODEL (default: gemini-2.5-flash-lite)
  - PARK_FACTS_MAX_RETRIES (default: 1)
  - PARK_FACTS_MAX_BACKFILL_FIELDS (default: 3)
  - PARK_FACTS_USD_TO_CNY (default: 7.2)
  - GOOGLE_API_KEY / GEMINI_API_KEY
  - PARK_UNIQUE_KEY ("name" or "source_url"; no default)
"""

import os
from dataclasses import dataclass
from functools import cached_property
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .constants import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_STRUCTURED_MODEL,
    DEFAULT_TEXT_MODEL,
    DEFAULT_USD_TO_CNY,
    MAX_BACKFILL_FIELDS,
)
from .errors import ConfigurationError
from .llm.usage import Rates


@dataclass(frozen=True)
class ExtractionSettings:
    """Pipeline settings shared by every stage of one run."""

    text_model: str = DEFAULT_TEXT_MODEL
    structured_model: str = DEFAULT_STRUCTURED_MODEL
    max_retries: int = DEFAULT_MAX_RETRIES
    max_backfill_fields: int = MAX_BACKFILL_FIELDS
    usd_to_cny: float = DEFAULT_USD_TO_CNY
    api_key: Optional[str] = None
    unique_key: Optional[str] = None

    @cached_property
    def text_rates(self) -> Rates:
        """Per-token rates for free-text calls (text_model)."""
        return Rates.for_model(self.text_model, usd_to_cny=self.usd_to_cny)

    @cached_property
    def structured_rates(self) -> Rates:
        """Per-token rates for schema-constrained calls (structured_model)."""
        return Rates.for_model(self.structured_model, usd_to_cny=self.usd_to_cny)


def get_api_key() -> Optional[str]:
    """
    Find the Google API key in the environment.

    GOOGLE_API_KEY is checked first, then GEMINI_API_KEY. Placeholder values
    that start with "your_" are skipped.
    """
    for env_var in ["GOOGLE_API_KEY", "GEMINI_API_KEY"]:
        key = os.environ.get(env_var)
        if key and not key.startswith("your_"):
            return key
    return None


def _int_env(name: str, default: int, minimum: int = 0) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    return value


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


def load_settings(env_file: Optional[Path] = None) -> ExtractionSettings:
    """
    Build ExtractionSettings from the environment.

    Args:
        env_file: Optional .env path (defaults to python-dotenv's lookup)

    Returns:
        ExtractionSettings

    Raises:
        ConfigurationError: If a numeric setting is malformed
    """
    load_dotenv(env_file)

    unique_key = os.environ.get("PARK_UNIQUE_KEY") or None
    return ExtractionSettings(
        text_model=os.environ.get("PARK_FACTS_TEXT_MODEL", DEFAULT_TEXT_MODEL),
        structured_model=os.environ.get("PARK_FACTS_STRUCTURED_MODEL", DEFAULT_STRUCTURED_MODEL),
        max_retries=_int_env("PARK_FACTS_MAX_RETRIES", DEFAULT_MAX_RETRIES),
        max_backfill_fields=_int_env("PARK_FACTS_MAX_BACKFILL_FIELDS", MAX_BACKFILL_FIELDS),
        usd_to_cny=_float_env("PARK_FACTS_USD_TO_CNY", DEFAULT_USD_TO_CNY),
        api_key=get_api_key(),
        unique_key=unique_key.strip().lower() if unique_key else None,
    )
