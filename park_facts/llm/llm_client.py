"""
Structured-output LLM client using LiteLLM.

One schema-constrained completion per call; the returned JSON is validated
against the pydantic schema before it reaches the pipeline. Provider-level
retries only (num_retries); no fallback models and no application retry.

Usage:
    from park_facts.llm.llm_client import ParkModelClient

    client = ParkModelClient.from_settings(load_settings())
    response = client.generate_structured(prompt, schema=build_schema("withEvidenceText"))
    print(response.value)
"""

import logging
import os
import re
from typing import Any, Dict, Optional, Sequence

import litellm
from litellm import completion
from pydantic import BaseModel

from ..config import ExtractionSettings
from ..constants import DEFAULT_MAX_RETRIES, DEFAULT_STRUCTURED_MODEL, DEFAULT_TEMPERATURE
from ..errors import SchemaValidationError, UpstreamProviderError
from ..schemas.fields import validate_structured
from .base import FreeTextResponse, ModelTool, StructuredResponse
from .gemini_client import GeminiTextClient
from .usage import UsageProvider

# Suppress verbose LiteLLM logging
litellm.suppress_debug_info = True

logging.getLogger("LiteLLM").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

# Model name -> LiteLLM route
LITELLM_NAMES: Dict[str, str] = {
    "gemini-2.5-flash-lite": "gemini/gemini-2.5-flash-lite",
    "gemini-2.5-flash": "gemini/gemini-2.5-flash",
    "gemini-2.0-flash": "gemini/gemini-2.0-flash",
    "gemini-2.5-pro": "gemini/gemini-2.5-pro",
}

STRUCTURED_TIMEOUT_SECONDS = 180


def strip_markdown_json(text: str) -> str:
    """Strip a markdown code fence (Gemini often wraps JSON in ```json ... ```)."""
    match = re.search(r"```(?:json)?\s*\n?(.*?)\n?```", text, re.DOTALL)
    if match:
        return match.group(1).strip()
    return text.strip()


class StructuredClient:
    """LiteLLM client for schema-constrained JSON generation."""

    def __init__(
        self,
        model: str = DEFAULT_STRUCTURED_MODEL,
        api_key: Optional[str] = None,
        temperature: float = DEFAULT_TEMPERATURE,
    ):
        self.model = model
        self.litellm_name = LITELLM_NAMES.get(model, model)
        self.temperature = temperature
        self._setup_api_key(api_key)
        logger.info(f"StructuredClient initialized: {self.litellm_name}")

    @staticmethod
    def _setup_api_key(api_key: Optional[str]) -> None:
        """Set the Gemini key in the environment for LiteLLM (only if not already set)."""
        if api_key and not os.environ.get("GEMINI_API_KEY"):
            os.environ["GEMINI_API_KEY"] = api_key

    def generate_structured(
        self,
        prompt: str,
        schema: type[BaseModel],
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> StructuredResponse:
        """
        Generate a value conforming to schema.

        Args:
            prompt: Full prompt
            schema: pydantic model the output must satisfy
            max_retries: Provider-level retries for transient failures

        Returns:
            StructuredResponse with the validated value

        Raises:
            UpstreamProviderError: The provider call failed
            SchemaValidationError: Output is empty or does not match schema
        """
        kwargs: Dict[str, Any] = {
            "model": self.litellm_name,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.temperature,
            "response_format": {
                "type": "json_schema",
                "json_schema": {"name": schema.__name__, "schema": schema.model_json_schema()},
            },
            "num_retries": max_retries,
            "timeout": STRUCTURED_TIMEOUT_SECONDS,
        }

        try:
            response = completion(**kwargs)
        except Exception as e:
            logger.error(f"Structured call failed ({self.litellm_name}): {type(e).__name__}: {e}")
            raise UpstreamProviderError(f"Structured call failed: {e}", provider="litellm") from e

        if not response.choices:
            raise UpstreamProviderError(
                f"LLM API returned empty choices array. Model: {self.litellm_name}", provider="litellm"
            )

        text = response.choices[0].message.content or ""
        if not text.strip():
            raise SchemaValidationError(f"Empty structured output from {self.litellm_name}")

        value = validate_structured(schema, strip_markdown_json(text))
        usage = getattr(response, "usage", None)

        logger.debug(f"Structured call: {self.litellm_name} | schema={schema.__name__} | fields={len(value)}")

        return StructuredResponse(
            value=value,
            usage=usage,
            provider=UsageProvider.LITELLM,
            raw_text=text,
            model=self.model,
        )


class ParkModelClient:
    """
    The ModelClient used in production: Gemini (GenAI SDK) for free text with
    tools, LiteLLM for structured output.

    Built once per process and shared across pipeline runs; holds no
    per-run state.
    """

    def __init__(self, text_client: GeminiTextClient, structured_client: StructuredClient):
        self.text_client = text_client
        self.structured_client = structured_client

    @classmethod
    def from_settings(cls, settings: ExtractionSettings) -> "ParkModelClient":
        return cls(
            text_client=GeminiTextClient(model=settings.text_model, api_key=settings.api_key),
            structured_client=StructuredClient(model=settings.structured_model, api_key=settings.api_key),
        )

    def generate_free_text(
        self,
        prompt: str,
        tools: Sequence[ModelTool] = (),
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> FreeTextResponse:
        return self.text_client.generate_free_text(prompt, tools=tools, max_retries=max_retries)

    def generate_structured(
        self,
        prompt: str,
        schema: type[BaseModel],
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> StructuredResponse:
        return self.structured_client.generate_structured(prompt, schema=schema, max_retries=max_retries)
