"""
Gemini free-text client with url_context / google_search tools.

Wraps the Google GenAI SDK directly (not LiteLLM) to access the retrieval
tools and the grounding metadata they report.
"""

import logging
from typing import Any, Dict, Optional, Sequence

from google import genai
from google.genai import types

from ..config import get_api_key
from ..constants import DEFAULT_MAX_RETRIES, DEFAULT_TEMPERATURE, DEFAULT_TEXT_MODEL
from ..errors import ConfigurationError, UpstreamProviderError
from .base import FreeTextResponse, ModelTool
from .usage import UsageProvider

logger = logging.getLogger(__name__)


def _build_tool(tool: ModelTool) -> types.Tool:
    if tool is ModelTool.URL_CONTEXT:
        return types.Tool(url_context=types.UrlContext())
    if tool is ModelTool.GOOGLE_SEARCH:
        return types.Tool(google_search=types.GoogleSearch())
    raise ValueError(f"Unsupported tool: {tool}")


class GeminiTextClient:
    """
    Client for Gemini free-text generation with retrieval tools.

    Usage:
        client = GeminiTextClient()
        response = client.generate_free_text(prompt, tools=[ModelTool.URL_CONTEXT])
        print(response.text)
        print(response.provider_metadata)
    """

    def __init__(
        self,
        model: str = DEFAULT_TEXT_MODEL,
        api_key: Optional[str] = None,
        temperature: float = DEFAULT_TEMPERATURE,
    ):
        """
        Initialize Gemini client.

        Args:
            model: Gemini model to use (default: gemini-2.5-flash-lite)
            api_key: Google API key (defaults to GOOGLE_API_KEY or GEMINI_API_KEY env var)
            temperature: Sampling temperature
        """
        self.model = model
        self.temperature = temperature
        self.api_key = api_key or get_api_key()

        if not self.api_key:
            raise ConfigurationError(
                "API key not found. Set GEMINI_API_KEY or GOOGLE_API_KEY in environment, "
                "or pass api_key parameter."
            )

        self.client = genai.Client(api_key=self.api_key)
        logger.info(f"GeminiTextClient initialized with model: {model}")

    def generate_free_text(
        self,
        prompt: str,
        tools: Sequence[ModelTool] = (),
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> FreeTextResponse:
        """
        Generate free text.

        Args:
            prompt: Full prompt
            tools: Retrieval tools to enable
            max_retries: Provider-level retries for transient failures

        Returns:
            FreeTextResponse with raw usage_metadata and grounding metadata

        Raises:
            UpstreamProviderError: The provider call failed
        """
        config = types.GenerateContentConfig(
            temperature=self.temperature,
            tools=[_build_tool(ModelTool(tool)) for tool in tools] or None,
            http_options=types.HttpOptions(
                retry_options=types.HttpRetryOptions(attempts=max_retries + 1),
            ),
        )

        try:
            response = self.client.models.generate_content(
                model=self.model,
                contents=prompt,
                config=config,
            )
        except Exception as e:
            logger.error(f"Gemini free-text call failed ({self.model}): {e}")
            raise UpstreamProviderError(f"Gemini call failed: {e}", provider="google") from e

        text = response.text or ""
        usage = getattr(response, "usage_metadata", None)
        grounding = self._grounding_metadata(response)

        logger.info(
            f"Free-text call completed: {len(text)} chars, "
            f"tools={[ModelTool(t).value for t in tools]}, grounding={'yes' if grounding else 'no'}"
        )

        return FreeTextResponse(
            text=text,
            usage=usage,
            provider=UsageProvider.GOOGLE,
            provider_metadata=grounding,
            model=self.model,
        )

    @staticmethod
    def _grounding_metadata(response: Any) -> Optional[Dict[str, Any]]:
        """Dump the first candidate's grounding metadata to a plain dict."""
        if not response.candidates:
            return None

        raw_metadata = getattr(response.candidates[0], "grounding_metadata", None)
        if not raw_metadata:
            return None

        return raw_metadata.model_dump(exclude_none=True)
