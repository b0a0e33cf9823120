"""
Model-call capability consumed by the pipeline.

Stages receive a ModelClient explicitly (no module-level client), so each
pipeline run can be given a fake in tests.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Protocol, Sequence

from pydantic import BaseModel

from ..constants import DEFAULT_MAX_RETRIES
from .usage import UsageProvider


class ModelTool(str, Enum):
    """Provider-side tools a free-text call may use."""

    URL_CONTEXT = "url_context"
    GOOGLE_SEARCH = "google_search"


@dataclass
class FreeTextResponse:
    """Result of a free-text call."""

    text: str
    usage: Any = None  # raw provider usage report
    provider: UsageProvider = UsageProvider.GOOGLE
    provider_metadata: Optional[Dict[str, Any]] = None  # raw grounding metadata
    model: str = ""


@dataclass
class StructuredResponse:
    """Result of a schema-constrained call; value is already validated."""

    value: Dict[str, Any] = field(default_factory=dict)
    usage: Any = None
    provider: UsageProvider = UsageProvider.LITELLM
    raw_text: str = ""
    model: str = ""


class ModelClient(Protocol):
    def generate_free_text(
        self,
        prompt: str,
        tools: Sequence[ModelTool] = (),
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> FreeTextResponse:
        """Generate free text, optionally with retrieval tools enabled."""
        ...

    def generate_structured(
        self,
        prompt: str,
        schema: type[BaseModel],
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> StructuredResponse:
        """Generate a value conforming to schema (SchemaValidationError otherwise)."""
        ...
