"""Extraction pipeline stages."""

from .extraction_orchestrator import ExtractionOrchestrator, ExtractionOutcome, PipelineStage
from .field_backfill_service import BackfillResult, FieldBackfillService, parse_three_line_answer
from .grounded_prompt import GroundedAnswer, GroundedPromptRunner
from .missing_fields import find_missing, should_backfill
from .page_text_extractor import PageTextExtractor, PageTextResult, parse_grounding_metadata
from .park_text_transformer import ParkTextTransformer, TransformResult

__all__ = [
    "BackfillResult",
    "ExtractionOrchestrator",
    "ExtractionOutcome",
    "FieldBackfillService",
    "GroundedAnswer",
    "GroundedPromptRunner",
    "PageTextExtractor",
    "PageTextResult",
    "ParkTextTransformer",
    "PipelineStage",
    "TransformResult",
    "find_missing",
    "parse_grounding_metadata",
    "parse_three_line_answer",
    "should_backfill",
]
