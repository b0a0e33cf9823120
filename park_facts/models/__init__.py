"""Extraction result models."""

from .park import ExtractionRecord, FieldValue, GroundingMetadata, GroundingSupport

__all__ = [
    "ExtractionRecord",
    "FieldValue",
    "GroundingMetadata",
    "GroundingSupport",
]
