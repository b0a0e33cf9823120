"""
Global constants for the park fact extraction pipeline.

Centralizes magic numbers and defaults used throughout the pipeline
for easier maintenance and tuning.
"""

# Models
DEFAULT_TEXT_MODEL = "gemini-2.5-flash-lite"  # Free-text calls (url_context / google_search)
DEFAULT_STRUCTURED_MODEL = "gemini-2.5-flash-lite"  # Schema-constrained JSON calls

# Provider-level retries per model call (no application-level retry)
DEFAULT_MAX_RETRIES = 1

# Backfill cost-control cutoff: more missing fields than this skips backfill entirely
MAX_BACKFILL_FIELDS = 3

# Currency conversion for cost reporting
DEFAULT_USD_TO_CNY = 7.2

# Sampling
DEFAULT_TEMPERATURE = 0.1

# Durations are reported with one decimal place (seconds)
DURATION_PRECISION = 1
