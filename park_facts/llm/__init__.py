"""
Model-call capability and usage accounting.

The pipeline only needs two capabilities from a model provider: free text
(optionally with url_context / google_search tools) and a value conforming to
a schema. See base.ModelClient.
"""

from .usage import (
    DEFAULT_RATES,
    CostDetail,
    Rates,
    UsageDetail,
    UsageProvider,
    cost_from_usage,
    normalize_usage,
    sum_costs,
    sum_usage,
)

__all__ = [
    "DEFAULT_RATES",
    "CostDetail",
    "Rates",
    "UsageDetail",
    "UsageProvider",
    "cost_from_usage",
    "normalize_usage",
    "sum_costs",
    "sum_usage",
]
