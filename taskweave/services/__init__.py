"""Service layer implementations."""

from .aggregation_service import AggregationEngine

__all__ = [
    "AggregationEngine",
]
