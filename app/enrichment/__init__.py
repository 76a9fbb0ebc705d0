"""
Company and investor enrichment from external providers.
"""
from app.enrichment.aggregation import AggregationEngine, EnrichedEntity

__all__ = ["AggregationEngine", "EnrichedEntity"]
