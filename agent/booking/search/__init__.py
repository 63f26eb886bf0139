"""
Vehicle search for the booking engine.

- precondition: which single field blocks a search
- query_builder: exact query + progressively relaxed alternatives
- ranker: exact-match selection and reason-tagged alternative ranking
- pricing: leg count and VAT-inclusive estimates
- service: the timeout-bounded search pipeline tying them together
"""

from agent.booking.search.precondition import resolve_precondition
from agent.booking.search.pricing import apply_estimate, calculate_leg_count
from agent.booking.search.query_builder import VehicleSearchQueryBuilder
from agent.booking.search.ranker import VehicleAlternativeRanker
from agent.booking.search.service import VehicleSearchService

__all__ = [
    "resolve_precondition",
    "apply_estimate",
    "calculate_leg_count",
    "VehicleSearchQueryBuilder",
    "VehicleAlternativeRanker",
    "VehicleSearchService",
]
