"""
Vehicle search pipeline.

precondition check → exact query (timeout-bounded, failure aborts the search)
→ if no exact match: alternative queries fanned out concurrently, each
timeout-bounded, failures logged and discarded → ranking → VAT lookup
(defaults to 0% on failure) → price estimates.
"""

import logging
from collections.abc import Collection

from agent.booking.concurrency import gather_settled, run_with_timeout
from agent.booking.interfaces import VatRateProvider, VehicleCatalog
from agent.booking.models import (
    BookingDraft,
    VehicleSearchOption,
    VehicleSearchQuery,
    VehicleSearchResult,
)
from agent.booking.search.precondition import resolve_precondition
from agent.booking.search.pricing import apply_estimate
from agent.booking.search.query_builder import VehicleSearchQueryBuilder
from agent.booking.search.ranker import VehicleAlternativeRanker

logger = logging.getLogger(__name__)

EXACT_OPERATION = "car-search:exact"


class VehicleSearchService:
    """Runs the exact and alternative vehicle searches for a booking draft."""

    def __init__(
        self,
        catalog: VehicleCatalog,
        rates: VatRateProvider,
        query_builder: VehicleSearchQueryBuilder | None = None,
        ranker: VehicleAlternativeRanker | None = None,
        search_timeout_seconds: float = 8.0,
    ):
        self.catalog = catalog
        self.rates = rates
        self.query_builder = query_builder or VehicleSearchQueryBuilder()
        self.ranker = ranker or VehicleAlternativeRanker()
        self.search_timeout_seconds = search_timeout_seconds

    async def search(
        self,
        draft: BookingDraft,
        exclude_ids: Collection[str] = (),
    ) -> VehicleSearchResult:
        """
        Search for vehicles matching a draft.

        Args:
            draft: Current booking draft
            exclude_ids: Vehicle ids that must not be offered (e.g. just found unavailable)

        Returns:
            VehicleSearchResult with either a precondition or estimated options

        Raises:
            OperationTimedOut: If the exact query times out
        """
        precondition = resolve_precondition(draft)
        if precondition is not None:
            logger.debug(f"Returning search precondition: missing_field={precondition.missing_field}")
            return VehicleSearchResult(precondition=precondition)

        exact_query = self.query_builder.build_exact_query(draft)
        exact_candidates = self._to_options(
            await self._run_query(exact_query, EXACT_OPERATION),
            exclude_ids,
        )
        exact_matches = self.ranker.select_exact_matches(exact_candidates, draft)

        alternatives: list[VehicleSearchOption] = []
        if not exact_matches:
            alternative_candidates = await self._search_alternatives(draft, exclude_ids)
            alternatives = self.ranker.rank_alternatives(
                [*exact_candidates, *alternative_candidates],
                draft,
            )

        vat_rate_percent = await self._resolve_vat_rate_percent()

        logger.info(
            f"Vehicle search completed: exact={len(exact_matches)}, "
            f"alternatives={len(alternatives)}, vat_rate={vat_rate_percent}%"
        )

        return VehicleSearchResult(
            exact_matches=[apply_estimate(o, draft, vat_rate_percent) for o in exact_matches],
            alternatives=[apply_estimate(o, draft, vat_rate_percent) for o in alternatives],
        )

    async def _run_query(self, query: VehicleSearchQuery, operation: str):
        return await run_with_timeout(
            self.catalog.search_vehicles(query),
            operation,
            self.search_timeout_seconds,
        )

    async def _search_alternatives(
        self,
        draft: BookingDraft,
        exclude_ids: Collection[str],
    ) -> list[VehicleSearchOption]:
        queries = self.query_builder.build_alternative_queries(draft)
        settled = await gather_settled([
            self._run_query(query, f"car-search:alternative:{index}")
            for index, query in enumerate(queries, start=1)
        ])

        candidates: list[VehicleSearchOption] = []
        for index, outcome in enumerate(settled, start=1):
            if isinstance(outcome, BaseException):
                logger.warning(
                    f"Alternative car search query failed: {type(outcome).__name__}: {outcome}",
                    extra={"operation": f"car-search:alternative:{index}"},
                )
                continue
            candidates.extend(self._to_options(outcome, exclude_ids))
        return candidates

    def _to_options(self, vehicles, exclude_ids: Collection[str]) -> list[VehicleSearchOption]:
        return [
            self.ranker.map_vehicle_to_option(vehicle)
            for vehicle in vehicles
            if vehicle.id not in exclude_ids
        ]

    async def _resolve_vat_rate_percent(self) -> float:
        try:
            return float(await self.rates.get_vat_rate_percent())
        except Exception as e:
            logger.warning(f"Failed to resolve VAT rate for search estimate: {e}")
            return 0.0
