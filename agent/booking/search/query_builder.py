"""
Vehicle search query builder.

Builds one exact query carrying every informative draft field, and an ordered
list of relaxed alternative queries. Relaxation drops the most specific
vehicle constraint first (color, then model, then make) with dates and booking
type held fixed, then adds a vehicle-type-only and a make-only query.
Duplicate queries are removed, keeping the first occurrence.

Query order is discovery order for the ranker, not final ranking order.
"""

from agent.booking.models import BookingDraft, VehicleSearchQuery

RELAXATION_ORDER = ("color", "model", "make")


class VehicleSearchQueryBuilder:
    def __init__(self, max_candidates: int = 10):
        self.max_candidates = max_candidates

    def _temporal_base(self, draft: BookingDraft) -> dict:
        return {
            "page": 1,
            "limit": self.max_candidates,
            "from_date": draft.pickup_date,
            "to_date": draft.dropoff_date,
            "booking_type": draft.booking_type,
            "pickup_time": draft.pickup_time,
            "flight_number": draft.flight_number,
        }

    def build_exact_query(self, draft: BookingDraft) -> VehicleSearchQuery:
        return VehicleSearchQuery(
            **self._temporal_base(draft),
            color=draft.color,
            make=draft.make,
            model=draft.model,
            vehicle_type=draft.vehicle_type.value if draft.vehicle_type else None,
            service_tier=draft.service_tier,
        )

    def build_alternative_queries(self, draft: BookingDraft) -> list[VehicleSearchQuery]:
        exact = self.build_exact_query(draft)
        queries: list[VehicleSearchQuery] = []

        # Progressive relaxation: each step is a strict subset of the previous
        relaxed = exact
        for attribute in RELAXATION_ORDER:
            if getattr(relaxed, attribute) is None:
                continue
            relaxed = relaxed.model_copy(update={attribute: None})
            queries.append(relaxed)

        base = self._temporal_base(draft)
        if exact.vehicle_type:
            queries.append(VehicleSearchQuery(**base, vehicle_type=exact.vehicle_type))
        if exact.make:
            queries.append(VehicleSearchQuery(**base, make=exact.make))

        return _dedupe(queries, exclude=exact)


def _dedupe(
    queries: list[VehicleSearchQuery],
    exclude: VehicleSearchQuery,
) -> list[VehicleSearchQuery]:
    seen = {exclude.model_dump_json()}
    unique: list[VehicleSearchQuery] = []
    for query in queries:
        key = query.model_dump_json()
        if key in seen:
            continue
        seen.add(key)
        unique.append(query)
    return unique
