"""Unit tests for VehicleSearchQueryBuilder."""

from agent.booking.models import BookingDraft, BookingType, VehicleType
from agent.booking.search.query_builder import VehicleSearchQueryBuilder


def _draft(**overrides):
    values = {
        "booking_type": BookingType.DAY,
        "pickup_date": "2026-03-15",
        "dropoff_date": "2026-03-16",
        "pickup_time": "09:00",
    }
    values.update(overrides)
    return BookingDraft(**values)


class TestBuildExactQuery:
    """Tests for build_exact_query."""

    def test_carries_every_informative_field(self):
        builder = VehicleSearchQueryBuilder(max_candidates=7)
        query = builder.build_exact_query(
            _draft(make="Toyota", model="Prado", color="Black", vehicle_type=VehicleType.SUV)
        )

        assert query.limit == 7
        assert query.from_date == "2026-03-15"
        assert query.to_date == "2026-03-16"
        assert query.make == "Toyota"
        assert query.model == "Prado"
        assert query.color == "Black"
        assert query.vehicle_type == "SUV"

    def test_serializes_with_backend_aliases(self):
        query = VehicleSearchQueryBuilder().build_exact_query(_draft())
        params = query.model_dump(by_alias=True, exclude_none=True)

        assert params["from"] == "2026-03-15"
        assert params["to"] == "2026-03-16"
        assert params["bookingType"] == BookingType.DAY
        assert params["pickupTime"] == "09:00"


class TestBuildAlternativeQueries:
    """Tests for build_alternative_queries."""

    def test_relaxes_color_then_model_then_make(self):
        builder = VehicleSearchQueryBuilder()
        queries = builder.build_alternative_queries(
            _draft(make="Toyota", model="Prado", color="Black", vehicle_type=VehicleType.SUV)
        )

        first, second, third = queries[:3]
        assert (first.color, first.model, first.make) == (None, "Prado", "Toyota")
        assert (second.color, second.model, second.make) == (None, None, "Toyota")
        assert (third.color, third.model, third.make) == (None, None, None)
        assert all(q.from_date == "2026-03-15" for q in queries)
        assert all(q.booking_type == BookingType.DAY for q in queries)

    def test_relaxed_constraints_decrease(self):
        builder = VehicleSearchQueryBuilder()
        draft = _draft(make="Toyota", model="Prado", color="Black")
        exact = builder.build_exact_query(draft)
        relaxed = builder.build_alternative_queries(draft)

        assert relaxed[0].constraint_count() < exact.constraint_count()

    def test_no_duplicates_and_exact_excluded(self):
        """A type-only request relaxes to nothing new beyond the exact query."""
        builder = VehicleSearchQueryBuilder()
        draft = _draft(vehicle_type=VehicleType.SUV)
        exact = builder.build_exact_query(draft)
        queries = builder.build_alternative_queries(draft)

        dumped = [q.model_dump_json() for q in queries]
        assert len(dumped) == len(set(dumped))
        assert exact.model_dump_json() not in dumped

    def test_make_only_query_is_added(self):
        builder = VehicleSearchQueryBuilder()
        queries = builder.build_alternative_queries(_draft(make="Lexus", vehicle_type=VehicleType.SUV))

        assert any(q.make == "Lexus" and q.vehicle_type is None for q in queries)
