"""
Alternative ranking engine.

Splits pooled search candidates into exact matches and reason-tagged
alternatives. Alternatives are bucketed by reason priority
(SAME_MODEL_DIFFERENT_COLOR > SAME_CLASS_DIFFERENT_MODEL > SIMILAR_PRICE_RANGE
> CLOSEST_AVAILABLE), ordered inside each bucket by day-rate proximity to the
requested vehicle's price point (ties keep discovery order), then truncated.
"""

import logging
from collections.abc import Iterable, Sequence
from statistics import mean

from agent.booking.models import (
    AlternativeReason,
    BookingDraft,
    CatalogVehicle,
    VehicleRates,
    VehicleSearchOption,
)

logger = logging.getLogger(__name__)

REASON_PRIORITY = (
    AlternativeReason.SAME_MODEL_DIFFERENT_COLOR,
    AlternativeReason.SAME_CLASS_DIFFERENT_MODEL,
    AlternativeReason.SIMILAR_PRICE_RANGE,
    AlternativeReason.CLOSEST_AVAILABLE,
)


def _norm(value: str | None) -> str | None:
    return value.strip().casefold() if value else None


def _same(requested: str | None, actual: str | None) -> bool:
    return _norm(requested) == _norm(actual)


def dedupe_candidates(candidates: Iterable[VehicleSearchOption]) -> list[VehicleSearchOption]:
    """Drop repeated vehicle ids, keeping the first occurrence (discovery order)."""
    seen: set[str] = set()
    unique: list[VehicleSearchOption] = []
    for candidate in candidates:
        if candidate.id in seen:
            continue
        seen.add(candidate.id)
        unique.append(candidate)
    return unique


class VehicleAlternativeRanker:
    def __init__(
        self,
        max_exact_matches: int = 3,
        max_alternatives: int = 3,
        price_tolerance: float = 0.15,
    ):
        self.max_exact_matches = max_exact_matches
        self.max_alternatives = max_alternatives
        self.price_tolerance = price_tolerance

    @staticmethod
    def map_vehicle_to_option(vehicle: CatalogVehicle) -> VehicleSearchOption:
        return VehicleSearchOption(
            id=vehicle.id,
            make=vehicle.make,
            model=vehicle.model,
            name=vehicle.name or f"{vehicle.make} {vehicle.model}",
            color=vehicle.color,
            vehicle_type=vehicle.vehicle_type,
            service_tier=vehicle.service_tier,
            image_url=vehicle.image_url,
            rates=VehicleRates(
                day=vehicle.day_rate,
                night=vehicle.night_rate,
                full_day=vehicle.full_day_rate,
                airport_pickup=vehicle.airport_pickup_rate,
            ),
        )

    @staticmethod
    def is_exact_match(candidate: VehicleSearchOption, draft: BookingDraft) -> bool:
        """Every attribute the customer asked for (make, model, color, vehicle type) matches."""
        requested = {
            "make": draft.make,
            "model": draft.model,
            "color": draft.color,
            "vehicle_type": draft.vehicle_type.value if draft.vehicle_type else None,
        }
        return all(
            _same(value, getattr(candidate, attribute))
            for attribute, value in requested.items()
            if value
        )

    def select_exact_matches(
        self,
        candidates: Sequence[VehicleSearchOption],
        draft: BookingDraft,
    ) -> list[VehicleSearchOption]:
        exact = [c for c in dedupe_candidates(candidates) if self.is_exact_match(c, draft)]
        return exact[: self.max_exact_matches]

    def rank_alternatives(
        self,
        candidates: Sequence[VehicleSearchOption],
        draft: BookingDraft,
    ) -> list[VehicleSearchOption]:
        """
        Tag and order non-exact candidates.

        Args:
            candidates: Pooled exact + relaxed query results in discovery order
            draft: The customer's request

        Returns:
            At most ``max_alternatives`` options, each with ``reason`` set
        """
        pool = dedupe_candidates(candidates)
        remaining = [c for c in pool if not self.is_exact_match(c, draft)]
        if not remaining:
            return []

        same_model = [c for c in pool if self._is_same_model(c, draft)]
        reference_class = self._reference_class(draft, same_model)
        reference_price = self._reference_price(pool, same_model, reference_class)

        buckets: dict[AlternativeReason, list[VehicleSearchOption]] = {
            reason: [] for reason in REASON_PRIORITY
        }
        for candidate in remaining:
            reason = self._classify(candidate, draft, reference_class, reference_price)
            buckets[reason].append(candidate.model_copy(update={"reason": reason}))

        ranked: list[VehicleSearchOption] = []
        for reason in REASON_PRIORITY:
            # sorted() is stable, so equal distances keep discovery order
            ranked.extend(
                sorted(buckets[reason], key=lambda c: self._price_distance(c, reference_price))
            )

        logger.debug(
            f"Ranked {len(ranked)} alternatives "
            f"(reference_class={reference_class}, reference_price={reference_price})"
        )
        return ranked[: self.max_alternatives]

    @staticmethod
    def _is_same_model(candidate: VehicleSearchOption, draft: BookingDraft) -> bool:
        if not draft.model:
            return False
        if draft.make and not _same(draft.make, candidate.make):
            return False
        return _same(draft.model, candidate.model)

    @staticmethod
    def _reference_class(
        draft: BookingDraft,
        same_model: Sequence[VehicleSearchOption],
    ) -> str | None:
        """The requested vehicle type, or the type of the requested model when not given."""
        if draft.vehicle_type:
            return draft.vehicle_type.value
        for candidate in same_model:
            if candidate.vehicle_type:
                return candidate.vehicle_type
        return None

    @staticmethod
    def _reference_price(
        pool: Sequence[VehicleSearchOption],
        same_model: Sequence[VehicleSearchOption],
        reference_class: str | None,
    ) -> float | None:
        """Mean day rate of the requested model, else of its class, else of everything found."""
        same_class = [c for c in pool if reference_class and _same(reference_class, c.vehicle_type)]
        for group in (same_model, same_class, pool):
            rates = [c.rates.day for c in group if c.rates.day is not None]
            if rates:
                return mean(rates)
        return None

    def _classify(
        self,
        candidate: VehicleSearchOption,
        draft: BookingDraft,
        reference_class: str | None,
        reference_price: float | None,
    ) -> AlternativeReason:
        if self._is_same_model(candidate, draft):
            return AlternativeReason.SAME_MODEL_DIFFERENT_COLOR
        if reference_class and _same(reference_class, candidate.vehicle_type):
            return AlternativeReason.SAME_CLASS_DIFFERENT_MODEL
        if self._within_price_band(candidate, reference_price):
            return AlternativeReason.SIMILAR_PRICE_RANGE
        return AlternativeReason.CLOSEST_AVAILABLE

    def _within_price_band(
        self,
        candidate: VehicleSearchOption,
        reference_price: float | None,
    ) -> bool:
        if reference_price is None or reference_price <= 0 or candidate.rates.day is None:
            return False
        return abs(candidate.rates.day - reference_price) <= reference_price * self.price_tolerance

    @staticmethod
    def _price_distance(candidate: VehicleSearchOption, reference_price: float | None) -> float:
        if reference_price is None:
            return 0.0
        if candidate.rates.day is None:
            return float("inf")
        return abs(candidate.rates.day - reference_price)
