"""
Distance-tiered pricing for shuttle trips.

A vehicle type's base price covers every trip up to and including its base
distance threshold. Miles beyond the threshold ("additional miles") are
priced by walking the vehicle's distance tiers in order:

    Base threshold 12 miles, trip of 30 miles -> 18 additional miles
    Tier 0-13  @ $4.00  -> 13 miles = $52.00
    Tier 13-25 @ $3.50  ->  5 miles = $17.50
    Distance price = $69.50

Tier bounds are half-open [from_miles, to_miles) and a to_miles of 0 marks
the open-ended last tier. Additional miles that no tier covers (no open-ended
tier configured) are charged at the vehicle's fallback per-mile rate.

Everything here is a pure function of its arguments. Malformed tier data
never raises; it yields a best-effort price plus diagnostic notes.
"""
import logging
import math

from models import (
    DistanceTier,
    DistancePriceResult,
    TierBasis,
    TierCharge,
    VehiclePricingConfig,
)

logger = logging.getLogger(__name__)

# Schedule applied by the tier maintenance script to vehicle types with no tiers
DEFAULT_DISTANCE_TIERS = [
    DistanceTier(from_miles=0, to_miles=13, price_per_mile=4.0,
                 description="Short distance (0-13 additional miles)"),
    DistanceTier(from_miles=13, to_miles=25, price_per_mile=3.5,
                 description="Medium distance (13-25 additional miles)"),
    DistanceTier(from_miles=25, to_miles=50, price_per_mile=3.0,
                 description="Long distance (25-50 additional miles)"),
    DistanceTier(from_miles=50, to_miles=0, price_per_mile=2.5,
                 description="Extended distance (50+ additional miles)"),
]


def sort_tiers(tiers: list[DistanceTier]) -> list[DistanceTier]:
    """Return a copy of the tiers ordered by from_miles (stable)."""
    return sorted(tiers, key=lambda t: t.from_miles)


def is_degenerate(tier: DistanceTier) -> bool:
    """A bounded tier that ends before it starts."""
    return not tier.is_unbounded and tier.to_miles < tier.from_miles


def find_tier_problems(tiers: list[DistanceTier]) -> list[str]:
    """
    Describe every way a tier list departs from normal form.

    Normal form is: sorted by from_miles, each tier ending where the next
    one starts, and exactly the last tier open-ended (to_miles = 0).

    Args:
        tiers: The tier list as stored

    Returns:
        Human-readable problems; empty when the tiers are in normal form
    """
    if not tiers:
        return ["no distance tiers configured"]

    problems = []
    if any(a.from_miles > b.from_miles for a, b in zip(tiers, tiers[1:])):
        problems.append("tiers are not sorted by fromMiles")

    ordered = sort_tiers(tiers)
    for tier in ordered:
        if is_degenerate(tier):
            problems.append(f"tier {tier.label} ends before it starts")

    usable = [t for t in ordered if not is_degenerate(t)]
    for current, following in zip(usable, usable[1:]):
        if current.is_unbounded:
            problems.append(
                f"tier {current.label} is open-ended but tier {following.label} follows it"
            )
        elif current.to_miles < following.from_miles:
            problems.append(
                f"gap between {current.to_miles:g} and {following.from_miles:g} miles"
            )
        elif current.to_miles > following.from_miles:
            problems.append(
                f"tiers {current.label} and {following.label} overlap"
            )

    if usable and not usable[-1].is_unbounded:
        problems.append(f"last tier {usable[-1].label} is not open-ended (toMiles should be 0)")

    return problems


def calculate_distance_price(
    total_distance_miles: float,
    config: VehiclePricingConfig,
) -> DistancePriceResult:
    """
    Price a trip's distance against a vehicle type's tiers.

    Args:
        total_distance_miles: One-way trip distance in miles (>= 0)
        config: The vehicle type's pricing configuration

    Returns:
        DistancePriceResult with the unrounded base and distance prices,
        the per-tier breakdown and any diagnostic notes
    """
    notes: list[str] = []
    base_price = config.base_price
    threshold = config.base_distance_threshold

    distance = total_distance_miles
    if distance is None or not math.isfinite(distance) or distance < 0:
        message = f"invalid trip distance {distance!r}; treated as 0 miles"
        logger.warning(message)
        notes.append(message)
        distance = 0.0

    # The threshold itself is still covered by the base price
    if distance <= threshold:
        return DistancePriceResult(
            base_price=base_price,
            distance_price=0.0,
            total_distance=distance,
            notes=notes,
        )

    additional = distance - threshold
    fallback_rate = config.fallback_price_per_mile
    tiers = config.distance_tiers

    if not tiers:
        message = (
            f"vehicle type {config.name or config.id} has no distance tiers; "
            f"{additional:g} additional miles charged at fallback ${fallback_rate:g}/mile"
        )
        logger.warning(message)
        notes.append(message)
        return DistancePriceResult(
            base_price=base_price,
            distance_price=additional * fallback_rate,
            total_distance=distance,
            additional_distance=additional,
            fallback_miles=additional,
            notes=notes,
        )

    if any(a.from_miles > b.from_miles for a, b in zip(tiers, tiers[1:])):
        message = "distance tiers are not sorted by fromMiles; sorted before pricing"
        logger.warning(message)
        notes.append(message)
    ordered = sort_tiers(tiers)

    # Position of the next mile to price, in the units the tiers are measured in
    cursor = threshold if config.tier_basis == TierBasis.TOTAL else 0.0
    remaining = additional
    distance_price = 0.0
    charges: list[TierCharge] = []

    for tier in ordered:
        if remaining <= 0:
            break

        if is_degenerate(tier):
            message = f"skipped tier {tier.label}: toMiles is below fromMiles"
            logger.warning(message)
            notes.append(message)
            continue

        if tier.from_miles > cursor:
            message = (
                f"gap in distance tiers between {cursor:g} and {tier.from_miles:g} miles; "
                f"miles carried into tier {tier.label}"
            )
            logger.warning(message)
            notes.append(message)

        start = max(tier.from_miles, cursor)
        distance_in_tier = max(0.0, min(remaining, tier.end - start))

        if distance_in_tier > 0:
            charge = distance_in_tier * tier.price_per_mile
            distance_price += charge
            charges.append(TierCharge(
                tier=tier.label,
                miles=distance_in_tier,
                price_per_mile=tier.price_per_mile,
                charge=charge,
            ))
            remaining -= distance_in_tier

        cursor = start + distance_in_tier

    fallback_miles = 0.0
    if remaining > 0:
        fallback_miles = remaining
        distance_price += remaining * fallback_rate
        message = (
            f"no open-ended distance tier; {remaining:g} miles beyond the last tier "
            f"charged at fallback ${fallback_rate:g}/mile"
        )
        logger.warning(message)
        notes.append(message)

    return DistancePriceResult(
        base_price=base_price,
        distance_price=distance_price,
        total_distance=distance,
        additional_distance=additional,
        fallback_miles=fallback_miles,
        tier_charges=charges,
        notes=notes,
    )


def normalize_tiers(tiers: list[DistanceTier]) -> tuple[list[DistanceTier], list[str]]:
    """
    Repair a tier list into normal form.

    - Sort ascending by from_miles
    - Close gaps: each tier's to_miles becomes the next tier's from_miles
    - Force the last tier open-ended (to_miles = 0)

    A tier that starts where the next one starts would have zero length
    and is dropped, since a to_miles of 0 would make it open-ended.

    Args:
        tiers: The stored tier list (not modified)

    Returns:
        (normalized tiers, list of repairs made)
    """
    if not tiers:
        return [], []

    repairs = []
    ordered = sort_tiers(tiers)
    if ordered != list(tiers):
        repairs.append("sorted tiers by fromMiles")

    normalized = []
    for index, tier in enumerate(ordered):
        if index == len(ordered) - 1:
            if not tier.is_unbounded:
                repairs.append(f"opened last tier {tier.label} (toMiles set to 0)")
                tier = tier.model_copy(update={
                    "to_miles": 0.0,
                    "description": tier.description or "Extended distance",
                })
            normalized.append(tier)
            continue

        following = ordered[index + 1]
        if following.from_miles == tier.from_miles:
            repairs.append(f"dropped tier {tier.label}: tier {following.label} starts at the same mile")
            continue
        if tier.to_miles != following.from_miles:
            repairs.append(
                f"set toMiles of tier {tier.label} to {following.from_miles:g} to meet the next tier"
            )
            tier = tier.model_copy(update={"to_miles": following.from_miles})
        normalized.append(tier)

    return normalized, repairs
