"""
Trip quote service for the shuttle booking system.

Turns a stored vehicle type into a read-only pricing configuration and
assembles the full price breakdown for a trip: fixed area prices, tiered
distance pricing, surge multipliers, extras, round-trip and payment
discounts.
"""
import logging
import math
from datetime import datetime
from typing import Optional

from pydantic import ValidationError

from config import Settings, get_settings
from geo import is_location_in_area, route_distance_miles
from models import (
    Area,
    AreaPrice,
    DistanceTier,
    LatLng,
    PriceBreakdown,
    PriceCalculationRequest,
    PricingMethod,
    SurgeRule,
    VehiclePricingConfig,
)
from pricing_engine import calculate_distance_price

logger = logging.getLogger(__name__)

CASH_PAYMENT_METHOD = "cash"

# Prefix of the note recorded for each stored tier that fails validation
DROPPED_TIER_NOTE = "dropped invalid distance tier"


def _round_money(value: float) -> float:
    return round(value, 2)


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    return errors[0]["msg"] if errors else str(exc)


def load_pricing_config(
    vehicle_type,
    settings: Optional[Settings] = None,
) -> tuple[VehiclePricingConfig, list[str]]:
    """
    Build the pricing configuration for a stored vehicle type.

    Tier and surge records that fail validation are dropped with a warning
    rather than failing the quote.

    Args:
        vehicle_type: db_models.VehicleType row (with tiers, surges, area prices)
        settings: Application settings (defaults to the cached instance)

    Returns:
        (VehiclePricingConfig, diagnostic notes)

    Raises:
        ValueError: If the vehicle type's own pricing fields are invalid
    """
    settings = settings or get_settings()
    notes = []

    tiers = []
    for row in vehicle_type.distance_tiers:
        try:
            tiers.append(DistanceTier(
                from_miles=row.from_miles,
                to_miles=row.to_miles,
                price_per_mile=row.price_per_mile,
                description=row.description,
            ))
        except ValidationError as e:
            message = (
                f"{DROPPED_TIER_NOTE} {row.from_miles}-{row.to_miles} "
                f"on vehicle type {vehicle_type.name}: {_first_error(e)}"
            )
            logger.warning(message)
            notes.append(message)

    surges = []
    for row in vehicle_type.surge_pricing:
        try:
            surges.append(SurgeRule(
                name=row.name,
                description=row.description,
                multiplier=row.multiplier,
                is_active=row.is_active,
                days_of_week=row.days_of_week or [],
                start_time=row.start_time,
                end_time=row.end_time,
                start_date=row.start_date,
                end_date=row.end_date,
                specific_dates=row.specific_dates or [],
                priority=row.priority,
            ))
        except ValidationError as e:
            message = f"dropped invalid surge rule {row.name!r}: {_first_error(e)}"
            logger.warning(message)
            notes.append(message)

    area_prices = []
    for row in vehicle_type.area_prices:
        if row.area is None:
            continue
        try:
            area_prices.append(AreaPrice(
                area=Area(
                    id=row.area.id,
                    name=row.area.name,
                    type=row.area.type,
                    value=row.area.value,
                    polygon=[LatLng(**point) for point in (row.area.polygon or [])],
                ),
                fixed_price=row.fixed_price,
            ))
        except (ValidationError, TypeError) as e:
            message = f"dropped invalid area price for area {row.area.name!r}: {e}"
            logger.warning(message)
            notes.append(message)

    threshold = vehicle_type.base_distance_threshold
    if threshold is None:
        threshold = settings.default_base_distance_threshold
    fallback = vehicle_type.fallback_price_per_mile
    if fallback is None:
        fallback = settings.fallback_price_per_mile

    try:
        config = VehiclePricingConfig(
            id=vehicle_type.id,
            name=vehicle_type.name,
            base_price=vehicle_type.base_price,
            base_distance_threshold=threshold,
            distance_tiers=tiers,
            tier_basis=vehicle_type.tier_basis,
            fallback_price_per_mile=fallback,
            stop_charge=vehicle_type.stop_charge,
            child_seat_charge=vehicle_type.child_seat_charge,
            round_trip_discount=vehicle_type.round_trip_discount,
            cash_discount_percentage=vehicle_type.cash_discount_percentage,
            cash_discount_fixed_amount=vehicle_type.cash_discount_fixed_amount,
            surge_pricing=surges,
            area_prices=area_prices,
        )
    except ValidationError as e:
        raise ValueError(
            f"Vehicle type {vehicle_type.name} has an invalid pricing configuration: {_first_error(e)}"
        ) from e

    return config, notes


def surge_applies(rule: SurgeRule, when: datetime) -> bool:
    """
    Check whether a surge rule covers a pickup date/time.

    Time windows are inclusive and may wrap past midnight (e.g. 22:00-02:00).
    """
    if not rule.is_active:
        return False

    if rule.days_of_week:
        # isoweekday: Monday=1 .. Sunday=7 -> Sunday=0
        if when.isoweekday() % 7 not in rule.days_of_week:
            return False

    if rule.start_time and rule.end_time:
        current = when.strftime("%H:%M")
        if rule.start_time <= rule.end_time:
            if current < rule.start_time or current > rule.end_time:
                return False
        elif rule.end_time < current < rule.start_time:
            return False

    if rule.start_date and rule.end_date:
        if not rule.start_date <= when.date() <= rule.end_date:
            return False

    if rule.specific_dates and when.date() not in rule.specific_dates:
        return False

    return True


def select_surge(rules: list[SurgeRule], when: datetime) -> Optional[SurgeRule]:
    """Return the highest-priority surge rule covering the pickup, if any."""
    applicable = [rule for rule in rules if surge_applies(rule, when)]
    if not applicable:
        return None
    return max(applicable, key=lambda rule: rule.priority)


def find_area_prices(config: VehiclePricingConfig, pickup, dropoff) -> list[AreaPrice]:
    """
    Find the vehicle's area prices whose area contains the pickup or dropoff.

    Returns:
        Matching area prices, highest fixed price first
    """
    matches = [
        area_price for area_price in config.area_prices
        if is_location_in_area(pickup, area_price.area)
        or is_location_in_area(dropoff, area_price.area)
    ]
    return sorted(matches, key=lambda ap: ap.fixed_price, reverse=True)


def resolve_trip_distance(request: PriceCalculationRequest) -> tuple[float, list[str]]:
    """
    Decide the one-way distance to price.

    The driving distance supplied by the caller wins; without it the
    great-circle distance between pickup and dropoff is used.
    """
    if request.miles > 0:
        return request.miles, []
    if request.pickup.has_coordinates and request.dropoff.has_coordinates:
        miles = route_distance_miles([request.pickup, request.dropoff])
        if math.isfinite(miles):
            return miles, [f"no route distance supplied; used straight-line distance of {miles:.2f} miles"]
        logger.warning(f"straight-line distance came out as {miles!r}; priced as 0 miles")
        return 0.0, [f"straight-line distance came out as {miles!r}; priced as 0 miles"]
    return 0.0, ["no route distance or coordinates supplied; priced as 0 miles"]


def _fallback_breakdown(config: VehiclePricingConfig, distance: float, payment_method: str,
                     notes: list[str], area_price: Optional[AreaPrice] = None,
                     area_name: Optional[str] = None) -> PriceBreakdown:
    if area_price is not None:
        price = area_price.fixed_price
        pricing_method = PricingMethod.FIXED
    else:
        price = config.base_price
        pricing_method = PricingMethod.DISTANCE
    return PriceBreakdown(
        base_price=_round_money(price),
        distance_price=0.0,
        distance=_round_money(distance) if math.isfinite(distance) else 0.0,
        stops_charge=0.0,
        child_seats_charge=0.0,
        round_trip_discount=0.0,
        return_trip_price=0.0,
        subtotal=_round_money(price),
        payment_discount=0.0,
        final_total=_round_money(price),
        pricing_method=pricing_method,
        area_name=area_name,
        payment_method=payment_method,
        vehicle_type_id=config.id,
        vehicle_type_name=config.name,
        notes=notes,
    )


def calculate_quote(
    config: VehiclePricingConfig,
    request: PriceCalculationRequest,
    settings: Optional[Settings] = None,
    notes: Optional[list[str]] = None,
    now: Optional[datetime] = None,
) -> PriceBreakdown:
    """
    Calculate the full price breakdown for a trip.

    The outbound leg is charged in full; on a round trip the return leg is
    the same trip price less the vehicle's round-trip discount percentage.

    Args:
        config: The vehicle type's pricing configuration
        request: The trip to price
        settings: Application settings (defaults to the cached instance)
        notes: Diagnostic notes collected before pricing (e.g. dropped tiers)
        now: Pickup time used for surge pricing when the request has none

    Returns:
        PriceBreakdown with every amount rounded to cents
    """
    settings = settings or get_settings()
    notes = list(notes or [])
    payment_method = (request.payment_method or settings.default_payment_method).strip().lower()

    distance, distance_notes = resolve_trip_distance(request)
    notes.extend(distance_notes)

    area_name = None
    area_price = None
    surge = None
    area_matches = find_area_prices(config, request.pickup, request.dropoff)

    if area_matches:
        highest = area_price = area_matches[0]
        pricing_method = PricingMethod.FIXED
        base_price = highest.fixed_price
        distance_price = 0.0
        trip_price = highest.fixed_price
        if len(area_matches) > 1:
            names = ", ".join(ap.area.name for ap in area_matches)
            area_name = f"Multiple areas: {names} (using highest: ${highest.fixed_price:g})"
        else:
            area_name = highest.area.name
    else:
        pricing_method = PricingMethod.DISTANCE
        result = calculate_distance_price(distance, config)
        notes.extend(result.notes)
        distance = result.total_distance
        base_price = result.base_price
        distance_price = result.distance_price
        trip_price = base_price + distance_price

        surge = select_surge(config.surge_pricing, request.pickup_date_time or now or datetime.now())
        if surge:
            trip_price *= surge.multiplier

    stops_charge = request.stops_count * config.stop_charge
    child_seats_charge = request.child_seats_count * config.child_seat_charge

    return_trip_price = 0.0
    round_trip_discount = 0.0
    if request.is_round_trip:
        return_trip_price = trip_price * (1 - config.round_trip_discount / 100)
        round_trip_discount = trip_price - return_trip_price

    subtotal = trip_price + stops_charge + child_seats_charge + return_trip_price

    payment_discount = 0.0
    payment_discount_description = ""
    if payment_method == CASH_PAYMENT_METHOD:
        payment_discount = (
            subtotal * config.cash_discount_percentage / 100
            + config.cash_discount_fixed_amount
        )
        payment_discount = min(payment_discount, subtotal)
        payment_discount_description = (
            f"Cash payment discount ({config.cash_discount_percentage:g}% + "
            f"${config.cash_discount_fixed_amount:.2f})"
        )

    final_total = subtotal - payment_discount

    if not math.isfinite(final_total) or final_total < 0:
        fallback = "fixed area price" if area_price else "base price"
        message = f"price calculation produced {final_total!r}; fell back to {fallback} only"
        logger.error(message)
        notes.append(message)
        return _fallback_breakdown(config, distance, payment_method, notes, area_price, area_name)

    logger.debug(
        f"Quote for {config.name}: {distance:.2f} miles, method={pricing_method.value}, "
        f"total={final_total:.2f}"
    )

    return PriceBreakdown(
        base_price=_round_money(base_price),
        distance_price=_round_money(distance_price),
        distance=_round_money(distance),
        stops_charge=_round_money(stops_charge),
        child_seats_charge=_round_money(child_seats_charge),
        round_trip_discount=_round_money(round_trip_discount),
        return_trip_price=_round_money(return_trip_price),
        subtotal=_round_money(subtotal),
        payment_discount=_round_money(payment_discount),
        final_total=_round_money(final_total),
        pricing_method=pricing_method,
        area_name=area_name,
        surge_multiplier=surge.multiplier if surge and surge.multiplier > 1 else None,
        surge_name=surge.name if surge else None,
        payment_method=payment_method,
        payment_discount_description=payment_discount_description,
        vehicle_type_id=config.id,
        vehicle_type_name=config.name,
        notes=notes,
    )
