"""
Tests for trip quote assembly.

Tests cover:
- Loading a vehicle type's pricing configuration from the database
- Fixed area prices (highest wins) versus distance pricing
- Surge rules: days, time windows, dates, priority
- Extras, round trips and cash payment discounts
- Distance resolution and the non-finite total guard
"""
from datetime import date, datetime

import pytest

from config import Settings
from db_models import DistanceTier as DbDistanceTier, SurgePricing
from models import (
    Area,
    AreaPrice,
    AreaPriceRequest,
    AreaRequest,
    AreaType,
    DistanceTier,
    Location,
    PriceCalculationRequest,
    PricingMethod,
    SurgeRule,
    VehiclePricingConfig,
    VehicleTypeRequest,
)
from pricing_engine import DEFAULT_DISTANCE_TIERS
from pricing_service import (
    calculate_quote,
    load_pricing_config,
    resolve_trip_distance,
    select_surge,
    surge_applies,
)
import db_service


SETTINGS = Settings(fallback_price_per_mile=2.0, default_payment_method="invoice")

# Saturday and Wednesday afternoons
SATURDAY = datetime(2026, 10, 24, 14, 0)
WEDNESDAY = datetime(2026, 10, 21, 14, 0)

MIAMI = Area(name="Miami", type=AreaType.CITY, value="Miami")
AIRPORT_ZONE = Area(name="Airport Zone", type=AreaType.ZIPCODE, value=["33126", "33142"])


def make_config(**overrides):
    values = {
        "id": 1,
        "name": "Sedan",
        "base_price": 55.0,
        "base_distance_threshold": 12.0,
        "distance_tiers": DEFAULT_DISTANCE_TIERS,
    }
    values.update(overrides)
    return VehiclePricingConfig(**values)


def quote(config, now=WEDNESDAY, **fields):
    values = {"pickup": Location(), "dropoff": Location(), "miles": 30}
    values.update(fields)
    return calculate_quote(config, PriceCalculationRequest(**values), settings=SETTINGS, now=now)


# =============================================================================
# Loading configuration from the database
# =============================================================================

class TestLoadPricingConfig:
    """Building the engine's configuration from stored rows."""

    def test_loads_vehicle_type(self, sedan):
        config, notes = load_pricing_config(sedan, SETTINGS)
        assert config.name == "Sedan"
        assert config.base_price == 55.0
        assert [t.label for t in config.distance_tiers] == ["0-13", "13-25", "25-∞"]
        assert notes == []

    def test_missing_fallback_rate_uses_settings(self, sedan):
        config, _ = load_pricing_config(sedan, Settings(fallback_price_per_mile=1.5))
        assert config.fallback_price_per_mile == 1.5

    def test_vehicle_fallback_rate_wins(self, db_session, sedan):
        sedan.fallback_price_per_mile = 3.25
        db_session.commit()
        config, _ = load_pricing_config(sedan, SETTINGS)
        assert config.fallback_price_per_mile == 3.25

    def test_invalid_tier_row_is_dropped(self, db_session, sedan):
        sedan.distance_tiers.append(
            DbDistanceTier(position=9, from_miles=50, to_miles=0, price_per_mile=-1)
        )
        db_session.commit()

        config, notes = load_pricing_config(sedan, SETTINGS)
        assert len(config.distance_tiers) == 3
        assert "dropped invalid distance tier 50.0-0.0" in notes[0]

    def test_invalid_surge_row_is_dropped(self, db_session, sedan):
        sedan.surge_pricing.append(SurgePricing(name="Discount", multiplier=0.5))
        db_session.commit()

        config, notes = load_pricing_config(sedan, SETTINGS)
        assert config.surge_pricing == []
        assert "dropped invalid surge rule 'Discount'" in notes[0]

    def test_invalid_vehicle_pricing_raises(self, sedan):
        sedan.base_price = -5
        with pytest.raises(ValueError, match="invalid pricing configuration"):
            load_pricing_config(sedan, SETTINGS)

    def test_surge_rules_round_trip_through_storage(self, db_session):
        vehicle_type = db_service.create_vehicle_type(db_session, VehicleTypeRequest(
            name="Van",
            surge_pricing=[SurgeRule(
                name="Christmas", multiplier=2.0,
                specific_dates=[date(2026, 12, 25)], start_time="9:00", end_time="17:30",
            )],
        ))
        config, _ = load_pricing_config(vehicle_type, SETTINGS)

        rule = config.surge_pricing[0]
        assert rule.specific_dates == [date(2026, 12, 25)]
        assert (rule.start_time, rule.end_time) == ("09:00", "17:30")

    def test_area_prices_are_loaded(self, db_session, sedan):
        area = db_service.create_area(db_session, AreaRequest(name="Miami", type=AreaType.CITY, value="Miami"))
        db_service.set_area_prices(db_session, sedan, [AreaPriceRequest(area_id=area.id, fixed_price=80)])

        config, _ = load_pricing_config(sedan, SETTINGS)
        assert config.area_prices[0].area.name == "Miami"
        assert config.area_prices[0].fixed_price == 80


# =============================================================================
# Distance pricing
# =============================================================================

class TestDistanceQuote:
    """Quotes priced through the distance tiers."""

    def test_basic_distance_quote(self):
        price = quote(make_config())
        assert price.pricing_method == PricingMethod.DISTANCE
        assert price.base_price == 55.0
        assert price.distance_price == 69.5
        assert price.distance == 30
        assert price.subtotal == 124.5
        assert price.final_total == 124.5
        assert price.payment_method == "invoice"
        assert price.vehicle_type_name == "Sedan"

    def test_short_trip_is_base_price(self):
        price = quote(make_config(), miles=8)
        assert price.distance_price == 0
        assert price.final_total == 55.0

    def test_stops_and_child_seats(self):
        price = quote(make_config(), stops_count=2, child_seats_count=1)
        assert price.stops_charge == 10.0
        assert price.child_seats_charge == 5.0
        assert price.final_total == 139.5

    def test_round_trip_discounts_return_leg(self):
        price = quote(make_config(round_trip_discount=10), is_round_trip=True)
        assert price.return_trip_price == 112.05
        assert price.round_trip_discount == 12.45
        assert price.subtotal == 236.55

    def test_one_way_has_no_return_leg(self):
        price = quote(make_config())
        assert price.return_trip_price == 0
        assert price.round_trip_discount == 0

    def test_amounts_are_rounded_to_cents(self):
        config = make_config(distance_tiers=[DistanceTier(from_miles=0, to_miles=0, price_per_mile=1.0 / 3)])
        price = quote(config, miles=13)
        assert price.distance_price == 0.33
        assert price.final_total == 55.33


# =============================================================================
# Payment discounts
# =============================================================================

class TestPaymentDiscount:
    """Cash payments earn a percentage plus a fixed amount off."""

    def test_cash_discount(self):
        price = quote(make_config(base_price=100), miles=0, payment_method="cash")
        # 100.00 * 3.5% + 0.15
        assert price.payment_discount == 3.65
        assert price.final_total == 96.35
        assert price.payment_discount_description == "Cash payment discount (3.5% + $0.15)"

    def test_payment_method_is_case_insensitive(self):
        price = quote(make_config(), payment_method=" CASH ")
        assert price.payment_method == "cash"
        assert price.payment_discount > 0

    def test_invoice_has_no_discount(self):
        price = quote(make_config(), payment_method="invoice")
        assert price.payment_discount == 0
        assert price.payment_discount_description == ""

    def test_vehicle_specific_cash_discount(self):
        config = make_config(cash_discount_percentage=10, cash_discount_fixed_amount=0)
        price = quote(config, payment_method="cash")
        assert price.payment_discount == 12.45

    def test_discount_never_exceeds_subtotal(self):
        config = make_config(base_price=0, distance_tiers=[])
        price = quote(config, miles=0, payment_method="cash")
        assert price.payment_discount == 0
        assert price.final_total == 0


# =============================================================================
# Fixed area prices
# =============================================================================

class TestAreaPricing:
    """A priced area overrides distance pricing."""

    def area_config(self, **overrides):
        return make_config(
            area_prices=[
                AreaPrice(area=MIAMI, fixed_price=80),
                AreaPrice(area=AIRPORT_ZONE, fixed_price=95),
            ],
            **overrides,
        )

    def test_pickup_in_area_uses_fixed_price(self):
        price = quote(self.area_config(), pickup=Location(city="Miami"))
        assert price.pricing_method == PricingMethod.FIXED
        assert price.base_price == 80
        assert price.distance_price == 0
        assert price.final_total == 80
        assert price.area_name == "Miami"

    def test_dropoff_in_area_uses_fixed_price(self):
        price = quote(self.area_config(), dropoff=Location(zipcode="33126"))
        assert price.final_total == 95
        assert price.area_name == "Airport Zone"

    def test_highest_fixed_price_wins(self):
        price = quote(self.area_config(), pickup=Location(city="Miami"), dropoff=Location(zipcode="33142"))
        assert price.final_total == 95
        assert price.area_name == "Multiple areas: Airport Zone, Miami (using highest: $95)"

    def test_outside_every_area_uses_distance_pricing(self):
        price = quote(self.area_config(), pickup=Location(city="Orlando"))
        assert price.pricing_method == PricingMethod.DISTANCE
        assert price.area_name is None

    def test_surge_does_not_apply_to_fixed_price(self):
        config = self.area_config(surge_pricing=[SurgeRule(name="Weekend", multiplier=2.0, days_of_week=[0, 6])])
        price = quote(config, pickup=Location(city="Miami"), pickup_date_time=SATURDAY)
        assert price.final_total == 80
        assert price.surge_multiplier is None

    def test_round_trip_and_extras_apply_to_fixed_price(self):
        price = quote(self.area_config(), pickup=Location(city="Miami"), is_round_trip=True, stops_count=1)
        assert price.return_trip_price == 72.0
        assert price.subtotal == 80 + 72 + 5


# =============================================================================
# Surge pricing
# =============================================================================

class TestSurgePricing:
    """Surge multipliers applied to distance prices."""

    WEEKEND = SurgeRule(name="Weekend", multiplier=1.5, days_of_week=[0, 6])

    def test_surge_applies_to_trip_price(self):
        price = quote(make_config(surge_pricing=[self.WEEKEND]), pickup_date_time=SATURDAY)
        assert price.final_total == 186.75
        assert price.surge_multiplier == 1.5
        assert price.surge_name == "Weekend"

    def test_surge_outside_days(self):
        price = quote(make_config(surge_pricing=[self.WEEKEND]), pickup_date_time=WEDNESDAY)
        assert price.final_total == 124.5
        assert price.surge_name is None

    def test_request_without_pickup_time_uses_now(self):
        price = quote(make_config(surge_pricing=[self.WEEKEND]), now=SATURDAY)
        assert price.surge_multiplier == 1.5

    def test_sunday_is_day_zero(self):
        rule = SurgeRule(name="Sunday", days_of_week=[0])
        assert surge_applies(rule, datetime(2026, 10, 25, 9, 0))
        assert not surge_applies(rule, SATURDAY)

    def test_inactive_rule_is_ignored(self):
        rule = SurgeRule(name="Off", is_active=False)
        assert not surge_applies(rule, SATURDAY)

    def test_time_window_is_inclusive(self):
        rule = SurgeRule(name="Rush hour", start_time="16:00", end_time="19:00")
        assert surge_applies(rule, datetime(2026, 10, 21, 16, 0))
        assert surge_applies(rule, datetime(2026, 10, 21, 19, 0))
        assert not surge_applies(rule, datetime(2026, 10, 21, 19, 1))

    def test_time_window_past_midnight(self):
        rule = SurgeRule(name="Late night", start_time="22:00", end_time="02:00")
        assert surge_applies(rule, datetime(2026, 10, 21, 23, 30))
        assert surge_applies(rule, datetime(2026, 10, 22, 1, 0))
        assert not surge_applies(rule, datetime(2026, 10, 21, 12, 0))

    def test_date_range(self):
        rule = SurgeRule(name="Holidays", start_date=date(2026, 12, 20), end_date=date(2026, 12, 31))
        assert surge_applies(rule, datetime(2026, 12, 31, 23, 0))
        assert not surge_applies(rule, datetime(2027, 1, 1, 0, 0))

    def test_specific_dates(self):
        rule = SurgeRule(name="Race day", specific_dates=[date(2026, 11, 1)])
        assert surge_applies(rule, datetime(2026, 11, 1, 10, 0))
        assert not surge_applies(rule, datetime(2026, 11, 2, 10, 0))

    def test_all_conditions_must_hold(self):
        rule = SurgeRule(name="Weekend nights", days_of_week=[6], start_time="20:00", end_time="23:59")
        assert not surge_applies(rule, SATURDAY)
        assert surge_applies(rule, datetime(2026, 10, 24, 21, 0))

    def test_highest_priority_wins(self):
        low = SurgeRule(name="Weekend", multiplier=2.0, days_of_week=[0, 6], priority=1)
        high = SurgeRule(name="Saturday", multiplier=1.2, days_of_week=[6], priority=5)
        assert select_surge([low, high], SATURDAY).name == "Saturday"

    def test_no_applicable_rule(self):
        assert select_surge([self.WEEKEND], WEDNESDAY) is None

    def test_invalid_day_rejected(self):
        with pytest.raises(ValueError):
            SurgeRule(name="Bad", days_of_week=[7])


# =============================================================================
# Distance resolution and safety
# =============================================================================

class TestDistanceResolution:
    """Choosing the distance to price."""

    def test_supplied_miles_win(self):
        request = PriceCalculationRequest(
            pickup=Location(lat=25.79, lng=-80.29),
            dropoff=Location(lat=26.07, lng=-80.15),
            miles=30,
        )
        assert resolve_trip_distance(request) == (30, [])

    def test_coordinates_used_without_miles(self):
        request = PriceCalculationRequest(
            pickup=Location(lat=25.7959, lng=-80.2870),
            dropoff=Location(lat=26.0742, lng=-80.1506),
            miles=0,
        )
        miles, notes = resolve_trip_distance(request)
        assert miles == pytest.approx(21, abs=1)
        assert "straight-line" in notes[0]

    def test_nothing_to_measure(self):
        request = PriceCalculationRequest(pickup=Location(), dropoff=Location(), miles=0)
        assert resolve_trip_distance(request) == (0.0, ["no route distance or coordinates supplied; priced as 0 miles"])

    @pytest.mark.parametrize("miles", [-1, float("nan"), float("inf")])
    def test_invalid_miles_rejected(self, miles):
        with pytest.raises(ValueError):
            PriceCalculationRequest(pickup=Location(), dropoff=Location(), miles=miles)


class TestNonFiniteGuard:
    """A total that overflows falls back to a single trip price."""

    def test_overflowing_total_falls_back_to_base_price(self):
        config = make_config(distance_tiers=[DistanceTier(from_miles=0, to_miles=0, price_per_mile=1e308)])
        price = quote(config, miles=1e6)
        assert price.final_total == 55.0
        assert price.distance_price == 0
        assert any("fell back to base price only" in note for note in price.notes)

    def test_notes_are_carried_into_breakdown(self):
        config = make_config(distance_tiers=[])
        price = calculate_quote(
            config,
            PriceCalculationRequest(pickup=Location(), dropoff=Location(), miles=20),
            settings=SETTINGS,
            notes=["dropped invalid distance tier"],
            now=WEDNESDAY,
        )
        assert price.notes[0] == "dropped invalid distance tier"
        assert any("no distance tiers" in note for note in price.notes)

    def test_overflowing_fixed_price_keeps_area_price(self):
        config = make_config(area_prices=[AreaPrice(area=MIAMI, fixed_price=1e308)])
        price = quote(config, pickup=Location(city="Miami"), is_round_trip=True)
        assert price.pricing_method == PricingMethod.FIXED
        assert price.area_name == "Miami"
        assert price.final_total == 1e308
        assert price.base_price == 1e308
        assert any("fell back to fixed area price only" in note for note in price.notes)

    def test_reported_distance_is_priced_distance(self):
        price = quote(make_config(), miles=30)
        assert price.distance == 30

    @pytest.mark.parametrize("lat", [float("nan"), float("inf"), 91, -91])
    def test_invalid_coordinates_rejected(self, lat):
        with pytest.raises(ValueError):
            PriceCalculationRequest(pickup=Location(lat=lat, lng=-80.29), dropoff=Location(), miles=0)
