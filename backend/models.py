"""
Data models for the shuttle pricing API.

Tier, surge and area records are validated here once, at the boundary
between the database/HTTP layer and the pricing engine.
"""
import math
from datetime import date, datetime
from typing import Optional, Union
from pydantic import BaseModel, Field, field_validator
from enum import Enum

from config import DEFAULT_BASE_DISTANCE_THRESHOLD, DEFAULT_FALLBACK_PRICE_PER_MILE


# A tier whose to_miles is 0 has no upper bound
UNBOUNDED_TIER_SENTINEL = 0


class TierBasis(str, Enum):
    """What a tier's from_miles/to_miles are measured against."""
    ADDITIONAL = "additional"  # miles beyond the base distance threshold
    TOTAL = "total"            # total trip miles


class AreaType(str, Enum):
    """How an area is matched against a location."""
    CITY = "city"
    ZIPCODE = "zipcode"
    POLYGON = "polygon"


class PricingMethod(str, Enum):
    """How a trip price was derived."""
    FIXED = "fixed"
    DISTANCE = "distance"


def _require_finite(v):
    if v is not None and isinstance(v, (int, float)) and not math.isfinite(v):
        raise ValueError("must be a finite number")
    return v


class DistanceTier(BaseModel):
    """One priced band of miles, half-open [from_miles, to_miles)."""
    from_miles: float = Field(ge=0, alias="fromMiles")
    to_miles: float = Field(ge=0, alias="toMiles")  # 0 = unbounded
    price_per_mile: float = Field(ge=0, alias="pricePerMile")
    description: Optional[str] = None

    class Config:
        populate_by_name = True
        from_attributes = True

    @field_validator('from_miles', 'to_miles', 'price_per_mile', mode='before')
    @classmethod
    def check_finite(cls, v):
        return _require_finite(v)

    @property
    def is_unbounded(self) -> bool:
        return self.to_miles == UNBOUNDED_TIER_SENTINEL

    @property
    def end(self) -> float:
        """Upper bound with the sentinel expanded to infinity."""
        return math.inf if self.is_unbounded else self.to_miles

    @property
    def label(self) -> str:
        upper = "∞" if self.is_unbounded else f"{self.to_miles:g}"
        return f"{self.from_miles:g}-{upper}"


class LatLng(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)

    @field_validator('lat', 'lng', mode='before')
    @classmethod
    def check_finite(cls, v):
        return _require_finite(v)


class Location(BaseModel):
    """A pickup, dropoff or stop as sent by the booking wizard."""
    lat: float = Field(default=0, ge=-90, le=90)
    lng: float = Field(default=0, ge=-180, le=180)
    address: Optional[str] = None
    zipcode: Optional[str] = None
    city: Optional[str] = None

    @field_validator('lat', 'lng', mode='before')
    @classmethod
    def check_finite(cls, v):
        return _require_finite(v)

    @property
    def has_coordinates(self) -> bool:
        return not (self.lat == 0 and self.lng == 0)


class Area(BaseModel):
    """A service zone that can carry fixed prices."""
    id: Optional[int] = None
    name: str
    type: AreaType
    value: Optional[Union[str, list[str]]] = None
    polygon: list[LatLng] = []

    class Config:
        from_attributes = True


class AreaPrice(BaseModel):
    """Fixed trip price for a vehicle type within an area."""
    area: Area
    fixed_price: float = Field(ge=0, alias="fixedPrice")

    class Config:
        populate_by_name = True
        from_attributes = True


class SurgeRule(BaseModel):
    """
    A surge multiplier with optional calendar conditions.

    Every condition that is set must hold for the rule to apply.
    """
    name: str
    description: Optional[str] = None
    multiplier: float = Field(default=1.5, ge=1)
    is_active: bool = Field(default=True, alias="isActive")
    days_of_week: list[int] = Field(default=[], alias="daysOfWeek")  # 0=Sunday
    start_time: Optional[str] = Field(default=None, alias="startTime")  # "HH:MM"
    end_time: Optional[str] = Field(default=None, alias="endTime")
    start_date: Optional[date] = Field(default=None, alias="startDate")
    end_date: Optional[date] = Field(default=None, alias="endDate")
    specific_dates: list[date] = Field(default=[], alias="specificDates")
    priority: int = Field(default=1, ge=1)

    class Config:
        populate_by_name = True
        from_attributes = True

    @field_validator('days_of_week')
    @classmethod
    def check_days(cls, v):
        for day in v:
            if day < 0 or day > 6:
                raise ValueError("days_of_week entries must be 0 (Sunday) to 6 (Saturday)")
        return v

    @field_validator('start_time', 'end_time')
    @classmethod
    def check_time(cls, v):
        if v is None:
            return None
        parts = v.split(':')
        if len(parts) != 2 or not all(p.isdigit() for p in parts):
            raise ValueError("time must be HH:MM")
        hours, minutes = int(parts[0]), int(parts[1])
        if hours > 23 or minutes > 59:
            raise ValueError("time must be HH:MM")
        return f"{hours:02d}:{minutes:02d}"


class VehiclePricingConfig(BaseModel):
    """Read-only pricing configuration for one vehicle type."""
    id: Optional[int] = None
    name: Optional[str] = None
    base_price: float = Field(default=55.0, ge=0, alias="basePrice")
    base_distance_threshold: float = Field(
        default=DEFAULT_BASE_DISTANCE_THRESHOLD, ge=0, alias="baseDistanceThreshold"
    )
    distance_tiers: list[DistanceTier] = Field(default=[], alias="distanceTiers")
    tier_basis: TierBasis = Field(default=TierBasis.ADDITIONAL, alias="tierBasis")
    fallback_price_per_mile: float = Field(
        default=DEFAULT_FALLBACK_PRICE_PER_MILE, ge=0, alias="fallbackPricePerMile"
    )
    stop_charge: float = Field(default=5.0, ge=0, alias="stopCharge")
    child_seat_charge: float = Field(default=5.0, ge=0, alias="childSeatCharge")
    round_trip_discount: float = Field(default=10.0, ge=0, le=100, alias="roundTripDiscount")
    cash_discount_percentage: float = Field(default=3.5, ge=0, le=100, alias="cashDiscountPercentage")
    cash_discount_fixed_amount: float = Field(default=0.15, ge=0, alias="cashDiscountFixedAmount")
    surge_pricing: list[SurgeRule] = Field(default=[], alias="surgePricing")
    area_prices: list[AreaPrice] = Field(default=[], alias="areaPrices")

    class Config:
        populate_by_name = True
        from_attributes = True
        frozen = True

    @field_validator(
        'base_price', 'base_distance_threshold', 'fallback_price_per_mile',
        'stop_charge', 'child_seat_charge', mode='before'
    )
    @classmethod
    def check_finite(cls, v):
        return _require_finite(v)


class TierCharge(BaseModel):
    """Miles and charge attributed to one tier during a tier walk."""
    tier: str
    miles: float
    price_per_mile: float
    charge: float


class DistancePriceResult(BaseModel):
    """Output of the distance-tiered pricing calculation."""
    base_price: float
    distance_price: float
    total_distance: float
    additional_distance: float = 0.0
    fallback_miles: float = 0.0
    tier_charges: list[TierCharge] = []
    notes: list[str] = []


class PriceCalculationRequest(BaseModel):
    """Request to price a trip, as posted by the booking wizard."""
    pickup: Location
    dropoff: Location
    miles: float = Field(ge=0)
    stops_count: int = Field(default=0, ge=0, alias="stopsCount")
    child_seats_count: int = Field(default=0, ge=0, alias="childSeatsCount")
    is_round_trip: bool = Field(default=False, alias="isRoundTrip")
    vehicle_type_id: Optional[Union[int, str]] = Field(default=None, alias="vehicleTypeId")
    payment_method: Optional[str] = Field(default=None, alias="paymentMethod")
    pickup_date_time: Optional[datetime] = Field(default=None, alias="pickupDateTime")

    class Config:
        populate_by_name = True

    @field_validator('miles', mode='before')
    @classmethod
    def check_miles(cls, v):
        return _require_finite(v)


class PriceBreakdown(BaseModel):
    """Itemized price for a trip. Amounts are rounded to cents."""
    base_price: float = Field(alias="basePrice")
    distance_price: float = Field(alias="distancePrice")
    distance: float
    stops_charge: float = Field(alias="stopsCharge")
    child_seats_charge: float = Field(alias="childSeatsCharge")
    round_trip_discount: float = Field(alias="roundTripDiscount")
    return_trip_price: float = Field(alias="returnTripPrice")
    subtotal: float
    payment_discount: float = Field(alias="paymentDiscount")
    final_total: float = Field(alias="finalTotal")
    pricing_method: PricingMethod = Field(alias="pricingMethod")
    area_name: Optional[str] = Field(default=None, alias="areaName")
    surge_multiplier: Optional[float] = Field(default=None, alias="surgeMultiplier")
    surge_name: Optional[str] = Field(default=None, alias="surgeName")
    payment_method: str = Field(alias="paymentMethod")
    payment_discount_description: str = Field(default="", alias="paymentDiscountDescription")
    vehicle_type_id: Optional[int] = Field(default=None, alias="vehicleTypeId")
    vehicle_type_name: Optional[str] = Field(default=None, alias="vehicleTypeName")
    notes: list[str] = []

    class Config:
        populate_by_name = True


# ==================== ADMIN / CRUD PAYLOADS ====================

class VehicleTypeRequest(BaseModel):
    """Create or update a vehicle type from the admin portal."""
    name: str
    description: str = ""
    category: str = "standard"
    capacity: int = Field(default=4, ge=1)
    is_active: bool = Field(default=True, alias="isActive")
    base_price: float = Field(default=55.0, ge=0, alias="basePrice")
    base_distance_threshold: float = Field(
        default=DEFAULT_BASE_DISTANCE_THRESHOLD, ge=0, alias="baseDistanceThreshold"
    )
    distance_tiers: list[DistanceTier] = Field(default=[], alias="distanceTiers")
    tier_basis: TierBasis = Field(default=TierBasis.ADDITIONAL, alias="tierBasis")
    fallback_price_per_mile: Optional[float] = Field(default=None, ge=0, alias="fallbackPricePerMile")
    stop_charge: float = Field(default=5.0, ge=0, alias="stopCharge")
    child_seat_charge: float = Field(default=5.0, ge=0, alias="childSeatCharge")
    round_trip_discount: float = Field(default=10.0, ge=0, le=100, alias="roundTripDiscount")
    cash_discount_percentage: float = Field(default=3.5, ge=0, le=100, alias="cashDiscountPercentage")
    cash_discount_fixed_amount: float = Field(default=0.15, ge=0, alias="cashDiscountFixedAmount")
    surge_pricing: list[SurgeRule] = Field(default=[], alias="surgePricing")

    class Config:
        populate_by_name = True


class VehicleTypeResponse(BaseModel):
    """Vehicle type as returned to the admin portal."""
    id: int
    name: str
    description: str
    category: str
    capacity: int
    is_active: bool = Field(alias="isActive")
    base_price: float = Field(alias="basePrice")
    base_distance_threshold: float = Field(alias="baseDistanceThreshold")
    distance_tiers: list[DistanceTier] = Field(alias="distanceTiers")
    tier_basis: TierBasis = Field(alias="tierBasis")
    fallback_price_per_mile: Optional[float] = Field(default=None, alias="fallbackPricePerMile")
    stop_charge: float = Field(alias="stopCharge")
    child_seat_charge: float = Field(alias="childSeatCharge")
    round_trip_discount: float = Field(alias="roundTripDiscount")
    cash_discount_percentage: float = Field(alias="cashDiscountPercentage")
    cash_discount_fixed_amount: float = Field(alias="cashDiscountFixedAmount")
    surge_pricing: list[SurgeRule] = Field(default=[], alias="surgePricing")
    area_prices: list[AreaPrice] = Field(default=[], alias="areaPrices")

    class Config:
        populate_by_name = True
        from_attributes = True


class AreaRequest(BaseModel):
    """Create an area (service zone)."""
    name: str
    type: AreaType
    value: Optional[Union[str, list[str]]] = None
    polygon: list[LatLng] = []

    @field_validator('polygon')
    @classmethod
    def check_polygon(cls, v):
        if v and len(v) < 3:
            raise ValueError("polygon needs at least 3 points")
        return v


class AreaPriceRequest(BaseModel):
    area_id: int = Field(alias="areaId")
    fixed_price: float = Field(ge=0, alias="fixedPrice")

    class Config:
        populate_by_name = True


class TierNormalizationResponse(BaseModel):
    """Outcome of repairing a vehicle type's tiers."""
    vehicle_type_id: int = Field(alias="vehicleTypeId")
    changed: bool
    repairs: list[str]
    distance_tiers: list[DistanceTier] = Field(alias="distanceTiers")

    class Config:
        populate_by_name = True


class BookingRequest(BaseModel):
    """Request to book a shuttle trip. The price is computed server-side."""
    # Contact details
    first_name: str = Field(alias="firstName")
    last_name: str = Field(alias="lastName")
    email: str
    phone: str

    # Trip details
    pickup: Location
    dropoff: Location
    pickup_date_time: datetime = Field(alias="pickupDateTime")
    miles: float = Field(ge=0)
    stops_count: int = Field(default=0, ge=0, alias="stopsCount")
    child_seats_count: int = Field(default=0, ge=0, alias="childSeatsCount")
    is_round_trip: bool = Field(default=False, alias="isRoundTrip")
    return_date_time: Optional[datetime] = Field(default=None, alias="returnDateTime")
    flight_number: Optional[str] = Field(default=None, alias="flightNumber")
    passengers: int = Field(default=1, ge=1)

    vehicle_type_id: Optional[Union[int, str]] = Field(default=None, alias="vehicleTypeId")
    payment_method: Optional[str] = Field(default=None, alias="paymentMethod")
    notes: Optional[str] = None

    class Config:
        populate_by_name = True

    @field_validator('miles', mode='before')
    @classmethod
    def check_miles(cls, v):
        return _require_finite(v)


class BookingResponse(BaseModel):
    """A stored booking with its price breakdown."""
    reference: str
    status: str
    first_name: str = Field(alias="firstName")
    last_name: str = Field(alias="lastName")
    email: str
    phone: str
    pickup_address: Optional[str] = Field(default=None, alias="pickupAddress")
    dropoff_address: Optional[str] = Field(default=None, alias="dropoffAddress")
    pickup_date_time: datetime = Field(alias="pickupDateTime")
    return_date_time: Optional[datetime] = Field(default=None, alias="returnDateTime")
    is_round_trip: bool = Field(alias="isRoundTrip")
    passengers: int
    vehicle_type_id: int = Field(alias="vehicleTypeId")
    price: PriceBreakdown
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")

    class Config:
        populate_by_name = True
