"""
Database service layer for CRUD operations.
"""
import logging
import random
import string
from typing import Optional, List, Union

from sqlalchemy.orm import Session

from db_models import (
    Area, Booking, BookingStatus, SurgePricing, VehicleAreaPrice, VehicleType,
    DistanceTier as DbDistanceTier,
)
from models import (
    AreaPriceRequest,
    AreaRequest,
    BookingRequest,
    DistanceTier,
    PriceBreakdown,
    SurgeRule,
    VehicleTypeRequest,
)
from pricing_engine import normalize_tiers
from pricing_service import DROPPED_TIER_NOTE, load_pricing_config

logger = logging.getLogger(__name__)


def generate_booking_reference() -> str:
    """Generate a unique booking reference like SHT-ABC12345."""
    chars = ''.join(random.choices(string.ascii_uppercase, k=3))
    nums = ''.join(random.choices(string.digits, k=5))
    return f"SHT-{chars}{nums}"


# ============== VEHICLE TYPE OPERATIONS ==============

def get_vehicle_type_by_id(db: Session, vehicle_type_id: int) -> Optional[VehicleType]:
    """Get vehicle type by ID."""
    return db.query(VehicleType).filter(VehicleType.id == vehicle_type_id).first()


def get_vehicle_type_by_name(db: Session, name: str) -> Optional[VehicleType]:
    """Get vehicle type by exact name."""
    return db.query(VehicleType).filter(VehicleType.name == name).first()


def get_all_vehicle_types(db: Session, active_only: bool = False) -> List[VehicleType]:
    """Get all vehicle types, ordered by ID."""
    query = db.query(VehicleType)
    if active_only:
        query = query.filter(VehicleType.is_active == True)  # noqa: E712
    return query.order_by(VehicleType.id).all()


def find_vehicle_type_for_pricing(
    db: Session,
    identifier: Optional[Union[int, str]] = None,
) -> Optional[VehicleType]:
    """
    Resolve the vehicle type a quote should use.

    Tries the identifier as an ID, then as the name of an active vehicle
    type. Without an identifier the first active vehicle type is used.

    Returns:
        VehicleType, or None if nothing matches
    """
    if identifier is None or (isinstance(identifier, str) and not identifier.strip()):
        return (
            db.query(VehicleType)
            .filter(VehicleType.is_active == True)  # noqa: E712
            .order_by(VehicleType.id)
            .first()
        )

    if isinstance(identifier, int) or identifier.strip().isdigit():
        vehicle_type = get_vehicle_type_by_id(db, int(identifier))
        if vehicle_type:
            return vehicle_type

    logger.info(f"Vehicle type not found by ID: {identifier}, trying to find by name")
    return db.query(VehicleType).filter(
        VehicleType.name == str(identifier).strip(),
        VehicleType.is_active == True,  # noqa: E712
    ).first()


def _tier_rows(tiers: List[DistanceTier]) -> List[DbDistanceTier]:
    return [
        DbDistanceTier(
            position=index,
            from_miles=tier.from_miles,
            to_miles=tier.to_miles,
            price_per_mile=tier.price_per_mile,
            description=tier.description,
        )
        for index, tier in enumerate(tiers)
    ]


def _surge_rows(rules: List[SurgeRule]) -> List[SurgePricing]:
    return [
        SurgePricing(
            name=rule.name,
            description=rule.description,
            multiplier=rule.multiplier,
            is_active=rule.is_active,
            days_of_week=list(rule.days_of_week),
            start_time=rule.start_time,
            end_time=rule.end_time,
            start_date=rule.start_date,
            end_date=rule.end_date,
            specific_dates=[d.isoformat() for d in rule.specific_dates],
            priority=rule.priority,
        )
        for rule in rules
    ]


def _apply_vehicle_type_fields(vehicle_type: VehicleType, request: VehicleTypeRequest) -> None:
    vehicle_type.name = request.name.strip()
    vehicle_type.description = request.description
    vehicle_type.category = request.category
    vehicle_type.capacity = request.capacity
    vehicle_type.is_active = request.is_active
    vehicle_type.base_price = request.base_price
    vehicle_type.base_distance_threshold = request.base_distance_threshold
    vehicle_type.tier_basis = request.tier_basis.value
    vehicle_type.fallback_price_per_mile = request.fallback_price_per_mile
    vehicle_type.stop_charge = request.stop_charge
    vehicle_type.child_seat_charge = request.child_seat_charge
    vehicle_type.round_trip_discount = request.round_trip_discount
    vehicle_type.cash_discount_percentage = request.cash_discount_percentage
    vehicle_type.cash_discount_fixed_amount = request.cash_discount_fixed_amount
    vehicle_type.distance_tiers = _tier_rows(request.distance_tiers)
    vehicle_type.surge_pricing = _surge_rows(request.surge_pricing)


def create_vehicle_type(db: Session, request: VehicleTypeRequest) -> VehicleType:
    """
    Create a vehicle type with its tiers and surge rules.

    Tiers are stored as entered; use normalize_vehicle_type_tiers to repair them.

    Raises:
        ValueError: If a vehicle type with the same name exists
    """
    if get_vehicle_type_by_name(db, request.name.strip()):
        raise ValueError(f"Vehicle type '{request.name}' already exists")

    vehicle_type = VehicleType()
    _apply_vehicle_type_fields(vehicle_type, request)
    db.add(vehicle_type)
    db.commit()
    db.refresh(vehicle_type)
    return vehicle_type


def update_vehicle_type(
    db: Session,
    vehicle_type: VehicleType,
    request: VehicleTypeRequest,
) -> VehicleType:
    """
    Replace a vehicle type's fields, tiers and surge rules.

    Area prices are left untouched (see set_area_prices).

    Raises:
        ValueError: If the new name belongs to another vehicle type
    """
    existing = get_vehicle_type_by_name(db, request.name.strip())
    if existing and existing.id != vehicle_type.id:
        raise ValueError(f"Vehicle type '{request.name}' already exists")

    _apply_vehicle_type_fields(vehicle_type, request)
    db.commit()
    db.refresh(vehicle_type)
    return vehicle_type


def delete_vehicle_type(db: Session, vehicle_type: VehicleType) -> None:
    """
    Delete a vehicle type.

    Raises:
        ValueError: If bookings reference it (deactivate it instead)
    """
    if vehicle_type.bookings:
        raise ValueError(
            f"Vehicle type '{vehicle_type.name}' has bookings; deactivate it instead"
        )
    db.delete(vehicle_type)
    db.commit()


def normalize_vehicle_type_tiers(
    db: Session,
    vehicle_type: VehicleType,
    dry_run: bool = False,
    default_tiers: Optional[List[DistanceTier]] = None,
) -> tuple[List[DistanceTier], List[str]]:
    """
    Repair a vehicle type's tiers into normal form and save them.

    Args:
        db: Database session
        vehicle_type: The vehicle type to repair
        dry_run: Report the repairs without saving
        default_tiers: Schedule to install when the vehicle type has no valid tiers

    Returns:
        (tiers after repair, list of repairs made)
    """
    config, notes = load_pricing_config(vehicle_type)
    tiers, repairs = normalize_tiers(list(config.distance_tiers))
    # Surge and area notes are not tier repairs
    repairs = [note for note in notes if note.startswith(DROPPED_TIER_NOTE)] + repairs

    if not tiers and default_tiers:
        tiers, _ = normalize_tiers(default_tiers)
        repairs.append(f"installed {len(tiers)} default distance tiers")

    if repairs and not dry_run:
        vehicle_type.distance_tiers = _tier_rows(tiers)
        db.commit()
        db.refresh(vehicle_type)
        logger.info(f"Normalized distance tiers for {vehicle_type.name}: {'; '.join(repairs)}")

    return tiers, repairs


# ============== AREA OPERATIONS ==============

def get_area_by_id(db: Session, area_id: int) -> Optional[Area]:
    """Get area by ID."""
    return db.query(Area).filter(Area.id == area_id).first()


def get_all_areas(db: Session) -> List[Area]:
    """Get all areas sorted by name."""
    return db.query(Area).order_by(Area.name).all()


def create_area(db: Session, request: AreaRequest) -> Area:
    """
    Create an area.

    Raises:
        ValueError: If the area has no value (city/zipcode) or no polygon
    """
    if request.type.value == "polygon":
        if not request.polygon:
            raise ValueError("Polygon areas need at least 3 points")
    elif not request.value:
        raise ValueError(f"{request.type.value.capitalize()} areas need a value")

    area = Area(
        name=request.name,
        type=request.type.value,
        value=request.value,
        polygon=[point.model_dump() for point in request.polygon],
    )
    db.add(area)
    db.commit()
    db.refresh(area)
    return area


def delete_area(db: Session, area: Area) -> None:
    """Delete an area along with every vehicle type's fixed price for it."""
    db.delete(area)
    db.commit()


def set_area_prices(
    db: Session,
    vehicle_type: VehicleType,
    prices: List[AreaPriceRequest],
) -> VehicleType:
    """
    Replace a vehicle type's fixed area prices.

    Raises:
        ValueError: If an area does not exist or appears twice
    """
    seen = set()
    rows = []
    for price in prices:
        if price.area_id in seen:
            raise ValueError(f"Area {price.area_id} listed more than once")
        seen.add(price.area_id)
        area = get_area_by_id(db, price.area_id)
        if not area:
            raise ValueError(f"Area {price.area_id} not found")
        rows.append(VehicleAreaPrice(area=area, fixed_price=price.fixed_price))

    vehicle_type.area_prices = rows
    db.commit()
    db.refresh(vehicle_type)
    return vehicle_type


# ============== BOOKING OPERATIONS ==============

def get_booking_by_reference(db: Session, reference: str) -> Optional[Booking]:
    """Get booking by reference."""
    return db.query(Booking).filter(Booking.reference == reference).first()


def create_booking(
    db: Session,
    request: BookingRequest,
    vehicle_type: VehicleType,
    price: PriceBreakdown,
) -> Booking:
    """
    Create a booking with the price breakdown it was quoted at.

    The stored breakdown is never recalculated, even if the vehicle
    type's pricing changes later.
    """
    reference = generate_booking_reference()
    while get_booking_by_reference(db, reference):
        reference = generate_booking_reference()

    booking = Booking(
        reference=reference,
        status=BookingStatus.PENDING,
        first_name=request.first_name,
        last_name=request.last_name,
        email=request.email,
        phone=request.phone,
        pickup_address=request.pickup.address,
        pickup_lat=request.pickup.lat,
        pickup_lng=request.pickup.lng,
        dropoff_address=request.dropoff.address,
        dropoff_lat=request.dropoff.lat,
        dropoff_lng=request.dropoff.lng,
        pickup_date_time=request.pickup_date_time,
        return_date_time=request.return_date_time,
        flight_number=request.flight_number,
        is_round_trip=request.is_round_trip,
        stops_count=request.stops_count,
        child_seats_count=request.child_seats_count,
        passengers=request.passengers,
        payment_method=price.payment_method,
        notes=request.notes,
        vehicle_type_id=vehicle_type.id,
        pricing_method=price.pricing_method.value,
        area_name=price.area_name,
        distance=price.distance,
        base_price=price.base_price,
        distance_price=price.distance_price,
        stops_charge=price.stops_charge,
        child_seats_charge=price.child_seats_charge,
        round_trip_discount=price.round_trip_discount,
        return_trip_price=price.return_trip_price,
        subtotal=price.subtotal,
        payment_discount=price.payment_discount,
        payment_discount_description=price.payment_discount_description,
        surge_multiplier=price.surge_multiplier,
        surge_name=price.surge_name,
        final_total=price.final_total,
    )
    db.add(booking)
    db.commit()
    db.refresh(booking)
    return booking
