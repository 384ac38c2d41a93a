"""
FastAPI application for the airport shuttle booking system.

Provides REST API endpoints for the booking wizard and admin portal to:
- Quote trips (fixed area prices or distance-tiered pricing)
- Manage vehicle types, their distance tiers, surge rules and area prices
- Repair distance tiers into normal form
- Manage service areas
- Create and look up bookings
"""
import logging
from typing import List

from fastapi import FastAPI, HTTPException, Query, Depends
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from models import (
    Area,
    AreaPriceRequest,
    AreaRequest,
    BookingRequest,
    BookingResponse,
    PriceBreakdown,
    PriceCalculationRequest,
    TierNormalizationResponse,
    VehicleTypeRequest,
    VehicleTypeResponse,
)
from config import get_settings
from pricing_engine import find_tier_problems
from pricing_service import calculate_quote, load_pricing_config

# Database imports
from database import get_db, init_db
from db_models import Booking as DbBooking, VehicleType as DbVehicleType
import db_service

logger = logging.getLogger(__name__)

settings = get_settings()

# Initialize FastAPI app
app = FastAPI(
    title="Shuttle Booking API",
    description="Backend API for the airport shuttle booking system",
    version="1.0.0",
)

# Configure CORS for frontend access
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",  # Vite dev server
        "http://localhost:3000",
        settings.frontend_url,
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event():
    """Initialize database on startup."""
    init_db()


def get_vehicle_type_or_404(db: Session, vehicle_type_id: int) -> DbVehicleType:
    vehicle_type = db_service.get_vehicle_type_by_id(db, vehicle_type_id)
    if not vehicle_type:
        raise HTTPException(status_code=404, detail="Vehicle type not found")
    return vehicle_type


def load_config_or_400(vehicle_type: DbVehicleType):
    try:
        return load_pricing_config(vehicle_type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def to_vehicle_type_response(vehicle_type: DbVehicleType) -> VehicleTypeResponse:
    """Serialize a vehicle type with its validated tiers, surges and area prices."""
    config, _ = load_config_or_400(vehicle_type)
    return VehicleTypeResponse(
        id=vehicle_type.id,
        name=vehicle_type.name,
        description=vehicle_type.description or "",
        category=vehicle_type.category or "standard",
        capacity=vehicle_type.capacity,
        is_active=vehicle_type.is_active,
        base_price=config.base_price,
        base_distance_threshold=config.base_distance_threshold,
        distance_tiers=config.distance_tiers,
        tier_basis=config.tier_basis,
        fallback_price_per_mile=vehicle_type.fallback_price_per_mile,
        stop_charge=config.stop_charge,
        child_seat_charge=config.child_seat_charge,
        round_trip_discount=config.round_trip_discount,
        cash_discount_percentage=config.cash_discount_percentage,
        cash_discount_fixed_amount=config.cash_discount_fixed_amount,
        surge_pricing=config.surge_pricing,
        area_prices=config.area_prices,
    )


def to_booking_response(booking: DbBooking) -> BookingResponse:
    """Serialize a booking with the breakdown stored at booking time."""
    price = PriceBreakdown(
        base_price=booking.base_price,
        distance_price=booking.distance_price,
        distance=booking.distance,
        stops_charge=booking.stops_charge,
        child_seats_charge=booking.child_seats_charge,
        round_trip_discount=booking.round_trip_discount,
        return_trip_price=booking.return_trip_price,
        subtotal=booking.subtotal,
        payment_discount=booking.payment_discount,
        final_total=booking.final_total,
        pricing_method=booking.pricing_method,
        area_name=booking.area_name,
        surge_multiplier=booking.surge_multiplier,
        surge_name=booking.surge_name,
        payment_method=booking.payment_method,
        payment_discount_description=booking.payment_discount_description or "",
        vehicle_type_id=booking.vehicle_type_id,
        vehicle_type_name=booking.vehicle_type.name if booking.vehicle_type else None,
    )
    return BookingResponse(
        reference=booking.reference,
        status=booking.status.value,
        first_name=booking.first_name,
        last_name=booking.last_name,
        email=booking.email,
        phone=booking.phone,
        pickup_address=booking.pickup_address,
        dropoff_address=booking.dropoff_address,
        pickup_date_time=booking.pickup_date_time,
        return_date_time=booking.return_date_time,
        is_round_trip=booking.is_round_trip,
        passengers=booking.passengers,
        vehicle_type_id=booking.vehicle_type_id,
        price=price,
        created_at=booking.created_at,
    )


# API Endpoints

@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "healthy", "service": "Shuttle Booking API"}


# =============================================================================
# Pricing Endpoints
# =============================================================================

@app.post("/api/pricing/calculate", response_model=PriceBreakdown)
async def calculate_price(
    request: PriceCalculationRequest,
    db: Session = Depends(get_db),
):
    """
    Calculate the price of a trip.

    Trips touching a priced area get that area's fixed price (highest wins).
    Otherwise the vehicle's base price covers the first base-distance miles
    and the rest are priced through its distance tiers, with any surge rule
    covering the pickup time applied on top.

    vehicleTypeId may be an ID or a name; without it the first active
    vehicle type is used.
    """
    vehicle_type = db_service.find_vehicle_type_for_pricing(db, request.vehicle_type_id)
    if not vehicle_type:
        raise HTTPException(status_code=404, detail="Vehicle type not found")

    config, notes = load_config_or_400(vehicle_type)
    return calculate_quote(config, request, settings=settings, notes=notes)


@app.get("/api/pricing/vehicle-types/{vehicle_type_id}/tiers")
async def get_vehicle_type_tiers(vehicle_type_id: int, db: Session = Depends(get_db)):
    """
    Get the distance tiers a vehicle type is priced with, and whether they
    are in normal form.
    """
    vehicle_type = get_vehicle_type_or_404(db, vehicle_type_id)
    config, notes = load_config_or_400(vehicle_type)
    problems = find_tier_problems(list(config.distance_tiers))

    return {
        "vehicleTypeId": vehicle_type.id,
        "vehicleTypeName": vehicle_type.name,
        "basePrice": config.base_price,
        "baseDistanceThreshold": config.base_distance_threshold,
        "tierBasis": config.tier_basis.value,
        "fallbackPricePerMile": config.fallback_price_per_mile,
        "distanceTiers": [tier.model_dump(by_alias=True) for tier in config.distance_tiers],
        "isNormalized": not problems,
        "problems": problems,
        "notes": notes,
    }


# =============================================================================
# Vehicle Type Endpoints
# =============================================================================

@app.get("/api/vehicle-types", response_model=List[VehicleTypeResponse])
async def list_vehicle_types(
    active_only: bool = Query(False, alias="activeOnly"),
    db: Session = Depends(get_db),
):
    """List vehicle types."""
    vehicle_types = db_service.get_all_vehicle_types(db, active_only=active_only)
    return [to_vehicle_type_response(vt) for vt in vehicle_types]


@app.post("/api/vehicle-types", response_model=VehicleTypeResponse)
async def create_vehicle_type(request: VehicleTypeRequest, db: Session = Depends(get_db)):
    """
    Create a vehicle type.

    Tiers are stored as entered; gaps or a bounded last tier are reported
    by the tiers endpoint and repaired by normalize-tiers.
    """
    try:
        vehicle_type = db_service.create_vehicle_type(db, request)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(f"Created vehicle type {vehicle_type.name} (id={vehicle_type.id})")
    return to_vehicle_type_response(vehicle_type)


@app.get("/api/vehicle-types/{vehicle_type_id}", response_model=VehicleTypeResponse)
async def get_vehicle_type(vehicle_type_id: int, db: Session = Depends(get_db)):
    """Get a vehicle type by ID."""
    return to_vehicle_type_response(get_vehicle_type_or_404(db, vehicle_type_id))


@app.put("/api/vehicle-types/{vehicle_type_id}", response_model=VehicleTypeResponse)
async def update_vehicle_type(
    vehicle_type_id: int,
    request: VehicleTypeRequest,
    db: Session = Depends(get_db),
):
    """Replace a vehicle type's pricing, tiers and surge rules."""
    vehicle_type = get_vehicle_type_or_404(db, vehicle_type_id)
    try:
        vehicle_type = db_service.update_vehicle_type(db, vehicle_type, request)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return to_vehicle_type_response(vehicle_type)


@app.delete("/api/vehicle-types/{vehicle_type_id}")
async def delete_vehicle_type(vehicle_type_id: int, db: Session = Depends(get_db)):
    """Delete a vehicle type that has no bookings."""
    vehicle_type = get_vehicle_type_or_404(db, vehicle_type_id)
    try:
        db_service.delete_vehicle_type(db, vehicle_type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "message": f"Vehicle type {vehicle_type_id} deleted"}


@app.post(
    "/api/vehicle-types/{vehicle_type_id}/normalize-tiers",
    response_model=TierNormalizationResponse,
)
async def normalize_vehicle_type_tiers(
    vehicle_type_id: int,
    dry_run: bool = Query(False, alias="dryRun"),
    db: Session = Depends(get_db),
):
    """
    Repair a vehicle type's distance tiers: sort them, close gaps and make
    the last tier open-ended. With dryRun the repairs are only reported.
    """
    vehicle_type = get_vehicle_type_or_404(db, vehicle_type_id)
    try:
        tiers, repairs = db_service.normalize_vehicle_type_tiers(db, vehicle_type, dry_run=dry_run)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return TierNormalizationResponse(
        vehicle_type_id=vehicle_type.id,
        changed=bool(repairs),
        repairs=repairs,
        distance_tiers=tiers,
    )


@app.put("/api/vehicle-types/{vehicle_type_id}/area-prices", response_model=VehicleTypeResponse)
async def set_vehicle_type_area_prices(
    vehicle_type_id: int,
    request: List[AreaPriceRequest],
    db: Session = Depends(get_db),
):
    """Replace a vehicle type's fixed area prices."""
    vehicle_type = get_vehicle_type_or_404(db, vehicle_type_id)
    try:
        vehicle_type = db_service.set_area_prices(db, vehicle_type, request)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return to_vehicle_type_response(vehicle_type)


# =============================================================================
# Area Endpoints
# =============================================================================

@app.get("/api/areas", response_model=List[Area])
async def list_areas(db: Session = Depends(get_db)):
    """List service areas."""
    return [Area.model_validate(area) for area in db_service.get_all_areas(db)]


@app.post("/api/areas", response_model=Area)
async def create_area(request: AreaRequest, db: Session = Depends(get_db)):
    """Create a service area (city, zipcode or polygon)."""
    try:
        area = db_service.create_area(db, request)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return Area.model_validate(area)


@app.delete("/api/areas/{area_id}")
async def delete_area(area_id: int, db: Session = Depends(get_db)):
    """Delete a service area and every fixed price set for it."""
    area = db_service.get_area_by_id(db, area_id)
    if not area:
        raise HTTPException(status_code=404, detail="Area not found")
    db_service.delete_area(db, area)
    return {"success": True, "message": f"Area {area_id} deleted"}


# =============================================================================
# Booking Endpoints
# =============================================================================

@app.post("/api/bookings", response_model=BookingResponse)
async def create_booking(request: BookingRequest, db: Session = Depends(get_db)):
    """
    Create a booking.

    The trip is priced server-side exactly as /api/pricing/calculate would
    and the breakdown is stored with the booking.
    """
    vehicle_type = db_service.find_vehicle_type_for_pricing(db, request.vehicle_type_id)
    if not vehicle_type:
        raise HTTPException(status_code=404, detail="Vehicle type not found")

    config, notes = load_config_or_400(vehicle_type)
    quote_request = PriceCalculationRequest(
        pickup=request.pickup,
        dropoff=request.dropoff,
        miles=request.miles,
        stops_count=request.stops_count,
        child_seats_count=request.child_seats_count,
        is_round_trip=request.is_round_trip,
        vehicle_type_id=vehicle_type.id,
        payment_method=request.payment_method,
        pickup_date_time=request.pickup_date_time,
    )
    price = calculate_quote(config, quote_request, settings=settings, notes=notes)

    try:
        booking = db_service.create_booking(db, request, vehicle_type, price)
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to create booking for {request.email}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to create booking")

    logger.info(f"Created booking {booking.reference}: {price.final_total:.2f} ({price.pricing_method.value})")
    return to_booking_response(booking)


@app.get("/api/bookings/{reference}", response_model=BookingResponse)
async def get_booking(reference: str, db: Session = Depends(get_db)):
    """Retrieve a booking by reference."""
    booking = db_service.get_booking_by_reference(db, reference)
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    return to_booking_response(booking)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
