"""
SQLAlchemy database models for the shuttle booking system.
"""
from sqlalchemy import (
    Column, Integer, String, DateTime, Date, Float,
    ForeignKey, Enum, Boolean, Text, JSON
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from database import Base
import enum


class BookingStatus(enum.Enum):
    """Status of a booking."""
    PENDING = "pending"           # Created, awaiting confirmation
    CONFIRMED = "confirmed"       # Accepted by dispatch
    CANCELLED = "cancelled"       # Cancelled by customer or admin
    COMPLETED = "completed"       # Trip delivered


class VehicleType(Base):
    """A bookable class of vehicle and its pricing configuration."""
    __tablename__ = "vehicle_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False, index=True)
    description = Column(Text, default="")
    category = Column(String(20), default="standard")  # economy, standard, premium, luxury, specialty
    capacity = Column(Integer, nullable=False, default=4)
    is_active = Column(Boolean, default=True, nullable=False)

    # Base pricing: base_price covers every trip up to base_distance_threshold miles
    base_price = Column(Float, nullable=False, default=55.0)
    base_distance_threshold = Column(Float, nullable=False, default=12.0)

    # How tier bounds are measured: "additional" miles or "total" trip miles
    tier_basis = Column(String(20), nullable=False, default="additional")

    # Per-mile rate for miles no tier covers; NULL uses the application default
    fallback_price_per_mile = Column(Float, nullable=True)

    # Additional charges
    stop_charge = Column(Float, nullable=False, default=5.0)
    child_seat_charge = Column(Float, nullable=False, default=5.0)
    round_trip_discount = Column(Float, nullable=False, default=10.0)  # percent off the return leg

    # Cash payment discount: percentage of subtotal plus a fixed amount
    cash_discount_percentage = Column(Float, nullable=False, default=3.5)
    cash_discount_fixed_amount = Column(Float, nullable=False, default=0.15)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    distance_tiers = relationship(
        "DistanceTier",
        back_populates="vehicle_type",
        cascade="all, delete-orphan",
        order_by="DistanceTier.position",
    )
    surge_pricing = relationship(
        "SurgePricing",
        back_populates="vehicle_type",
        cascade="all, delete-orphan",
        order_by="SurgePricing.id",
    )
    area_prices = relationship(
        "VehicleAreaPrice",
        back_populates="vehicle_type",
        cascade="all, delete-orphan",
    )
    bookings = relationship("Booking", back_populates="vehicle_type")

    def __repr__(self):
        return f"<VehicleType {self.name} (${self.base_price} up to {self.base_distance_threshold} mi)>"


class DistanceTier(Base):
    """
    One priced band of miles for a vehicle type.

    to_miles = 0 marks the open-ended last tier.
    """
    __tablename__ = "distance_tiers"

    id = Column(Integer, primary_key=True, index=True)
    vehicle_type_id = Column(Integer, ForeignKey("vehicle_types.id"), nullable=False, index=True)

    # Order as entered in the admin portal
    position = Column(Integer, nullable=False, default=0)

    from_miles = Column(Float, nullable=False)
    to_miles = Column(Float, nullable=False)
    price_per_mile = Column(Float, nullable=False)
    description = Column(String(255))

    vehicle_type = relationship("VehicleType", back_populates="distance_tiers")

    def __repr__(self):
        upper = "∞" if self.to_miles == 0 else self.to_miles
        return f"<DistanceTier {self.from_miles}-{upper} @ {self.price_per_mile}/mi>"


class SurgePricing(Base):
    """Surge multiplier for a vehicle type under calendar conditions."""
    __tablename__ = "surge_pricing"

    id = Column(Integer, primary_key=True, index=True)
    vehicle_type_id = Column(Integer, ForeignKey("vehicle_types.id"), nullable=False, index=True)

    name = Column(String(100), nullable=False)
    description = Column(String(255))
    multiplier = Column(Float, nullable=False, default=1.5)  # 1.5 = 50% increase
    is_active = Column(Boolean, default=True, nullable=False)

    # Conditions (all that are set must match)
    days_of_week = Column(JSON)          # [0..6], 0 = Sunday
    start_time = Column(String(5))       # "HH:MM"
    end_time = Column(String(5))         # "HH:MM"
    start_date = Column(Date)
    end_date = Column(Date)
    specific_dates = Column(JSON)        # ["YYYY-MM-DD", ...]

    # Higher wins when several rules apply
    priority = Column(Integer, nullable=False, default=1)

    vehicle_type = relationship("VehicleType", back_populates="surge_pricing")

    def __repr__(self):
        return f"<SurgePricing {self.name} x{self.multiplier}>"


class Area(Base):
    """Service zone matched by city, zipcode or polygon."""
    __tablename__ = "areas"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    type = Column(String(20), nullable=False)  # city, zipcode, polygon
    value = Column(JSON)    # string or list of strings (city/zipcode)
    polygon = Column(JSON)  # [{"lat": .., "lng": ..}, ...]

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    prices = relationship("VehicleAreaPrice", back_populates="area", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Area {self.name} ({self.type})>"


class VehicleAreaPrice(Base):
    """Fixed trip price for a vehicle type when pickup or dropoff is in an area."""
    __tablename__ = "vehicle_area_prices"

    id = Column(Integer, primary_key=True, index=True)
    vehicle_type_id = Column(Integer, ForeignKey("vehicle_types.id"), nullable=False, index=True)
    area_id = Column(Integer, ForeignKey("areas.id"), nullable=False)
    fixed_price = Column(Float, nullable=False)

    vehicle_type = relationship("VehicleType", back_populates="area_prices")
    area = relationship("Area", back_populates="prices")

    def __repr__(self):
        return f"<VehicleAreaPrice vehicle={self.vehicle_type_id} area={self.area_id} {self.fixed_price}>"


class Booking(Base):
    """Shuttle booking with the price breakdown it was booked at."""
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    reference = Column(String(20), unique=True, nullable=False, index=True)
    status = Column(Enum(BookingStatus), default=BookingStatus.PENDING, nullable=False)

    # Customer snapshot
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    phone = Column(String(30), nullable=False)

    # Route
    pickup_address = Column(String(255))
    pickup_lat = Column(Float)
    pickup_lng = Column(Float)
    dropoff_address = Column(String(255))
    dropoff_lat = Column(Float)
    dropoff_lng = Column(Float)
    pickup_date_time = Column(DateTime(timezone=True), nullable=False)
    return_date_time = Column(DateTime(timezone=True))
    flight_number = Column(String(20))

    # Options
    is_round_trip = Column(Boolean, default=False, nullable=False)
    stops_count = Column(Integer, default=0, nullable=False)
    child_seats_count = Column(Integer, default=0, nullable=False)
    passengers = Column(Integer, default=1, nullable=False)
    payment_method = Column(String(20), nullable=False)
    notes = Column(Text)

    vehicle_type_id = Column(Integer, ForeignKey("vehicle_types.id"), nullable=False)

    # Price breakdown at booking time (never recalculated)
    pricing_method = Column(String(20), nullable=False)
    area_name = Column(String(255))
    distance = Column(Float, nullable=False)
    base_price = Column(Float, nullable=False)
    distance_price = Column(Float, nullable=False)
    stops_charge = Column(Float, nullable=False, default=0.0)
    child_seats_charge = Column(Float, nullable=False, default=0.0)
    round_trip_discount = Column(Float, nullable=False, default=0.0)
    return_trip_price = Column(Float, nullable=False, default=0.0)
    subtotal = Column(Float, nullable=False)
    payment_discount = Column(Float, nullable=False, default=0.0)
    payment_discount_description = Column(String(255))
    surge_multiplier = Column(Float)
    surge_name = Column(String(100))
    final_total = Column(Float, nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    vehicle_type = relationship("VehicleType", back_populates="bookings")

    def __repr__(self):
        return f"<Booking {self.reference} - {self.status.value}>"
