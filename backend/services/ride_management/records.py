"""
Typed views over the records kept in the entity store.

Store records are plain JSON-compatible dicts with snake_case keys;
timestamps are ISO-8601 strings, except waitlist timestamps which are the
store's millisecond clock. ``None`` fields are omitted from records.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from django.utils.dateparse import parse_datetime

from .exceptions import PreconditionError
from .states import RideStatus


class RideKind(str, Enum):
    SOLO = "Solo"
    SHARED = "Shared"


class BookingKind(str, Enum):
    ASAP = "ASAP"
    SCHEDULED = "Scheduled"


class TransactionDirection(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"


def to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def from_iso(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return parse_datetime(str(value))


def compact(record: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in record.items() if value is not None}


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float

    def to_record(self) -> Dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}

    @classmethod
    def from_record(cls, data: Optional[Dict[str, Any]]) -> Optional["Coordinates"]:
        if not data or data.get("lat") is None or data.get("lng") is None:
            return None
        return cls(lat=float(data["lat"]), lng=float(data["lng"]))


@dataclass
class RideDetails:
    """What a rider asks for; not yet a Ride."""
    pickup: str
    destination: str
    ride_kind: RideKind = RideKind.SOLO
    booking_kind: BookingKind = BookingKind.ASAP
    scheduled_time: Optional[datetime] = None
    fare: Optional[float] = None
    group_size: Optional[int] = None
    pickup_coords: Optional[Coordinates] = None
    destination_coords: Optional[Coordinates] = None

    def __post_init__(self):
        self.ride_kind = RideKind(self.ride_kind)
        self.booking_kind = BookingKind(self.booking_kind)

    @property
    def is_shared(self) -> bool:
        return self.ride_kind == RideKind.SHARED

    @property
    def is_scheduled(self) -> bool:
        return self.booking_kind == BookingKind.SCHEDULED

    def validate(self, now: datetime) -> None:
        if not (self.pickup or "").strip() or not (self.destination or "").strip():
            raise PreconditionError("Pickup and destination are required.")
        if self.is_scheduled:
            if self.scheduled_time is None:
                raise PreconditionError("Please select a date and time for your scheduled ride.")
            if self.scheduled_time <= now:
                raise PreconditionError("Scheduled time must be in the future.")
        if self.fare is not None and self.fare < 0:
            raise PreconditionError("Fare cannot be negative.")
        if self.group_size is not None and self.group_size < 1:
            raise PreconditionError("Group size must be at least 1.")

    def to_record(self) -> Dict[str, Any]:
        return compact({
            "pickup": self.pickup,
            "destination": self.destination,
            "ride_kind": self.ride_kind.value,
            "booking_kind": self.booking_kind.value,
            "scheduled_time": to_iso(self.scheduled_time) if self.is_scheduled else None,
            "fare": self.fare,
            "group_size": self.group_size,
            "pickup_coords": self.pickup_coords.to_record() if self.pickup_coords else None,
            "destination_coords": self.destination_coords.to_record() if self.destination_coords else None,
        })

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "RideDetails":
        return cls(
            pickup=data.get("pickup", ""),
            destination=data.get("destination", ""),
            ride_kind=data.get("ride_kind", RideKind.SOLO),
            booking_kind=data.get("booking_kind", BookingKind.ASAP),
            scheduled_time=from_iso(data.get("scheduled_time")),
            fare=data.get("fare"),
            group_size=data.get("group_size"),
            pickup_coords=Coordinates.from_record(data.get("pickup_coords")),
            destination_coords=Coordinates.from_record(data.get("destination_coords")),
        )


@dataclass
class Ride:
    id: str
    rider_id: str
    details: RideDetails
    status: RideStatus = RideStatus.PENDING
    created_at: Optional[datetime] = None
    driver_id: Optional[str] = None
    accepted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    co2_savings: Optional[float] = None
    bonus: Optional[float] = None
    rating: Optional[int] = None
    feedback: Optional[str] = None

    def __post_init__(self):
        self.status = RideStatus(self.status)

    @property
    def fare(self) -> float:
        return float(self.details.fare or 0)

    @property
    def is_shared(self) -> bool:
        return self.details.is_shared

    def to_record(self) -> Dict[str, Any]:
        record = self.details.to_record()
        record.update(compact({
            "id": self.id,
            "rider_id": self.rider_id,
            "status": self.status.value,
            "created_at": to_iso(self.created_at),
            "driver_id": self.driver_id,
            "accepted_at": to_iso(self.accepted_at),
            "completed_at": to_iso(self.completed_at),
            "cancelled_at": to_iso(self.cancelled_at),
            "cancellation_reason": self.cancellation_reason,
            "co2_savings": self.co2_savings,
            "bonus": self.bonus,
            "rating": self.rating,
            "feedback": self.feedback,
        }))
        return record

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "Ride":
        return cls(
            id=data["id"],
            rider_id=data["rider_id"],
            details=RideDetails.from_record(data),
            status=data.get("status", RideStatus.PENDING),
            created_at=from_iso(data.get("created_at")),
            driver_id=data.get("driver_id"),
            accepted_at=from_iso(data.get("accepted_at")),
            completed_at=from_iso(data.get("completed_at")),
            cancelled_at=from_iso(data.get("cancelled_at")),
            cancellation_reason=data.get("cancellation_reason"),
            co2_savings=data.get("co2_savings"),
            bonus=data.get("bonus"),
            rating=data.get("rating"),
            feedback=data.get("feedback"),
        )


@dataclass
class WaitlistItem:
    rider_id: str
    timestamp: int
    ride_details: RideDetails

    def to_record(self) -> Dict[str, Any]:
        return {
            "rider_id": self.rider_id,
            "timestamp": self.timestamp,
            "ride_details": self.ride_details.to_record(),
        }

    @classmethod
    def from_record(cls, rider_id: str, data: Dict[str, Any]) -> "WaitlistItem":
        return cls(
            rider_id=data.get("rider_id", rider_id),
            timestamp=int(data.get("timestamp") or 0),
            ride_details=RideDetails.from_record(data.get("ride_details") or {}),
        )


@dataclass(frozen=True)
class Transaction:
    id: str
    direction: TransactionDirection
    amount: float
    timestamp: datetime
    description: str

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "direction": TransactionDirection(self.direction).value,
            "amount": self.amount,
            "timestamp": to_iso(self.timestamp),
            "description": self.description,
        }

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "Transaction":
        return cls(
            id=data["id"],
            direction=TransactionDirection(data["direction"]),
            amount=float(data["amount"]),
            timestamp=from_iso(data.get("timestamp")),
            description=data.get("description", ""),
        )


@dataclass
class RiderProfile:
    id: str
    name: str = ""
    wallet_balance: float = 0.0
    total_rides: int = 0
    shared_rides: int = 0
    total_co2_savings: float = 0.0
    active_ride_id: Optional[str] = None
    is_on_waitlist: bool = False
    achievements: Dict[str, bool] = field(default_factory=dict)
    recent_rides: Dict[str, bool] = field(default_factory=dict)
    transaction_history: Dict[str, bool] = field(default_factory=dict)

    def to_record(self) -> Dict[str, Any]:
        return compact({
            "name": self.name,
            "wallet_balance": self.wallet_balance,
            "total_rides": self.total_rides,
            "shared_rides": self.shared_rides,
            "total_co2_savings": self.total_co2_savings,
            "active_ride_id": self.active_ride_id,
            "is_on_waitlist": self.is_on_waitlist,
            "achievements": dict(self.achievements) or None,
            "recent_rides": dict(self.recent_rides) or None,
            "transaction_history": dict(self.transaction_history) or None,
        })

    @classmethod
    def from_record(cls, rider_id: str, data: Dict[str, Any]) -> "RiderProfile":
        return cls(
            id=rider_id,
            name=data.get("name", ""),
            wallet_balance=float(data.get("wallet_balance") or 0),
            total_rides=int(data.get("total_rides") or 0),
            shared_rides=int(data.get("shared_rides") or 0),
            total_co2_savings=float(data.get("total_co2_savings") or 0),
            active_ride_id=data.get("active_ride_id"),
            is_on_waitlist=bool(data.get("is_on_waitlist", False)),
            achievements=dict(data.get("achievements") or {}),
            recent_rides=dict(data.get("recent_rides") or {}),
            transaction_history=dict(data.get("transaction_history") or {}),
        )


@dataclass
class DriverProfile:
    id: str
    name: str = ""
    is_online: bool = False
    current_ride_id: Optional[str] = None
    total_rides: int = 0
    earnings: float = 0.0
    rating: float = 0.0
    rating_count: int = 0
    total_co2_savings: float = 0.0
    onboarding_bonus_awarded: bool = False
    is_ev: bool = False
    location: Optional[Coordinates] = None
    has_completed_onboarding: bool = False
    is_verified: bool = False
    vehicle_details: Optional[Dict[str, str]] = None
    confirmed_rides: Dict[str, bool] = field(default_factory=dict)

    @property
    def is_idle(self) -> bool:
        return self.current_ride_id is None

    def to_record(self) -> Dict[str, Any]:
        return compact({
            "name": self.name,
            "is_online": self.is_online,
            "current_ride_id": self.current_ride_id,
            "total_rides": self.total_rides,
            "earnings": self.earnings,
            "rating": self.rating,
            "rating_count": self.rating_count,
            "total_co2_savings": self.total_co2_savings,
            "onboarding_bonus_awarded": self.onboarding_bonus_awarded,
            "is_ev": self.is_ev,
            "location": self.location.to_record() if self.location else None,
            "has_completed_onboarding": self.has_completed_onboarding,
            "is_verified": self.is_verified,
            "vehicle_details": self.vehicle_details,
            "confirmed_rides": dict(self.confirmed_rides) or None,
        })

    @classmethod
    def from_record(cls, driver_id: str, data: Dict[str, Any]) -> "DriverProfile":
        return cls(
            id=driver_id,
            name=data.get("name", ""),
            is_online=bool(data.get("is_online", False)),
            current_ride_id=data.get("current_ride_id"),
            total_rides=int(data.get("total_rides") or 0),
            earnings=float(data.get("earnings") or 0),
            rating=float(data.get("rating") or 0),
            rating_count=int(data.get("rating_count") or 0),
            total_co2_savings=float(data.get("total_co2_savings") or 0),
            onboarding_bonus_awarded=bool(data.get("onboarding_bonus_awarded", False)),
            is_ev=bool(data.get("is_ev", False)),
            location=Coordinates.from_record(data.get("location")),
            has_completed_onboarding=bool(data.get("has_completed_onboarding", False)),
            is_verified=bool(data.get("is_verified", False)),
            vehicle_details=data.get("vehicle_details"),
            confirmed_rides=dict(data.get("confirmed_rides") or {}),
        )
