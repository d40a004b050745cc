from __future__ import annotations

import base64
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Literal, Optional, Union

VehicleCategory = Literal["standard", "auto", "bike"]
RideSource = Literal["detail", "summary"]
ReceiptStrategy = Literal["receipt", "invoice", "receipt_fallback"]

FALLBACK_CURRENCY = "USD"


@dataclass(frozen=True)
class UberCredential:
    cookie: str
    csrf_token: str


@dataclass(frozen=True)
class DateWindow:
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(f"Date window ends before it starts: {self.start} > {self.end}")

    @classmethod
    def from_dates(cls, start_date: date, end_date: date, tz: timezone = timezone.utc) -> "DateWindow":
        return cls(
            start=datetime.combine(start_date, time.min, tzinfo=tz),
            end=datetime.combine(end_date, time.max, tzinfo=tz),
        )

    @property
    def start_ms(self) -> int:
        return int(self.start.timestamp() * 1000)

    @property
    def end_ms(self) -> int:
        return int(self.end.timestamp() * 1000)


@dataclass(frozen=True)
class ActivityButton:
    text: str
    url: str
    is_default: bool = False


@dataclass(frozen=True)
class RawActivity:
    uuid: str
    title: str
    subtitle: str
    description: str
    image_light: str = ""
    image_dark: str = ""
    card_url: str = ""
    buttons: tuple[ActivityButton, ...] = ()


@dataclass(frozen=True)
class TripReceiptInfo:
    car_year: str = ""
    distance: str = ""
    distance_label: str = ""
    duration: str = ""
    vehicle_type: str = ""


@dataclass(frozen=True)
class TripDetail:
    uuid: str
    begin_trip_time: str
    dropoff_time: str
    waypoints: tuple[str, ...]
    driver: str
    fare: str
    status: str
    vehicle_display_name: str = ""
    city_id: Optional[int] = None
    country_id: Optional[int] = None
    map_url: str = ""
    receipt: TripReceiptInfo = field(default_factory=TripReceiptInfo)


@dataclass(frozen=True)
class RiderProfile:
    uuid: str
    first_name: str
    last_name: str
    email: str = ""

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class EnrichedRide:
    ride_id: str
    start_time: str
    end_time: str
    start_location: str
    end_location: str
    amount: float
    currency: str
    driver_name: str
    vehicle_type: str
    vehicle_category: VehicleCategory
    status: str
    map_url: str
    is_auto_type: bool
    source: RideSource = "detail"
    original_amount: Optional[float] = None

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise ValueError(f"Ride {self.ride_id} has a negative amount: {self.amount}")


@dataclass(frozen=True)
class BillingDocument:
    ride_id: str
    content: Optional[bytes] = None
    error: Optional[str] = None
    source_url: Optional[str] = None
    strategy: Optional[ReceiptStrategy] = None

    @property
    def ok(self) -> bool:
        return self.content is not None

    def to_payload(self) -> dict[str, Optional[str]]:
        payload: dict[str, Optional[str]] = {
            "rideId": self.ride_id,
            "pdfBase64": base64.b64encode(self.content).decode("ascii") if self.content is not None else None,
        }
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass(frozen=True)
class DocumentFailure:
    label: str
    reason: str


@dataclass(frozen=True)
class ExportArtifact:
    content: Union[bytes, str]
    media_type: str
    filename: str
    failures: tuple[DocumentFailure, ...] = ()
