"""Parsing helpers for provider ride text.

Provider payloads carry fares, dates and vehicle labels as display strings.
These helpers turn them into numbers, currency codes, categories and
datetimes. None of them raise on malformed input; zero amounts, the default
currency and the original string are the recovery values.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional, Tuple

from dateutil import parser as date_parser

from ride_ledger.models import FALLBACK_CURRENCY, DateWindow, VehicleCategory


# -----------------------------
# Amounts and currency
# -----------------------------


_AMOUNT_RE = re.compile(r"[₹$€£]?(\d[\d,]*\.?\d*)")

# Checked in order; anything else falls back to USD.
_CURRENCY_SYMBOL_TO_CODE = (
    ("₹", "INR"),
    ("€", "EUR"),
    ("£", "GBP"),
)


def detect_currency(text: str) -> str:
    for symbol, code in _CURRENCY_SYMBOL_TO_CODE:
        if symbol in (text or ""):
            return code
    return FALLBACK_CURRENCY


def extract_amount(text: str) -> float:
    match = _AMOUNT_RE.search(text or "")
    if not match:
        return 0.0
    try:
        return float(match.group(1).replace(",", ""))
    except ValueError:
        return 0.0


def parse_amount(text: str) -> Tuple[float, str]:
    """Return `(amount, currency_code)` for a fare string such as "₹84.38"."""
    return extract_amount(text), detect_currency(text)


# -----------------------------
# Vehicle classification
# -----------------------------


VEHICLE_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "bike": ("moto", "bike"),
    "auto": ("auto", "tuk"),
}

DEFAULT_VEHICLE_LABEL = "Car"
_CATEGORY_LABELS = {"bike": "Moto", "auto": "Auto", "standard": DEFAULT_VEHICLE_LABEL}


@dataclass(frozen=True)
class VehicleClass:
    category: VehicleCategory
    label: str

    @property
    def uses_simple_receipt_flow(self) -> bool:
        return self.category in ("auto", "bike")


class VehicleClassifier:
    def __init__(self, keywords: Optional[Dict[str, Iterable[str]]] = None) -> None:
        source = keywords or VEHICLE_KEYWORDS
        self.keywords = {k: tuple(v) for k, v in source.items()}

    def category_for(self, text: str) -> VehicleCategory:
        lowered = (text or "").lower()
        for category, words in self.keywords.items():
            if any(word in lowered for word in words):
                return category  # type: ignore[return-value]
        return "standard"

    def classify(self, vehicle_type: str) -> VehicleClass:
        category = self.category_for(vehicle_type)
        return VehicleClass(category=category, label=vehicle_type or DEFAULT_VEHICLE_LABEL)

    def classify_image_url(self, url: str) -> VehicleClass:
        category = self.category_for(url)
        return VehicleClass(category=category, label=_CATEGORY_LABELS[category])


# -----------------------------
# Dates
# -----------------------------


_SUBTITLE_SEPARATOR = " • "
_SUBTITLE_FORMATS = (
    "%d %b %Y %H:%M",
    "%b %d %Y %H:%M",
    "%d %b %Y %I:%M %p",
    "%b %d %Y %I:%M %p",
)


def _distance_to_window(value: datetime, window: DateWindow) -> float:
    if value < window.start:
        return (window.start - value).total_seconds()
    if value > window.end:
        return (value - window.end).total_seconds()
    return 0.0


def infer_activity_datetime(subtitle: str, window: DateWindow) -> Optional[datetime]:
    """Resolve a year-less subtitle like "16 Nov • 22:33" against the request window.

    The candidate year whose date lies inside (or closest to) the window wins,
    so a December ride fetched in a window spanning New Year keeps its year.
    """
    parts = (subtitle or "").split(_SUBTITLE_SEPARATOR)
    day_part = parts[0].strip()
    time_part = parts[1].strip() if len(parts) > 1 and parts[1].strip() else "00:00"
    if not day_part:
        return None

    tz = window.start.tzinfo
    years = range(window.start.year - 1, window.end.year + 2)
    best: Optional[datetime] = None
    for year in years:
        for fmt in _SUBTITLE_FORMATS:
            try:
                candidate = datetime.strptime(f"{day_part} {year} {time_part}", fmt)
            except ValueError:
                continue
            candidate = candidate.replace(tzinfo=tz)
            if best is None or _distance_to_window(candidate, window) < _distance_to_window(best, window):
                best = candidate
            break
    return best


def safe_parse_datetime(value: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return date_parser.isoparse(value)
    except (ValueError, OverflowError, TypeError):
        pass
    try:
        return date_parser.parse(value)
    except (ValueError, OverflowError, TypeError):
        return None


def format_display_timestamp(value: str, fallback: str = "N/A") -> str:
    parsed = safe_parse_datetime(value)
    if parsed is None:
        return value or fallback
    return f"{parsed:%b} {parsed.day}, {parsed:%Y %H:%M}"


def format_iso_timestamp(value: str) -> str:
    """UTC ISO-8601 with milliseconds and a `Z` suffix; naive values count as UTC."""
    parsed = safe_parse_datetime(value)
    if parsed is None:
        return ""
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    parsed = parsed.astimezone(timezone.utc)
    return parsed.strftime("%Y-%m-%dT%H:%M:%S.") + f"{parsed.microsecond // 1000:03d}Z"


# -----------------------------
# Text
# -----------------------------


def sanitize_text(text: str) -> str:
    """Keep printable ASCII and the Latin-1/Latin Extended-A range."""
    if not text:
        return ""
    kept = "".join(ch for ch in text if 32 <= ord(ch) <= 126 or 160 <= ord(ch) <= 383)
    return kept.strip()


__all__ = [
    "VEHICLE_KEYWORDS",
    "VehicleClass",
    "VehicleClassifier",
    "detect_currency",
    "extract_amount",
    "format_display_timestamp",
    "format_iso_timestamp",
    "infer_activity_datetime",
    "parse_amount",
    "safe_parse_datetime",
    "sanitize_text",
]
