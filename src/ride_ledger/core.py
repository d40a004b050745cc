from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Iterable, Optional

from ride_ledger.models import FALLBACK_CURRENCY, EnrichedRide, UberCredential


ISO_TS = "%Y-%m-%dT%H:%M:%S.%fZ"


class RideLedgerError(Exception):
    """Base class for pipeline errors."""


class CredentialError(RideLedgerError, ValueError):
    """Raised before any network call when the session credential is unusable."""


class UpstreamError(RideLedgerError):
    """A provider request failed or returned a non-success status."""


class UpstreamShapeError(UpstreamError):
    """A provider response did not have the expected structure."""


class MergeError(RideLedgerError):
    """Raised when a merge produced no pages at all."""


def require_credential(credential: Optional[UberCredential]) -> UberCredential:
    if credential is None or not credential.cookie or not credential.csrf_token:
        raise CredentialError("Auth credentials are required (cookie and CSRF token)")
    return credential


@dataclass(frozen=True)
class AmountEdit:
    ride_id: str
    amount: float
    edited_at: str = field(default_factory=lambda: utc_now())


@dataclass
class AmountEditLog:
    """Local amount overrides keyed by ride id.

    Rides themselves are never mutated; `apply` returns copies carrying the
    override and the provider amount in `original_amount`. Reverting deletes
    the entry.
    """

    entries: dict[str, AmountEdit] = field(default_factory=dict)

    def set(self, ride_id: str, amount: float) -> AmountEdit:
        if amount < 0:
            raise ValueError(f"Amount for ride {ride_id} cannot be negative: {amount}")
        entry = AmountEdit(ride_id=ride_id, amount=float(amount))
        self.entries[ride_id] = entry
        return entry

    def revert(self, ride_id: str) -> bool:
        return self.entries.pop(ride_id, None) is not None

    def get(self, ride_id: str) -> Optional[AmountEdit]:
        return self.entries.get(ride_id)

    def __contains__(self, ride_id: object) -> bool:
        return ride_id in self.entries

    def __len__(self) -> int:
        return len(self.entries)

    def apply(self, rides: Iterable[EnrichedRide]) -> list[EnrichedRide]:
        applied: list[EnrichedRide] = []
        for ride in rides:
            edit = self.entries.get(ride.ride_id)
            if edit is None:
                applied.append(ride)
                continue
            applied.append(replace(ride, amount=edit.amount, original_amount=ride.amount))
        return applied


@dataclass(frozen=True)
class Selection:
    rides: tuple[EnrichedRide, ...]

    @property
    def selected_count(self) -> int:
        return len(self.rides)

    @property
    def total_amount(self) -> float:
        # Mixed currencies are summed as plain numbers, no conversion.
        return sum(ride.amount for ride in self.rides)

    @property
    def currency(self) -> str:
        return self.rides[0].currency if self.rides else FALLBACK_CURRENCY

    @property
    def ride_ids(self) -> list[str]:
        return [ride.ride_id for ride in self.rides]

    def is_empty(self) -> bool:
        return not self.rides


def build_selection(
    rides: Iterable[EnrichedRide],
    chosen_ids: Iterable[str],
    edits: Optional[AmountEditLog] = None,
) -> Selection:
    """Pick the chosen rides, in ride-list order, with local amount edits applied."""
    chosen = set(chosen_ids)
    picked = [ride for ride in rides if ride.ride_id in chosen]
    if edits is not None:
        picked = edits.apply(picked)
    return Selection(rides=tuple(picked))


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime(ISO_TS)


def export_filename(prefix: str, extension: str, on: Optional[date] = None) -> str:
    on = on or datetime.now(timezone.utc).date()
    return f"{prefix}_{on.isoformat()}.{extension}"


CURRENCY_SYMBOLS = {
    "INR": "₹",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
}


def currency_symbol(currency: str) -> str:
    return CURRENCY_SYMBOLS.get(currency, f"{currency} ")


def format_money(amount: float, currency: str) -> str:
    return f"{currency_symbol(currency)}{amount:.2f}"
