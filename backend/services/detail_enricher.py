from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Union

from ride_ledger.core import UpstreamError, require_credential
from ride_ledger.models import DateWindow, EnrichedRide, RawActivity, TripDetail, UberCredential

from .ride_parsing import VehicleClassifier, infer_activity_datetime, parse_amount
from .uber_client import UBER_DETAIL_BATCH_SIZE, UberRidersClient

logger = logging.getLogger(__name__)

SUMMARY_STATUS = "COMPLETED"


def trip_detail_to_ride(detail: TripDetail, classifier: Optional[VehicleClassifier] = None) -> EnrichedRide:
    classifier = classifier or VehicleClassifier()
    amount, currency = parse_amount(detail.fare)
    vehicle = classifier.classify(detail.receipt.vehicle_type)
    return EnrichedRide(
        ride_id=detail.uuid,
        start_time=detail.begin_trip_time,
        end_time=detail.dropoff_time,
        start_location=detail.waypoints[0] if detail.waypoints else "",
        end_location=detail.waypoints[-1] if detail.waypoints else "",
        amount=amount,
        currency=currency,
        driver_name=detail.driver,
        vehicle_type=vehicle.label,
        vehicle_category=vehicle.category,
        status=detail.status,
        map_url=detail.map_url,
        is_auto_type=vehicle.uses_simple_receipt_flow,
        source="detail",
    )


def activity_to_ride(
    activity: RawActivity,
    window: DateWindow,
    classifier: Optional[VehicleClassifier] = None,
) -> EnrichedRide:
    """Summary-level ride built from an activity card; no driver or dropoff."""
    classifier = classifier or VehicleClassifier()
    amount, currency = parse_amount(activity.description)
    vehicle = classifier.classify_image_url(activity.image_light)
    started = infer_activity_datetime(activity.subtitle, window)
    return EnrichedRide(
        ride_id=activity.uuid,
        start_time=started.isoformat() if started else activity.subtitle,
        end_time="",
        start_location=activity.title,
        end_location="",
        amount=amount,
        currency=currency,
        driver_name="",
        vehicle_type=vehicle.label,
        vehicle_category=vehicle.category,
        status=SUMMARY_STATUS,
        map_url=activity.image_dark or activity.image_light,
        is_auto_type=vehicle.uses_simple_receipt_flow,
        source="summary",
    )


@dataclass
class EnrichmentResult:
    rides: List[EnrichedRide] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    batch_sizes: List[int] = field(default_factory=list)
    fallback_ids: List[str] = field(default_factory=list)


def partition(items: Sequence[str], size: int) -> List[List[str]]:
    if size <= 0:
        raise ValueError("batch size must be positive")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


class DetailEnricher:
    """Fetches authoritative trip detail in fixed-size batches.

    Requests inside a batch run concurrently, batches run one after another.
    A failed id falls back to its summary ride when one is known, otherwise it
    is reported in `errors` and left out.
    """

    def __init__(
        self,
        client: UberRidersClient,
        classifier: Optional[VehicleClassifier] = None,
        batch_size: int = UBER_DETAIL_BATCH_SIZE,
    ):
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.client = client
        self.classifier = classifier or VehicleClassifier()
        self.batch_size = batch_size

    async def _fetch_one(self, credential: UberCredential, trip_id: str) -> Union[EnrichedRide, str]:
        try:
            detail = await self.client.fetch_trip_detail(credential, trip_id)
        except UpstreamError as exc:
            return f"Failed to fetch {trip_id}: {exc}"
        return trip_detail_to_ride(detail, self.classifier)

    async def fetch_batch(self, credential: UberCredential, trip_ids: Sequence[str]) -> List[Union[EnrichedRide, str]]:
        return list(await asyncio.gather(*(self._fetch_one(credential, trip_id) for trip_id in trip_ids)))

    async def enrich(
        self,
        credential: UberCredential,
        trip_ids: Sequence[str],
        fallbacks: Optional[Mapping[str, EnrichedRide]] = None,
    ) -> EnrichmentResult:
        require_credential(credential)
        if any(not trip_id for trip_id in trip_ids):
            raise ValueError("Trip UUIDs must be non-empty")
        fallbacks = fallbacks or {}
        result = EnrichmentResult()
        batches = partition(trip_ids, self.batch_size)

        for index, batch in enumerate(batches, start=1):
            outcomes = await self.fetch_batch(credential, batch)
            result.batch_sizes.append(len(batch))
            failed = 0
            for trip_id, outcome in zip(batch, outcomes):
                if isinstance(outcome, EnrichedRide):
                    result.rides.append(outcome)
                    continue
                failed += 1
                result.errors.append(outcome)
                fallback = fallbacks.get(trip_id)
                if fallback is not None:
                    result.rides.append(fallback)
                    result.fallback_ids.append(trip_id)
            if failed:
                logger.warning("Detail batch %d/%d: %d of %d trips failed", index, len(batches), failed, len(batch))
            else:
                logger.info("Detail batch %d/%d enriched %d trips", index, len(batches), len(batch))

        return result


def summary_rides_by_id(
    activities: Sequence[RawActivity],
    window: DateWindow,
    classifier: Optional[VehicleClassifier] = None,
) -> Dict[str, EnrichedRide]:
    return {activity.uuid: activity_to_ride(activity, window, classifier) for activity in activities}
