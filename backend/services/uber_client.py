"""Async client for the riders' private GraphQL API.

The GraphQL documents below are the provider's wire contract; only the
fields the pipeline reads are requested.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from ride_ledger.core import UpstreamError, UpstreamShapeError, require_credential
from ride_ledger.models import (
    ActivityButton,
    DateWindow,
    RawActivity,
    RiderProfile,
    TripDetail,
    TripReceiptInfo,
    UberCredential,
)

logger = logging.getLogger(__name__)

UBER_GRAPHQL_URL = os.getenv("UBER_GRAPHQL_URL", "https://riders.uber.com/graphql")
UBER_RIDERS_BASE = os.getenv("UBER_RIDERS_BASE", "https://riders.uber.com")
UBER_HTTP_TIMEOUT = float(os.getenv("UBER_HTTP_TIMEOUT", "30"))
UBER_PAGE_SIZE = int(os.getenv("UBER_PAGE_SIZE", "50"))
UBER_DETAIL_BATCH_SIZE = int(os.getenv("UBER_DETAIL_BATCH_SIZE", "10"))


CURRENT_USER_QUERY = {
    "operationName": "CurrentUserRidersWeb",
    "query": """query CurrentUserRidersWeb {
  currentUser {
    uuid
    firstName
    lastName
    email
    __typename
  }
}""",
}

ACTIVITIES_QUERY = {
    "operationName": "Activities",
    "query": """query Activities($cityID: Int, $endTimeMs: Float, $includePast: Boolean = true, $includeUpcoming: Boolean = true, $limit: Int = 5, $nextPageToken: String, $orderTypes: [RVWebCommonActivityOrderType!] = [RIDES, TRAVEL], $profileType: RVWebCommonActivityProfileType = PERSONAL, $startTimeMs: Float) {
  activities(cityID: $cityID) {
    cityID
    past(
      endTimeMs: $endTimeMs
      limit: $limit
      nextPageToken: $nextPageToken
      orderTypes: $orderTypes
      profileType: $profileType
      startTimeMs: $startTimeMs
    ) @include(if: $includePast) {
      activities {
        buttons { isDefault startEnhancerIcon text url __typename }
        cardURL
        description
        imageURL { light dark __typename }
        subtitle
        title
        uuid
        __typename
      }
      nextPageToken
      __typename
    }
    __typename
  }
}""",
}

GET_TRIP_QUERY = {
    "operationName": "GetTrip",
    "query": """query GetTrip($tripUUID: String!) {
  getTrip(tripUUID: $tripUUID) {
    trip {
      beginTripTime
      cityID
      countryID
      driver
      dropoffTime
      fare
      status
      uuid
      vehicleDisplayName
      waypoints
      __typename
    }
    mapURL
    receipt {
      carYear
      distance
      distanceLabel
      duration
      vehicleType
      __typename
    }
    __typename
  }
}""",
}

GET_INVOICE_FILES_QUERY = {
    "operationName": "GetInvoiceFiles",
    "query": """query GetInvoiceFiles($tripUUID: ID!) {
  invoiceFiles(tripUUID: $tripUUID) {
    archiveURL
    files {
      downloadURL
      __typename
    }
    __typename
  }
}""",
}


@dataclass(frozen=True)
class ActivityPage:
    activities: List[RawActivity]
    next_page_token: Optional[str] = None


def build_activities_variables(
    window: DateWindow,
    limit: int = UBER_PAGE_SIZE,
    next_page_token: Optional[str] = None,
) -> Dict[str, Any]:
    variables: Dict[str, Any] = {
        "includePast": True,
        "includeUpcoming": False,
        "limit": limit,
        "orderTypes": ["RIDES", "TRAVEL"],
        "profileType": "PERSONAL",
        "startTimeMs": window.start_ms,
        "endTimeMs": window.end_ms,
    }
    if next_page_token:
        variables["nextPageToken"] = next_page_token
    return variables


def receipt_download_url(trip_id: str, timestamp_ms: int, base: str = UBER_RIDERS_BASE) -> str:
    return f"{base.rstrip('/')}/trips/{trip_id}/receipt?contentType=PDF&timestamp={timestamp_ms}"


def create_http_client(timeout: float = UBER_HTTP_TIMEOUT) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=timeout, follow_redirects=True)


def _dig(payload: Any, *path: str) -> Any:
    current = payload
    for key in path:
        if not isinstance(current, dict) or key not in current:
            raise UpstreamShapeError(f"Missing '{'.'.join(path)}' in provider response")
        current = current[key]
    return current


def _as_str(value: Any) -> str:
    return "" if value is None else str(value)


def parse_activity(item: Dict[str, Any]) -> RawActivity:
    if not isinstance(item, dict) or not item.get("uuid"):
        raise UpstreamShapeError(f"Activity without uuid: {item!r}")
    image = item.get("imageURL") or {}
    buttons = tuple(
        ActivityButton(
            text=_as_str(button.get("text")),
            url=_as_str(button.get("url")),
            is_default=bool(button.get("isDefault")),
        )
        for button in (item.get("buttons") or [])
        if isinstance(button, dict)
    )
    return RawActivity(
        uuid=_as_str(item["uuid"]),
        title=_as_str(item.get("title")),
        subtitle=_as_str(item.get("subtitle")),
        description=_as_str(item.get("description")),
        image_light=_as_str(image.get("light")),
        image_dark=_as_str(image.get("dark")),
        card_url=_as_str(item.get("cardURL")),
        buttons=buttons,
    )


def parse_trip_detail(get_trip: Dict[str, Any]) -> TripDetail:
    trip = _dig(get_trip, "trip")
    if not isinstance(trip, dict) or not trip.get("uuid"):
        raise UpstreamShapeError("Trip payload without uuid")
    receipt = get_trip.get("receipt") or {}
    return TripDetail(
        uuid=_as_str(trip["uuid"]),
        begin_trip_time=_as_str(trip.get("beginTripTime")),
        dropoff_time=_as_str(trip.get("dropoffTime")),
        waypoints=tuple(_as_str(w) for w in (trip.get("waypoints") or [])),
        driver=_as_str(trip.get("driver")),
        fare=_as_str(trip.get("fare")),
        status=_as_str(trip.get("status")),
        vehicle_display_name=_as_str(trip.get("vehicleDisplayName")),
        city_id=trip.get("cityID"),
        country_id=trip.get("countryID"),
        map_url=_as_str(get_trip.get("mapURL")),
        receipt=TripReceiptInfo(
            car_year=_as_str(receipt.get("carYear")),
            distance=_as_str(receipt.get("distance")),
            distance_label=_as_str(receipt.get("distanceLabel")),
            duration=_as_str(receipt.get("duration")),
            vehicle_type=_as_str(receipt.get("vehicleType")),
        ),
    )


class UberRidersClient:
    """Thin wrapper over the provider endpoints. Every call raises `UpstreamError` on failure."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        graphql_url: Optional[str] = None,
        riders_base: Optional[str] = None,
    ):
        self.http = http
        self.graphql_url = graphql_url or UBER_GRAPHQL_URL
        self.riders_base = (riders_base or UBER_RIDERS_BASE).rstrip("/")

    @staticmethod
    def _headers(credential: UberCredential) -> Dict[str, str]:
        return {
            "accept": "*/*",
            "accept-language": "en-GB,en;q=0.9",
            "content-type": "application/json",
            "x-csrf-token": credential.csrf_token,
            "x-uber-rv-session-type": "desktop_session",
            "cookie": credential.cookie,
        }

    async def _graphql(
        self,
        credential: UberCredential,
        operation: Dict[str, str],
        variables: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        require_credential(credential)
        body = {**operation, "variables": variables or {}}
        logger.debug("GraphQL %s variables=%s", operation["operationName"], body["variables"])
        try:
            response = await self.http.post(self.graphql_url, json=body, headers=self._headers(credential))
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise UpstreamError(f"{operation['operationName']} request failed: {exc}") from exc

        if response.is_error:
            raise UpstreamError(
                f"Uber API error: {response.status_code} {response.reason_phrase}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamShapeError(f"{operation['operationName']} returned non-JSON body") from exc

        if not isinstance(payload, dict) or payload.get("data") is None:
            errors = payload.get("errors") if isinstance(payload, dict) else None
            raise UpstreamError(f"{operation['operationName']} returned no data: {errors}")
        return payload["data"]

    async def fetch_current_user(self, credential: UberCredential) -> RiderProfile:
        user = _dig(await self._graphql(credential, CURRENT_USER_QUERY), "currentUser")
        if not isinstance(user, dict):
            raise UpstreamShapeError("'currentUser' is not an object")
        return RiderProfile(
            uuid=_as_str(user.get("uuid")),
            first_name=_as_str(user.get("firstName")),
            last_name=_as_str(user.get("lastName")),
            email=_as_str(user.get("email")),
        )

    async def fetch_activities_page(
        self,
        credential: UberCredential,
        window: DateWindow,
        limit: int = UBER_PAGE_SIZE,
        next_page_token: Optional[str] = None,
    ) -> ActivityPage:
        data = await self._graphql(
            credential,
            ACTIVITIES_QUERY,
            build_activities_variables(window, limit=limit, next_page_token=next_page_token),
        )
        past = _dig(data, "activities", "past")
        items = _dig(past, "activities")
        if not isinstance(items, list):
            raise UpstreamShapeError("'activities.past.activities' is not a list")

        token = past.get("nextPageToken")
        return ActivityPage(
            activities=[parse_activity(item) for item in items],
            next_page_token=token if isinstance(token, str) and token else None,
        )

    async def fetch_trip_detail(self, credential: UberCredential, trip_id: str) -> TripDetail:
        if not trip_id:
            raise ValueError("Trip UUID is required")
        data = await self._graphql(credential, GET_TRIP_QUERY, {"tripUUID": trip_id})
        return parse_trip_detail(_dig(data, "getTrip"))

    async def fetch_invoice_files(self, credential: UberCredential, trip_id: str) -> List[str]:
        if not trip_id:
            raise ValueError("Trip UUID is required")
        data = await self._graphql(credential, GET_INVOICE_FILES_QUERY, {"tripUUID": trip_id})
        invoice = _dig(data, "invoiceFiles")
        if not isinstance(invoice, dict):
            raise UpstreamShapeError("'invoiceFiles' is not an object")
        files = invoice.get("files") or []
        return [_as_str(f.get("downloadURL")) for f in files if isinstance(f, dict) and f.get("downloadURL")]

    async def fetch_binary(self, url: str, credential: UberCredential) -> bytes:
        require_credential(credential)
        try:
            response = await self.http.get(url, headers={"cookie": credential.cookie})
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise UpstreamError(f"Failed to fetch PDF: {exc}") from exc
        if response.is_error:
            raise UpstreamError(f"Failed to fetch PDF: {response.status_code}")
        return response.content

    def receipt_url(self, trip_id: str, timestamp_ms: int) -> str:
        return receipt_download_url(trip_id, timestamp_ms, base=self.riders_base)
