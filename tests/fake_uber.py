"""In-memory stand-in for the riders API, served through httpx.MockTransport."""

from __future__ import annotations

import asyncio
import io
import json
from collections import Counter
from typing import Dict, List, Optional, Set

import httpx
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from backend.services.uber_client import UberRidersClient
from ride_ledger.models import UberCredential

CREDENTIAL = UberCredential(cookie="sid=abc", csrf_token="x")
GRAPHQL_URL = "https://riders.test/graphql"
RIDERS_BASE = "https://riders.test"
INVOICE_HOST = "https://invoices.test"


def pdf_with_pages(*texts: str) -> bytes:
    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4)
    for text in texts:
        pdf.drawString(72, 720, text)
        pdf.showPage()
    pdf.save()
    return buffer.getvalue()


def activity(uuid: str, subtitle: str = "16 Nov • 22:33", description: str = "₹84.38", image: str = "") -> dict:
    return {
        "uuid": uuid,
        "title": f"Pickup {uuid}",
        "subtitle": subtitle,
        "description": description,
        "imageURL": {"light": image or "https://img.test/uberx.png", "dark": ""},
        "cardURL": f"https://riders.test/trips/{uuid}",
        "buttons": [],
    }


def trip(uuid: str, fare: str = "₹84.38", vehicle_type: str = "UberGo") -> dict:
    return {
        "trip": {
            "uuid": uuid,
            "beginTripTime": "2024-11-16T22:33:00Z",
            "dropoffTime": "2024-11-16T23:05:00Z",
            "waypoints": [f"From {uuid}", f"To {uuid}"],
            "driver": f"Driver {uuid}",
            "fare": fare,
            "status": "COMPLETED",
            "vehicleDisplayName": vehicle_type,
            "cityID": 1,
            "countryID": 77,
        },
        "receipt": {
            "carYear": "2020",
            "distance": "5.2",
            "distanceLabel": "km",
            "duration": "32 min",
            "vehicleType": vehicle_type,
        },
        "mapURL": f"https://maps.test/{uuid}.png",
    }


class FakeUber:
    """Answers GraphQL operations from canned data and counts every request.

    Activity pages are addressed by token: the first request carries none,
    page N is requested with token "page-N". `delays` holds per-trip response
    latency in seconds; `completed` records the order responses finished in.
    """

    def __init__(
        self,
        pages: Optional[List[dict]] = None,
        trips: Optional[Dict[str, dict]] = None,
        invoices: Optional[Dict[str, List[str]]] = None,
        documents: Optional[Dict[str, bytes]] = None,
    ):
        self.pages = pages or []
        self.trips = trips or {}
        self.invoices = invoices or {}
        self.documents = documents or {}
        self.failing_pages: Set[int] = set()
        self.failing_trips: Set[str] = set()
        self.failing_invoices: Set[str] = set()
        self.failing_documents: Set[str] = set()
        self.profile = {"uuid": "user-1", "firstName": "Asha", "lastName": "Rao", "email": "asha@example.com"}
        self.calls: Counter = Counter()
        self.requests: List[httpx.Request] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.delays: Dict[str, float] = {}
        self.completed: List[str] = []

    def http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handle))

    def client(self) -> UberRidersClient:
        return UberRidersClient(self.http(), graphql_url=GRAPHQL_URL, riders_base=RIDERS_BASE)

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "GET":
            return await self._document(request)

        body = json.loads(request.content)
        operation = body["operationName"]
        variables = body.get("variables") or {}
        self.calls[operation] += 1

        if operation == "GetTrip":
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            trip_id = variables["tripUUID"]
            await asyncio.sleep(self.delays.get(trip_id, 0.01))
            self.in_flight -= 1
            self.completed.append(trip_id)
            return self._trip(trip_id)
        if operation == "Activities":
            return self._page(variables.get("nextPageToken"))
        if operation == "GetInvoiceFiles":
            trip_id = variables["tripUUID"]
            if trip_id in self.failing_invoices:
                return httpx.Response(503)
            files = [{"downloadURL": url} for url in self.invoices.get(trip_id, [])]
            return httpx.Response(200, json={"data": {"invoiceFiles": {"files": files}}})
        if operation == "CurrentUserRidersWeb":
            return httpx.Response(200, json={"data": {"currentUser": self.profile}})
        return httpx.Response(400, json={"errors": [f"unknown operation {operation}"]})

    def _page(self, token: Optional[str]) -> httpx.Response:
        index = int(token.split("-")[1]) if token else 0
        if index in self.failing_pages or index >= len(self.pages):
            return httpx.Response(500)
        return httpx.Response(200, json={"data": {"activities": {"past": self.pages[index]}}})

    def _trip(self, trip_id: str) -> httpx.Response:
        if trip_id in self.failing_trips or trip_id not in self.trips:
            return httpx.Response(502)
        return httpx.Response(200, json={"data": {"getTrip": self.trips[trip_id]}})

    async def _document(self, request: httpx.Request) -> httpx.Response:
        self.calls["download"] += 1
        path = request.url.path
        if path.startswith("/trips/"):
            trip_id = path.split("/")[2]
        else:
            trip_id = path.rsplit("/", 1)[-1].removesuffix(".pdf")
        await asyncio.sleep(self.delays.get(trip_id, 0))
        self.completed.append(trip_id)
        if trip_id in self.failing_documents:
            return httpx.Response(404)
        content = self.documents.get(trip_id)
        if content is None:
            content = pdf_with_pages(f"Receipt {trip_id}")
        return httpx.Response(200, content=content, headers={"content-type": "application/pdf"})


def paged(*batches: List[dict]) -> List[dict]:
    """Chain activity batches into pages linked by continuation tokens."""
    pages = []
    for index, items in enumerate(batches):
        token = f"page-{index + 1}" if index + 1 < len(batches) else None
        pages.append({"activities": items, "nextPageToken": token})
    return pages


def invoice_url(trip_id: str) -> str:
    return f"{INVOICE_HOST}/files/{trip_id}.pdf"
