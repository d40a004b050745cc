from __future__ import annotations

import logging
import os
from dataclasses import asdict
from datetime import date
from typing import AsyncIterator, Dict, List, Literal, Optional

import httpx
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from backend.services.pdf_export import CoverOptions
from backend.services.ride_pipeline import RideExportService, failure_header
from backend.services.uber_client import UberRidersClient, create_http_client
from ride_ledger.core import AmountEditLog, CredentialError, MergeError, UpstreamError, build_selection
from ride_ledger.models import DateWindow, EnrichedRide, ExportArtifact, UberCredential

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Ride Ledger API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Failed-Rides"],
)


class AuthPayload(BaseModel):
    cookie: str = ""
    csrf_token: str = ""

    def to_credential(self) -> UberCredential:
        return UberCredential(cookie=self.cookie, csrf_token=self.csrf_token)


class AuthRequest(BaseModel):
    auth: AuthPayload


class RideRangeRequest(AuthRequest):
    start_date: date
    end_date: date


class TripDetailsRequest(AuthRequest):
    trip_ids: List[str]


class RidePayload(BaseModel):
    ride_id: str
    start_time: str = ""
    end_time: str = ""
    start_location: str = ""
    end_location: str = ""
    amount: float = Field(default=0.0, ge=0)
    currency: str = "USD"
    driver_name: str = ""
    vehicle_type: str = "Car"
    vehicle_category: Literal["standard", "auto", "bike"] = "standard"
    status: str = ""
    map_url: str = ""
    is_auto_type: bool = False
    source: Literal["detail", "summary"] = "detail"
    original_amount: Optional[float] = None

    def to_ride(self) -> EnrichedRide:
        return EnrichedRide(**self.model_dump())


class ReceiptsRequest(AuthRequest):
    rides: List[RidePayload]


class ExportRequest(AuthRequest):
    rides: List[RidePayload]
    selected_ids: List[str]
    edits: Dict[str, float] = Field(default_factory=dict)
    account_name: Optional[str] = None

    def selection(self):
        edit_log = AmountEditLog()
        for ride_id, amount in self.edits.items():
            edit_log.set(ride_id, amount)
        return build_selection([ride.to_ride() for ride in self.rides], self.selected_ids, edit_log)


async def get_http_client() -> AsyncIterator[httpx.AsyncClient]:
    async with create_http_client() as client:
        yield client


def pipeline_for(auth: AuthPayload, http: httpx.AsyncClient) -> RideExportService:
    return RideExportService(UberRidersClient(http), auth.to_credential())


def artifact_response(artifact: ExportArtifact) -> Response:
    headers = {"Content-Disposition": f'attachment; filename="{artifact.filename}"'}
    if artifact.failures:
        headers["X-Failed-Rides"] = failure_header(artifact.failures)
    return Response(content=artifact.content, media_type=artifact.media_type, headers=headers)


@app.exception_handler(CredentialError)
async def credential_error_handler(request: Request, exc: CredentialError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(MergeError)
async def merge_error_handler(request: Request, exc: MergeError):
    logger.error("Export failed: %s", exc)
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.exception_handler(UpstreamError)
async def upstream_error_handler(request: Request, exc: UpstreamError):
    logger.error("Upstream request failed: %s", exc)
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.post("/me")
async def current_user(payload: AuthRequest, http: httpx.AsyncClient = Depends(get_http_client)):
    profile = await pipeline_for(payload.auth, http).fetch_profile()
    return {**asdict(profile), "display_name": profile.display_name}


@app.post("/rides")
async def list_rides(payload: RideRangeRequest, http: httpx.AsyncClient = Depends(get_http_client)):
    window = DateWindow.from_dates(payload.start_date, payload.end_date)
    result = await pipeline_for(payload.auth, http).aggregate_rides(window)
    return {
        "rides": [asdict(ride) for ride in result.rides],
        "errors": result.errors,
        "activity_count": result.activity_count,
    }


@app.post("/trips/details")
async def trip_details(payload: TripDetailsRequest, http: httpx.AsyncClient = Depends(get_http_client)):
    result = await pipeline_for(payload.auth, http).enrich_trips(payload.trip_ids)
    return {"rides": [asdict(ride) for ride in result.rides], "errors": result.errors}


@app.post("/receipts")
async def receipts(payload: ReceiptsRequest, http: httpx.AsyncClient = Depends(get_http_client)):
    rides = [ride.to_ride() for ride in payload.rides]
    documents = await pipeline_for(payload.auth, http).fetch_billing_documents(rides)
    return {"documents": [document.to_payload() for document in documents]}


@app.post("/exports/report")
async def export_report(payload: ExportRequest, http: httpx.AsyncClient = Depends(get_http_client)):
    cover = CoverOptions(account_name=payload.account_name)
    artifact = await pipeline_for(payload.auth, http).export_report(payload.selection(), cover)
    return artifact_response(artifact)


@app.post("/exports/invoices")
async def export_invoices(payload: ExportRequest, http: httpx.AsyncClient = Depends(get_http_client)):
    artifact = await pipeline_for(payload.auth, http).export_invoices_only(payload.selection())
    return artifact_response(artifact)


@app.post("/exports/summary")
async def export_summary(payload: ExportRequest, http: httpx.AsyncClient = Depends(get_http_client)):
    cover = CoverOptions(account_name=payload.account_name)
    return artifact_response(pipeline_for(payload.auth, http).export_summary_pdf(payload.selection(), cover))


@app.post("/exports/csv")
async def export_csv(payload: ExportRequest, http: httpx.AsyncClient = Depends(get_http_client)):
    return artifact_response(pipeline_for(payload.auth, http).export_csv(payload.selection()))


@app.post("/exports/xlsx")
async def export_xlsx(payload: ExportRequest, http: httpx.AsyncClient = Depends(get_http_client)):
    return artifact_response(pipeline_for(payload.auth, http).export_xlsx(payload.selection()))


@app.get("/health")
def health():
    return {"status": "ok"}
