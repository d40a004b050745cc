from .core import (
    AmountEdit,
    AmountEditLog,
    CredentialError,
    MergeError,
    RideLedgerError,
    Selection,
    UpstreamError,
    UpstreamShapeError,
    build_selection,
    format_money,
)
from .models import (
    BillingDocument,
    DateWindow,
    DocumentFailure,
    EnrichedRide,
    ExportArtifact,
    RawActivity,
    TripDetail,
    UberCredential,
)
from .ui import render_selection_summary

__all__ = [
    "AmountEdit",
    "AmountEditLog",
    "BillingDocument",
    "CredentialError",
    "DateWindow",
    "DocumentFailure",
    "EnrichedRide",
    "ExportArtifact",
    "MergeError",
    "RawActivity",
    "RideLedgerError",
    "Selection",
    "TripDetail",
    "UberCredential",
    "UpstreamError",
    "UpstreamShapeError",
    "build_selection",
    "format_money",
    "render_selection_summary",
]
