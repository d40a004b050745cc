from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Sequence

from ride_ledger.core import Selection, export_filename, require_credential
from ride_ledger.models import (
    BillingDocument,
    DateWindow,
    DocumentFailure,
    EnrichedRide,
    ExportArtifact,
    RiderProfile,
    UberCredential,
)

from .activity_pager import ActivityPager
from .csv_export import CsvExportService
from .detail_enricher import DetailEnricher, EnrichmentResult, summary_rides_by_id
from .excel_export import ExcelExportService
from .pdf_export import CoverOptions, SummaryPdfRenderer
from .pdf_merge import GeneratedDocument, PageSource, billing_sources, merge_documents, readable_sources
from .receipt_resolver import ReceiptResolver
from .ride_parsing import VehicleClassifier
from .uber_client import UBER_DETAIL_BATCH_SIZE, UBER_PAGE_SIZE, UberRidersClient

logger = logging.getLogger(__name__)

PDF_MEDIA_TYPE = "application/pdf"
CSV_MEDIA_TYPE = "text/csv"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
COVER_LABEL = "summary"


@dataclass
class AggregationResult:
    rides: List[EnrichedRide] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    activity_count: int = 0


class RideExportService:
    """Pipeline entry points for one credential.

    Aggregation walks the activity listing and enriches every trip; exports
    turn a selection into a single artifact. Failures of individual trips are
    reported on the result instead of aborting the whole operation.
    """

    def __init__(
        self,
        client: UberRidersClient,
        credential: UberCredential,
        *,
        classifier: Optional[VehicleClassifier] = None,
        page_size: int = UBER_PAGE_SIZE,
        batch_size: int = UBER_DETAIL_BATCH_SIZE,
        resolver: Optional[ReceiptResolver] = None,
        pdf_renderer: Optional[SummaryPdfRenderer] = None,
        csv_exporter: Optional[CsvExportService] = None,
        xlsx_exporter: Optional[ExcelExportService] = None,
    ):
        self.client = client
        self.credential = require_credential(credential)
        self.classifier = classifier or VehicleClassifier()
        self.pager = ActivityPager(client, page_size=page_size)
        self.enricher = DetailEnricher(client, self.classifier, batch_size=batch_size)
        self.resolver = resolver or ReceiptResolver(client)
        self.pdf_renderer = pdf_renderer or SummaryPdfRenderer()
        self.csv_exporter = csv_exporter or CsvExportService()
        self.xlsx_exporter = xlsx_exporter or ExcelExportService()

    async def fetch_profile(self) -> RiderProfile:
        return await self.client.fetch_current_user(self.credential)

    async def aggregate_rides(self, window: DateWindow) -> AggregationResult:
        paged = await self.pager.collect(self.credential, window)
        fallbacks = summary_rides_by_id(paged.activities, window, self.classifier)
        enriched = await self.enricher.enrich(
            self.credential,
            [activity.uuid for activity in paged.activities],
            fallbacks,
        )

        result = AggregationResult(
            rides=enriched.rides,
            errors=list(enriched.errors),
            activity_count=len(paged.activities),
        )
        if paged.error:
            result.errors.append(f"Activity listing incomplete after {paged.pages_fetched} pages: {paged.error}")
        logger.info(
            "Aggregated %d rides from %d activities (%d errors)",
            len(result.rides),
            result.activity_count,
            len(result.errors),
        )
        return result

    async def enrich_trips(self, trip_ids: Sequence[str]) -> EnrichmentResult:
        return await self.enricher.enrich(self.credential, trip_ids)

    async def fetch_billing_documents(self, rides: Sequence[EnrichedRide]) -> List[BillingDocument]:
        return await self.resolver.fetch_documents(self.credential, rides)

    async def export_report(
        self,
        selection: Selection,
        cover: Optional[CoverOptions] = None,
        on: Optional[date] = None,
    ) -> ExportArtifact:
        """Cover table followed by every billing document that could be fetched and read.

        Payloads that do not parse as PDFs are listed on the cover together
        with the failed downloads.
        """
        _require_rides(selection)
        documents = await self.fetch_billing_documents(selection.rides)
        fetched, failures = billing_sources(documents)
        readable, unreadable = readable_sources(fetched)
        position = {ride_id: index for index, ride_id in enumerate(selection.ride_ids)}
        failures = sorted(failures + unreadable, key=lambda failure: position.get(failure.label, len(position)))
        missing = [failure.label for failure in failures]

        sources: List[PageSource] = [
            GeneratedDocument(
                label=COVER_LABEL,
                render=lambda: self.pdf_renderer.render(selection, cover, missing_ride_ids=missing),
            )
        ]
        sources.extend(readable)
        merged = merge_documents(sources)
        failures.extend(merged.failures)

        logger.info(
            "Report merged %d documents into %d pages (%d failures)",
            len(merged.merged_labels),
            merged.page_count,
            len(failures),
        )
        return ExportArtifact(
            content=merged.content,
            media_type=PDF_MEDIA_TYPE,
            filename=export_filename("uber_expenses", "pdf", on),
            failures=tuple(failures),
        )

    async def export_invoices_only(self, selection: Selection, on: Optional[date] = None) -> ExportArtifact:
        _require_rides(selection)
        documents = await self.fetch_billing_documents(selection.rides)
        fetched, failures = billing_sources(documents)
        merged = merge_documents(fetched)
        failures.extend(merged.failures)
        return ExportArtifact(
            content=merged.content,
            media_type=PDF_MEDIA_TYPE,
            filename=export_filename("uber_invoices", "pdf", on),
            failures=tuple(failures),
        )

    def export_summary_pdf(
        self,
        selection: Selection,
        cover: Optional[CoverOptions] = None,
        on: Optional[date] = None,
    ) -> ExportArtifact:
        _require_rides(selection)
        return ExportArtifact(
            content=self.pdf_renderer.render(selection, cover),
            media_type=PDF_MEDIA_TYPE,
            filename=export_filename("uber_summary", "pdf", on),
        )

    def export_csv(self, selection: Selection, on: Optional[date] = None) -> ExportArtifact:
        _require_rides(selection)
        return ExportArtifact(
            content=self.csv_exporter.render(selection),
            media_type=CSV_MEDIA_TYPE,
            filename=export_filename("uber_expenses", "csv", on),
        )

    def export_xlsx(self, selection: Selection, on: Optional[date] = None) -> ExportArtifact:
        _require_rides(selection)
        return ExportArtifact(
            content=self.xlsx_exporter.generate_export(selection),
            media_type=XLSX_MEDIA_TYPE,
            filename=export_filename("uber_expenses", "xlsx", on),
        )


def _require_rides(selection: Selection) -> None:
    if selection.is_empty():
        raise ValueError("Select at least one ride to export")


def failure_header(failures: Sequence[DocumentFailure]) -> str:
    return ",".join(failure.label for failure in failures)
