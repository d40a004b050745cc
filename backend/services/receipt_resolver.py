from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, List, Sequence, Tuple

from ride_ledger.core import UpstreamError, require_credential
from ride_ledger.models import BillingDocument, EnrichedRide, ReceiptStrategy, UberCredential

from .uber_client import UberRidersClient

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class ReceiptResolver:
    """Chooses and downloads the billing document for each ride.

    Auto and bike rides go straight to the time-stamped receipt URL. Other
    rides ask for invoice files first and use the first file, falling back to
    the receipt URL when the listing fails or is empty.
    """

    def __init__(self, client: UberRidersClient, clock: Callable[[], int] = _now_ms):
        self.client = client
        self.clock = clock

    async def resolve_url(
        self,
        credential: UberCredential,
        ride_id: str,
        uses_simple_receipt_flow: bool,
    ) -> Tuple[str, ReceiptStrategy]:
        if not ride_id:
            raise ValueError("Trip UUID is required")
        if uses_simple_receipt_flow:
            return self.client.receipt_url(ride_id, self.clock()), "receipt"

        try:
            files = await self.client.fetch_invoice_files(credential, ride_id)
        except UpstreamError as exc:
            logger.warning("Invoice lookup failed for %s, falling back to receipt: %s", ride_id, exc)
            return self.client.receipt_url(ride_id, self.clock()), "receipt_fallback"

        if not files:
            logger.info("No invoice files for %s, using receipt", ride_id)
            return self.client.receipt_url(ride_id, self.clock()), "receipt_fallback"
        return files[0], "invoice"

    async def fetch_document(
        self,
        credential: UberCredential,
        ride_id: str,
        uses_simple_receipt_flow: bool,
    ) -> BillingDocument:
        url, strategy = await self.resolve_url(credential, ride_id, uses_simple_receipt_flow)
        try:
            content = await self.client.fetch_binary(url, credential)
        except UpstreamError as exc:
            logger.warning("Billing document for %s unavailable: %s", ride_id, exc)
            return BillingDocument(ride_id=ride_id, error=str(exc), source_url=url, strategy=strategy)
        return BillingDocument(ride_id=ride_id, content=content, source_url=url, strategy=strategy)

    async def fetch_documents(
        self,
        credential: UberCredential,
        rides: Sequence[EnrichedRide],
    ) -> List[BillingDocument]:
        """Resolve all rides concurrently; results follow the order of `rides`."""
        require_credential(credential)
        if not rides:
            raise ValueError("At least one trip is required")
        if any(not ride.ride_id for ride in rides):
            raise ValueError("Trip UUID is required")
        documents = await asyncio.gather(
            *(self.fetch_document(credential, ride.ride_id, ride.is_auto_type) for ride in rides)
        )
        failed = sum(1 for document in documents if not document.ok)
        logger.info("Resolved %d billing documents (%d failed)", len(documents), failed)
        return list(documents)
