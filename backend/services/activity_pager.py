from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Set

from ride_ledger.core import UpstreamError, require_credential
from ride_ledger.models import DateWindow, RawActivity, UberCredential

from .uber_client import UBER_PAGE_SIZE, UberRidersClient

logger = logging.getLogger(__name__)


@dataclass
class PagerResult:
    activities: List[RawActivity] = field(default_factory=list)
    pages_fetched: int = 0
    error: Optional[str] = None

    @property
    def complete(self) -> bool:
        return self.error is None


class ActivityPager:
    """Walks the past-activities listing page by page for one date window.

    Pages are requested strictly in sequence since each request carries the
    previous page's continuation token. A failed page ends the walk; whatever
    was collected so far is returned together with the error.
    """

    def __init__(self, client: UberRidersClient, page_size: int = UBER_PAGE_SIZE):
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self.client = client
        self.page_size = page_size

    async def collect(self, credential: UberCredential, window: DateWindow) -> PagerResult:
        require_credential(credential)
        result = PagerResult()
        seen_ids: Set[str] = set()
        seen_tokens: Set[str] = set()
        token: Optional[str] = None

        while True:
            try:
                page = await self.client.fetch_activities_page(
                    credential, window, limit=self.page_size, next_page_token=token
                )
            except UpstreamError as exc:
                logger.warning(
                    "Activity page %d failed after %d activities: %s",
                    result.pages_fetched + 1,
                    len(result.activities),
                    exc,
                )
                result.error = str(exc)
                return result

            result.pages_fetched += 1
            for activity in page.activities:
                if activity.uuid in seen_ids:
                    logger.info("Skipping duplicate activity %s on page %d", activity.uuid, result.pages_fetched)
                    continue
                seen_ids.add(activity.uuid)
                result.activities.append(activity)

            logger.info(
                "Fetched activity page %d (%d activities so far)", result.pages_fetched, len(result.activities)
            )

            token = page.next_page_token
            if not token:
                return result
            if token in seen_tokens:
                result.error = f"Provider repeated continuation token on page {result.pages_fetched}"
                logger.warning(result.error)
                return result
            seen_tokens.add(token)
