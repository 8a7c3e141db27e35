"""
Change discovery: walk the upstream recent-changes feed day by day.

For every full UTC day after the watermark, every change kind is paged
through and the changed keys are sorted into author/work/edition
queues. A day is the checkpoint unit: its keys and the watermark are
persisted together before the next day starts, so an interrupted pass
resumes at the first unfinished day.
"""

import asyncio
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional
import logging

from core.config import settings
from core.exceptions import DiscoveryError, FetchError
from ingestion.control_state import ControlStateStore, StoreKey, SyncState
from ingestion.extractors.openlibrary_client import OpenLibraryClient, PAGE_LIMIT
from ingestion.keys import EntityKind, PROCESSING_ORDER
from ingestion.pacing import PacingGate, Sleeper
from schemas.records import ChangeEntry

logger = logging.getLogger(__name__)

CHANGE_KINDS = ("add-book", "edit-book", "merge-authors", "revert", "update")

# Per day and change kind; bounds the work a single day can cause
MAX_PAGES = 10


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DiscoveryResult:
    state: SyncState
    days_processed: List[date]

    @property
    def keys_found(self) -> int:
        return sum(len(keys) for keys in self.state.pending.values())


class ChangeDiscoveryCrawler:
    """
    Builds the pending key queues from the recent-changes feed.

    Features:
    - Full days only: ``[watermark + 1, yesterday]``
    - Fixed change-kind order, offset/limit paging, 10 page cap
    - 1 s between pages, 5 s between retries of a failed page
    - Retry exhaustion persists the failure and raises ``DiscoveryError``
    """

    def __init__(
        self,
        store: ControlStateStore,
        client: OpenLibraryClient,
        retries: Optional[int] = None,
        page_delay: Optional[float] = None,
        retry_delay: Optional[float] = None,
        sleep: Sleeper = asyncio.sleep,
        clock: Callable[[], datetime] = utc_now
    ):
        self.store = store
        self.client = client
        self.retries = settings.SYNC_RETRIES if retries is None else retries
        self.page_delay = settings.SYNC_PAGE_DELAY if page_delay is None else page_delay
        self.retry_delay = settings.SYNC_RETRY_DELAY if retry_delay is None else retry_delay
        self._sleep = sleep
        self._clock = clock

    def _today(self) -> date:
        return self._clock().astimezone(timezone.utc).date()

    async def discover(self, state: SyncState) -> DiscoveryResult:
        """
        Crawl every full day after the watermark.

        Args:
            state: control state the run started from; its queues seed
                the key sets so nothing already pending is lost

        Returns:
            DiscoveryResult with the updated state (watermark and queues)

        Raises:
            DiscoveryError: a page exhausted its retries
        """
        today = self._today()
        watermark = state.watermark or await self.store.load_watermark(today)

        # dicts as insertion-ordered sets
        found: Dict[EntityKind, Dict[str, None]] = {
            kind: dict.fromkeys(state.queue(kind)) for kind in PROCESSING_ORDER
        }
        days_processed = []

        day = watermark + timedelta(days=1)
        while day < today:
            logger.info(f"Discovering changes for {day.isoformat()}")

            pages = 0
            for kind in CHANGE_KINDS:
                pages += await self._crawl_kind(day, kind, found)

            await self.store.checkpoint_day(
                {kind: list(keys) for kind, keys in found.items()},
                day
            )
            watermark = day
            days_processed.append(day)

            logger.info(
                f"Checkpointed {day.isoformat()} ({pages} pages): "
                + ", ".join(f"{kind.value}s={len(keys)}" for kind, keys in found.items())
            )
            day += timedelta(days=1)

        if not days_processed:
            logger.info(f"Watermark {watermark.isoformat()} is current, nothing to discover")

        return DiscoveryResult(
            state=SyncState(
                watermark=watermark,
                pending={kind: list(keys) for kind, keys in found.items()},
            ),
            days_processed=days_processed,
        )

    async def _crawl_kind(
        self,
        day: date,
        kind: str,
        found: Dict[EntityKind, Dict[str, None]]
    ) -> int:
        """Page through one change kind for one day, returns pages fetched"""
        gate = PacingGate(self.page_delay, self._sleep)
        pages = 0

        for page in range(MAX_PAGES):
            await gate.wait()
            entries = await self._fetch_page(day, kind, page * PAGE_LIMIT)
            pages += 1

            self._collect(entries, found)

            if len(entries) < PAGE_LIMIT:
                break
        else:
            logger.warning(
                f"Page cap reached for {kind} on {day.isoformat()} "
                f"({MAX_PAGES * PAGE_LIMIT} entries), remaining changes are skipped"
            )

        return pages

    @staticmethod
    def _collect(entries: List[ChangeEntry], found: Dict[EntityKind, Dict[str, None]]) -> None:
        for entry in entries:
            for change in entry.changes:
                entity_kind = EntityKind.for_key(change.key)
                if entity_kind is not None:
                    found[entity_kind][change.key] = None

    async def _fetch_page(self, day: date, kind: str, offset: int) -> List[ChangeEntry]:
        attempt = 0

        while True:
            try:
                return await self.client.fetch_changes_page(day, kind, offset, PAGE_LIMIT)
            except FetchError as e:
                attempt += 1
                url = self.client.changes_url(day, kind, offset, PAGE_LIMIT)

                if attempt > self.retries:
                    await self._record_failure(url, e)
                    raise DiscoveryError(
                        f"Recent changes page failed after {attempt} attempts",
                        context={
                            "url": url,
                            "status": getattr(e, "status_code", None),
                            "retry_count": attempt,
                        },
                        original_exception=e
                    )

                logger.warning(
                    f"Page fetch failed ({e.message}). "
                    f"Retrying in {self.retry_delay} seconds (attempt {attempt}/{self.retries})"
                )
                await self._sleep(self.retry_delay)

    async def _record_failure(self, url: str, error: FetchError) -> None:
        detail = {
            "time": self._clock().isoformat(),
            "url": url,
            "status": getattr(error, "status_code", None),
            "error": error.context.get("response_body") or error.message,
        }
        await self.store.set(StoreKey.DISCOVERY_ERROR, detail)
