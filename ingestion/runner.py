# ============================================================================
# File: ingestion/runner.py
# Description: Sync run orchestrator (discovery -> authors -> works -> editions)
# ============================================================================
"""
Sync Runner - sequences discovery and queue processing for one run.

State machine:
    idle -> discovering_keys -> processing_authors -> processing_works
         -> processing_editions -> finished
    failed is reachable from every state.

A run with pending queues left over from an interrupted run skips
discovery and resumes at the first non-empty queue. Every transition
is written to the control-state store before the phase starts.
"""

import asyncio
from datetime import datetime
from typing import Any, Callable, Dict, Optional
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import SyncException, SyncRunError
from ingestion.batch_processor import BatchProcessor
from ingestion.control_state import ControlStateStore, StoreKey
from ingestion.discovery import ChangeDiscoveryCrawler, utc_now
from ingestion.extractors.openlibrary_client import OpenLibraryClient
from ingestion.keys import EntityKind, PROCESSING_ORDER
from ingestion.loaders.postgres_loader import RecordUpserter
from ingestion.pacing import Sleeper
from models.base import SyncPhase

logger = logging.getLogger(__name__)

PROCESSING_PHASES = {
    EntityKind.AUTHOR: SyncPhase.PROCESSING_AUTHORS,
    EntityKind.WORK: SyncPhase.PROCESSING_WORKS,
    EntityKind.EDITION: SyncPhase.PROCESSING_EDITIONS,
}


class SyncOrchestrator:
    """
    Top-level sync run.

    Responsibilities:
    - Choose between a fresh discovery pass and the crash-resume path
    - Drain queues strictly in author, work, edition order
    - Record run start/finish/error and the current phase
    """

    def __init__(
        self,
        db_session: AsyncSession,
        client: OpenLibraryClient,
        batch_size: Optional[int] = None,
        retries: Optional[int] = None,
        sleep: Sleeper = asyncio.sleep,
        clock: Callable[[], datetime] = utc_now
    ):
        self.db = db_session
        self.store = ControlStateStore(db_session)
        self.crawler = ChangeDiscoveryCrawler(
            self.store, client, retries=retries, sleep=sleep, clock=clock
        )
        self.processor = BatchProcessor(
            self.store, client, RecordUpserter(db_session),
            batch_size=batch_size, sleep=sleep
        )
        self.phase = SyncPhase.IDLE
        self._clock = clock

    async def _enter(self, phase: SyncPhase) -> None:
        logger.info(f"Sync phase: {self.phase.value} -> {phase.value}")
        self.phase = phase
        await self.store.set(StoreKey.RUN_PHASE, phase.value)

    def _now(self) -> str:
        return self._clock().isoformat()

    async def run(self) -> Dict[str, Any]:
        """
        Execute one sync run.

        Returns:
            Dictionary with run statistics:
            - status: "success"
            - resumed: True when discovery was skipped for a backlog
            - days_discovered: number of days crawled
            - watermark: watermark after the run (ISO date or None)
            - records_loaded / records_failed: per-key totals

        Raises:
            SyncRunError: the run ended in the failed state
        """
        result: Dict[str, Any] = {
            "status": "success",
            "resumed": False,
            "days_discovered": 0,
            "watermark": None,
            "records_loaded": 0,
            "records_failed": 0,
        }

        try:
            state = await self.store.load_state()
            await self.store.set(StoreKey.RUN_FINISHED_AT, None)

            if state.has_backlog():
                # Crash-resume path: finish the backlog before discovering more
                result["resumed"] = True
                logger.info(
                    "Resuming backlog: "
                    + ", ".join(f"{kind.value}s={len(state.queue(kind))}" for kind in PROCESSING_ORDER)
                )
                await self.store.set(StoreKey.RUN_STARTED_AT, self._now())
            else:
                await self._enter(SyncPhase.DISCOVERING_KEYS)
                await self.store.set(StoreKey.RUN_STARTED_AT, self._now())
                await self.store.set(StoreKey.RUN_ERROR, None)
                await self.store.set(StoreKey.DISCOVERY_ERROR, None)

                discovery = await self.crawler.discover(state)
                state = discovery.state
                result["days_discovered"] = len(discovery.days_processed)
                logger.info(
                    f"Discovery complete: {len(discovery.days_processed)} days, "
                    f"{discovery.keys_found} keys"
                )

            for kind in PROCESSING_ORDER:
                if not await self.store.get_queue(kind):
                    continue

                await self._enter(PROCESSING_PHASES[kind])
                drained = await self.processor.drain(kind)
                result["records_loaded"] += drained.records_loaded
                result["records_failed"] += drained.records_failed

            await self._enter(SyncPhase.FINISHED)
            await self.store.set(StoreKey.RUN_FINISHED_AT, self._now())
            await self.store.set(StoreKey.RUN_ERROR, None)

            watermark = await self.store.get_watermark()
            result["watermark"] = watermark.isoformat() if watermark else None

            logger.info(
                f"Sync run finished: loaded={result['records_loaded']}, "
                f"failed attempts={result['records_failed']}, watermark={result['watermark']}"
            )
            return result

        except Exception as e:
            failed_in = self.phase
            await self._record_failure(e)
            raise SyncRunError(
                f"Sync run failed during {failed_in.value}",
                context={"phase": failed_in.value},
                original_exception=e
            )

    async def _record_failure(self, error: Exception) -> None:
        message = error.message if isinstance(error, SyncException) else str(error)
        error_context = error.to_dict() if isinstance(error, SyncException) else {}

        logger.error(
            f"Sync run failed in {self.phase.value}: {message}",
            extra={"error_context": error_context}
        )

        try:
            await self.db.rollback()
            await self.store.set(StoreKey.RUN_ERROR, f"{type(error).__name__}: {message}")
            self.phase = SyncPhase.FAILED
            await self.store.set(StoreKey.RUN_PHASE, SyncPhase.FAILED.value)
        except Exception:
            logger.exception("Could not record sync failure in the control-state store")
