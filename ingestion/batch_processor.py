"""
Batch fetch-and-persist: drain one pending key queue to empty.
"""

import asyncio
from dataclasses import dataclass
from typing import List, Optional
import logging

from core.config import settings
from core.exceptions import SyncException
from ingestion.control_state import ControlStateStore
from ingestion.extractors.openlibrary_client import OpenLibraryClient
from ingestion.keys import EntityKind
from ingestion.loaders.postgres_loader import RecordUpserter
from ingestion.pacing import PacingGate, Sleeper

logger = logging.getLogger(__name__)


@dataclass
class DrainResult:
    kind: EntityKind
    batches: int = 0
    records_loaded: int = 0
    records_failed: int = 0  # failed attempts, a requeued key can count more than once
    cooldowns: int = 0


class BatchProcessor:
    """
    Fetches and upserts queued keys in fixed-size batches.

    Per batch:
    1. Take up to ``batch_size`` keys from the head of the persisted queue
    2. Fetch each key sequentially (paced), upsert on success
    3. In one transaction drop the batch from the head and append the
       failed keys to the tail
    4. Sleep the cooldown when more than half of the batch failed

    The loop only ends when the persisted queue is empty. A key that
    never succeeds keeps the loop alive.
    """

    def __init__(
        self,
        store: ControlStateStore,
        client: OpenLibraryClient,
        upserter: RecordUpserter,
        batch_size: Optional[int] = None,
        timeout: Optional[float] = None,
        fetch_delay: Optional[float] = None,
        cooldown: Optional[float] = None,
        sleep: Sleeper = asyncio.sleep
    ):
        self.store = store
        self.client = client
        self.upserter = upserter
        self.batch_size = batch_size or settings.SYNC_BATCH_SIZE
        self.timeout = timeout or settings.SYNC_TIMEOUT
        self.fetch_delay = settings.SYNC_FETCH_DELAY if fetch_delay is None else fetch_delay
        self.cooldown = settings.SYNC_COOLDOWN if cooldown is None else cooldown
        self._sleep = sleep

    async def drain(self, kind: EntityKind) -> DrainResult:
        result = DrainResult(kind=kind)
        gate = PacingGate(self.fetch_delay, self._sleep)

        while True:
            queue = await self.store.get_queue(kind)
            if not queue:
                break

            batch = queue[:self.batch_size]
            failed_keys = await self._process_batch(batch, gate)
            remaining = await self.store.apply_batch_result(kind, len(batch), failed_keys)

            result.batches += 1
            result.records_loaded += len(batch) - len(failed_keys)
            result.records_failed += len(failed_keys)

            logger.info(
                f"{kind.value} batch {result.batches}: "
                f"{len(batch) - len(failed_keys)} loaded, {len(failed_keys)} requeued, "
                f"{len(remaining)} remaining"
            )

            if len(failed_keys) > len(batch) / 2:
                result.cooldowns += 1
                logger.warning(
                    f"{len(failed_keys)}/{len(batch)} {kind.value} fetches failed, "
                    f"cooling down for {self.cooldown} seconds"
                )
                await self._sleep(self.cooldown)

        return result

    async def _process_batch(self, batch: List[str], gate: PacingGate) -> List[str]:
        """Fetch and upsert each key, returning the keys that failed"""
        failed_keys = []

        for key in batch:
            await gate.wait()
            try:
                raw_record = await self.client.fetch_record(key, timeout=self.timeout)
                await self.upserter.save(raw_record)
            except SyncException as e:
                failed_keys.append(key)
                logger.warning(
                    f"Failed to sync {key}: {e.message}",
                    extra={"error_context": e.to_dict()}
                )
            except Exception as e:
                # A single bad key must never halt the drain
                failed_keys.append(key)
                logger.error(f"Unexpected error syncing {key}: {type(e).__name__}: {e}")

        return failed_keys
