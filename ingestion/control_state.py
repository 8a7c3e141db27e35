"""
Control-state store: durable key -> JSON values for sync bookkeeping.

All reads select the value column directly (never ORM instances) so a
value written earlier in the same session is always read back fresh.
Every write commits before returning; the engine relies on that for
its crash-recovery checkpoints.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import dialect_insert
from core.exceptions import ControlStateError
from ingestion.keys import EntityKind, PROCESSING_ORDER
from models.catalog import EditionRecord
from models.store import StoreEntry

logger = logging.getLogger(__name__)


class StoreKey:
    """Keys written by the sync engine"""
    WATERMARK = "watermark"
    RUN_STARTED_AT = "run_started_at"
    RUN_FINISHED_AT = "run_finished_at"
    RUN_ERROR = "run_error"
    RUN_PHASE = "run_phase"
    DISCOVERY_ERROR = "discovery_error"


@dataclass
class SyncState:
    """Snapshot of the control state a run starts from"""
    watermark: Optional[date] = None
    pending: Dict[EntityKind, List[str]] = field(default_factory=dict)

    def queue(self, kind: EntityKind) -> List[str]:
        return self.pending.get(kind, [])

    def has_backlog(self) -> bool:
        return any(self.queue(kind) for kind in PROCESSING_ORDER)


class ControlStateStore:
    """
    Narrow get/set interface over the ``store`` table.

    Higher-level helpers (queues, watermark, batch bookkeeping) are all
    expressed through ``get``/``set`` except ``apply_batch_result``,
    which must read-modify-write inside one transaction.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def get(self, key: str, default: Any = None) -> Any:
        result = await self.db.execute(
            select(StoreEntry.value).where(StoreEntry.key == key)
        )
        value = result.scalar_one_or_none()
        return default if value is None else value

    async def set(self, key: str, value: Any) -> None:
        await self._write(key, value)
        await self.db.commit()

    async def _write(self, key: str, value: Any) -> None:
        insert = dialect_insert(self.db)
        stmt = insert(StoreEntry).values(key=key, value=value, updated_at=datetime.utcnow())
        stmt = stmt.on_conflict_do_update(
            index_elements=["key"],
            set_={
                "value": stmt.excluded.value,
                "updated_at": stmt.excluded.updated_at,
            }
        )
        await self.db.execute(stmt)

    # ------------------------------------------------------------------
    # Pending key queues
    # ------------------------------------------------------------------

    async def get_queue(self, kind: EntityKind) -> List[str]:
        value = await self.get(kind.queue_key, [])
        if not isinstance(value, list):
            raise ControlStateError(
                "Pending key queue is not a list",
                context={"key": kind.queue_key, "value_type": type(value).__name__}
            )
        return value

    async def apply_batch_result(
        self,
        kind: EntityKind,
        consumed: int,
        failed_keys: List[str]
    ) -> List[str]:
        """
        Drop ``consumed`` keys from the head of the queue and append
        ``failed_keys`` to the tail, atomically.

        Returns:
            The queue as persisted
        """
        try:
            result = await self.db.execute(
                select(StoreEntry.value)
                .where(StoreEntry.key == kind.queue_key)
                .with_for_update()
            )
            current = result.scalar_one_or_none() or []
            remaining = list(current[consumed:]) + list(failed_keys)
            await self._write(kind.queue_key, remaining)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        return remaining

    # ------------------------------------------------------------------
    # Watermark
    # ------------------------------------------------------------------

    async def get_watermark(self) -> Optional[date]:
        value = await self.get(StoreKey.WATERMARK)
        if value is None:
            return None
        try:
            return date.fromisoformat(str(value)[:10])
        except ValueError as e:
            raise ControlStateError(
                "Stored watermark is not an ISO date",
                context={"key": StoreKey.WATERMARK, "value": value},
                original_exception=e
            )

    async def set_watermark(self, day: date) -> None:
        await self.set(StoreKey.WATERMARK, day.isoformat())

    async def checkpoint_day(self, queues: Dict[EntityKind, List[str]], day: date) -> None:
        """Persist discovered queues and advance the watermark to ``day`` in one commit"""
        try:
            for kind, keys in queues.items():
                await self._write(kind.queue_key, list(keys))
            await self._write(StoreKey.WATERMARK, day.isoformat())
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    async def load_watermark(self, today: date) -> date:
        """
        Stored watermark, seeding it when missing.

        The seed is the UTC day of the newest mirrored edition, or two
        days before ``today`` when nothing has been mirrored yet.
        """
        watermark = await self.get_watermark()
        if watermark is not None:
            return watermark

        result = await self.db.execute(select(func.max(EditionRecord.last_modified)))
        latest = result.scalar_one_or_none()

        if latest is not None:
            if latest.tzinfo is not None:
                latest = latest.astimezone(timezone.utc)
            watermark = latest.date()
        else:
            watermark = today - timedelta(days=2)

        logger.info(f"Seeding watermark at {watermark.isoformat()}")
        await self.set_watermark(watermark)
        return watermark

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    async def load_state(self) -> SyncState:
        return SyncState(
            watermark=await self.get_watermark(),
            pending={kind: await self.get_queue(kind) for kind in PROCESSING_ORDER},
        )
