"""
Upsert normalized catalog records (idempotent writes)
"""

from typing import Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from core.database import dialect_insert
from core.exceptions import UpsertError
from ingestion.keys import EntityKind
from ingestion.transformers.normalizer import NormalizedRecord, RecordNormalizer
from models.catalog import AuthorRecord, WorkRecord, EditionRecord, AuthorWork
import logging

logger = logging.getLogger(__name__)

TABLES = {
    EntityKind.AUTHOR: AuthorRecord,
    EntityKind.WORK: WorkRecord,
    EntityKind.EDITION: EditionRecord,
}


class RecordUpserter:
    """
    Write records with INSERT ... ON CONFLICT (key) DO UPDATE.

    Ensures:
    - One row per key; a rewrite replaces every non-key column
    - Works with a primary author also get an author_works row
    - Each record is committed before returning
    """

    def __init__(self, db_session: AsyncSession, normalizer: RecordNormalizer = None):
        self.db = db_session
        self.normalizer = normalizer or RecordNormalizer()

    async def save(self, raw_record: Dict[str, Any]) -> NormalizedRecord:
        """
        Normalize and upsert one raw envelope.

        Raises:
            MalformedRecordError / UnknownEntityKindError: from normalization
            UpsertError: database write failed
        """
        record = self.normalizer.normalize(raw_record)
        await self.upsert(record)
        return record

    async def upsert(self, record: NormalizedRecord) -> None:
        table = TABLES[record.kind]
        insert = dialect_insert(self.db)

        try:
            if record.author_key:
                link = insert(AuthorWork).values(
                    author_key=record.author_key,
                    work_key=record.key
                )
                await self.db.execute(
                    link.on_conflict_do_nothing(index_elements=["author_key", "work_key"])
                )

            stmt = insert(table).values(**record.row)
            stmt = stmt.on_conflict_do_update(
                index_elements=["key"],
                set_={
                    column: stmt.excluded[column]
                    for column in record.row
                    if column != "key"
                }
            )
            await self.db.execute(stmt)
            await self.db.commit()

        except Exception as e:
            await self.db.rollback()
            raise UpsertError(
                f"Failed to upsert {record.key}",
                context={
                    "key": record.key,
                    "table_name": table.__tablename__,
                    "operation": "UPSERT",
                },
                original_exception=e
            )

        logger.debug(f"Upserted {record.key} into {table.__tablename__}")
