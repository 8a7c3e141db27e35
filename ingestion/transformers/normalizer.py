"""
Transform raw upstream record envelopes into storage rows
"""

from dataclasses import dataclass
from typing import Dict, Any, Optional
from datetime import datetime, timezone
from pydantic import ValidationError
from core.exceptions import MalformedRecordError
from ingestion.keys import EntityKind
from schemas.records import RecordEnvelope
import logging

logger = logging.getLogger(__name__)


@dataclass
class NormalizedRecord:
    """Storage-ready form of one envelope"""
    kind: EntityKind
    key: str
    row: Dict[str, Any]
    author_key: Optional[str] = None  # primary author, works only


class RecordNormalizer:
    """
    Validate an envelope and map it to its storage row.

    Handles:
    - Envelope validation (key and type are required)
    - Kind classification from the key namespace
    - Kind-specific columns (edition parent work, work primary author)
    """

    def normalize(self, raw_record: Dict[str, Any]) -> NormalizedRecord:
        """
        Normalize a raw envelope.

        Raises:
            MalformedRecordError: envelope fails validation
            UnknownEntityKindError: key matches no known namespace
        """
        try:
            envelope = RecordEnvelope(**raw_record)
        except (ValidationError, TypeError) as e:
            raise MalformedRecordError(
                "Record envelope failed validation",
                context={"key": _safe_key(raw_record)},
                original_exception=e
            )

        kind = EntityKind.classify(envelope.key)

        row = {
            "key": envelope.key,
            "type": envelope.type.key,
            "revision": envelope.revision,
            "last_modified": self._parse_datetime(
                (envelope.last_modified or {}).get("value")
            ),
            "data": raw_record,
        }

        author_key = None
        if kind == EntityKind.EDITION:
            row["work_key"] = envelope.work_key
        elif kind == EntityKind.WORK:
            author_key = envelope.primary_author_key

        return NormalizedRecord(kind=kind, key=envelope.key, row=row, author_key=author_key)

    @staticmethod
    def _parse_datetime(value: Any) -> Optional[datetime]:
        """Safely parse an upstream timestamp into naive UTC"""
        if value is None or value == "":
            return None
        if isinstance(value, datetime):
            parsed = value
        else:
            try:
                parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
            except ValueError:
                logger.debug(f"Unparseable timestamp: {value!r}")
                return None

        if parsed.tzinfo is not None:
            try:
                parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
            except OverflowError:
                logger.debug(f"Timestamp out of range: {value!r}")
                return None
        return parsed


def _safe_key(raw_record: Any) -> Optional[str]:
    if isinstance(raw_record, dict):
        return raw_record.get("key")
    return None
