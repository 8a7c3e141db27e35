from sqlalchemy import Column, String, DateTime
from datetime import datetime
from models.base import Base, JSONType


class StoreEntry(Base):
    """
    Generic key -> JSON value store for sync control state.

    Purpose:
    - Watermark of fully discovered days
    - Pending key queues (one JSON list per entity kind)
    - Run status fields read by monitoring

    Design:
    - One row per key, value replaced on every write
    - Values are arbitrary JSON (strings, lists, objects, null)
    """
    __tablename__ = "store"

    key = Column(String(100), primary_key=True)
    value = Column(JSONType, nullable=True)

    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
