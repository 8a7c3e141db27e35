"""
SQLAlchemy ORM models for database tables.

Models:
    base: Base declarative class, JSON column type and the SyncPhase enum
    store: Key/value control-state store (watermark, queues, run status)
    catalog: Mirrored upstream records (authors, works, editions) and the
             author -> work relation

Database Schema:
    All models inherit from the Base declarative class. JSON columns use
    JSONB on PostgreSQL and plain JSON on other dialects.

Usage:
    from models.catalog import AuthorRecord, WorkRecord, EditionRecord, AuthorWork
    from models.store import StoreEntry
    from models.base import Base, SyncPhase

Relationships:
    - EditionRecord.work_key -> WorkRecord.key (not enforced, parents may
      arrive in a later run)
    - AuthorWork (author_key, work_key) -> AuthorRecord / WorkRecord
"""

__all__ = [
    "Base",
    "SyncPhase",
    "StoreEntry",
    "AuthorRecord",
    "WorkRecord",
    "EditionRecord",
    "AuthorWork",
]
