from sqlalchemy import JSON
from sqlalchemy.orm import declarative_base
from sqlalchemy.dialects.postgresql import JSONB
import enum

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


# ============================================================================
# ENUMS
# ============================================================================

class SyncPhase(str, enum.Enum):
    """Run orchestrator states"""
    IDLE = "idle"
    DISCOVERING_KEYS = "discovering_keys"
    PROCESSING_AUTHORS = "processing_authors"
    PROCESSING_WORKS = "processing_works"
    PROCESSING_EDITIONS = "processing_editions"
    FINISHED = "finished"
    FAILED = "failed"
