"""
Pydantic schemas for data validation and serialization.

Schemas:
    records: Upstream record envelopes and recent-changes feed entries
    api: API endpoint response schemas (health, task trigger)

Usage:
    from schemas.records import RecordEnvelope, ChangeEntry
    from schemas.api import HealthCheckResponse

Example:
    envelope = RecordEnvelope(
        key="/works/OL1W",
        type={"key": "/type/work"},
        revision=3,
        authors=[{"author": {"key": "/authors/OL1A"}}],
    )
    assert envelope.primary_author_key == "/authors/OL1A"
"""

__all__ = [
    "RecordEnvelope",
    "ChangeEntry",
    "HealthCheckResponse",
    "SyncStatusInfo",
    "TaskTriggerResponse",
]
