"""
Core utilities and configuration for the catalog sync engine.

Modules:
    config: Application configuration and environment variable management
    database: Database engine and session management
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration

Usage:
    from core.config import settings
    from core.database import get_session
    from core.exceptions import DiscoveryError, FetchError
    from core.logging import setup_logging
"""

__all__ = [
    "settings",
    "get_session",
    "setup_logging",
    # Exceptions
    "SyncException",
    "FetchError",
    "NetworkError",
    "UpstreamStatusError",
    "MalformedRecordError",
    "TransformationError",
    "UnknownEntityKindError",
    "LoadError",
    "UpsertError",
    "ControlStateError",
    "DiscoveryError",
    "SyncRunError",
]
