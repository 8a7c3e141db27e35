"""
Run one catalog sync from the command line.

Exit code 0 when the run finished, 1 when it failed (the failure is
also recorded in the control-state store under run_error).
"""

import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.database import build_engine, build_session_maker
from core.exceptions import SyncException
from core.logging import setup_logging
from ingestion.extractors.openlibrary_client import OpenLibraryClient
from ingestion.runner import SyncOrchestrator

logger = logging.getLogger(__name__)


async def run_sync() -> int:
    """Run a single sync, returns the process exit code"""
    engine = build_engine()
    SessionLocal = build_session_maker(engine)

    try:
        async with SessionLocal() as session:
            async with OpenLibraryClient() as client:
                result = await SyncOrchestrator(session, client).run()

        logger.info(
            f"Sync completed: resumed={result['resumed']}, "
            f"days={result['days_discovered']}, loaded={result['records_loaded']}, "
            f"watermark={result['watermark']}"
        )
        return 0

    except SyncException as e:
        logger.error(f"Sync failed: {e}")
        return 1
    finally:
        await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(run_sync()))
