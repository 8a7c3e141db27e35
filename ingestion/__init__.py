"""
Incremental change synchronization engine.

Mirrors the upstream catalog (authors, works, editions) into the local
record store.

Modules:
    keys: EntityKind enum and key namespace classification
    pacing: Delay gate between sequential upstream calls
    control_state: Key/value control-state store (watermark, queues, run status)
    discovery: Recent-changes crawler that fills the pending key queues
    batch_processor: Batch fetch-and-persist over one pending queue
    runner: Run orchestrator state machine
    scheduler: APScheduler integration (cron + manual trigger)

Subpackages:
    extractors: Upstream HTTP client
    transformers: Record envelope normalization
    loaders: Idempotent record upserts

Architecture:
    1. Discover - walk recent changes day by day, checkpointing each day
    2. Process  - drain author, work, edition queues in batches
    3. Persist  - upsert every fetched record by key

    Every step writes its progress to the control-state store, so an
    interrupted run resumes at the last checkpoint.

Example:
    async with OpenLibraryClient() as client:
        orchestrator = SyncOrchestrator(session, client)
        result = await orchestrator.run()

    print(f"Loaded {result['records_loaded']} records")
"""

__all__ = [
    "EntityKind",
    "PacingGate",
    "ControlStateStore",
    "ChangeDiscoveryCrawler",
    "BatchProcessor",
    "RecordNormalizer",
    "RecordUpserter",
    "SyncOrchestrator",
    "SyncScheduler",
]
