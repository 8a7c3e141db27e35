"""
Unit tests for batch queue draining
"""

import pytest
from sqlalchemy import select
from conftest import author_record, edition_record, seed_queues
from ingestion.batch_processor import BatchProcessor
from ingestion.control_state import ControlStateStore
from ingestion.keys import EntityKind
from ingestion.loaders.postgres_loader import RecordUpserter
from ingestion.pacing import PacingGate
from models.catalog import AuthorRecord, EditionRecord


def make_processor(db_session, ol_client, sleeper, batch_size=2, fetch_delay=0.2):
    store = ControlStateStore(db_session)
    processor = BatchProcessor(
        store,
        ol_client,
        RecordUpserter(db_session),
        batch_size=batch_size,
        timeout=5,
        fetch_delay=fetch_delay,
        cooldown=300,
        sleep=sleeper
    )
    return store, processor


class TestBatchProcessor:

    @pytest.mark.asyncio
    async def test_failed_key_requeued_at_tail(self, db_session, ol_client, upstream, sleeper):
        store, processor = make_processor(db_session, ol_client, sleeper)
        keys = ["/authors/OL1A", "/authors/OL2A", "/authors/OL3A"]
        upstream.add_records(*[author_record(key) for key in keys])
        upstream.record_failures["/authors/OL2A"] = [503]
        await seed_queues(store, {EntityKind.AUTHOR: keys})

        result = await processor.drain(EntityKind.AUTHOR)

        assert upstream.record_requests() == [
            "/authors/OL1A", "/authors/OL2A", "/authors/OL3A", "/authors/OL2A"
        ]
        assert result.batches == 2
        assert result.records_loaded == 3
        assert result.records_failed == 1
        assert result.cooldowns == 0
        assert await store.get_queue(EntityKind.AUTHOR) == []

        stored = (await db_session.execute(select(AuthorRecord.key))).scalars().all()
        assert sorted(stored) == keys

    @pytest.mark.asyncio
    async def test_fetches_are_paced(self, db_session, ol_client, upstream, sleeper):
        store, processor = make_processor(db_session, ol_client, sleeper)
        keys = ["/authors/OL1A", "/authors/OL2A", "/authors/OL3A"]
        upstream.add_records(*[author_record(key) for key in keys])
        await seed_queues(store, {EntityKind.AUTHOR: keys})

        await processor.drain(EntityKind.AUTHOR)

        assert sleeper.calls == [0.2, 0.2]

    @pytest.mark.asyncio
    async def test_cooldown_when_most_of_batch_fails(self, db_session, ol_client, upstream, sleeper):
        store, processor = make_processor(db_session, ol_client, sleeper, batch_size=10, fetch_delay=0)
        keys = [f"/books/OL{i}M" for i in range(10)]
        upstream.add_records(*[edition_record(key) for key in keys])
        for key in keys[:6]:
            upstream.record_failures[key] = [503]
        await seed_queues(store, {EntityKind.EDITION: keys})

        result = await processor.drain(EntityKind.EDITION)

        assert result.cooldowns == 1
        assert sleeper.calls == [300]
        assert result.records_loaded == 10
        assert await store.get_queue(EntityKind.EDITION) == []

    @pytest.mark.asyncio
    async def test_no_cooldown_at_exactly_half(self, db_session, ol_client, upstream, sleeper):
        store, processor = make_processor(db_session, ol_client, sleeper, batch_size=10, fetch_delay=0)
        keys = [f"/books/OL{i}M" for i in range(10)]
        upstream.add_records(*[edition_record(key) for key in keys])
        for key in keys[:5]:
            upstream.record_failures[key] = [503]
        await seed_queues(store, {EntityKind.EDITION: keys})

        result = await processor.drain(EntityKind.EDITION)

        assert result.cooldowns == 0
        assert sleeper.calls == []

    @pytest.mark.asyncio
    async def test_key_retried_until_it_succeeds(self, db_session, ol_client, upstream, sleeper):
        store, processor = make_processor(db_session, ol_client, sleeper, batch_size=1, fetch_delay=0)
        upstream.add_records(author_record("/authors/OL1A"))
        upstream.record_failures["/authors/OL1A"] = [500, 502, 503]
        await seed_queues(store, {EntityKind.AUTHOR: ["/authors/OL1A"]})

        result = await processor.drain(EntityKind.AUTHOR)

        assert result.batches == 4
        assert result.records_failed == 3
        assert result.cooldowns == 3
        assert await db_session.get(AuthorRecord, "/authors/OL1A") is not None

    @pytest.mark.asyncio
    async def test_queue_order_preserved_for_untouched_keys(self, db_session, ol_client, upstream, sleeper):
        store, processor = make_processor(db_session, ol_client, sleeper, batch_size=2, fetch_delay=0)
        keys = [f"/books/OL{i}M" for i in range(5)]
        upstream.add_records(*[edition_record(key, work_key="/works/OL1W") for key in keys])
        upstream.record_failures["/books/OL0M"] = [404]
        await seed_queues(store, {EntityKind.EDITION: keys})

        await processor.drain(EntityKind.EDITION)

        assert upstream.record_requests() == [
            "/books/OL0M", "/books/OL1M", "/books/OL2M", "/books/OL3M", "/books/OL4M", "/books/OL0M"
        ]
        stored = (await db_session.execute(select(EditionRecord.work_key))).scalars().all()
        assert stored == ["/works/OL1W"] * 5

    @pytest.mark.asyncio
    async def test_empty_queue(self, db_session, ol_client, upstream, sleeper):
        store, processor = make_processor(db_session, ol_client, sleeper)

        result = await processor.drain(EntityKind.WORK)

        assert result.batches == 0
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_unusable_records_count_as_failures(self, db_session, ol_client, upstream, sleeper):
        store, processor = make_processor(db_session, ol_client, sleeper)
        upstream.records["/books/OL1M"] = {"key": "/books/OL1M"}
        upstream.records["/people/someone"] = {"key": "/people/someone", "type": {"key": "/type/user"}}
        upstream.add_records(edition_record("/books/OL2M"))

        failed = await processor._process_batch(
            ["/books/OL1M", "/people/someone", "/books/OL2M"], PacingGate(0)
        )

        assert failed == ["/books/OL1M", "/people/someone"]
        assert await db_session.get(EditionRecord, "/books/OL2M") is not None

    @pytest.mark.asyncio
    async def test_out_of_range_timestamp_does_not_stop_drain(self, db_session, ol_client, upstream, sleeper):
        store, processor = make_processor(db_session, ol_client, sleeper, fetch_delay=0)
        upstream.add_records(
            edition_record("/books/OL1M", last_modified="0001-01-01T00:00:00+05:00"),
            edition_record("/books/OL2M"),
        )
        await seed_queues(store, {EntityKind.EDITION: ["/books/OL1M", "/books/OL2M"]})

        result = await processor.drain(EntityKind.EDITION)

        assert result.records_loaded == 2
        assert await store.get_queue(EntityKind.EDITION) == []
        assert await db_session.scalar(
            select(EditionRecord.last_modified).where(EditionRecord.key == "/books/OL1M")
        ) is None

    @pytest.mark.asyncio
    async def test_unfetchable_key_is_requeued(self, db_session, ol_client, upstream, sleeper):
        store, processor = make_processor(db_session, ol_client, sleeper)
        upstream.add_records(edition_record("/books/OL2M"))

        failed = await processor._process_batch(["/books/OL1M\x01", "/books/OL2M"], PacingGate(0))

        assert failed == ["/books/OL1M\x01"]
        assert upstream.record_requests() == ["/books/OL2M"]
        assert await db_session.get(EditionRecord, "/books/OL2M") is not None

    @pytest.mark.asyncio
    async def test_unexpected_error_is_requeued(self, db_session, ol_client, upstream, sleeper):
        store, processor = make_processor(db_session, ol_client, sleeper, fetch_delay=0)
        keys = ["/books/OL1M", "/books/OL2M"]
        upstream.add_records(*[edition_record(key) for key in keys])
        await seed_queues(store, {EntityKind.EDITION: keys})

        save = processor.upserter.save
        calls = []

        async def flaky_save(raw_record):
            calls.append(raw_record["key"])
            if len(calls) == 1:
                raise RuntimeError("unexpected")
            return await save(raw_record)

        processor.upserter.save = flaky_save

        result = await processor.drain(EntityKind.EDITION)

        assert calls == ["/books/OL1M", "/books/OL2M", "/books/OL1M"]
        assert result.records_failed == 1
        assert result.records_loaded == 2
        assert await store.get_queue(EntityKind.EDITION) == []
