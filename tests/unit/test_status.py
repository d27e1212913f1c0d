import json

import pytest

from core.exceptions import RetryNotAllowedError, SessionNotFoundError, StatusTransitionError
from models.base import SyncSessionItemStatus, SyncSessionStatus, SyncType
from pipeline.status.broadcaster import LiveStatusBroadcaster, status_key, terminal_state_for
from pipeline.status.store import SyncStatusStore, resolve_session_status


@pytest.fixture
def broadcaster(fake_redis):
    return LiveStatusBroadcaster(fake_redis, ttl_seconds=600)


@pytest.fixture
def store(session_factory, broadcaster):
    return SyncStatusStore(session_factory, broadcaster)


async def _processing_session(store, external_ids=(1, 2, 3), job_id="job-1"):
    sync_session = await store.create_session(
        user_id="user-1",
        sync_type=SyncType.CSV,
        total_items=len(external_ids),
        item_metadata={i: [{"itemExternalId": i}] for i in external_ids},
    )
    await store.set_status(sync_session.id, SyncSessionStatus.PROCESSING, "Starting", job_id=job_id)
    return sync_session.id


# ============================================================================
# Session state machine
# ============================================================================

def test_resolve_session_status():
    assert resolve_session_status(5, 0) == SyncSessionStatus.COMPLETED
    assert resolve_session_status(0, 0) == SyncSessionStatus.COMPLETED
    assert resolve_session_status(2, 3) == SyncSessionStatus.PARTIAL
    assert resolve_session_status(0, 3) == SyncSessionStatus.FAILED


def test_terminal_state_mapping():
    assert terminal_state_for(SyncSessionStatus.COMPLETED) == "success"
    assert terminal_state_for(SyncSessionStatus.PARTIAL) == "error"
    assert terminal_state_for(SyncSessionStatus.FAILED) == "error"
    assert terminal_state_for(SyncSessionStatus.PROCESSING) is None


@pytest.mark.asyncio
async def test_create_session_one_item_per_external_id(store):
    sync_session = await store.create_session(
        user_id="user-1",
        sync_type=SyncType.CSV,
        total_items=3,
        item_metadata={10: [{"itemExternalId": 10}, {"itemExternalId": 10}], 11: [{"itemExternalId": 11}]},
    )

    loaded = await store.get_session(sync_session.id)
    items = await store.get_items(sync_session.id)

    assert loaded.status == SyncSessionStatus.PENDING
    assert loaded.total_items == 3
    assert loaded.completed_at is None
    assert [item.item_external_id for item in items] == [10, 11]
    assert all(item.status == SyncSessionItemStatus.PENDING for item in items)
    assert len(items[0].item_metadata) == 2


@pytest.mark.asyncio
async def test_complete_sets_counts_and_completed_at(store, fake_redis):
    sync_session_id = await _processing_session(store)

    await store.complete(sync_session_id, SyncSessionStatus.PARTIAL, "Sync partially completed", 2, 1)

    loaded = await store.get_session(sync_session_id)
    assert loaded.status == SyncSessionStatus.PARTIAL
    assert (loaded.success_count, loaded.fail_count) == (2, 1)
    assert loaded.completed_at is not None

    cached = json.loads(fake_redis.values[status_key("job-1")])
    assert cached["finished"] is True
    assert cached["terminalState"] == "error"
    assert cached["status"] == "Sync partially completed"
    assert fake_redis.expiry[status_key("job-1")] == 600


@pytest.mark.asyncio
async def test_complete_rejects_non_terminal_status(store):
    sync_session_id = await _processing_session(store)
    with pytest.raises(StatusTransitionError):
        await store.complete(sync_session_id, SyncSessionStatus.PROCESSING, "nope", 0, 0)


@pytest.mark.asyncio
async def test_complete_rejects_counts_over_total(store):
    sync_session_id = await _processing_session(store)
    with pytest.raises(StatusTransitionError):
        await store.complete(sync_session_id, SyncSessionStatus.PARTIAL, "nope", 3, 1)

    loaded = await store.get_session(sync_session_id)
    assert loaded.status == SyncSessionStatus.PROCESSING


@pytest.mark.asyncio
async def test_completed_session_is_final(store):
    sync_session_id = await _processing_session(store)
    await store.complete(sync_session_id, SyncSessionStatus.COMPLETED, "done", 3, 0)

    with pytest.raises(StatusTransitionError):
        await store.set_status(sync_session_id, SyncSessionStatus.PENDING, "again")
    with pytest.raises(RetryNotAllowedError):
        await store.reset_for_retry(sync_session_id)


@pytest.mark.asyncio
async def test_unknown_session(store):
    with pytest.raises(SessionNotFoundError):
        await store.get_session("missing")
    with pytest.raises(SessionNotFoundError):
        await store.set_status("missing", SyncSessionStatus.PROCESSING, "x")


# ============================================================================
# Item outcomes
# ============================================================================

@pytest.mark.asyncio
async def test_record_scrape_outcome(store):
    sync_session_id = await _processing_session(store)

    await store.record_scrape_outcome(sync_session_id, scraped_ids=[1, 3], failures={2: "HTTP 404 for ID 2"})

    items = {item.item_external_id: item for item in await store.get_items(sync_session_id)}
    assert items[1].status == SyncSessionItemStatus.SCRAPED
    assert items[3].status == SyncSessionItemStatus.SCRAPED
    assert items[2].status == SyncSessionItemStatus.FAILED
    assert items[2].error_reason == "HTTP 404 for ID 2"
    assert items[1].error_reason is None


@pytest.mark.asyncio
async def test_failed_item_is_never_promoted_to_scraped(store):
    sync_session_id = await _processing_session(store)
    await store.record_scrape_outcome(sync_session_id, scraped_ids=[], failures={2: "down"})

    await store.record_scrape_outcome(sync_session_id, scraped_ids=[2], failures={})

    failed = await store.get_failed_items(sync_session_id)
    assert [item.item_external_id for item in failed] == [2]


@pytest.mark.asyncio
async def test_demote_scraped(store):
    sync_session_id = await _processing_session(store)
    await store.record_scrape_outcome(sync_session_id, scraped_ids=[1, 2], failures={3: "down"})

    changed = await store.demote_scraped(sync_session_id, [1, 2, 3], "Persistence failed")

    assert changed == 2
    failed = await store.get_failed_items(sync_session_id)
    assert {item.item_external_id: item.error_reason for item in failed} == {
        1: "Persistence failed",
        2: "Persistence failed",
        3: "down",
    }


# ============================================================================
# Retry reset
# ============================================================================

@pytest.mark.asyncio
async def test_reset_for_retry(store):
    sync_session_id = await _processing_session(store)
    await store.record_scrape_outcome(sync_session_id, scraped_ids=[1], failures={2: "down", 3: "down"})
    await store.complete(sync_session_id, SyncSessionStatus.PARTIAL, "partial", 1, 2)

    reset = await store.reset_for_retry(sync_session_id)

    assert sorted(item.item_external_id for item in reset) == [2, 3]
    loaded = await store.get_session(sync_session_id)
    assert loaded.status == SyncSessionStatus.PENDING
    assert loaded.fail_count == 0
    assert loaded.success_count == 1
    assert loaded.completed_at is None
    assert loaded.status_message == "Retrying 2 failed items"

    items = {item.item_external_id: item for item in await store.get_items(sync_session_id)}
    assert items[1].status == SyncSessionItemStatus.SCRAPED
    assert items[2].status == SyncSessionItemStatus.PENDING
    assert items[2].retry_count == 1
    assert items[2].error_reason is None


@pytest.mark.asyncio
async def test_reset_for_retry_requires_failed_status(store):
    sync_session_id = await _processing_session(store)
    with pytest.raises(RetryNotAllowedError):
        await store.reset_for_retry(sync_session_id)


# ============================================================================
# Live status
# ============================================================================

@pytest.mark.asyncio
async def test_progress_only_touches_cache(store, fake_redis):
    sync_session_id = await _processing_session(store)

    await store.publish_progress("job-1", "Syncing... 1/3")

    cached = json.loads(fake_redis.values[status_key("job-1")])
    assert cached == {
        "status": "Syncing... 1/3",
        "finished": False,
        "createdAt": cached["createdAt"],
        "terminalState": None,
    }
    loaded = await store.get_session(sync_session_id)
    assert loaded.status_message == "Starting"


@pytest.mark.asyncio
async def test_cache_outage_does_not_block_durable_status(store, fake_redis):
    sync_session_id = await _processing_session(store)
    fake_redis.unavailable = True

    await store.complete(sync_session_id, SyncSessionStatus.COMPLETED, "done", 3, 0)

    loaded = await store.get_session(sync_session_id)
    assert loaded.status == SyncSessionStatus.COMPLETED


@pytest.mark.asyncio
async def test_broadcaster_publish_and_read(broadcaster):
    assert await broadcaster.publish("7", "Sync queued", finished=False) is True
    assert (await broadcaster.read("7"))["status"] == "Sync queued"
    assert await broadcaster.read("8") is None
    assert await broadcaster.publish(None, "no job", finished=False) is False


@pytest.mark.asyncio
async def test_announce_job_keeps_existing_status(store, fake_redis):
    assert await store.announce_job("9", "Sync queued") is True
    assert json.loads(fake_redis.values[status_key("9")])["status"] == "Sync queued"

    await store.publish_progress("9", "Syncing... 1/2")
    assert await store.announce_job("9", "Sync queued") is False

    assert json.loads(fake_redis.values[status_key("9")])["status"] == "Syncing... 1/2"
