import pytest

from core.exceptions import QueueError
from pipeline.queue import RedisJobQueue


@pytest.fixture
def queue(fake_redis):
    return RedisJobQueue(fake_redis, name="test-queue")


@pytest.mark.asyncio
async def test_jobs_are_dequeued_in_order(queue):
    first = await queue.enqueue({"n": 1})
    second = await queue.enqueue({"n": 2})

    job = await queue.dequeue()
    assert (job.job_id, job.data) == (first, {"n": 1})
    job = await queue.dequeue()
    assert (job.job_id, job.data) == (second, {"n": 2})
    assert await queue.dequeue() is None


@pytest.mark.asyncio
async def test_ack_and_fail_record_final_state(queue, fake_redis):
    await queue.enqueue({"n": 1})
    await queue.enqueue({"n": 2})

    done = await queue.dequeue()
    await queue.ack(done)
    broken = await queue.dequeue()
    await queue.fail(broken, "Invalid sync job data")

    assert (await queue.get_job(done.job_id))["state"] == "completed"
    failed = await queue.get_job(broken.job_id)
    assert failed["state"] == "failed"
    assert failed["failedReason"] == "Invalid sync job data"
    assert fake_redis.lists["test-queue:active"] == []
    assert fake_redis.lists["test-queue:completed"] == [done.job_id]
    assert fake_redis.lists["test-queue:failed"] == [broken.job_id]


@pytest.mark.asyncio
async def test_requeue_active_recovers_claimed_jobs(queue):
    job_id = await queue.enqueue({"n": 1})
    await queue.dequeue()

    moved = await queue.requeue_active()

    assert moved == 1
    job = await queue.dequeue()
    assert job.job_id == job_id


@pytest.mark.asyncio
async def test_waiting_count(queue):
    await queue.enqueue({})
    await queue.enqueue({})
    assert await queue.waiting_count() == 2


@pytest.mark.asyncio
async def test_enqueue_wraps_redis_errors(queue, fake_redis):
    fake_redis.unavailable = True
    with pytest.raises(QueueError):
        await queue.enqueue({"n": 1})
