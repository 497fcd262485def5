"""Tests for the bounded fire-and-forget worker slot pool."""
import asyncio

import pytest

from telemetry_service.engine.worker_pool import WorkerSlotPool


@pytest.mark.asyncio
async def test_spawned_job_runs_and_releases_slot():
    pool = WorkerSlotPool(capacity=1)
    ran = []

    async def job():
        ran.append(True)

    assert pool.try_spawn(job) is True
    await pool.join()
    await asyncio.sleep(0)

    assert ran == [True]
    assert pool.in_flight == 0


@pytest.mark.asyncio
async def test_full_pool_refuses_without_starting_job():
    pool = WorkerSlotPool(capacity=1)
    gate = asyncio.Event()
    started = []

    async def blocker():
        await gate.wait()

    async def job():
        started.append(True)

    assert pool.try_spawn(blocker)
    assert pool.try_spawn(job) is False
    await asyncio.sleep(0)
    assert started == []

    gate.set()
    await pool.join()
    await asyncio.sleep(0)
    assert pool.try_spawn(job) is True
    await pool.join()
    assert started == [True]


@pytest.mark.asyncio
async def test_failing_job_is_absorbed_and_slot_comes_back():
    pool = WorkerSlotPool(capacity=1)

    async def boom():
        raise RuntimeError("store exploded")

    assert pool.try_spawn(boom)
    await pool.join()
    await asyncio.sleep(0)

    assert pool.in_flight == 0
    assert pool.try_spawn(boom)
    await pool.join()


@pytest.mark.asyncio
async def test_drain_waits_for_in_flight_and_rejects_new_jobs():
    pool = WorkerSlotPool(capacity=2)
    finished = []

    async def slow():
        await asyncio.sleep(0.05)
        finished.append(True)

    pool.try_spawn(slow)
    await pool.drain(timeout=1.0)

    assert finished == [True]
    assert pool.closed
    assert pool.try_spawn(slow) is False


@pytest.mark.asyncio
async def test_drain_cancels_jobs_past_timeout():
    pool = WorkerSlotPool(capacity=1)
    never = asyncio.Event()

    async def stuck():
        await never.wait()

    pool.try_spawn(stuck)
    await pool.drain(timeout=0.05)
    await asyncio.sleep(0)

    assert pool.in_flight == 0


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        WorkerSlotPool(capacity=0)
