#!/usr/bin/env python3
"""
Tests for the batch store: lifecycle, ordering and rotation atomicity.
"""

import asyncio
from datetime import datetime

import pytest

from conftest import BASE_TIME, FakeClock, make_capture
from recap.batch_store import BatchState, BatchStore
from recap.errors import NoOpenBatch, NothingToFinalize


def test_append_without_open_batch_fails():
    store = BatchStore()
    with pytest.raises(NoOpenBatch):
        asyncio.run(store.append(make_capture()))


def test_finalize_before_any_batch_fails():
    store = BatchStore()
    with pytest.raises(NothingToFinalize):
        store.finalize()


def test_appends_keep_capture_order():
    store = BatchStore(clock=FakeClock())
    batch = store.start_new()

    async def run():
        for i in range(5):
            await store.append(make_capture(i))

    asyncio.run(run())
    assert [c.captured_at.minute for c in batch.captures] == [30, 31, 32, 33, 34]
    assert len(batch) == 5


def test_finalize_is_irreversible():
    store = BatchStore(clock=FakeClock())
    batch = store.start_new()
    asyncio.run(store.append(make_capture(0)))

    finished = store.finalize()
    assert finished is batch
    assert finished.state is BatchState.FINALIZED
    assert store.current is None

    with pytest.raises(NoOpenBatch):
        asyncio.run(store.append(make_capture(1)))
    with pytest.raises(NoOpenBatch):
        batch._add(make_capture(2))
    assert len(finished) == 1


def test_rotate_returns_finished_batch_and_opens_next():
    store = BatchStore(clock=FakeClock())
    assert store.rotate() is None
    first = store.current
    assert first is not None and first.is_open

    asyncio.run(store.append(make_capture(0)))
    finished = store.rotate()
    assert finished is first
    assert finished.state is BatchState.FINALIZED
    assert store.current is not first
    assert store.current.is_open
    assert len(store.current) == 0


def test_batch_ids_are_sortable_and_unique_within_a_second():
    same_second = datetime(2025, 3, 14, 9, 30, 0)
    store = BatchStore(clock=lambda: same_second)
    ids = [store.start_new().id for _ in range(3)]
    assert ids == ["2025-03-14_09-30-00", "2025-03-14_09-30-00-2", "2025-03-14_09-30-00-3"]
    assert len(set(ids)) == 3


def test_capture_filename_uses_timestamp_and_display():
    capture = make_capture(0, display_index=1, when=BASE_TIME)
    assert capture.filename == "2025-03-14_09-30-00_display1.png"


def test_capture_rejects_negative_display_index():
    with pytest.raises(ValueError):
        make_capture(0, display_index=-1)


def test_append_in_flight_during_rotation_stays_in_old_batch():
    release = None
    persisted = []

    async def slow_persist(batch, capture):
        persisted.append(batch.id)
        await release.wait()

    async def run():
        nonlocal release
        release = asyncio.Event()
        store = BatchStore(persist=slow_persist, clock=FakeClock())
        old = store.start_new()

        pending = asyncio.create_task(store.append(make_capture(0)))
        await asyncio.sleep(0)  # append runs up to the persistence await

        finished = store.rotate()
        release.set()
        landed = await pending

        await store.append(make_capture(1))
        return old, finished, landed, store.current

    old, finished, landed, new = asyncio.run(run())
    assert finished is old
    assert landed is old
    assert len(old) == 1
    assert [c.captured_at.minute for c in new.captures] == [31]
    assert persisted == [old.id, new.id]


def test_start_new_replaces_pointer():
    store = BatchStore(clock=FakeClock())
    first = store.start_new()
    second = store.start_new()
    assert store.current is second
    assert first.is_open  # caller discipline: not finalized by start_new
    assert store.ensure_open() is second


def test_captures_compare_by_identity():
    first = make_capture(0)
    twin = make_capture(0)
    assert first == first
    assert first != twin
    assert len({first, twin}) == 2
