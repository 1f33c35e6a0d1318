"""Tests for :mod:`protopilot.documents.synchronizer`."""

from __future__ import annotations

import asyncio

import pytest

from helpers import GatedDocumentStore
from protopilot.documents.content_mode import ContentMode
from protopilot.documents.session import DocumentRecord
from protopilot.documents.synchronizer import DocumentSynchronizer
from protopilot.events import DocumentClosed, DocumentOpened, DocumentSaved, DocumentSaveFailed, EventBus
from protopilot.services.collaborators import MemoryDocumentStore


def _record(document_id: str = "doc-1", code: str = "print(1)") -> DocumentRecord:
    return DocumentRecord(id=document_id, name=document_id, code=code)


# ---------------------------------------------------------------------------
# Document lifecycle
# ---------------------------------------------------------------------------


def test_open_document_resets_buffers_and_mode() -> None:
    sync = DocumentSynchronizer(MemoryDocumentStore())

    sync.open_document(_record(code="[]"))

    assert sync.current_text == "[]"
    assert sync.last_persisted_text == "[]"
    assert sync.content_mode is ContentMode.STRUCTURED_PROJECT


def test_mode_is_not_recomputed_on_edit() -> None:
    sync = DocumentSynchronizer(MemoryDocumentStore())
    sync.open_document(_record(code="print(1)"))

    sync.edit("[]")

    assert sync.content_mode is ContentMode.FLAT_CODE


def test_reopening_same_document_is_a_no_op() -> None:
    sync = DocumentSynchronizer(MemoryDocumentStore())
    sync.open_document(_record(code="a = 1"))
    sync.edit("a = 2")

    sync.open_document(_record(code="a = 1"))

    assert sync.current_text == "a = 2"


def test_switching_and_closing_publish_events() -> None:
    bus = EventBus()
    seen: list[object] = []
    for event_type in (DocumentOpened, DocumentClosed):
        bus.subscribe(event_type, seen.append)
    sync = DocumentSynchronizer(MemoryDocumentStore(), event_bus=bus)

    sync.open_document(_record("doc-1"))
    sync.open_document(_record("doc-2", code="[]"))
    sync.open_document(None)

    assert seen == [
        DocumentOpened(document_id="doc-1", content_mode="flat_code"),
        DocumentClosed(document_id="doc-1"),
        DocumentOpened(document_id="doc-2", content_mode="structured_project"),
        DocumentClosed(document_id="doc-2"),
    ]
    assert sync.session is None
    assert sync.current_text == "" and sync.last_persisted_text == ""


# ---------------------------------------------------------------------------
# Heartbeat and explicit save
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_heartbeat_skips_clean_and_empty_buffers() -> None:
    store = MemoryDocumentStore()
    sync = DocumentSynchronizer(store)
    sync.open_document(_record(code="x = 1"))

    await sync.on_heartbeat()
    sync.edit("")
    await sync.on_heartbeat()

    assert store.writes == []


@pytest.mark.asyncio
async def test_two_heartbeats_without_edit_persist_once() -> None:
    store = MemoryDocumentStore()
    sync = DocumentSynchronizer(store)
    record = _record(code="x = 1")
    sync.open_document(record)
    sync.edit("x = 2")

    await sync.on_heartbeat()
    await sync.on_heartbeat()

    assert store.writes == [("doc-1", {"code": "x = 2"})]
    assert sync.last_persisted_text == "x = 2"
    assert record.code == "x = 2"


@pytest.mark.asyncio
async def test_explicit_save_persists_even_when_clean() -> None:
    store = MemoryDocumentStore()
    sync = DocumentSynchronizer(store)
    sync.open_document(_record(code="x = 1"))

    await sync.save_now("x = 1")
    await sync.save_now("")

    assert store.writes == [("doc-1", {"code": "x = 1"})]


@pytest.mark.asyncio
async def test_save_now_sets_both_buffers() -> None:
    bus = EventBus()
    saved: list[DocumentSaved] = []
    bus.subscribe(DocumentSaved, saved.append)
    sync = DocumentSynchronizer(MemoryDocumentStore(), event_bus=bus)
    sync.open_document(_record(code="x = 1"))

    await sync.save_now("y = 2")

    assert sync.current_text == "y = 2"
    assert sync.last_persisted_text == "y = 2"
    assert saved == [DocumentSaved(document_id="doc-1", length=5)]


@pytest.mark.asyncio
async def test_failed_write_leaves_buffers_dirty_for_retry() -> None:
    bus = EventBus()
    failures: list[DocumentSaveFailed] = []
    bus.subscribe(DocumentSaveFailed, failures.append)
    store = GatedDocumentStore()
    store.fail_next = True
    sync = DocumentSynchronizer(store, event_bus=bus)
    record = _record(code="x = 1")
    sync.open_document(record)
    sync.edit("x = 2")

    await sync.on_heartbeat()

    assert sync.current_text == "x = 2"
    assert sync.last_persisted_text == "x = 1"
    assert record.code == "x = 1"
    assert [event.document_id for event in failures] == ["doc-1"]

    await sync.on_heartbeat()

    assert store.writes == [("doc-1", "x = 2")]
    assert sync.last_persisted_text == "x = 2"


@pytest.mark.asyncio
async def test_persist_without_document_is_ignored() -> None:
    store = MemoryDocumentStore()
    sync = DocumentSynchronizer(store)

    await sync.persist("orphan")
    await sync.on_heartbeat()
    sync.edit("ignored")

    assert store.writes == []


# ---------------------------------------------------------------------------
# Single-flight writer
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_heartbeat_during_save_is_coalesced_latest_wins() -> None:
    store = GatedDocumentStore(gated=True)
    sync = DocumentSynchronizer(store)
    sync.open_document(_record(code="v0"))

    save = asyncio.create_task(sync.save_now("v1"))
    await store.started.wait()
    assert sync.is_writing
    sync.edit("v2")
    first_beat = asyncio.create_task(sync.on_heartbeat())
    await asyncio.sleep(0)
    sync.edit("v3")
    second_beat = asyncio.create_task(sync.on_heartbeat())
    await asyncio.sleep(0)
    store.release()
    await asyncio.gather(save, first_beat, second_beat)

    assert store.writes == [("doc-1", "v1"), ("doc-1", "v3")]
    assert sync.current_text == "v3"
    assert sync.last_persisted_text == "v3"
    assert not sync.is_writing


@pytest.mark.asyncio
async def test_heartbeat_skips_text_already_being_written() -> None:
    store = GatedDocumentStore(gated=True)
    sync = DocumentSynchronizer(store)
    sync.open_document(_record(code="v0"))
    sync.edit("v1")

    first = asyncio.create_task(sync.on_heartbeat())
    await store.started.wait()
    await sync.on_heartbeat()
    store.release()
    await first

    assert store.writes == [("doc-1", "v1")]


@pytest.mark.asyncio
async def test_heartbeat_does_not_replace_queued_explicit_save() -> None:
    store = GatedDocumentStore(gated=True)
    sync = DocumentSynchronizer(store)
    sync.open_document(_record(code="v0"))
    sync.edit("A")

    first = asyncio.create_task(sync.on_heartbeat())
    await store.started.wait()
    sync.edit("B")
    save = asyncio.create_task(sync.save_now("X"))
    await asyncio.sleep(0)
    await sync.on_heartbeat()
    store.release()
    await asyncio.gather(first, save)

    assert store.writes == [("doc-1", "A"), ("doc-1", "X")]
    assert sync.current_text == "X"
    assert sync.last_persisted_text == "X"


@pytest.mark.asyncio
async def test_edit_during_write_is_not_overwritten() -> None:
    store = GatedDocumentStore(gated=True)
    sync = DocumentSynchronizer(store)
    sync.open_document(_record(code="v0"))

    save = asyncio.create_task(sync.save_now("v1"))
    await store.started.wait()
    sync.edit("v1 plus typing")
    store.release()
    await save

    assert sync.last_persisted_text == "v1"
    assert sync.current_text == "v1 plus typing"


@pytest.mark.asyncio
async def test_stale_write_is_dropped_after_document_switch() -> None:
    store = GatedDocumentStore(gated=True)
    sync = DocumentSynchronizer(store)
    first_record = _record("doc-1", code="a")
    sync.open_document(first_record)

    save = asyncio.create_task(sync.save_now("a2"))
    await store.started.wait()
    sync.edit("a3")
    queued = asyncio.create_task(sync.save_now("a3"))
    await asyncio.sleep(0)
    sync.open_document(_record("doc-2", code="b"))
    store.release()
    await asyncio.gather(save, queued)

    assert store.writes == [("doc-1", "a2")]
    assert sync.document_id == "doc-2"
    assert sync.current_text == "b"
    assert sync.last_persisted_text == "b"
    assert first_record.code == "a"


# ---------------------------------------------------------------------------
# Heartbeat task
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_heartbeat_task_persists_dirty_buffer() -> None:
    store = MemoryDocumentStore()
    sync = DocumentSynchronizer(store, heartbeat_interval=0.01)
    sync.open_document(_record(code="x = 1"))
    sync.edit("x = 2")

    sync.start()
    assert sync.heartbeat_running
    for _ in range(50):
        if store.writes:
            break
        await asyncio.sleep(0.01)
    await sync.close()

    assert store.writes == [("doc-1", {"code": "x = 2"})]
    assert not sync.heartbeat_running
    assert sync.session is None


@pytest.mark.asyncio
async def test_close_does_not_persist() -> None:
    store = MemoryDocumentStore()
    sync = DocumentSynchronizer(store, heartbeat_interval=10.0)
    sync.open_document(_record(code="x = 1"))
    sync.edit("unsaved")
    sync.start()

    await sync.close()

    assert store.writes == []
