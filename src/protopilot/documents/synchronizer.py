"""Keeps the open document's buffer synchronized with the remote store.

Two triggers funnel into :meth:`DocumentSynchronizer.persist`: a fixed
interval heartbeat that only writes dirty text, and explicit saves that
always write. Writes go through one single-flight writer per synchronizer;
a request arriving while a write is in flight takes the pending slot
(latest wins) and is written once the current write completes.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass

from ..events import DocumentClosed, DocumentOpened, DocumentSaved, DocumentSaveFailed, Event, EventBus
from ..services.collaborators import DocumentStore
from .content_mode import ContentMode
from .session import DocumentRecord, DocumentSession

__all__ = ["DocumentSynchronizer", "DEFAULT_HEARTBEAT_INTERVAL"]

LOGGER = logging.getLogger(__name__)

DEFAULT_HEARTBEAT_INTERVAL = 3.0


@dataclass(frozen=True, slots=True)
class _WriteRequest:
    document_id: str
    text: str
    revision: int


class DocumentSynchronizer:
    """Owns the active :class:`DocumentSession` and its persistence lifecycle."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
        event_bus: EventBus | None = None,
    ) -> None:
        self._store = store
        self._interval = heartbeat_interval
        self._bus = event_bus
        self._session: DocumentSession | None = None
        self._record: DocumentRecord | None = None
        self._pending: _WriteRequest | None = None
        self._in_flight: _WriteRequest | None = None
        self._writer: asyncio.Task[None] | None = None
        self._heartbeat: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def session(self) -> DocumentSession | None:
        return self._session

    @property
    def record(self) -> DocumentRecord | None:
        return self._record

    @property
    def document_id(self) -> str | None:
        return self._session.document_id if self._session is not None else None

    @property
    def current_text(self) -> str:
        return self._session.current_text if self._session is not None else ""

    @property
    def last_persisted_text(self) -> str:
        return self._session.last_persisted_text if self._session is not None else ""

    @property
    def content_mode(self) -> ContentMode:
        return self._session.content_mode if self._session is not None else ContentMode.FLAT_CODE

    @property
    def is_writing(self) -> bool:
        return self._in_flight is not None

    @property
    def heartbeat_running(self) -> bool:
        return self._heartbeat is not None and not self._heartbeat.done()

    # ------------------------------------------------------------------
    # Document lifecycle
    # ------------------------------------------------------------------
    def open_document(self, record: DocumentRecord | None) -> None:
        """Make ``record`` active; reopening the active document is a no-op."""

        new_id = record.id if record is not None else None
        if new_id == self.document_id:
            return
        previous = self.document_id
        self._pending = None
        if previous is not None:
            self._publish(DocumentClosed(document_id=previous))
        if record is None:
            self._session = None
            self._record = None
            LOGGER.debug("Closed document %s", previous)
            return
        self._record = record
        self._session = DocumentSession.for_record(record)
        LOGGER.debug("Opened document %s as %s", record.id, self._session.content_mode.value)
        self._publish(DocumentOpened(document_id=record.id, content_mode=self._session.content_mode.value))

    def edit(self, text: str) -> None:
        if self._session is None:
            LOGGER.debug("Ignoring edit with no open document")
            return
        self._session.update_text(text)

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------
    async def on_heartbeat(self) -> None:
        session = self._session
        if session is None:
            return
        text = session.current_text
        if not text or text == session.last_persisted_text:
            return
        for request in (self._in_flight, self._pending):
            if request is not None and request.document_id == session.document_id and request.text == text:
                return
        await self.persist(text)

    async def save_now(self, text: str) -> None:
        """Persist ``text`` even when it matches the last persisted copy.

        The buffer takes ``text`` first so a heartbeat firing before the write
        lands sees it as already queued instead of replacing it.
        """

        if not text:
            return
        if self._session is not None and self._session.current_text != text:
            self._session.update_text(text)
        await self.persist(text)

    async def persist(self, text: str) -> None:
        """Queue ``text`` for the active document and wait for the writer to drain."""

        session = self._session
        if session is None:
            LOGGER.debug("Ignoring persist with no open document")
            return
        self._pending = _WriteRequest(session.document_id, text, session.revision)
        if self._writer is None or self._writer.done():
            self._writer = asyncio.create_task(self._drain())
        await asyncio.shield(self._writer)

    # ------------------------------------------------------------------
    # Heartbeat task
    # ------------------------------------------------------------------
    def start(self) -> None:
        if self.heartbeat_running:
            return
        self._heartbeat = asyncio.create_task(self._run_heartbeat())

    async def stop(self) -> None:
        task, self._heartbeat = self._heartbeat, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def close(self) -> None:
        """Stop the heartbeat and drop the session without writing anything."""

        await self.stop()
        self.open_document(None)

    async def _run_heartbeat(self) -> None:
        try:
            while True:
                await asyncio.sleep(self._interval)
                await self.on_heartbeat()
        except asyncio.CancelledError:
            return

    # ------------------------------------------------------------------
    # Writer
    # ------------------------------------------------------------------
    async def _drain(self) -> None:
        while self._pending is not None:
            request, self._pending = self._pending, None
            self._in_flight = request
            try:
                await self._write(request)
            finally:
                self._in_flight = None

    async def _write(self, request: _WriteRequest) -> None:
        if request.document_id != self.document_id:
            LOGGER.debug("Dropping stale write for %s", request.document_id)
            return
        try:
            await self._store.update(request.document_id, {"code": request.text})
        except Exception as exc:
            LOGGER.warning("Failed to save document %s: %s", request.document_id, exc)
            self._publish(DocumentSaveFailed(document_id=request.document_id, error=str(exc)))
            return

        session = self._session
        if session is None or session.document_id != request.document_id:
            LOGGER.debug("Document %s closed while saving; result discarded", request.document_id)
            return
        session.last_persisted_text = request.text
        if session.revision == request.revision:
            session.current_text = request.text
        if self._record is not None and self._record.id == request.document_id:
            self._record.code = request.text
        LOGGER.debug("Saved document %s (%d chars)", request.document_id, len(request.text))
        self._publish(DocumentSaved(document_id=request.document_id, length=len(request.text)))

    def _publish(self, event: Event) -> None:
        if self._bus is not None:
            self._bus.publish(event)
