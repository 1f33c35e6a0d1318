"""Small fakes shared by the async test modules."""

from __future__ import annotations

import asyncio
from typing import Any, Mapping

from protopilot.errors import PersistenceError


class RecordingNotifier:
    def __init__(self) -> None:
        self.errors: list[str] = []

    def notify_error(self, message: str) -> None:
        self.errors.append(message)


class RecordingListener:
    def __init__(self) -> None:
        self.calls: list[tuple[str, bool]] = []

    def on_loading_change(self, loading: bool) -> None:
        self.calls.append(("loading", loading))

    def on_finish_change(self, finished: bool) -> None:
        self.calls.append(("finished", finished))


class GatedDocumentStore:
    """Document store whose writes block until released.

    ``fail_next`` makes the next write raise :class:`PersistenceError`.
    """

    def __init__(self, *, gated: bool = False) -> None:
        self.writes: list[tuple[str, str]] = []
        self.started = asyncio.Event()
        self._gate = asyncio.Event()
        if not gated:
            self._gate.set()
        self.fail_next = False

    def release(self) -> None:
        self._gate.set()

    def hold(self) -> None:
        self._gate.clear()
        self.started.clear()

    async def update(self, document_id: str, fields: Mapping[str, Any]) -> None:
        self.started.set()
        await self._gate.wait()
        if self.fail_next:
            self.fail_next = False
            raise PersistenceError(f"backend rejected {document_id}")
        self.writes.append((document_id, fields["code"]))
