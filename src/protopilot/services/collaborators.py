"""Interfaces of the collaborators this package consumes, with in-memory versions.

The hosting application supplies real implementations (REST clients, the
permission service, the toast layer); the in-memory versions here back local
use and the test-suite.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Protocol, Sequence, runtime_checkable

from ..events import EventBus, NotificationRaised
from ..generators.descriptor import Category, GeneratorDescriptor

__all__ = [
    "Permission",
    "AssetRecord",
    "SiteConfigService",
    "CapabilityCheck",
    "AssetStore",
    "MarketplaceCatalog",
    "KeyValueStore",
    "DocumentStore",
    "Notifier",
    "StaticCapabilities",
    "MemoryAssetStore",
    "StaticMarketplaceCatalog",
    "MemoryDocumentStore",
    "LoggingNotifier",
    "EventBusNotifier",
]

LOGGER = logging.getLogger(__name__)


class Permission:
    """Permission identifiers passed to :class:`CapabilityCheck`."""

    USE_GEN_AI = "useGenAI"
    READ_MODEL = "readModel"


@dataclass(frozen=True, slots=True)
class AssetRecord:
    """A user-owned asset; GenAI assets carry a JSON-encoded ``data`` blob."""

    name: str
    type: str
    data: str = ""
    id: str = ""


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class SiteConfigService(Protocol):
    def get_config(
        self,
        key: str,
        scope: str = "site",
        context: Any | None = None,
        fallback: Any | None = None,
    ) -> Any: ...


@runtime_checkable
class CapabilityCheck(Protocol):
    def has_capability(self, permission_id: str) -> bool: ...


@runtime_checkable
class AssetStore(Protocol):
    async def list_assets(self) -> Sequence[AssetRecord]: ...


@runtime_checkable
class MarketplaceCatalog(Protocol):
    async def list_generators(self, category: Category) -> Sequence[GeneratorDescriptor]: ...


@runtime_checkable
class KeyValueStore(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...


@runtime_checkable
class DocumentStore(Protocol):
    async def update(self, document_id: str, fields: Mapping[str, Any]) -> None: ...


@runtime_checkable
class Notifier(Protocol):
    def notify_error(self, message: str) -> None: ...


# ---------------------------------------------------------------------------
# In-memory implementations
# ---------------------------------------------------------------------------


class StaticCapabilities:
    """Capability check answering from a fixed set of granted permissions."""

    def __init__(self, granted: Iterable[str] = ()) -> None:
        self._granted = set(granted)

    def has_capability(self, permission_id: str) -> bool:
        return permission_id in self._granted

    def grant(self, permission_id: str) -> None:
        self._granted.add(permission_id)

    def revoke(self, permission_id: str) -> None:
        self._granted.discard(permission_id)


class MemoryAssetStore:
    def __init__(self, assets: Iterable[AssetRecord] = ()) -> None:
        self._assets = list(assets)

    async def list_assets(self) -> list[AssetRecord]:
        return list(self._assets)

    def add(self, asset: AssetRecord) -> None:
        self._assets.append(asset)


class StaticMarketplaceCatalog:
    """Marketplace returning preconfigured descriptors per category."""

    def __init__(self, entries: Iterable[GeneratorDescriptor] = ()) -> None:
        self._entries = list(entries)

    async def list_generators(self, category: Category) -> list[GeneratorDescriptor]:
        return [entry for entry in self._entries if entry.category == category]


class MemoryDocumentStore:
    """Document store keeping the latest fields written per document."""

    def __init__(self, documents: Mapping[str, Mapping[str, Any]] | None = None) -> None:
        self._documents: dict[str, dict[str, Any]] = {
            key: dict(value) for key, value in (documents or {}).items()
        }
        self._lock = asyncio.Lock()
        self.writes: list[tuple[str, dict[str, Any]]] = []

    async def update(self, document_id: str, fields: Mapping[str, Any]) -> None:
        async with self._lock:
            record = self._documents.setdefault(document_id, {})
            record.update(copy.deepcopy(dict(fields)))
            self.writes.append((document_id, dict(fields)))

    def get(self, document_id: str) -> dict[str, Any] | None:
        record = self._documents.get(document_id)
        return dict(record) if record is not None else None


class LoggingNotifier:
    """Notifier that only logs; used when no host toast layer is attached."""

    def notify_error(self, message: str) -> None:
        LOGGER.error("Notification: %s", message)


class EventBusNotifier:
    """Notifier publishing :class:`NotificationRaised` events."""

    def __init__(self, bus: EventBus) -> None:
        self._bus = bus

    def notify_error(self, message: str) -> None:
        self._bus.publish(NotificationRaised(level="error", message=message))
