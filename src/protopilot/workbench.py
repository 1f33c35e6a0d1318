"""Composition root wiring the catalog, generation and document subsystems."""

from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx

from .documents.session import DocumentRecord
from .documents.synchronizer import DocumentSynchronizer
from .events import EventBus
from .generators.catalog import CatalogSession
from .generators.controller import GenerationController
from .generators.descriptor import Category
from .generators.dispatcher import GenerationDispatcher
from .generators.selection import SelectionStore
from .services.collaborators import (
    AssetStore,
    CapabilityCheck,
    DocumentStore,
    EventBusNotifier,
    KeyValueStore,
    MarketplaceCatalog,
    Notifier,
    Permission,
    SiteConfigService,
)
from .services.kv_store import JsonFileStore
from .services.remote import HttpDocumentStore, HttpMarketplaceCatalog
from .services.settings import SecretVault, Settings, SettingsStore, redact_secret
from .services.site_config import GENAI_MARKETPLACE_URL, SHOW_SDV_PROTOPILOT_BUTTON, SITE_SCOPE
from .utils.logging import setup_logging

__all__ = ["Workbench"]

LOGGER = logging.getLogger(__name__)

_FALSE_STRINGS = {"0", "false", "no", "off", ""}


class Workbench:
    """One prototype code tab: generator picker, prompt and editable document.

    Generated code is written into the synchronizer's buffer; the heartbeat
    then persists it like any other edit.
    """

    def __init__(
        self,
        *,
        site_config: SiteConfigService,
        document_store: DocumentStore,
        capabilities: CapabilityCheck,
        settings: Settings | None = None,
        category: Category = Category.PYTHON,
        marketplace: MarketplaceCatalog | None = None,
        assets: AssetStore | None = None,
        key_value_store: KeyValueStore | None = None,
        vault: SecretVault | None = None,
        event_bus: EventBus | None = None,
        notifier: Notifier | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._site_config = site_config
        self._capabilities = capabilities
        self._owned_resources: list[Any] = []
        self.event_bus = event_bus or EventBus()
        selection_store = SelectionStore(key_value_store, vault=vault) if key_value_store is not None else None

        self.catalog = CatalogSession(
            category,
            site_config=site_config,
            marketplace=marketplace,
            assets=assets,
            capabilities=capabilities,
            selection_store=selection_store,
            event_bus=self.event_bus,
        )
        self.dispatcher = GenerationDispatcher(
            site_config,
            notifier or EventBusNotifier(self.event_bus),
            client=http_client,
            mock_delay=self._settings.mock_delay,
            timeout=self._settings.request_timeout,
            max_retries=self._settings.max_retries,
            retry_min_seconds=self._settings.retry_min_seconds,
            retry_max_seconds=self._settings.retry_max_seconds,
        )
        self.synchronizer = DocumentSynchronizer(
            document_store,
            heartbeat_interval=self._settings.heartbeat_interval,
            event_bus=self.event_bus,
        )
        self.generation = GenerationController(
            self.catalog,
            self.dispatcher,
            on_code_generated=self.synchronizer.edit,
            document_identity=lambda: self.synchronizer.document_id,
            event_bus=self.event_bus,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        site_config: SiteConfigService,
        capabilities: CapabilityCheck,
        category: Category = Category.PYTHON,
        assets: AssetStore | None = None,
        event_bus: EventBus | None = None,
    ) -> Workbench:
        """Build a workbench talking to the configured backend and marketplace."""

        state_dir = settings.resolved_state_dir()
        document_store = HttpDocumentStore(
            settings.backend_url,
            token=settings.api_token or None,
            timeout=settings.request_timeout,
            headers=settings.default_headers,
        )
        marketplace_url = site_config.get_config(GENAI_MARKETPLACE_URL, SITE_SCOPE, None, "")
        marketplace = (
            HttpMarketplaceCatalog(marketplace_url, token=settings.api_token or None, timeout=settings.request_timeout)
            if isinstance(marketplace_url, str) and marketplace_url
            else None
        )
        workbench = cls(
            site_config=site_config,
            document_store=document_store,
            capabilities=capabilities,
            settings=settings,
            category=category,
            marketplace=marketplace,
            assets=assets,
            key_value_store=JsonFileStore(state_dir / "state.json"),
            vault=SecretVault(key_path=state_dir / "settings.key"),
            event_bus=event_bus,
        )
        workbench._owned_resources.extend(resource for resource in (document_store, marketplace) if resource)
        return workbench

    @classmethod
    def bootstrap(
        cls,
        *,
        site_config: SiteConfigService,
        capabilities: CapabilityCheck,
        settings_store: SettingsStore | None = None,
        overrides: Mapping[str, Any] | None = None,
        configure_logging: bool = True,
        category: Category = Category.PYTHON,
        assets: AssetStore | None = None,
        event_bus: EventBus | None = None,
    ) -> Workbench:
        """Load persisted settings, configure logging from them and build a workbench."""

        store = settings_store or SettingsStore()
        settings = store.load(overrides=overrides)
        if configure_logging:
            setup_logging(settings)
        LOGGER.info(
            "Workbench for %s using backend %s (token %s)",
            category.value,
            settings.backend_url,
            redact_secret(settings.api_token) or "unset",
        )
        return cls.from_settings(
            settings,
            site_config=site_config,
            capabilities=capabilities,
            category=category,
            assets=assets,
            event_bus=event_bus,
        )

    @property
    def show_generate_button(self) -> bool:
        """Whether the host should offer the generation entry point at all."""

        if not self._capabilities.has_capability(Permission.READ_MODEL):
            return False
        value = self._site_config.get_config(SHOW_SDV_PROTOPILOT_BUTTON, SITE_SCOPE, None, True)
        if isinstance(value, str):
            return value.strip().lower() not in _FALSE_STRINGS
        return bool(value)

    def open_document(self, record: DocumentRecord | None) -> None:
        self.synchronizer.open_document(record)

    async def start(self) -> None:
        """Load the generator catalog and begin the autosave heartbeat."""

        if not self.catalog.loaded:
            await self.catalog.load()
        self.synchronizer.start()
        LOGGER.debug("Workbench started for %s", self.catalog.category.value)

    async def aclose(self) -> None:
        await self.synchronizer.close()
        await self.dispatcher.aclose()
        for resource in self._owned_resources:
            await resource.aclose()
        self._owned_resources.clear()
