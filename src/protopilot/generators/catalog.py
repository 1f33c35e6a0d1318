"""Generator catalog: built-in, marketplace, and user-defined sources merged.

Built-ins always win. A marketplace entry sharing a built-in's id replaces the
built-in's visible fields (endpoint, token, method...) but inherits its
payload builder when it has none. Marketplace entries that duplicate a
built-in by id or name, or that are re-published copies of the built-in
product, are hidden from the marketplace list.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, replace
from typing import Any, Iterable, Mapping, Sequence

from ..events import EventBus, GeneratorSelected
from ..services.collaborators import (
    AssetRecord,
    AssetStore,
    CapabilityCheck,
    MarketplaceCatalog,
    Permission,
    SiteConfigService,
)
from ..services.site_config import GENAI_MARKETPLACE_URL, GENAI_SDV_APP_ENDPOINT, SITE_SCOPE
from .descriptor import (
    DEFAULT_METHOD,
    DEFAULT_REQUEST_FIELD,
    DEFAULT_RESPONSE_FIELD,
    Category,
    GeneratorDescriptor,
    default_payload_builder,
)
from .selection import SelectionStore

__all__ = [
    "SDV_COPILOT_ID",
    "SDV_COPILOT_NAME",
    "RESERVED_NAME_FRAGMENTS",
    "ASSET_TYPES",
    "CatalogResolution",
    "CatalogSession",
    "builtin_descriptors",
    "descriptors_from_assets",
    "is_fallback_product",
    "resolve",
]

LOGGER = logging.getLogger(__name__)

SDV_COPILOT_ID = "sdv-copilot-builtin"
SDV_COPILOT_NAME = "SDV Copilot"
RESERVED_NAME_FRAGMENTS: tuple[str, ...] = ("sdv copilot", "sdv-copilot")
ASSET_TYPES: Mapping[Category, str] = {
    Category.PYTHON: "GENAI-PYTHON",
    Category.DASHBOARD: "GENAI-DASHBOARD",
    Category.WIDGET: "GENAI-WIDGET",
}
_DEFAULT_ASSET_NAME = "My python genAI"


def builtin_descriptors(category: Category, fallback_endpoint: str = "") -> list[GeneratorDescriptor]:
    """Return the generators shipped for ``category``.

    Only Python apps have a built-in (SDV Copilot); its endpoint comes from
    the site configuration and may be empty.
    """

    if category is not Category.PYTHON:
        return []
    return [
        GeneratorDescriptor(
            id=SDV_COPILOT_ID,
            name=SDV_COPILOT_NAME,
            category=Category.PYTHON,
            description="Support develop basic SDV Python App",
            endpoint_url=fallback_endpoint or "",
            auth_token="Empty",
            http_method=DEFAULT_METHOD,
            request_field=DEFAULT_REQUEST_FIELD,
            response_field=DEFAULT_RESPONSE_FIELD,
            payload_builder=default_payload_builder(),
        )
    ]


def is_fallback_product(descriptor: GeneratorDescriptor) -> bool:
    """True for the built-in product that always talks to the fallback endpoint."""

    return descriptor.name == SDV_COPILOT_NAME or descriptor.id == SDV_COPILOT_ID


def descriptors_from_assets(assets: Iterable[AssetRecord], category: Category) -> list[GeneratorDescriptor]:
    """Convert the user's GenAI assets of ``category`` into descriptors.

    A malformed ``data`` blob does not abort the conversion: that entry's
    protocol fields fall back to POST / ``prompt`` / ``data``.
    """

    asset_type = ASSET_TYPES[category]
    descriptors: list[GeneratorDescriptor] = []
    for index, asset in enumerate(assets):
        if asset.type != asset_type:
            continue
        config = _parse_asset_data(asset)
        name = asset.name or _DEFAULT_ASSET_NAME
        descriptors.append(
            GeneratorDescriptor(
                id=f"{name}-{_asset_digest(asset, index)}",
                name=name,
                category=category,
                endpoint_url=_text(config.get("url")),
                auth_token=_text(config.get("accessToken")),
                http_method=_text(config.get("method")) or DEFAULT_METHOD,
                request_field=_text(config.get("requestField")) or DEFAULT_REQUEST_FIELD,
                response_field=_text(config.get("responseField")) or DEFAULT_RESPONSE_FIELD,
            )
        )
    return descriptors


def _parse_asset_data(asset: AssetRecord) -> Mapping[str, Any]:
    try:
        data = json.loads(asset.data or "")
    except (TypeError, ValueError) as exc:
        LOGGER.warning("Asset %r has malformed generator data; using defaults: %s", asset.name, exc)
        return {}
    if not isinstance(data, Mapping):
        LOGGER.warning("Asset %r generator data is not an object; using defaults", asset.name)
        return {}
    return data


def _asset_digest(asset: AssetRecord, index: int) -> str:
    seed = asset.id or f"{index}:{asset.name}:{asset.data}"
    return hashlib.sha1(seed.encode("utf-8")).hexdigest()[:6]


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


@dataclass(frozen=True, slots=True)
class CatalogResolution:
    """Merged view of the three generator sources."""

    builtins: tuple[GeneratorDescriptor, ...] = ()
    visible_marketplace: tuple[GeneratorDescriptor, ...] = ()
    user_defined: tuple[GeneratorDescriptor, ...] = ()

    @property
    def selectable(self) -> tuple[GeneratorDescriptor, ...]:
        return self.builtins + self.visible_marketplace + self.user_defined

    def find(self, descriptor_id: str) -> GeneratorDescriptor | None:
        for descriptor in self.selectable:
            if descriptor.id == descriptor_id:
                return descriptor
        return None


def resolve(
    builtins: Sequence[GeneratorDescriptor],
    marketplace: Sequence[GeneratorDescriptor],
    user_defined: Sequence[GeneratorDescriptor] = (),
) -> CatalogResolution:
    """Merge the three sources into one de-duplicated catalog."""

    by_id = {entry.id: entry for entry in marketplace}
    merged: list[GeneratorDescriptor] = []
    for builtin in builtins:
        match = by_id.get(builtin.id)
        if match is None:
            base, builder = builtin, builtin.payload_builder
        else:
            base, builder = match, match.payload_builder or builtin.payload_builder
        merged.append(replace(base, payload_builder=builder or default_payload_builder(base.request_field)))

    builtin_ids = {entry.id for entry in builtins}
    builtin_names = {entry.name.lower() for entry in (*builtins, *merged)}
    visible = tuple(
        entry
        for entry in marketplace
        if entry.id not in builtin_ids
        and entry.name.lower() not in builtin_names
        and not any(fragment in entry.name.lower() for fragment in RESERVED_NAME_FRAGMENTS)
    )
    return CatalogResolution(builtins=tuple(merged), visible_marketplace=visible, user_defined=tuple(user_defined))


class CatalogSession:
    """Loads the catalog for one category and owns the active selection."""

    def __init__(
        self,
        category: Category,
        *,
        site_config: SiteConfigService,
        marketplace: MarketplaceCatalog | None = None,
        assets: AssetStore | None = None,
        capabilities: CapabilityCheck | None = None,
        selection_store: SelectionStore | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._category = category
        self._site_config = site_config
        self._marketplace = marketplace
        self._assets = assets
        self._capabilities = capabilities
        self._selection_store = selection_store
        self._bus = event_bus
        self._resolution = CatalogResolution()
        self._selected: GeneratorDescriptor | None = None
        self._loaded = False
        self._has_user_generators = False

    @property
    def category(self) -> Category:
        return self._category

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def resolution(self) -> CatalogResolution:
        return self._resolution

    @property
    def selected(self) -> GeneratorDescriptor | None:
        return self._selected

    @property
    def has_user_generators(self) -> bool:
        return self._has_user_generators

    def can_use_gen_ai(self) -> bool:
        if self._capabilities is None:
            return False
        return bool(self._capabilities.has_capability(Permission.USE_GEN_AI))

    async def load(self) -> CatalogResolution:
        """Fetch all sources and rebuild the merged catalog.

        The remembered selection is restored only on the first load; later
        reloads keep whatever is currently selected.
        """

        fallback_endpoint = self._config_text(GENAI_SDV_APP_ENDPOINT)
        builtins = builtin_descriptors(self._category, fallback_endpoint)
        marketplace = await self._fetch_marketplace()
        user_defined = await self._fetch_user_generators()
        resolution = resolve(builtins, marketplace, user_defined)
        if not self.can_use_gen_ai():
            resolution = replace(resolution, visible_marketplace=())
        self._resolution = resolution

        first_load = not self._loaded
        self._loaded = True
        if first_load:
            self._restore_selection()
        LOGGER.debug(
            "Catalog for %s loaded: %d built-in, %d marketplace, %d user",
            self._category.value,
            len(resolution.builtins),
            len(resolution.visible_marketplace),
            len(resolution.user_defined),
        )
        return resolution

    def select(self, choice: GeneratorDescriptor | str) -> GeneratorDescriptor:
        """Make ``choice`` active and remember it; ids are looked up in the catalog."""

        if isinstance(choice, str):
            descriptor = self._resolution.find(choice)
            if descriptor is None:
                raise KeyError(f"Unknown generator '{choice}'")
        else:
            descriptor = choice
        self._selected = descriptor
        if self._selection_store is not None:
            try:
                self._selection_store.save(descriptor)
            except OSError as exc:
                LOGGER.warning("Failed to remember generator %s: %s", descriptor.id, exc)
        if self._bus is not None:
            self._bus.publish(
                GeneratorSelected(category=self._category.value, descriptor_id=descriptor.id, name=descriptor.name)
            )
        return descriptor

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _restore_selection(self) -> None:
        remembered = self._selection_store.load(self._category) if self._selection_store is not None else None
        if remembered is not None:
            self._selected = remembered
            LOGGER.debug("Restored remembered generator %s", remembered.id)
        elif self._resolution.builtins:
            self._selected = self._resolution.builtins[0]
        else:
            self._selected = None

    def _config_text(self, key: str) -> str:
        try:
            value = self._site_config.get_config(key, SITE_SCOPE, None, "")
        except Exception as exc:
            LOGGER.warning("Unable to read site config %s: %s", key, exc)
            return ""
        return value if isinstance(value, str) else ""

    async def _fetch_marketplace(self) -> list[GeneratorDescriptor]:
        if self._marketplace is None:
            return []
        if not self._config_text(GENAI_MARKETPLACE_URL):
            LOGGER.debug("Marketplace URL not configured; skipping marketplace generators")
            return []
        try:
            return list(await self._marketplace.list_generators(self._category))
        except Exception as exc:
            LOGGER.warning("Failed to load marketplace generators for %s: %s", self._category.value, exc)
            return []

    async def _fetch_user_generators(self) -> list[GeneratorDescriptor]:
        if self._assets is None:
            self._has_user_generators = False
            return []
        try:
            assets = list(await self._assets.list_assets())
        except Exception as exc:
            LOGGER.warning("Failed to load user generator assets: %s", exc)
            assets = []
        descriptors = descriptors_from_assets(assets, self._category)
        self._has_user_generators = bool(descriptors)
        return descriptors
