"""Tests for the generator catalog resolver and session."""

from __future__ import annotations

import json
from typing import Any

import pytest

from protopilot.events import EventBus, GeneratorSelected
from protopilot.generators.catalog import (
    SDV_COPILOT_ID,
    SDV_COPILOT_NAME,
    CatalogSession,
    builtin_descriptors,
    descriptors_from_assets,
    is_fallback_product,
    resolve,
)
from protopilot.generators.descriptor import Category, GeneratorDescriptor
from protopilot.generators.selection import SelectionStore
from protopilot.services.collaborators import (
    AssetRecord,
    MemoryAssetStore,
    Permission,
    StaticCapabilities,
    StaticMarketplaceCatalog,
)
from protopilot.services.kv_store import MemoryStore
from protopilot.services.site_config import GENAI_MARKETPLACE_URL, GENAI_SDV_APP_ENDPOINT, SiteConfig


def _builder(prompt: str) -> dict[str, Any]:
    return {"built": prompt}


def _asset(name: str, data: Any, *, asset_type: str = "GENAI-PYTHON", asset_id: str = "") -> AssetRecord:
    blob = data if isinstance(data, str) else json.dumps(data)
    return AssetRecord(name=name, type=asset_type, data=blob, id=asset_id)


# ---------------------------------------------------------------------------
# resolve()
# ---------------------------------------------------------------------------


def test_merged_builtin_keeps_its_builder_when_marketplace_has_none() -> None:
    builtin = GeneratorDescriptor(id="x", name="Builtin X", payload_builder=_builder)
    market = GeneratorDescriptor(id="x", name="Market X", endpoint_url="https://market.example/x")

    resolution = resolve([builtin], [market])

    merged = resolution.find("x")
    assert merged is not None
    assert merged.payload_builder is _builder
    assert merged.endpoint_url == "https://market.example/x"
    assert merged.name == "Market X"


def test_marketplace_builder_wins_when_supplied() -> None:
    def market_builder(prompt: str) -> dict[str, Any]:
        return {"market": prompt}

    builtin = GeneratorDescriptor(id="x", name="X", payload_builder=_builder)
    market = GeneratorDescriptor(id="x", name="X", payload_builder=market_builder)

    merged = resolve([builtin], [market]).builtins[0]

    assert merged.payload_builder is market_builder


def test_builtin_without_builder_gets_default() -> None:
    resolution = resolve([GeneratorDescriptor(id="x", name="X", request_field="q")], [])

    assert resolution.builtins[0].build_payload("hi") == {"q": "hi"}


def test_reserved_product_names_are_hidden_from_marketplace() -> None:
    builtins = builtin_descriptors(Category.PYTHON)
    market = [
        GeneratorDescriptor(id="m1", name="SDV-Copilot Pro"),
        GeneratorDescriptor(id="m2", name="my sdv copilot clone"),
        GeneratorDescriptor(id="m3", name="Dashboard Wizard"),
    ]

    resolution = resolve(builtins, market)

    assert [entry.id for entry in resolution.visible_marketplace] == ["m3"]


def test_marketplace_duplicates_by_id_or_name_are_hidden() -> None:
    builtins = [GeneratorDescriptor(id="b1", name="Alpha")]
    market = [
        GeneratorDescriptor(id="b1", name="Other"),
        GeneratorDescriptor(id="m2", name="ALPHA"),
        GeneratorDescriptor(id="m3", name="Beta"),
    ]

    resolution = resolve(builtins, market)

    assert [entry.id for entry in resolution.visible_marketplace] == ["m3"]
    assert [entry.id for entry in resolution.selectable] == ["b1", "m3"]


def test_selectable_order_is_builtin_marketplace_user() -> None:
    resolution = resolve(
        [GeneratorDescriptor(id="b", name="B")],
        [GeneratorDescriptor(id="m", name="M")],
        [GeneratorDescriptor(id="u", name="U")],
    )

    assert [entry.id for entry in resolution.selectable] == ["b", "m", "u"]
    assert resolution.find("missing") is None


# ---------------------------------------------------------------------------
# Built-ins and assets
# ---------------------------------------------------------------------------


def test_builtin_descriptors_only_exist_for_python() -> None:
    python = builtin_descriptors(Category.PYTHON, "https://fallback.example")

    assert [entry.id for entry in python] == [SDV_COPILOT_ID]
    assert python[0].name == SDV_COPILOT_NAME
    assert python[0].endpoint_url == "https://fallback.example"
    assert is_fallback_product(python[0])
    assert builtin_descriptors(Category.DASHBOARD) == []
    assert builtin_descriptors(Category.WIDGET) == []


def test_assets_become_descriptors_with_their_protocol() -> None:
    assets = [
        _asset(
            "Weather",
            {"url": "https://w.example", "accessToken": "t", "method": "GET", "requestField": "q", "responseField": "out"},
            asset_id="a1",
        ),
        _asset("Dashboard", {"url": "https://d.example"}, asset_type="GENAI-DASHBOARD"),
    ]

    descriptors = descriptors_from_assets(assets, Category.PYTHON)

    assert len(descriptors) == 1
    weather = descriptors[0]
    assert weather.name == "Weather"
    assert weather.id.startswith("Weather-") and len(weather.id) == len("Weather-") + 6
    assert (weather.endpoint_url, weather.auth_token, weather.http_method) == ("https://w.example", "t", "GET")
    assert (weather.request_field, weather.response_field) == ("q", "out")


def test_asset_ids_are_stable_across_loads() -> None:
    asset = _asset("Weather", {"url": "https://w.example"}, asset_id="a1")

    first = descriptors_from_assets([asset], Category.PYTHON)[0]
    second = descriptors_from_assets([asset], Category.PYTHON)[0]

    assert first.id == second.id


def test_malformed_asset_data_falls_back_to_defaults() -> None:
    assets = [
        _asset("Broken", "{not json"),
        _asset("Listy", "[1, 2]"),
        _asset("", {"url": "https://ok.example"}),
    ]

    descriptors = descriptors_from_assets(assets, Category.PYTHON)

    assert len(descriptors) == 3
    broken = descriptors[0]
    assert (broken.http_method, broken.request_field, broken.response_field) == ("POST", "prompt", "data")
    assert broken.endpoint_url == "" and broken.auth_token == ""
    assert descriptors[1].http_method == "POST"
    assert descriptors[2].name == "My python genAI"


# ---------------------------------------------------------------------------
# CatalogSession
# ---------------------------------------------------------------------------


class FailingMarketplace:
    def __init__(self) -> None:
        self.calls = 0

    async def list_generators(self, category: Category) -> list[GeneratorDescriptor]:
        self.calls += 1
        raise RuntimeError("marketplace down")


def _session(
    *,
    site_config: SiteConfig | None = None,
    marketplace: Any = None,
    assets: MemoryAssetStore | None = None,
    granted: tuple[str, ...] = (Permission.USE_GEN_AI,),
    store: MemoryStore | None = None,
    bus: EventBus | None = None,
) -> CatalogSession:
    return CatalogSession(
        Category.PYTHON,
        site_config=site_config or SiteConfig(),
        marketplace=marketplace,
        assets=assets,
        capabilities=StaticCapabilities(granted),
        selection_store=SelectionStore(store if store is not None else MemoryStore()),
        event_bus=bus,
    )


@pytest.mark.asyncio
async def test_load_selects_first_builtin_and_uses_configured_endpoint() -> None:
    config = SiteConfig({GENAI_SDV_APP_ENDPOINT: "https://configured.example/hook"})
    session = _session(site_config=config)

    resolution = await session.load()

    assert session.loaded
    assert session.selected is not None
    assert session.selected.id == SDV_COPILOT_ID
    assert resolution.builtins[0].endpoint_url == "https://configured.example/hook"


@pytest.mark.asyncio
async def test_selection_survives_reload() -> None:
    store = MemoryStore()
    market = StaticMarketplaceCatalog([GeneratorDescriptor(id="m1", name="Market One")])
    first = _session(marketplace=market, store=store)
    await first.load()
    first.select("m1")

    second = _session(marketplace=market, store=store)
    await second.load()

    assert second.selected is not None
    assert second.selected.id == "m1"
    assert second.selected.name == "Market One"


@pytest.mark.asyncio
async def test_stale_remembered_selection_is_restored_as_is() -> None:
    store = MemoryStore()
    first = _session(marketplace=StaticMarketplaceCatalog([GeneratorDescriptor(id="gone", name="Gone")]), store=store)
    await first.load()
    first.select("gone")

    second = _session(marketplace=StaticMarketplaceCatalog([]), store=store)
    await second.load()

    assert second.selected is not None
    assert second.selected.id == "gone"
    assert second.resolution.find("gone") is None


@pytest.mark.asyncio
async def test_invalid_remembered_selection_falls_back_to_builtin() -> None:
    store = MemoryStore({"last-used-generator": {"GenAI_Python": {"name": "no id"}}})
    session = _session(store=store)

    await session.load()

    assert session.selected is not None
    assert session.selected.id == SDV_COPILOT_ID


@pytest.mark.asyncio
async def test_reload_keeps_current_selection() -> None:
    market = StaticMarketplaceCatalog([GeneratorDescriptor(id="m1", name="Market One")])
    session = _session(marketplace=market)
    await session.load()
    session.select("m1")

    await session.load()

    assert session.selected is not None and session.selected.id == "m1"


@pytest.mark.asyncio
async def test_select_publishes_event_and_rejects_unknown_ids() -> None:
    bus = EventBus()
    seen: list[GeneratorSelected] = []
    bus.subscribe(GeneratorSelected, seen.append)
    session = _session(bus=bus)
    await session.load()

    session.select(SDV_COPILOT_ID)
    with pytest.raises(KeyError):
        session.select("does-not-exist")

    assert [(event.category, event.descriptor_id) for event in seen] == [("GenAI_Python", SDV_COPILOT_ID)]


@pytest.mark.asyncio
async def test_failing_marketplace_is_treated_as_empty() -> None:
    marketplace = FailingMarketplace()
    session = _session(marketplace=marketplace)

    resolution = await session.load()

    assert marketplace.calls == 1
    assert resolution.visible_marketplace == ()
    assert session.loaded


@pytest.mark.asyncio
async def test_marketplace_skipped_when_url_unconfigured() -> None:
    marketplace = FailingMarketplace()
    session = _session(site_config=SiteConfig({GENAI_MARKETPLACE_URL: ""}), marketplace=marketplace)

    await session.load()

    assert marketplace.calls == 0


@pytest.mark.asyncio
async def test_marketplace_hidden_without_gen_ai_capability() -> None:
    market = StaticMarketplaceCatalog([GeneratorDescriptor(id="m1", name="Market One")])
    session = _session(marketplace=market, granted=())

    resolution = await session.load()

    assert resolution.visible_marketplace == ()
    assert not session.can_use_gen_ai()


@pytest.mark.asyncio
async def test_user_generators_reported() -> None:
    assets = MemoryAssetStore([_asset("Mine", {"url": "https://mine.example"})])
    session = _session(assets=assets)

    resolution = await session.load()

    assert session.has_user_generators
    assert [entry.name for entry in resolution.user_defined] == ["Mine"]
