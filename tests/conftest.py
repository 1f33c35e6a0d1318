"""Shared pytest fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from protopilot.events import EventBus
from protopilot.services.settings import SecretVault
from protopilot.services.site_config import SiteConfig


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def site_config() -> SiteConfig:
    return SiteConfig()


@pytest.fixture
def vault(tmp_path: Path) -> SecretVault:
    return SecretVault(key_path=tmp_path / "settings.key")
