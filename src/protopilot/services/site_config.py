"""Site configuration: predefined GenAI keys and value resolution.

Values resolve in order: explicitly stored value, predefined default, caller
fallback. Storing an empty string is how an administrator deliberately
un-configures a key (for example, to disable the fallback endpoint).
"""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping

__all__ = [
    "ConfigEntry",
    "SiteConfig",
    "PREDEFINED_GENAI_CONFIGS",
    "GENAI_CONFIG_KEYS",
    "GENAI_SDV_APP_ENDPOINT",
    "SHOW_SDV_PROTOPILOT_BUTTON",
    "GENAI_MARKETPLACE_URL",
    "SITE_SCOPE",
]

LOGGER = logging.getLogger(__name__)

SITE_SCOPE = "site"
GENAI_SDV_APP_ENDPOINT = "GENAI_SDV_APP_ENDPOINT"
SHOW_SDV_PROTOPILOT_BUTTON = "SHOW_SDV_PROTOPILOT_BUTTON"
GENAI_MARKETPLACE_URL = "GENAI_MARKETPLACE_URL"


@dataclass(frozen=True, slots=True)
class ConfigEntry:
    """A predefined configuration key with its default value."""

    key: str
    value: Any
    value_type: str
    description: str = ""
    scope: str = SITE_SCOPE
    category: str = "genai"
    secret: bool = False


PREDEFINED_GENAI_CONFIGS: tuple[ConfigEntry, ...] = (
    ConfigEntry(
        key=GENAI_SDV_APP_ENDPOINT,
        value="https://workflow.digital.auto/webhook/c0ba14bc-c6a3-4319-ad0a-ad89b1460b36",
        value_type="string",
        description="GenAI endpoint URL for SDV App generation, used by the SDV Copilot built-in generator.",
    ),
    ConfigEntry(
        key=SHOW_SDV_PROTOPILOT_BUTTON,
        value=True,
        value_type="boolean",
        description="Show or hide the 'SDV ProtoPilot' GenAI button on the prototype code tab.",
    ),
    ConfigEntry(
        key=GENAI_MARKETPLACE_URL,
        value="https://store-be.digitalauto.tech",
        value_type="string",
        description="Marketplace URL for GenAI generators. Leave empty to hide marketplace generators.",
    ),
)

GENAI_CONFIG_KEYS: frozenset[str] = frozenset(entry.key for entry in PREDEFINED_GENAI_CONFIGS)


class SiteConfig:
    """In-process site configuration service keyed by ``(scope, key)``."""

    def __init__(
        self,
        values: Mapping[str, Any] | None = None,
        *,
        predefined: Iterable[ConfigEntry] = PREDEFINED_GENAI_CONFIGS,
    ) -> None:
        self._predefined = {entry.key: entry for entry in predefined}
        self._values: dict[tuple[str, str], Any] = {}
        for key, value in (values or {}).items():
            self.set(key, value)

    def get_config(
        self,
        key: str,
        scope: str = SITE_SCOPE,
        context: Any | None = None,
        fallback: Any | None = None,
    ) -> Any:
        """Return the configured value for ``key``.

        ``context`` is accepted for interface compatibility with scoped
        configuration services; site-scoped values ignore it.
        """

        del context
        stored = self._values.get((scope, key))
        if stored is not None:
            return copy.deepcopy(stored)
        entry = self._predefined.get(key)
        if entry is not None and entry.scope == scope:
            return copy.deepcopy(entry.value)
        return fallback

    def set(self, key: str, value: Any, *, scope: str = SITE_SCOPE) -> None:
        self._values[(scope, key)] = copy.deepcopy(value)

    def delete(self, key: str, *, scope: str = SITE_SCOPE) -> bool:
        return self._values.pop((scope, key), None) is not None

    def has(self, key: str, *, scope: str = SITE_SCOPE) -> bool:
        return (scope, key) in self._values

    def keys(self, *, scope: str = SITE_SCOPE) -> list[str]:
        return sorted(key for stored_scope, key in self._values if stored_scope == scope)

    def ensure_defaults(self, *, category: str = "genai") -> list[str]:
        """Store defaults for predefined keys of ``category`` that are missing.

        Returns the keys that were created.
        """

        created: list[str] = []
        for entry in self._predefined.values():
            if entry.category != category or self.has(entry.key, scope=entry.scope):
                continue
            self.set(entry.key, entry.value, scope=entry.scope)
            created.append(entry.key)
        if created:
            LOGGER.info("Seeded %d default %s config(s): %s", len(created), category, ", ".join(created))
        return created

    def restore_defaults(self, *, category: str = "genai") -> list[str]:
        """Drop every predefined key of ``category`` and re-seed its default."""

        for entry in self._predefined.values():
            if entry.category == category:
                self.delete(entry.key, scope=entry.scope)
        return self.ensure_defaults(category=category)

    # ------------------------------------------------------------------
    # File persistence
    # ------------------------------------------------------------------
    @classmethod
    def load(cls, path: Path) -> SiteConfig:
        """Load site-scoped values from a JSON object file; missing/corrupt reads as empty."""

        if not path.exists():
            return cls()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            LOGGER.warning("Site config %s is not valid JSON: %s", path, exc)
            return cls()
        if not isinstance(data, Mapping):
            LOGGER.warning("Site config %s does not contain an object", path)
            return cls()
        return cls(data)

    def save(self, path: Path) -> Path:
        values = {key: self._values[(SITE_SCOPE, key)] for key in self.keys()}
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(values, indent=2, sort_keys=True), encoding="utf-8")
        tmp_path.replace(path)
        return path
