"""Durable key/value stores backing state that outlives a document session."""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any, Mapping

from .settings import default_state_dir

__all__ = ["JsonFileStore", "MemoryStore"]

LOGGER = logging.getLogger(__name__)
_STORE_FILENAME = "state.json"
_STORE_VERSION = 1


class MemoryStore:
    """Process-local store; values are deep-copied in and out."""

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = copy.deepcopy(dict(initial or {}))

    def get(self, key: str) -> Any | None:
        return copy.deepcopy(self._values.get(key))

    def set(self, key: str, value: Any) -> None:
        self._values[key] = copy.deepcopy(value)

    def delete(self, key: str) -> None:
        self._values.pop(key, None)


class JsonFileStore:
    """Key/value store persisted as a single JSON document.

    Every ``set`` rewrites the file through a temporary sibling so a crash
    never leaves a truncated document behind. A missing or corrupt file reads
    as empty.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or (default_state_dir() / _STORE_FILENAME)

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str) -> Any | None:
        return self._read_values().get(key)

    def set(self, key: str, value: Any) -> None:
        values = self._read_values()
        values[key] = value
        self._write_values(values)

    def delete(self, key: str) -> None:
        values = self._read_values()
        if values.pop(key, None) is not None:
            self._write_values(values)

    def _write_values(self, values: Mapping[str, Any]) -> None:
        payload = {"version": _STORE_VERSION, "values": dict(values)}
        body = json.dumps(payload, indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)

    def _read_values(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("State store %s is not valid JSON: %s", self._path, exc)
            return {}
        values = data.get("values") if isinstance(data, Mapping) else None
        if not isinstance(values, Mapping):
            return {}
        return dict(values)
