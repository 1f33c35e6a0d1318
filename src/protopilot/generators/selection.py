"""Durable memory of the last generator chosen for each document category."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from ..errors import DescriptorFormatError
from ..services.collaborators import KeyValueStore
from ..services.settings import SecretVault
from .descriptor import Category, GeneratorDescriptor

__all__ = ["SelectionStore", "LAST_USED_GENERATOR_KEY"]

LOGGER = logging.getLogger(__name__)

LAST_USED_GENERATOR_KEY = "last-used-generator"
_CIPHERTEXT_FIELD = "apiKeyCiphertext"


class SelectionStore:
    """Keeps ``{category: descriptor}`` under one key of a durable store.

    The remembered descriptor is stored whole, so it can be restored even
    when the catalog it came from no longer lists it. Auth tokens are
    encrypted when a :class:`SecretVault` is supplied.
    """

    def __init__(self, store: KeyValueStore, *, vault: SecretVault | None = None) -> None:
        self._store = store
        self._vault = vault

    def load(self, category: Category) -> GeneratorDescriptor | None:
        """Return the remembered descriptor, or None when absent or structurally invalid."""

        raw = self._entries().get(category.value)
        if raw is None:
            return None
        if not isinstance(raw, Mapping):
            LOGGER.warning("Ignoring remembered generator for %s: not an object", category.value)
            return None
        payload = dict(raw)
        ciphertext = payload.pop(_CIPHERTEXT_FIELD, None)
        if ciphertext and self._vault is not None:
            try:
                payload["apiKey"] = self._vault.decrypt(ciphertext)
            except ValueError as exc:
                LOGGER.warning("Unable to decrypt remembered generator token: %s", exc)
                payload["apiKey"] = ""
        try:
            return GeneratorDescriptor.from_mapping(payload, category=category)
        except DescriptorFormatError as exc:
            LOGGER.warning("Ignoring remembered generator for %s: %s", category.value, exc)
            return None

    def save(self, descriptor: GeneratorDescriptor) -> None:
        payload = descriptor.to_mapping()
        token = payload.get("apiKey") or ""
        if token and self._vault is not None:
            payload[_CIPHERTEXT_FIELD] = self._vault.encrypt(token)
            payload["apiKey"] = ""
        entries = self._entries()
        entries[descriptor.category.value] = payload
        self._store.set(LAST_USED_GENERATOR_KEY, entries)
        LOGGER.debug("Remembered generator %s for %s", descriptor.id, descriptor.category.value)

    def clear(self, category: Category) -> None:
        entries = self._entries()
        if entries.pop(category.value, None) is not None:
            self._store.set(LAST_USED_GENERATOR_KEY, entries)

    def _entries(self) -> dict[str, Any]:
        value = self._store.get(LAST_USED_GENERATOR_KEY)
        if isinstance(value, Mapping):
            return dict(value)
        if value is not None:
            LOGGER.warning("Discarding malformed %s entry of type %s", LAST_USED_GENERATOR_KEY, type(value).__name__)
        return {}
