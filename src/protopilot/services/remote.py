"""httpx-backed implementations of the remote document store and marketplace."""

from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx

from ..errors import DescriptorFormatError, PersistenceError
from ..generators.descriptor import Category, GeneratorDescriptor

__all__ = ["HttpDocumentStore", "HttpMarketplaceCatalog"]

LOGGER = logging.getLogger(__name__)


def _auth_headers(token: str | None, extra: Mapping[str, str] | None = None) -> dict[str, str]:
    headers: dict[str, str] = {"Accept": "application/json"}
    if extra:
        headers.update(extra)
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


class HttpDocumentStore:
    """Writes prototype documents through the backend REST API.

    ``update`` issues ``PATCH {base_url}/prototypes/{document_id}`` with the
    given fields as JSON and raises :class:`PersistenceError` on any
    transport or status failure.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = 30.0,
        headers: Mapping[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=_auth_headers(token, headers),
            timeout=timeout,
        )

    async def update(self, document_id: str, fields: Mapping[str, Any]) -> None:
        try:
            response = await self._client.patch(f"/prototypes/{document_id}", json=dict(fields))
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise PersistenceError(
                f"Failed to update prototype {document_id}: {exc}",
                details={"document_id": document_id},
            ) from exc
        LOGGER.debug("Updated prototype %s (%s)", document_id, ", ".join(sorted(fields)))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class HttpMarketplaceCatalog:
    """Lists generator add-ons published on the marketplace backend.

    ``GET {base_url}/package?type={category}`` returns either a list of
    add-on objects or ``{"results": [...]}``. Entries that do not decode
    into a descriptor are skipped with a warning.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=_auth_headers(token),
            timeout=timeout,
        )

    async def list_generators(self, category: Category) -> list[GeneratorDescriptor]:
        response = await self._client.get("/package", params={"type": category.value})
        response.raise_for_status()
        payload = response.json()
        entries = payload.get("results", []) if isinstance(payload, Mapping) else payload
        if not isinstance(entries, list):
            LOGGER.warning("Marketplace returned an unexpected payload of type %s", type(payload).__name__)
            return []
        descriptors: list[GeneratorDescriptor] = []
        for entry in entries:
            try:
                descriptors.append(GeneratorDescriptor.from_mapping(entry, category=category))
            except DescriptorFormatError as exc:
                LOGGER.warning("Skipping marketplace entry: %s", exc)
        return descriptors

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
