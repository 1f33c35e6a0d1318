"""Generator descriptors: identity and invocation contract of one backend."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, Mapping

from ..errors import DescriptorFormatError

__all__ = [
    "Category",
    "HttpMethod",
    "GeneratorDescriptor",
    "PayloadBuilder",
    "DEFAULT_METHOD",
    "DEFAULT_REQUEST_FIELD",
    "DEFAULT_RESPONSE_FIELD",
    "default_payload_builder",
]

PayloadBuilder = Callable[[str], Dict[str, Any]]

DEFAULT_REQUEST_FIELD = "prompt"
DEFAULT_RESPONSE_FIELD = "data"


class Category(str, Enum):
    """Kinds of document a generator can produce."""

    PYTHON = "GenAI_Python"
    DASHBOARD = "GenAI_Dashboard"
    WIDGET = "GenAI_Widget"

    @classmethod
    def coerce(cls, value: Category | str) -> Category:
        if isinstance(value, Category):
            return value
        try:
            return cls(str(value))
        except ValueError as exc:
            raise DescriptorFormatError(f"Unknown generator category '{value}'") from exc


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"


DEFAULT_METHOD = HttpMethod.POST.value


def default_payload_builder(request_field: str = DEFAULT_REQUEST_FIELD) -> PayloadBuilder:
    """Return the builder producing ``{request_field: prompt}``."""

    def build(prompt: str) -> Dict[str, Any]:
        return {request_field: prompt}

    return build


@dataclass(slots=True)
class GeneratorDescriptor:
    """Identity and invocation contract for one generation backend.

    ``endpoint_url`` may be empty, meaning the category's fallback endpoint
    is used. ``http_method`` is kept as declared (a free-form string from
    marketplace or asset data); the dispatcher decides whether it is usable.
    """

    id: str
    name: str
    category: Category = Category.PYTHON
    description: str = ""
    endpoint_url: str = ""
    auth_token: str = ""
    http_method: str = DEFAULT_METHOD
    request_field: str = DEFAULT_REQUEST_FIELD
    response_field: str = DEFAULT_RESPONSE_FIELD
    samples: str = ""
    is_mock: bool = False
    payload_builder: PayloadBuilder | None = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.category = Category.coerce(self.category)
        if not self.request_field:
            self.request_field = DEFAULT_REQUEST_FIELD
        if not self.response_field:
            self.response_field = DEFAULT_RESPONSE_FIELD
        if not self.http_method:
            self.http_method = DEFAULT_METHOD

    @property
    def normalized_method(self) -> str:
        return self.http_method.strip().upper()

    def build_payload(self, prompt: str) -> Dict[str, Any]:
        builder = self.payload_builder or default_payload_builder(self.request_field)
        return builder(prompt)

    def with_payload_builder(self, builder: PayloadBuilder | None) -> GeneratorDescriptor:
        return replace(self, payload_builder=builder)

    # ------------------------------------------------------------------
    # Mapping codec (camelCase keys, as exchanged with marketplace and stores)
    # ------------------------------------------------------------------
    def to_mapping(self) -> dict[str, Any]:
        """Serialize every field except the payload builder."""

        return {
            "id": self.id,
            "type": self.category.value,
            "name": self.name,
            "description": self.description,
            "endpointUrl": self.endpoint_url,
            "apiKey": self.auth_token,
            "method": self.http_method,
            "requestField": self.request_field,
            "responseField": self.response_field,
            "samples": self.samples,
            "isMock": self.is_mock,
        }

    @classmethod
    def from_mapping(
        cls,
        payload: Mapping[str, Any],
        *,
        category: Category | str | None = None,
    ) -> GeneratorDescriptor:
        """Decode a descriptor, raising :class:`DescriptorFormatError` when invalid.

        ``id`` and ``name`` must be non-empty strings; every other field has
        a default. An explicit ``category`` wins over the payload's ``type``.
        """

        if not isinstance(payload, Mapping):
            raise DescriptorFormatError("Generator descriptor must be a mapping")
        descriptor_id = payload.get("id")
        name = payload.get("name")
        if not isinstance(descriptor_id, str) or not descriptor_id:
            raise DescriptorFormatError("Generator descriptor is missing an id", details={"payload_keys": sorted(payload)})
        if not isinstance(name, str) or not name:
            raise DescriptorFormatError(
                f"Generator descriptor '{descriptor_id}' is missing a name",
                details={"id": descriptor_id},
            )
        raw_category = category or payload.get("type") or Category.PYTHON
        return cls(
            id=descriptor_id,
            name=name,
            category=Category.coerce(raw_category),
            description=_as_str(payload.get("description")),
            endpoint_url=_as_str(payload.get("endpointUrl")),
            auth_token=_as_str(payload.get("apiKey")),
            http_method=_as_str(payload.get("method")) or DEFAULT_METHOD,
            request_field=_as_str(payload.get("requestField")) or DEFAULT_REQUEST_FIELD,
            response_field=_as_str(payload.get("responseField")) or DEFAULT_RESPONSE_FIELD,
            samples=_as_str(payload.get("samples")),
            is_mock=bool(payload.get("isMock", False)),
        )


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)
