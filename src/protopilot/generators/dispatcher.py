"""Turn one prompt into a generator request and normalize the answer.

The dispatcher never raises to its caller: every outcome, including transport
failures and configuration problems, comes back as a tagged
:class:`GenerationResult`.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Protocol
from urllib.parse import quote, urlsplit

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..errors import (
    EndpointNotConfiguredError,
    GenerationTransportError,
    MalformedResponseError,
    ProtoPilotError,
    UnsupportedMethodError,
)
from ..services.collaborators import Notifier, SiteConfigService
from ..services.site_config import GENAI_SDV_APP_ENDPOINT, SITE_SCOPE
from .catalog import is_fallback_product
from .descriptor import GeneratorDescriptor, HttpMethod
from .samples import DEFAULT_GENERATED_CODE

__all__ = [
    "GENERIC_FAILURE_MESSAGE",
    "MALFORMED_PREFIX",
    "NOT_CONFIGURED_MESSAGE",
    "GenerationDispatcher",
    "GenerationListener",
    "GenerationOutcome",
    "GenerationResult",
    "format_malformed_diagnostic",
]

LOGGER = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "Error generating AI content"
NOT_CONFIGURED_MESSAGE = f"{GENAI_SDV_APP_ENDPOINT} is not configured. Please configure it in Site Management."
MALFORMED_PREFIX = "Error: Receive incorrect format data\r\n"
_JSON_HEADERS = {"Content-Type": "application/json"}
# Characters encodeURIComponent leaves untouched besides alphanumerics and "-_.~".
_URI_COMPONENT_SAFE = "!*'()"


class GenerationOutcome(str, Enum):
    OK = "ok"
    MALFORMED_RESPONSE = "malformed_response"
    NOT_CONFIGURED = "not_configured"
    TRANSPORT = "transport"
    UNSUPPORTED_METHOD = "unsupported_method"


@dataclass(frozen=True, slots=True)
class GenerationResult:
    """Tagged result of one dispatch.

    ``text`` is only set for :attr:`GenerationOutcome.OK`. Every other kind
    carries ``error_text``; for a malformed response that is the inline
    diagnostic embedding the raw body.
    """

    kind: GenerationOutcome
    text: str = ""
    error_text: str = ""

    @classmethod
    def success(cls, text: str) -> GenerationResult:
        return cls(kind=GenerationOutcome.OK, text=text)

    @classmethod
    def failure(cls, kind: GenerationOutcome, error_text: str) -> GenerationResult:
        return cls(kind=kind, error_text=error_text)

    @property
    def ok(self) -> bool:
        return self.kind is GenerationOutcome.OK

    @property
    def display_text(self) -> str:
        return self.text if self.ok else self.error_text


class GenerationListener(Protocol):
    """Status callbacks of the hosting surface."""

    def on_loading_change(self, loading: bool) -> None: ...

    def on_finish_change(self, finished: bool) -> None: ...


def format_malformed_diagnostic(body: Any) -> str:
    """Build the inline diagnostic shown when a response lacks its result field."""

    return MALFORMED_PREFIX + json.dumps(body, indent=4, ensure_ascii=False, default=str)


def _as_text(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)


class GenerationDispatcher:
    """Executes generation requests against the selected backend.

    Args:
        site_config: Source of the fallback endpoint URL.
        notifier: Receives user-facing error messages (toasts).
        client: Optional shared :class:`httpx.AsyncClient`; one is created
            (and owned) when omitted.
        mock_delay: Seconds a mock generator waits before answering.
        max_retries: Total attempts for transient transport errors.
    """

    def __init__(
        self,
        site_config: SiteConfigService,
        notifier: Notifier | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        mock_delay: float = 1.0,
        timeout: float = 30.0,
        max_retries: int = 1,
        retry_min_seconds: float = 0.5,
        retry_max_seconds: float = 6.0,
    ) -> None:
        self._site_config = site_config
        self._notifier = notifier
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._mock_delay = max(0.0, mock_delay)
        self._max_retries = max_retries
        self._retry_min_seconds = retry_min_seconds
        self._retry_max_seconds = retry_max_seconds

    async def generate(
        self,
        selected: GeneratorDescriptor,
        prompt: str,
        listener: GenerationListener | None = None,
    ) -> GenerationResult:
        """Run one generation for ``prompt`` with ``selected``.

        ``listener`` sees ``on_loading_change(True)`` first, then
        ``on_loading_change(False)`` and ``on_finish_change(True)`` exactly
        once, whatever the outcome.
        """

        if listener is not None:
            listener.on_loading_change(True)
        try:
            result = await self._dispatch(selected, prompt)
        finally:
            if listener is not None:
                listener.on_loading_change(False)
                listener.on_finish_change(True)
        LOGGER.debug("Generation with %s finished: %s", selected.id, result.kind.value)
        return result

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------
    async def _dispatch(self, selected: GeneratorDescriptor, prompt: str) -> GenerationResult:
        if selected.is_mock:
            await asyncio.sleep(self._mock_delay)
            return GenerationResult.success(DEFAULT_GENERATED_CODE)
        try:
            if selected.endpoint_url and not is_fallback_product(selected):
                return await self._call_custom(selected, prompt)
            return await self._call_fallback(selected, prompt)
        except ProtoPilotError as exc:
            return self._contain(exc)

    async def _call_custom(self, selected: GeneratorDescriptor, prompt: str) -> GenerationResult:
        method = selected.normalized_method
        headers = {"Authorization": selected.auth_token or "", **_JSON_HEADERS}
        if method == HttpMethod.GET.value:
            url = self._query_url(selected.endpoint_url, selected.request_field, prompt)
            response = await self._send("GET", url, headers=headers)
        elif method == HttpMethod.POST.value:
            body = {"systemMessage": selected.samples or "", **selected.build_payload(prompt)}
            response = await self._send("POST", selected.endpoint_url, headers=headers, json=body)
        else:
            raise UnsupportedMethodError(
                f"Generator '{selected.name}' declares unsupported HTTP method '{selected.http_method}'",
                details={"id": selected.id, "method": selected.http_method},
            )

        # A falsy result field (0, False, "", [], {}) is treated as missing.
        body = self._decode(response)
        value = body.get(selected.response_field) if isinstance(body, Mapping) else None
        if not value:
            raise MalformedResponseError(
                format_malformed_diagnostic(body),
                details={"id": selected.id, "response_field": selected.response_field},
            )
        return GenerationResult.success(_as_text(value))

    async def _call_fallback(self, selected: GeneratorDescriptor, prompt: str) -> GenerationResult:
        try:
            endpoint = self._site_config.get_config(GENAI_SDV_APP_ENDPOINT, SITE_SCOPE, None, "")
        except Exception as exc:
            LOGGER.warning("Unable to read %s: %s", GENAI_SDV_APP_ENDPOINT, exc)
            endpoint = None
        if not endpoint or not isinstance(endpoint, str):
            raise EndpointNotConfiguredError(NOT_CONFIGURED_MESSAGE, details={"key": GENAI_SDV_APP_ENDPOINT})
        body = {"systemMessage": selected.samples or "", "message": prompt}
        response = await self._send("POST", endpoint, headers=dict(_JSON_HEADERS), json=body)
        try:
            payload = response.json()
        except ValueError:
            return GenerationResult.success(response.text)
        if isinstance(payload, Mapping):
            for key in ("content", "data"):
                value = payload.get(key)
                if value:
                    return GenerationResult.success(_as_text(value))
        return GenerationResult.success(json.dumps(payload, ensure_ascii=False))

    # ------------------------------------------------------------------
    # Transport helpers
    # ------------------------------------------------------------------
    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            LOGGER.debug("Generation request %s %s", method, urlsplit(url).netloc)
            async for attempt in self._retrying():
                with attempt:
                    response = await self._client.request(method, url, **kwargs)
                    response.raise_for_status()
                    return response
        except httpx.HTTPError as exc:
            raise GenerationTransportError(
                self._server_message(exc) or GENERIC_FAILURE_MESSAGE,
                details={"url": url, "error": str(exc)},
            ) from exc
        except (httpx.InvalidURL, ValueError) as exc:
            raise GenerationTransportError(GENERIC_FAILURE_MESSAGE, details={"url": url, "error": str(exc)}) from exc
        raise GenerationTransportError(GENERIC_FAILURE_MESSAGE, details={"url": url})

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._max_retries)),
            wait=wait_exponential(multiplier=self._retry_min_seconds, max=self._retry_max_seconds),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.ConnectError)),
        )

    @staticmethod
    def _query_url(endpoint: str, field: str, prompt: str) -> str:
        try:
            separator = "&" if urlsplit(endpoint).query else "?"
        except ValueError as exc:
            raise GenerationTransportError(GENERIC_FAILURE_MESSAGE, details={"url": endpoint, "error": str(exc)}) from exc
        return f"{endpoint}{separator}{field}={quote(prompt, safe=_URI_COMPONENT_SAFE)}"

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return response.text

    @staticmethod
    def _server_message(exc: httpx.HTTPError) -> str | None:
        if not isinstance(exc, httpx.HTTPStatusError):
            return None
        try:
            payload = exc.response.json()
        except ValueError:
            return None
        if isinstance(payload, Mapping):
            message = payload.get("message")
            if isinstance(message, str) and message:
                return message
        return None

    def _contain(self, exc: ProtoPilotError) -> GenerationResult:
        if isinstance(exc, MalformedResponseError):
            LOGGER.warning("Generator response lacked its result field: %s", exc.details)
            return GenerationResult.failure(GenerationOutcome.MALFORMED_RESPONSE, exc.message)
        if isinstance(exc, UnsupportedMethodError):
            LOGGER.warning("%s", exc.message)
            return GenerationResult.failure(GenerationOutcome.UNSUPPORTED_METHOD, exc.message)
        if isinstance(exc, EndpointNotConfiguredError):
            kind = GenerationOutcome.NOT_CONFIGURED
            LOGGER.error("%s", exc.message)
        else:
            kind = GenerationOutcome.TRANSPORT
            LOGGER.error("Error generating AI content: %s", exc.details.get("error", exc.message))
        if exc.user_visible and self._notifier is not None:
            self._notifier.notify_error(exc.message)
        return GenerationResult.failure(kind, exc.message)
