"""Single-flight gate between the hosting surface and the dispatcher."""

from __future__ import annotations

import logging
from typing import Callable

from ..events import CodeGenerated, Event, EventBus, GenerationFinished, GenerationStarted
from .catalog import CatalogSession
from .dispatcher import GenerationDispatcher, GenerationOutcome, GenerationResult

__all__ = ["GenerationController"]

LOGGER = logging.getLogger(__name__)

CodeCallback = Callable[[str], None]
StatusCallback = Callable[[bool], None]


class GenerationController:
    """Owns the prompt and allows one outstanding generation at a time.

    Results are tagged with the active document identity when the request
    starts; a result arriving after the host switched documents is dropped
    instead of being written into the new document's buffer.
    """

    def __init__(
        self,
        catalog: CatalogSession,
        dispatcher: GenerationDispatcher,
        *,
        on_code_generated: CodeCallback | None = None,
        on_loading_change: StatusCallback | None = None,
        on_finish_change: StatusCallback | None = None,
        document_identity: Callable[[], str | None] | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._catalog = catalog
        self._dispatcher = dispatcher
        self._on_code_generated = on_code_generated
        self._on_loading_change = on_loading_change
        self._on_finish_change = on_finish_change
        self._document_identity = document_identity or (lambda: None)
        self._bus = event_bus
        self._prompt = ""
        self._in_flight = False
        self._loading = False

    @property
    def prompt(self) -> str:
        return self._prompt

    @prompt.setter
    def prompt(self, value: str) -> None:
        self._prompt = value or ""

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def can_generate(self) -> bool:
        if not self._prompt or self._in_flight:
            return False
        if not self._catalog.loaded or self._catalog.selected is None:
            return False
        return self._catalog.can_use_gen_ai() or self._catalog.has_user_generators

    async def generate(self) -> GenerationResult | None:
        """Dispatch the current prompt; returns None when the request was not allowed."""

        if self._in_flight:
            LOGGER.debug("Ignoring generation request while another is outstanding")
            return None
        if not self.can_generate:
            LOGGER.debug("Generation not available (prompt, selection or capability missing)")
            return None

        selected = self._catalog.selected
        if selected is None:
            return None
        document_id = self._document_identity()
        self._in_flight = True
        try:
            self._emit_code("", document_id)
            self._publish(GenerationStarted(descriptor_id=selected.id, document_id=document_id))
            result = await self._dispatcher.generate(selected, self._prompt, listener=self)
        finally:
            self._in_flight = False

        self._publish(GenerationFinished(descriptor_id=selected.id, outcome=result.kind.value, document_id=document_id))
        if self._document_identity() != document_id:
            LOGGER.info(
                "Discarding generation result for %s: active document changed to %s",
                document_id,
                self._document_identity(),
            )
            return result
        if result.kind in (GenerationOutcome.OK, GenerationOutcome.MALFORMED_RESPONSE):
            self._emit_code(result.display_text, document_id)
        return result

    # ------------------------------------------------------------------
    # Listener protocol used by the dispatcher
    # ------------------------------------------------------------------
    def on_loading_change(self, loading: bool) -> None:
        self._loading = loading
        if self._on_loading_change is not None:
            self._on_loading_change(loading)

    def on_finish_change(self, finished: bool) -> None:
        if self._on_finish_change is not None:
            self._on_finish_change(finished)

    def _emit_code(self, text: str, document_id: str | None) -> None:
        if self._on_code_generated is not None:
            self._on_code_generated(text)
        self._publish(CodeGenerated(text=text, document_id=document_id))

    def _publish(self, event: Event) -> None:
        if self._bus is not None:
            self._bus.publish(event)
