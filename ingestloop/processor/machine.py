"""Iteration state machine: pure transitions over IterationState."""

from __future__ import annotations

import json
from typing import Optional

from ingestloop.errors import SanitizeError, SizeLimitError
from ingestloop.models import Emission, EmittedItem
from ingestloop.processor.states import (
    ContinueEvent,
    Event,
    FetchEvent,
    FetchFailed,
    FetchOutcome,
    FetchRequest,
    FetchSucceeded,
    IterationPhase,
    IterationState,
    Transition,
)
from ingestloop.sanitizer import Sanitizer
from ingestloop.utils.logging import get_logger

logger = get_logger("processor.machine")


class IterationMachine:
    """
    Resumable iteration over a fetched collection.

    The machine never performs I/O. ``step`` decides what a driving event
    means for a state; when a fetch is needed it moves the state to
    FETCHING and returns a FetchRequest, and the caller feeds the
    provider's outcome back through ``apply_fetch``.
    """

    DEFAULT_MAX_ITEM_BYTES = 1024 * 1024

    def __init__(
        self,
        sanitizer: Optional[Sanitizer] = None,
        max_item_bytes: int = DEFAULT_MAX_ITEM_BYTES,
    ) -> None:
        """
        Initialize the machine.

        Args:
            sanitizer: Per-item projector, generic profile if omitted
            max_item_bytes: Largest serialized item allowed in an emission
        """
        self.sanitizer = sanitizer or Sanitizer()
        self.max_item_bytes = max_item_bytes

    def step(self, state: IterationState, event: Event) -> Transition:
        """
        Feed one driving event to the machine.

        Args:
            state: Current state
            event: Decoded event

        Returns:
            Transition with the new state, zero or one emissions, and a
            fetch request when the provider must be called
        """
        if state.is_complete:
            return Transition(state=state)

        if isinstance(event, FetchEvent):
            return self._on_fetch_event(state, event)

        if isinstance(event, ContinueEvent) and state.items:
            return self._on_continue(state)

        # Waiting for a driving event
        return Transition(state=state)

    def apply_fetch(self, state: IterationState, outcome: FetchOutcome) -> Transition:
        """
        Apply the provider's outcome to a FETCHING state.

        Args:
            state: State returned alongside the fetch request
            outcome: FetchSucceeded or FetchFailed

        Returns:
            Transition with the first emission (item, empty marker or error)
        """
        if state.phase is not IterationPhase.FETCHING:
            logger.warning(
                "fetch_outcome_ignored",
                phase=state.phase.name,
                source_key=state.source_key,
            )
            return Transition(state=state)

        if isinstance(outcome, FetchFailed):
            logger.warning(
                "fetch_failed",
                source_key=state.source_key,
                error=outcome.error,
                error_type=outcome.error_type,
            )
            new_state = state.advance_to(IterationPhase.COMPLETE, error=outcome.error)
            emission = Emission(
                item=None, index=0, total=0, has_more=False, error=outcome.error
            )
            return Transition(state=new_state, emissions=(emission,))

        items = tuple(outcome.items)
        total = len(items)

        if total == 0:
            logger.info("fetch_empty", source_key=state.source_key)
            new_state = state.advance_to(IterationPhase.COMPLETE)
            emission = Emission(item=None, index=0, total=0, has_more=False)
            return Transition(state=new_state, emissions=(emission,))

        logger.info("fetch_succeeded", source_key=state.source_key, total=total)
        loaded = state.advance_to(
            IterationPhase.EMITTING, items=items, total_items=total, current_index=0
        )
        return self._emit_current(loaded)

    def _on_fetch_event(self, state: IterationState, event: FetchEvent) -> Transition:
        if state.items or state.phase is not IterationPhase.UNINITIALIZED:
            return Transition(state=state)

        # The first key seen wins and never changes afterwards
        source_key = state.source_key or event.source_key
        if not source_key:
            logger.debug("fetch_event_without_source")
            return Transition(state=state)

        new_state = state.advance_to(IterationPhase.FETCHING, source_key=source_key)
        logger.info("fetch_requested", source_key=source_key)
        return Transition(
            state=new_state,
            fetch_request=FetchRequest(source_key=source_key, options=dict(event.options)),
        )

    def _on_continue(self, state: IterationState) -> Transition:
        if state.current_index >= state.total_items:
            logger.info("iteration_complete", total=state.total_items)
            return Transition(state=state.advance_to(IterationPhase.COMPLETE))
        return self._emit_current(state)

    def _emit_current(self, state: IterationState) -> Transition:
        index = state.current_index
        total = state.total_items
        has_more = index < total - 1

        item, error = self._project(state.items[index], index)
        emission = Emission(
            item=item, index=index, total=total, has_more=has_more, error=error
        )

        next_index = index + 1
        if next_index >= total:
            new_state = state.advance_to(IterationPhase.COMPLETE, current_index=next_index)
            logger.info("iteration_complete", total=total)
        else:
            new_state = state.advance_to(IterationPhase.EMITTING, current_index=next_index)

        logger.debug("item_emitted", index=index, total=total, has_more=has_more)
        return Transition(state=new_state, emissions=(emission,))

    def _project(self, raw, index: int) -> tuple[Optional[EmittedItem], Optional[str]]:
        """Sanitize one item, falling back or replacing it with an error."""
        try:
            item = self.sanitizer.sanitize(raw)
        except SanitizeError as e:
            logger.warning("sanitize_failed", index=index, error=str(e))
            item = self.sanitizer.fallback(raw)

        try:
            self._check_size(item)
        except SizeLimitError as e:
            logger.warning("item_too_large", index=index, size=e.size, limit=e.limit)
            return None, str(e)

        return item, None

    def _check_size(self, item: EmittedItem) -> None:
        size = len(json.dumps(item.to_dict(), default=str).encode("utf-8"))
        if size > self.max_item_bytes:
            raise SizeLimitError(size, self.max_item_bytes)
