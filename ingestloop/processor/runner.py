"""Async driver that performs the I/O around the iteration machine."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional, Union

from ingestloop.config import IngestConfig
from ingestloop.errors import ExecutionBusyError, IngestError
from ingestloop.models import CredentialContext, Emission
from ingestloop.pipeline import PreflightGuards
from ingestloop.processor.machine import IterationMachine
from ingestloop.processor.states import (
    FetchFailed,
    FetchOutcome,
    FetchRequest,
    FetchSucceeded,
    IterationState,
    parse_event,
)
from ingestloop.processor.store import FileStateStore, MemoryStateStore
from ingestloop.providers import Provider
from ingestloop.sanitizer import Sanitizer
from ingestloop.utils.logging import get_logger, log_fetch_timing, set_execution_context

logger = get_logger("processor.runner")

StateStore = Union[MemoryStateStore, FileStateStore]


def new_execution_id() -> str:
    """Generate a short execution identifier."""
    return f"exec-{uuid.uuid4().hex[:12]}"


@dataclass
class DriverStats:
    """Counters for one driver instance."""

    events: int = 0
    fetches: int = 0
    emissions: int = 0
    errors: int = 0
    ignored: int = 0

    def to_dict(self) -> dict:
        return {
            "events": self.events,
            "fetches": self.fetches,
            "emissions": self.emissions,
            "errors": self.errors,
            "ignored": self.ignored,
        }


class IterationDriver:
    """
    Delivers raw events for one provider's executions.

    The driver decodes each event, feeds it to the machine, performs the
    provider fetch the machine asks for, and persists the resulting state.
    Only one event per execution may be in flight: an event arriving while
    that execution is fetching is rejected with ExecutionBusyError.
    """

    def __init__(
        self,
        provider: Provider,
        store: Optional[StateStore] = None,
        config: Optional[IngestConfig] = None,
        context: Optional[CredentialContext] = None,
        guards: Optional[PreflightGuards] = None,
    ) -> None:
        """
        Initialize the driver.

        Args:
            provider: Provider invoked for fetch requests
            store: State store (in-memory if omitted)
            config: Ingestion configuration
            context: Credentials handed to the provider
            guards: Preflight guards run before each fetch
        """
        self.provider = provider
        self.store = store if store is not None else MemoryStateStore()
        self.config = config or provider.config
        self.context = context or CredentialContext()
        self.guards = guards or PreflightGuards()

        self.machine = IterationMachine(
            sanitizer=Sanitizer(provider.sanitize_profile),
            max_item_bytes=self.config.limits.max_item_bytes,
        )
        self.stats = DriverStats()
        self._in_flight: set[str] = set()

    def is_busy(self, execution_id: str) -> bool:
        """Check if a fetch is outstanding for an execution."""
        return execution_id in self._in_flight

    def get_state(self, execution_id: str) -> Optional[IterationState]:
        """Get the stored state of an execution."""
        return self.store.load(execution_id)

    async def deliver(self, execution_id: str, raw_event: dict[str, Any]) -> list[Emission]:
        """
        Deliver one raw event to an execution.

        Args:
            execution_id: Execution the event belongs to
            raw_event: Event of shape ``{type, inputs?, config?}``

        Returns:
            Zero or one emissions

        Raises:
            ExecutionBusyError: If a fetch for this execution is outstanding
        """
        if self.is_busy(execution_id):
            logger.warning("event_rejected_busy", execution_id=execution_id)
            raise ExecutionBusyError(execution_id)

        set_execution_context(execution_id, self.provider.source_name)
        self.stats.events += 1

        event = parse_event(raw_event, self.provider.source_key_aliases)
        state = self.store.load(execution_id) or IterationState()
        transition = self.machine.step(state, event)

        if transition.fetch_request is not None:
            # FETCHING is never persisted
            self._in_flight.add(execution_id)
            try:
                outcome = await self._fetch(execution_id, transition.fetch_request)
            finally:
                self._in_flight.discard(execution_id)
            transition = self.machine.apply_fetch(transition.state, outcome)

        self.store.save(execution_id, transition.state)

        emissions = list(transition.emissions)
        self.stats.emissions += len(emissions)
        self.stats.errors += sum(1 for emission in emissions if emission.error)
        if not emissions:
            self.stats.ignored += 1

        logger.debug(
            "event_delivered",
            phase=transition.state.phase.name,
            current_index=transition.state.current_index,
            emissions=len(emissions),
        )
        return emissions

    async def execute(
        self,
        execution_id: str,
        source_key: str,
        options: Optional[dict[str, Any]] = None,
    ) -> list[Emission]:
        """Deliver the fetch-triggering event."""
        config = {"sourceKey": source_key, **(options or {})}
        return await self.deliver(execution_id, {"type": "EXECUTE", "config": config})

    async def advance(self, execution_id: str) -> list[Emission]:
        """Deliver one continuation event."""
        return await self.deliver(
            execution_id, {"type": "CONTINUE", "inputs": {"continue": True}}
        )

    async def drain(
        self,
        execution_id: str,
        source_key: str,
        options: Optional[dict[str, Any]] = None,
    ) -> AsyncIterator[Emission]:
        """
        Fetch and then continue until the execution completes.

        Yields:
            Every emission, in order
        """
        for emission in await self.execute(execution_id, source_key, options):
            yield emission

        while True:
            state = self.store.load(execution_id)
            if state is None or state.is_complete or not state.items:
                break
            for emission in await self.advance(execution_id):
                yield emission

    def discard(self, execution_id: str) -> bool:
        """
        Discard an execution's state and provider resources.

        Returns:
            True if stored state was removed
        """
        self.provider.release(execution_id)
        removed = self.store.delete(execution_id)
        logger.info("execution_discarded", execution_id=execution_id, removed=removed)
        return removed

    async def _fetch(self, execution_id: str, request: FetchRequest) -> FetchOutcome:
        context = self.context.for_execution(execution_id, self.provider.source_name)

        guard = self.guards.check_all(
            self.provider, request.source_key, context, request.options
        )
        if guard.is_err():
            error = guard.unwrap_err()
            return FetchFailed(error=str(error), error_type=type(error).__name__)

        self.stats.fetches += 1
        started = time.monotonic()
        try:
            items = await self.provider.fetch(request.source_key, context, request.options)
        except IngestError as e:
            logger.error(
                "provider_fetch_failed",
                source_key=request.source_key,
                error=str(e),
                error_type=type(e).__name__,
            )
            return FetchFailed(error=str(e), error_type=type(e).__name__)
        except Exception as e:
            logger.exception(
                "provider_fetch_crashed",
                source_key=request.source_key,
                error=str(e),
                error_type=type(e).__name__,
            )
            return FetchFailed(
                error=f"Unexpected {self.provider.source_name} error: {type(e).__name__}: {e}",
                error_type=type(e).__name__,
            )

        log_fetch_timing(self.provider.source_name, time.monotonic() - started, len(items))
        return FetchSucceeded(items=tuple(items))
