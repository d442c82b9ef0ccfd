"""State, event and transition definitions for the iteration machine."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum, auto
from typing import Any, Optional, Union

from ingestloop.models import Emission, Item


class IterationPhase(Enum):
    """Phases of one execution's iteration."""

    UNINITIALIZED = auto()
    FETCHING = auto()
    EMITTING = auto()
    COMPLETE = auto()

    def is_terminal(self) -> bool:
        """Check if this is a terminal phase."""
        return self is IterationPhase.COMPLETE


# Valid phase transitions
TRANSITIONS: dict[IterationPhase, set[IterationPhase]] = {
    IterationPhase.UNINITIALIZED: {IterationPhase.FETCHING},
    IterationPhase.FETCHING: {IterationPhase.EMITTING, IterationPhase.COMPLETE},
    IterationPhase.EMITTING: {IterationPhase.EMITTING, IterationPhase.COMPLETE},
    # Terminal phase has no transitions
    IterationPhase.COMPLETE: set(),
}


class TransitionError(Exception):
    """Invalid phase transition."""

    def __init__(self, from_phase: IterationPhase, to_phase: IterationPhase) -> None:
        self.from_phase = from_phase
        self.to_phase = to_phase
        super().__init__(
            f"Invalid transition: {from_phase.name} -> {to_phase.name}"
        )


@dataclass(frozen=True)
class IterationState:
    """
    Complete iteration state for one execution.

    Instances are never mutated; every transition returns a fresh value.
    The state is plain data so it can cross process boundaries between
    invocations.
    """

    source_key: str = ""
    items: tuple[Item, ...] = ()
    current_index: int = 0
    total_items: int = 0
    phase: IterationPhase = IterationPhase.UNINITIALIZED
    error: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return self.phase.is_terminal()

    @property
    def remaining(self) -> int:
        return self.total_items - self.current_index

    def advance_to(self, phase: IterationPhase, **changes: Any) -> "IterationState":
        """
        Return a copy moved to a new phase.

        Raises:
            TransitionError: If the phase change is not allowed
        """
        if phase not in TRANSITIONS.get(self.phase, set()):
            raise TransitionError(self.phase, phase)
        return replace(self, phase=phase, **changes)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "sourceKey": self.source_key,
            "items": list(self.items),
            "currentIndex": self.current_index,
            "totalItems": self.total_items,
            "isComplete": self.is_complete,
            "phase": self.phase.name,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "IterationState":
        """Create from dictionary."""
        if "phase" in data:
            phase = IterationPhase[data["phase"]]
        elif data.get("isComplete"):
            phase = IterationPhase.COMPLETE
        elif data.get("items"):
            phase = IterationPhase.EMITTING
        else:
            phase = IterationPhase.UNINITIALIZED

        items = tuple(data.get("items") or ())
        return cls(
            source_key=data.get("sourceKey", ""),
            items=items,
            current_index=data.get("currentIndex", 0),
            total_items=data.get("totalItems", len(items)),
            phase=phase,
            error=data.get("error"),
        )


# Events decided once at the protocol boundary


@dataclass(frozen=True)
class FetchEvent:
    """Driving event without a continuation signal."""

    source_key: str = ""
    options: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ContinueEvent:
    """Request for the next item."""

    pass


Event = Union[FetchEvent, ContinueEvent]


@dataclass(frozen=True)
class FetchRequest:
    """Instruction to the driver to invoke the provider once."""

    source_key: str
    options: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FetchSucceeded:
    """Provider returned the full ordered collection."""

    items: tuple[Item, ...]


@dataclass(frozen=True)
class FetchFailed:
    """Provider (or preflight) failed."""

    error: str
    error_type: str = "FetchError"


FetchOutcome = Union[FetchSucceeded, FetchFailed]


@dataclass(frozen=True)
class Transition:
    """Result of feeding one event to the machine."""

    state: IterationState
    emissions: tuple[Emission, ...] = ()
    fetch_request: Optional[FetchRequest] = None


CONTINUE_SIGNAL = "continue"
SOURCE_KEY = "sourceKey"


def parse_event(
    raw: dict[str, Any],
    source_key_aliases: tuple[str, ...] = (),
) -> Event:
    """
    Decode a raw driver event into a tagged variant.

    A ``continue`` key in ``inputs`` is the only continuation signal. Config
    is read from ``config`` or, failing that, ``inputs.config``; the source
    key comes from ``sourceKey`` or the first matching alias, and every
    other config key is passed through as a provider option.

    Args:
        raw: Event of shape ``{type, inputs?, config?}``
        source_key_aliases: Provider-specific config keys naming the source

    Returns:
        FetchEvent or ContinueEvent
    """
    inputs = raw.get("inputs") or {}
    if isinstance(inputs, dict) and CONTINUE_SIGNAL in inputs:
        return ContinueEvent()

    config = raw.get("config")
    if not config and isinstance(inputs, dict):
        config = inputs.get("config")
    config = dict(config or {})

    source_key = str(config.pop(SOURCE_KEY, None) or "")
    for key in source_key_aliases:
        if source_key:
            break
        if config.get(key):
            source_key = str(config.pop(key))

    return FetchEvent(source_key=source_key, options=config)
