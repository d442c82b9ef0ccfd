"""Resumable iteration processing.

A fetched collection is emitted one item per driving event across separate
invocations. Each execution moves through well-defined phases:

    UNINITIALIZED -> FETCHING -> EMITTING -> ... -> COMPLETE
                         |
                         v
                     COMPLETE (empty collection or error)

The machine is pure; the driver performs the provider fetch, runs the
preflight guards and stores plain-data state between events.
"""

from ingestloop.processor.machine import IterationMachine
from ingestloop.processor.runner import DriverStats, IterationDriver, new_execution_id
from ingestloop.processor.states import (
    TRANSITIONS,
    ContinueEvent,
    FetchEvent,
    FetchFailed,
    FetchRequest,
    FetchSucceeded,
    IterationPhase,
    IterationState,
    Transition,
    TransitionError,
    parse_event,
)
from ingestloop.processor.store import ExecutionIndex, FileStateStore, MemoryStateStore

__all__ = [
    # States
    "IterationPhase",
    "IterationState",
    "TransitionError",
    "TRANSITIONS",
    # Events
    "FetchEvent",
    "ContinueEvent",
    "parse_event",
    "FetchRequest",
    "FetchSucceeded",
    "FetchFailed",
    "Transition",
    # Machine
    "IterationMachine",
    # Stores
    "MemoryStateStore",
    "FileStateStore",
    "ExecutionIndex",
    # Driver
    "IterationDriver",
    "DriverStats",
    "new_execution_id",
]
