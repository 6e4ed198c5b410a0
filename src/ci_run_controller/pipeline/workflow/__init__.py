"""Run control domain concepts.

This package introduces first-class types for:
- Trigger events and their concurrency groups
- Runs and their explicit state machine
- Stores holding the current run of every group
- The run controller (cancel-on-supersede)
- Cancellation actions realising a controller decision
"""

from .controller import RunController, RunDecision, UnknownRunError
from .events import EventKind, InvalidEvent, TriggerEvent
from .state_machine import IllegalTransitionError, Run, RunStatus
from .store import InMemoryRunStore, JsonRunStore, RunStore

__all__ = [
    "EventKind",
    "IllegalTransitionError",
    "InMemoryRunStore",
    "InvalidEvent",
    "JsonRunStore",
    "Run",
    "RunController",
    "RunDecision",
    "RunStatus",
    "RunStore",
    "TriggerEvent",
    "UnknownRunError",
]
