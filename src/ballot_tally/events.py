"""Notifications emitted after each successful election mutation.

Listeners are plain callables taking a single `Event`. They are side-channel
observers: a failing listener is logged by the election and never affects the
outcome of the operation that triggered it.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List


CANDIDATE_ADDED = "candidate_added"
VOTER_REGISTERED = "voter_registered"
VOTING_STARTED = "voting_started"
VOTE_CAST = "vote_cast"
VOTING_ENDED = "voting_ended"


@dataclass(frozen=True)
class Event:
    """A single notification

    Attributes
    - name: one of the module-level event name constants
    - seq: 1-based position of the event within its election
    - data: identifiers relevant to the mutation (candidate_id, principal, ...)
    """

    name: str
    seq: int
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "seq": self.seq, "data": dict(self.data)}


Listener = Callable[[Event], None]


class EventLog:
    """Listener that keeps every received event in memory, in order"""

    def __init__(self):
        self._events: List[Event] = []
        self._lock = threading.Lock()

    def __call__(self, event: Event) -> None:
        with self._lock:
            self._events.append(event)

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def events(self) -> List[Event]:
        with self._lock:
            return list(self._events)
