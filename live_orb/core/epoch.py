"""
Interruption epoch: a generation counter that invalidates stale async work.

Every decode captures an EpochToken when it starts. When it completes, the
result may only be applied if the token is still current; an interruption
(or a session reset) advances the epoch and thereby cancels everything that
was in flight, without needing a hard abort of the decode itself.
"""

import threading
from dataclasses import dataclass


@dataclass(frozen=True)
class EpochToken:
    """Epoch value captured at the start of an asynchronous operation."""

    value: int


class InterruptionEpoch:
    """Monotonic, thread-safe epoch counter."""

    def __init__(self, initial: int = 0):
        self._value = initial
        self._lock = threading.Lock()

    def current(self) -> int:
        with self._lock:
            return self._value

    def advance(self) -> int:
        """Advance the epoch and return the new value."""
        with self._lock:
            self._value += 1
            return self._value

    def capture(self) -> EpochToken:
        return EpochToken(self.current())

    def is_current(self, token: EpochToken) -> bool:
        return token.value == self.current()

    def __repr__(self) -> str:
        return f"InterruptionEpoch({self.current()})"
