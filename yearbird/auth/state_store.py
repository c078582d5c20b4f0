"""Short-lived correlation store for pending authorization flows.

Each authorization attempt generates a random CSRF state and registers it
here with a tag naming the flow family (sign-in or scope escalation). The
provider callback consumes the entry exactly once. Abandoned flows are not
tracked by a timer; expired entries are evicted whenever a new flow is
registered, which bounds the store to the flows started in the last few
minutes.
"""

import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass

PENDING_FLOW_TTL_SECONDS = 5 * 60


def generate_state() -> str:
    """Generate a cryptographically random CSRF state token."""
    return secrets.token_urlsafe(32)


@dataclass
class PendingFlow:
    state: str
    tag: str
    expires_at: float

    def expired(self, now: float) -> bool:
        return now >= self.expires_at


class StateCorrelationStore:
    """Maps CSRF state tokens to the flow that created them."""

    def __init__(
        self,
        *,
        ttl_seconds: float = PENDING_FLOW_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._pending: dict[str, PendingFlow] = {}

    def register(self, state: str, tag: str) -> PendingFlow:
        """Store a state with a fixed expiry, evicting stale entries first."""
        now = self._clock()
        self._evict_expired(now)
        flow = PendingFlow(state=state, tag=tag, expires_at=now + self._ttl_seconds)
        self._pending[state] = flow
        return flow

    def consume(self, state: str) -> str | None:
        """Remove a state and return its tag if it was pending and unexpired."""
        flow = self._pending.pop(state, None)
        if flow is None or flow.expired(self._clock()):
            return None
        return flow.tag

    def discard(self, state: str | None) -> None:
        if state is not None:
            self._pending.pop(state, None)

    def is_pending(self, state: str) -> bool:
        flow = self._pending.get(state)
        return flow is not None and not flow.expired(self._clock())

    def has_pending(self, tag: str | None = None) -> bool:
        """Whether any unexpired flow (optionally of one family) is pending."""
        now = self._clock()
        return any(
            not flow.expired(now) and (tag is None or flow.tag == tag)
            for flow in self._pending.values()
        )

    def clear(self) -> None:
        self._pending.clear()

    def __len__(self) -> int:
        return len(self._pending)

    def _evict_expired(self, now: float) -> None:
        expired = [state for state, flow in self._pending.items() if flow.expired(now)]
        for state in expired:
            del self._pending[state]
