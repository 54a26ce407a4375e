"""
One active multi-step UI flow (select menu or modal) per user.

A second flow while one is open is rejected, never queued. Flows release the
guard on completion, error or timeout; an entry that is never released
expires on its own after the flow timeout.
"""

import time
from collections.abc import Callable

from utils.logging import get_logger

logger = get_logger(__name__)

FLOW_TIMEOUT_SECONDS = 30.0


class InteractionGuard:
    def __init__(
        self,
        timeout_seconds: float = FLOW_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self._active: dict[int, tuple[str, float]] = {}

    def acquire(self, user_id: int, flow: str) -> bool:
        """Start ``flow`` for ``user_id``; False if another flow is still open."""
        now = self._clock()
        current = self._active.get(user_id)
        if current is not None and current[1] > now:
            logger.debug(
                "Flow %s rejected; %s already active",
                flow,
                current[0],
                extra={"user_id": user_id},
            )
            return False
        self._active[user_id] = (flow, now + self.timeout_seconds)
        return True

    def release(self, user_id: int) -> None:
        self._active.pop(user_id, None)

    def is_active(self, user_id: int) -> bool:
        current = self._active.get(user_id)
        if current is None:
            return False
        if current[1] <= self._clock():
            del self._active[user_id]
            return False
        return True

    def active_flow(self, user_id: int) -> str | None:
        return self._active[user_id][0] if self.is_active(user_id) else None

    def cleanup(self) -> int:
        now = self._clock()
        expired = [uid for uid, (_, expires) in self._active.items() if expires <= now]
        for uid in expired:
            del self._active[uid]
        return len(expired)

    def __len__(self) -> int:
        return len(self._active)
