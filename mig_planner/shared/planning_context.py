import threading
import time
from typing import Optional

from mig_planner.shared.errors import PlanningCancelledError


class PlanningContext:
    """Cancellation flag and optional deadline shared by every step of one planning pass.

    ``cancel`` may be called from any thread; the planner polls the context
    between GPUs and between admission oracle calls.
    """

    def __init__(self, timeout: Optional[float] = None):
        if timeout is not None and timeout <= 0:
            raise ValueError("timeout must be greater than 0")
        self._cancelled = threading.Event()
        self._reason: Optional[str] = None
        self.deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self, reason: str = "planning cancelled") -> None:
        self._reason = reason
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, None when there is no deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def raise_if_done(self) -> None:
        if self.cancelled:
            raise PlanningCancelledError(self._reason or "planning cancelled")
        if self.expired:
            raise PlanningCancelledError("planning deadline exceeded")
