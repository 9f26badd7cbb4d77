"""Time budget for a single assembly."""

from __future__ import annotations

import time

from uploads.exceptions import AssemblyDeadlineExceeded


class Deadline:
    """
    Wall-clock budget checked between store operations.

    A timeout of None or 0 disables the check.

    Usage:
        deadline = Deadline(300)
        for key in keys:
            deadline.check()
            data = store.get_object(key)
    """

    def __init__(self, seconds: float | None, clock=time.monotonic):
        self.seconds = seconds
        self._clock = clock
        self._expires_at = clock() + seconds if seconds else None

    @property
    def remaining(self) -> float | None:
        if self._expires_at is None:
            return None
        return max(self._expires_at - self._clock(), 0.0)

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and self._clock() >= self._expires_at

    def check(self) -> None:
        """
        Raises:
            AssemblyDeadlineExceeded: If the budget is used up
        """
        if self.expired:
            raise AssemblyDeadlineExceeded(self.seconds)
