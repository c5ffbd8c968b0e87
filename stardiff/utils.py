"""
This module contains generic, reusable helpers for the stardiff harness.

It includes the nested deadline / cancellation token used by every bounded
stage of an iteration and the data classes that carry execution outcomes
between stages.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Callable


class Deadline:
    """
    A wall-clock deadline with an attached cancellation token.

    Deadlines nest: a child never outlives its parent, and cancelling a
    parent is observed by all of its children. The token is a plain
    threading.Event so interpreters running in a worker thread can poll it.
    """

    def __init__(
        self,
        timeout: float,
        parent: Deadline | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Args:
            timeout: Seconds from now until the deadline expires.
            parent: Optional enclosing deadline.
            clock: Monotonic clock, injectable for tests.
        """
        self.parent = parent
        self.clock = clock
        self.token = threading.Event()
        expires_at = clock() + timeout
        if parent is not None:
            expires_at = min(expires_at, parent.expires_at)
        self.expires_at = expires_at

    def child(self, timeout: float) -> Deadline:
        """Return a nested deadline bounded by both `timeout` and this one."""
        return Deadline(timeout, parent=self, clock=self.clock)

    def remaining(self) -> float:
        """Seconds left before expiry, never negative."""
        if self.cancelled():
            return 0.0
        return max(0.0, self.expires_at - self.clock())

    def cancel(self) -> None:
        self.token.set()

    def cancelled(self) -> bool:
        if self.token.is_set():
            return True
        return self.parent is not None and self.parent.cancelled()

    def expired(self) -> bool:
        """True once the deadline passed or the token (or a parent's) was set."""
        return self.cancelled() or self.clock() >= self.expires_at


@dataclass
class ExecutionResult:
    """Outcome of running one program through the interpreter under test."""

    accepted: bool
    output: str = ""
    timed_out: bool = False
    error: BaseException | None = None
    # "compile", "runtime" or None when the program was accepted
    failure_stage: str | None = None
    elapsed: float = 0.0


@dataclass
class OracleResult:
    """Outcome of running one program through a reference interpreter."""

    name: str
    accepted: bool
    output: bytes = b""
    returncode: int | None = None
    timed_out: bool = False
    spawn_error: OSError | None = None
    elapsed: float = 0.0
    argv: list[str] = field(default_factory=list)

    @property
    def available(self) -> bool:
        return self.spawn_error is None
