"""
In-process execution of the interpreter under test.

This module provides the PrimaryExecutor class which handles:
- Compiling a program against a dialect and the predeclared global names
- Running it in a worker thread bounded by a Deadline
- Capturing its print output in memory
- Freezing the resulting module after a successful run
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any

from stardiff.dialect import DialectConfig
from stardiff.interpreter import CompileError, ExecutionError, Interpreter
from stardiff.utils import Deadline, ExecutionResult

logger = logging.getLogger(__name__)


class OutputSink:
    """Collects everything a program prints, in order."""

    def __init__(self) -> None:
        self._chunks: list[str] = []
        self._lock = threading.Lock()

    def __call__(self, message: str) -> None:
        with self._lock:
            self._chunks.append(message)

    def getvalue(self) -> str:
        with self._lock:
            return "".join(self._chunks)


class _Outcome:
    """What the worker thread hands back to the executor."""

    def __init__(self) -> None:
        self.error: BaseException | None = None
        self.stage: str | None = None
        self.crash: BaseException | None = None


class PrimaryExecutor:
    """
    Runs programs through the interpreter under test.

    Compile failures and runtime failures both come back as
    `accepted=False`, told apart by `failure_stage`. Deadline expiry comes
    back as `timed_out=True`. Any other exception from the interpreter is a
    crash and is re-raised in the caller's thread.
    """

    def __init__(self, interpreter: Interpreter, predeclared: frozenset[str] = frozenset()):
        """
        Args:
            interpreter: The interpreter under test.
            predeclared: Global names the resolver accepts as defined.
        """
        self.interpreter = interpreter
        self.predeclared = predeclared
        # Workers left running after their deadline expired.
        self._abandoned: list[threading.Thread] = []

    def abandoned_workers(self) -> int:
        """Number of timed-out workers still running in the background."""
        self._abandoned = [worker for worker in self._abandoned if worker.is_alive()]
        return len(self._abandoned)

    def execute(self, source: bytes, dialect: DialectConfig, deadline: Deadline) -> ExecutionResult:
        """Compile and run `source`, bounded by `deadline`."""
        start_time = time.monotonic()
        try:
            program = self.interpreter.compile(source, dialect, self.predeclared)
        except CompileError as e:
            return ExecutionResult(
                accepted=False,
                error=e,
                failure_stage="compile",
                elapsed=time.monotonic() - start_time,
            )

        sink = OutputSink()
        outcome = _Outcome()

        def work() -> None:
            try:
                module: Any = program.run(sink, deadline.token)
                module.freeze()
            except CompileError as e:
                outcome.error, outcome.stage = e, "compile"
            except ExecutionError as e:
                outcome.error, outcome.stage = e, "runtime"
            except BaseException as e:  # handed to the caller's thread
                outcome.crash = e

        worker = threading.Thread(target=work, name="stardiff-primary", daemon=True)
        worker.start()
        worker.join(deadline.remaining())

        if worker.is_alive() or deadline.expired():
            # Ask a cooperative interpreter to stop; an uncooperative one is
            # left behind on its daemon thread.
            deadline.cancel()
            if worker.is_alive():
                self._abandoned.append(worker)
            logger.debug("primary execution exceeded its deadline")
            return ExecutionResult(
                accepted=False,
                output=sink.getvalue(),
                timed_out=True,
                elapsed=time.monotonic() - start_time,
            )

        if outcome.crash is not None:
            raise outcome.crash

        return ExecutionResult(
            accepted=outcome.error is None,
            output=sink.getvalue(),
            error=outcome.error,
            failure_stage=outcome.stage,
            elapsed=time.monotonic() - start_time,
        )
