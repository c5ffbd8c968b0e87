"""
The interface stardiff drives the interpreter under test through.

The harness treats the interpreter as a black box with three steps:

    program = interpreter.compile(source, dialect, predeclared)
    module = program.run(print_sink, cancel_token)
    module.freeze()

`compile` covers parsing and static resolution, `run` executes top-level
statements, and `freeze` makes the resulting globals immutable. Failures are
reported with CompileError / ExecutionError; anything else escaping these
calls is treated as an interpreter crash.

StarlarkGoInterpreter adapts the `starlark-go` Python bindings to this
interface.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Protocol

from stardiff.dialect import DialectConfig

logger = logging.getLogger(__name__)

PrintSink = Callable[[str], None]


class InterpreterError(Exception):
    """Base class for failures the interpreter under test reports."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class CompileError(InterpreterError):
    """The program failed to parse or resolve."""


class ExecutionError(InterpreterError):
    """The program compiled but raised while executing."""


class Module(Protocol):
    def freeze(self) -> None: ...


class Program(Protocol):
    def run(self, print_sink: PrintSink, cancel: threading.Event) -> Module: ...


class Interpreter(Protocol):
    name: str

    def compile(
        self, source: bytes, dialect: DialectConfig, predeclared: frozenset[str]
    ) -> Program: ...


# ---------------------------------------------------------------------------
# starlark-go adapter
# ---------------------------------------------------------------------------


class _StarlarkGoModule:
    """The globals of one executed starlark-go program."""

    def __init__(self, session: Any) -> None:
        self.session = session
        self.frozen = False

    def freeze(self) -> None:
        # starlark-go freezes module globals itself once exec returns; drop
        # the session so nothing can reach them again.
        self.frozen = True
        self.session = None


class _StarlarkGoProgram:
    def __init__(self, interpreter: StarlarkGoInterpreter, text: str, dialect: DialectConfig):
        self.interpreter = interpreter
        self.text = text
        self.dialect = dialect

    def run(self, print_sink: PrintSink, cancel: threading.Event) -> Module:
        starlark_go = self.interpreter.bindings
        # The bindings have no cancellation hook; the executor abandons the
        # worker thread on expiry instead.
        # The lock only serializes flag updates and session construction.
        # Resolution happens inside exec, after the lock is released, so
        # concurrent runs in one process must share a dialect.
        with self.interpreter.configure_lock:
            starlark_go.configure_starlark(
                allow_set=self.dialect.allow_set,
                allow_global_reassign=self.dialect.allow_global_reassign,
                allow_recursion=self.dialect.allow_recursion,
            )
            session = starlark_go.Starlark(print=print_sink)
        try:
            session.exec(self.text, filename=self.interpreter.filename)
        except (starlark_go.SyntaxError, starlark_go.ResolveError) as e:
            raise CompileError(str(e), cause=e) from e
        except starlark_go.StarlarkError as e:
            raise ExecutionError(str(e), cause=e) from e
        return _StarlarkGoModule(session)


class StarlarkGoInterpreter:
    """
    starlark-go, through the `starlark_go` bindings.

    The bindings expose fewer dialect switches than the Go resolver: float,
    lambda, nested def and bitwise operators are always enabled there, so
    only set, global reassignment and recursion follow the DialectConfig.
    Parsing and resolution happen inside exec, so syntax and resolve errors
    surface from run() as CompileError.
    """

    name = "starlark-go"
    filename = "fuzzy.star"

    def __init__(self) -> None:
        import starlark_go

        self.bindings = starlark_go
        # configure_starlark mutates process-wide resolver flags.
        self.configure_lock = threading.Lock()

    def compile(
        self, source: bytes, dialect: DialectConfig, predeclared: frozenset[str]
    ) -> Program:
        try:
            text = source.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CompileError("source is not valid UTF-8", cause=e) from e
        if predeclared:
            logger.debug("starlark-go bindings ignore predeclared names: %s", sorted(predeclared))
        return _StarlarkGoProgram(self, text, dialect)
