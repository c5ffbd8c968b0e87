"""
Interpreter doubles for the test suite.

PythonInterpreter runs programs with CPython's own compile()/exec(), which is
close enough to Starlark for pipeline tests. The other doubles script the
behaviours the executor must handle: hanging, crashing and accepting
everything.
"""

import threading

from stardiff.interpreter import CompileError, ExecutionError


class FakeModule:
    def __init__(self, namespace=None):
        self.namespace = namespace or {}
        self.frozen = False

    def freeze(self):
        self.frozen = True


class PythonProgram:
    def __init__(self, code, recorder):
        self.code = code
        self.recorder = recorder

    def run(self, print_sink, cancel):
        def _print(*args):
            print_sink(" ".join(str(a) for a in args) + "\n")

        namespace = {"print": _print}
        try:
            exec(self.code, namespace)
        except Exception as e:
            raise ExecutionError(f"{type(e).__name__}: {e}", cause=e) from e
        module = FakeModule(namespace)
        self.recorder.modules.append(module)
        return module


class PythonInterpreter:
    """Compiles with compile(), executes with exec()."""

    name = "python-double"

    def __init__(self):
        self.compiled = []
        self.modules = []
        self.dialects = []

    def compile(self, source, dialect, predeclared):
        self.compiled.append(source)
        self.dialects.append(dialect)
        try:
            code = compile(source, "fuzzy.star", "exec")
        except (SyntaxError, ValueError) as e:
            raise CompileError(str(e), cause=e) from e
        return PythonProgram(code, self)


class _ScriptedProgram:
    def __init__(self, run):
        self._run = run

    def run(self, print_sink, cancel):
        return self._run(print_sink, cancel)


class AcceptingInterpreter:
    """Accepts every program, printing a fixed line."""

    name = "accepting"

    def __init__(self):
        self.compiled = []
        self.modules = []

    def compile(self, source, dialect, predeclared):
        self.compiled.append(source)

        def run(print_sink, cancel):
            print_sink("ok\n")
            module = FakeModule()
            self.modules.append(module)
            return module

        return _ScriptedProgram(run)


class HangingInterpreter:
    """Blocks until cancelled, like a cooperative interpreter in a long loop."""

    name = "hanging"

    def __init__(self):
        self.cancelled = threading.Event()

    def compile(self, source, dialect, predeclared):
        def run(print_sink, cancel):
            print_sink("started\n")
            cancel.wait(30)
            self.cancelled.set()
            raise ExecutionError("cancelled")

        return _ScriptedProgram(run)


class CrashingInterpreter:
    """Raises an exception outside the interpreter error hierarchy."""

    name = "crashing"

    def compile(self, source, dialect, predeclared):
        def run(print_sink, cancel):
            raise RuntimeError("interpreter bug")

        return _ScriptedProgram(run)


class LazyCompileInterpreter:
    """Reports syntax errors from run(), as the starlark-go bindings do."""

    name = "lazy"

    def compile(self, source, dialect, predeclared):
        def run(print_sink, cancel):
            raise CompileError("syntax error")

        return _ScriptedProgram(run)


class StubbornInterpreter:
    """Ignores the cancel token and runs until the test releases it."""

    name = "stubborn"

    def __init__(self):
        self.release = threading.Event()

    def compile(self, source, dialect, predeclared):
        def run(print_sink, cancel):
            self.release.wait(30)
            return FakeModule()

        return _ScriptedProgram(run)
