"""
Reference interpreters ("oracles") run as child processes.

This module provides:
- OracleSpec: how to invoke one reference interpreter
- run_oracle(): a single bounded invocation with guaranteed cleanup
- OracleInvoker: the ordered, unanimity-seeking walk over all oracles
"""

from __future__ import annotations

import contextlib
import logging
import os
import shutil
import signal
import subprocess
import sys
import tempfile
import time
from dataclasses import dataclass
from enum import Enum
from typing import Iterator

import psutil

from stardiff.utils import Deadline, OracleResult

logger = logging.getLogger(__name__)

# How long to wait for killed processes to be reaped.
KILL_GRACE_SECONDS = 5.0

TEMP_FILE_PREFIX = "stardiff-"
TEMP_FILE_SUFFIX = ".star"


@dataclass(frozen=True)
class OracleSpec:
    """
    A reference interpreter command.

    The program is appended to `command` as the final argument, either
    inline (`source_via="argument"`, e.g. `python3 -c <source>`) or as the
    path of a temporary file (`source_via="file"`).
    """

    name: str
    command: tuple[str, ...]
    source_via: str = "argument"

    def __post_init__(self) -> None:
        if self.source_via not in ("argument", "file"):
            raise ValueError(f"Unknown source_via {self.source_via!r} for oracle {self.name}")
        if not self.command:
            raise ValueError(f"Oracle {self.name} has an empty command")

    @property
    def executable(self) -> str:
        return self.command[0]


class Outcome(str, Enum):
    ACCEPTED = "ACCEPTED"  # some oracle accepted the program
    REJECTED = "REJECTED"  # every oracle that ran rejected it
    TIMED_OUT = "TIMED_OUT"  # the outer deadline expired first
    UNAVAILABLE = "UNAVAILABLE"  # no oracle could be started


@dataclass
class Consultation:
    outcome: Outcome
    results: list[OracleResult]

    def result_for(self, name: str) -> OracleResult | None:
        for result in self.results:
            if result.name == name:
                return result
        return None

    @property
    def unavailable(self) -> list[OracleResult]:
        """Results of the oracles that could not be started."""
        return [result for result in self.results if not result.available]


@contextlib.contextmanager
def _source_argument(spec: OracleSpec, source: bytes) -> Iterator[str]:
    """Yield the final argv entry for `spec`, removing any temp file on exit."""
    if spec.source_via == "argument":
        yield os.fsdecode(source)
        return

    fd, path = tempfile.mkstemp(prefix=TEMP_FILE_PREFIX, suffix=TEMP_FILE_SUFFIX)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(source)
        yield path
    finally:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(path)


def kill_process_tree(proc: subprocess.Popen) -> None:
    """
    Kill `proc` and every descendant, then reap `proc`.

    `proc` leads its own session, so its process group is killed in one
    signal; this also catches descendants forked after the psutil snapshot.
    The snapshot covers descendants that moved to a group of their own.
    """
    try:
        children = psutil.Process(proc.pid).children(recursive=True)
    except psutil.NoSuchProcess:
        children = []

    with contextlib.suppress(ProcessLookupError, PermissionError):
        os.killpg(proc.pid, signal.SIGKILL)
    for child in children:
        with contextlib.suppress(psutil.NoSuchProcess):
            child.kill()
    with contextlib.suppress(ProcessLookupError):
        proc.kill()

    psutil.wait_procs(children, timeout=KILL_GRACE_SECONDS)
    # Drains and closes the pipes as well as reaping. A pipe still held by
    # an escaped descendant is closed rather than waited on.
    try:
        proc.communicate(timeout=KILL_GRACE_SECONDS)
    except subprocess.TimeoutExpired:
        logger.warning("oracle pid %d left a descendant holding its output pipe", proc.pid)
        if proc.stdout is not None:
            proc.stdout.close()
        proc.wait()


def run_oracle(spec: OracleSpec, source: bytes, deadline: Deadline) -> OracleResult:
    """
    Run one reference interpreter over `source`.

    The child gets whatever time `deadline` has left. If that runs out the
    whole process tree is killed and reaped before returning. A command that
    cannot be spawned comes back with `spawn_error` set rather than raising.
    """
    start_time = time.monotonic()
    if deadline.expired():
        return OracleResult(name=spec.name, accepted=False, timed_out=True)

    with _source_argument(spec, source) as source_arg:
        argv = [*spec.command, source_arg]
        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )
        except OSError as e:
            logger.debug("could not start oracle %s: %s", spec.name, e)
            return OracleResult(
                name=spec.name,
                accepted=False,
                spawn_error=e,
                argv=list(spec.command),
            )

        try:
            output, _ = proc.communicate(timeout=deadline.remaining())
        except subprocess.TimeoutExpired:
            kill_process_tree(proc)
            return OracleResult(
                name=spec.name,
                accepted=False,
                timed_out=True,
                returncode=proc.returncode,
                elapsed=time.monotonic() - start_time,
                argv=list(spec.command),
            )
        except BaseException:
            kill_process_tree(proc)
            raise

    return OracleResult(
        name=spec.name,
        accepted=proc.returncode == 0,
        output=output,
        returncode=proc.returncode,
        elapsed=time.monotonic() - start_time,
        argv=list(spec.command),
    )


class OracleInvoker:
    """
    Consults the configured reference interpreters in order.

    The walk stops at the first oracle that accepts. An oracle that cannot
    be started is skipped, not counted as a rejection. The outcome is
    REJECTED when every oracle that ran rejected the program, and
    UNAVAILABLE when none could be started at all.
    """

    def __init__(self, specs: tuple[OracleSpec, ...]) -> None:
        self.specs = specs

    def consult(self, source: bytes, deadline: Deadline) -> Consultation:
        results: list[OracleResult] = []
        for spec in self.specs:
            result = run_oracle(spec, source, deadline)
            results.append(result)
            if result.accepted:
                return Consultation(Outcome.ACCEPTED, results)
            if result.timed_out or deadline.expired():
                return Consultation(Outcome.TIMED_OUT, results)
            if not result.available:
                logger.debug("oracle %s unavailable, trying the next one", spec.name)
        if not any(result.available for result in results):
            return Consultation(Outcome.UNAVAILABLE, results)
        return Consultation(Outcome.REJECTED, results)

    def available_specs(self) -> tuple[OracleSpec, ...]:
        """The specs whose executable can be found on PATH."""
        return tuple(spec for spec in self.specs if shutil.which(spec.executable))

    def verify_oracles(self) -> OracleInvoker:
        """
        Return an invoker over the oracles that can actually be run.

        Missing oracles are reported and dropped. Raises RuntimeError when
        none is left, since no divergence could ever be confirmed.
        """
        available = self.available_specs()
        for spec in self.specs:
            if spec not in available:
                print(
                    f"  [!] Warning: oracle '{spec.name}' not found "
                    f"({spec.executable}); skipping it.",
                    file=sys.stderr,
                )
        if not available:
            names = ", ".join(spec.name for spec in self.specs) or "<none>"
            raise RuntimeError(f"No reference interpreter is available (configured: {names}).")
        return OracleInvoker(available)
