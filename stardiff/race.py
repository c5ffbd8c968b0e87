"""
Race-stress driver for the interpreter under test.

Loads a corpus of previously accepted programs and re-executes every one of
them forever, each on its own thread, all sharing one interpreter instance
and every optional language feature except recursion. The driver has no
verdict of its own: it exists so a race detector (e.g. ThreadSanitizer on a
free-threaded build) can watch concurrent executions.

Usage:
    python -m stardiff.race --corpus corpus/ [--duration SECONDS]
"""

from __future__ import annotations

import argparse
import sys
import threading
import time
from pathlib import Path

from stardiff.dialect import DialectConfig
from stardiff.interpreter import Interpreter, InterpreterError, StarlarkGoInterpreter

CORPUS_DIR = Path("corpus")


def load_corpus(directory: Path) -> list[bytes]:
    """
    Read every file in `directory` once, in name order.

    The first byte of each file is the leftover dialect header from the fuzz
    run that produced it and is stripped.
    """
    programs = []
    for path in sorted(directory.iterdir()):
        if not path.is_file():
            continue
        data = path.read_bytes()
        programs.append(data[1:] if data else data)
    return programs


def _discard(message: str) -> None:
    pass


class RaceStress:
    """Re-executes a fixed set of programs concurrently until stopped."""

    def __init__(
        self,
        interpreter: Interpreter,
        programs: list[bytes],
        dialect: DialectConfig | None = None,
        rounds: int | None = None,
    ) -> None:
        """
        Args:
            interpreter: Shared by every worker thread.
            programs: Program sources, one worker each.
            dialect: Defaults to every feature except recursion.
            rounds: Runs per worker before it exits; None runs forever.
        """
        self.interpreter = interpreter
        self.programs = programs
        self.dialect = dialect or DialectConfig.all_features()
        self.rounds = rounds
        self.stop_event = threading.Event()
        self.threads: list[threading.Thread] = []
        self._count_lock = threading.Lock()
        self.iterations = 0

    def _worker(self, source: bytes) -> None:
        completed = 0
        while not self.stop_event.is_set():
            if self.rounds is not None and completed >= self.rounds:
                return
            completed += 1
            try:
                program = self.interpreter.compile(source, self.dialect, frozenset())
                module = program.run(_discard, self.stop_event)
                module.freeze()
            except InterpreterError:
                pass
            finally:
                with self._count_lock:
                    self.iterations += 1

    def start(self) -> None:
        for index, source in enumerate(self.programs):
            thread = threading.Thread(
                target=self._worker, args=(source,), name=f"stardiff-race-{index}", daemon=True
            )
            thread.start()
            self.threads.append(thread)

    def stop(self) -> None:
        self.stop_event.set()

    def join(self, timeout: float | None = None) -> None:
        for thread in self.threads:
            thread.join(timeout)


def main() -> int:
    """Main entry point for the race-stress driver."""
    parser = argparse.ArgumentParser(
        description="Re-execute a corpus concurrently forever to expose data races."
    )
    parser.add_argument(
        "--corpus",
        type=Path,
        default=CORPUS_DIR,
        help=f"Directory of accepted programs (default: {CORPUS_DIR}).",
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Stop after this many seconds. Runs forever by default.",
    )
    args = parser.parse_args()

    if not args.corpus.is_dir():
        print(f"[!] Corpus directory not found: {args.corpus}", file=sys.stderr)
        return 1
    programs = load_corpus(args.corpus)
    if not programs:
        print(f"[!] Corpus directory is empty: {args.corpus}", file=sys.stderr)
        return 1

    stress = RaceStress(StarlarkGoInterpreter(), programs)
    print(f"[+] Racing {len(programs)} programs from {args.corpus}.", file=sys.stderr)
    stress.start()
    try:
        if args.duration is None:
            stress.stop_event.wait()
        else:
            time.sleep(args.duration)
    except KeyboardInterrupt:
        print("\n[!] Race stress stopped by user.", file=sys.stderr)
    finally:
        stress.stop()
    print(f"[+] Completed {stress.iterations} executions.", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
