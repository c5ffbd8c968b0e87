"""
Replay fuzz inputs through the differential harness.

Each input file is fed to Harness.run() exactly as a fuzzing engine would
feed it, header byte included. Replay stops at the first unexplained
divergence, prints the full report and exits with status 1.

Usage:
    python -m stardiff.replay [--profile superset|peer] INPUT [INPUT ...]
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from stardiff.harness import Harness, Verdict
from stardiff.health import HealthMonitor
from stardiff.interpreter import StarlarkGoInterpreter
from stardiff.oracles import OracleInvoker
from stardiff.profiles import PROFILES, get_profile

EXIT_OK = 0
EXIT_DIVERGENCE = 1
EXIT_NO_ORACLE = 2


def collect_inputs(paths: list[Path]) -> list[Path]:
    """Expand directories into their files, keeping the given order."""
    inputs: list[Path] = []
    for path in paths:
        if path.is_dir():
            inputs.extend(p for p in sorted(path.iterdir()) if p.is_file())
        else:
            inputs.append(path)
    return inputs


def replay(harness: Harness, inputs: list[Path]) -> int:
    """Run every input through `harness`; return the process exit status."""
    for path in inputs:
        result = harness.run(path.read_bytes())
        if result.verdict is Verdict.DIVERGENCE:
            assert result.report is not None
            print(f"[!] DIVERGENCE: {path}", file=sys.stderr)
            result.report.dump(sys.stderr)
            return EXIT_DIVERGENCE
        if result.suppressed_by:
            print(f"  [~] {path}: known divergence ({result.suppressed_by})", file=sys.stderr)
        elif result.verdict is Verdict.INTERESTING:
            print(f"  [+] {path}: interesting ({result.reason})", file=sys.stderr)
        else:
            print(f"  [-] {path}: uninteresting ({result.reason})", file=sys.stderr)
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    """Parse command-line arguments and replay the given inputs."""
    parser = argparse.ArgumentParser(
        description="stardiff: replay inputs through the Starlark differential harness."
    )
    parser.add_argument(
        "inputs",
        nargs="+",
        type=Path,
        help="Input files or directories of inputs.",
    )
    parser.add_argument(
        "--profile",
        choices=sorted(PROFILES),
        default="superset",
        help="Which reference interpreters to compare against (default: superset).",
    )
    parser.add_argument(
        "--primary-timeout",
        type=float,
        default=None,
        help="Seconds allowed for the interpreter under test (profile default otherwise).",
    )
    parser.add_argument(
        "--oracle-timeout",
        type=float,
        default=None,
        help="Seconds allowed for the whole iteration (profile default otherwise).",
    )
    parser.add_argument(
        "--health-log",
        type=Path,
        default=None,
        help="Append JSONL health events to this file.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging.",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    profile = get_profile(args.profile).with_timeouts(args.primary_timeout, args.oracle_timeout)
    try:
        invoker = OracleInvoker(profile.oracles).verify_oracles()
    except RuntimeError as e:
        print(f"[!] {e}", file=sys.stderr)
        return EXIT_NO_ORACLE

    health_monitor = HealthMonitor(args.health_log)
    harness = Harness(
        profile,
        StarlarkGoInterpreter(),
        health_monitor=health_monitor,
        oracle_invoker=invoker,
    )

    inputs = collect_inputs(args.inputs)
    print(
        f"[+] Replaying {len(inputs)} inputs with profile '{profile.name}' "
        f"(oracles: {', '.join(spec.name for spec in invoker.specs)}).",
        file=sys.stderr,
    )
    status = replay(harness, inputs)
    print(f"[+] Verdicts: {json.dumps(dict(harness.stats), sort_keys=True)}", file=sys.stderr)
    if health_monitor.counters:
        print(
            f"[+] Health events: {json.dumps(health_monitor.get_summary(), sort_keys=True)}",
            file=sys.stderr,
        )
    return status


if __name__ == "__main__":
    sys.exit(main())
