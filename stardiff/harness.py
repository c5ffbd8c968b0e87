"""
The differential fuzzing pipeline.

One call to Harness.run() processes one fuzz input:

    raw bytes -> InputFilter -> dialect header -> PrimaryExecutor
              -> OracleInvoker (only if accepted) -> DivergenceClassifier
              (only if every oracle rejected)

Harness.fuzz() wraps run() in the contract fuzzing engines expect: 0 for
uninteresting, 1 for interesting, and a DivergenceError for a bug.
"""

from __future__ import annotations

import logging
import sys
from collections import Counter
from dataclasses import dataclass
from enum import IntEnum

from stardiff.analysis import (
    DivergenceCase,
    DivergenceClassifier,
    DivergenceError,
    DivergenceReport,
)
from stardiff.dialect import DialectConfig, shift_guard, split_header
from stardiff.execution import PrimaryExecutor
from stardiff.filters import InputFilter
from stardiff.health import HealthMonitor
from stardiff.interpreter import Interpreter
from stardiff.oracles import Consultation, OracleInvoker, Outcome
from stardiff.profiles import HarnessProfile
from stardiff.utils import Deadline, ExecutionResult

logger = logging.getLogger(__name__)


class Verdict(IntEnum):
    UNINTERESTING = 0
    INTERESTING = 1
    DIVERGENCE = 2


@dataclass(frozen=True)
class IterationResult:
    """What one fuzz iteration concluded, and why."""

    verdict: Verdict
    reason: str | None = None
    suppressed_by: str | None = None
    primary: ExecutionResult | None = None
    report: DivergenceReport | None = None


class Harness:
    """Runs fuzz inputs through the differential pipeline of one profile."""

    def __init__(
        self,
        profile: HarnessProfile,
        interpreter: Interpreter,
        health_monitor: HealthMonitor | None = None,
        oracle_invoker: OracleInvoker | None = None,
        predeclared: frozenset[str] = frozenset(),
    ) -> None:
        """
        Args:
            profile: Oracles, deadlines and known divergences to use.
            interpreter: The interpreter under test.
            health_monitor: Optional event recorder.
            oracle_invoker: Overrides the invoker built from the profile
                (e.g. one already narrowed by verify_oracles()).
            predeclared: Global names the resolver treats as defined.
        """
        self.profile = profile
        self.input_filter = InputFilter(profile.known_gaps)
        self.executor = PrimaryExecutor(interpreter, predeclared)
        self.oracle_invoker = oracle_invoker or OracleInvoker(profile.oracles)
        self.classifier = DivergenceClassifier(profile.rules)
        self.health_monitor = health_monitor
        # Last-write-wins; an empty input runs under the previous dialect.
        self.dialect = DialectConfig()
        self.stats: Counter[str] = Counter()

    def _conclude(self, result: IterationResult) -> IterationResult:
        self.stats[result.verdict.name.lower()] += 1
        if result.reason:
            self.stats[result.reason] += 1
        return result

    def run(self, data: bytes) -> IterationResult:
        """Process one input and classify it. Never raises for a divergence."""
        filter_verdict = self.input_filter.check(data)
        if filter_verdict.skip:
            return self._conclude(IterationResult(Verdict.UNINTERESTING, filter_verdict.reason))

        dialect, source = split_header(data, self.dialect)
        if not self.profile.honor_header and data:
            dialect = DialectConfig()
        self.dialect = dialect

        if shift_guard(dialect, source):
            return self._conclude(IterationResult(Verdict.UNINTERESTING, "left-shift"))

        outer = Deadline(self.profile.oracle_timeout)
        primary = self.executor.execute(source, dialect, outer.child(self.profile.primary_timeout))
        if primary.timed_out:
            if self.health_monitor:
                self.health_monitor.record_primary_timeout(self.executor.abandoned_workers())
            return self._conclude(
                IterationResult(Verdict.UNINTERESTING, "primary-timeout", primary=primary)
            )
        if not primary.accepted:
            return self._conclude(
                IterationResult(
                    Verdict.UNINTERESTING, f"{primary.failure_stage}-error", primary=primary
                )
            )

        consultation = self.oracle_invoker.consult(source, outer)
        self._record_consultation(consultation)
        if consultation.outcome is not Outcome.REJECTED:
            return self._conclude(
                IterationResult(
                    Verdict.INTERESTING,
                    f"oracle-{consultation.outcome.value.lower()}",
                    primary=primary,
                )
            )

        case = DivergenceCase(
            data=data,
            source=source,
            dialect=dialect,
            primary=primary,
            oracles=tuple(consultation.results),
        )
        rule = self.classifier.classify(case)
        if rule is not None:
            logger.debug("divergence suppressed by %s: %r", rule.name, source)
            if self.health_monitor:
                self.health_monitor.record_suppressed(rule.name, source)
            return self._conclude(
                IterationResult(
                    Verdict.INTERESTING, "suppressed", suppressed_by=rule.name, primary=primary
                )
            )

        report = self.classifier.build_report(case)
        if self.health_monitor:
            self.health_monitor.record_divergence(report.fingerprint, source)
        return self._conclude(
            IterationResult(Verdict.DIVERGENCE, "divergence", primary=primary, report=report)
        )

    def _record_consultation(self, consultation: Consultation) -> None:
        if self.health_monitor is None or not consultation.results:
            return
        for result in consultation.unavailable:
            self.health_monitor.record_oracle_unavailable(result.name, str(result.spawn_error))
        if consultation.outcome is Outcome.TIMED_OUT:
            self.health_monitor.record_oracle_timeout(consultation.results[-1].name)

    def fuzz(self, data: bytes) -> int:
        """
        The fuzz-engine entry point.

        Returns 0 (uninteresting) or 1 (interesting). An unexplained
        divergence is a correctness bug: its report is written to stderr and
        DivergenceError is raised so automated runs stop on it.
        """
        result = self.run(data)
        if result.verdict is Verdict.DIVERGENCE:
            assert result.report is not None
            result.report.dump(sys.stderr)
            raise DivergenceError(result.report)
        return int(result.verdict)
