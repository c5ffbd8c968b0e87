from __future__ import annotations

import hashlib
import sys
from dataclasses import dataclass, field
from textwrap import indent
from typing import Callable, TextIO

from stardiff.dialect import DialectConfig
from stardiff.utils import ExecutionResult, OracleResult


@dataclass(frozen=True)
class DivergenceCase:
    """Everything a suppression rule may look at."""

    data: bytes  # raw input, header included
    source: bytes  # effective program source
    dialect: DialectConfig
    primary: ExecutionResult
    oracles: tuple[OracleResult, ...]

    def output_of(self, name: str) -> bytes:
        """Combined output of the named oracle, or b"" if it did not run."""
        for result in self.oracles:
            if result.name == name:
                return result.output
        return b""

    def any_output_contains(self, needle: bytes) -> bool:
        return any(needle in result.output for result in self.oracles)


@dataclass(frozen=True)
class SuppressionRule:
    """A known, explained divergence between the interpreter and its oracles."""

    name: str
    predicate: Callable[[DivergenceCase], bool]
    reason: str
    reference: str = ""

    def matches(self, case: DivergenceCase) -> bool:
        return self.predicate(case)


@dataclass
class DivergenceReport:
    """The diagnostic dump for an unexplained divergence."""

    data: bytes
    source: bytes
    dialect: DialectConfig
    primary: ExecutionResult
    oracles: list[OracleResult] = field(default_factory=list)

    @property
    def fingerprint(self) -> str:
        """Short stable identifier for the diverging program."""
        return "DIVERGENCE:" + hashlib.sha256(self.source).hexdigest()[:16]

    def summary(self) -> str:
        names = "/".join(result.name for result in self.oracles) or "oracles"
        return f"interpreter accepted but {names} did not: {self.source!r}"

    def render(self) -> str:
        """Full diagnostic text: input, dialect and every side's output."""
        lines = [
            "=" * 80,
            f"UNCLASSIFIED DIVERGENCE {self.fingerprint}",
            "=" * 80,
            f"- Raw input:     {self.data!r}",
            f"- Source:        {self.source!r}",
            f"- Dialect:       {', '.join(self.dialect.enabled()) or '(none)'}",
            "--- interpreter under test ---",
            f"accepted: {self.primary.accepted}",
            "output:",
            indent(self.primary.output or "(empty)", "    "),
        ]
        for result in self.oracles:
            lines.append(f"--- {result.name} ---")
            lines.append(f"command: {' '.join(result.argv)}")
            lines.append(f"exit status: {result.returncode}")
            if result.spawn_error is not None:
                lines.append(f"spawn error: {result.spawn_error}")
            lines.append("output:")
            text = result.output.decode("utf-8", errors="replace")
            lines.append(indent(text or "(empty)", "    "))
        lines.append("=" * 80)
        return "\n".join(lines)

    def dump(self, stream: TextIO | None = None) -> None:
        print(self.render(), file=stream or sys.stderr, flush=True)


class DivergenceError(AssertionError):
    """Raised when the interpreter accepted a program every oracle rejected
    and no suppression rule explains it. Fuzzing must stop here."""

    def __init__(self, report: DivergenceReport) -> None:
        super().__init__(report.summary())
        self.report = report


class DivergenceClassifier:
    """Matches unanimous oracle rejections against known divergences."""

    def __init__(self, rules: tuple[SuppressionRule, ...]) -> None:
        self.rules = rules

    def classify(self, case: DivergenceCase) -> SuppressionRule | None:
        """Return the first rule explaining `case`, or None if none does."""
        for rule in self.rules:
            if rule.matches(case):
                return rule
        return None

    @staticmethod
    def build_report(case: DivergenceCase) -> DivergenceReport:
        return DivergenceReport(
            data=case.data,
            source=case.source,
            dialect=case.dialect,
            primary=case.primary,
            oracles=list(case.oracles),
        )
