"""
Named harness configurations.

A profile bundles the reference interpreters to consult, the nested
deadlines, whether the dialect header is honored, and which known
divergences are filtered or suppressed.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from stardiff.analysis import SuppressionRule
from stardiff.filters import GETATTR_ELEMS_GAP, KnownGap
from stardiff.oracles import OracleSpec
from stardiff.suppression import DEFAULT_RULES, PYTHON2, PYTHON3


@dataclass(frozen=True)
class HarnessProfile:
    name: str
    oracles: tuple[OracleSpec, ...]
    # Seconds for the interpreter under test.
    primary_timeout: float
    # Seconds for the whole iteration; wraps primary_timeout.
    oracle_timeout: float
    honor_header: bool = True
    known_gaps: tuple[KnownGap, ...] = ()
    rules: tuple[SuppressionRule, ...] = ()

    def with_timeouts(
        self, primary_timeout: float | None = None, oracle_timeout: float | None = None
    ) -> HarnessProfile:
        return replace(
            self,
            primary_timeout=self.primary_timeout if primary_timeout is None else primary_timeout,
            oracle_timeout=self.oracle_timeout if oracle_timeout is None else oracle_timeout,
        )


# Python is a superset of Starlark: what Starlark accepts, Python should too.
SUPERSET_PROFILE = HarnessProfile(
    name="superset",
    oracles=(
        OracleSpec(PYTHON2, ("python2", "-c")),
        OracleSpec(PYTHON3, ("python3", "-c")),
    ),
    primary_timeout=5.0,
    oracle_timeout=10.0,
    rules=DEFAULT_RULES,
)

# starlark-rust implements the same language and must agree exactly. Its
# command line has no dialect switches, so every optional feature stays off.
PEER_PROFILE = HarnessProfile(
    name="peer",
    oracles=(OracleSpec("starlark-rust", ("starlark-repl",), source_via="file"),),
    primary_timeout=1.0,
    oracle_timeout=5.0,
    honor_header=False,
    known_gaps=(GETATTR_ELEMS_GAP,),
)

PROFILES: dict[str, HarnessProfile] = {
    SUPERSET_PROFILE.name: SUPERSET_PROFILE,
    PEER_PROFILE.name: PEER_PROFILE,
}


def get_profile(name: str) -> HarnessProfile:
    try:
        return PROFILES[name]
    except KeyError:
        raise ValueError(
            f"Unknown profile {name!r}; expected one of: {', '.join(sorted(PROFILES))}"
        ) from None
