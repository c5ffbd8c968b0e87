"""
Cheap pre-execution filtering of fuzz inputs.

Every check here runs on raw bytes before any parsing cost is paid. A skip
trades coverage for throughput; each entry names the uninteresting input
shape it removes.
"""

from __future__ import annotations

import re
from dataclasses import dataclass


@dataclass(frozen=True)
class KnownGap:
    """An already-triaged divergence recognised by token co-occurrence."""

    name: str
    tokens: tuple[bytes, ...]
    reference: str = ""

    def matches(self, data: bytes) -> bool:
        return all(token in data for token in self.tokens)


@dataclass(frozen=True)
class FilterVerdict:
    skip: bool
    reason: str | None = None


PROCEED = FilterVerdict(skip=False)

# getattr on a string with "elems" differs on purpose between implementations.
GETATTR_ELEMS_GAP = KnownGap(
    name="getattr-elems",
    tokens=(b"getattr", b"elems"),
    reference="https://github.com/google/starlark-go/issues/69",
)


class InputFilter:
    """Reject structurally uninteresting inputs before execution."""

    # Long runs of hex-looking digits build huge numbers: slow, never buggy.
    BIG_NUMBER_PATTERN = re.compile(rb"[0-9a-fA-F]{3,}")
    # Repeated multiplication blows up integers and collections alike.
    MULTIPLICATION = b"*"
    # The reference interpreters choke on NUL in command-line source.
    NUL = b"\x00"

    def __init__(self, known_gaps: tuple[KnownGap, ...] = ()) -> None:
        self.known_gaps = known_gaps

    def check(self, data: bytes) -> FilterVerdict:
        """Return whether raw input `data` should be skipped, and why.

        Only the program body is inspected: the leading dialect header is a
        bitfield, not source text, so e.g. a 0x00 or 0x2a header is fine.
        """
        body = data[1:]
        if self.NUL in body:
            return FilterVerdict(skip=True, reason="nul-byte")
        if self.BIG_NUMBER_PATTERN.search(body):
            return FilterVerdict(skip=True, reason="big-number")
        if self.MULTIPLICATION in body:
            return FilterVerdict(skip=True, reason="multiplication")
        for gap in self.known_gaps:
            if gap.matches(body):
                return FilterVerdict(skip=True, reason=f"known-gap:{gap.name}")
        return PROCEED
