"""
Dialect configuration for the interpreter under test.

Each fuzz input may start with a one-byte header whose low six bits toggle
optional language features. The header is stripped before the remaining
bytes are treated as program source.
"""

from __future__ import annotations

from dataclasses import dataclass, fields

# Header bit assignments, in bit order.
HEADER_FLAGS: tuple[str, ...] = (
    "allow_float",
    "allow_set",
    "allow_lambda",
    "allow_nested_def",
    "allow_bitwise",
    "allow_global_reassign",
)

LEFT_SHIFT = b"<<"


@dataclass(frozen=True)
class DialectConfig:
    """The optional-feature flags a program is compiled against.

    Recursion is never enabled from a fuzz header: unbounded recursion only
    produces stack-exhaustion noise.
    """

    allow_float: bool = False
    allow_set: bool = False
    allow_lambda: bool = False
    allow_nested_def: bool = False
    allow_bitwise: bool = False
    allow_global_reassign: bool = False
    allow_recursion: bool = False

    @classmethod
    def from_header(cls, header: int) -> DialectConfig:
        """Decode a header byte; bit i enables HEADER_FLAGS[i]."""
        flags = {name: bool(header & (1 << bit)) for bit, name in enumerate(HEADER_FLAGS)}
        return cls(**flags)

    @classmethod
    def all_features(cls) -> DialectConfig:
        """Every optional feature on, except recursion."""
        return cls(**{name: True for name in HEADER_FLAGS})

    def to_header(self) -> int:
        """Encode back to a header byte (recursion has no bit)."""
        header = 0
        for bit, name in enumerate(HEADER_FLAGS):
            if getattr(self, name):
                header |= 1 << bit
        return header

    def enabled(self) -> list[str]:
        """Names of the enabled flags, for diagnostics."""
        return [f.name for f in fields(self) if getattr(self, f.name)]


def split_header(data: bytes, prior: DialectConfig) -> tuple[DialectConfig, bytes]:
    """
    Split a raw fuzz input into its dialect and program source.

    An empty input keeps the prior dialect and yields an empty program.
    """
    if not data:
        return prior, b""
    return DialectConfig.from_header(data[0]), data[1:]


def shift_guard(dialect: DialectConfig, source: bytes) -> bool:
    """True when the iteration must be skipped because of a left shift.

    Left shift on fuzzer-controlled operands reliably builds huge integers,
    which only ever show up as slow runs.
    """
    return dialect.allow_bitwise and LEFT_SHIFT in source
