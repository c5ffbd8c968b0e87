"""
Known divergences between Starlark and its Python reference interpreters.

Each rule pairs a structural marker in the program source with, where the
source alone is not specific enough, a fragment of the error text an oracle
printed. This is the only module that depends on the wording of oracle
error messages.

Rules are evaluated in DEFAULT_RULES order and the first match wins. Every
rule is a regression guard for a divergence that was triaged by hand.
"""

from __future__ import annotations

from stardiff.analysis import DivergenceCase, SuppressionRule

PYTHON2 = "python2"
PYTHON3 = "python3"


def _enumerate_laziness(case: DivergenceCase) -> bool:
    # Python's enumerate is a lazy iterator, Starlark's returns a list, so
    # only Starlark accepts `enumerate(())[:]`.
    return b"enumerate" in case.source


def _getattr_string_iterables(case: DivergenceCase) -> bool:
    return b"getattr" in case.source and (
        b"elems" in case.source or b"codepoints" in case.source
    )


SORTED_COMPANIONS = (b"len", b"int", b"dir", b"print")


def _sorted_arity(case: DivergenceCase) -> bool:
    # python3 allows sorted() only one positional argument and Starlark (like
    # python2) allows a second; python2 in turn rejects some print/len/dir
    # expressions eagerly. Together they reject programs Starlark accepts.
    if b"sorted" not in case.source:
        return False
    return any(token in case.source for token in SORTED_COMPANIONS)


def _python2_print_statement(case: DivergenceCase) -> bool:
    return b"print" in case.source and b"SyntaxError: invalid syntax" in case.output_of(PYTHON2)


def _big_int_to_float(case: DivergenceCase) -> bool:
    # Starlark converts arbitrarily large ints; Python refuses past float range.
    return b"int" in case.source and b"int too large to convert to float" in case.output_of(
        PYTHON3
    )


def _non_ascii_identifiers(case: DivergenceCase) -> bool:
    return not case.source.isascii() and b"invalid syntax" in case.output_of(PYTHON2)


def _unicode_surrogates(case: DivergenceCase) -> bool:
    return b"surrogates not allowed" in case.output_of(PYTHON3)


def _unhashable_membership(case: DivergenceCase) -> bool:
    return b"in" in case.source and (
        b"unhashable" in case.output_of(PYTHON2) or b"unhashable" in case.output_of(PYTHON3)
    )


def _reversed_protocol(case: DivergenceCase) -> bool:
    output = case.output_of(PYTHON3)
    return b"'reversed' object is not subscriptable" in output or b"is not reversible" in output


def _python2_int_literal(case: DivergenceCase) -> bool:
    return b"invalid literal for int" in case.output_of(PYTHON2)


RESERVED_NAMES = (b"None", b"True", b"False")
RESERVED_ASSIGNMENT_MESSAGES = (b"cannot assign to", b"assign to keyword")


def _reserved_word_assignment(case: DivergenceCase) -> bool:
    # None/True/False are ordinary predeclared names in Starlark and may be
    # shadowed at top level; Python treats them as keywords.
    if not any(name in case.source for name in RESERVED_NAMES):
        return False
    return any(case.any_output_contains(message) for message in RESERVED_ASSIGNMENT_MESSAGES)


KEYWORD_STRICTNESS_MESSAGES = (b"takes no keyword arguments", b"is an invalid keyword argument")


def _builtin_keyword_strictness(case: DivergenceCase) -> bool:
    return any(case.any_output_contains(message) for message in KEYWORD_STRICTNESS_MESSAGES)


def _type_returns_string(case: DivergenceCase) -> bool:
    # type() returns a string in Starlark and a type object in Python.
    return b"type(" in case.source and b"'type'" in case.output_of(PYTHON3)


DEFAULT_RULES: tuple[SuppressionRule, ...] = (
    SuppressionRule(
        name="enumerate-laziness",
        predicate=_enumerate_laziness,
        reason="enumerate is lazy in Python and eager in Starlark",
        reference="https://github.com/bazelbuild/starlark/issues/29",
    ),
    SuppressionRule(
        name="getattr-string-iterables",
        predicate=_getattr_string_iterables,
        reason="string elems/codepoints methods exist only in Starlark",
        reference="https://github.com/google/starlark-go/issues/69",
    ),
    SuppressionRule(
        name="sorted-arity",
        predicate=_sorted_arity,
        reason="python2 and python3 each reject a different part of sorted/print/len/dir usage",
    ),
    SuppressionRule(
        name="python2-print-statement",
        predicate=_python2_print_statement,
        reason="python2 parses print as a statement",
    ),
    SuppressionRule(
        name="big-int-to-float",
        predicate=_big_int_to_float,
        reason="Python limits int to float conversion; Starlark does not",
    ),
    SuppressionRule(
        name="non-ascii-identifiers",
        predicate=_non_ascii_identifiers,
        reason="python2 rejects non-ASCII identifiers",
    ),
    SuppressionRule(
        name="unicode-surrogates",
        predicate=_unicode_surrogates,
        reason="python3's UTF-8 codec rejects lone surrogates",
    ),
    SuppressionRule(
        name="unhashable-membership",
        predicate=_unhashable_membership,
        reason="membership tests on unhashable values",
        reference="https://github.com/google/starlark-go/issues/113",
    ),
    SuppressionRule(
        name="reversed-protocol",
        predicate=_reversed_protocol,
        reason="reversed is lazy in Python and eager in Starlark",
        reference="https://github.com/bazelbuild/starlark/issues/29",
    ),
    SuppressionRule(
        name="python2-int-literal",
        predicate=_python2_int_literal,
        reason="python2 int() parses string literals differently",
        reference="https://github.com/google/starlark-go/issues/130",
    ),
    SuppressionRule(
        name="reserved-word-assignment",
        predicate=_reserved_word_assignment,
        reason="None/True/False are keywords in Python but rebindable names in Starlark",
    ),
    SuppressionRule(
        name="builtin-keyword-strictness",
        predicate=_builtin_keyword_strictness,
        reason="Python builtins refuse keyword arguments Starlark accepts",
    ),
    SuppressionRule(
        name="type-returns-string",
        predicate=_type_returns_string,
        reason="type() returns a string in Starlark and a type object in Python",
    ),
)


def get_rule(name: str) -> SuppressionRule:
    for rule in DEFAULT_RULES:
        if rule.name == name:
            return rule
    raise KeyError(name)
