"""stardiff: a differential fuzzing harness for Starlark interpreters."""

__version__ = "0.1.0"
