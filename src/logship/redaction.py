"""Redaction of sensitive values in environment-details dumps."""

from __future__ import annotations

import re
from collections.abc import Mapping

from logship.errors import SerializationError
from logship.models import EnvironmentDetails

REDACTION_REPLACEMENT_TEXT = "*********(redacted)"
DEFAULT_REDACTION_PATTERN = r"(?i)secret|password|token"


def compile_pattern(pattern: str | re.Pattern[str] | None) -> re.Pattern[str]:
    if pattern is None:
        return re.compile(DEFAULT_REDACTION_PATTERN)
    if isinstance(pattern, re.Pattern):
        return pattern
    return re.compile(pattern)


def redact_pairs(pairs, pattern: str | re.Pattern[str] | None = None) -> list[tuple[str, str]]:
    """Redact one category; ``pairs`` must be a sequence of ``(key, value)`` pairs."""
    if not isinstance(pairs, (list, tuple)):
        raise SerializationError(f"Expected a list of (key, value) pairs, got {type(pairs).__name__}")

    regex = compile_pattern(pattern)
    redacted: list[tuple[str, str]] = []
    for pair in pairs:
        if not isinstance(pair, (list, tuple)) or len(pair) != 2:
            raise SerializationError(f"Expected a (key, value) pair, got {pair!r}")
        key, value = pair
        if not isinstance(key, str):
            raise SerializationError(f"Property keys must be strings, got {type(key).__name__}")
        redacted.append((key, REDACTION_REPLACEMENT_TEXT if regex.search(key) else value))
    return redacted


def redact(
    environment_details: EnvironmentDetails,
    pattern: str | re.Pattern[str] | None = None,
) -> dict[str, list[tuple[str, str]]]:
    """Return a copy of ``environment_details`` with sensitive values replaced.

    Keys are matched with ``re.search``; keys and all other values are kept
    as they are, so applying the function twice gives the same result.
    Input that is not shaped as category -> (key, value) pairs raises
    ``SerializationError``.
    """
    if not isinstance(environment_details, Mapping):
        raise SerializationError(
            f"Environment details must map category names to pairs, got {type(environment_details).__name__}"
        )
    regex = compile_pattern(pattern)
    return {category: redact_pairs(pairs, regex) for category, pairs in environment_details.items()}
