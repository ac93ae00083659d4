"""
Environment utilities

Helpers for turning environment-style string values into typed settings.
"""

import json
from typing import Iterable, Mapping


def is_flag_set(value: str | None) -> bool:
    """Return True only for the explicit "1" flag value."""
    return str(value or "").strip() == "1"


def parse_email_set(value: str | None) -> frozenset[str]:
    """Parse a comma separated email list into a normalized set."""
    if not value:
        return frozenset()
    return frozenset(
        part.strip().lower() for part in str(value).split(",") if part.strip()
    )


def parse_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in str(value).split(",") if part.strip()]


def parse_feature_list(value: str | None, fallback: Iterable[str]) -> list[str]:
    """
    Parse a feature list given either as a JSON array or a comma separated string.

    Args:
        value: Raw environment value.
        fallback: Features used when the value is missing or not a list.

    Returns:
        list[str]: Trimmed, non-empty feature names.
    """
    if not value:
        return list(fallback)
    try:
        parsed = json.loads(value)
    except ValueError:
        return parse_csv(value)
    if isinstance(parsed, list):
        return [
            entry.strip() for entry in parsed if isinstance(entry, str) and entry.strip()
        ]
    return list(fallback)


def parse_positive_number(value: str | None, default: float) -> float:
    """Parse a strictly positive number, falling back to the default."""
    try:
        number = float(str(value).strip())
    except (TypeError, ValueError):
        return default
    if number != number or number <= 0 or number == float("inf"):
        return default
    return number


def is_deployed_environment(environ: Mapping[str, str], signals: Iterable[str]) -> bool:
    """
    Check whether any deployment signal is present in the environment.

    Returns:
        bool: True if running in a deployed (non-local) environment.
    """
    return any(str(environ.get(name) or "").strip() for name in signals)
