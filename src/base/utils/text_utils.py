import re
from typing import Any

# Local part, @, domain with at least one dot and a TLD of 2+ letters
EMAIL_PATTERN = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*\.[a-zA-Z]{2,}$"
)


def normalize_email(value: object) -> str:
    """Trim and lower-case an email; anything without an '@' becomes ''."""
    if not isinstance(value, str):
        return ""
    trimmed = value.strip().lower()
    if "@" not in trimmed:
        return ""
    return trimmed


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_PATTERN.match(value))


def well_formed(value: str) -> str:
    """Replace lone UTF-16 surrogates with U+FFFD so the text encodes as UTF-8."""
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        # Paired surrogates recombine; unpaired ones are replaced
        return value.encode("utf-16-le", "surrogatepass").decode("utf-16-le", "replace")
    return value


def well_formed_json(value: Any) -> Any:
    """Apply ``well_formed`` to every string (keys included) of a decoded JSON value."""
    if isinstance(value, str):
        return well_formed(value)
    if isinstance(value, list):
        return [well_formed_json(item) for item in value]
    if isinstance(value, dict):
        return {well_formed(key): well_formed_json(item) for key, item in value.items()}
    return value
