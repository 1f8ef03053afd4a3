"""Terminal identifier and tag validation."""

import re

from terminal_deployer.core.exceptions import ValidationError

_IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9._-]+$")


def is_valid_identifier(value: str) -> bool:
    if not value or not _IDENTIFIER_RE.fullmatch(value):
        return False
    # Dots alone are allowed by the charset but would address parent folders
    return ".." not in value and value != "."


def validate_identifier(value: str, kind: str = "identifier") -> str:
    """Return value unchanged, or raise ValidationError.

    Runs before any filesystem access that uses the value as a path segment.
    """
    if not isinstance(value, str) or not is_valid_identifier(value):
        raise ValidationError(f"Invalid {kind}: only letters, digits, '.', '-' and '_' are allowed", code="INVALID_SEGMENT")
    return value


def normalize_tag(tag: str) -> str:
    """Strip a trailing ``.zip`` and validate the remaining tag."""
    if isinstance(tag, str) and tag.lower().endswith(".zip"):
        tag = tag[: -len(".zip")]
    return validate_identifier(tag, "tag")
