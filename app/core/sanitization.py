"""Input sanitization and validation utilities."""

import re
from typing import Optional
from urllib.parse import urlparse

import bleach


MAX_LENGTHS = {
    "name": 100,
    "email": 255,
    "description": 1000,
    "alias": 50,
    "url": 2048,
    "default": 255,
}

PATTERNS = {
    "alias": re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$"),
}


def sanitize_string(
    value: str,
    max_length: int = MAX_LENGTHS["default"],
    strip_html: bool = True,
    allow_newlines: bool = False,
) -> str:
    """
    Sanitize a string input.

    - Strips leading/trailing whitespace
    - Removes HTML tags
    - Truncates to max length
    - Optionally collapses newlines
    """
    if not value:
        return ""

    value = value.strip()

    if strip_html:
        value = bleach.clean(value, tags=[], strip=True)

    if not allow_newlines:
        value = " ".join(value.split())

    if len(value) > max_length:
        value = value[:max_length]

    return value


def sanitize_name(value: str) -> str:
    """Sanitize a name field (person, dashboard, KPI, integration, share link)."""
    return sanitize_string(value, max_length=MAX_LENGTHS["name"])


def sanitize_optional_name(value: Optional[str]) -> Optional[str]:
    return sanitize_name(value) if value is not None else None


def sanitize_email(value: str) -> str:
    """Sanitize and lowercase an email."""
    return sanitize_string(value, max_length=MAX_LENGTHS["email"]).lower()


def sanitize_description(value: Optional[str]) -> Optional[str]:
    """Sanitize a description field (allows newlines)."""
    if value is None:
        return None
    return sanitize_string(
        value,
        max_length=MAX_LENGTHS["description"],
        allow_newlines=True,
    )


def validate_alias(value: str) -> bool:
    """An alias must be usable as a formula variable."""
    if not value or len(value) > MAX_LENGTHS["alias"]:
        return False
    return bool(PATTERNS["alias"].match(value))


def validate_http_url(value: str) -> bool:
    """Only absolute http(s) URLs are accepted for images and API sources."""
    if not value or len(value) > MAX_LENGTHS["url"]:
        return False
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)
