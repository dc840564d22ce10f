"""URL checks against manifest schema rules."""

from __future__ import annotations

import re

import httpx

from winget_prefill.schemas import ManifestSchema


def validate_url(
    candidate: str | None,
    schema: ManifestSchema,
    can_be_blank: bool = False,
) -> str | None:
    """Check a URL against the schema's URL rules.

    Args:
        candidate: The URL to check
        schema: Schema supplying the URL pattern and max length
        can_be_blank: Whether an empty value is acceptable

    Returns:
        An error message, or None if the URL is valid
    """
    if candidate is None or not candidate.strip():
        return None if can_be_blank else "URL must not be blank"
    if len(candidate) > schema.url_max_length:
        return f"URL must be at most {schema.url_max_length} characters"
    if not re.match(schema.url_pattern, candidate):
        return f"URL must match the pattern {schema.url_pattern}"
    try:
        parsed = httpx.URL(candidate)
    except httpx.InvalidURL as exc:
        return f"URL is not well formed: {exc}"
    if not parsed.host:
        return "URL must have a host"
    return None


def parse_web_url(value: str | None) -> str | None:
    """Best-effort parse of a free-form web address such as a profile blog.

    Values without a scheme are read as https. Returns None when the value
    cannot be turned into an absolute http(s) URL.
    """
    if value is None or not value.strip():
        return None
    value = value.strip()
    if "://" not in value:
        value = f"https://{value}"
    try:
        parsed = httpx.URL(value)
    except httpx.InvalidURL:
        return None
    if parsed.scheme not in ("http", "https") or not parsed.host:
        return None
    return value
