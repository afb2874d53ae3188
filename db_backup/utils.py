import re
import string
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """
    Renders an instant as a filesystem-safe ISO-8601 string with millisecond precision,
    e.g. 2024-01-01T00-00-00-000Z.
    """
    moment = moment.astimezone(timezone.utc)
    iso = moment.strftime("%Y-%m-%dT%H:%M:%S") + f".{moment.microsecond // 1000:03d}Z"
    return re.sub(r"[:.]", "-", iso)


def sanitize_filename(name: str) -> str:
    """
    Sanitizes a string to be used as a valid filename.
    - Converts to lowercase.
    - Replaces spaces and common separators with hyphens.
    - Removes characters that are not alphanumeric or hyphens.
    - Trims leading/trailing hyphens.
    """
    # Convert to lowercase
    name = name.lower()

    # Replace spaces and other separators with hyphens
    name = re.sub(r'[\s_.]+', '-', name)

    # Allow only alphanumeric characters and hyphens
    allowed_chars = string.ascii_letters + string.digits + '-'
    name = ''.join(c for c in name if c in allowed_chars)

    # Replace multiple hyphens with a single one
    name = re.sub(r'--+', '-', name)

    # Trim leading/trailing hyphens
    name = name.strip('-')

    return name


def join_key(*parts: str) -> str:
    """Joins storage key segments with '/', skipping empty segments."""
    return "/".join(p.strip("/") for p in parts if p and p.strip("/"))
