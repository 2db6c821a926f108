"""
Utility helpers for the Max dialogue core

Small, dependency-free functions shared by the extractor, optimizer
and inquiry engine: key normalization, timestamp parsing/rendering,
language resolution and ID generation.
"""

import logging
import re
import unicodedata
import uuid
from datetime import datetime, timezone
from typing import Optional, Union

logger = logging.getLogger(__name__)

SUPPORTED_LANGUAGES = ("zh", "en")

# Quote characters stripped from the ends of a citation title
_TITLE_QUOTES = "\"'“”‘’「」『』《》"

_WHITESPACE_RE = re.compile(r"\s+")


def generate_session_id(short=True):
    """
    Generate unique session identifier

    Args:
        short (bool): If True, return 8-char hex. If False, return full UUID.

    Returns:
        str: Session ID

    Examples:
        >>> generate_session_id()
        'a3f7e2b9'
    """
    full_id = uuid.uuid4().hex
    return full_id[:8] if short else full_id


def normalize_key(text: Optional[str]) -> str:
    """
    Fold text into a comparison key.

    NFKC-normalized, case-folded, internal whitespace collapsed to single
    spaces, leading/trailing whitespace removed. None becomes "".
    """
    if not text:
        return ""
    folded = unicodedata.normalize("NFKC", str(text)).casefold()
    return _WHITESPACE_RE.sub(" ", folded).strip()


def normalize_title(title: Optional[str]) -> str:
    """
    Identity key for a cited source or evidence candidate.

    Same as normalize_key() with surrounding quote marks removed, so
    '"Paper A"' and 'paper a' collapse to the same key.

    Examples:
        >>> normalize_title('  "Sleep and Amygdala Reactivity" ')
        'sleep and amygdala reactivity'
    """
    key = normalize_key(title)
    return key.strip(_TITLE_QUOTES + " ").strip()


def resolve_language(language: Optional[str], default: str = "zh") -> str:
    """
    Map a caller language code onto a supported table key.

    "en", "en-US", "EN" -> "en"; "zh", "zh-Hans" -> "zh".
    Anything else falls back to default.
    """
    if language:
        code = str(language).strip().lower().replace("_", "-").split("-")[0]
        if code in SUPPORTED_LANGUAGES:
            return code
        logger.warning(f"Unsupported language '{language}', falling back to '{default}'")
    return default


def ensure_utc(moment: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones to UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_iso8601(moment: datetime) -> str:
    """
    Render a datetime as ISO-8601 UTC with a 'Z' suffix.

    Examples:
        >>> format_iso8601(datetime(1970, 1, 1))
        '1970-01-01T00:00:00Z'
    """
    return ensure_utc(moment).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp or a YYYY-MM-DD date into an aware UTC datetime.

    Returns None for None, empty strings and anything unparseable.
    Never raises.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    # fromisoformat() only learned the 'Z' suffix in 3.11
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(text))
    except ValueError:
        pass
    try:
        return datetime.strptime(text[:10], "%Y-%m-%d").replace(tzinfo=timezone.utc)
    except ValueError:
        logger.warning(f"Unparseable timestamp: {value!r}")
        return None
