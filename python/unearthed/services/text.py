"""Text normalization for highlight content coming from public clients.

Different readers export the same highlight with different typography
(smart quotes, non-breaking spaces, soft hyphens). Sanitized content is
used to recognise a highlight the user already has.
"""

import re
import unicodedata

_SINGLE_QUOTES = re.compile("[\u2018\u2019]")
_DOUBLE_QUOTES = re.compile("[\u201c\u201d]")
_DASHES = re.compile("[\u2013\u2014]")
_UNICODE_SPACES = re.compile("[\u00a0\u1680\u2000-\u200a\u202f\u205f\u3000]")
_ZERO_WIDTH = re.compile("[\u200b\u200c\u200d\ufeff]")
_SOFT_HYPHEN = re.compile("\u00ad")
_CONTROL = re.compile("[\u0000-\u0008\u000b\u000c\u000e-\u001f\u007f]")
_WHITESPACE_RUN = re.compile(r"\s+")


def sanitize_text(text: str | None) -> str:
    """Normalize highlight text for duplicate detection."""
    if not text or not isinstance(text, str):
        return ""

    text = unicodedata.normalize("NFKC", text)
    text = _SINGLE_QUOTES.sub("'", text)
    text = _DOUBLE_QUOTES.sub('"', text)
    text = _DASHES.sub("-", text)
    text = text.replace("\u2026", "...")
    text = _UNICODE_SPACES.sub(" ", text)
    text = _ZERO_WIDTH.sub("", text)
    text = _SOFT_HYPHEN.sub("", text)
    text = _CONTROL.sub("", text)
    return _WHITESPACE_RUN.sub(" ", text).strip()


def extract_number(location: str | None) -> int | None:
    """Digits of a location string as an int ("Page 12" -> 12), or None."""
    if not location:
        return None
    digits = re.sub(r"\D", "", location)
    return int(digits) if digits else None


def location_sort_key(location: str | None) -> tuple:
    """Sort key: numeric locations first in numeric order, then the rest lexically."""
    number = extract_number(location)
    if number is not None:
        return (0, number, location or "")
    return (1, 0, (location or "").casefold())
