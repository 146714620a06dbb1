import html
import re
from typing import Any, Iterable, List, Optional, TypeVar

import bleach
from rapidfuzz.distance import Levenshtein

DUPLICATE_SIMILARITY = 0.9
MAX_MESSAGE_CHARS = 2000

PLACEHOLDER_VALUES = {
    "", "tbd", "tba", "to be announced", "to be determined", "to be confirmed",
    "location tbd", "location tba", "n/a", "na", "none", "null", "unknown",
    "not specified", "not available", "not provided",
}

# Lines such as "Date: ...", "**Venue**: ..." that must never reach a draft card.
_RESTRICTED_LINE = re.compile(
    r"^\s*(?:[-*•]\s*)?\**\s*(?:date|time|day|month|location|venue|address|mode|price|category)s?\s*\**\s*:.*$",
    re.IGNORECASE | re.MULTILINE,
)
_MONTHS = (r"(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|aug(?:ust)?|"
           r"sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)")
_DATE_TIME_PATTERNS = [
    re.compile(r"\b\d{4}-\d{2}-\d{2}(?:[T ]\d{2}:\d{2}(?::\d{2})?)?\b"),
    re.compile(r"\b\d{1,2}/\d{1,2}/\d{2,4}\b"),
    re.compile(rf"\b{_MONTHS}\.?\s+\d{{1,2}}(?:st|nd|rd|th)?(?:\s*[-–]\s*\d{{1,2}})?(?:,?\s+\d{{4}})?\b",
               re.IGNORECASE),
    re.compile(rf"\b\d{{1,2}}(?:st|nd|rd|th)?\s+(?:of\s+)?{_MONTHS}\b(?:,?\s+\d{{4}})?", re.IGNORECASE),
    re.compile(r"\b\d{1,2}:\d{2}\s*(?:[ap]\.?m\.?)?", re.IGNORECASE),
    re.compile(r"\b\d{1,2}\s*[ap]\.?m\.?(?=\W|$)", re.IGNORECASE),
]

T = TypeVar("T")


def normalize_title(title: Optional[str]) -> str:
    return re.sub(r"\s+", " ", (title or "")).strip().casefold()


def normalize_url(url: Optional[str]) -> Optional[str]:
    if not url or not url.strip():
        return None
    return url.strip().lower().rstrip("/")


def source_key(title: str, url: Optional[str]) -> str:
    """Second dedup identity of an event: its source URL, else its title."""
    return normalize_url(url) or f"title:{normalize_title(title)}"


def clean_value(value: Optional[str]) -> Optional[str]:
    """Return ``value`` stripped, or None when it is empty or a placeholder such as "TBD"."""
    if value is None:
        return None
    text = str(value).strip()
    if text.casefold().rstrip(".") in PLACEHOLDER_VALUES:
        return None
    return text


def is_placeholder(value: Optional[str]) -> bool:
    return value is not None and clean_value(value) is None


def title_similarity(a: str, b: str) -> float:
    """(longer - edit distance) / longer, on case-folded titles."""
    return Levenshtein.normalized_similarity(normalize_title(a), normalize_title(b))


def dedupe_by_title_and_link(items: Iterable[T], *, threshold: float = DUPLICATE_SIMILARITY) -> List[T]:
    """Keep the first of any group whose titles are near-identical or whose links match.

    Items need ``title`` and ``link`` attributes.
    """
    kept: List[T] = []
    seen_links = set()
    for item in items:
        link = normalize_url(getattr(item, "link", None))
        if link and link in seen_links:
            continue
        title = getattr(item, "title", "") or ""
        if any(title_similarity(title, getattr(k, "title", "") or "") >= threshold for k in kept):
            continue
        kept.append(item)
        if link:
            seen_links.add(link)
    return kept


def strip_restricted_fields(text: Optional[str]) -> str:
    """Remove date/time/location/mode/price lines and inline date or time mentions."""
    if not text:
        return ""
    cleaned = _RESTRICTED_LINE.sub("", text)
    for pattern in _DATE_TIME_PATTERNS:
        cleaned = pattern.sub("", cleaned)
    cleaned = re.sub(r"[ \t]+([,.;:])", r"\1", cleaned)
    cleaned = re.sub(r"[ \t]{2,}", " ", cleaned)
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    return cleaned.strip()


def truncate(text: Optional[str], limit: int) -> str:
    text = text or ""
    return text if len(text) <= limit else text[:limit].rstrip() + "..."


def sanitize(value: Any, max_len: int = MAX_MESSAGE_CHARS) -> str:
    """
    Coerce user input to plain text:
    - None -> ''
    - every tag stripped with bleach, entities decoded back to characters
    - truncated to max_len
    """
    text = "" if value is None else str(value)
    cleaned = html.unescape(bleach.clean(text, tags=set(), strip=True))
    return cleaned.strip()[:max_len]
