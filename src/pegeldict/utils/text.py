import re
from typing import Iterable

UMLAUT_TRANSLITERATIONS = (("ü", "ue"), ("ä", "ae"), ("ö", "oe"))
DISTRICT_PREFIX_RE = re.compile(r"(land)?kreis", re.IGNORECASE)


def clean(text: str | None) -> str | None:
    if text is None:
        return None
    cleaned = " ".join(str(text).split()).strip()
    return cleaned or None


def first_present(items: Iterable[str | None]) -> str | None:
    for item in items:
        if item:
            return item
    return None


def contains(haystack: str | None, needle: str) -> bool:
    if not haystack:
        return False
    return needle.lower() in haystack.lower()


def transliterate_umlauts(text: str | None) -> str | None:
    """Return ``text`` with the first umlaut kind found spelled out, or None.

    Only one substitution kind is applied, checked in the order ü, ä, ö.
    """
    if not text:
        return None
    for umlaut, replacement in UMLAUT_TRANSLITERATIONS:
        if umlaut in text:
            return text.replace(umlaut, replacement)
    return None


def strip_district_prefix(text: str) -> str:
    return DISTRICT_PREFIX_RE.sub("", text).strip()


def split_list(text: str | None) -> list[str]:
    if not text:
        return []
    return [part.strip() for part in str(text).split(",") if part.strip()]


def parse_float(text: str | None) -> float | None:
    if text is None:
        return None
    try:
        return float(str(text).strip())
    except ValueError:
        return None
