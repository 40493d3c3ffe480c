import re

_DISALLOWED = re.compile(r"[^a-z0-9\s-]")
_SEPARATORS = re.compile(r"[\s-]+")


def derive_slug(name: str) -> str:
    """
    URL-safe slug: lowercase, anything outside [a-z0-9 whitespace -] dropped,
    runs of whitespace/hyphens collapsed to a single hyphen.

    >>> derive_slug("DHS Hurricane 3!!")
    'dhs-hurricane-3'
    """
    lowered = (name or "").lower()
    cleaned = _DISALLOWED.sub("", lowered).strip()
    return _SEPARATORS.sub("-", cleaned).strip("-")
