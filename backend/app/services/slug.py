"""URL slug generation for movies and series."""

import re
from typing import Optional

_DISALLOWED = re.compile(r"[^a-z0-9\s_-]")
_SEPARATORS = re.compile(r"[\s_-]+")


def slugify(title: str, year: Optional[int] = None) -> str:
    """Build a URL-safe slug from a title and optional release year.

    ``slugify("The Matrix", 1999) == "the-matrix-1999"``. Uniqueness is not
    checked here; the unique index on ``slug`` rejects duplicates at write time.
    """
    value = (title or "").lower().strip()
    value = _DISALLOWED.sub("", value)
    value = _SEPARATORS.sub("-", value).strip("-")
    if year:
        value = f"{value}-{year}"
    return value
