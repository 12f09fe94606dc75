"""Whole-word matching with inflection support.

A keyword matches when it starts at a word boundary and is followed only by
more word characters, so ``cry`` matches ``cry`` and ``crying``
but never ``acrylic``.
"""

import re
from functools import lru_cache
from typing import Optional


@lru_cache(maxsize=256)
def _compile(keyword: str) -> "re.Pattern[str]":
    return re.compile(r"(?<!\w)" + re.escape(keyword) + r"\w*", re.IGNORECASE)


class WordMatcher:
    """Reusable matcher for one keyword."""

    def __init__(self, keyword: str):
        self.keyword = keyword.strip().lower() if keyword else ""
        self._pattern: Optional["re.Pattern[str]"] = _compile(self.keyword) if self.keyword else None

    def matches(self, text: object) -> bool:
        """Check whether ``text`` contains the keyword or an inflection of it."""
        if self._pattern is None or not isinstance(text, str) or not text:
            return False
        return self._pattern.search(text) is not None

    __call__ = matches

    def __repr__(self) -> str:
        return f"WordMatcher({self.keyword!r})"


def matches_word(text: object, keyword: str) -> bool:
    """Case-insensitive whole-word (or inflected form) match."""
    return WordMatcher(keyword).matches(text)
