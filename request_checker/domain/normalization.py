from __future__ import annotations

import re
import unicodedata

# Long-vowel mark and the dash look-alikes people type in its place
_LONG_VOWEL_CHARS = "ーｰ－—―‐-〜~"
_LONG_VOWEL_PATTERN = re.compile("[" + re.escape(_LONG_VOWEL_CHARS) + "]")
_MULTISPACE_PATTERN = re.compile(r"\s+")


def normalize_for_search(value: str) -> str:
    """Normalize text for substring matching.

    NFKC folds full-width latin/digits and half-width katakana onto their
    canonical forms, casefold handles case, and every long-vowel/dash variant
    collapses onto ``ー``. Runs of whitespace collapse to one space.
    """
    value = value or ""
    value = unicodedata.normalize("NFKC", value)
    value = value.casefold()
    value = _LONG_VOWEL_PATTERN.sub("ー", value)
    value = _MULTISPACE_PATTERN.sub(" ", value).strip()
    return value
