from __future__ import annotations

import re
from functools import lru_cache
from typing import Optional, Pattern, Sequence

from .config import letter_pattern_for, stopwords_for


@lru_cache(maxsize=None)
def _letter_re(pattern: str) -> Pattern[str]:
    return re.compile(pattern, re.IGNORECASE | re.UNICODE)


def language_likelihood(words: Sequence[str], lang: Optional[str]) -> float:
    """
    Rough plausibility that `words` (normalized tokens) are in `lang`:
    - letter_ratio: share of tokens made only of the script's letters
    - stop_ratio: stopword hits over max(2, n) so one-word answers are not inflated
    Languages without a stopword list are judged on script conformance only.
    """
    if not words:
        return 0.0

    letters = _letter_re(letter_pattern_for(lang))
    stopwords = stopwords_for(lang)

    letters_ok = sum(1 for w in words if letters.fullmatch(w))
    stop_hits = sum(1 for w in words if w in stopwords)

    letter_ratio = letters_ok / len(words)
    stop_ratio = stop_hits / max(2, len(words))
    return 0.8 * letter_ratio + 0.2 * stop_ratio
