from __future__ import annotations

import re
import unicodedata
from collections import Counter
from dataclasses import dataclass
from typing import AbstractSet, List, Sequence

from rapidfuzz.distance import Levenshtein

_DISALLOWED_RE = re.compile(r"[^a-zñáéíóúüʼ' -]+", re.UNICODE)
_SPACE_RE = re.compile(r"\s+", re.UNICODE)


@dataclass(frozen=True)
class WordPRF:
    precision: float
    recall: float
    f1: float


def _strip_diacritics(text: str) -> str:
    t = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in t if not unicodedata.combining(ch))


def normalize(text: str) -> str:
    """
    Lowercase, fold diacritics ("Cuál" -> "cual"), keep letters, apostrophes
    and hyphens, collapse whitespace.
    """
    t = _strip_diacritics((text or "").lower())
    t = _DISALLOWED_RE.sub(" ", t)
    return _SPACE_RE.sub(" ", t).strip()


def tokenize(text: str) -> List[str]:
    return [w for w in normalize(text).split(" ") if w]


def levenshtein(a: str, b: str) -> int:
    # Callers pass normalized text; no preprocessing here.
    return Levenshtein.distance(a, b)


def char_similarity(a: str, b: str) -> float:
    na = normalize(a)
    nb = normalize(b)
    max_len = max(len(na), len(nb)) or 1
    return (max_len - levenshtein(na, nb)) / max_len


def word_prf(
    recognized: Sequence[str],
    target: Sequence[str],
    stopwords: AbstractSet[str] = frozenset(),
) -> WordPRF:
    rw = [w for w in recognized if w not in stopwords]
    tw = [w for w in target if w not in stopwords]

    # Counter & Counter keeps min multiplicity per shared word.
    hit = sum((Counter(rw) & Counter(tw)).values())

    precision = hit / len(rw) if rw else 0.0
    recall = hit / len(tw) if tw else 0.0
    f1 = (2 * precision * recall) / (precision + recall) if (precision + recall) else 0.0
    return WordPRF(precision=precision, recall=recall, f1=f1)
