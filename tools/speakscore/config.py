from __future__ import annotations

import os
import unicodedata
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Tuple


@dataclass(frozen=True)
class LanguageThresholds:
    """
    Pass/fail gates for one target language.

    Notes:
    - zcr bounds are zero crossings per second of captured audio
    - duration_tolerance bounds the ratio actual / expected duration, where
      expected = max(min_speech_seconds, len(target) * seconds_per_character)
    """

    min_speech_seconds: float = 1.1
    min_rms: float = 0.008
    min_zcr_per_sec: float = 500.0
    max_zcr_per_sec: float = 8000.0
    min_confidence: float = 0.55
    min_char_similarity: float = 0.7
    min_word_f1: float = 0.6
    min_language_likelihood: float = 0.55
    seconds_per_character: float = 0.045
    duration_tolerance: Tuple[float, float] = (0.5, 2.8)


_INDIGENOUS = LanguageThresholds(
    min_speech_seconds=1.0,
    min_zcr_per_sec=400.0,
    max_zcr_per_sec=9000.0,
    min_confidence=0.5,
    min_char_similarity=0.6,
    min_word_f1=0.5,
    min_language_likelihood=0.45,
    duration_tolerance=(0.5, 3.0),
)

THRESHOLDS: Dict[str, LanguageThresholds] = {
    "default": LanguageThresholds(),
    "es": LanguageThresholds(
        min_speech_seconds=1.2,
        min_char_similarity=0.74,
        min_word_f1=0.65,
    ),
    "en": LanguageThresholds(
        min_char_similarity=0.72,
        min_word_f1=0.62,
        seconds_per_character=0.04,
    ),
    "nah": _INDIGENOUS,
    "yua": _INDIGENOUS,
    "tzo": _INDIGENOUS,
}


@dataclass(frozen=True)
class ScoreWeights:
    # score = cs*char_similarity + f1*word_f1 + ll*language_likelihood + conf*max(confidence, floor)
    char_similarity: float = 60.0
    word_f1: float = 35.0
    language_likelihood: float = 20.0
    confidence: float = 15.0
    confidence_floor: float = 0.55


@dataclass(frozen=True)
class SessionConfig:
    silence_timeout_ms: int = 15000
    hard_cap_seconds: float = 30.0

    @property
    def silence_timeout_sec(self) -> float:
        return self.silence_timeout_ms / 1000.0

    @classmethod
    def from_env(cls) -> "SessionConfig":
        return cls(
            silence_timeout_ms=int(os.getenv("SILENCE_TIMEOUT_MS", str(cls.silence_timeout_ms))),
            hard_cap_seconds=float(os.getenv("HARD_CAP_SECONDS", str(cls.hard_cap_seconds))),
        )


def _fold(word: str) -> str:
    w = unicodedata.normalize("NFD", word.lower())
    return "".join(ch for ch in w if not unicodedata.combining(ch))


def _stopwords(words: Iterable[str]) -> FrozenSet[str]:
    # Stored diacritic-folded so they compare against normalized tokens.
    return frozenset(_fold(w) for w in words)


STOPWORDS: Dict[str, FrozenSet[str]] = {
    "es": _stopwords(
        (
            "de", "la", "que", "el", "en", "y", "a", "los", "del", "se", "las", "por",
            "un", "para", "con", "no", "una", "su", "al", "lo", "como", "más", "pero",
            "sus", "le", "ya", "o", "este", "sí", "porque", "esta", "entre", "cuando",
            "muy", "sin", "sobre", "también", "me", "hasta", "hay", "donde", "quien",
            "desde", "todo", "nos", "durante", "todos", "uno", "les", "ni", "contra",
            "otros", "ese", "eso", "ante", "ellos", "e", "esto", "mí", "antes",
            "algunos", "qué", "unos", "yo", "otro", "otras", "otra", "él", "tanto",
            "esa", "estos", "mucho", "quienes", "nada", "muchos", "cual", "poco",
            "ella", "estar", "estas", "algunas", "algo",
        )
    ),
    "en": _stopwords(
        (
            "the", "and", "for", "that", "with", "this", "from", "they", "have", "your",
            "you", "was", "are", "were", "their", "what", "when", "which", "there",
            "into", "about", "them", "then", "some", "would", "like", "just", "over",
            "more", "than", "been", "being", "such", "each", "very", "because",
            "these", "those", "could", "should", "where", "who", "while", "through",
            "does", "did", "had", "also", "every", "once", "here", "how", "why", "its",
            "our", "his", "her", "onto", "can", "will", "much", "many", "any", "all",
            "both", "few", "most", "other", "out", "up", "down", "in", "on", "at",
            "by", "of", "to", "is", "be", "whom", "as", "it", "my",
        )
    ),
    "nah": frozenset(),
    "yua": frozenset(),
    "tzo": frozenset(),
}

# Full-match patterns applied to normalized tokens.
LETTER_PATTERNS: Dict[str, str] = {
    "default": r"[a-zñáéíóúü]+",
}

# Target language -> tag handed to the recognizer.
LANG_TAGS: Dict[str, str] = {
    "es": "es",
    "en": "en",
    "pt": "pt",
    "fr": "fr",
    "it": "it",
    "nl": "nl",
    "nah": "es",
    "ru": "ru",
    "de": "de",
    "ja": "ja",
    "el": "el",
}


DEFAULT_LANG = "es"


def thresholds_for(
    lang: Optional[str], table: Optional[Mapping[str, LanguageThresholds]] = None
) -> LanguageThresholds:
    table = THRESHOLDS if table is None else table
    if lang and lang in table:
        return table[lang]
    if "default" not in table:
        raise KeyError("threshold table has no 'default' entry")
    return table["default"]


def stopwords_for(lang: Optional[str]) -> FrozenSet[str]:
    return STOPWORDS.get(lang or "", frozenset())


def letter_pattern_for(lang: Optional[str]) -> str:
    return LETTER_PATTERNS.get(lang or "", LETTER_PATTERNS["default"])


def recognizer_tag_for(lang: Optional[str]) -> str:
    return LANG_TAGS.get(lang or "", "es")
