from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Literal, Mapping, Optional, Tuple

from .audio_metrics import AudioMetrics
from .config import LanguageThresholds, ScoreWeights, stopwords_for, thresholds_for
from .heuristics import language_likelihood
from .text_metrics import char_similarity, tokenize, word_prf

Reason = Literal[
    "speech-quality",
    "not-target-lang",
    "low-char-sim",
    "low-word-f1",
    "low-confidence",
]

SPEECH_QUALITY: Reason = "speech-quality"
NOT_TARGET_LANG: Reason = "not-target-lang"
LOW_CHAR_SIM: Reason = "low-char-sim"
LOW_WORD_F1: Reason = "low-word-f1"
LOW_CONFIDENCE: Reason = "low-confidence"


@dataclass(frozen=True)
class EvaluationResult:
    passed: bool
    score: int
    reasons: Tuple[Reason, ...]
    char_similarity: float
    word_f1: float
    language_likelihood: float
    confidence: float


def _clamp(x: float, lo: float = 0.0, hi: float = 100.0) -> float:
    return max(lo, min(hi, x))


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def expected_duration(target_text: str, cfg: LanguageThresholds) -> float:
    return max(cfg.min_speech_seconds, len(target_text or "") * cfg.seconds_per_character)


def passes_speech_quality(metrics: AudioMetrics, target_text: str, cfg: LanguageThresholds) -> bool:
    duration = metrics.duration
    if not math.isfinite(duration) or duration < cfg.min_speech_seconds:
        return False
    if not math.isfinite(metrics.rms) or metrics.rms < cfg.min_rms:
        return False

    zps = metrics.zcr_per_sec
    if zps < cfg.min_zcr_per_sec or zps > cfg.max_zcr_per_sec:
        return False

    low, high = cfg.duration_tolerance
    ratio = duration / expected_duration(target_text, cfg)
    return low <= ratio <= high


def evaluate(
    recognized_text: str,
    confidence: Optional[float],
    audio_metrics: Optional[AudioMetrics],
    target_text: str,
    lang: Optional[str],
    thresholds: Optional[Mapping[str, LanguageThresholds]] = None,
    weights: Optional[ScoreWeights] = None,
) -> EvaluationResult:
    """
    Strict verdict for one attempt.

    Checks run in a fixed order and each adds at most one reason, so
    `reasons` is deterministic. The score blends the same signals; an
    unknown confidence counts as the weights' floor so a perfect text match
    never scores low only because the recognizer stayed silent about it.
    """
    cfg = thresholds_for(lang, thresholds)
    w = weights or ScoreWeights()
    recognized_text = recognized_text or ""
    target_text = target_text or ""
    reasons: List[Reason] = []

    if audio_metrics is not None and not passes_speech_quality(audio_metrics, target_text, cfg):
        reasons.append(SPEECH_QUALITY)

    rec_words = tokenize(recognized_text)
    tgt_words = tokenize(target_text)

    lang_like = language_likelihood(rec_words, lang)
    if lang_like < cfg.min_language_likelihood:
        reasons.append(NOT_TARGET_LANG)

    char_sim = char_similarity(recognized_text, target_text)
    if char_sim < cfg.min_char_similarity:
        reasons.append(LOW_CHAR_SIM)

    f1 = word_prf(rec_words, tgt_words, stopwords_for(lang)).f1
    if f1 < cfg.min_word_f1:
        reasons.append(LOW_WORD_F1)

    if confidence and confidence < cfg.min_confidence:
        reasons.append(LOW_CONFIDENCE)

    conf_term = max(confidence or w.confidence_floor, w.confidence_floor)
    raw = (
        char_sim * w.char_similarity
        + f1 * w.word_f1
        + lang_like * w.language_likelihood
        + conf_term * w.confidence
    )
    score = _round_half_up(_clamp(raw))

    return EvaluationResult(
        passed=not reasons,
        score=score,
        reasons=tuple(reasons),
        char_similarity=char_sim,
        word_f1=f1,
        language_likelihood=lang_like,
        confidence=float(confidence or 0.0),
    )
