from __future__ import annotations

import hashlib
import json
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd
import requests
from tqdm import tqdm

from .audio_io import SoundFileDecoder
from .config import DEFAULT_LANG, THRESHOLDS, ScoreWeights, recognizer_tag_for
from .ports import AudioDecoder
from .session import PracticeResult, finalize_attempt
from .transcribe import transcribe_file

PIPELINE_VERSION = "2026-10-19-practice-batch"

REQUIRED_COLUMNS = ("attempt_id", "audio", "target_text")

FIELDNAMES = [
    "attempt_id",
    "audio",
    "target_text",
    "lang",
    "processed_at_utc",
    "method",
    "passed",
    "score",
    "reasons",
    "char_similarity",
    "word_f1",
    "language_likelihood",
    "confidence",
    "recognized_text",
    "duration",
    "rms",
    "zero_crossings",
    "error",
]

_UA = {"User-Agent": "speakscore/1.0"}


class AudioNotFoundError(RuntimeError):
    pass


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def _jsonify(obj: Any) -> Any:
    if obj is None:
        return None
    if isinstance(obj, (str, int, float, bool)):
        return obj
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, (set, frozenset)):
        return sorted(_jsonify(x) for x in obj)
    if isinstance(obj, (tuple, list)):
        return [_jsonify(x) for x in obj]
    if isinstance(obj, dict):
        return {str(k): _jsonify(v) for k, v in obj.items()}
    return str(obj)


def _cache_key(ref: str) -> str:
    return hashlib.sha1(ref.encode("utf-8", errors="ignore")).hexdigest()[:16]


def _is_url(ref: str) -> bool:
    return ref.lower().startswith(("http://", "https://"))


def _download(url: str, dest: Path, timeout: float = 120.0) -> None:
    dest.parent.mkdir(parents=True, exist_ok=True)
    with requests.get(url, stream=True, timeout=timeout, headers=_UA) as r:
        r.raise_for_status()
        with dest.open("wb") as f:
            for chunk in r.iter_content(chunk_size=1024 * 1024):
                if chunk:
                    f.write(chunk)


def resolve_audio(ref: str, base_dir: Path, cache_dir: Path) -> Path:
    """
    Local paths resolve against the manifest's directory; http(s) refs are
    downloaded once into `cache_dir`.
    """
    ref = (ref or "").strip()
    if not ref:
        raise AudioNotFoundError("empty audio reference")

    if _is_url(ref):
        suffix = Path(ref.split("?", 1)[0]).suffix.lower() or ".bin"
        dest = cache_dir / f"{_cache_key(ref)}{suffix}"
        if not dest.exists():
            try:
                _download(ref, dest)
            except requests.RequestException as e:
                raise AudioNotFoundError(f"download failed for {ref}: {e}") from e
        return dest

    path = Path(ref)
    if not path.is_absolute():
        path = base_dir / path
    if not path.is_file():
        raise AudioNotFoundError(f"no such audio file: {path}")
    return path


def score_one(
    audio_path: Path,
    target_text: str,
    lang: str,
    decoder: Optional[AudioDecoder] = None,
    weights: Optional[ScoreWeights] = None,
) -> PracticeResult:
    """
    Offline counterpart of a live session: transcribe the whole recording,
    score the transcript, or fall back to signal metrics when it is empty.
    """
    transcript = transcribe_file(audio_path, recognizer_tag_for(lang))
    buffer = None if transcript.text else audio_path.read_bytes()
    return finalize_attempt(
        transcript.text,
        transcript.confidence,
        buffer,
        decoder or SoundFileDecoder(),
        target_text,
        lang,
        weights=weights,
    )


def result_row(attempt_id: str, audio: str, target_text: str, lang: str, result: PracticeResult) -> Dict[str, Any]:
    ev = result.evaluation
    am = result.audio_metrics
    return {
        "attempt_id": attempt_id,
        "audio": audio,
        "target_text": target_text,
        "lang": lang,
        "processed_at_utc": _utc_now_iso(),
        "method": result.method,
        "passed": ev.passed if ev else None,
        "score": ev.score if ev else None,
        "reasons": "|".join(ev.reasons) if ev else "",
        "char_similarity": round(ev.char_similarity, 6) if ev else None,
        "word_f1": round(ev.word_f1, 6) if ev else None,
        "language_likelihood": round(ev.language_likelihood, 6) if ev else None,
        "confidence": round(result.confidence, 6),
        "recognized_text": result.recognized_text,
        "duration": round(am.duration, 6) if am else None,
        "rms": round(am.rms, 6) if am else None,
        "zero_crossings": am.zero_crossings if am else None,
        "error": getattr(result.error, "code", str(result.error)) if result.error else "",
    }


def _write_full_json(public_dir: Path, weights: ScoreWeights, items: List[Dict[str, Any]], skipped: List[Dict[str, Any]]) -> None:
    payload = {
        "version": 1,
        "generated_at_utc": _utc_now_iso(),
        "pipeline_version": PIPELINE_VERSION,
        "config": {
            "thresholds": _jsonify({lang: asdict(t) for lang, t in THRESHOLDS.items()}),
            "weights": _jsonify(asdict(weights)),
        },
        "items": _jsonify(items),
        "skipped": _jsonify(skipped),
    }
    (public_dir / "evaluations.full.json").write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")


def _write_metrics_csv(public_dir: Path, items: List[Dict[str, Any]]) -> None:
    df = pd.DataFrame(items, columns=FIELDNAMES)
    df.to_csv(public_dir / "evaluations.csv", index=False, encoding="utf-8")


def load_manifest(manifest_path: Path) -> pd.DataFrame:
    df = pd.read_csv(manifest_path, dtype=str, keep_default_na=False)
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"manifest {manifest_path} is missing columns: {', '.join(missing)}")
    if "lang" not in df.columns:
        df["lang"] = DEFAULT_LANG
    return df


def run_batch(
    manifest_path: Path,
    public_dir: Path,
    cache_dir: Optional[Path] = None,
    max_items: int = 0,
) -> List[Dict[str, Any]]:
    weights = ScoreWeights()
    public_dir.mkdir(parents=True, exist_ok=True)
    cache_dir = cache_dir or Path(".cache/speakscore/audio")

    print(f"[pipeline] version={PIPELINE_VERSION}")
    print(f"[pipeline] manifest={manifest_path} max_items={max_items}")

    df = load_manifest(manifest_path)
    rows = df.to_dict("records")
    if max_items > 0:
        rows = rows[:max_items]

    items: List[Dict[str, Any]] = []
    skipped: List[Dict[str, Any]] = []

    for row in tqdm(rows, desc="scoring", unit="attempt"):
        attempt_id = str(row["attempt_id"])
        lang = (row.get("lang") or DEFAULT_LANG).strip()
        try:
            audio_path = resolve_audio(row["audio"], manifest_path.parent, cache_dir)
        except AudioNotFoundError as e:
            print(f"[audio] SKIP: {attempt_id} => {e}")
            skipped.append({"attempt_id": attempt_id, "audio": row["audio"], "reason": str(e), "at_utc": _utc_now_iso()})
            continue

        result = score_one(audio_path, row["target_text"], lang, weights=weights)
        items.append(result_row(attempt_id, row["audio"], row["target_text"], lang, result))

    _write_full_json(public_dir, weights, items, skipped)
    _write_metrics_csv(public_dir, items)
    print(f"[pipeline] scored={len(items)} skipped={len(skipped)}")
    return items
