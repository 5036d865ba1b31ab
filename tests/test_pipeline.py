import json

import pandas as pd
import pytest

from fakes import tone, wav_bytes
from speakscore import pipeline
from speakscore.pipeline import FIELDNAMES, AudioNotFoundError, load_manifest, resolve_audio, run_batch
from speakscore.transcribe import Transcript


@pytest.fixture
def fake_transcripts(monkeypatch):
    texts = {"good.wav": ("cuál es tu nombre", 0.92), "mumbled.wav": ("", 0.0)}
    seen = []

    def fake_transcribe_file(path, language, **kwargs):
        seen.append((path.name, language))
        text, conf = texts[path.name]
        return Transcript(text=text, confidence=conf, language=language)

    monkeypatch.setattr(pipeline, "transcribe_file", fake_transcribe_file)
    return seen


def _write_manifest(tmp_path, rows, columns=("attempt_id", "audio", "target_text", "lang")):
    path = tmp_path / "attempts.csv"
    pd.DataFrame(rows, columns=list(columns)).to_csv(path, index=False)
    return path


def test_run_batch_scores_and_writes_outputs(tmp_path, fake_transcripts):
    (tmp_path / "good.wav").write_bytes(wav_bytes(tone(seconds=1.5)))
    (tmp_path / "mumbled.wav").write_bytes(wav_bytes(tone(seconds=2.0)))
    manifest = _write_manifest(
        tmp_path,
        [
            ("a1", "good.wav", "¿Cuál es tu nombre?", "es"),
            ("a2", "mumbled.wav", "¿Cuál es tu nombre?", "es"),
            ("a3", "missing.wav", "hola", "es"),
        ],
    )
    public = tmp_path / "public"

    items = run_batch(manifest, public, cache_dir=tmp_path / "cache")

    assert [i["attempt_id"] for i in items] == ["a1", "a2"]
    good, mumbled = items
    assert good["method"] == "live-speech-api"
    assert good["passed"] is True
    assert good["score"] == 100
    assert mumbled["method"] == "audio-fallback"
    assert mumbled["passed"] is False
    assert mumbled["duration"] == pytest.approx(2.0)
    assert "not-target-lang" in mumbled["reasons"].split("|")

    df = pd.read_csv(public / "evaluations.csv")
    assert list(df.columns) == FIELDNAMES
    assert len(df) == 2

    full = json.loads((public / "evaluations.full.json").read_text(encoding="utf-8"))
    assert full["pipeline_version"] == pipeline.PIPELINE_VERSION
    assert len(full["items"]) == 2
    assert [s["attempt_id"] for s in full["skipped"]] == ["a3"]
    assert full["config"]["weights"]["char_similarity"] == 60.0
    assert "es" in full["config"]["thresholds"]


def test_run_batch_respects_max_items(tmp_path, fake_transcripts):
    (tmp_path / "good.wav").write_bytes(wav_bytes(tone(seconds=1.5)))
    manifest = _write_manifest(
        tmp_path,
        [("a1", "good.wav", "¿Cuál es tu nombre?", "es"), ("a2", "good.wav", "hola", "es")],
    )
    items = run_batch(manifest, tmp_path / "public", max_items=1)
    assert len(items) == 1


def test_manifest_lang_defaults_to_spanish(tmp_path, fake_transcripts):
    (tmp_path / "good.wav").write_bytes(wav_bytes(tone(seconds=1.5)))
    manifest = _write_manifest(
        tmp_path,
        [("a1", "good.wav", "¿Cuál es tu nombre?")],
        columns=("attempt_id", "audio", "target_text"),
    )
    df = load_manifest(manifest)
    assert list(df["lang"]) == ["es"]

    run_batch(manifest, tmp_path / "public")
    assert fake_transcripts == [("good.wav", "es")]


def test_manifest_missing_columns(tmp_path):
    manifest = _write_manifest(tmp_path, [("a1", "x.wav")], columns=("attempt_id", "audio"))
    with pytest.raises(ValueError, match="target_text"):
        load_manifest(manifest)


def test_resolve_audio_relative_and_missing(tmp_path):
    (tmp_path / "a.wav").write_bytes(b"RIFF")
    assert resolve_audio("a.wav", tmp_path, tmp_path / "cache") == tmp_path / "a.wav"
    with pytest.raises(AudioNotFoundError):
        resolve_audio("nope.wav", tmp_path, tmp_path / "cache")
    with pytest.raises(AudioNotFoundError):
        resolve_audio("  ", tmp_path, tmp_path / "cache")


def test_resolve_audio_downloads_once(tmp_path, monkeypatch):
    downloads = []

    def fake_download(url, dest, timeout=120.0):
        downloads.append(url)
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(b"RIFF")

    monkeypatch.setattr(pipeline, "_download", fake_download)
    url = "https://example.org/audio/attempt.wav?sig=abc"

    first = resolve_audio(url, tmp_path, tmp_path / "cache")
    second = resolve_audio(url, tmp_path, tmp_path / "cache")

    assert first == second
    assert first.suffix == ".wav"
    assert downloads == [url]
