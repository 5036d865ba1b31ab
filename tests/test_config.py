from speakscore.config import (
    THRESHOLDS,
    SessionConfig,
    recognizer_tag_for,
    stopwords_for,
    thresholds_for,
)


def test_thresholds_fall_back_to_default():
    assert thresholds_for("es") is THRESHOLDS["es"]
    assert thresholds_for("xx") is THRESHOLDS["default"]
    assert thresholds_for(None) is THRESHOLDS["default"]
    assert thresholds_for("yua") == thresholds_for("nah")


def test_stopwords_are_accent_folded():
    es = stopwords_for("es")
    assert "mas" in es
    assert "que" in es
    assert "más" not in es
    assert stopwords_for("nah") == frozenset()
    assert stopwords_for("xx") == frozenset()


def test_recognizer_tags():
    assert recognizer_tag_for("en") == "en"
    assert recognizer_tag_for("nah") == "es"
    assert recognizer_tag_for("xx") == "es"


def test_session_config_from_env(monkeypatch):
    monkeypatch.setenv("SILENCE_TIMEOUT_MS", "2500")
    monkeypatch.delenv("HARD_CAP_SECONDS", raising=False)
    cfg = SessionConfig.from_env()
    assert cfg.silence_timeout_ms == 2500
    assert cfg.silence_timeout_sec == 2.5
    assert cfg.hard_cap_seconds == 30.0
