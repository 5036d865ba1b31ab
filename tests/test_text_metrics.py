import pytest

from speakscore.config import stopwords_for
from speakscore.heuristics import language_likelihood
from speakscore.text_metrics import char_similarity, levenshtein, normalize, tokenize, word_prf


def test_normalize_folds_case_accents_and_punctuation():
    assert normalize("¿Cuál   es TU nombre?") == "cual es tu nombre"
    assert normalize("Cuál") == normalize("Cual")
    assert normalize("  don't stop-now!  ") == "don't stop-now"
    assert normalize("") == ""
    assert normalize(None) == ""


@pytest.mark.parametrize("text", ["¿Cuál es tu nombre?", "Niltze, ¿quen timotlaneltoquia?", "Good MORNING!!"])
def test_normalize_is_idempotent(text):
    once = normalize(text)
    assert normalize(once) == once


def test_tokenize_drops_empty_tokens():
    assert tokenize("  ¡Hola,   mundo!  ") == ["hola", "mundo"]
    assert tokenize("...") == []


def test_levenshtein():
    assert levenshtein("kitten", "sitting") == 3
    assert levenshtein("sitting", "kitten") == 3
    assert levenshtein("hola", "hola") == 0
    assert levenshtein("", "abc") == 3


def test_char_similarity_bounds():
    assert char_similarity("¿Cuál es?", "cual es") == 1.0
    assert char_similarity("", "") == 1.0
    assert char_similarity("abc", "xyz") == 0.0
    assert char_similarity("hola", "hole") == pytest.approx(0.75)


def test_word_prf_uses_multiset_intersection():
    prf = word_prf(["la", "la", "casa"], ["la", "casa"])
    assert prf.precision == pytest.approx(2 / 3)
    assert prf.recall == 1.0
    assert prf.f1 == pytest.approx(0.8)


def test_word_prf_ignores_stopwords():
    prf = word_prf(["la", "la", "casa"], ["la", "casa"], stopwords_for("es"))
    assert prf.f1 == 1.0


def test_word_prf_disjoint_and_empty():
    assert word_prf(["perro"], ["gato"]).f1 == 0.0
    assert word_prf([], ["gato"]).f1 == 0.0
    assert word_prf(["de", "la"], ["de"], stopwords_for("es")).f1 == 0.0


def test_language_likelihood_empty_is_zero():
    assert language_likelihood([], "es") == 0.0


def test_language_likelihood_weights_letters_and_stopwords():
    assert language_likelihood(["hola"], "es") == pytest.approx(0.8)
    assert language_likelihood(["de"], "es") == pytest.approx(0.9)
    assert language_likelihood(["de", "la"], "es") == pytest.approx(1.0)
    assert language_likelihood(["x1"], "es") == 0.0


def test_language_likelihood_without_stopword_list():
    assert language_likelihood(["niltze", "tlazohcamati"], "nah") == pytest.approx(0.8)
    assert language_likelihood(["the", "house"], "xx") == pytest.approx(0.8)


@pytest.mark.parametrize(
    "a, b, c",
    [
        ("hola", "ola", "sola"),
        ("cual es tu nombre", "cual es su nombre", "como te llamas"),
        ("", "abc", "abd"),
        ("kitten", "sitting", "mitten"),
    ],
)
def test_levenshtein_triangle_inequality(a, b, c):
    assert levenshtein(a, c) <= levenshtein(a, b) + levenshtein(b, c)
    assert levenshtein(a, b) == levenshtein(b, a)


@pytest.mark.parametrize("text", ["¿Cuál es TU Nombre?", "  Good-Morning!! ", "DON'T", "¡¡!!"])
def test_char_similarity_of_raw_text_with_itself(text):
    assert char_similarity(text, text) == 1.0
    assert levenshtein(normalize(text), normalize(text)) == 0
