import pytest

from confidence import calculate_confidence, score_result
from conftest import AADHAAR_TEXT, PASSPORT_TEXT
from extractors import extract_aadhaar, extract_other
from models import NOT_FOUND
from tokenizer import tokenize


def test_zero_for_empty_text_and_no_fields():
    assert calculate_confidence("", NOT_FOUND, NOT_FOUND, NOT_FOUND) == 0


def test_full_score_is_clamped():
    score = calculate_confidence("x" * 5000, "JOHN SMITH", "01/02/1990", "1234 5678 9012")
    assert score == 100


def test_text_length_component_caps_at_twenty():
    assert calculate_confidence("x" * 50000, NOT_FOUND, NOT_FOUND, NOT_FOUND) == 20


def test_fields_must_be_well_formed_to_count():
    assert calculate_confidence("", "AB", "1990", "12345678") == 0
    assert calculate_confidence("", "ABC", NOT_FOUND, NOT_FOUND) == 25
    assert calculate_confidence("", NOT_FOUND, "DOB 01/02/1990", NOT_FOUND) == 25
    assert calculate_confidence("", NOT_FOUND, NOT_FOUND, "123456789") == 30


def test_score_aadhaar_result():
    res = extract_aadhaar(tokenize(AADHAAR_TEXT))
    assert score_result(AADHAAR_TEXT, res) == pytest.approx(len(AADHAAR_TEXT) / 100 + 80)


def test_other_scores_on_passport_number():
    res = extract_other(tokenize(PASSPORT_TEXT))
    assert score_result(PASSPORT_TEXT, res) == pytest.approx(len(PASSPORT_TEXT) / 100 + 80)


@pytest.mark.parametrize("text", ["", "a", "x" * 3000])
def test_always_within_range(text):
    assert 0 <= calculate_confidence(text, "JOHN", "01/01/2000", "ABCDE1234F") <= 100
