import pytest
from PIL import Image

import ocr_engine
from errors import OCRFailure


def box(y):
    return [[0, y], [100, y], [100, y + 10], [0, y + 10]]


class FakePaddle:
    def __init__(self, pages=None, raises=None):
        self.pages = pages
        self.raises = raises
        self.calls = 0

    def ocr(self, arr):
        self.calls += 1
        if self.raises:
            raise self.raises
        return self.pages


def test_parse_result_legacy_layout():
    res = [[
        [box(40), ("ABCDE1234F", 0.91)],
        [box(10), ("INCOME TAX DEPARTMENT", 0.97)],
        [box(70), ("आयकर विभाग", 0.88)],
    ]]
    recs = ocr_engine.parse_result(res)
    assert [r["text"] for r in recs] == ["ABCDE1234F", "INCOME TAX DEPARTMENT"]
    assert recs[0]["y"] == 40


def test_parse_result_dict_layout():
    res = [{
        "rec_texts": ["NAME", "JANE DOE", ""],
        "rec_scores": [0.9, 0.8, 0.1],
        "rec_polys": [box(5), box(25), box(45)],
    }]
    recs = ocr_engine.parse_result(res)
    assert [(r["text"], r["y"]) for r in recs] == [("NAME", 5), ("JANE DOE", 25)]


def test_parse_result_empty():
    assert ocr_engine.parse_result(None) == []
    assert ocr_engine.parse_result([]) == []


def test_is_english_text():
    assert ocr_engine.is_english_text("DOB: 01/02/1990")
    assert not ocr_engine.is_english_text("नाम")
    assert not ocr_engine.is_english_text("")


def test_merge_records_keeps_best_per_row():
    merged = ocr_engine.merge_records([
        {"text": "NAME", "conf": 0.6, "y": 21},
        {"text": "NAME", "conf": 0.9, "y": 19},
        {"text": "TOP", "conf": 0.5, "y": 2},
    ])
    assert [(r["text"], r["conf"]) for r in merged] == [("TOP", 0.5), ("NAME", 0.9)]


def test_recognize_confident_first_pass(monkeypatch):
    fake = FakePaddle(pages=[[
        [box(10), ("INCOME TAX DEPARTMENT", 0.95)],
        [box(40), ("ABCDE1234F", 0.95)],
    ]])
    monkeypatch.setattr(ocr_engine, "get_ocr", lambda lang="en": fake)

    result = ocr_engine.OCREngine().recognize(Image.new("RGB", (300, 200), "white"))

    assert result.text == "INCOME TAX DEPARTMENT\nABCDE1234F"
    assert result.confidence == pytest.approx(95.0)
    assert fake.calls == 1


def test_recognize_runs_enhanced_pass_when_weak(monkeypatch):
    fake = FakePaddle(pages=[[[box(10), ("JOHN", 0.4)]]])
    monkeypatch.setattr(ocr_engine, "get_ocr", lambda lang="en": fake)

    result = ocr_engine.OCREngine().recognize(Image.new("RGB", (300, 200), "white"))

    assert fake.calls == 2
    assert result.text == "JOHN"


def test_recognize_nothing_read(monkeypatch):
    monkeypatch.setattr(ocr_engine, "get_ocr", lambda lang="en": FakePaddle(pages=[]))
    result = ocr_engine.OCREngine().recognize(Image.new("RGB", (300, 200), "white"))
    assert result == ("", 0.0)


def test_backend_error_wrapped(monkeypatch):
    monkeypatch.setattr(ocr_engine, "get_ocr", lambda lang="en": FakePaddle(raises=RuntimeError("boom")))
    with pytest.raises(OCRFailure) as exc_info:
        ocr_engine.OCREngine().recognize(Image.new("RGB", (300, 200), "white"))
    assert isinstance(exc_info.value.__cause__, RuntimeError)


def test_unreadable_image():
    with pytest.raises(OCRFailure):
        ocr_engine.load_image(b"definitely not a png")
