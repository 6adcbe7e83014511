import asyncio

import numpy as np
import pytest

from conftest import AADHAAR_TEXT, PAN_TEXT, FakeFaceEngine, FakeOCR
from errors import OCRFailure, StaleRunError, UnsupportedDocumentType
from face_service import NO_FACE_NOTICE
from models import NOT_FOUND, DocumentType
from orchestrator import (
    DOCUMENT,
    FACE,
    RunGuard,
    compare,
    crop_document_face,
    extract_document,
    process_upload,
    select_extractor,
)


def test_extract_document_attaches_confidence(card_image):
    ocr = FakeOCR(AADHAAR_TEXT)
    res = asyncio.run(extract_document(card_image, "aadhaar", ocr))
    assert ocr.calls == 1
    assert res.name == "JOHN SMITH"
    assert res.number == "1234 5678 9012"
    assert res.confidence == pytest.approx(len(AADHAAR_TEXT) / 100 + 80)


def test_extract_document_accepts_enum(card_image):
    res = asyncio.run(extract_document(card_image, DocumentType.PAN, FakeOCR(PAN_TEXT)))
    assert res.number == "ABCDE1234F"


def test_unsupported_type_raises_before_ocr(card_image):
    ocr = FakeOCR(AADHAAR_TEXT)
    with pytest.raises(UnsupportedDocumentType):
        asyncio.run(extract_document(card_image, "driving_license", ocr))
    assert ocr.calls == 0


def test_select_extractor_rejects_non_members():
    with pytest.raises(UnsupportedDocumentType):
        select_extractor("pan")


def test_ocr_error_becomes_ocr_failure(card_image):
    ocr = FakeOCR(raises=RuntimeError("engine crashed"))
    with pytest.raises(OCRFailure) as exc_info:
        asyncio.run(extract_document(card_image, "pan", ocr))
    assert isinstance(exc_info.value.__cause__, RuntimeError)


def test_no_face_is_a_notice_not_an_error(card_image):
    outcome = asyncio.run(process_upload(card_image, "aadhaar", FakeOCR(AADHAAR_TEXT), FakeFaceEngine(box=None)))
    assert outcome.face is None
    assert outcome.notices == (NO_FACE_NOTICE,)
    assert outcome.result.name == "JOHN SMITH"
    assert outcome.result.dob == "01/02/1990"
    assert outcome.to_dict()["face_image"] is None


def test_face_crop_returned(card_image, face_box):
    face, notices = asyncio.run(crop_document_face(card_image, FakeFaceEngine(box=face_box)))
    assert notices == ()
    # 60x50 box plus 18px each side horizontally and 20px vertically
    assert face.image.size == (96, 90)


def test_process_upload_carries_raw_text(card_image, face_box):
    outcome = asyncio.run(process_upload(
        card_image, "pan", FakeOCR(PAN_TEXT, confidence=77.5), FakeFaceEngine(box=face_box)))
    assert outcome.raw_text == PAN_TEXT
    assert outcome.ocr_confidence == 77.5
    data = outcome.to_dict()
    assert data["type"] == "PAN"
    assert data["face_image"].startswith("data:image/png;base64,")
    assert data["notices"] == []


def test_ocr_failure_aborts_whole_run(card_image, face_box):
    guard = RunGuard()
    with pytest.raises(OCRFailure):
        asyncio.run(process_upload(
            card_image, "pan", FakeOCR(raises=OCRFailure("unreadable")), FakeFaceEngine(box=face_box), guard=guard))
    assert not guard.busy(DOCUMENT)
    assert guard.begin(DOCUMENT).generation == 2


def test_stale_run_is_discarded(card_image):
    guard = RunGuard()
    # a newer upload for the same role starts while OCR is still running
    ocr = FakeOCR(AADHAAR_TEXT, on_call=lambda: guard.begin(DOCUMENT))
    with pytest.raises(StaleRunError) as exc_info:
        asyncio.run(process_upload(card_image, "aadhaar", ocr, FakeFaceEngine(), guard=guard))
    assert exc_info.value.generation == 1
    assert exc_info.value.current == 2
    assert guard.busy(DOCUMENT)


def test_generations_increase_per_upload(card_image):
    guard = RunGuard()
    first = asyncio.run(process_upload(card_image, "aadhaar", FakeOCR(AADHAAR_TEXT), FakeFaceEngine(), guard=guard))
    second = asyncio.run(process_upload(card_image, "pan", FakeOCR(PAN_TEXT), FakeFaceEngine(), guard=guard))
    assert (first.generation, second.generation) == (1, 2)
    assert not guard.busy(DOCUMENT)


def test_run_guard_roles_are_independent():
    guard = RunGuard()
    doc = guard.begin(DOCUMENT)
    face = guard.begin(FACE)
    assert guard.busy(DOCUMENT) and guard.busy(FACE)
    assert guard.commit(doc, "doc") == "doc"
    assert guard.is_current(face)
    assert guard.commit(face, "face") == "face"
    assert not guard.busy(DOCUMENT) and not guard.busy(FACE)


def test_run_guard_latest_wins():
    guard = RunGuard()
    old = guard.begin(DOCUMENT)
    new = guard.begin(DOCUMENT)
    assert not guard.is_current(old)
    assert guard.commit(new, "new") == "new"
    with pytest.raises(StaleRunError):
        guard.commit(old, "old")


def test_run_guard_unknown_role():
    with pytest.raises(ValueError):
        RunGuard().begin("video")


def test_compare_live_mode(card_image):
    engine = FakeFaceEngine(embeddings=[np.array([1.0, 0.0]), np.array([0.75, 0.0])])
    guard = RunGuard()
    result, notice = asyncio.run(compare(card_image, card_image, engine, mode="live", guard=guard))
    assert notice is None
    assert result.similarity == 75
    assert result.tier == "High"
    assert not guard.busy(FACE)


def test_compare_unavailable(card_image):
    result, notice = asyncio.run(compare(card_image, card_image, FakeFaceEngine()))
    assert result is None
    assert "unavailable" in notice


def test_unresolved_fields_stay_sentinel(card_image):
    outcome = asyncio.run(process_upload(card_image, "other", FakeOCR("nothing useful"), FakeFaceEngine()))
    data = outcome.to_dict()
    assert data["passportNumber"] == NOT_FOUND
    assert data["nationality"] == NOT_FOUND
    assert data["additionalFields"] == {}
