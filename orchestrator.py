"""
Run one document upload or one face comparison end to end.

The blocking engines (PaddleOCR, DeepFace) are pushed to worker threads
with asyncio.to_thread; tokenizing, extracting and scoring run inline.
Each role ("document", "face") has its own generation counter in a
RunGuard, so a slow run that finishes after a newer one started for the
same role is dropped instead of overwriting the newer result.
"""
import asyncio
import dataclasses
import logging
import threading
from collections import namedtuple
from typing import Dict, Optional, Tuple

from confidence import score_result
from errors import OCRFailure, StaleRunError, UnsupportedDocumentType
from extractors import extract_aadhaar, extract_other, extract_pan
from face_service import NO_FACE_NOTICE, compare_faces, crop_with_margin
from models import DocumentType, ExtractionOutcome, ExtractionResult, FaceCrop, TokenizedText
from tokenizer import tokenize

logger = logging.getLogger(__name__)

DOCUMENT = "document"
FACE = "face"
ROLES = (DOCUMENT, FACE)

RunToken = namedtuple("RunToken", ["role", "generation"])


class RunGuard:
    """Per-role generation counters; latest run wins."""

    def __init__(self):
        self._lock = threading.Lock()
        self._generation: Dict[str, int] = {role: 0 for role in ROLES}
        self._in_flight: Dict[str, Optional[int]] = {role: None for role in ROLES}

    def begin(self, role: str) -> RunToken:
        if role not in self._generation:
            raise ValueError(f"Unknown run role: {role!r}")
        with self._lock:
            self._generation[role] += 1
            gen = self._generation[role]
            self._in_flight[role] = gen
        return RunToken(role, gen)

    def is_current(self, token: RunToken) -> bool:
        with self._lock:
            return self._generation[token.role] == token.generation

    def busy(self, role: str) -> bool:
        with self._lock:
            return self._in_flight.get(role) is not None

    def commit(self, token: RunToken, value):
        with self._lock:
            current = self._generation[token.role]
            if current != token.generation:
                raise StaleRunError(token.role, token.generation, current)
            self._in_flight[token.role] = None
        return value

    def release(self, token: RunToken):
        """End a failed run without storing anything."""
        with self._lock:
            if self._in_flight.get(token.role) == token.generation:
                self._in_flight[token.role] = None


def select_extractor(doc_type: DocumentType):
    if doc_type is DocumentType.AADHAAR:
        return extract_aadhaar
    elif doc_type is DocumentType.PAN:
        return extract_pan
    elif doc_type is DocumentType.OTHER:
        return extract_other
    raise UnsupportedDocumentType(doc_type)


async def recognize_text(image, ocr):
    try:
        return await asyncio.to_thread(ocr.recognize, image)
    except OCRFailure:
        raise
    except Exception as e:
        raise OCRFailure(f"OCR backend error: {e}") from e


async def _run_extraction(image, doc_type: DocumentType, ocr) -> Tuple[ExtractionResult, TokenizedText]:
    extractor = select_extractor(doc_type)

    ocr_result = await recognize_text(image, ocr)
    tokens = tokenize(ocr_result.text, ocr_result.confidence)
    logger.info("OCR produced %d lines (engine confidence %s)", len(tokens), tokens.confidence)

    result = extractor(tokens)
    return dataclasses.replace(result, confidence=score_result(tokens.raw_text, result)), tokens


async def extract_document(image, doc_type, ocr) -> ExtractionResult:
    """OCR once, tokenize, run the type's extractor and attach the confidence score."""
    result, _ = await _run_extraction(image, DocumentType.parse(doc_type), ocr)
    return result


async def crop_document_face(image, face_engine) -> Tuple[Optional[FaceCrop], Tuple[str, ...]]:
    box = await asyncio.to_thread(face_engine.detect_face, image)
    if box is None:
        logger.info("No face found on document image")
        return None, (NO_FACE_NOTICE,)
    return crop_with_margin(image, box), ()


async def process_upload(image, doc_type, ocr, face_engine, guard: Optional[RunGuard] = None) -> ExtractionOutcome:
    """Face crop plus text extraction for one front image.

    A missing face only adds a notice. OCR failure aborts the run and no
    partial result is produced. With a guard, raises StaleRunError when a
    newer document run started meanwhile.
    """
    doc_type = DocumentType.parse(doc_type)
    guard = guard or RunGuard()
    token = guard.begin(DOCUMENT)
    try:
        face, notices = await crop_document_face(image, face_engine)
        result, tokens = await _run_extraction(image, doc_type, ocr)
    except BaseException:
        guard.release(token)
        raise

    outcome = ExtractionOutcome(
        result=result,
        face=face,
        notices=notices,
        generation=token.generation,
        raw_text=tokens.raw_text,
        ocr_confidence=tokens.confidence,
    )
    return guard.commit(token, outcome)


async def compare(reference, probe, face_engine, mode: str = "upload", guard: Optional[RunGuard] = None):
    """Returns (SimilarityResult or None, notice or None) for the face role."""
    guard = guard or RunGuard()
    token = guard.begin(FACE)
    try:
        outcome = await asyncio.to_thread(compare_faces, face_engine, reference, probe, mode)
    except BaseException:
        guard.release(token)
        raise
    return guard.commit(token, outcome)
