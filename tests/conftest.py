import io

import numpy as np
import pytest
from PIL import Image

from models import BoundingBox
from ocr_engine import OCRResult


class FakeOCR:
    """Stands in for OCREngine: returns canned text, or raises."""

    def __init__(self, text="", confidence=88.0, raises=None, on_call=None):
        self.text = text
        self.confidence = confidence
        self.raises = raises
        self.on_call = on_call
        self.calls = 0

    def recognize(self, image):
        self.calls += 1
        if self.on_call is not None:
            self.on_call()
        if self.raises is not None:
            raise self.raises
        return OCRResult(self.text, self.confidence)


class FakeFaceEngine:
    """Stands in for FaceEngine: fixed box, embeddings handed out in call order."""

    def __init__(self, box=None, embeddings=()):
        self.box = box
        self.embeddings = list(embeddings)
        self.detect_calls = 0

    def detect_face(self, image):
        self.detect_calls += 1
        return self.box

    def embed(self, image):
        if not self.embeddings:
            return None
        return self.embeddings.pop(0)

    def distance(self, a, b):
        return float(np.linalg.norm(np.asarray(a) - np.asarray(b)))


AADHAAR_TEXT = "JOHN SMITH\n01/02/1990\n1234 5678 9012"

PAN_TEXT = "\n".join([
    "INCOME TAX DEPARTMENT",
    "Name",
    "JANE DOE",
    "Father's Name",
    "JOHN DOE",
    "15/08/1985",
    "ABCDE1234F",
])

PASSPORT_TEXT = "\n".join([
    "REPUBLIC OF INDIA",
    "PASSPORT NO AB1234567",
    "NAME RAVI KUMAR",
    "DATE OF BIRTH 12/05/1990",
    "PLACE OF BIRTH MUMBAI",
    "DATE OF ISSUE 01/01/2015",
    "DATE OF EXPIRY 31/12/2025",
    "NATIONALITY INDIAN",
    "FILE NO MH1234567890123",
])


@pytest.fixture
def card_image():
    return Image.new("RGB", (200, 150), "white")


@pytest.fixture
def face_box():
    return BoundingBox(x=50, y=40, width=60, height=50)


def png_bytes(size=(200, 150), color="white"):
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()
