"""
Data model for document extraction and face comparison results.
"""
import base64
import io
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from errors import UnsupportedDocumentType

NOT_FOUND = "Not found"


class DocumentType(Enum):
    AADHAAR = "aadhaar"
    PAN = "pan"
    OTHER = "other"

    @property
    def label(self) -> str:
        return {"aadhaar": "Aadhaar", "pan": "PAN", "other": "Other"}[self.value]

    @classmethod
    def parse(cls, value) -> "DocumentType":
        """Accept a DocumentType or its name/value in any case."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().lower()
            for member in cls:
                if key in (member.value, member.label.lower()):
                    return member
        raise UnsupportedDocumentType(value)


@dataclass(frozen=True)
class TokenizedText:
    lines: tuple
    raw_text: str = ""
    confidence: Optional[float] = None

    def __len__(self):
        return len(self.lines)


@dataclass(frozen=True)
class FieldCandidate:
    """One pattern matched against one line."""
    value: str
    field: str
    pattern: str
    line_index: int = -1


def _frozen_mapping(data: Optional[Mapping[str, str]]) -> Mapping[str, str]:
    return MappingProxyType(dict(data or {}))


@dataclass(frozen=True)
class ExtractionResult:
    """Structured fields for one uploaded document.

    Every string field holds either a value of the expected shape or the
    NOT_FOUND sentinel. ``number`` is the Aadhaar/PAN number and stays NOT_FOUND for
    "other" documents, where ``passport_number`` is the primary ID.
    """
    type: DocumentType
    name: str = NOT_FOUND
    dob: str = NOT_FOUND
    number: str = NOT_FOUND
    nationality: str = NOT_FOUND
    passport_number: str = NOT_FOUND
    serial_number: str = NOT_FOUND
    passport_expiry: str = NOT_FOUND
    additional_fields: Mapping[str, str] = field(default_factory=dict)
    additional_info: Mapping[str, str] = field(default_factory=dict)
    confidence: float = 0.0

    def __post_init__(self):
        object.__setattr__(self, "additional_fields", _frozen_mapping(self.additional_fields))
        object.__setattr__(self, "additional_info", _frozen_mapping(self.additional_info))

    @property
    def primary_id(self) -> str:
        if self.type is DocumentType.OTHER:
            return self.passport_number
        return self.number

    def to_dict(self) -> Dict:
        out = {
            "type": self.type.label,
            "name": self.name,
            "dob": self.dob,
            "number": self.number,
            "confidence": self.confidence,
            "passportNumber": self.passport_number,
            "serialNumber": self.serial_number,
            "passportExpiry": self.passport_expiry,
            "additionalFields": dict(self.additional_fields),
        }
        if self.type is DocumentType.OTHER:
            out["nationality"] = self.nationality
        else:
            out["additionalInfo"] = dict(self.additional_info)
        return out


@dataclass(frozen=True)
class BoundingBox:
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class FaceCrop:
    image: object  # PIL.Image.Image
    box: BoundingBox

    def to_data_url(self) -> str:
        buffer = io.BytesIO()
        self.image.save(buffer, format="PNG")
        encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
        return f"data:image/png;base64,{encoded}"


@dataclass(frozen=True)
class SimilarityResult:
    similarity: float
    distance: float
    tier: str
    verdict: str

    def to_dict(self) -> Dict:
        return {
            "similarity": self.similarity,
            "distance": round(self.distance, 4),
            "tier": self.tier,
            "verdict": self.verdict,
        }


@dataclass(frozen=True)
class ExtractionOutcome:
    """What one document upload produced for the UI."""
    result: ExtractionResult
    face: Optional[FaceCrop] = None
    notices: tuple = ()
    generation: int = 0
    raw_text: str = ""
    ocr_confidence: Optional[float] = None

    def to_dict(self) -> Dict:
        out = self.result.to_dict()
        out["face_image"] = self.face.to_data_url() if self.face else None
        out["notices"] = list(self.notices)
        out["raw_text"] = self.raw_text
        out["ocr_confidence"] = self.ocr_confidence
        return out
