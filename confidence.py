"""
Heuristic 0-100 quality score for an extraction.

Diagnostic only: a low score never suppresses a field.
"""
from models import NOT_FOUND, ExtractionResult
from patterns import DATE_DMY

TEXT_LENGTH_CAP = 20
NAME_POINTS = 25
DOB_POINTS = 25
NUMBER_POINTS = 30


def calculate_confidence(text: str, name: str, dob: str, number: str) -> float:
    confidence = 0.0

    # Base confidence from text length
    confidence += min(len(text or "") / 100, TEXT_LENGTH_CAP)

    if name != NOT_FOUND and len(name) > 2:
        confidence += NAME_POINTS

    if dob != NOT_FOUND and DATE_DMY.regex.search(dob):
        confidence += DOB_POINTS

    if number != NOT_FOUND and len(number) > 8:
        confidence += NUMBER_POINTS

    return min(confidence, 100.0)


def score_result(text: str, result: ExtractionResult) -> float:
    return calculate_confidence(text, result.name, result.dob, result.primary_id)
