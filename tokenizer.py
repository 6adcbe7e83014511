"""
Turn raw OCR output into the ordered line sequence every extractor indexes into.
"""
from typing import List, Optional

from models import TokenizedText


def split_lines(raw_text: str) -> List[str]:
    """Split on newlines, trim each line, then drop lines left empty."""
    if not raw_text:
        return []
    return [ln.strip() for ln in raw_text.split("\n") if ln.strip()]


def tokenize(raw_text: str, confidence: Optional[float] = None) -> TokenizedText:
    return TokenizedText(
        lines=tuple(split_lines(raw_text)),
        raw_text=raw_text or "",
        confidence=confidence,
    )
