"""
Per-document field extraction over tokenized OCR lines.

Each extractor is a pure function of its TokenizedText: unmatched fields
stay at NOT_FOUND and nothing in here raises on odd OCR output.
"""
import logging
from typing import Dict, Sequence

import patterns as P
from models import NOT_FOUND, DocumentType, ExtractionResult, TokenizedText

logger = logging.getLogger(__name__)


def nearest_line(lines: Sequence[str], index: int, direction: int = 1) -> str:
    """Line right above (-1) or below (+1) ``index``; tokenized lines are never empty."""
    i = index + direction
    if 0 <= i < len(lines):
        return lines[i]
    return ""


def _or_not_found(value: str) -> str:
    return value if value else NOT_FOUND


def extract_additional_info(lines: Sequence[str]) -> Dict[str, str]:
    """Address block and gender for Aadhaar/PAN cards."""
    info = {"address": NOT_FOUND, "gender": NOT_FOUND}

    # address: lines after the "Address" label until a short line ends the block
    address_lines = []
    in_address = False
    for ln in lines:
        if P.ADDRESS_CUE in ln.lower():
            in_address = True
            continue
        if in_address and len(ln) > P.ADDRESS_MIN_LINE:
            address_lines.append(ln)
        elif in_address and len(ln) < P.ADDRESS_MIN_LINE:
            break
    if address_lines:
        info["address"] = ", ".join(address_lines)

    for ln in lines:
        m = P.GENDER_RE.search(ln)
        if m:
            info["gender"] = m.group(1).title()
            break
    return info


def extract_aadhaar(tokens: TokenizedText) -> ExtractionResult:
    lines = tokens.lines
    obj = {"name": NOT_FOUND, "dob": NOT_FOUND, "number": NOT_FOUND}

    # Name sits directly above the DOB line on the card front
    dob = P.scan_lines(P.DOB_PATTERNS, lines)
    if dob:
        obj["dob"] = dob.value
        if dob.line_index > 0:
            obj["name"] = _or_not_found(P.alpha_only(nearest_line(lines, dob.line_index, -1)))

    number = P.scan_lines((P.AADHAAR_NUMBER,), lines)
    if number:
        obj["number"] = P.group_digits(lines[number.line_index], P.AADHAAR_DIGITS)

    return ExtractionResult(
        type=DocumentType.AADHAAR,
        additional_info=extract_additional_info(lines),
        **obj,
    )


def extract_pan(tokens: TokenizedText) -> ExtractionResult:
    lines = tokens.lines
    obj = {"name": NOT_FOUND, "dob": NOT_FOUND, "number": NOT_FOUND}

    pan = P.scan_lines((P.PAN_NUMBER,), lines)
    if pan:
        obj["number"] = pan.value.upper()

    # "Name" label is above the value; skip the "Father's Name" label
    name_idx = P.find_line(
        lines,
        lambda ln: P.NAME_CUE in ln.lower() and P.NAME_EXCLUDE_CUE not in ln.lower(),
    )
    if name_idx >= 0 and name_idx + 1 < len(lines):
        obj["name"] = _or_not_found(P.alpha_only(nearest_line(lines, name_idx, 1)))

    dob = P.scan_lines(P.DOB_PATTERNS, lines)
    if dob:
        obj["dob"] = dob.value

    return ExtractionResult(
        type=DocumentType.PAN,
        additional_info=extract_additional_info(lines),
        **obj,
    )


def _extract_other_name(lines: Sequence[str]) -> str:
    idx = P.find_line(lines, "NAME")
    if idx < 0:
        return NOT_FOUND
    cleaned = P.alpha_only(lines[idx])
    remainder = P.split_on_term(cleaned, "NAME")
    if remainder and remainder.strip():
        return remainder.strip()
    return _or_not_found(cleaned)


def _extract_additional_fields(lines: Sequence[str]) -> Dict[str, str]:
    fields = {}
    for label, key in P.ADDITIONAL_FIELD_LABELS:
        idx = P.find_line(lines, label)
        if idx < 0:
            continue
        remainder = P.split_on_term(lines[idx], label)
        if remainder and remainder.strip():
            value = P.label_value(remainder)
        else:
            value = P.label_value(nearest_line(lines, idx, 1))
        if P.ADDITIONAL_VALUE_MIN < len(value) < P.ADDITIONAL_VALUE_MAX:
            fields[key] = value
    return fields


def _extract_nationality(lines: Sequence[str]) -> str:
    for term in P.NATIONALITY_CUE_TERMS:
        idx = P.find_line(lines, term)
        if idx < 0:
            continue
        remainder = P.split_on_term(lines[idx], term)
        if remainder is not None:
            value = P.alpha_only(remainder)
            if value:
                return value
        next_line = P.alpha_only(nearest_line(lines, idx, 1))
        if P.NATIONALITY_NEXT_LINE_MIN < len(next_line) < P.NATIONALITY_NEXT_LINE_MAX:
            return next_line

    for country in P.COUNTRY_NAMES:
        if P.find_line(lines, country) >= 0:
            return country
    return NOT_FOUND


def extract_other(tokens: TokenizedText) -> ExtractionResult:
    """Passport / generic ID: seven independent field resolutions, in order."""
    lines = tokens.lines
    obj = {
        "name": NOT_FOUND,
        "dob": NOT_FOUND,
        "passport_number": NOT_FOUND,
        "serial_number": NOT_FOUND,
        "passport_expiry": NOT_FOUND,
        "nationality": NOT_FOUND,
    }

    dob = P.scan_lines(P.DOB_PATTERNS, lines)
    if dob:
        obj["dob"] = dob.value

    obj["name"] = _extract_other_name(lines)

    passport = P.cue_then_scan(P.PASSPORT_PATTERNS, lines, P.PASSPORT_CUE_TERMS)
    if passport:
        obj["passport_number"] = passport.value

    # serial shapes overlap the passport ones; both may come from the same line
    serial = P.scan_lines(P.SERIAL_PATTERNS, lines)
    if serial:
        obj["serial_number"] = serial.value

    expiry = P.cue_then_scan(P.EXPIRY_PATTERNS, lines, P.EXPIRY_CUE_TERMS)
    if expiry:
        obj["passport_expiry"] = expiry.value

    additional = _extract_additional_fields(lines)
    obj["nationality"] = _extract_nationality(lines)

    logger.debug(
        "Other document: passport via %s, serial via %s, expiry via %s",
        passport.pattern if passport else None,
        serial.pattern if serial else None,
        expiry.pattern if expiry else None,
    )
    return ExtractionResult(
        type=DocumentType.OTHER,
        additional_fields=additional,
        **obj,
    )


EXTRACTORS = {
    DocumentType.AADHAAR: extract_aadhaar,
    DocumentType.PAN: extract_pan,
    DocumentType.OTHER: extract_other,
}
