"""
Pattern catalogue for ID field extraction.

Every tuple below is in priority order: the first pattern that matches a
line wins, even when a later pattern would give a longer match. Keep the
more specific shapes ahead of the general ones (e.g. 2 letters + 7 digits
before a bare 9-digit run) or serial numbers start turning up as
passport numbers.

Label/cue matching is case-insensitive substring containment, so
"NATIONALITY" also hits inside "NATIONALITY/CITIZENSHIP: IND".
"""
import re
from collections import namedtuple
from typing import Callable, Iterable, Optional, Sequence, Union

from models import FieldCandidate

FieldPattern = namedtuple("FieldPattern", ["field", "name", "regex"])


def _p(field, name, expr, flags=0):
    # ASCII keeps \d and \s to the Latin digit/space set OCR emits for these cards
    return FieldPattern(field, name, re.compile(expr, flags | re.ASCII))


# ---- shared shapes -------------------------------------------------------

DATE_DMY = _p("dob", "dd/mm/yyyy", r"\d{2}/\d{2}/\d{4}")
DOB_PATTERNS = (DATE_DMY,)

AADHAAR_NUMBER = _p("number", "4+4+4 digits", r"\d{4}\s?\d{4}\s?\d{4}")
AADHAAR_DIGITS = 12

PAN_NUMBER = _p("number", "5 letters + 4 digits + 1 letter", r"[A-Z]{5}[0-9]{4}[A-Z]", re.IGNORECASE)
PAN_SHAPE = re.compile(r"^[A-Z]{5}[0-9]{4}[A-Z]$")

# ---- passport / generic ID ----------------------------------------------

PASSPORT_CUE_TERMS = ("PASSPORT", "PASS NO", "PASS#")

PASSPORT_PATTERNS = (
    _p("passportNumber", "2 letters + 7 digits", r"[A-Z]{2}\d{7}"),
    _p("passportNumber", "9 digits", r"\d{9}"),
    _p("passportNumber", "1 letter + 8 digits", r"[A-Z]\d{8}"),
    _p("passportNumber", "3 letters + 6 digits", r"[A-Z]{3}\d{6}"),
    _p("passportNumber", "8-9 digits", r"\d{8,9}"),
    _p("passportNumber", "1-2 letters + 6-8 digits", r"[A-Z]{1,2}\d{6,8}"),
)

SERIAL_PATTERNS = (
    _p("serialNumber", "2 letters + 7-8 digits", r"[A-Z]{2}\d{7,8}"),
    _p("serialNumber", "10-12 digits", r"\d{10,12}"),
    _p("serialNumber", "1 letter + 9-10 digits", r"[A-Z]\d{9,10}"),
    _p("serialNumber", "3-4 letters + 5-6 digits", r"[A-Z]{3,4}\d{5,6}"),
    _p("serialNumber", "8-9 digits + optional letter + 1-2 digits", r"\d{8,9}[A-Z]?\d{1,2}"),
)

EXPIRY_CUE_TERMS = ("EXP", "EXPIRY", "EXPIRES", "VALID UNTIL", "VALID THRU")

EXPIRY_PATTERNS = (
    _p("passportExpiry", "dd/mm/yyyy", r"\d{2}/\d{2}/\d{4}"),
    _p("passportExpiry", "dd-mm-yyyy", r"\d{2}-\d{2}-\d{4}"),
    _p("passportExpiry", "yyyy-mm-dd", r"\d{4}-\d{2}-\d{2}"),
    _p("passportExpiry", "dd/mm/yy", r"\d{2}/\d{2}/\d{2}"),
    _p("passportExpiry", "dd-mm/yyyy", r"\d{2}-\d{2}/\d{4}"),
    _p("passportExpiry", "labelled expiry",
       r"(?:EXP|EXPIRY|EXPIRES|VALID\s*UNTIL|VALID\s*THRU)\s*[:\-]?\s*(\d{2}/\d{2}/\d{4})",
       re.IGNORECASE),
)

# label -> result key; several labels may feed the same key (last one found wins)
ADDITIONAL_FIELD_LABELS = (
    ("GENDER", "gender"),
    ("SEX", "gender"),
    ("FATHER", "fatherName"),
    ("MOTHER", "motherName"),
    ("SPOUSE", "spouseName"),
    ("ISSUING AUTHORITY", "issuingAuthority"),
    ("PLACE OF BIRTH", "placeOfBirth"),
    ("DATE OF ISSUE", "dateOfIssue"),
    ("ID NO", "idNumber"),
    ("DOCUMENT NO", "documentNumber"),
    ("FILE NO", "fileNumber"),
)
ADDITIONAL_VALUE_MIN = 1  # exclusive
ADDITIONAL_VALUE_MAX = 100  # exclusive

NATIONALITY_CUE_TERMS = (
    "NATIONALITY", "CITIZENSHIP", "CITIZEN", "NATIONAL", "ORIGIN",
    "DOMICILE", "RESIDENT", "BELONGS TO", "FROM",
)
NATIONALITY_NEXT_LINE_MIN = 1  # exclusive
NATIONALITY_NEXT_LINE_MAX = 50  # exclusive

COUNTRY_NAMES = (
    "INDIA", "USA", "UNITED STATES", "UK", "UNITED KINGDOM", "CANADA",
    "AUSTRALIA", "GERMANY", "FRANCE", "ITALY", "SPAIN", "JAPAN", "CHINA",
    "BRAZIL", "RUSSIA", "SWITZERLAND", "NORWAY", "SWEDEN", "DENMARK",
    "FINLAND", "NETHERLANDS", "BELGIUM", "AUSTRIA", "IRELAND", "NEW ZEALAND",
    "SINGAPORE", "MALAYSIA", "THAILAND", "SOUTH KOREA", "MEXICO", "ARGENTINA",
    "CHILE", "COLOMBIA", "VENEZUELA", "PERU", "EGYPT", "SOUTH AFRICA", "KENYA",
    "NIGERIA", "GHANA", "MOROCCO", "TURKEY", "SAUDI ARABIA", "UAE", "QATAR",
    "KUWAIT", "OMAN", "PAKISTAN", "BANGLADESH", "NEPAL", "SRI LANKA", "MYANMAR",
    "VIETNAM", "INDONESIA", "PHILIPPINES", "CAMBODIA", "LAOS",
)

# ---- PAN / Aadhaar cues --------------------------------------------------

NAME_CUE = "name"
NAME_EXCLUDE_CUE = "father"
ADDRESS_CUE = "address"
ADDRESS_MIN_LINE = 10
GENDER_RE = re.compile(r"\b(MALE|FEMALE|TRANSGENDER)\b", re.IGNORECASE)

# ---- cleaning ------------------------------------------------------------

NON_ALPHA_RE = re.compile(r"[^a-zA-Z\s]")
NON_DIGIT_RE = re.compile(r"\D", re.ASCII)
NON_LABEL_VALUE_RE = re.compile(r"[^a-zA-Z0-9\s/\-]")
DIGIT_GROUP_RE = re.compile(r"(\d{4})(?=\d)", re.ASCII)


def alpha_only(text: str) -> str:
    return NON_ALPHA_RE.sub("", text).strip()


def label_value(text: str) -> str:
    return NON_LABEL_VALUE_RE.sub("", text).strip()


def group_digits(text: str, limit: Optional[int] = None) -> str:
    """Keep only digits and put a space after every 4th one."""
    digits = NON_DIGIT_RE.sub("", text)
    if limit:
        digits = digits[:limit]
    return DIGIT_GROUP_RE.sub(r"\1 ", digits)


# ---- matching primitives -------------------------------------------------

def contains_term(line: str, terms: Union[str, Iterable[str]]) -> bool:
    upper = line.upper()
    if isinstance(terms, str):
        return terms.upper() in upper
    return any(t.upper() in upper for t in terms)


def find_line(lines: Sequence[str], match: Union[str, Iterable[str], Callable[[str], bool]]) -> int:
    """Index of the first line satisfying ``match``, or -1."""
    test = match if callable(match) else (lambda ln: contains_term(ln, match))
    for i, ln in enumerate(lines):
        if test(ln):
            return i
    return -1


def split_on_term(line: str, term: str) -> Optional[str]:
    """Text between the first occurrence of ``term`` and the next one.

    Returns None when the term does not occur on the line.
    """
    parts = re.split(re.escape(term), line, flags=re.IGNORECASE)
    if len(parts) < 2:
        return None
    return parts[1]


def first_match(patterns: Sequence[FieldPattern], line: str, line_index: int = -1) -> Optional[FieldCandidate]:
    """Try ``patterns`` in order against one line; first hit wins.

    A pattern with a capture group yields the group, otherwise the whole match.
    """
    for pat in patterns:
        m = pat.regex.search(line)
        if m:
            value = m.group(1) if m.groups() and m.group(1) else m.group(0)
            return FieldCandidate(value=value, field=pat.field, pattern=pat.name, line_index=line_index)
    return None


def scan_lines(patterns: Sequence[FieldPattern], lines: Sequence[str], indices: Optional[Iterable[int]] = None) -> Optional[FieldCandidate]:
    """Walk lines top to bottom, trying every pattern on each before moving on."""
    if indices is None:
        indices = range(len(lines))
    for i in indices:
        if 0 <= i < len(lines):
            cand = first_match(patterns, lines[i], i)
            if cand:
                return cand
    return None


def cue_then_scan(patterns: Sequence[FieldPattern], lines: Sequence[str], cue_terms: Iterable[str]) -> Optional[FieldCandidate]:
    """Search the first cue line and the line after it; scan everything only if no cue line exists."""
    idx = find_line(lines, cue_terms)
    if idx >= 0:
        return scan_lines(patterns, lines, (idx, idx + 1))
    return scan_lines(patterns, lines)
