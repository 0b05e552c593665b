"""
Best-effort extraction of candidate details from resume text.

Every field is an ordered cascade of matcher functions ``(text, lines) -> str | None``.
``None`` means "no match" and the next matcher is tried; the first non-empty
value wins. Fields are independent, so a resume may yield any subset of them.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable

from cvgrab.core.normalize import ResumeFields

from .utils import split_lines

Matcher = Callable[[str, list[str]], "str | None"]

DEFAULT_BIRTH_YEARS = (1940, 2005)

# ---------- name ----------

LABELED_NAME_PATTERNS = [
    re.compile(r"(?:^|\n)\s*name\s*:\s*([^\n\r]+)", re.IGNORECASE),
    re.compile(r"(?:^|\n)\s*full\s*name\s*:\s*([^\n\r]+)", re.IGNORECASE),
    re.compile(r"name\s*:\s*([A-Za-z\s]+)", re.IGNORECASE),
    re.compile(r"full\s*name\s*:\s*([A-Za-z\s]+)", re.IGNORECASE),
]
UPPER_LETTERS = re.compile(r"[A-Z]+")
UPPER_LETTERS_AND_SPACES = re.compile(r"[A-Z\s]+")
GLUED_UPPER_NAME = re.compile(r"([A-Z]{3,})([A-Z]{3,})")
LETTERS_AND_SPACES = re.compile(r"[A-Za-z\s]+")
LETTERS = re.compile(r"[A-Za-z]+")
TITLE_CASE_NAME = re.compile(r"^([A-Z][a-z]+\s+[A-Z][a-z]+(?:\s+[A-Z][a-z]+)?)", re.MULTILINE)

# ---------- email ----------

_ADDRESS = r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"
ADDRESS_PATTERN = re.compile(_ADDRESS)
EMAIL_PATTERNS = [
    re.compile(rf"\b{_ADDRESS}\b"),
    re.compile(rf"email\s*:\s*{_ADDRESS}", re.IGNORECASE),
    re.compile(rf"e-mail\s*:\s*{_ADDRESS}", re.IGNORECASE),
    re.compile(rf"mail\s*:\s*{_ADDRESS}", re.IGNORECASE),
]

# ---------- contact number ----------

_PHONE_LABEL = r"(?:phone|mobile|contact|tel|telephone|cell)"
_PHONE_SHAPE = r"\+?\d{1,4}[-.\s]?\(?\d{1,4}\)?[-.\s]?\d{1,4}[-.\s]?\d{1,9}"
LABELED_PHONE_PATTERNS = [
    re.compile(rf"{_PHONE_LABEL}\s*:?\s*[+\d\s\-()]+", re.IGNORECASE),
    re.compile(rf"{_PHONE_LABEL}\s*:?\s*{_PHONE_SHAPE}", re.IGNORECASE),
]
STANDALONE_PHONE_PATTERNS = [
    re.compile(_PHONE_SHAPE),
    re.compile(r"\b\d{10,15}\b"),
]
NON_PHONE_CHARS = re.compile(r"[^\d+]")
MIN_PHONE_DIGITS = 10
MAX_PHONE_DIGITS = 15

# ---------- date of birth ----------

_DOB_LABEL = r"(?:date\s*of\s*birth|dob|d\.o\.b\.|birth\s*date|born)"
_NUMERIC_DATE = r"[0-9]{1,2}[/\-.][0-9]{1,2}[/\-.][0-9]{2,4}"
LABELED_DOB_PATTERNS = [
    re.compile(rf"{_DOB_LABEL}\s*:?\s*({_NUMERIC_DATE})", re.IGNORECASE),
    re.compile(rf"{_DOB_LABEL}\s*:?\s*([A-Za-z]+\s+\d{{1,2}},?\s+\d{{4}})", re.IGNORECASE),
    re.compile(rf"(?:born|birth)\s*:?\s*({_NUMERIC_DATE})", re.IGNORECASE),
]
ANY_NUMERIC_DATE = re.compile(
    r"\b(0?[1-9]|[12][0-9]|3[01])[/\-.](0?[1-9]|1[0-2])[/\-.](\d{4})\b"
)


def _first_match(matchers: Iterable[Matcher], text: str, lines: list[str]) -> str:
    for matcher in matchers:
        value = matcher(text, lines)
        if value:
            return value
    return ""


def match_labeled_name(text: str, lines: list[str]) -> str | None:
    for pattern in LABELED_NAME_PATTERNS:
        match = pattern.search(text)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return None


def match_upper_first_line(text: str, lines: list[str]) -> str | None:
    """``DANISHALI`` -> ``DANISH ALI``; other all-caps first lines are taken whole."""
    if not lines:
        return None
    first = lines[0]
    if first != first.upper() or not UPPER_LETTERS.fullmatch(re.sub(r"\s", "", first)):
        return None
    if not 5 < len(first) < 30:
        return None
    glued = GLUED_UPPER_NAME.fullmatch(first)
    if glued:
        return f"{glued.group(1)} {glued.group(2)}"
    return first


def match_upper_words_line(text: str, lines: list[str]) -> str | None:
    for line in lines[:5]:
        if line != line.upper() or not 5 < len(line) < 50:
            continue
        words = line.split()
        if 2 <= len(words) <= 4 and UPPER_LETTERS_AND_SPACES.fullmatch(line):
            return line
    return None


def match_capitalized_words_line(text: str, lines: list[str]) -> str | None:
    for line in lines[:10]:
        words = line.split()
        if not 2 <= len(words) <= 4:
            continue
        if all(word[0].isupper() and LETTERS.fullmatch(word) for word in words) and LETTERS_AND_SPACES.fullmatch(line):
            return line
    return None


def match_title_case_anywhere(text: str, lines: list[str]) -> str | None:
    match = TITLE_CASE_NAME.search(text)
    return match.group(1).strip() if match else None


NAME_MATCHERS: tuple[Matcher, ...] = (
    match_labeled_name,
    match_upper_first_line,
    match_upper_words_line,
    match_capitalized_words_line,
    match_title_case_anywhere,
)


def match_email(text: str, lines: list[str]) -> str | None:
    for pattern in EMAIL_PATTERNS:
        for match in pattern.finditer(text):
            address = ADDRESS_PATTERN.search(match.group(0))
            if address:
                return address.group(0).lower()
    return None


EMAIL_MATCHERS: tuple[Matcher, ...] = (match_email,)


def match_labeled_phone(text: str, lines: list[str]) -> str | None:
    for pattern in LABELED_PHONE_PATTERNS:
        for match in pattern.finditer(text):
            cleaned = NON_PHONE_CHARS.sub("", match.group(0))
            if len(cleaned) >= MIN_PHONE_DIGITS:
                return cleaned
    return None


def match_standalone_phone(text: str, lines: list[str]) -> str | None:
    for pattern in STANDALONE_PHONE_PATTERNS:
        for match in pattern.finditer(text):
            cleaned = NON_PHONE_CHARS.sub("", match.group(0))
            if MIN_PHONE_DIGITS <= len(cleaned) <= MAX_PHONE_DIGITS:
                return cleaned
    return None


PHONE_MATCHERS: tuple[Matcher, ...] = (match_labeled_phone, match_standalone_phone)


def match_labeled_dob(text: str, lines: list[str]) -> str | None:
    for pattern in LABELED_DOB_PATTERNS:
        match = pattern.search(text)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return None


def plausible_birth_date_matcher(birth_years: tuple[int, int] = DEFAULT_BIRTH_YEARS) -> Matcher:
    """Any ``D/M/YYYY`` date whose year falls inside ``birth_years`` (inclusive)."""
    low, high = birth_years

    def match_plausible_birth_date(text: str, lines: list[str]) -> str | None:
        for match in ANY_NUMERIC_DATE.finditer(text):
            if low <= int(match.group(3)) <= high:
                return match.group(0).strip()
        return None

    return match_plausible_birth_date


def extract_name(text: str) -> str:
    return _first_match(NAME_MATCHERS, text, split_lines(text))


def extract_email(text: str) -> str:
    return _first_match(EMAIL_MATCHERS, text, [])


def extract_contact_number(text: str) -> str:
    return _first_match(PHONE_MATCHERS, text, [])


def extract_date_of_birth(text: str, birth_years: tuple[int, int] = DEFAULT_BIRTH_YEARS) -> str:
    matchers = (match_labeled_dob, plausible_birth_date_matcher(birth_years))
    return _first_match(matchers, text, [])


def extract_resume_fields(
    text: str | None,
    *,
    birth_years: tuple[int, int] = DEFAULT_BIRTH_YEARS,
) -> ResumeFields:
    if not text:
        return ResumeFields()
    return ResumeFields(
        name=extract_name(text),
        email=extract_email(text),
        contact_number=extract_contact_number(text),
        date_of_birth=extract_date_of_birth(text, birth_years),
    )
