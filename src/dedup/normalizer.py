"""
Field normalization for identity comparison.

Turns raw patient fields into canonical forms that can be compared directly.
Nothing here raises: input that cannot be interpreted becomes ``None``, which
the scorer treats as "not comparable" rather than as a mismatch.
"""

import re
import unicodedata
from datetime import date, datetime

from src.dedup.models import NormalizedIdentity, PatientIdentity

_WHITESPACE_RE = re.compile(r"\s+")
_NON_DIGIT_RE = re.compile(r"\D")

# Long-vowel marks and the dashes people type in their place
_LONG_VOWEL_RE = re.compile(r"[ーｰ−\-‐-―─～〜~]")
_HYPHEN_RE = re.compile(r"[−‐-―─ー－]")

# Hiragana block that maps one-to-one onto katakana by a fixed offset
_HIRAGANA_START = 0x3041
_HIRAGANA_END = 0x3096
_KATAKANA_OFFSET = 0x60

_DATE_FORMATS = ("%Y-%m-%d", "%Y/%m/%d", "%Y.%m.%d", "%Y%m%d")
_KANJI_DATE_RE = re.compile(r"^(\d{4})年(\d{1,2})月(\d{1,2})日$")


def normalize_name(raw: str | None) -> str | None:
    """Trim and collapse whitespace (full-width spaces included)."""
    if not raw:
        return None
    value = _WHITESPACE_RE.sub(" ", unicodedata.normalize("NFKC", raw)).strip()
    return value or None


def normalize_kana(raw: str | None) -> str | None:
    """
    Canonical phonetic reading.

    Half-width katakana is widened, hiragana becomes katakana, Latin letters
    are upper-cased, whitespace is removed and long-vowel marks (in any of
    their typed variants) are dropped, so "やまだ たろう", "ﾔﾏﾀﾞ ﾀﾛｳ" and
    "ヤマダ　タロウ" compare equal.
    """
    if not raw:
        return None
    value = unicodedata.normalize("NFKC", raw)
    value = "".join(_to_katakana(ch) for ch in value).upper()
    value = _WHITESPACE_RE.sub("", value)
    value = _LONG_VOWEL_RE.sub("", value)
    return value or None


def _to_katakana(ch: str) -> str:
    code = ord(ch)
    if _HIRAGANA_START <= code <= _HIRAGANA_END:
        return chr(code + _KATAKANA_OFFSET)
    return ch


def normalize_phone(raw: str | None) -> str | None:
    """
    Japanese phone number in national format (leading 0, 10 or 11 digits).

    Handles the mistakes seen in practice: "0090..." typed for "090...", an
    international "00" dialling prefix, a "+81"/"81" country code, and mobile
    numbers entered without the trunk 0.
    """
    if not raw:
        return None
    digits = _NON_DIGIT_RE.sub("", unicodedata.normalize("NFKC", raw))
    if not digits:
        return None

    if digits.startswith("0080") or digits.startswith("0090") or digits.startswith("0070"):
        digits = digits[1:]
    elif digits.startswith("00"):
        digits = digits[2:]

    if digits.startswith("81"):
        digits = "0" + digits[2:]

    if not digits.startswith("0") and digits[0] in "789":
        digits = "0" + digits

    if not digits.startswith("0") or len(digits) not in (10, 11):
        return None
    return digits


def normalize_birth_date(raw: str | date | None) -> date | None:
    """Parse a birth date; unrecognised formats yield ``None``."""
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw

    value = unicodedata.normalize("NFKC", raw).strip()
    if not value:
        return None

    match = _KANJI_DATE_RE.match(value)
    if match:
        try:
            return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        except ValueError:
            return None

    # Timestamps such as "1990-01-01T00:00:00" carry the date first
    value = value.split("T")[0].split(" ")[0]
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    return None


def normalize_postal_code(raw: str | None) -> str | None:
    """Seven-digit Japanese postal code."""
    if not raw:
        return None
    digits = _NON_DIGIT_RE.sub("", unicodedata.normalize("NFKC", raw))
    return digits if len(digits) == 7 else None


def normalize_address(raw: str | None) -> str | None:
    """Width-folded address with hyphen variants unified and whitespace removed."""
    if not raw:
        return None
    value = unicodedata.normalize("NFKC", raw)
    value = _HYPHEN_RE.sub("-", value)
    value = _WHITESPACE_RE.sub("", value)
    return value or None


def normalize_identity(identity: PatientIdentity) -> NormalizedIdentity:
    """Normalize every comparable field of an identity."""
    return NormalizedIdentity(
        patient_id=identity.patient_id,
        name=normalize_name(identity.name),
        kana=normalize_kana(identity.name_kana),
        phone=normalize_phone(identity.tel),
        birth_date=normalize_birth_date(identity.birthday),
        postal_code=normalize_postal_code(identity.postal_code),
        address=normalize_address(identity.address),
    )
