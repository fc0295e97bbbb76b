"""Tests for identity field normalization."""

from datetime import date, datetime

import pytest

from src.dedup.models import PatientIdentity
from src.dedup.normalizer import (
    normalize_address,
    normalize_birth_date,
    normalize_identity,
    normalize_kana,
    normalize_name,
    normalize_phone,
    normalize_postal_code,
)


class TestNormalizeKana:
    """Tests for phonetic reading normalization."""

    @pytest.mark.parametrize(
        "raw",
        ["ヤマダ タロウ", "ヤマダ　タロウ", "やまだ たろう", "ﾔﾏﾀﾞ ﾀﾛｳ", " ヤマダタロウ "],
    )
    def test_variants_compare_equal(self, raw: str) -> None:
        """Hiragana, half-width and spacing variants share one form."""
        assert normalize_kana(raw) == "ヤマダタロウ"

    def test_long_vowel_marks_removed(self) -> None:
        """Long-vowel marks and dashes typed in their place are dropped."""
        assert normalize_kana("サトー") == "サト"
        assert normalize_kana("サト-") == "サト"
        assert normalize_kana("サト〜") == "サト"

    def test_latin_upper_cased(self) -> None:
        assert normalize_kana("yamada") == "YAMADA"

    @pytest.mark.parametrize("raw", [None, "", "   ", "ー"])
    def test_empty_is_none(self, raw: str | None) -> None:
        assert normalize_kana(raw) is None


class TestNormalizePhone:
    """Tests for Japanese phone number normalization."""

    @pytest.mark.parametrize(
        "raw",
        [
            "090-1111-2222",
            "09011112222",
            "(090) 1111 2222",
            "０９０－１１１１－２２２２",
            "+81 90-1111-2222",
            "81-90-1111-2222",
            "0090-1111-2222",
            "0081-90-1111-2222",
            "90-1111-2222",
        ],
    )
    def test_mobile_variants(self, raw: str) -> None:
        """Formatting, country code and missing trunk prefix are all undone."""
        assert normalize_phone(raw) == "09011112222"

    def test_landline(self) -> None:
        assert normalize_phone("03-1234-5678") == "0312345678"

    @pytest.mark.parametrize("raw", [None, "", "abc", "12345", "1234567890", "090-1111-22223333"])
    def test_invalid_is_none(self, raw: str | None) -> None:
        """Values that cannot be a Japanese number are not comparable."""
        assert normalize_phone(raw) is None


class TestNormalizeBirthDate:
    """Tests for birth date parsing."""

    @pytest.mark.parametrize(
        "raw",
        [
            "1990-01-01",
            "1990/01/01",
            "1990/1/1",
            "1990.01.01",
            "19900101",
            "1990年1月1日",
            "１９９０－０１－０１",
            "1990-01-01T00:00:00",
            "1990-01-01 09:30:00",
        ],
    )
    def test_formats(self, raw: str) -> None:
        assert normalize_birth_date(raw) == date(1990, 1, 1)

    def test_date_and_datetime_objects(self) -> None:
        assert normalize_birth_date(date(1990, 1, 1)) == date(1990, 1, 1)
        assert normalize_birth_date(datetime(1990, 1, 1, 12, 0)) == date(1990, 1, 1)

    @pytest.mark.parametrize("raw", [None, "", "unknown", "1990-02-30", "1990年13月1日"])
    def test_unparseable_is_none(self, raw: str | None) -> None:
        assert normalize_birth_date(raw) is None


class TestOtherFields:
    """Tests for name, postal code and address normalization."""

    def test_name_whitespace_collapsed(self) -> None:
        assert normalize_name("  山田　 太郎 ") == "山田 太郎"

    def test_name_empty_is_none(self) -> None:
        assert normalize_name("　") is None

    def test_postal_code(self) -> None:
        assert normalize_postal_code("〒100-0001") == "1000001"
        assert normalize_postal_code("１００－０００１") == "1000001"
        assert normalize_postal_code("100-001") is None

    def test_address_hyphens_and_spaces(self) -> None:
        assert normalize_address("東京都 千代田区 １−２−３") == "東京都千代田区1-2-3"
        assert normalize_address("東京都千代田区1ー2ー3") == "東京都千代田区1-2-3"


def test_normalize_identity() -> None:
    """Every comparable field is normalized; missing values stay None."""
    identity = PatientIdentity(
        tenant_id="clinic-test",
        patient_id="p1",
        name="山田　太郎",
        name_kana="やまだ たろう",
        tel="090-1111-2222",
        birthday="1990/01/01",
    )

    normalized = normalize_identity(identity)

    assert normalized.patient_id == "p1"
    assert normalized.name == "山田 太郎"
    assert normalized.kana == "ヤマダタロウ"
    assert normalized.phone == "09011112222"
    assert normalized.birth_date == date(1990, 1, 1)
    assert normalized.postal_code is None
    assert normalized.address is None
