"""Tests for pair similarity scoring."""

import pytest

from src.dedup.models import NormalizedIdentity, PatientIdentity
from src.dedup.normalizer import normalize_identity
from src.dedup.scorer import (
    REASON_BIRTH_DATE,
    REASON_KANA,
    REASON_NAME,
    REASON_PHONE,
    SimilarityScorer,
    distance_ratio,
)


def _normalized(patient_id: str, **fields: str) -> NormalizedIdentity:
    return normalize_identity(
        PatientIdentity(tenant_id="clinic-test", patient_id=patient_id, **fields)
    )


@pytest.fixture
def scorer() -> SimilarityScorer:
    return SimilarityScorer(min_score_threshold=50)


class TestSimilarityScorer:
    """Tests for SimilarityScorer."""

    def test_phone_kana_birth_match(self, scorer: SimilarityScorer) -> None:
        """Same person entered twice with different phone formatting."""
        a = _normalized("1", tel="090-1111-2222", name_kana="ヤマダ タロウ", birthday="1990-01-01")
        b = _normalized("2", tel="09011112222", name_kana="ヤマダ タロウ", birthday="1990-01-01")

        result = scorer.score(a, b)

        assert result.score >= 95
        assert list(result.reasons) == [REASON_PHONE, REASON_KANA, REASON_BIRTH_DATE]
        assert list(result.reasons) == [
            "exact phone match",
            "phonetic name match",
            "birth date match",
        ]

    @pytest.mark.parametrize(
        ("fields_a", "fields_b"),
        [
            (
                {"tel": "090-1111-2222", "name_kana": "ヤマダ タロウ"},
                {"tel": "09011112222", "name_kana": "ヤマダ タロ"},
            ),
            (
                {"name": "山田太郎", "birthday": "1990-01-01"},
                {"name": "山田 太郎", "tel": "090-1111-2222"},
            ),
            (
                {"name_kana": "スズキ", "birthday": "1985-05-05"},
                {"name_kana": "スズキ ハナコ", "birthday": "1985/05/05"},
            ),
        ],
    )
    def test_symmetric(
        self,
        scorer: SimilarityScorer,
        fields_a: dict[str, str],
        fields_b: dict[str, str],
    ) -> None:
        a = _normalized("a", **fields_a)
        b = _normalized("b", **fields_b)

        assert scorer.score(a, b) == scorer.score(b, a)

    def test_kana_typo_scaled_by_distance(self, scorer: SimilarityScorer) -> None:
        """A one-character difference still matches, for fewer points."""
        a = _normalized("a", tel="090-1111-2222", name_kana="ヤマダタロウ")
        b = _normalized("b", tel="090-1111-2222", name_kana="ヤマダタロ")

        result = scorer.score(a, b)

        assert result.reasons == (REASON_PHONE, REASON_KANA)
        assert result.score == round(40 + 35 * (1 - 1 / 6))

    def test_different_kana_does_not_match(self, scorer: SimilarityScorer) -> None:
        a = _normalized("a", name_kana="ヤマダタロウ")
        b = _normalized("b", name_kana="スズキハナコ")

        result = scorer.score(a, b)

        assert result.score == 0
        assert result.reasons == ()

    def test_missing_values_are_not_mismatches(self, scorer: SimilarityScorer) -> None:
        """A missing phone neither adds nor subtracts."""
        a = _normalized("a", name_kana="ヤマダタロウ", birthday="1990-01-01")
        b = _normalized("b", tel="090-1111-2222", name_kana="ヤマダタロウ", birthday="1990-01-01")

        result = scorer.score(a, b)

        assert result.score == 55
        assert result.reasons == (REASON_KANA, REASON_BIRTH_DATE)

    def test_display_name_ignored_when_both_have_kana(self, scorer: SimilarityScorer) -> None:
        a = _normalized("a", name="山田太郎", name_kana="ヤマダタロウ")
        b = _normalized("b", name="山田太郎", name_kana="スズキハナコ")

        assert REASON_NAME not in scorer.score(a, b).reasons

    def test_display_name_cannot_cross_threshold(self, scorer: SimilarityScorer) -> None:
        """Phone (40) plus a name match stays below a threshold of 50."""
        a = _normalized("a", name="山田太郎", tel="090-1111-2222")
        b = _normalized("b", name="山田 太郎", tel="09011112222")

        result = scorer.score(a, b)

        assert result.score == 49
        assert result.reasons == (REASON_PHONE, REASON_NAME)

    def test_display_name_full_weight_above_threshold(self, scorer: SimilarityScorer) -> None:
        a = _normalized("a", name="山田太郎", tel="090-1111-2222", birthday="1990-01-01")
        b = _normalized("b", name="山田太郎", tel="09011112222", birthday="1990-01-01")

        result = scorer.score(a, b)

        assert result.score == 75
        assert result.reasons == (REASON_PHONE, REASON_BIRTH_DATE, REASON_NAME)

    def test_score_clamped(self, scorer: SimilarityScorer) -> None:
        a = _normalized("a", tel="090-1111-2222", name_kana="ヤマダ", birthday="1990-01-01")

        assert 0 <= scorer.score(a, a).score <= 100


def test_distance_ratio() -> None:
    assert distance_ratio("", "") == 0.0
    assert distance_ratio("ヤマダ", "ヤマダ") == 0.0
    assert distance_ratio("ヤマダ", "ヤマモ") == pytest.approx(1 / 3)
