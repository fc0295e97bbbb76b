"""
Similarity scoring for candidate pairs.

A pair's score is a weighted sum of independent signals, each contributing
only when both identities carry a comparable value:

- exact phone match: +40
- phonetic name match: +35 scaled by edit-distance similarity
- birth date match: +20
- display name match: +15, only when a phonetic reading is missing

The total is clamped to 0..100.
"""

import Levenshtein

from src.dedup.models import NormalizedIdentity, SimilarityScore
from src.settings import settings

PHONE_WEIGHT = 40.0
KANA_WEIGHT = 35.0
BIRTH_DATE_WEIGHT = 20.0
NAME_WEIGHT = 15.0

# Largest edit distance, relative to the longer string, still treated as a match
MAX_DISTANCE_RATIO = 0.34

REASON_PHONE = "exact phone match"
REASON_KANA = "phonetic name match"
REASON_BIRTH_DATE = "birth date match"
REASON_NAME = "display name match"


def distance_ratio(a: str, b: str) -> float:
    """Levenshtein distance normalized by the longer length (0.0 = identical)."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 0.0
    return Levenshtein.distance(a, b) / longest


class SimilarityScorer:
    """
    Scores normalized identity pairs.

    Args:
        min_score_threshold: The default candidate threshold. The display name
            signal is capped so it never lifts a pair from below this
            threshold to or above it on its own.
    """

    def __init__(self, min_score_threshold: int | None = None):
        self.min_score_threshold = (
            settings.dedup_default_min_score
            if min_score_threshold is None
            else min_score_threshold
        )

    def score(self, a: NormalizedIdentity, b: NormalizedIdentity) -> SimilarityScore:
        """Score a pair. Symmetric in ``a`` and ``b``."""
        total = 0.0
        reasons: list[str] = []

        if a.phone and b.phone and a.phone == b.phone:
            total += PHONE_WEIGHT
            reasons.append(REASON_PHONE)

        if a.kana and b.kana:
            ratio = distance_ratio(a.kana, b.kana)
            if ratio <= MAX_DISTANCE_RATIO:
                total += KANA_WEIGHT * (1 - ratio)
                reasons.append(REASON_KANA)

        if a.birth_date and b.birth_date and a.birth_date == b.birth_date:
            total += BIRTH_DATE_WEIGHT
            reasons.append(REASON_BIRTH_DATE)

        if not (a.kana and b.kana) and _names_match(a.name, b.name):
            points = NAME_WEIGHT
            if total < self.min_score_threshold:
                points = min(points, max(0.0, self.min_score_threshold - 1 - total))
            if points > 0:
                total += points
                reasons.append(REASON_NAME)

        return SimilarityScore(
            score=max(0, min(100, round(total))),
            reasons=tuple(reasons),
        )


def _names_match(a: str | None, b: str | None) -> bool:
    if not a or not b:
        return False
    if a == b:
        return True
    compact_a = a.replace(" ", "")
    compact_b = b.replace(" ", "")
    shorter, longer = sorted((compact_a, compact_b), key=len)
    if len(shorter) >= 2 and shorter in longer:
        return True
    return distance_ratio(compact_a, compact_b) <= MAX_DISTANCE_RATIO
