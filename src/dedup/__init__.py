"""
Patient identity resolution and merge.

This package handles:
- Normalizing identity fields into comparable forms
- Blocking and scoring to find likely-duplicate identities
- Recording operator decisions that a pair is not a duplicate
- Merging two identities and re-pointing every dependent record

Store-backed components (detector, ignore list, merge executor, service) are
imported from their modules directly.
"""

from src.dedup.blocking import candidate_pairs, canonical_pair
from src.dedup.models import (
    DuplicateCandidate,
    MergeResult,
    NormalizedIdentity,
    PatientIdentity,
    SimilarityScore,
)
from src.dedup.normalizer import normalize_identity
from src.dedup.scorer import SimilarityScorer

__all__ = [
    "DuplicateCandidate",
    "MergeResult",
    "NormalizedIdentity",
    "PatientIdentity",
    "SimilarityScore",
    "SimilarityScorer",
    "candidate_pairs",
    "canonical_pair",
    "normalize_identity",
]
