"""
Blocking index for candidate generation.

Comparing every pair in a tenant is quadratic. Instead, identities are
grouped under cheap blocking keys (phone suffix, reading prefix, birth date)
and only identities sharing a key are compared. True duplicates almost always
share at least one of them.
"""

from collections import defaultdict
from collections.abc import Iterable

from src.dedup.models import NormalizedIdentity

PHONE_SUFFIX_LENGTH = 4
KANA_PREFIX_LENGTH = 2

Blocks = dict[str, list[str]]


def blocking_keys(identity: NormalizedIdentity) -> list[str]:
    """Blocking keys for one normalized identity."""
    keys: list[str] = []
    if identity.phone:
        keys.append(f"phone:{identity.phone[-PHONE_SUFFIX_LENGTH:]}")
    if identity.kana and len(identity.kana) >= KANA_PREFIX_LENGTH:
        keys.append(f"kana:{identity.kana[:KANA_PREFIX_LENGTH]}")
    if identity.birth_date:
        keys.append(f"birth:{identity.birth_date.isoformat()}")
    return keys


def build(identities: Iterable[NormalizedIdentity]) -> Blocks:
    """Map every blocking key to the ids of the identities that carry it."""
    blocks: defaultdict[str, list[str]] = defaultdict(list)
    for identity in identities:
        for key in blocking_keys(identity):
            blocks[key].append(identity.patient_id)
    return dict(blocks)


def canonical_pair(id_a: str, id_b: str) -> tuple[str, str]:
    """Unordered pair in its reporting order: lower id first."""
    return (id_a, id_b) if id_a <= id_b else (id_b, id_a)


def candidate_pairs(blocks: Blocks) -> set[tuple[str, str]]:
    """
    Every pair of distinct ids sharing at least one block, exactly once.

    Pairs are canonical (lower id first) so a pair found through several
    blocks collapses to one entry.
    """
    pairs: set[tuple[str, str]] = set()
    for ids in blocks.values():
        members = sorted(set(ids))
        for i, id_a in enumerate(members):
            for id_b in members[i + 1 :]:
                pairs.add((id_a, id_b))
    return pairs
