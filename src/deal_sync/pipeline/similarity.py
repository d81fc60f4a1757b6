"""
Company-name similarity.

name_similarity compares normalized names and returns a score in [0, 1]:
- 1.0 for identical normalized names
- 0.9 when one normalized name contains the other
- otherwise 1 - levenshtein / max(len)

The 0.9 containment shortcut is an approximation: it is not consistent with
the edit-distance branch ("ab" vs "abcdefgh" scores 0.9 even though the
distance ratio would be far lower). Deduplication relies on that leniency for
names like "Alphabet" vs "Alphabet Holdings".
"""

from rapidfuzz.distance import Levenshtein

from .normalizer import normalize_company_name

CONTAINMENT_SCORE = 0.9


def levenshtein_distance(s1: str, s2: str) -> int:
    """Unit-cost edit distance (insert, delete, substitute)."""
    return Levenshtein.distance(s1, s2)


def name_similarity(name1: str, name2: str) -> float:
    """Similarity of two company names after normalization, in [0, 1]."""
    n1 = normalize_company_name(name1)
    n2 = normalize_company_name(name2)

    if n1 == n2:
        return 1.0

    if n1 in n2 or n2 in n1:
        return CONTAINMENT_SCORE

    max_len = max(len(n1), len(n2))
    if max_len == 0:
        return 1.0

    return 1 - levenshtein_distance(n1, n2) / max_len
