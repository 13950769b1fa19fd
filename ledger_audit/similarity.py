"""
Name similarity used for duplicate ledger detection.
"""
import re

from rapidfuzz.distance import Levenshtein

_NON_ALNUM = re.compile(r"[^a-z0-9]")

# Substring containment only counts when both names carry some substance
MIN_CONTAINMENT_LENGTH = 3
MIN_FUZZY_LENGTH = 5
SIMILARITY_THRESHOLD = 0.8


def normalize_name(name: str) -> str:
    """Case-fold and strip everything that is not a letter or digit."""
    return _NON_ALNUM.sub("", (name or "").lower())


def distance(a: str, b: str) -> int:
    """Levenshtein edit distance over the full strings."""
    return Levenshtein.distance(a or "", b or "")


def similarity(a: str, b: str) -> float:
    """1 - distance / longest length; two empty strings are identical."""
    longest = max(len(a or ""), len(b or ""))
    if longest == 0:
        return 1.0
    return 1 - distance(a, b) / longest


def is_similar(a: str, b: str) -> bool:
    """
    True if two subject names look like duplicates of each other.

    Names are compared in normalized form. A name is never its own
    duplicate, so identical raw strings return False. Otherwise the names
    are similar when:
    - their normalized forms are equal (e.g. "Sales A/c" vs "SALES AC"), or
    - one normalized form contains the other and both are longer than 3
      characters, or
    - both normalized forms are longer than 5 characters and their edit
      similarity exceeds 0.8.
    """
    if a == b:
        return False

    left = normalize_name(a)
    right = normalize_name(b)
    if not left or not right:
        return False

    if left == right:
        return True

    if left in right or right in left:
        return len(left) > MIN_CONTAINMENT_LENGTH and len(right) > MIN_CONTAINMENT_LENGTH

    if len(left) <= MIN_FUZZY_LENGTH or len(right) <= MIN_FUZZY_LENGTH:
        return False

    return similarity(left, right) > SIMILARITY_THRESHOLD
