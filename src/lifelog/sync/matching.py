"""
Fuzzy title matching for sources without a stable external ID.

Titles are normalized (lowercase, trailing "(Series #1)" removed, trailing
", The" inversion removed, punctuation stripped, leading article stripped,
whitespace collapsed) and then compared with these rules in order, the first
match winning:

  1. exact equality;
  2. substring containment in either direction (subtitles);
  3. edit-distance similarity >= 0.90;
  4. word overlap >= 0.50 of the larger token set.

No rule matching means the candidate is a new entity.
"""
import re
from typing import Callable, Iterable, Optional, TypeVar

T = TypeVar("T")

SIMILARITY_THRESHOLD = 0.90
WORD_OVERLAP_THRESHOLD = 0.50

_ARTICLES = r"(?:the|a|an)"
_SERIES_SUFFIX = re.compile(r"\s*\([^)]*\)\s*$")
_INVERTED_ARTICLE = re.compile(rf",\s*{_ARTICLES}\s*$")
_LEADING_ARTICLE = re.compile(rf"^{_ARTICLES}\s+")
_PUNCTUATION = re.compile(r"[^\w\s]|_")
_WHITESPACE = re.compile(r"\s+")


def normalize_title(title: Optional[str]) -> str:
    """Reduce a title to its comparable form.

    >>> normalize_title("The Hobbit")
    'hobbit'
    >>> normalize_title("Hobbit, The")
    'hobbit'
    """
    if not title:
        return ""
    text = title.lower().strip()
    text = _SERIES_SUFFIX.sub("", text)
    text = _INVERTED_ARTICLE.sub("", text)
    text = _PUNCTUATION.sub("", text)
    text = _WHITESPACE.sub(" ", text).strip()
    text = _LEADING_ARTICLE.sub("", text)
    return text


def levenshtein_distance(a: str, b: str) -> int:
    """Minimum single-character insertions, deletions and substitutions from a to b."""
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(
                previous[j] + 1,         # deletion
                current[j - 1] + 1,      # insertion
                previous[j - 1] + cost,  # substitution
            ))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """1.0 for identical strings, falling toward 0.0 as edit distance grows."""
    longer = max(len(a), len(b))
    if longer == 0:
        return 1.0
    return 1.0 - levenshtein_distance(a, b) / longer


def word_overlap(a: str, b: str) -> float:
    """Shared words as a fraction of the larger word set."""
    words_a, words_b = set(a.split()), set(b.split())
    larger = max(len(words_a), len(words_b))
    if larger == 0:
        return 0.0
    return len(words_a & words_b) / larger


def match_rule(title1: Optional[str], title2: Optional[str]) -> Optional[str]:
    """Name of the first rule under which two titles match, or None."""
    a, b = normalize_title(title1), normalize_title(title2)
    if not a or not b:
        return None
    if a == b:
        return "exact"
    if a in b or b in a:
        return "substring"
    if similarity(a, b) >= SIMILARITY_THRESHOLD:
        return "similarity"
    if word_overlap(a, b) >= WORD_OVERLAP_THRESHOLD:
        return "word_overlap"
    return None


def titles_match(title1: Optional[str], title2: Optional[str]) -> bool:
    return match_rule(title1, title2) is not None


def find_match(
    title: str,
    candidates: Iterable[T],
    key: Callable[[T], str] = lambda c: c,
) -> Optional[T]:
    """Return the first candidate whose title matches ``title``.

    Candidates are scanned once per rule so that an exact match further down
    the list beats a looser match earlier in it.
    """
    candidates = list(candidates)
    target = normalize_title(title)
    if not target:
        return None
    normalized = [(normalize_title(key(c)), c) for c in candidates]
    normalized = [(n, c) for n, c in normalized if n]

    rules = (
        lambda n: n == target,
        lambda n: n in target or target in n,
        lambda n: similarity(n, target) >= SIMILARITY_THRESHOLD,
        lambda n: word_overlap(n, target) >= WORD_OVERLAP_THRESHOLD,
    )
    for rule in rules:
        for n, candidate in normalized:
            if rule(n):
                return candidate
    return None
