"""Fuzzy name matching for movie titles and theatre names.

Scores are distances in ``[0, 1]``: 0 is an exact match after
normalisation, 1 is nothing in common. A candidate is kept when its score
is strictly below the threshold.
"""

from __future__ import annotations

import re
from operator import attrgetter
from typing import Callable, Iterable, Sequence, TypeVar

from rapidfuzz import fuzz, process

T = TypeVar("T")

_PUNCT_RE = re.compile(r"[^\w\s]+", re.UNICODE)
_SPACE_RE = re.compile(r"\s+")
_LEADING_ARTICLES = ("the ", "a ", "an ")

# a query word counts as present when some candidate word is this close
_WORD_CUTOFF = 70


def normalize(text: str) -> str:
    """Lowercase, drop punctuation and a leading article, squash spaces."""
    value = text.lower().replace("&", " and ")
    value = _PUNCT_RE.sub(" ", value)
    value = _SPACE_RE.sub(" ", value).strip()
    for article in _LEADING_ARTICLES:
        if value.startswith(article) and len(value) > len(article):
            value = value[len(article):]
            break
    return value


def word_coverage(query: str, name: str) -> float:
    """Share of the query's words that have a close word in ``name``.

    Both arguments are expected to be normalised already.
    """
    query_words = query.split()
    name_words = name.split()
    if not query_words or not name_words:
        return 0.0
    hits = sum(
        1
        for word in query_words
        if process.extractOne(word, name_words, scorer=fuzz.ratio, score_cutoff=_WORD_CUTOFF)
    )
    return hits / len(query_words)


def score(query: str, name: str) -> float:
    """Distance between a query and a candidate name.

    When every query word appears in the name (a subtitle or "Special
    Edition" variant), the whole-string ratio is averaged with a perfect
    score, so the exact title still ranks first. Otherwise the ratio is
    scaled by the share of query words found, which sinks titles that
    only share a word or two ("Tron: Legacy" for "Tron: Ares").
    """
    q = normalize(query)
    n = normalize(name)
    if not q or not n:
        return 1.0
    if q == n:
        return 0.0
    similarity = fuzz.ratio(q, n) / 100.0
    coverage = word_coverage(q, n)
    if coverage == 1.0:
        similarity = (similarity + 1.0) / 2.0
    else:
        similarity *= coverage
    return round(1.0 - similarity, 6)


def match_scored(
    query: str,
    candidates: Iterable[T],
    threshold: float,
    key: Callable[[T], str] = attrgetter("name"),
) -> list[tuple[T, float]]:
    """Return ``(candidate, score)`` pairs under ``threshold``, best first.

    Ties keep the candidates' original order.
    """
    if not query or not query.strip():
        return []
    scored = []
    for index, candidate in enumerate(candidates):
        s = score(query, key(candidate))
        if s < threshold:
            scored.append((s, index, candidate))
    scored.sort(key=lambda item: (item[0], item[1]))
    return [(candidate, s) for s, _, candidate in scored]


def match(
    query: str,
    candidates: Sequence[T],
    threshold: float,
    key: Callable[[T], str] = attrgetter("name"),
) -> list[T]:
    """Candidates whose name is close enough to ``query``, best first."""
    return [c for c, _ in match_scored(query, candidates, threshold, key=key)]


def contains_match(
    query: str,
    candidates: Iterable[T],
    key: Callable[[T], str] = attrgetter("name"),
) -> list[T]:
    """Case-insensitive substring fallback used when fuzzy matching fails."""
    needle = query.strip().lower()
    if not needle:
        return []
    return [c for c in candidates if needle in key(c).lower()]
