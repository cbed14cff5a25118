"""Fuzzy name resolution."""

from typing import Protocol

from .config import MARKDOWN_SUFFIX, MIN_MATCH_SCORE
from .data_models import LibraryItem
from .document_parser import normalize_name
from .index import LibraryIndex


class Scorer(Protocol):
    """Scores how well a query matches a target, from 0.0 to 1.0."""

    def __call__(self, query: str, target: str) -> float: ...


def tiered_score(query: str, target: str) -> float:
    """Score a query against a target with fixed tiers.

    1.0 for equal normalized names, 0.8 when one contains the other, up to
    0.5 for shared words, and up to 0.3 for characters matching position by
    position.
    """
    q = normalize_name(query)
    t = normalize_name(target)

    if q == t:
        return 1.0
    if not q or not t:
        return 0.0

    if q in t or t in q:
        return 0.8

    query_words = q.split()
    target_words = t.split()
    matched = [qw for qw in query_words if any(tw in qw or qw in tw for tw in target_words)]
    if matched:
        return 0.5 * (len(matched) / len(query_words))

    same = sum(1 for a, b in zip(q, t) if a == b)
    return 0.3 * (same / max(len(q), len(t)))


class FuzzyResolver:
    """Resolves free-form names to a single library item."""

    def __init__(
        self,
        index: LibraryIndex,
        scorer: Scorer = tiered_score,
        threshold: float = MIN_MATCH_SCORE,
    ):
        self.index = index
        self.scorer = scorer
        self.threshold = threshold

    def score_item(self, query: str, item: LibraryItem) -> float:
        """Best score of a query against an item's id, name, and aliases."""
        candidates = [item.id, item.name, *item.metadata.aliases]
        return max(self.scorer(query, candidate) for candidate in candidates)

    def resolve(self, query: str) -> LibraryItem | None:
        """Find the best matching item for a query.

        Exact ids win outright; otherwise the highest-scoring item across
        the whole index is returned if it clears the threshold.
        """
        exact = self.index.get(query)
        if exact is not None:
            return exact

        if query.endswith(MARKDOWN_SUFFIX):
            exact = self.index.get(query[: -len(MARKDOWN_SUFFIX)])
            if exact is not None:
                return exact

        best: LibraryItem | None = None
        best_score = 0.0
        for item in self.index.items.values():
            score = self.score_item(query, item)
            if score > best_score:
                best, best_score = item, score

        return best if best_score >= self.threshold else None

    def rank(self, query: str, limit: int, minimum: float = 0.0) -> list[LibraryItem]:
        """Items ordered by descending fuzzy score, above a minimum."""
        scored = [(self.score_item(query, item), item) for item in self.index.items.values()]
        scored = [(score, item) for score, item in scored if score > minimum]
        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [item for _, item in scored[: max(limit, 0)]]
