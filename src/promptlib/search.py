"""Keyword search over the flat search entry list."""

from .config import DEFAULT_SEARCH_LIMIT
from .data_models import SearchResult
from .document_parser import normalize_name
from .index import LibraryIndex

NAME_MATCH_BOOST = 2.0
TITLE_MATCH_BOOST = 1.5


def tokenize(query: str) -> list[str]:
    """Split a query into lowercase whitespace-separated tokens."""
    return query.lower().strip().split()


class SearchEngine:
    """Scores indexed items by token overlap with a query."""

    def __init__(self, index: LibraryIndex):
        self.index = index

    def search(
        self,
        query: str,
        limit: int = DEFAULT_SEARCH_LIMIT,
        category: str | None = None,
    ) -> list[SearchResult]:
        """Rank items for a query.

        Each query token found in an entry's text adds the entry weight.
        The total doubles when the item name contains the whole query and
        grows by half again when the title does.

        Args:
            query: Free-text query
            limit: Maximum results to return
            category: Optional category filter, applied before the limit

        Returns:
            Results sorted by descending score
        """
        words = tokenize(query)
        if not words:
            return []

        lowered_query = query.lower().strip()
        normalized_query = normalize_name(query)
        results: list[SearchResult] = []

        for entry in self.index.search_entries:
            item = self.index.get(entry.id)
            if item is None:
                continue
            if category is not None and item.category != category:
                continue

            score = 0.0
            matches = []
            for word in words:
                if word in entry.text:
                    score += entry.weight
                    matches.append(word)

            if normalized_query and normalized_query in normalize_name(item.name):
                score *= NAME_MATCH_BOOST
            if item.metadata.title and lowered_query in item.metadata.title.lower():
                score *= TITLE_MATCH_BOOST

            if score > 0:
                results.append(SearchResult(item=item, score=score, matches=matches))

        results.sort(key=lambda r: r.score, reverse=True)
        return results[: max(limit, 0)]
