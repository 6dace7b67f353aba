from typing import Callable, List, Sequence

from request_checker.domain.entities import SearchOutcome, SearchStatus, Song
from request_checker.domain.normalization import normalize_for_search

DEFAULT_RELATED_LIMIT = 5


class SongMatcher:
    """Matches a visitor query against the repertoire.

    The matcher tries two strategies in order:
    1. Substring match of the query against title or artist (``found``)
    2. Artist names that appear inside the query, e.g. "米津玄師 の新曲" (``related``)

    Anything else is ``notFound``. The matcher never raises.
    """

    def __init__(self,
                 normalizer: Callable[[str], str] = normalize_for_search,
                 related_limit: int = DEFAULT_RELATED_LIMIT):
        """Initialize the matcher.

        Args:
            normalizer: Function applied to both the query and song fields before comparison
            related_limit: Maximum number of songs returned for a related match
        """
        self.normalizer = normalizer
        self.related_limit = related_limit

    def find_matches(self, term: str, songs: Sequence[Song]) -> List[Song]:
        """Return songs whose title or artist contains the term, in collection order."""
        needle = self.normalizer(term or "")
        if not needle:
            return []
        return [
            song for song in songs
            if needle in self.normalizer(song.title) or needle in self.normalizer(song.artist)
        ]

    def find_related(self, term: str, songs: Sequence[Song]) -> List[Song]:
        """Return songs by any artist whose name appears inside the term."""
        haystack = self.normalizer(term or "")
        if not haystack:
            return []

        mentioned = set()
        for song in songs:
            artist_n = self.normalizer(song.artist)
            if artist_n and artist_n in haystack:
                mentioned.add(song.artist)

        related: List[Song] = []
        seen = set()
        for song in songs:
            if song.artist not in mentioned or song.key in seen:
                continue
            seen.add(song.key)
            related.append(song)

        return related[:max(0, self.related_limit)]

    def search(self, term: str, songs: Sequence[Song]) -> SearchOutcome:
        """Classify a query as found, related or notFound.

        Args:
            term: Raw visitor query; surrounding whitespace is ignored
            songs: Current song collection

        Returns:
            SearchOutcome whose search_term is the trimmed, original-case query
        """
        trimmed = (term or "").strip()
        if not trimmed:
            return SearchOutcome(status=SearchStatus.NOT_FOUND, songs=[], search_term="")

        matches = self.find_matches(trimmed, songs)
        if matches:
            return SearchOutcome(status=SearchStatus.FOUND, songs=matches, search_term=trimmed)

        related = self.find_related(trimmed, songs)
        if related:
            return SearchOutcome(status=SearchStatus.RELATED, songs=related, search_term=trimmed)

        return SearchOutcome(status=SearchStatus.NOT_FOUND, songs=[], search_term=trimmed)


def search_songs(term: str, songs: Sequence[Song]) -> SearchOutcome:
    """Run a search with the default matcher."""
    return SongMatcher().search(term, songs)
