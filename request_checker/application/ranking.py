from typing import Dict, List, Mapping, Sequence, Tuple

from request_checker.domain.entities import RankEntry, RequestRankEntry, Song

DEFAULT_RANKING_LIMIT = 100


def _ordered_counts(counts: Mapping[str, int], limit: int) -> List[Tuple[str, int]]:
    # count desc, then title for a deterministic order among ties
    positive = [(key, int(count)) for key, count in counts.items() if key and int(count) >= 1]
    positive.sort(key=lambda item: (-item[1], item[0]))
    if limit <= 0:
        return []
    return positive[:limit]


def build_ranking(counts: Mapping[str, int],
                  songs: Sequence[Song],
                  limit: int = DEFAULT_RANKING_LIMIT) -> List[RankEntry]:
    """Build the search-popularity leaderboard.

    The artist comes from the first song with the same title; titles that are
    no longer in the collection get an empty artist.
    """
    artist_by_title: Dict[str, str] = {}
    for song in songs:
        artist_by_title.setdefault(song.title, song.artist)

    return [
        RankEntry(id=title, count=count, artist=artist_by_title.get(title, ""))
        for title, count in _ordered_counts(counts, limit)
    ]


def build_request_ranking(counts: Mapping[str, int],
                          limit: int = DEFAULT_RANKING_LIMIT) -> List[RequestRankEntry]:
    """Build the request leaderboard over free-text requested terms."""
    return [
        RequestRankEntry(id=term, count=count)
        for term, count in _ordered_counts(counts, limit)
    ]
