import random
from typing import Dict, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import quote

from request_checker.domain.entities import Song
from request_checker.domain.normalization import normalize_for_search

CATALOG_SEARCH_URL_TEMPLATE = (
    "https://www.print-gakufu.com/search/result/score___keyword__{term}___subscription/"
)
YOUTUBE_SEARCH_URL_TEMPLATE = "https://www.youtube.com/results?search_query={query}"

SORT_MODES = ("default", "title", "artist", "popularity", "new")


def catalog_search_url(term: str, template: str = CATALOG_SEARCH_URL_TEMPLATE) -> str:
    """URL-encode a query into the sheet-music catalog search URL."""
    return template.format(term=quote((term or "").strip(), safe=""))


def youtube_search_url(title: str, artist: str) -> str:
    return YOUTUBE_SEARCH_URL_TEMPLATE.format(query=quote(f"{title} {artist}", safe=""))


def filter_playable(songs: Sequence[Song]) -> List[Song]:
    return [s for s in songs if not s.is_practicing]


def sort_songs(songs: Sequence[Song], mode: str = "default",
               counts: Optional[Mapping[str, int]] = None) -> List[Song]:
    """Return a sorted copy of the collection for the list view.

    ``default`` keeps collection order. All other modes are stable, so songs that
    compare equal keep their collection order.
    """
    songs = list(songs)
    if mode == "default":
        return songs
    if mode == "title":
        return sorted(songs, key=lambda s: normalize_for_search(s.title))
    if mode == "artist":
        return sorted(songs, key=lambda s: (normalize_for_search(s.artist), normalize_for_search(s.title)))
    if mode == "popularity":
        counts = counts or {}
        return sorted(songs, key=lambda s: -int(counts.get(s.title, 0)))
    if mode == "new":
        return sorted(songs, key=lambda s: not s.is_new)
    raise ValueError(f"Unknown sort mode: {mode}")


def _group_by(songs: Sequence[Song], attr: str) -> List[Tuple[str, List[Song]]]:
    groups: Dict[str, List[Song]] = {}
    for song in songs:
        name = getattr(song, attr)
        if not name:
            continue
        groups.setdefault(name, []).append(song)
    return sorted(groups.items(), key=lambda item: normalize_for_search(item[0]))


def group_by_artist(songs: Sequence[Song]) -> List[Tuple[str, List[Song]]]:
    """Artists in name order, each with its songs in collection order."""
    return _group_by(songs, "artist")


def group_by_genre(songs: Sequence[Song]) -> List[Tuple[str, List[Song]]]:
    """Genres in name order. Songs without a genre are left out."""
    return _group_by(songs, "genre")


def suggest_song(songs: Sequence[Song], rng: Optional[random.Random] = None) -> Optional[Song]:
    """Pick a random playable song, or None when nothing is playable."""
    playable = filter_playable(songs)
    if not playable:
        return None
    return (rng or random).choice(playable)


def format_request_message(song: Song) -> str:
    return f"「{song.title} / {song.artist}」をリクエストします！"
