import logging
from typing import Any, Dict, List, Optional

from request_checker.application.catalog import CATALOG_SEARCH_URL_TEMPLATE, catalog_search_url
from request_checker.application.matching import SongMatcher
from request_checker.domain.entities import Song
from request_checker.domain.ports import DocumentStore
from request_checker.domain.songlist import parse_songs

logger = logging.getLogger(__name__)

SONGLIST_COLLECTION = "songlist"
SONGLIST_DOC_ID = "default"
SEARCH_COUNTS_COLLECTION = "songSearchCounts"
REQUEST_COUNTS_COLLECTION = "songRequestCounts"

DEFAULT_SONG_LIST = "\n".join([
    "夜に駆ける,YOASOBI,J-Pop,new",
    "Pretender,Official髭男dism,J-Pop",
    "Lemon,米津玄師,J-Pop",
    "紅蓮華,LiSA,Anime",
    "ドライフラワー,優里,J-Pop",
    "白日,King Gnu,J-Rock",
    "マリーゴールド,あいみょん,J-Pop",
    "猫,DISH//,J-Rock",
    "うっせぇわ,Ado,J-Pop",
    "廻廻奇譚,Eve,Anime",
    "炎,LiSA,Anime",
    "Cry Baby,Official髭男dism,Anime",
    "アイドル,YOASOBI,Anime,new",
    "KICK BACK,米津玄師,Anime",
    "新時代,Ado,Anime",
    "旅路,藤井風,J-Pop",
    "何なんw,藤井風,J-Pop",
    "grace,藤井風,J-Pop",
    "きらり,藤井風,J-Pop",
    "Subtitle,Official髭男dism,J-Pop",
    "怪獣の花唄,Vaundy,J-Rock",
    "ミックスナッツ,Official髭男dism,Anime",
    "水平線,back number,J-Pop",
    "シンデレラボーイ,Saucy Dog,J-Rock",
    "なんでもないや,RADWIMPS,Anime",
    "ひまわりの約束,秦基博,J-Pop",
    "HANABI,Mr.Children,J-Pop",
    "天体観測,BUMP OF CHICKEN,J-Rock",
    "残酷な天使のテーゼ,高橋洋子,Anime",
])


class SongRepository:
    """Boundary operations between the song core and the document store.

    Counter updates are read-then-write and not atomic: concurrent writers may
    lose or double an increment.
    """

    def __init__(self, store: DocumentStore,
                 matcher: Optional[SongMatcher] = None,
                 catalog_url_template: str = CATALOG_SEARCH_URL_TEMPLATE,
                 default_song_list: str = DEFAULT_SONG_LIST):
        self.store = store
        self.matcher = matcher or SongMatcher()
        self.catalog_url_template = catalog_url_template
        self.default_song_list = default_song_list

    def load_song_blob(self) -> str:
        """Return the stored song list, seeding the default list on first use."""
        doc = self.store.get(SONGLIST_COLLECTION, SONGLIST_DOC_ID)
        if doc is not None and isinstance(doc.get("list"), str):
            return doc["list"]

        logger.info("No song list stored yet, seeding the default list")
        self.store.set(SONGLIST_COLLECTION, SONGLIST_DOC_ID, {"list": self.default_song_list})
        return self.default_song_list

    def save_song_blob(self, blob: str) -> None:
        if not isinstance(blob, str):
            raise ValueError("Song list must be a string")
        self.store.set(SONGLIST_COLLECTION, SONGLIST_DOC_ID, {"list": blob})
        logger.info(f"Saved song list ({len(blob)} chars)")

    def load_search_counts(self) -> Dict[str, Dict[str, Any]]:
        counts = {}
        for title, data in self.store.list(SEARCH_COUNTS_COLLECTION):
            counts[title] = {
                "count": int(data.get("count", 0)),
                "artist": data.get("artist") or "",
            }
        return counts

    def load_request_counts(self) -> Dict[str, int]:
        return {
            term: int(data.get("count", 0))
            for term, data in self.store.list(REQUEST_COUNTS_COLLECTION)
        }

    def record_search_event(self, term: str) -> int:
        """Increment the search count of every distinct title the term matches.

        Returns:
            Number of titles whose counter was incremented
        """
        search_term = (term or "").strip().lower()
        if not search_term:
            return 0

        doc = self.store.get(SONGLIST_COLLECTION, SONGLIST_DOC_ID)
        if doc is None:
            logger.debug("Song list not found; search not counted")
            return 0

        matched: List[Song] = self.matcher.find_matches(search_term, parse_songs(doc.get("list")))
        artist_by_title: Dict[str, str] = {}
        for song in matched:
            artist_by_title.setdefault(song.title, song.artist)

        for title, artist in artist_by_title.items():
            current = self.store.get(SEARCH_COUNTS_COLLECTION, title) or {}
            new_count = int(current.get("count", 0)) + 1
            self.store.set(SEARCH_COUNTS_COLLECTION, title,
                           {"count": new_count, "artist": artist}, merge=True)

        return len(artist_by_title)

    def record_request_event(self, term: str) -> bool:
        """Increment the request count of a free-text term. Returns False for empty terms."""
        requested = (term or "").strip()
        if not requested:
            return False

        current = self.store.get(REQUEST_COUNTS_COLLECTION, requested) or {}
        new_count = int(current.get("count", 0)) + 1
        self.store.set(REQUEST_COUNTS_COLLECTION, requested, {"count": new_count}, merge=True)
        return True

    def catalog_search_url(self, term: str) -> str:
        return catalog_search_url(term, self.catalog_url_template)
