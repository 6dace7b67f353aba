import pytest

from request_checker.application.repository import (
    DEFAULT_SONG_LIST, REQUEST_COUNTS_COLLECTION, SEARCH_COUNTS_COLLECTION,
    SONGLIST_COLLECTION, SONGLIST_DOC_ID, SongRepository
)
from request_checker.domain.songlist import parse_songs
from request_checker.infrastructure.stores.memory import InMemoryDocumentStore

BLOB = "Lemon,米津玄師,J-Pop\nLemon,米津玄師,J-Pop\nLemonade,Other\n白日,King Gnu"


class TestSongRepository:
    """Tests for the boundary operations on the document store."""

    def setup_method(self):
        self.store = InMemoryDocumentStore({SONGLIST_COLLECTION: {SONGLIST_DOC_ID: {"list": BLOB}}})
        self.repo = SongRepository(self.store)

    def test_load_song_blob(self):
        assert self.repo.load_song_blob() == BLOB

    def test_load_song_blob_seeds_default(self):
        repo = SongRepository(InMemoryDocumentStore())
        assert repo.load_song_blob() == DEFAULT_SONG_LIST
        assert repo.store.get(SONGLIST_COLLECTION, SONGLIST_DOC_ID) == {"list": DEFAULT_SONG_LIST}

    def test_default_song_list_parses_cleanly(self):
        assert len(parse_songs(DEFAULT_SONG_LIST)) == 29

    def test_save_song_blob(self):
        self.repo.save_song_blob("a,b")
        assert self.repo.load_song_blob() == "a,b"

    def test_save_song_blob_rejects_non_string(self):
        with pytest.raises(ValueError):
            self.repo.save_song_blob(["a,b"])

    def test_record_search_event_counts_each_title_once(self):
        assert self.repo.record_search_event("lemon") == 2
        assert self.store.get(SEARCH_COUNTS_COLLECTION, "Lemon") == {"count": 1, "artist": "米津玄師"}
        assert self.store.get(SEARCH_COUNTS_COLLECTION, "Lemonade") == {"count": 1, "artist": "Other"}

        self.repo.record_search_event("  LEMON ")
        assert self.store.get(SEARCH_COUNTS_COLLECTION, "Lemon")["count"] == 2

    def test_record_search_event_without_match(self):
        assert self.repo.record_search_event("zzz") == 0
        assert self.store.list(SEARCH_COUNTS_COLLECTION) == []

    def test_record_search_event_without_song_list(self):
        repo = SongRepository(InMemoryDocumentStore())
        assert repo.record_search_event("lemon") == 0
        assert repo.store.list(SEARCH_COUNTS_COLLECTION) == []

    def test_record_search_event_empty_term(self):
        assert self.repo.record_search_event("   ") == 0

    def test_load_search_counts(self):
        self.repo.record_search_event("白日")
        assert self.repo.load_search_counts() == {"白日": {"count": 1, "artist": "King Gnu"}}

    def test_record_request_event(self):
        assert self.repo.record_request_event("  新曲 ") is True
        self.repo.record_request_event("新曲")
        assert self.store.get(REQUEST_COUNTS_COLLECTION, "新曲") == {"count": 2}
        assert self.repo.load_request_counts() == {"新曲": 2}

    def test_record_request_event_empty_term(self):
        assert self.repo.record_request_event(" ") is False
        assert self.repo.load_request_counts() == {}

    def test_catalog_search_url_uses_template(self):
        repo = SongRepository(self.store, catalog_url_template="https://example.com/{term}")
        assert repo.catalog_search_url("猫") == "https://example.com/%E7%8C%AB"
