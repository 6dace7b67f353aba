import pytest

from request_checker.application.layout import (
    DEFAULT_LAYOUT_CONFIG, LAYOUT_COLLECTION, LAYOUT_DOC_ID, LayoutService
)
from request_checker.infrastructure.stores.memory import InMemoryDocumentStore


class TestLayoutService:

    def setup_method(self):
        self.store = InMemoryDocumentStore()
        self.layout = LayoutService(self.store)

    def test_get_seeds_default(self):
        config = self.layout.get()
        assert config == DEFAULT_LAYOUT_CONFIG
        assert self.store.get(LAYOUT_COLLECTION, LAYOUT_DOC_ID) == DEFAULT_LAYOUT_CONFIG

    def test_seeded_default_is_a_copy(self):
        config = self.layout.get()
        config["header"]["title"] = "changed"
        assert DEFAULT_LAYOUT_CONFIG["header"]["title"] == "リクエスト曲チェッカー"

    def test_save_replaces_document(self):
        self.layout.save({"theme": {"primaryColor": "#000000"}})
        assert self.layout.get() == {"theme": {"primaryColor": "#000000"}}

    def test_save_rejects_non_object(self):
        with pytest.raises(ValueError):
            self.layout.save(["not", "a", "dict"])
