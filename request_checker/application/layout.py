import copy
import logging
from typing import Any, Dict

from request_checker.domain.ports import DocumentStore

logger = logging.getLogger(__name__)

LAYOUT_COLLECTION = "layout"
LAYOUT_DOC_ID = "config"

DEFAULT_LAYOUT_CONFIG: Dict[str, Any] = {
    "header": {
        "title": "リクエスト曲チェッカー",
        "subtitle": "弾ける曲 or ぷりんと楽譜にある曲かチェックできます",
        "textColor": "#FFFFFF",
    },
    "nav": {"style": "grid"},
    "banners": {
        "doneru": {
            "visible": True,
            "text": "「どねる」を使うと高い還元率で配信者を応援できます",
            "buttonText": "配信者を応援する",
        },
        "twitcast": {
            "visible": True,
            "text": "ツイキャス配信はこちらから",
            "buttonText": "配信を視聴する",
        },
    },
    "theme": {
        "backgroundColor": "#111827",
        "backgroundImage": "https://images.unsplash.com/photo-1511379938547-c1f69419868d?q=80&w=2070&auto=format&fit=crop",
        "primaryColor": "#EC4899",
        "secondaryColor": "#14B8A6",
    },
}


class LayoutService:
    """Reads and replaces the site layout/theme document."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def get(self) -> Dict[str, Any]:
        """Return the stored layout, seeding the default on first use."""
        config = self.store.get(LAYOUT_COLLECTION, LAYOUT_DOC_ID)
        if config is not None:
            return config

        logger.info("No layout config stored yet, seeding the default")
        default = copy.deepcopy(DEFAULT_LAYOUT_CONFIG)
        self.store.set(LAYOUT_COLLECTION, LAYOUT_DOC_ID, default)
        return default

    def save(self, config: Dict[str, Any]) -> None:
        if not isinstance(config, dict):
            raise ValueError("Layout config must be a JSON object")
        self.store.set(LAYOUT_COLLECTION, LAYOUT_DOC_ID, config)
        logger.info("Layout config saved")
