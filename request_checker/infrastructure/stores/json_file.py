import json
import logging
import os
import tempfile
import threading
from typing import Any, Dict, List, Optional, Tuple

from request_checker.domain.errors import StoreError
from request_checker.domain.ports import DocumentStore

logger = logging.getLogger(__name__)


class JsonFileDocumentStore(DocumentStore):
    """Document store persisted as a single JSON file.

    Layout: ``{collection: {doc_id: document}}``. Every operation re-reads the
    file so several processes see each other's writes; writes go through a
    temporary file and ``os.replace``.
    """

    def __init__(self, file_path: str):
        """Initialize the store.

        Args:
            file_path: Path of the JSON file; parent directories are created on first write
        """
        self.file_path = file_path
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, Dict[str, Dict[str, Any]]]:
        if not os.path.exists(self.file_path):
            return {}
        try:
            with open(self.file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            raise StoreError(f"Failed to read store {self.file_path}: {e}")
        if not isinstance(data, dict):
            raise StoreError(f"Store {self.file_path} does not contain a JSON object")
        return data

    def _save(self, data: Dict[str, Dict[str, Dict[str, Any]]]) -> None:
        directory = os.path.dirname(os.path.abspath(self.file_path))
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix='.store-', suffix='.json')
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.file_path)
        except (IOError, OSError) as e:
            raise StoreError(f"Failed to write store {self.file_path}: {e}")
        finally:
            # left behind only when the replace did not happen
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._load().get(collection, {}).get(doc_id)

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        with self._lock:
            content = self._load()
            docs = content.setdefault(collection, {})
            if merge and doc_id in docs:
                docs[doc_id].update(data)
            else:
                docs[doc_id] = dict(data)
            self._save(content)
            logger.debug(f"Wrote {collection}/{doc_id}")

    def delete(self, collection: str, doc_id: str) -> None:
        with self._lock:
            content = self._load()
            if content.get(collection, {}).pop(doc_id, None) is not None:
                self._save(content)

    def list(self, collection: str) -> List[Tuple[str, Dict[str, Any]]]:
        with self._lock:
            return list(self._load().get(collection, {}).items())
