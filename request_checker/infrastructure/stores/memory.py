import copy
import threading
from typing import Any, Dict, List, Optional, Tuple

from request_checker.domain.ports import DocumentStore


class InMemoryDocumentStore(DocumentStore):
    """Document store kept in process memory.

    Used for tests and for running without persistence. Returned documents are
    copies, so callers cannot mutate stored state by accident.
    """

    def __init__(self, initial: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = copy.deepcopy(initial or {})
        self._lock = threading.Lock()

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            doc = self._collections.get(collection, {}).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        with self._lock:
            docs = self._collections.setdefault(collection, {})
            if merge and doc_id in docs:
                docs[doc_id].update(copy.deepcopy(data))
            else:
                docs[doc_id] = copy.deepcopy(data)

    def delete(self, collection: str, doc_id: str) -> None:
        with self._lock:
            self._collections.get(collection, {}).pop(doc_id, None)

    def list(self, collection: str) -> List[Tuple[str, Dict[str, Any]]]:
        with self._lock:
            return [(doc_id, copy.deepcopy(doc))
                    for doc_id, doc in self._collections.get(collection, {}).items()]
