from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol, Tuple

from .entities import AvailabilityCheck


class DocumentStore(Protocol):
    """Port defining the minimal contract for the hosted document database.

    Documents are JSON objects addressed by (collection, document id). Implementations
    raise StoreError when the backing storage cannot be reached; they make no
    transactional guarantees.
    """

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Return a copy of the document, or None when it does not exist."""

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        """Write the document, replacing it unless merge is True."""

    def delete(self, collection: str, doc_id: str) -> None:
        """Delete the document if it exists."""

    def list(self, collection: str) -> List[Tuple[str, Dict[str, Any]]]:
        """Return (id, document) pairs in insertion order."""


class AvailabilityChecker(Protocol):
    """Port for the external sheet-music availability search."""

    def check(self, query: str) -> AvailabilityCheck:
        """Return the availability verdict for a free-text query."""
