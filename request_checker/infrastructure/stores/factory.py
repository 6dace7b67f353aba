import logging

from request_checker.crosscutting.config import Settings
from request_checker.domain.ports import DocumentStore
from request_checker.infrastructure.stores.json_file import JsonFileDocumentStore
from request_checker.infrastructure.stores.memory import InMemoryDocumentStore

logger = logging.getLogger(__name__)


def create_store(settings: Settings) -> DocumentStore:
    """Create the document store selected by configuration."""
    if settings.store_backend == 'memory':
        logger.warning("Using in-memory store; data is lost on restart")
        return InMemoryDocumentStore()
    logger.info(f"Using JSON file store at {settings.data_file}")
    return JsonFileDocumentStore(settings.data_file)
