import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from request_checker.application.catalog import filter_playable, sort_songs
from request_checker.application.matching import SongMatcher
from request_checker.application.ranking import DEFAULT_RANKING_LIMIT, build_ranking, build_request_ranking
from request_checker.application.repository import DEFAULT_SONG_LIST, SongRepository
from request_checker.crosscutting.logging import (
    log_event_failure, log_parse_diagnostics, log_search, log_songlist_saved
)
from request_checker.crosscutting.metrics import MetricsCollector
from request_checker.domain.entities import (
    ParseDiagnostic, RankEntry, RequestRankEntry, SearchOutcome, Song
)
from request_checker.domain.songlist import encode_songs, parse_songs_with_diagnostics

logger = logging.getLogger(__name__)

CONNECTING = "connecting"
CONNECTED = "connected"
OFFLINE = "offline"


class RequestCheckerSession:
    """Owns the in-memory snapshot and coordinates it with the store.

    Songs, search counts and request counts are fetched independently; a
    failing fetch leaves the other snapshots intact. Counter events are
    submitted to a background executor and never affect search results.
    """

    def __init__(self,
                 repository: SongRepository,
                 matcher: Optional[SongMatcher] = None,
                 metrics: Optional[MetricsCollector] = None,
                 executor: Optional[Executor] = None,
                 fallback_blob: str = DEFAULT_SONG_LIST,
                 ranking_limit: int = DEFAULT_RANKING_LIMIT,
                 admin_passkey: Optional[str] = None):
        """Initialize the session.

        Args:
            repository: Boundary operations on the document store
            matcher: Matcher used for visitor searches
            metrics: Collector for service metrics
            executor: Executor for fire-and-forget counter events
            fallback_blob: Song list used when the store cannot be reached
            ranking_limit: Default leaderboard size
            admin_passkey: Search term that opens the admin surface instead of searching
        """
        self.repository = repository
        self.matcher = matcher or SongMatcher()
        self.metrics = metrics or MetricsCollector()
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="events")
        self._owns_executor = executor is None
        self.fallback_blob = fallback_blob
        self.ranking_limit = ranking_limit
        self.admin_passkey = admin_passkey

        self.songs: List[Song] = []
        self.diagnostics: List[ParseDiagnostic] = []
        self.search_counts: Dict[str, Dict] = {}
        self.request_counts: Dict[str, int] = {}
        self.connection_status = CONNECTING

        self._pending: Set[Future] = set()
        self._pending_lock = threading.Lock()

    def _apply_blob(self, blob: str, source: str) -> None:
        songs, diagnostics = parse_songs_with_diagnostics(blob)
        if diagnostics:
            log_parse_diagnostics(logger, diagnostics, source=source)
        self.songs = songs
        self.diagnostics = diagnostics

    def refresh_songs(self) -> str:
        """Reload the song list; fall back to the built-in list when the store fails.

        Returns:
            The resulting connection status
        """
        try:
            blob = self.repository.load_song_blob()
        except Exception as e:
            logger.error(f"Failed to fetch songs, using fallback list: {e}")
            self.metrics.record_store_failure()
            self._apply_blob(self.fallback_blob, source="fallback")
            self.connection_status = OFFLINE
            return self.connection_status

        self._apply_blob(blob, source="store")
        self.connection_status = CONNECTED
        logger.info(f"Loaded {len(self.songs)} songs")
        return self.connection_status

    def refresh_search_counts(self) -> bool:
        """Reload the search-count snapshot, keeping the previous one on failure."""
        try:
            self.search_counts = self.repository.load_search_counts()
            return True
        except Exception as e:
            logger.error(f"Failed to fetch rankings: {e}")
            self.metrics.record_store_failure()
            return False

    def refresh_request_counts(self) -> bool:
        """Reload the request-count snapshot, keeping the previous one on failure."""
        try:
            self.request_counts = self.repository.load_request_counts()
            return True
        except Exception as e:
            logger.error(f"Failed to fetch request rankings: {e}")
            self.metrics.record_store_failure()
            return False

    def load(self) -> "RequestCheckerSession":
        """Fetch songs and both count snapshots concurrently."""
        with ThreadPoolExecutor(max_workers=3, thread_name_prefix="load") as pool:
            futures = [
                pool.submit(self.refresh_songs),
                pool.submit(self.refresh_search_counts),
                pool.submit(self.refresh_request_counts),
            ]
            wait(futures)
        return self

    def is_admin_term(self, term: str) -> bool:
        return bool(self.admin_passkey) and (term or "").strip() == self.admin_passkey

    def search(self, term: str, record: bool = True) -> Optional[SearchOutcome]:
        """Search the current snapshot and log the term in the background.

        Args:
            term: Visitor query
            record: False to skip the search-count event

        Returns:
            The outcome, or None when the trimmed term is empty (no search performed)
        """
        trimmed = (term or "").strip()
        if not trimmed:
            return None

        if record:
            self._emit("search", self.repository.record_search_event, trimmed)

        with self.metrics.time_search() as timing:
            outcome = self.matcher.search(trimmed, self.songs)
            timing['status'] = outcome.status.value

        log_search(logger, trimmed, outcome.status.value, len(outcome.songs))
        return outcome

    def request(self, term: str) -> bool:
        """Log a song request in the background. Returns False for an empty term."""
        trimmed = (term or "").strip()
        if not trimmed:
            return False
        self._emit("request", self.repository.record_request_event, trimmed)
        return True

    def _limit(self, limit: Optional[int]) -> int:
        return self.ranking_limit if limit is None else limit

    def ranking(self, limit: Optional[int] = None) -> List[RankEntry]:
        return build_ranking(self.search_count_map(), self.songs, self._limit(limit))

    def request_ranking(self, limit: Optional[int] = None) -> List[RequestRankEntry]:
        return build_request_ranking(self.request_counts, self._limit(limit))

    def search_count_map(self) -> Dict[str, int]:
        """Title -> search count, as used by the popularity sort."""
        return {title: data.get("count", 0) for title, data in self.search_counts.items()}

    def list_songs(self, sort: str = "default", playable_only: bool = False) -> List[Song]:
        """Songs for the list view, optionally without practicing songs.

        Raises:
            ValueError: On an unknown sort mode
        """
        songs = filter_playable(self.songs) if playable_only else self.songs
        counts = self.search_count_map() if sort == "popularity" else None
        return sort_songs(songs, sort, counts)

    def catalog_url(self, term: str) -> str:
        return self.repository.catalog_search_url(term)

    def save_blob(self, blob: str) -> Tuple[List[Song], List[ParseDiagnostic]]:
        """Persist a raw song-list blob and replace the snapshot with its parse.

        The snapshot is only replaced once the store accepted the write.
        """
        songs, diagnostics = parse_songs_with_diagnostics(blob)
        self.repository.save_song_blob(blob)

        if diagnostics:
            log_parse_diagnostics(logger, diagnostics, source="admin")
        self.songs = songs
        self.diagnostics = diagnostics
        self.metrics.record_songlist_save()
        log_songlist_saved(logger, len(songs), len(diagnostics))
        return songs, diagnostics

    def save_songs(self, songs: Sequence[Song]) -> str:
        """Encode and persist an edited collection. Returns the saved blob."""
        blob = encode_songs(songs)
        self.save_blob(blob)
        return blob

    def _run_event(self, kind: str, fn: Callable[[str], object], term: str) -> bool:
        try:
            fn(term)
        except Exception as e:
            log_event_failure(logger, kind, term, e)
            self.metrics.record_event(False)
            return False
        self.metrics.record_event(True)
        return True

    def _emit(self, kind: str, fn: Callable[[str], object], term: str) -> None:
        try:
            future = self._executor.submit(self._run_event, kind, fn, term)
        except RuntimeError as e:
            # executor already shut down
            log_event_failure(logger, kind, term, e)
            self.metrics.record_event(False)
            return

        with self._pending_lock:
            self._pending.add(future)

        def _done(f: Future) -> None:
            with self._pending_lock:
                self._pending.discard(f)

        future.add_done_callback(_done)

    def flush(self, timeout: Optional[float] = None) -> None:
        """Wait for pending counter events."""
        with self._pending_lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def close(self) -> None:
        self.flush()
        if self._owns_executor:
            self._executor.shutdown(wait=True)
