import json
from datetime import datetime
from typing import Dict, Any, Optional
from dataclasses import dataclass, asdict, field
from contextlib import contextmanager
import threading
import time


@dataclass
class ServiceMetrics:
    """Counters for one running service instance."""
    searches_found: int = 0
    searches_related: int = 0
    searches_not_found: int = 0
    search_duration_ms: float = 0.0
    events_recorded: int = 0
    events_failed: int = 0
    store_failures: int = 0
    availability_checks: int = 0
    availability_failures: int = 0
    songlist_saves: int = 0
    start_time: datetime = field(default_factory=datetime.now)

    @property
    def total_searches(self) -> int:
        return self.searches_found + self.searches_related + self.searches_not_found

    @property
    def hit_rate(self) -> float:
        """Share of searches that found the song in the repertoire."""
        if self.total_searches == 0:
            return 0.0
        return self.searches_found / self.total_searches

    @property
    def average_search_duration_ms(self) -> float:
        if self.total_searches == 0:
            return 0.0
        return self.search_duration_ms / self.total_searches

    @property
    def event_failure_rate(self) -> float:
        attempts = self.events_recorded + self.events_failed
        if attempts == 0:
            return 0.0
        return self.events_failed / attempts


class MetricsCollector:
    """Collects service metrics; safe to call from request threads and event workers."""

    _SEARCH_FIELDS = {
        'found': 'searches_found',
        'related': 'searches_related',
        'notFound': 'searches_not_found',
    }

    def __init__(self):
        """Initialize metrics collector."""
        self.metrics = ServiceMetrics()
        self._lock = threading.Lock()

    def record_search(self, status: str, duration_ms: float = 0.0) -> None:
        """Record a completed search by outcome status."""
        attr = self._SEARCH_FIELDS.get(status)
        if attr is None:
            raise ValueError(f"Unknown search status: {status}")
        with self._lock:
            setattr(self.metrics, attr, getattr(self.metrics, attr) + 1)
            self.metrics.search_duration_ms += duration_ms

    @contextmanager
    def time_search(self):
        """Measure a search; the caller sets ``status`` on the yielded dict."""
        outcome: Dict[str, Optional[str]] = {'status': None}
        started = time.perf_counter()
        try:
            yield outcome
        finally:
            if outcome['status']:
                self.record_search(outcome['status'], (time.perf_counter() - started) * 1000)

    def record_event(self, success: bool) -> None:
        """Record a fire-and-forget counter event."""
        with self._lock:
            if success:
                self.metrics.events_recorded += 1
            else:
                self.metrics.events_failed += 1

    def record_store_failure(self) -> None:
        with self._lock:
            self.metrics.store_failures += 1

    def record_availability_check(self, success: bool) -> None:
        with self._lock:
            self.metrics.availability_checks += 1
            if not success:
                self.metrics.availability_failures += 1

    def record_songlist_save(self) -> None:
        with self._lock:
            self.metrics.songlist_saves += 1

    def to_dict(self) -> Dict[str, Any]:
        """Convert metrics to dictionary for JSON serialization."""
        with self._lock:
            data = asdict(self.metrics)
            data['start_time'] = self.metrics.start_time.isoformat()
            data['total_searches'] = self.metrics.total_searches
            data['hit_rate'] = self.metrics.hit_rate
            data['average_search_duration_ms'] = self.metrics.average_search_duration_ms
            data['event_failure_rate'] = self.metrics.event_failure_rate
            return data

    def save_to_file(self, file_path: str) -> None:
        """Save metrics to JSON file."""
        with open(file_path, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)
