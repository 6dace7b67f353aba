import json
import os
import tempfile

import pytest

from request_checker.crosscutting.metrics import MetricsCollector, ServiceMetrics


class TestServiceMetrics:

    def test_rates_without_data(self):
        metrics = ServiceMetrics()
        assert metrics.total_searches == 0
        assert metrics.hit_rate == 0.0
        assert metrics.average_search_duration_ms == 0.0
        assert metrics.event_failure_rate == 0.0

    def test_rates(self):
        metrics = ServiceMetrics(searches_found=3, searches_related=1, searches_not_found=0,
                                 search_duration_ms=8.0, events_recorded=3, events_failed=1)
        assert metrics.total_searches == 4
        assert metrics.hit_rate == 0.75
        assert metrics.average_search_duration_ms == 2.0
        assert metrics.event_failure_rate == 0.25


class TestMetricsCollector:
    """Tests for MetricsCollector class."""

    def setup_method(self):
        self.collector = MetricsCollector()

    def test_record_search(self):
        self.collector.record_search('found', 1.5)
        self.collector.record_search('notFound')
        assert self.collector.metrics.searches_found == 1
        assert self.collector.metrics.searches_not_found == 1
        assert self.collector.metrics.search_duration_ms == 1.5

    def test_record_search_unknown_status(self):
        with pytest.raises(ValueError):
            self.collector.record_search('maybe')

    def test_time_search(self):
        with self.collector.time_search() as timing:
            timing['status'] = 'related'
        assert self.collector.metrics.searches_related == 1
        assert self.collector.metrics.search_duration_ms >= 0.0

    def test_time_search_without_status_records_nothing(self):
        with self.collector.time_search():
            pass
        assert self.collector.metrics.total_searches == 0

    def test_counters(self):
        self.collector.record_event(True)
        self.collector.record_event(False)
        self.collector.record_store_failure()
        self.collector.record_availability_check(True)
        self.collector.record_availability_check(False)
        self.collector.record_songlist_save()
        metrics = self.collector.metrics
        assert (metrics.events_recorded, metrics.events_failed) == (1, 1)
        assert metrics.store_failures == 1
        assert (metrics.availability_checks, metrics.availability_failures) == (2, 1)
        assert metrics.songlist_saves == 1

    def test_to_dict_and_save(self):
        self.collector.record_search('found')
        data = self.collector.to_dict()
        assert data['total_searches'] == 1
        assert data['hit_rate'] == 1.0
        assert isinstance(data['start_time'], str)

        fd, path = tempfile.mkstemp(suffix='.json')
        os.close(fd)
        try:
            self.collector.save_to_file(path)
            with open(path, 'r', encoding='utf-8') as f:
                assert json.load(f)['searches_found'] == 1
        finally:
            os.remove(path)
