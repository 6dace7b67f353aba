import json
import logging

from request_checker.crosscutting.logging import (
    CorrelationContext, SecretMasker, StructuredFormatter, endpoint_var, log_event_failure,
    log_parse_diagnostics, log_search, log_with_fields, request_id_var
)
from request_checker.domain.entities import ParseDiagnostic


class TestSecretMasker:
    """Tests for SecretMasker class."""

    def setup_method(self):
        self.masker = SecretMasker()

    def test_masks_api_key(self):
        text = "api_key=AIzaSyA1234567890abcdefghij"
        masked = self.masker.mask_secrets(text)
        assert "AIzaSyA1234567890abcdefghij" not in masked
        assert "AIza" in masked

    def test_masks_short_passkey(self):
        masked = self.masker.mask_secrets("passkey: hunter2")
        assert "hunter2" not in masked

    def test_leaves_plain_text(self):
        assert self.masker.mask_secrets("Search completed for Lemon") == "Search completed for Lemon"
        assert self.masker.mask_secrets("") == ""

    def test_mask_dict(self):
        masked = self.masker.mask_dict({
            'term': 'Lemon',
            'admin_passkey': 'secret',
            'nested': {'api_key': 'abc'},
            'count': 3,
        })
        assert masked['term'] == 'Lemon'
        assert masked['admin_passkey'] == '******'
        assert masked['nested']['api_key'] == '***'
        assert masked['count'] == 3


class TestStructuredFormatter:

    def _record(self, message, **fields):
        record = logging.LogRecord('request_checker.test', logging.INFO, __file__, 10, message, (), None)
        if fields:
            record.fields = fields
        return record

    def test_json_output(self):
        entry = json.loads(StructuredFormatter().format(self._record("Loaded 3 songs")))
        assert entry['level'] == 'INFO'
        assert entry['logger'] == 'request_checker.test'
        assert entry['message'] == 'Loaded 3 songs'
        assert 'requestId' not in entry

    def test_correlation_fields(self):
        with CorrelationContext(request_id='req-1', endpoint='/api/search', stage='search'):
            entry = json.loads(StructuredFormatter().format(self._record("x")))
        assert entry['requestId'] == 'req-1'
        assert entry['endpoint'] == '/api/search'
        assert entry['stage'] == 'search'

    def test_non_ascii_is_kept(self):
        output = StructuredFormatter().format(self._record("x", term="夜に駆ける"))
        assert "夜に駆ける" in output


class TestCorrelationContext:

    def test_restores_previous_values(self):
        with CorrelationContext(request_id='outer'):
            with CorrelationContext(request_id='inner', endpoint='/health'):
                assert request_id_var.get() == 'inner'
            assert request_id_var.get() == 'outer'
            assert endpoint_var.get() is None
        assert request_id_var.get() is None


class TestLogHelpers:

    def setup_method(self):
        self.logger = logging.getLogger('request_checker.tests.helpers')

    def test_log_with_fields(self, caplog):
        caplog.set_level(logging.INFO, logger='request_checker.tests.helpers')
        log_with_fields(self.logger, 'INFO', 'hello', {'a': 1}, b=2)
        assert caplog.records[-1].fields == {'a': 1, 'b': 2}

    def test_log_with_fields_respects_level(self, caplog):
        caplog.set_level(logging.WARNING, logger='request_checker.tests.helpers')
        log_with_fields(self.logger, 'DEBUG', 'hidden')
        assert caplog.records == []

    def test_log_search(self, caplog):
        caplog.set_level(logging.INFO, logger='request_checker.tests.helpers')
        log_search(self.logger, 'Lemon', 'found', 2)
        record = caplog.records[-1]
        assert record.getMessage() == 'Search completed'
        assert record.fields == {'term': 'Lemon', 'status': 'found', 'match_count': 2}

    def test_log_parse_diagnostics(self, caplog):
        caplog.set_level(logging.WARNING, logger='request_checker.tests.helpers')
        log_parse_diagnostics(self.logger, [
            ParseDiagnostic(1, 'a', 'expected at least title and artist'),
            ParseDiagnostic(4, ',b', 'empty title or artist'),
        ], source='admin')
        assert [r.fields['line_number'] for r in caplog.records] == [1, 4]
        assert all(r.levelno == logging.WARNING for r in caplog.records)

    def test_log_event_failure(self, caplog):
        caplog.set_level(logging.WARNING, logger='request_checker.tests.helpers')
        log_event_failure(self.logger, 'search', 'Lemon', RuntimeError('down'))
        assert caplog.records[-1].fields['error_type'] == 'RuntimeError'
