import json
import logging
import re
from datetime import datetime, timezone
from typing import Dict, Any, Optional, Sequence
from contextvars import ContextVar

# Context variables for correlation
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
endpoint_var: ContextVar[Optional[str]] = ContextVar('endpoint', default=None)
stage_var: ContextVar[Optional[str]] = ContextVar('stage', default=None)


class SecretMasker:
    """Masks sensitive information in log messages."""

    def __init__(self):
        """Initialize secret masker with patterns."""
        self.patterns = [
            # Generic API keys and passwords
            r'(?i)(token|key|secret|password|auth)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{10,})["\']?',
            # Gemini API keys
            r'(?i)(gemini_api_key|api_key)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{20,})["\']?',
            # Admin passkey, any length
            r'(?i)(passkey|admin_passkey|x-admin-passkey)[\s]*[:=][\s]*["\']?([^\s"\',]{1,})["\']?',
        ]

        self.compiled_patterns = [re.compile(pattern) for pattern in self.patterns]

    def mask_secrets(self, text: str) -> str:
        """Mask sensitive information in text."""
        if not text:
            return text

        masked_text = text

        for pattern in self.compiled_patterns:
            def replace_match(match):
                prefix = match.group(1)
                secret = match.group(2)
                # Keep first 4 and last 4 characters, mask the rest
                if len(secret) > 8:
                    masked_secret = secret[:4] + '*' * (len(secret) - 8) + secret[-4:]
                else:
                    masked_secret = '*' * len(secret)
                return f"{prefix}: {masked_secret}"

            masked_text = pattern.sub(replace_match, masked_text)

        return masked_text

    def mask_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Mask sensitive information in dictionary."""
        if not data:
            return data

        masked_data = {}

        for key, value in data.items():
            if isinstance(value, str):
                if re.search(r'(?i)(key|secret|passkey|token)', key):
                    masked_data[key] = '*' * len(value)
                else:
                    masked_data[key] = self.mask_secrets(value)
            elif isinstance(value, dict):
                masked_data[key] = self.mask_dict(value)
            elif isinstance(value, list):
                masked_data[key] = [self.mask_dict(item) if isinstance(item, dict)
                                    else self.mask_secrets(item) if isinstance(item, str)
                                    else item for item in value]
            else:
                masked_data[key] = value

        return masked_data


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(self):
        """Initialize formatter."""
        super().__init__()
        self.masker = SecretMasker()

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        request_id = request_id_var.get()
        endpoint = endpoint_var.get()
        stage = stage_var.get()

        log_entry = {
            'ts': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': self.mask_secrets(record.getMessage()),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        if request_id:
            log_entry['requestId'] = request_id
        if endpoint:
            log_entry['endpoint'] = endpoint
        if stage:
            log_entry['stage'] = stage

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        if hasattr(record, 'fields') and record.fields:
            log_entry['fields'] = self.masker.mask_dict(record.fields)

        return json.dumps(log_entry, ensure_ascii=False)

    def mask_secrets(self, text: str) -> str:
        """Mask secrets in text."""
        return self.masker.mask_secrets(text)


class CorrelationContext:
    """Context manager for correlation data."""

    def __init__(self, request_id: Optional[str] = None,
                 endpoint: Optional[str] = None,
                 stage: Optional[str] = None):
        """Initialize correlation context."""
        self.request_id = request_id
        self.endpoint = endpoint
        self.stage = stage
        self._old_values = {}

    def __enter__(self):
        """Set correlation context."""
        if self.request_id is not None:
            self._old_values['request_id'] = request_id_var.get()
            request_id_var.set(self.request_id)

        if self.endpoint is not None:
            self._old_values['endpoint'] = endpoint_var.get()
            endpoint_var.set(self.endpoint)

        if self.stage is not None:
            self._old_values['stage'] = stage_var.get()
            stage_var.set(self.stage)

        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Restore correlation context."""
        if 'request_id' in self._old_values:
            request_id_var.set(self._old_values['request_id'])
        if 'endpoint' in self._old_values:
            endpoint_var.set(self._old_values['endpoint'])
        if 'stage' in self._old_values:
            stage_var.set(self._old_values['stage'])


def setup_logging(level: str = 'INFO',
                  log_file: Optional[str] = None) -> logging.Logger:
    """Setup structured logging for the request_checker logger tree."""
    logger = logging.getLogger('request_checker')
    logger.setLevel(getattr(logging, level.upper()))

    logger.handlers.clear()

    formatter = StructuredFormatter()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def log_with_fields(logger: logging.Logger, level: str, message: str,
                    fields: Optional[Dict[str, Any]] = None, **kwargs):
    """Log message with additional fields."""
    levelno = getattr(logging, level.upper())
    if not logger.isEnabledFor(levelno):
        return

    record = logger.makeRecord(
        logger.name, levelno,
        '', 0, message, (), None
    )

    if fields:
        record.fields = dict(fields)
    if kwargs:
        if not hasattr(record, 'fields'):
            record.fields = {}
        record.fields.update(kwargs)

    logger.handle(record)


def log_search(logger: logging.Logger, term: str, status: str, match_count: int, **kwargs):
    """Log a completed search."""
    with CorrelationContext(stage='search'):
        log_with_fields(logger, 'INFO', 'Search completed', {
            'term': term,
            'status': status,
            'match_count': match_count,
            **kwargs
        })


def log_songlist_saved(logger: logging.Logger, song_count: int, skipped_count: int, **kwargs):
    """Log an admin save of the song list."""
    with CorrelationContext(stage='songlist_save'):
        log_with_fields(logger, 'INFO', 'Song list saved', {
            'song_count': song_count,
            'skipped_count': skipped_count,
            **kwargs
        })


def log_parse_diagnostics(logger: logging.Logger, diagnostics: Sequence, source: str = 'songlist'):
    """Log one warning per dropped song-list line."""
    with CorrelationContext(stage='parse'):
        for diag in diagnostics:
            log_with_fields(logger, 'WARNING', 'Skipped malformed song line', {
                'source': source,
                'line_number': diag.line_number,
                'line': diag.line,
                'reason': diag.reason,
            })


def log_event_failure(logger: logging.Logger, kind: str, term: str, error: Exception):
    """Log a counter event that could not be recorded."""
    with CorrelationContext(stage='event'):
        log_with_fields(logger, 'WARNING', 'Failed to record event', {
            'kind': kind,
            'term': term,
            'error_type': type(error).__name__,
            'error_message': str(error),
        })


def log_error(logger: logging.Logger, message: str, error: Exception, **kwargs):
    """Log error with exception details."""
    log_with_fields(logger, 'ERROR', message, {
        'error_type': type(error).__name__,
        'error_message': str(error),
        **kwargs
    })
