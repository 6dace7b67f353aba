import os
from dataclasses import dataclass
from typing import Dict, Any, Mapping, Optional
from pathlib import Path

from dotenv import dotenv_values

from request_checker.application.catalog import CATALOG_SEARCH_URL_TEMPLATE


class ConfigError(Exception):
    """Configuration error."""
    pass


CONFIG_KEYS = (
    'REQUEST_CHECKER_DATA_FILE',
    'REQUEST_CHECKER_STORE',
    'GEMINI_API_KEY',
    'GEMINI_MODEL',
    'ADMIN_PASSKEY',
    'RANKING_LIMIT',
    'RELATED_LIMIT',
    'CATALOG_SEARCH_URL_TEMPLATE',
    'LOG_LEVEL',
    'HTTP_HOST',
    'HTTP_PORT',
)

STORE_BACKENDS = ('json', 'memory')
MAX_RELATED_LIMIT = 5


@dataclass(frozen=True)
class Settings:
    """Resolved application settings."""

    data_file: str
    store_backend: str = 'json'
    gemini_api_key: Optional[str] = None
    gemini_model: str = 'gemini-2.5-flash'
    admin_passkey: Optional[str] = None
    ranking_limit: int = 100
    related_limit: int = 5
    catalog_search_url_template: str = CATALOG_SEARCH_URL_TEMPLATE
    log_level: str = 'INFO'
    http_host: str = 'localhost'
    http_port: int = 3000


def _positive_int(values: Mapping[str, str], key: str, default: int,
                  maximum: Optional[int] = None) -> int:
    raw = values.get(key)
    if raw is None or not str(raw).strip():
        return default
    try:
        value = int(str(raw).strip())
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}")
    if value <= 0:
        raise ConfigError(f"{key} must be positive, got {value}")
    if maximum is not None and value > maximum:
        raise ConfigError(f"{key} must be at most {maximum}, got {value}")
    return value


class ConfigManager:
    """Loads configuration from a .env file and the process environment."""

    def __init__(self, config_dir: Optional[str] = None):
        """Initialize config manager."""
        self.config_dir = Path(config_dir) if config_dir else Path.home() / '.request-checker'
        self.config_dir.mkdir(parents=True, exist_ok=True)

        self.env_file = self.config_dir / '.env'
        self.default_data_file = self.config_dir / 'store.json'

    def load_env_vars(self) -> Dict[str, str]:
        """Load variables from the .env file."""
        if not self.env_file.exists():
            return {}
        try:
            values = dotenv_values(self.env_file)
        except (IOError, UnicodeDecodeError) as e:
            raise ConfigError(f"Failed to load .env file {self.env_file}: {e}")
        return {k: v for k, v in values.items() if v is not None}

    def resolve_values(self, environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        """Merge .env values with the environment; the environment wins."""
        environ = os.environ if environ is None else environ
        values = self.load_env_vars()
        for key in CONFIG_KEYS:
            if environ.get(key):
                values[key] = environ[key]
        return values

    def get_settings(self, environ: Optional[Mapping[str, str]] = None) -> Settings:
        """Build validated settings."""
        values = self.resolve_values(environ)

        store_backend = (values.get('REQUEST_CHECKER_STORE') or 'json').lower()
        if store_backend not in STORE_BACKENDS:
            raise ConfigError(f"REQUEST_CHECKER_STORE must be one of {', '.join(STORE_BACKENDS)}")

        template = values.get('CATALOG_SEARCH_URL_TEMPLATE') or CATALOG_SEARCH_URL_TEMPLATE
        if '{term}' not in template:
            raise ConfigError("CATALOG_SEARCH_URL_TEMPLATE must contain a {term} placeholder")

        return Settings(
            data_file=values.get('REQUEST_CHECKER_DATA_FILE') or str(self.default_data_file),
            store_backend=store_backend,
            gemini_api_key=values.get('GEMINI_API_KEY') or None,
            gemini_model=values.get('GEMINI_MODEL') or 'gemini-2.5-flash',
            admin_passkey=values.get('ADMIN_PASSKEY') or None,
            ranking_limit=_positive_int(values, 'RANKING_LIMIT', 100),
            related_limit=_positive_int(values, 'RELATED_LIMIT', 5, maximum=MAX_RELATED_LIMIT),
            catalog_search_url_template=template,
            log_level=(values.get('LOG_LEVEL') or 'INFO').upper(),
            http_host=values.get('HTTP_HOST') or 'localhost',
            http_port=_positive_int(values, 'HTTP_PORT', 3000),
        )

    def validate_configuration(self, environ: Optional[Mapping[str, str]] = None) -> Dict[str, bool]:
        """Report which optional integrations are configured."""
        values = self.resolve_values(environ)
        return {
            'gemini_api_key': bool(values.get('GEMINI_API_KEY')),
            'admin_passkey': bool(values.get('ADMIN_PASSKEY')),
            'data_file': bool(values.get('REQUEST_CHECKER_DATA_FILE')),
        }

    def get_config_summary(self, environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
        """Get configuration summary (without sensitive data)."""
        settings = self.get_settings(environ)
        return {
            'config_dir': str(self.config_dir),
            'env_file': str(self.env_file),
            'data_file': settings.data_file,
            'store_backend': settings.store_backend,
            'gemini_model': settings.gemini_model,
            'ranking_limit': settings.ranking_limit,
            'related_limit': settings.related_limit,
            'validation': self.validate_configuration(environ),
        }


# Global instance, created on first use
config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Get global config manager instance."""
    global config_manager
    if config_manager is None:
        config_manager = ConfigManager()
    return config_manager


def setup_config(config_dir: Optional[str] = None) -> ConfigManager:
    """Setup configuration with custom directory."""
    global config_manager
    config_manager = ConfigManager(config_dir)
    return config_manager
