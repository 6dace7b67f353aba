import os
import shutil
import tempfile
from pathlib import Path

import pytest

from request_checker.application.catalog import CATALOG_SEARCH_URL_TEMPLATE
from request_checker.crosscutting.config import (
    ConfigError, ConfigManager, Settings, get_config_manager, setup_config
)


class TestConfigManager:
    """Tests for ConfigManager class."""

    def setup_method(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.manager = ConfigManager(self.temp_dir)

    def teardown_method(self):
        """Clean up test fixtures."""
        if os.path.exists(self.temp_dir):
            shutil.rmtree(self.temp_dir)

    def test_initialization(self):
        assert self.manager.config_dir == Path(self.temp_dir)
        assert self.manager.env_file == Path(self.temp_dir) / '.env'
        assert self.manager.default_data_file == Path(self.temp_dir) / 'store.json'

    def test_defaults(self):
        settings = self.manager.get_settings(environ={})
        assert settings == Settings(data_file=str(Path(self.temp_dir) / 'store.json'))
        assert settings.store_backend == 'json'
        assert settings.ranking_limit == 100
        assert settings.related_limit == 5
        assert settings.catalog_search_url_template == CATALOG_SEARCH_URL_TEMPLATE
        assert settings.admin_passkey is None
        assert settings.gemini_api_key is None

    def test_environment_values(self):
        settings = self.manager.get_settings(environ={
            'REQUEST_CHECKER_STORE': 'MEMORY',
            'RANKING_LIMIT': '10',
            'RELATED_LIMIT': '3',
            'ADMIN_PASSKEY': 'open-sesame',
            'LOG_LEVEL': 'debug',
            'HTTP_PORT': '8080',
        })
        assert settings.store_backend == 'memory'
        assert settings.ranking_limit == 10
        assert settings.related_limit == 3
        assert settings.admin_passkey == 'open-sesame'
        assert settings.log_level == 'DEBUG'
        assert settings.http_port == 8080

    def test_env_file_is_loaded_and_environment_wins(self):
        self.manager.env_file.write_text("GEMINI_API_KEY=from-file\nRANKING_LIMIT=20\n", encoding='utf-8')
        settings = self.manager.get_settings(environ={'RANKING_LIMIT': '30'})
        assert settings.gemini_api_key == 'from-file'
        assert settings.ranking_limit == 30

    def test_load_env_vars_without_file(self):
        assert self.manager.load_env_vars() == {}

    def test_invalid_store_backend(self):
        with pytest.raises(ConfigError):
            self.manager.get_settings(environ={'REQUEST_CHECKER_STORE': 'firestore'})

    @pytest.mark.parametrize("value", ["abc", "0", "-5"])
    def test_invalid_limits(self, value):
        with pytest.raises(ConfigError):
            self.manager.get_settings(environ={'RANKING_LIMIT': value})

    @pytest.mark.parametrize("value", ["5", "1"])
    def test_related_limit_within_cap(self, value):
        settings = self.manager.get_settings(environ={'RELATED_LIMIT': value})
        assert settings.related_limit == int(value)

    @pytest.mark.parametrize("value", ["6", "50"])
    def test_related_limit_above_cap(self, value):
        with pytest.raises(ConfigError, match="at most 5"):
            self.manager.get_settings(environ={'RELATED_LIMIT': value})

    def test_template_requires_placeholder(self):
        with pytest.raises(ConfigError):
            self.manager.get_settings(environ={'CATALOG_SEARCH_URL_TEMPLATE': 'https://example.com/'})

    def test_validate_configuration(self):
        validation = self.manager.validate_configuration(environ={'GEMINI_API_KEY': 'k'})
        assert validation == {'gemini_api_key': True, 'admin_passkey': False, 'data_file': False}

    def test_config_summary_hides_secrets(self):
        summary = self.manager.get_config_summary(environ={
            'GEMINI_API_KEY': 'super-secret-key', 'ADMIN_PASSKEY': 'open-sesame'
        })
        assert 'super-secret-key' not in str(summary)
        assert 'open-sesame' not in str(summary)
        assert summary['validation']['gemini_api_key'] is True


class TestGlobalConfig:

    def test_setup_config_replaces_global(self, tmp_path):
        manager = setup_config(str(tmp_path))
        assert get_config_manager() is manager
        assert manager.config_dir == tmp_path
