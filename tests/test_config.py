"""
Tests for configuration loading
"""

import os

import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.config import LibraryConfig, load_config
from core.errors import ConfigurationError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ('DB_PATH', 'MAX_PAGE_SIZE', 'STRICT_FILTERS', 'SIMILARITY_THRESHOLD', 'JSON_LOGS'):
        monkeypatch.delenv(f'LIBRARY_{name}', raising=False)


class TestLibraryConfig:
    """Defaults and validation."""

    def test_defaults(self):
        config = LibraryConfig()

        assert config.default_page_size == 50
        assert config.max_page_size == 100
        assert config.similarity_threshold == 0.70
        assert config.neighbor_limit == 5
        assert config.strict_filters is False

    def test_unknown_keys_rejected(self):
        with pytest.raises(ConfigurationError) as exc_info:
            LibraryConfig.from_dict({'page_sise': 10})

        assert exc_info.value.details['keys'] == ['page_sise']

    @pytest.mark.parametrize('values', [
        {'default_page_size': 0},
        {'default_page_size': 200, 'max_page_size': 100},
        {'similarity_threshold': 1.5},
        {'neighbor_limit': 0},
        {'smart_collection_limit': 0},
    ])
    def test_invalid_values(self, values):
        with pytest.raises(ConfigurationError):
            LibraryConfig.from_dict(values)

    def test_to_dict(self):
        assert LibraryConfig(max_page_size=20).to_dict()['max_page_size'] == 20


class TestLoadConfig:
    """YAML and environment layers."""

    def test_yaml_file(self, tmp_path):
        path = tmp_path / 'library.yaml'
        path.write_text('library:\n  default_page_size: 10\n  max_page_size: 25\n  similarity_threshold: 0.8\n')

        config = load_config(path)

        assert config.max_page_size == 25
        assert config.similarity_threshold == 0.8

    def test_flat_yaml_file(self, tmp_path):
        path = tmp_path / 'library.yaml'
        path.write_text('neighbor_limit: 3\n')

        assert load_config(path).neighbor_limit == 3

    def test_environment_wins(self, tmp_path, monkeypatch):
        path = tmp_path / 'library.yaml'
        path.write_text('library:\n  max_page_size: 25\n')
        monkeypatch.setenv('LIBRARY_MAX_PAGE_SIZE', '60')
        monkeypatch.setenv('LIBRARY_STRICT_FILTERS', 'yes')
        monkeypatch.setenv('LIBRARY_JSON_LOGS', 'false')

        config = load_config(path)

        assert config.max_page_size == 60
        assert config.strict_filters is True
        assert config.json_logs is False

    def test_bad_environment_value(self, tmp_path, monkeypatch):
        monkeypatch.setenv('LIBRARY_MAX_PAGE_SIZE', 'many')

        with pytest.raises(ConfigurationError):
            load_config()

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_config(tmp_path / 'missing.yaml')

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / 'library.yaml'
        path.write_text('library: [unclosed\n')

        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_env_file(self, tmp_path, monkeypatch):
        env_file = tmp_path / '.env'
        env_file.write_text('LIBRARY_SIMILARITY_THRESHOLD=0.75\n')
        monkeypatch.delenv('LIBRARY_SIMILARITY_THRESHOLD', raising=False)

        try:
            config = load_config(env_file=env_file)
        finally:
            os.environ.pop('LIBRARY_SIMILARITY_THRESHOLD', None)

        assert config.similarity_threshold == 0.75
