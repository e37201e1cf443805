"""
Unit tests for ConfigManager.

Tests the hierarchical configuration loading system and dataclass-based config.
"""

import json
import shutil
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from music_library.core.config_manager import (
    ConfigManager,
    FingerprintConfig,
    LookupConfig,
    MusicLibraryConfig,
    StorageConfig,
    UIConfig,
    UploadConfig,
    get_config_manager,
)


class TestConfigDataclasses:
    """Test configuration dataclasses."""

    def test_fingerprint_config_defaults(self):
        config = FingerprintConfig()
        assert config.fpcalc_candidates[0] == "fpcalc"
        assert config.timeout == 30
        assert config.fingerprint_length == 120
        assert config.resolved_scratch_dir().name == "music-library-fingerprints"

    def test_scratch_dir_override(self, tmp_path):
        config = FingerprintConfig(scratch_dir=str(tmp_path))
        assert config.resolved_scratch_dir() == tmp_path

    def test_storage_config_defaults(self):
        config = StorageConfig()
        assert config.blob_root == "./library/blobs"
        assert config.database_path == "./library/songs.db"
        assert config.key_prefix == "songs"

    def test_upload_config_defaults(self):
        config = UploadConfig()
        assert config.max_file_size_mb == 50
        assert config.max_file_size_bytes == 50 * 1024 * 1024
        assert 'audio/mpeg' in config.allowed_mime_types
        assert 'audio/flac' in config.allowed_mime_types

    def test_lookup_config_defaults(self):
        config = LookupConfig()
        assert config.enabled is True
        assert config.fetch_cover_art is True
        assert config.contact

    def test_music_library_config_initialization(self):
        config = MusicLibraryConfig()
        assert isinstance(config.fingerprint, FingerprintConfig)
        assert isinstance(config.storage, StorageConfig)
        assert isinstance(config.lookup, LookupConfig)
        assert isinstance(config.upload, UploadConfig)
        assert isinstance(config.ui, UIConfig)


class TestConfigManager:
    """Test ConfigManager functionality."""

    @pytest.fixture
    def temp_dirs(self):
        """Create temporary directories for testing."""
        project_root = tempfile.mkdtemp()
        config_dir = Path(project_root) / "config"
        config_dir.mkdir()
        user_dir = tempfile.mkdtemp()

        yield project_root, config_dir, user_dir

        shutil.rmtree(project_root, ignore_errors=True)
        shutil.rmtree(user_dir, ignore_errors=True)

    @pytest.fixture
    def config_manager(self, temp_dirs):
        """Create ConfigManager with temp directories."""
        project_root, _, user_dir = temp_dirs
        return ConfigManager(project_root=Path(project_root), user_config_dir=Path(user_dir))

    def test_initialization(self, config_manager, temp_dirs):
        project_root, config_dir, user_dir = temp_dirs
        assert config_manager.project_root == Path(project_root)
        assert config_manager.config_dir == config_dir
        assert config_manager.user_config_dir == Path(user_dir)

    def test_load_defaults(self, config_manager):
        config = config_manager.load_config()
        assert config.storage.key_prefix == "songs"
        assert config.ui.log_level == "WARNING"

    def test_hierarchy_precedence(self, config_manager, temp_dirs):
        _, config_dir, user_dir = temp_dirs

        with open(config_dir / "default.json", 'w') as f:
            json.dump({'upload': {'max_file_size_mb': 10}, 'storage': {'key_prefix': 'project'}}, f)
        with open(Path(user_dir) / "settings.json", 'w') as f:
            json.dump({'storage': {'key_prefix': 'user'}, 'lookup': {'enabled': False}}, f)

        explicit = Path(user_dir) / "explicit.json"
        with open(explicit, 'w') as f:
            json.dump({'lookup': {'timeout': 3}}, f)

        config = config_manager.load_config(
            config_file=str(explicit),
            cli_overrides={'storage': {'database_path': '/tmp/cli.db'}},
        )

        assert config.upload.max_file_size_mb == 10
        assert config.storage.key_prefix == 'user'
        assert config.storage.database_path == '/tmp/cli.db'
        assert config.storage.blob_root == './library/blobs'
        assert config.lookup.enabled is False
        assert config.lookup.timeout == 3

    def test_missing_explicit_file(self, config_manager, temp_dirs):
        _, _, user_dir = temp_dirs
        with pytest.raises(FileNotFoundError):
            config_manager.load_config(config_file=str(Path(user_dir) / "missing.json"))

    def test_invalid_json_ignored(self, config_manager, temp_dirs):
        _, config_dir, _ = temp_dirs
        (config_dir / "default.json").write_text("{not json")

        config = config_manager.load_config()

        assert config.upload.max_file_size_mb == 50

    def test_unknown_keys_ignored(self, config_manager):
        config = config_manager.load_config(cli_overrides={'ui': {'progress_mode': 'fancy', 'log_level': 'DEBUG'}})
        assert config.ui.log_level == 'DEBUG'
        assert not hasattr(config.ui, 'progress_mode')

    def test_merge_configs(self, config_manager):
        base = {'a': {'b': 1, 'c': 2}, 'd': 3}
        merged = config_manager._merge_configs(base, {'a': {'c': 20}, 'e': 5})

        assert merged == {'a': {'b': 1, 'c': 20}, 'd': 3, 'e': 5}
        assert base == {'a': {'b': 1, 'c': 2}, 'd': 3}

    def test_get_config_loads_once(self, config_manager):
        assert config_manager.get_config() is config_manager.get_config()

    def test_validate_config(self, config_manager):
        config = config_manager.load_config()
        assert config_manager.validate_config(config) == []

        config.fingerprint.timeout = 0
        config.upload.allowed_mime_types = []
        config.storage.key_prefix = '/'
        issues = config_manager.validate_config(config)

        assert "fingerprint.timeout must be positive" in issues
        assert "upload.allowed_mime_types must not be empty" in issues
        assert "storage.key_prefix must not be empty" in issues


class TestGlobalConfigManager:
    """Test the process-wide manager."""

    def test_singleton(self):
        with patch('music_library.core.config_manager._config_manager', None):
            first = get_config_manager()
            assert get_config_manager() is first
