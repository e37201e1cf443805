"""
Centralized Configuration Management

Manages all configuration sources:
- Default settings
- Project configs (config/*.json)
- User settings (~/.config/music-library/)
- Explicit config file and CLI overrides

Configuration is resolved once at process start and injected into the
pipeline components.
"""

import json
import logging
import os
import platform
import tempfile
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

from .constants import (
    ALLOWED_MIME_TYPES,
    FPCALC_DEFAULT_LENGTH,
    FPCALC_TIMEOUT,
    LOG_LEVELS,
    LOOKUP_TIMEOUT,
    MAX_UPLOAD_SIZE_MB,
    SONG_KEY_PREFIX,
)
from ..utils.tool_checker import default_fpcalc_candidates


@dataclass
class FingerprintConfig:
    """Acoustic fingerprinting configuration"""
    fpcalc_candidates: List[str] = field(default_factory=default_fpcalc_candidates)
    scratch_dir: str = ""
    timeout: int = FPCALC_TIMEOUT
    fingerprint_length: int = FPCALC_DEFAULT_LENGTH

    def resolved_scratch_dir(self) -> Path:
        if self.scratch_dir:
            return Path(self.scratch_dir).expanduser()
        return Path(tempfile.gettempdir()) / "music-library-fingerprints"


@dataclass
class StorageConfig:
    """Blob and record storage configuration"""
    blob_root: str = "./library/blobs"
    database_path: str = "./library/songs.db"
    key_prefix: str = SONG_KEY_PREFIX


@dataclass
class LookupConfig:
    """Online metadata lookup configuration"""
    enabled: bool = True
    app_name: str = "Music-Library"
    app_version: str = "1.0.0"
    contact: str = "music-library@example.com"
    timeout: int = LOOKUP_TIMEOUT
    fetch_cover_art: bool = True


@dataclass
class UploadConfig:
    """Upload validation configuration"""
    max_file_size_mb: int = MAX_UPLOAD_SIZE_MB
    allowed_mime_types: List[str] = field(default_factory=lambda: list(ALLOWED_MIME_TYPES))

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024


@dataclass
class UIConfig:
    """User interface configuration"""
    log_level: str = "WARNING"
    color_output: bool = True
    verbose_errors: bool = False


@dataclass
class MusicLibraryConfig:
    """Complete configuration for the Music Library service"""
    fingerprint: FingerprintConfig = field(default_factory=FingerprintConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    lookup: LookupConfig = field(default_factory=LookupConfig)
    upload: UploadConfig = field(default_factory=UploadConfig)
    ui: UIConfig = field(default_factory=UIConfig)


_SECTIONS = {
    'fingerprint': FingerprintConfig,
    'storage': StorageConfig,
    'lookup': LookupConfig,
    'upload': UploadConfig,
    'ui': UIConfig,
}


class ConfigManager:
    """
    Centralized configuration manager with hierarchical loading:
    1. Default settings
    2. Project config (config/default.json)
    3. User settings (~/.config/music-library/settings.json)
    4. Explicit config file
    5. CLI overrides
    """

    def __init__(self, project_root: Optional[Path] = None, user_config_dir: Optional[Path] = None):
        self.logger = logging.getLogger(__name__)

        if project_root is None:
            # Walk up until the packaging file is found
            current = Path(__file__).resolve().parent
            while current != current.parent:
                if (current / "pyproject.toml").exists():
                    project_root = current
                    break
                current = current.parent
            else:
                project_root = Path.cwd()

        self.project_root = Path(project_root)
        self.config_dir = self.project_root / "config"
        self.user_config_dir = Path(user_config_dir) if user_config_dir else self._get_user_config_dir()

        self._config: Optional[MusicLibraryConfig] = None

        self.logger.debug(f"ConfigManager initialized (project root: {self.project_root}, "
                          f"user config: {self.user_config_dir})")

    def _get_user_config_dir(self) -> Path:
        """Get platform-appropriate user config directory"""
        system = platform.system()

        if system == "Windows":
            base = Path(os.environ.get("APPDATA", "~"))
        elif system == "Darwin":
            base = Path("~/Library/Application Support")
        else:
            base = Path(os.environ.get("XDG_CONFIG_HOME", "~/.config"))

        return (base / "music-library").expanduser()

    def load_config(self,
                    config_file: Optional[str] = None,
                    cli_overrides: Optional[Dict[str, Any]] = None) -> MusicLibraryConfig:
        """
        Load configuration from all sources with proper precedence.

        Args:
            config_file: Explicit JSON config file (highest file precedence)
            cli_overrides: Nested dict of command-line overrides

        Returns:
            Complete configuration object
        """
        config_dict = asdict(MusicLibraryConfig())

        project_config_path = self.config_dir / "default.json"
        if project_config_path.exists():
            config_dict = self._merge_configs(config_dict, self._load_json_config(project_config_path))
            self.logger.info(f"Loaded project config: {project_config_path}")

        user_config_path = self.user_config_dir / "settings.json"
        if user_config_path.exists():
            config_dict = self._merge_configs(config_dict, self._load_json_config(user_config_path))
            self.logger.info(f"Loaded user config: {user_config_path}")

        if config_file:
            config_path = Path(config_file).expanduser()
            if not config_path.exists():
                raise FileNotFoundError(f"Config file does not exist: {config_path}")
            config_dict = self._merge_configs(config_dict, self._load_json_config(config_path))
            self.logger.info(f"Loaded config file: {config_path}")

        if cli_overrides:
            config_dict = self._merge_configs(config_dict, cli_overrides)
            self.logger.debug("Applied CLI overrides")

        self._config = self._dict_to_config(config_dict)
        return self._config

    def _load_json_config(self, config_path: Path) -> Dict[str, Any]:
        """Load JSON configuration file"""
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            self.logger.error(f"Failed to load config {config_path}: {e}")
            return {}

    def _merge_configs(self, base: Dict, override: Dict) -> Dict:
        """Deep merge configuration dictionaries"""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result

    def _dict_to_config(self, config_dict: Dict) -> MusicLibraryConfig:
        """Convert dictionary to config dataclass, ignoring unknown keys"""
        sections = {}
        for name, section_class in _SECTIONS.items():
            values = config_dict.get(name) or {}
            known = section_class.__dataclass_fields__
            unknown = set(values) - set(known)
            if unknown:
                self.logger.warning(f"Ignoring unknown {name} settings: {', '.join(sorted(unknown))}")
            sections[name] = section_class(**{k: v for k, v in values.items() if k in known})

        return MusicLibraryConfig(**sections)

    def get_config(self) -> MusicLibraryConfig:
        """Get current configuration (load if not already loaded)"""
        if self._config is None:
            self._config = self.load_config()
        return self._config

    def validate_config(self, config: MusicLibraryConfig) -> List[str]:
        """Validate configuration and return list of issues"""
        issues = []

        if config.fingerprint.timeout <= 0:
            issues.append("fingerprint.timeout must be positive")

        if not config.fingerprint.fpcalc_candidates:
            issues.append("fingerprint.fpcalc_candidates must list at least one location")

        if config.upload.max_file_size_mb < 1:
            issues.append("upload.max_file_size_mb must be at least 1")

        if not config.upload.allowed_mime_types:
            issues.append("upload.allowed_mime_types must not be empty")

        if not config.storage.key_prefix.strip('/'):
            issues.append("storage.key_prefix must not be empty")

        if config.lookup.enabled and not config.lookup.contact:
            issues.append("lookup.contact is required by MusicBrainz when lookup is enabled")

        if config.ui.log_level.upper() not in LOG_LEVELS:
            issues.append(f"ui.log_level must be one of: {', '.join(LOG_LEVELS)}")

        return issues


_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Get global config manager instance"""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager
