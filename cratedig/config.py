"""
Configuration management for cratedig.
"""
import os
import sys
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional, Dict, Any, List

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from .logging_config import get_logger, ConfigurationError

logger = get_logger('config')


DEFAULT_DATA_DIR = "~/.cratedig"

DEFAULT_CONFIG: str = """# cratedig configuration
# Command line flags (-root, -user, -db, -log) override these values.

[library]
# Root directory holding your samples
root = ""
# User to launch as (empty picks the first known user)
user = ""
# Extensions skipped by recursive search
sidecar_extensions = [".asd", ".nki", ".reapeaks"]

[storage]
db_file = "cratedig"
log_file = "logfile"

[audio]
sample_rate = 48000
channels = 2
bit_depth = 32

[ui]
jump_size = 8
redraw_interval = 0.12

[logging]
# DEBUG, INFO, WARNING, ERROR, CRITICAL
log_level = "INFO"
"""


def expand_path(path: str) -> str:
    """Expand a leading ``~`` to the user's home directory."""
    if not path:
        return path
    return os.path.expanduser(path)


@dataclass
class AppConfig:
    """Application configuration settings."""

    # Library
    root: str = ""
    user: str = ""
    sidecar_extensions: List[str] = field(
        default_factory=lambda: [".asd", ".nki", ".reapeaks"]
    )

    # Storage, relative to the data directory
    db_file: str = "cratedig"
    log_file: str = "logfile"

    # Audio output format
    sample_rate: int = 48000
    channels: int = 2
    bit_depth: int = 32

    # UI settings
    jump_size: int = 8
    redraw_interval: float = 0.12

    # Logging settings
    log_level: str = "INFO"


class ConfigManager:
    """Manages configuration loading, overrides, and validation."""

    def __init__(self, data_dir: Optional[str] = None, config_path: Optional[Path] = None):
        self.data_dir = Path(expand_path(data_dir or DEFAULT_DATA_DIR))
        self.config_path = config_path or self.data_dir / "config.toml"
        self.config: AppConfig = AppConfig()
        self.created = False
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from the TOML file, creating it when missing."""
        if not self.config_path.exists():
            logger.info(f"Config file not found at {self.config_path}, using defaults")
            self._create_default_config()
            return

        try:
            with open(self.config_path, 'rb') as f:
                data = tomllib.load(f)
        except (tomllib.TOMLDecodeError, OSError) as e:
            logger.error(f"Failed to load config: {e}")
            logger.info("Using default configuration")
            return

        self._apply_config_data(data)
        logger.info(f"Loaded configuration from {self.config_path}")

    def _create_default_config(self) -> None:
        """Create a default configuration file."""
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            self.config_path.write_text(DEFAULT_CONFIG)
            self.created = True
            logger.info(f"Created default config at {self.config_path}")
        except OSError as e:
            logger.warning(f"Failed to create default config: {e}")

    def _apply_config_data(self, data: Dict[str, Any]) -> None:
        """Apply TOML data to the AppConfig object.

        Sections are only grouping; their keys map onto flat fields.
        """
        flat: Dict[str, Any] = {}
        for key, value in data.items():
            if isinstance(value, dict):
                flat.update(value)
            else:
                flat[key] = value

        known = {f.name: f for f in fields(AppConfig)}
        for key, value in flat.items():
            if key not in known:
                logger.warning(f"Unknown config key: {key}")
                continue
            setattr(self.config, key, value)

    def apply_overrides(self, **overrides: Any) -> None:
        """Override config values with non-empty command line values."""
        for key, value in overrides.items():
            if value is None or value == "":
                continue
            if hasattr(self.config, key):
                setattr(self.config, key, value)
                logger.debug(f"Config override: {key} = {value}")

    def validate_config(self) -> List[str]:
        """Validate current configuration and return a list of issues."""
        issues = []

        if self.config.root:
            root = Path(expand_path(self.config.root))
            if not root.is_dir():
                issues.append(f"Root directory does not exist: {root}")

        if not (8000 <= self.config.sample_rate <= 192000):
            issues.append(f"Sample rate must be 8000-192000, got {self.config.sample_rate}")

        if self.config.channels not in (1, 2):
            issues.append(f"Channels must be 1 or 2, got {self.config.channels}")

        if self.config.bit_depth not in (16, 24, 32):
            issues.append(f"Bit depth must be 16, 24 or 32, got {self.config.bit_depth}")

        if self.config.jump_size < 1:
            issues.append(f"Jump size must be positive, got {self.config.jump_size}")

        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if str(self.config.log_level).upper() not in valid_levels:
            issues.append(f"Invalid log level: {self.config.log_level}")

        if issues:
            logger.warning(f"Configuration validation issues: {issues}")

        return issues

    def require_valid(self) -> None:
        """Raise ConfigurationError when validation finds issues."""
        issues = self.validate_config()
        if issues:
            raise ConfigurationError("; ".join(issues))

    def create_data_directory(self) -> Path:
        """Ensure the data directory exists."""
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(f"Cannot create data directory {self.data_dir}: {e}")
        return self.data_dir

    def get_db_path(self) -> Path:
        """Get the path to the catalog database."""
        name = self.config.db_file
        if not name.endswith(".db"):
            name = f"{name}.db"
        return self.data_dir / name

    def get_log_path(self) -> Path:
        """Get the path to the log file."""
        return self.data_dir / self.config.log_file

    def get_root_path(self) -> Optional[Path]:
        """Get the configured root directory, if any."""
        if not self.config.root:
            return None
        return Path(expand_path(self.config.root))


def load_config(data_dir: Optional[str] = None, config_path: Optional[Path] = None) -> ConfigManager:
    """Load configuration and return manager."""
    return ConfigManager(data_dir, config_path)
