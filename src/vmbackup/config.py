"""Configuration management for VMBackup."""

import os
import copy
import shlex
import yaml
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional, Tuple

from .exceptions import ConfigurationError
from .utils import generate_timestamp, parse_timestamp


BACKUP_METHODS = ("export", "filecopy", "archive")
VM_PLATFORMS = ("hyperv",)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "default.yaml"


@dataclass(frozen=True)
class BackupSettings:
    """Validated, immutable configuration passed to every component."""

    backup_root: Path
    max_versions: int
    timestamp_format: str
    temp_suffix: str
    method: str
    filecopy_tool: str
    filecopy_flags: Tuple[str, ...]
    filecopy_failure_threshold: int
    archive_tool: str
    archive_flags: Tuple[str, ...]
    archive_extension: str
    process_timeout: Optional[float]
    platform: str
    powershell: str
    include: Tuple[str, ...]
    exclude: Tuple[str, ...]
    log_level: str = "INFO"
    log_console: bool = True
    log_file: Optional[str] = None


class Config:
    """Configuration manager for VMBackup."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration.

        Args:
            config_path: Path to custom configuration file
        """
        self.config_path = config_path
        self._config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from file."""
        with open(DEFAULT_CONFIG_PATH, 'r') as f:
            config = yaml.safe_load(f)

        # Override with custom configuration if provided
        if self.config_path:
            if not os.path.exists(self.config_path):
                raise ConfigurationError(f"Configuration file not found: {self.config_path}")
            try:
                with open(self.config_path, 'r') as f:
                    custom_config = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid configuration file {self.config_path}: {e}") from e
            if not isinstance(custom_config, dict):
                raise ConfigurationError(f"Configuration file must contain a mapping: {self.config_path}")
            config = _merge(config, custom_config)

        return self._apply_env_overrides(config)

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides."""
        # Example: VMBACKUP_BACKUP_ROOT overrides backup.root
        env_mappings = {
            'VMBACKUP_BACKUP_ROOT': ['backup', 'root'],
            'VMBACKUP_MAX_VERSIONS': ['backup', 'max_versions'],
            'VMBACKUP_BACKUP_METHOD': ['backup', 'method'],
            'VMBACKUP_PROCESS_TIMEOUT': ['process', 'timeout_seconds'],
            'VMBACKUP_LOG_LEVEL': ['notifications', 'level'],
        }

        for env_var, config_path in env_mappings.items():
            if env_var in os.environ:
                value = os.environ[env_var]

                current = config
                for key in config_path[:-1]:
                    if not isinstance(current.get(key), dict):
                        current[key] = {}
                    current = current[key]
                current[config_path[-1]] = value

        return config

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation.

        Args:
            key: Configuration key in dot notation (e.g., 'backup.root')
            default: Default value if key not found

        Returns:
            Configuration value
        """
        value = self._config
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set(self, key: str, value: Any) -> None:
        """Set configuration value using dot notation."""
        keys = key.split('.')
        current = self._config

        for k in keys[:-1]:
            if not isinstance(current.get(k), dict):
                current[k] = {}
            current = current[k]

        current[keys[-1]] = value

    def save(self, path: str) -> None:
        """Save current configuration to file."""
        with open(path, 'w') as f:
            yaml.dump(self._config, f, default_flow_style=False, indent=2)

    def settings(self) -> BackupSettings:
        """Validate the configuration and freeze it.

        Raises:
            ConfigurationError: if any value is missing or invalid
        """
        method = str(self.get('backup.method', '')).strip().lower()
        if method not in BACKUP_METHODS:
            raise ConfigurationError(
                f"Unknown backup method '{self.get('backup.method')}', "
                f"expected one of: {', '.join(BACKUP_METHODS)}"
            )

        platform = str(self.get('vm.platform', '')).strip().lower()
        if platform not in VM_PLATFORMS:
            raise ConfigurationError(f"Unsupported VM platform: {self.get('vm.platform')}")

        root = self.get('backup.root')
        if not root:
            raise ConfigurationError("backup.root must be set")

        timestamp_format = str(self.get('backup.timestamp_format') or '')
        validate_timestamp_format(timestamp_format)

        temp_suffix = str(self.get('backup.temp_suffix') or '')
        validate_temp_suffix(temp_suffix, timestamp_format)

        return BackupSettings(
            backup_root=Path(root).expanduser(),
            max_versions=_to_int('backup.max_versions', self.get('backup.max_versions'), minimum=1),
            timestamp_format=timestamp_format,
            temp_suffix=temp_suffix,
            method=method,
            filecopy_tool=str(self.get('filecopy.tool_path', 'robocopy')),
            filecopy_flags=_split_flags('filecopy.flags', self.get('filecopy.flags')),
            filecopy_failure_threshold=_to_int(
                'filecopy.failure_threshold', self.get('filecopy.failure_threshold', 8), minimum=1
            ),
            archive_tool=str(self.get('archive.tool_path', '7z')),
            archive_flags=_split_flags('archive.flags', self.get('archive.flags')),
            archive_extension=str(self.get('archive.extension', '7z')).lstrip('.'),
            process_timeout=_to_timeout(self.get('process.timeout_seconds')),
            platform=platform,
            powershell=str(self.get('vm.powershell', 'powershell')),
            include=_to_patterns('vm.include', self.get('vm.include')),
            exclude=_to_patterns('vm.exclude', self.get('vm.exclude')),
            log_level=str(self.get('notifications.level', 'INFO')).upper(),
            log_console=_to_bool(self.get('notifications.console', True)),
            log_file=self.get('notifications.file'),
        )


# Chronological order; the names must sort the same way. Together the
# samples use every digit and several months of one year.
TIMESTAMP_SAMPLES = [
    datetime(2001, 2, 3, 4, 5, 6),
    datetime(2001, 2, 3, 4, 5, 7),
    datetime(2010, 1, 1, 0, 0, 0),
    datetime(2010, 2, 15, 8, 30, 45),
    datetime(2010, 10, 5, 18, 9, 27),
    datetime(2010, 11, 20, 13, 47, 0),
    datetime(2010, 12, 1, 22, 58, 39),
    datetime(2099, 12, 31, 23, 59, 59),
]


def validate_timestamp_format(timestamp_format: str) -> None:
    """Reject formats whose output is not fixed-width, sortable and parseable."""
    if not timestamp_format:
        raise ConfigurationError("backup.timestamp_format must be set")
    try:
        names = [generate_timestamp(timestamp_format, s) for s in TIMESTAMP_SAMPLES]
    except ValueError as e:
        raise ConfigurationError(f"Invalid timestamp format '{timestamp_format}': {e}") from e
    if any(sep in names[0] for sep in ('/', '\\')):
        raise ConfigurationError("backup.timestamp_format must not produce path separators")
    if len({len(n) for n in names}) != 1:
        raise ConfigurationError("backup.timestamp_format must produce fixed-width names")
    if names != sorted(names) or len(set(names)) != len(names):
        raise ConfigurationError("backup.timestamp_format must sort chronologically to the second")
    for sample, name in zip(TIMESTAMP_SAMPLES, names):
        parsed = parse_timestamp(name, timestamp_format)
        if parsed is None or parsed.replace(tzinfo=None) != sample:
            raise ConfigurationError(f"backup.timestamp_format does not round-trip: {timestamp_format}")


def validate_temp_suffix(temp_suffix: str, timestamp_format: str) -> None:
    """Reject staging suffixes that a committed version name could end with.

    Orphan cleanup deletes every directory ending in the suffix, so the
    suffix needs at least one character no version name contains.
    """
    if not temp_suffix or any(sep in temp_suffix for sep in ('/', '\\')):
        raise ConfigurationError("backup.temp_suffix must be a non-empty name fragment")
    names = [generate_timestamp(timestamp_format, s) for s in TIMESTAMP_SAMPLES]
    name_chars = set(''.join(names))
    if any(n.endswith(temp_suffix) for n in names) or set(temp_suffix) <= name_chars:
        raise ConfigurationError(
            f"backup.temp_suffix '{temp_suffix}' could be mistaken for part of a version name"
        )


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _to_int(key: str, value: Any, minimum: int) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"{key} must be an integer, got {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be an integer, got {value!r}") from None
    if number < minimum:
        raise ConfigurationError(f"{key} must be >= {minimum}, got {number}")
    return number


def _to_timeout(value: Any) -> Optional[float]:
    if value is None or (isinstance(value, str) and value.strip().lower() in ('', 'none', 'null')):
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"process.timeout_seconds must be a number, got {value!r}") from None
    if seconds <= 0:
        raise ConfigurationError("process.timeout_seconds must be positive")
    return seconds


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.lower() in ['true', '1', 'yes']
    return bool(value)


def _split_flags(key: str, value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        return tuple(str(v) for v in value)
    try:
        return tuple(shlex.split(str(value), posix=True))
    except ValueError as e:
        raise ConfigurationError(f"{key} cannot be parsed: {e}") from e


def _to_patterns(key: str, value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, (list, tuple)):
        raise ConfigurationError(f"{key} must be a list of VM name patterns")
    return tuple(str(v) for v in value)
