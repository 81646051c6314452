"""Tests for configuration loading and validation."""

from pathlib import Path

import pytest

from vmbackup.config import Config, validate_temp_suffix, validate_timestamp_format
from vmbackup.exceptions import ConfigurationError


def write_config(tmp_path, text):
    path = tmp_path / "vmbackup.yaml"
    path.write_text(text)
    return str(path)


def test_defaults():
    """Test the packaged defaults produce valid settings."""
    settings = Config().settings()

    assert settings.backup_root == Path("./backups")
    assert settings.max_versions == 3
    assert settings.timestamp_format == "%Y-%m-%d_%H-%M-%S"
    assert settings.temp_suffix == "_tmp"
    assert settings.method == "export"
    assert settings.filecopy_tool == "robocopy"
    assert settings.filecopy_failure_threshold == 8
    assert settings.archive_tool == "7z"
    assert settings.archive_flags == ("-mx=1", "-mmt=on")
    assert settings.process_timeout is None
    assert settings.include == ()


def test_custom_file_merges_nested_keys(tmp_path):
    """Test a user file overrides single keys and keeps sibling defaults."""
    path = write_config(tmp_path, "backup:\n  max_versions: 5\n  method: FileCopy\n")

    settings = Config(path).settings()

    assert settings.max_versions == 5
    assert settings.method == "filecopy"
    assert settings.temp_suffix == "_tmp"


def test_settings_are_immutable():
    settings = Config().settings()

    with pytest.raises(AttributeError):
        settings.max_versions = 10


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigurationError):
        Config(str(tmp_path / "missing.yaml"))


def test_invalid_yaml(tmp_path):
    path = write_config(tmp_path, "backup: [unclosed\n")

    with pytest.raises(ConfigurationError):
        Config(path)


def test_unknown_method_fails_fast(tmp_path):
    path = write_config(tmp_path, "backup:\n  method: snapshot\n")

    with pytest.raises(ConfigurationError, match="Unknown backup method"):
        Config(path).settings()


@pytest.mark.parametrize("value", [0, -1, "many", True])
def test_max_versions_must_be_positive_integer(tmp_path, value):
    config = Config()
    config.set('backup.max_versions', value)

    with pytest.raises(ConfigurationError):
        config.settings()


def test_empty_temp_suffix_rejected():
    config = Config()
    config.set('backup.temp_suffix', '')

    with pytest.raises(ConfigurationError):
        config.settings()


@pytest.mark.parametrize("suffix", ["0", "-00", "59", "_00-00"])
def test_temp_suffix_that_matches_version_names_rejected(suffix):
    with pytest.raises(ConfigurationError, match="temp_suffix"):
        validate_temp_suffix(suffix, "%Y-%m-%d_%H-%M-%S")


@pytest.mark.parametrize("suffix", ["_tmp", ".partial", "-staging"])
def test_distinct_temp_suffix_accepted(suffix):
    validate_temp_suffix(suffix, "%Y-%m-%d_%H-%M-%S")


def test_temp_suffix_checked_against_configured_format():
    config = Config()
    config.set('backup.timestamp_format', '%Y%m%dT%H%M%S')
    config.set('backup.temp_suffix', 'T0')

    with pytest.raises(ConfigurationError):
        config.settings()


@pytest.mark.parametrize("timestamp_format", [
    "%Y-%m-%d",           # not unique per second
    "%Y/%m/%d_%H%M%S",    # path separator
    "%d-%m-%Y_%H-%M-%S",  # not chronologically sortable
    "%Y-%b-%d_%H-%M-%S",  # month names are not sortable
    "",
])
def test_bad_timestamp_formats(timestamp_format):
    with pytest.raises(ConfigurationError):
        validate_timestamp_format(timestamp_format)


def test_compact_timestamp_format_accepted():
    validate_timestamp_format("%Y%m%dT%H%M%S")


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("VMBACKUP_BACKUP_ROOT", str(tmp_path / "elsewhere"))
    monkeypatch.setenv("VMBACKUP_MAX_VERSIONS", "7")
    monkeypatch.setenv("VMBACKUP_BACKUP_METHOD", "archive")
    monkeypatch.setenv("VMBACKUP_PROCESS_TIMEOUT", "90")

    settings = Config().settings()

    assert settings.backup_root == tmp_path / "elsewhere"
    assert settings.max_versions == 7
    assert settings.method == "archive"
    assert settings.process_timeout == 90.0


def test_non_positive_timeout_rejected():
    config = Config()
    config.set('process.timeout_seconds', 0)

    with pytest.raises(ConfigurationError):
        config.settings()


def test_flags_are_split_into_arguments(tmp_path):
    path = write_config(tmp_path, 'filecopy:\n  flags: "/J /MT:8 /XF \'a b.txt\'"\n')

    settings = Config(path).settings()

    assert settings.filecopy_flags == ("/J", "/MT:8", "/XF", "a b.txt")


def test_flags_accept_lists(tmp_path):
    path = write_config(tmp_path, "archive:\n  flags: ['-mx=9', '-ms=on']\n")

    assert Config(path).settings().archive_flags == ("-mx=9", "-ms=on")


def test_include_and_exclude_patterns(tmp_path):
    path = write_config(tmp_path, "vm:\n  include: ['web-*']\n  exclude: lab\n")

    settings = Config(path).settings()

    assert settings.include == ("web-*",)
    assert settings.exclude == ("lab",)


def test_unknown_platform_rejected():
    config = Config()
    config.set('vm.platform', 'xen')

    with pytest.raises(ConfigurationError):
        config.settings()


def test_get_and_set_dot_notation():
    config = Config()
    config.set('notifications.file', '/var/log/vmbackup.log')

    assert config.get('notifications.file') == '/var/log/vmbackup.log'
    assert config.get('does.not.exist', 'fallback') == 'fallback'


def test_save_round_trip(tmp_path):
    config = Config()
    config.set('backup.max_versions', 9)
    path = tmp_path / "saved.yaml"

    config.save(str(path))

    assert Config(str(path)).settings().max_versions == 9
