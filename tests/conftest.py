"""Shared fixtures for VMBackup tests."""

import os
import dataclasses

import pytest

from vmbackup.config import Config
from vmbackup.utils import NotificationManager


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep VMBACKUP_* variables from the developer's shell out of tests."""
    for key in list(os.environ):
        if key.startswith("VMBACKUP_"):
            monkeypatch.delenv(key)


@pytest.fixture
def backup_root(tmp_path):
    return tmp_path / "backups"


@pytest.fixture
def make_settings(backup_root):
    """Build settings from the packaged defaults with overrides."""

    def _make(**overrides):
        settings = Config().settings()
        values = {"backup_root": backup_root, "log_console": False}
        values.update(overrides)
        return dataclasses.replace(settings, **values)

    return _make


@pytest.fixture
def settings(make_settings):
    return make_settings()


@pytest.fixture
def notifier():
    return NotificationManager(level="DEBUG", console=False)


@pytest.fixture
def disk_dir(tmp_path):
    return tmp_path / "disks"
