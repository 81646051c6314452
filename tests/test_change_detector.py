"""Tests for change detection."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

from vmbackup.change_detector import detect_change, newest_modification
from vmbackup.models import DataFile, Version

T0 = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def disk(name, modified):
    return DataFile(path=Path(name), modified=modified)


def version_at(moment):
    return Version(vm_name="A", timestamp=moment, path=Path("A") / moment.strftime("%Y-%m-%d_%H-%M-%S"))


def test_no_version_always_triggers():
    decision = detect_change([disk("a.vhdx", T0)], None)

    assert decision.triggered
    assert decision.newest_modification == T0


def test_unchanged_files_do_not_trigger():
    files = [disk("a.vhdx", T0 - timedelta(hours=1)), disk("b.vhdx", T0)]

    decision = detect_change(files, version_at(T0))

    assert not decision.triggered


def test_one_newer_file_triggers():
    files = [disk("a.vhdx", T0 - timedelta(days=3)), disk("b.vhdx", T0 + timedelta(seconds=1))]

    decision = detect_change(files, version_at(T0))

    assert decision.triggered
    assert decision.latest_version == T0


def test_same_second_write_does_not_trigger():
    decision = detect_change([disk("a.vhdx", T0 + timedelta(milliseconds=500))], version_at(T0))

    assert not decision.triggered


def test_write_in_next_second_triggers():
    decision = detect_change([disk("a.vhdx", T0 + timedelta(seconds=1, milliseconds=1))], version_at(T0))

    assert decision.triggered


def test_unreadable_files_are_ignored():
    files = [disk("gone.vhdx", None), disk("a.vhdx", T0 - timedelta(hours=1))]

    decision = detect_change(files, version_at(T0))

    assert not decision.triggered
    assert newest_modification(files) == T0 - timedelta(hours=1)


def test_no_readable_files_is_not_no_change():
    assert detect_change([disk("gone.vhdx", None)], version_at(T0)) is None
    assert detect_change([], None) is None
