"""Test doubles and helpers for VMBackup tests."""

import os
import time
from pathlib import Path
from typing import Dict, List, Optional

from vmbackup.exceptions import EnumerationError, StrategyExecutionError
from vmbackup.models import DataFile, VMState, VirtualMachine
from vmbackup.process import ProcessResult
from vmbackup.vm_manager import VMPlatform


HOUR = 3600


def set_mtime(path: Path, seconds_ago: float) -> None:
    """Set a file's modification time relative to now."""
    moment = time.time() - seconds_ago
    os.utime(path, (moment, moment))


def make_disk(directory: Path, name: str, seconds_ago: float = HOUR, content: bytes = b"disk") -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    disk = directory / name
    disk.write_bytes(content)
    set_mtime(disk, seconds_ago)
    return disk


class FakePlatform(VMPlatform):
    """In-memory platform backed by real disk files."""

    def __init__(self, settings=None, notifier=None, runner=None,
                 vms: Optional[List[VirtualMachine]] = None,
                 disks: Optional[Dict[str, List[Path]]] = None):
        self.settings = settings
        self.notifier = notifier
        self.runner = runner
        self.vms = list(vms or [])
        self.disks = dict(disks or {})
        self.fail_listing = False
        self.fail_export = set()
        self.exported = []
        self.list_calls = 0
        self.on_list = None

    @property
    def platform_name(self) -> str:
        return "fake"

    @property
    def command_name(self) -> str:
        return "fake"

    def is_available(self) -> bool:
        return True

    def list_vms(self) -> List[VirtualMachine]:
        self.list_calls += 1
        if self.on_list:
            self.on_list()
        if self.fail_listing:
            raise EnumerationError("hypervisor unreachable")
        return list(self.vms)

    def list_data_files(self, vm_name: str) -> List[DataFile]:
        if vm_name not in self.disks:
            raise EnumerationError(f"no disks for {vm_name}")
        return [DataFile.from_path(p) for p in self.disks[vm_name]]

    def export_vm(self, vm_name: str, destination: Path) -> None:
        if vm_name in self.fail_export:
            raise StrategyExecutionError(f"export of {vm_name} failed")
        destination.mkdir(parents=True, exist_ok=True)
        (destination / f"{vm_name}.vmcx").write_text("exported")
        self.exported.append((vm_name, destination))


class FakeRunner:
    """Process runner returning scripted exit statuses."""

    def __init__(self, returncodes=None, side_effect=None):
        self.returncodes = list(returncodes or [])
        self.side_effect = side_effect
        self.commands = []

    def run(self, command):
        command = [str(c) for c in command]
        self.commands.append(command)
        if self.side_effect:
            self.side_effect(command)
        code = self.returncodes.pop(0) if self.returncodes else 0
        if code is None:
            return ProcessResult(command, None, timed_out=True)
        return ProcessResult(command, code, stdout="", stderr="" if code == 0 else "tool error")


def stopped(name: str) -> VirtualMachine:
    return VirtualMachine(name=name, state=VMState.OFF)


