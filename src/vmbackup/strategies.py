"""Backup strategies: how a new version is materialized in a staging directory.

Every strategy writes only inside the staging directory it is given and
reports its outcome as a ``StrategyResult``. None of them retries; the
caller discards the staging directory on failure.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Sequence

from .exceptions import ConfigurationError, StrategyExecutionError
from .models import DataFile, StrategyResult, VirtualMachine
from .process import ProcessRunner, ProcessResult
from .utils import NotificationManager


class BackupStrategy(ABC):
    """Abstract base class for backup methods."""

    def __init__(self, settings, notifier: NotificationManager,
                 runner: Optional[ProcessRunner] = None):
        self.settings = settings
        self.notifier = notifier
        self.runner = runner or ProcessRunner(settings.process_timeout, notifier)

    @property
    @abstractmethod
    def method_name(self) -> str:
        """Return method name."""

    @abstractmethod
    def execute(self, vm: VirtualMachine, data_files: Sequence[DataFile],
                staging_dir: Path) -> StrategyResult:
        """Write a full backup of the VM into staging_dir."""

    def _readable(self, vm: VirtualMachine, data_files: Sequence[DataFile]) -> List[DataFile]:
        readable = []
        for data_file in data_files:
            if data_file.readable:
                readable.append(data_file)
            else:
                self.notifier.warning(f"VM '{vm.name}': skipping unreadable data file {data_file.path}")
        return readable


class ExportStrategy(BackupStrategy):
    """Exports the whole VM with the platform's export operation."""

    SUBFOLDER = "Export"

    def __init__(self, settings, notifier: NotificationManager, vm_manager,
                 runner: Optional[ProcessRunner] = None):
        super().__init__(settings, notifier, runner)
        self.vm_manager = vm_manager

    @property
    def method_name(self) -> str:
        return "export"

    def execute(self, vm: VirtualMachine, data_files: Sequence[DataFile],
                staging_dir: Path) -> StrategyResult:
        destination = staging_dir / self.SUBFOLDER
        destination.mkdir(parents=True, exist_ok=True)

        self.notifier.info(f"Exporting VM '{vm.name}' to {destination}")
        try:
            self.vm_manager.export_vm(vm.name, destination)
        except StrategyExecutionError as e:
            return StrategyResult.failed(str(e))

        return StrategyResult.ok()


class FileCopyStrategy(BackupStrategy):
    """Copies each data file with an external copy tool (robocopy by default)."""

    SUBFOLDER = "Disks"

    @property
    def method_name(self) -> str:
        return "filecopy"

    def copy_command(self, data_file: DataFile, destination: Path) -> List[str]:
        # robocopy <source dir> <destination dir> <file name> [flags]
        return [
            self.settings.filecopy_tool,
            str(data_file.path.parent),
            str(destination),
            data_file.path.name,
            *self.settings.filecopy_flags,
        ]

    def is_success(self, result: ProcessResult) -> bool:
        # A negative status means the tool was killed by a signal.
        return result.returncode is not None and 0 <= result.returncode < self.settings.filecopy_failure_threshold

    def execute(self, vm: VirtualMachine, data_files: Sequence[DataFile],
                staging_dir: Path) -> StrategyResult:
        destination = staging_dir / self.SUBFOLDER
        destination.mkdir(parents=True, exist_ok=True)

        readable = self._readable(vm, data_files)
        if not readable:
            return StrategyResult.ok(f"VM '{vm.name}' has no readable data files to copy")

        failures = []
        for data_file in readable:
            self.notifier.info(f"Copying {data_file.path} to {destination}")
            result = self.runner.run(self.copy_command(data_file, destination))
            if self.is_success(result):
                self.notifier.debug(f"Copied {data_file.path.name} (status {result.returncode})")
            else:
                # Keep going so every failing file is reported.
                self.notifier.error(f"Copy of {data_file.path} failed: {result.describe()}")
                failures.append(f"{data_file.path.name}: {result.describe()}")

        if failures:
            return StrategyResult.failed(
                f"{len(failures)} of {len(readable)} files failed to copy: " + "; ".join(failures)
            )
        return StrategyResult.ok()


class ArchiveStrategy(BackupStrategy):
    """Compresses all data files into one archive (7-Zip by default)."""

    @property
    def method_name(self) -> str:
        return "archive"

    def archive_path(self, vm: VirtualMachine, staging_dir: Path) -> Path:
        return staging_dir / f"{vm.name}.{self.settings.archive_extension}"

    def archive_command(self, archive: Path, data_files: Sequence[DataFile]) -> List[str]:
        return [
            self.settings.archive_tool,
            "a",
            *self.settings.archive_flags,
            str(archive),
            *(str(f.path) for f in data_files),
        ]

    def execute(self, vm: VirtualMachine, data_files: Sequence[DataFile],
                staging_dir: Path) -> StrategyResult:
        readable = self._readable(vm, data_files)
        if not readable:
            return StrategyResult.failed(f"VM '{vm.name}' has no readable data files to archive")

        archive = self.archive_path(vm, staging_dir)
        self.notifier.info(f"Archiving {len(readable)} data files of VM '{vm.name}' to {archive}")
        result = self.runner.run(self.archive_command(archive, readable))

        if result.returncode == 0:
            return StrategyResult.ok()
        if result.returncode == 1:
            warning = f"Archiver reported warnings for VM '{vm.name}': {result.describe()}"
            self.notifier.warning(warning)
            return StrategyResult.ok(warning)
        return StrategyResult.failed(result.describe())


def create_strategy(settings, notifier: NotificationManager, vm_manager,
                    runner: Optional[ProcessRunner] = None) -> BackupStrategy:
    """Resolve the configured backup method once, at startup."""
    if settings.method == "export":
        return ExportStrategy(settings, notifier, vm_manager, runner)
    if settings.method == "filecopy":
        return FileCopyStrategy(settings, notifier, runner)
    if settings.method == "archive":
        return ArchiveStrategy(settings, notifier, runner)
    raise ConfigurationError(f"Unknown backup method: {settings.method}")
