"""VM enumeration and export for supported virtualization platforms."""

import json
import fnmatch
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, List, Optional

from .exceptions import EnumerationError, StrategyExecutionError, ConfigurationError
from .models import DataFile, ResourceResult, ResourceStatus, VMState, VirtualMachine
from .process import ProcessRunner, ProcessResult
from .utils import NotificationManager, is_command_available


class VMPlatform(ABC):
    """Abstract base class for VM platform implementations."""

    def __init__(self, settings, notifier: NotificationManager,
                 runner: Optional[ProcessRunner] = None):
        self.settings = settings
        self.notifier = notifier
        self.runner = runner or ProcessRunner(settings.process_timeout, notifier)

    @property
    @abstractmethod
    def platform_name(self) -> str:
        """Return platform name."""

    @property
    @abstractmethod
    def command_name(self) -> str:
        """Return command name for platform."""

    @abstractmethod
    def list_vms(self) -> List[VirtualMachine]:
        """List VMs with their current state.

        Raises:
            EnumerationError: if the platform cannot be queried
        """

    @abstractmethod
    def list_data_files(self, vm_name: str) -> List[DataFile]:
        """List the virtual disks of a VM.

        Raises:
            EnumerationError: if the disk list cannot be queried
        """

    @abstractmethod
    def export_vm(self, vm_name: str, destination: Path) -> None:
        """Export a whole VM into destination.

        Raises:
            StrategyExecutionError: if the export does not complete
        """

    def is_available(self) -> bool:
        """Check if platform is available."""
        return is_command_available(self.command_name)


def _ps_quote(value: str) -> str:
    """Quote a value as a PowerShell single-quoted literal."""
    return "'" + str(value).replace("'", "''") + "'"


class HyperVPlatform(VMPlatform):
    """Hyper-V platform driven through PowerShell cmdlets."""

    @property
    def platform_name(self) -> str:
        return "hyperv"

    @property
    def command_name(self) -> str:
        return self.settings.powershell

    def _powershell(self, script: str) -> ProcessResult:
        return self.runner.run([
            self.settings.powershell, "-NoProfile", "-NonInteractive", "-Command", script
        ])

    def _json_output(self, result: ProcessResult) -> List[Any]:
        """Decode ConvertTo-Json output, which is a bare object for one item."""
        text = result.stdout.strip()
        if not text:
            return []
        data = json.loads(text)
        if isinstance(data, list):
            return data
        return [data]

    def list_vms(self) -> List[VirtualMachine]:
        """List Hyper-V VMs."""
        result = self._powershell(
            "Get-VM | Select-Object Name, "
            "@{Name='State';Expression={$_.State.ToString()}} "
            "| ConvertTo-Json -Compress"
        )
        if result.returncode != 0:
            raise EnumerationError(f"Failed to list VMs: {result.describe()}")
        try:
            entries = self._json_output(result)
            return [
                VirtualMachine(name=entry["Name"], state=VMState.parse(entry.get("State")))
                for entry in entries
            ]
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise EnumerationError(f"Unexpected Get-VM output: {e}") from e

    def list_data_files(self, vm_name: str) -> List[DataFile]:
        """List Hyper-V virtual disks and stat each of them."""
        result = self._powershell(
            f"Get-VMHardDiskDrive -VMName {_ps_quote(vm_name)} "
            "| Select-Object -ExpandProperty Path | ConvertTo-Json -Compress"
        )
        if result.returncode != 0:
            raise EnumerationError(f"Failed to list disks of '{vm_name}': {result.describe()}")
        try:
            paths = [str(p) for p in self._json_output(result) if p]
        except ValueError as e:
            raise EnumerationError(f"Unexpected Get-VMHardDiskDrive output: {e}") from e
        return [DataFile.from_path(p) for p in paths]

    def export_vm(self, vm_name: str, destination: Path) -> None:
        """Export a Hyper-V VM with Export-VM."""
        result = self._powershell(
            f"Export-VM -Name {_ps_quote(vm_name)} -Path {_ps_quote(str(destination))} "
            "-ErrorAction Stop"
        )
        if result.returncode != 0:
            raise StrategyExecutionError(f"Export-VM failed for '{vm_name}': {result.describe()}")


PLATFORMS = {
    "hyperv": HyperVPlatform,
}


def get_platform(settings, notifier: NotificationManager,
                 runner: Optional[ProcessRunner] = None) -> VMPlatform:
    """Resolve the configured platform implementation."""
    try:
        platform_class = PLATFORMS[settings.platform]
    except KeyError:
        raise ConfigurationError(f"Unsupported VM platform: {settings.platform}") from None
    return platform_class(settings, notifier, runner)


class VMManager:
    """Enumerates VMs and decides which of them are eligible for backup."""

    def __init__(self, settings, notification_manager: Optional[NotificationManager] = None,
                 platform: Optional[VMPlatform] = None):
        """Initialize VM manager."""
        self.settings = settings
        self.notifier = notification_manager or NotificationManager.from_settings(settings)
        self.platform = platform or get_platform(settings, self.notifier)

    def list_vms(self) -> List[VirtualMachine]:
        """List all VMs of the platform.

        Raises:
            EnumerationError: if the VM list is unavailable
        """
        if not self.platform.is_available():
            raise EnumerationError(
                f"{self.platform.command_name} not found, cannot query {self.platform.platform_name}"
            )
        vms = self.platform.list_vms()
        self.notifier.info(f"Found {len(vms)} VMs on {self.platform.platform_name}")
        return vms

    def list_data_files(self, vm_name: str) -> List[DataFile]:
        return self.platform.list_data_files(vm_name)

    def export_vm(self, vm_name: str, destination: Path) -> None:
        self.platform.export_vm(vm_name, destination)

    def is_selected(self, vm_name: str) -> bool:
        """Apply the include/exclude name patterns."""
        include = self.settings.include
        if include and not any(fnmatch.fnmatchcase(vm_name, p) for p in include):
            return False
        return not any(fnmatch.fnmatchcase(vm_name, p) for p in self.settings.exclude)

    def skip_result(self, vm: VirtualMachine) -> Optional[ResourceResult]:
        """Return the result for a VM that is not backed up, or None if it is eligible."""
        if not self.is_selected(vm.name):
            self.notifier.info(f"VM '{vm.name}' excluded by configuration")
            return ResourceResult(vm.name, ResourceStatus.EXCLUDED)
        if not vm.is_stopped:
            self.notifier.warning(f"VM '{vm.name}' is {vm.state.value}, only stopped VMs are backed up")
            return ResourceResult(vm.name, ResourceStatus.NOT_STOPPED, detail=f"state {vm.state.value}")
        return None
