"""Core backup engine: the per-VM backup pipeline and the run driver."""

from datetime import datetime
from typing import Callable, Optional

from .change_detector import detect_change
from .exceptions import CommitError, EnumerationError
from .models import ResourceResult, ResourceStatus, RunSummary, VirtualMachine
from .storage_manager import StorageManager
from .strategies import BackupStrategy, create_strategy
from .utils import NotificationManager, utc_now
from .vm_manager import VMManager


class BackupEngine:
    """Runs one backup pass over every eligible VM.

    VMs are processed one at a time. A failure of one VM is recorded in the
    summary and never stops the loop; only an unavailable VM list aborts
    the run.
    """

    def __init__(self, settings, notification_manager: Optional[NotificationManager] = None,
                 vm_manager: Optional[VMManager] = None,
                 storage_manager: Optional[StorageManager] = None,
                 strategy: Optional[BackupStrategy] = None,
                 clock: Callable[[], datetime] = utc_now):
        """Initialize backup engine.

        Args:
            settings: BackupSettings instance
            notification_manager: Notification manager instance
            vm_manager: VM enumerator, built from settings if omitted
            storage_manager: Version storage, built from settings if omitted
            strategy: Backup strategy, resolved from settings if omitted
            clock: Source of version timestamps (UTC, whole seconds)
        """
        self.settings = settings
        self.notifier = notification_manager or NotificationManager.from_settings(settings)
        self.vm_manager = vm_manager or VMManager(settings, self.notifier)
        self.storage = storage_manager or StorageManager(settings, self.notifier)
        self.strategy = strategy or create_strategy(settings, self.notifier, self.vm_manager)
        self.clock = clock

    def run(self, dry_run: bool = False) -> RunSummary:
        """Back up every stopped VM whose data changed since its last version.

        Args:
            dry_run: Only detect changes; create, commit and delete nothing

        Returns:
            Run summary with one result per VM
        """
        summary = RunSummary()
        self.notifier.info(
            f"Starting backup run (method: {self.strategy.method_name}, "
            f"root: {self.settings.backup_root}, keep: {self.settings.max_versions})"
        )

        # Orphans from an interrupted run are removed before enumeration.
        if not dry_run:
            summary.orphans_removed = self.storage.cleanup_orphans()

        try:
            vms = self.vm_manager.list_vms()
        except EnumerationError as e:
            self.notifier.failure(f"Cannot enumerate VMs: {e}")
            summary.fatal_error = str(e)
            return summary

        # Results follow the platform's enumeration order.
        for vm in vms:
            summary.add(self.vm_manager.skip_result(vm) or self.backup_vm(vm, dry_run=dry_run))

        self._report(summary)
        return summary

    def backup_vm(self, vm: VirtualMachine, dry_run: bool = False) -> ResourceResult:
        """Run the backup pipeline for one VM, never raising."""
        try:
            return self._backup_vm(vm, dry_run)
        except Exception as e:
            self.notifier.failure(f"VM '{vm.name}': unexpected error: {e}")
            return ResourceResult(vm.name, ResourceStatus.FAILED, detail=str(e))

    def _backup_vm(self, vm: VirtualMachine, dry_run: bool) -> ResourceResult:
        self.notifier.info(f"Processing VM '{vm.name}'")

        try:
            data_files = self.vm_manager.list_data_files(vm.name)
        except EnumerationError as e:
            self.notifier.warning(f"VM '{vm.name}': data files unavailable: {e}")
            return ResourceResult(vm.name, ResourceStatus.DATA_UNAVAILABLE, detail=str(e))

        latest = self.storage.latest_version(vm.name)
        decision = detect_change(data_files, latest)

        if decision is None:
            detail = f"none of {len(data_files)} data files is readable"
            self.notifier.warning(f"VM '{vm.name}' skipped: {detail}")
            return ResourceResult(vm.name, ResourceStatus.DATA_UNAVAILABLE, detail=detail)

        if not decision.triggered:
            self.notifier.info(f"VM '{vm.name}': {decision.reason}, skipping")
            return ResourceResult(
                vm.name, ResourceStatus.UNCHANGED,
                version=latest.name if latest else None, detail=decision.reason
            )

        if dry_run:
            self.notifier.info(f"VM '{vm.name}': {decision.reason}, would back up")
            return ResourceResult(vm.name, ResourceStatus.PENDING, detail=decision.reason)

        self.notifier.info(f"VM '{vm.name}': {decision.reason}, starting backup")

        # The version name is fixed before the strategy runs.
        try:
            staging = self.storage.create_staging(vm.name, self.clock())
        except CommitError as e:
            self.notifier.failure(f"VM '{vm.name}': {e}")
            return ResourceResult(vm.name, ResourceStatus.FAILED, detail=str(e))

        try:
            result = self.strategy.execute(vm, data_files, staging.path)
        except Exception as e:
            self.storage.discard(staging)
            self.notifier.failure(f"VM '{vm.name}': {self.strategy.method_name} backup failed: {e}")
            return ResourceResult(vm.name, ResourceStatus.FAILED, detail=str(e))

        if not result.success:
            self.storage.discard(staging)
            self.notifier.failure(f"VM '{vm.name}': {self.strategy.method_name} backup failed: {result.detail}")
            return ResourceResult(vm.name, ResourceStatus.FAILED, detail=result.detail)

        try:
            version = self.storage.commit(staging)
        except CommitError as e:
            self.storage.discard(staging)
            self.notifier.failure(f"VM '{vm.name}': {e}")
            return ResourceResult(vm.name, ResourceStatus.FAILED, detail=str(e))

        self.notifier.success(f"VM '{vm.name}': created version {version.name}")
        pruned = self.storage.prune(vm.name)

        detail = "; ".join(result.warnings) if result.warnings else None
        return ResourceResult(
            vm.name, ResourceStatus.BACKED_UP, version=version.name, detail=detail, pruned=pruned
        )

    def _report(self, summary: RunSummary) -> None:
        backed_up = summary.count(ResourceStatus.BACKED_UP)
        unchanged = summary.count(ResourceStatus.UNCHANGED)
        failed = summary.failed

        message = (
            f"Backup run finished: {backed_up} backed up, {unchanged} unchanged, "
            f"{len(failed)} failed, {len(summary.results)} VMs total"
        )
        if failed:
            self.notifier.failure(message)
            for result in failed:
                self.notifier.warning(f"  {result.vm_name}: {result.status.value} ({result.detail})")
        else:
            self.notifier.success(message)
