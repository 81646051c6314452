"""Version storage: history, staging/commit, retention and orphan cleanup.

Layout of the backup root::

    <root>/<vm name>/<timestamp>/...          committed version
    <root>/<vm name>/<timestamp><suffix>/...  staging directory

Only directory names matching the timestamp format exactly are versions.
Anything else in a VM directory is left alone.
"""

import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .exceptions import CommitError
from .models import Version
from .utils import (
    NotificationManager,
    ensure_directory,
    format_size,
    generate_timestamp,
    get_directory_size,
    parse_timestamp,
    remove_tree,
)


class StorageManager:
    """Manages version directories under the backup root."""

    def __init__(self, settings, notification_manager: Optional[NotificationManager] = None):
        """Initialize storage manager.

        Args:
            settings: BackupSettings instance
            notification_manager: Notification manager instance (optional)
        """
        self.settings = settings
        self.notifier = notification_manager or NotificationManager.from_settings(settings)
        self.backup_root = Path(settings.backup_root)

    def vm_directory(self, vm_name: str) -> Path:
        return self.backup_root / vm_name

    def version_name(self, timestamp: datetime) -> str:
        return generate_timestamp(self.settings.timestamp_format, timestamp)

    def staging_name(self, timestamp: datetime) -> str:
        return self.version_name(timestamp) + self.settings.temp_suffix

    # History

    def list_versions(self, vm_name: str) -> List[Version]:
        """List committed versions of a VM, oldest first.

        Returns an empty list when the VM directory does not exist.
        """
        vm_dir = self.vm_directory(vm_name)
        if not vm_dir.is_dir():
            return []

        versions = []
        for entry in vm_dir.iterdir():
            if not entry.is_dir():
                continue
            timestamp = parse_timestamp(entry.name, self.settings.timestamp_format)
            if timestamp is None:
                continue
            versions.append(Version(vm_name=vm_name, timestamp=timestamp, path=entry))

        versions.sort(key=lambda v: v.name)
        return versions

    def latest_version(self, vm_name: str) -> Optional[Version]:
        """Newest committed version, or None if the VM has none."""
        versions = self.list_versions(vm_name)
        return versions[-1] if versions else None

    def list_vm_directories(self) -> List[str]:
        """Names of all VM directories present under the backup root."""
        if not self.backup_root.is_dir():
            return []
        return sorted(entry.name for entry in self.backup_root.iterdir() if entry.is_dir())

    # Staging and commit

    def create_staging(self, vm_name: str, timestamp: datetime) -> Version:
        """Create the staging directory for a new version.

        Raises:
            CommitError: if a version or staging directory with the same
                timestamp already exists, or the directory cannot be created
        """
        vm_dir = self.vm_directory(vm_name)
        committed = vm_dir / self.version_name(timestamp)
        staging = vm_dir / self.staging_name(timestamp)

        if committed.exists():
            raise CommitError(f"Version {committed.name} already exists for VM '{vm_name}'")

        try:
            ensure_directory(vm_dir)
            staging.mkdir()
        except FileExistsError:
            raise CommitError(f"Staging directory {staging.name} already exists for VM '{vm_name}'") from None
        except OSError as e:
            raise CommitError(f"Cannot create staging directory {staging}: {e}") from e

        self.notifier.debug(f"Created staging directory: {staging}")
        return Version(vm_name=vm_name, timestamp=timestamp, path=staging)

    def commit(self, staging: Version) -> Version:
        """Promote a staging directory to a committed version by renaming it.

        Raises:
            CommitError: if the target name is taken or the rename fails
        """
        target = staging.path.parent / self.version_name(staging.timestamp)
        if target.exists():
            raise CommitError(f"Cannot commit {staging.name}: {target.name} already exists")
        try:
            staging.path.rename(target)
        except OSError as e:
            raise CommitError(f"Cannot commit {staging.name}: {e}") from e

        return Version(vm_name=staging.vm_name, timestamp=staging.timestamp, path=target)

    def discard(self, staging: Version) -> bool:
        """Best-effort recursive delete of a staging directory."""
        error = remove_tree(staging.path)
        if error:
            self.notifier.error(f"Failed to remove staging directory {staging.path}: {error}")
            return False
        self.notifier.info(f"Removed staging directory: {staging.path}")
        return True

    # Retention

    def prune(self, vm_name: str, keep: Optional[int] = None) -> List[str]:
        """Delete the oldest committed versions beyond the retention limit.

        Args:
            vm_name: VM whose versions are pruned
            keep: Number of versions to keep, defaults to the configured maximum

        Returns:
            Names of the deleted versions
        """
        keep = self.settings.max_versions if keep is None else keep
        # Runs after commit, so the count includes the version just created.
        versions = sorted(self.list_versions(vm_name), key=lambda v: v.name, reverse=True)

        if len(versions) <= keep:
            self.notifier.debug(
                f"VM '{vm_name}': {len(versions)} versions (within retention limit of {keep})"
            )
            return []

        old_versions = versions[keep:]
        self.notifier.info(
            f"VM '{vm_name}': deleting {len(old_versions)} old versions (keeping {keep})"
        )

        deleted = []
        for version in old_versions:
            error = remove_tree(version.path)
            if error:
                self.notifier.error(f"Failed to delete old version {version.path}: {error}")
            else:
                deleted.append(version.name)
                self.notifier.info(f"Deleted old version: {vm_name}/{version.name}")

        return deleted

    # Orphan cleanup

    def find_orphans(self) -> List[Path]:
        """All staging directories anywhere under the backup root."""
        if not self.backup_root.is_dir():
            return []

        orphans = []
        for dirpath, dirnames, _ in os.walk(self.backup_root):
            for dirname in list(dirnames):
                if dirname.endswith(self.settings.temp_suffix):
                    orphans.append(Path(dirpath) / dirname)
                    # Do not descend into a directory that is about to go.
                    dirnames.remove(dirname)
        return orphans

    def cleanup_orphans(self) -> int:
        """Remove staging directories left behind by interrupted runs.

        Returns:
            Number of directories removed
        """
        removed = 0
        for orphan in self.find_orphans():
            error = remove_tree(orphan)
            if error:
                self.notifier.error(f"Failed to remove orphaned staging directory {orphan}: {error}")
            else:
                removed += 1
                self.notifier.warning(f"Removed orphaned staging directory: {orphan}")

        if removed:
            self.notifier.info(f"Orphan cleanup removed {removed} staging directories")
        return removed

    # Reporting

    def describe_versions(self, vm_name: str) -> List[Dict[str, Any]]:
        """Committed versions of a VM with their sizes, newest first."""
        described = []
        for version in reversed(self.list_versions(vm_name)):
            size = get_directory_size(version.path)
            described.append({
                "vm": vm_name,
                "version": version.name,
                "timestamp": version.timestamp.isoformat(),
                "path": str(version.path),
                "size": size,
                "size_human": format_size(size),
            })
        return described
