"""
VMBackup - Versioned VM Backup Orchestrator

Backs up stopped virtual machines whose disks changed since the last backup,
using an export, file copy or archive method, with per-VM retention and
cleanup of interrupted backups.
"""

__version__ = "0.1.0"
__author__ = "Entro01"

from .backup_engine import BackupEngine
from .vm_manager import VMManager
from .storage_manager import StorageManager
from .config import Config, BackupSettings

__all__ = [
    "BackupEngine",
    "VMManager",
    "StorageManager",
    "Config",
    "BackupSettings",
]
