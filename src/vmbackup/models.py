"""Data model shared by the VMBackup components."""

import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple


class VMState(Enum):
    """Coarse lifecycle state of a virtual machine."""

    OFF = "Off"
    RUNNING = "Running"
    PAUSED = "Paused"
    OTHER = "Other"

    @classmethod
    def parse(cls, value: Optional[str]) -> "VMState":
        for state in cls:
            if value and state.value.lower() == str(value).strip().lower():
                return state
        return cls.OTHER


@dataclass(frozen=True)
class VirtualMachine:
    """A backup target as reported by the platform."""

    name: str
    state: VMState

    @property
    def is_stopped(self) -> bool:
        return self.state is VMState.OFF


@dataclass(frozen=True)
class DataFile:
    """A virtual disk owned by a VM.

    ``modified`` is None when the file could not be stat'ed; such files are
    reported as unreadable and never take part in change detection.
    """

    path: Path
    modified: Optional[datetime] = None

    @property
    def readable(self) -> bool:
        return self.modified is not None

    @classmethod
    def from_path(cls, path) -> "DataFile":
        path = Path(path)
        try:
            stat = os.stat(path)
        except OSError:
            return cls(path=path)
        if not path.is_file() or not os.access(path, os.R_OK):
            return cls(path=path)
        return cls(path=path, modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc))


@dataclass(frozen=True)
class Version:
    """A committed or staging backup directory of one VM."""

    vm_name: str
    timestamp: datetime
    path: Path

    @property
    def name(self) -> str:
        return self.path.name


@dataclass(frozen=True)
class StrategyResult:
    """Outcome of one strategy execution."""

    success: bool
    detail: Optional[str] = None
    warnings: Tuple[str, ...] = ()

    @classmethod
    def ok(cls, *warnings: str) -> "StrategyResult":
        return cls(success=True, warnings=tuple(warnings))

    @classmethod
    def failed(cls, detail: str) -> "StrategyResult":
        return cls(success=False, detail=detail)


class ResourceStatus(Enum):
    """Per-VM outcome of a run."""

    BACKED_UP = "backed_up"
    UNCHANGED = "unchanged"
    PENDING = "pending"
    NOT_STOPPED = "not_stopped"
    EXCLUDED = "excluded"
    DATA_UNAVAILABLE = "data_unavailable"
    FAILED = "failed"

    @property
    def is_failure(self) -> bool:
        return self in (ResourceStatus.FAILED, ResourceStatus.DATA_UNAVAILABLE)


@dataclass
class ResourceResult:
    """What happened to one VM during a run."""

    vm_name: str
    status: ResourceStatus
    version: Optional[str] = None
    detail: Optional[str] = None
    pruned: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vm": self.vm_name,
            "status": self.status.value,
            "version": self.version,
            "detail": self.detail,
            "pruned": list(self.pruned),
        }


@dataclass
class RunSummary:
    """Aggregated result of one orchestrator run."""

    results: List[ResourceResult] = field(default_factory=list)
    orphans_removed: int = 0
    fatal_error: Optional[str] = None

    def add(self, result: ResourceResult) -> ResourceResult:
        self.results.append(result)
        return result

    def count(self, status: ResourceStatus) -> int:
        return sum(1 for r in self.results if r.status is status)

    @property
    def failed(self) -> List[ResourceResult]:
        return [r for r in self.results if r.status.is_failure]

    @property
    def exit_code(self) -> int:
        if self.fatal_error:
            return 2
        return 1 if self.failed else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exit_code": self.exit_code,
            "fatal_error": self.fatal_error,
            "orphans_removed": self.orphans_removed,
            "results": [r.to_dict() for r in self.results],
        }
