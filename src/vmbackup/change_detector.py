"""Decides whether a VM needs a new backup version."""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from .models import DataFile, Version


@dataclass(frozen=True)
class ChangeDecision:
    """Result of comparing data file times with the latest version."""

    triggered: bool
    reason: str
    newest_modification: Optional[datetime] = None
    latest_version: Optional[datetime] = None


def newest_modification(data_files: Iterable[DataFile]) -> Optional[datetime]:
    """Latest modification time among readable data files, or None."""
    times = [f.modified for f in data_files if f.readable]
    return max(times) if times else None


def detect_change(data_files: Iterable[DataFile], latest: Optional[Version]) -> Optional[ChangeDecision]:
    """Compare the newest data file time with the latest version.

    Modification times are truncated to whole seconds first, so a disk
    written in the same second a version was named is not newer than it.

    Returns None when no data file is readable; the caller reports that
    as unavailable data rather than as "no change".
    """
    newest = newest_modification(data_files)
    if newest is None:
        return None

    if latest is None:
        return ChangeDecision(True, "no previous version", newest)

    if newest.replace(microsecond=0) > latest.timestamp:
        return ChangeDecision(
            True,
            f"data modified at {newest.isoformat()} after version {latest.name}",
            newest,
            latest.timestamp,
        )

    return ChangeDecision(False, f"unchanged since version {latest.name}", newest, latest.timestamp)
