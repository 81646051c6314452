"""Exception hierarchy for VMBackup."""


class BackupError(Exception):
    """Base class for all VMBackup errors."""


class ConfigurationError(BackupError):
    """Configuration is missing, malformed or out of range."""


class EnumerationError(BackupError):
    """The list of virtual machines could not be obtained."""


class StrategyExecutionError(BackupError):
    """A backup strategy could not run its external operation."""


class CommitError(BackupError):
    """A staging directory could not be promoted to a committed version."""
