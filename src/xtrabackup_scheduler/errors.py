"""
Error kinds raised by the backup and restore procedures.
"""
from datetime import date
from typing import Optional


class BackupError(Exception):
    """
    Base class for all expected failures.
    """


class ConfigMissing(BackupError, ValueError):
    """
    A required setting is absent.
    """

    def __init__(self, setting: str):
        super().__init__(f'Required setting {setting} is not set')
        self.setting = setting


class MalformedKey(BackupError, ValueError):
    """
    A storage key matches neither the full nor the incremental naming pattern.
    """

    def __init__(self, key: str):
        super().__init__(f'Invalid file name: {key}')
        self.key = key


class MissingBaseBackup(BackupError):
    """
    An incremental backup has no full backup on the same day.
    """

    def __init__(self, day: date):
        super().__init__(
            f'Cannot find full backup for date {day:%Y%m%d}. '
            'Incremental backups cannot be restored without their base full backup.')
        self.day = day


class EngineFailure(BackupError):
    """
    The xtrabackup process exited with a non-zero code.
    The command must already be redacted.
    """

    def __init__(self, command: str, exit_code: Optional[int]):
        super().__init__(f'{command} failed with exit code {exit_code}')
        self.command = command
        self.exit_code = exit_code


class ArchiveFailure(BackupError):
    """
    Creating or extracting an archive failed.
    """


class StoreIOFailure(BackupError):
    """
    A list/get/put/delete against the archive store failed.
    """


class LivenessPingFailure(BackupError):
    """
    The health check could not be reached. Never fatal.
    """
