"""
Contains classes representing different backup types.
"""
from abc import ABC, abstractmethod
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from .converters import (ARCHIVE_EXTENSION, full_backup_name, incremental_backup_name,
                         parse_file_name)


class BackupKind(Enum):
    """
    Kind of stored backup.
    """
    FULL = 'full'
    INCREMENTAL = 'inc'


class Backup(ABC):
    """
    Abstract base class for backups.
    The identity of a backup is its storage key. Kind and timestamp are derived from it.
    """
    kind: BackupKind

    def __init__(self, timestamp: Optional[datetime] = None,
                 file_type: str = ARCHIVE_EXTENSION,
                 key: Optional[str] = None,
                 size: int = 0,
                 last_modified: Optional[datetime] = None):
        """
        :param timestamp: timestamp of the backup. UTC now if not given.
        :param file_type: archive extension
        :param key: storage key. Defaults to the file name (no prefix).
        :param size: size in bytes as reported by the store
        :param last_modified: last modification as reported by the store
        """
        self.timestamp = timestamp if timestamp else datetime.now(timezone.utc)
        self.file_type = file_type
        self._key = key
        self.size = size
        self.last_modified = last_modified

    def __str__(self):
        return f'Backup {self.file_name}'

    def __repr__(self):
        return f'<{type(self).__name__} {self.key}>'

    def __eq__(self, other):
        return isinstance(other, Backup) and self.key == other.key

    def __hash__(self):
        return hash(self.key)

    @property
    @abstractmethod
    def name(self) -> str:
        """
        name of the backup without extension. Also used for local directories.
        """

    @property
    def file_name(self) -> str:
        """
        file name of the backup archive
        """
        return f'{self.name}.{self.file_type}'

    @property
    def key(self) -> str:
        """
        storage key of the archive
        """
        return self._key if self._key else self.file_name

    @property
    def day(self) -> date:
        """
        calendar day (UTC) of the backup
        """
        return self.timestamp.astimezone(timezone.utc).date()

    @property
    def timestamp_str(self) -> str:
        """
        timestamp as string
        :return: timestamp as string
        """
        return self.timestamp.astimezone(timezone.utc).strftime('%Y-%m-%d %H:%M:%S')

    @staticmethod
    def from_key(key: str, size: int = 0, last_modified: Optional[datetime] = None,
                 file_type: str = ARCHIVE_EXTENSION) -> 'Backup':
        """
        Create the backup described by a storage key.
        :raises MalformedKey: if the key matches no naming pattern
        """
        data = parse_file_name(key, file_type)
        cls = FullBackup if data['backup_type'] == 'full' else IncrementalBackup
        return cls(timestamp=data['timestamp'], file_type=file_type, key=key,
                   size=size, last_modified=last_modified)


class FullBackup(Backup):
    """
    Represents full backups. One per calendar day.
    """
    kind = BackupKind.FULL

    def __str__(self):
        return f'Full Backup {self.file_name}'

    @property
    def name(self) -> str:
        return full_backup_name(self.timestamp)


class IncrementalBackup(Backup):
    """
    Represents incremental backups.
    """
    kind = BackupKind.INCREMENTAL

    def __str__(self):
        return f'Incremental Backup {self.file_name}'

    @property
    def name(self) -> str:
        return incremental_backup_name(self.timestamp)
