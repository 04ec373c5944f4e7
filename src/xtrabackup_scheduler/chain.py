"""
Catalog of stored backups and resolution of restore chains.
"""
from datetime import date
from typing import Iterable, Iterator, List, Optional

from loguru import logger

from xtrabackup_scheduler.errors import MalformedKey, MissingBaseBackup
from xtrabackup_scheduler.storage.base import Storage, StoredObject
from xtrabackup_scheduler.utils.converters import ARCHIVE_EXTENSION
from xtrabackup_scheduler.utils.datatypes import (Backup, BackupKind, FullBackup,
                                                  IncrementalBackup)


def _chronological(backup: Backup):
    return backup.timestamp, backup.key


class Catalog:
    """
    All known backups, most recent first.
    """

    def __init__(self, backups: Iterable[Backup] = ()):
        unique = {}
        for backup in backups:
            unique.setdefault(backup.key, backup)
        self._backups: List[Backup] = sorted(unique.values(), key=_chronological, reverse=True)

    @classmethod
    def from_objects(cls, objects: Iterable[StoredObject],
                     file_type: str = ARCHIVE_EXTENSION) -> 'Catalog':
        """
        Build the catalog from a store listing.
        Objects without the archive extension are ignored, invalid names are skipped.
        """
        backups = []
        for obj in objects:
            if not obj.key.endswith(f'.{file_type}'):
                continue
            try:
                backups.append(Backup.from_key(obj.key, size=obj.size,
                                               last_modified=obj.last_modified,
                                               file_type=file_type))
            except MalformedKey as e:
                logger.warning(f'Skipping object in backup dir: {e}')
        return cls(backups)

    def __iter__(self) -> Iterator[Backup]:
        return iter(self._backups)

    def __len__(self) -> int:
        return len(self._backups)

    def __contains__(self, backup) -> bool:
        return backup in self._backups

    def recent(self, limit: int = 20) -> List[Backup]:
        """
        The most recent backups for presentation.
        """
        return self._backups[:limit]

    def find(self, name: str) -> Optional[Backup]:
        """
        Look up a backup by storage key or file name.
        """
        return next((x for x in self._backups if name in (x.key, x.file_name)), None)

    def full_backup_for(self, day: date) -> Optional[FullBackup]:
        return next((x for x in self._backups
                     if x.kind is BackupKind.FULL and x.day == day), None)

    def incremental_backups_on(self, day: date) -> List[IncrementalBackup]:
        """
        Incremental backups of the given day in chronological order.
        """
        return sorted((x for x in self._backups
                       if x.kind is BackupKind.INCREMENTAL and x.day == day),
                      key=_chronological)


class Chain:
    """
    Full backup followed by the incremental backups of the same day that have
    to be applied in order. The last element is the restore target.
    """

    def __init__(self, full_backup: FullBackup,
                 incremental_backups: Optional[List[IncrementalBackup]] = None):
        incremental_backups = list(incremental_backups or [])
        if full_backup.kind is not BackupKind.FULL:
            raise ValueError(f'{full_backup} is not a full backup')
        previous = full_backup
        for inc in incremental_backups:
            if inc.kind is not BackupKind.INCREMENTAL:
                raise ValueError(f'{inc} is not an incremental backup')
            if inc.day != full_backup.day:
                raise ValueError(f'{inc} does not belong to {full_backup}')
            if inc.timestamp < previous.timestamp:
                raise ValueError(f'{inc} is older than {previous}')
            previous = inc
        self.full_backup = full_backup
        self.incremental_backups = incremental_backups

    def __iter__(self) -> Iterator[Backup]:
        yield self.full_backup
        yield from self.incremental_backups

    def __len__(self) -> int:
        return 1 + len(self.incremental_backups)

    @property
    def target(self) -> Backup:
        return self.incremental_backups[-1] if self.incremental_backups else self.full_backup

    @property
    def size(self) -> int:
        return sum(x.size or 0 for x in self)


def resolve_chain(catalog: Catalog, target: Backup) -> Chain:
    """
    Compute the backups needed to restore target.
    :param catalog: every known backup (not only the presented ones)
    :param target: backup selected by the user. Must be a catalog entry.
    :return: chain ending with target
    :raises MissingBaseBackup: target is incremental and its day has no full backup
    """
    if target.kind is BackupKind.FULL:
        return Chain(target)
    if target not in catalog:
        raise ValueError(f'{target} is not part of the catalog')

    full_backup = catalog.full_backup_for(target.day)
    if not full_backup:
        raise MissingBaseBackup(target.day)

    incremental_backups = [
        x for x in catalog.incremental_backups_on(target.day)
        if full_backup.timestamp <= x.timestamp
        and _chronological(x) <= _chronological(target)
    ]
    if not incremental_backups or incremental_backups[-1] != target:
        raise RuntimeError(f'Chain resolution dropped the target {target}')
    return Chain(full_backup, incremental_backups)


def load_catalog(storage: Storage, file_type: str = ARCHIVE_EXTENSION) -> Catalog:
    """
    List the store and build the catalog.
    """
    logger.info('Loading existing backups...')
    return Catalog.from_objects(storage.list_objects(), file_type)
