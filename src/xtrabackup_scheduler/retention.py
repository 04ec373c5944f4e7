"""
Deletes stored backups older than the retention window.
"""
from datetime import datetime, timedelta

from loguru import logger

from xtrabackup_scheduler.chain import Catalog
from xtrabackup_scheduler.storage.base import Storage
from xtrabackup_scheduler.utils.datatypes import Backup, BackupKind


def retention_cutoff(now: datetime, retention: timedelta) -> datetime:
    return now - retention


def _has_live_incrementals(catalog: Catalog, full_backup: Backup, cutoff: datetime) -> bool:
    return any(x.last_modified and x.last_modified >= cutoff
               for x in catalog.incremental_backups_on(full_backup.day))


def sweep(storage: Storage, catalog: Catalog, cutoff: datetime, strict: bool = False) -> int:
    """
    Remove every backup whose last modification is before cutoff.
    Only the age counts: a full backup is deleted even if younger incremental
    backups of its day still need it, unless strict is set.
    :param storage: archive store
    :param catalog: backups to check
    :param cutoff: now - retention
    :param strict: keep full backups that still have same day incrementals at or after cutoff
    :return: number of deleted objects
    """
    deleted = 0
    for backup in catalog:
        if not backup.last_modified or backup.last_modified >= cutoff:
            continue
        if (strict and backup.kind is BackupKind.FULL
                and _has_live_incrementals(catalog, backup, cutoff)):
            logger.warning(f'Keeping {backup.key}: incremental backups of that day are '
                           'still inside the retention window')
            continue
        storage.remove(backup.key)
        deleted += 1
        logger.info(f'Deleted old backup: {backup.key}')
    return deleted
