"""
Decides between full and incremental backups and runs one backup per tick.

The full backup directory of the current day stays on local disk. As long as it
is complete and its archive is in the store, every tick creates an incremental
backup relative to it. Otherwise (new day, lost directory, failed upload) the
tick creates a new full backup. Full backups are named by day, so the store
holds one full backup per day.
"""
import shutil
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

from loguru import logger

from xtrabackup_scheduler.chain import load_catalog
from xtrabackup_scheduler.errors import BackupError, LivenessPingFailure
from xtrabackup_scheduler.liveness import ping_health_check
from xtrabackup_scheduler.pipeline import PipelineResult, Stage, StageResult, run_pipeline
from xtrabackup_scheduler.retention import retention_cutoff, sweep
from xtrabackup_scheduler.storage.base import Storage
from xtrabackup_scheduler.utils.config import Config
from xtrabackup_scheduler.utils.converters import (ARCHIVE_EXTENSION, FULL_PREFIX,
                                                   INCREMENTAL_PREFIX,
                                                   full_backup_name,
                                                   incremental_backup_name)
from xtrabackup_scheduler.xtrabackup.archiver import Archiver
from xtrabackup_scheduler.xtrabackup.engine import XtraBackup


class SchedulerState(Enum):
    NO_BASE_TODAY = 'NoBaseToday'
    BASE_EXISTS = 'BaseExists'


class Scheduler:
    """
    Runs backup ticks. A failed tick is reported, never retried here.
    """

    def __init__(self, config: Config, storage: Storage, engine: XtraBackup,
                 archiver: Archiver, file_type: str = ARCHIVE_EXTENSION):
        self.config = config
        self.storage = storage
        self.engine = engine
        self.archiver = archiver
        self.file_type = file_type
        self.work_dir = Path(config.work_dir)

    def probe(self, now: datetime) -> Tuple[SchedulerState, Path]:
        """
        Check the local full backup of the current day and its archive in the store.
        :return: 2-Tuple[state, directory of today's full backup]
        :raises StoreIOFailure: if the store cannot be listed
        """
        base_dir = self.work_dir / full_backup_name(now)
        if not (base_dir.is_dir() and self.engine.is_complete(base_dir)):
            return SchedulerState.NO_BASE_TODAY, base_dir
        catalog = load_catalog(self.storage, self.file_type)
        if not catalog.full_backup_for(now.astimezone(timezone.utc).date()):
            logger.warning(f'{base_dir} is complete but was never uploaded.')
            return SchedulerState.NO_BASE_TODAY, base_dir
        return SchedulerState.BASE_EXISTS, base_dir

    def tick(self, now: Optional[datetime] = None) -> PipelineResult:
        """
        Create one backup, then sweep old backups and ping the health check.
        :param now: defaults to the current UTC time
        :return: result of the tick
        """
        now = now or datetime.now(timezone.utc)
        self.work_dir.mkdir(parents=True, exist_ok=True)
        try:
            state, base_dir = self.probe(now)
        except BackupError as e:
            logger.error(f'Could not determine the backup state: {e}')
            return PipelineResult('Backup', [StageResult('probe', ok=False, error=e)])
        if state is SchedulerState.NO_BASE_TODAY:
            logger.info('No full backup for today found. Starting a new full backup.')
            name = 'Full backup'
            stages = self.full_backup_stages(base_dir)
        else:
            logger.info("Found today's full backup. Performing incremental backup.")
            name = 'Incremental backup'
            stages = self.incremental_backup_stages(now, base_dir)
        stages += self.housekeeping_stages(now)

        result = run_pipeline(name, stages)
        if result.ok:
            logger.info(f'{name} completed successfully')
        return result

    def full_backup_stages(self, base_dir: Path) -> List[Stage]:
        """
        Full backup into base_dir. The directory stays as base for the incremental backups.
        """
        archive = self.work_dir / f'{base_dir.name}.{self.file_type}'
        return [
            Stage('prepare working directory',
                  lambda: self._prepare_full_backup_dir(base_dir)),
            Stage('full snapshot', lambda: self.engine.snapshot(base_dir)),
            Stage('compress', lambda: self.archiver.compress(base_dir, archive)),
            Stage('upload', lambda: self.storage.upload(archive, archive.name)),
            Stage('remove local archive', lambda: self._remove_archive(archive)),
        ]

    def incremental_backup_stages(self, now: datetime, base_dir: Path) -> List[Stage]:
        """
        Incremental backup relative to base_dir. base_dir is only read.
        """
        incremental_dir = self.work_dir / incremental_backup_name(now)
        archive = self.work_dir / f'{incremental_dir.name}.{self.file_type}'
        return [
            Stage('create incremental directory',
                  lambda: incremental_dir.mkdir(parents=True)),
            Stage('incremental snapshot',
                  lambda: self.engine.snapshot(incremental_dir, base_dir)),
            Stage('compress', lambda: self.archiver.compress(incremental_dir, archive)),
            Stage('upload', lambda: self.storage.upload(archive, archive.name)),
            Stage('remove local files',
                  lambda: self._remove_incremental(archive, incremental_dir)),
        ]

    def housekeeping_stages(self, now: datetime) -> List[Stage]:
        return [
            Stage('retention sweep', lambda: self.sweep(now)),
            Stage('liveness ping', self._ping),
        ]

    def _ping(self):
        try:
            ping_health_check(self.config.health_check_url, self.config.proxy)
        except LivenessPingFailure as e:
            logger.warning(str(e))

    def sweep(self, now: datetime) -> int:
        logger.info('Cleaning up old backups...')
        catalog = load_catalog(self.storage, self.file_type)
        return sweep(self.storage, catalog,
                     retention_cutoff(now, self.config.retention),
                     strict=self.config.strict_retention)

    def _prepare_full_backup_dir(self, base_dir: Path):
        """
        Remove the full backups of previous days, leftovers of failed incremental
        backups and an unfinished or not uploaded full backup of today.
        """
        for entry in self.work_dir.iterdir():
            if entry.name == base_dir.name:
                continue
            if entry.name.startswith((FULL_PREFIX, INCREMENTAL_PREFIX)):
                self._remove_path(entry)
                logger.info(f'Removed old backup directory: {entry}')
        if base_dir.exists():
            logger.warning(f'Removing previous attempt of full backup {base_dir}')
            self._remove_path(base_dir)
        base_dir.mkdir(parents=True)

    @staticmethod
    def _remove_path(path: Path):
        if path.is_dir():
            shutil.rmtree(path)
        else:
            path.unlink()

    @staticmethod
    def _remove_archive(archive: Path):
        archive.unlink()
        logger.info(f'Tar file {archive} removed after upload.')

    @staticmethod
    def _remove_incremental(archive: Path, incremental_dir: Path):
        archive.unlink()
        shutil.rmtree(incremental_dir)
        logger.info(f'Tar file {archive} and incremental directory removed after upload.')
