"""
Restore of a backup chain into one prepared base directory.

The full backup is extracted into base/. Without incremental backups it is
prepared once. Otherwise the base is prepared with --apply-log-only, every
incremental backup but the last is merged with --apply-log-only and the last
one is merged with the final prepare. Merges modify base/ in place, so every
step waits for the previous one. Nothing is rolled back on errors: the
intermediate state is needed to analyse a failed merge.
"""
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from loguru import logger

from xtrabackup_scheduler.chain import Chain
from xtrabackup_scheduler.pipeline import PipelineResult, Stage, run_pipeline
from xtrabackup_scheduler.storage.base import Storage
from xtrabackup_scheduler.utils.converters import format_timestamp
from xtrabackup_scheduler.utils.datatypes import Backup
from xtrabackup_scheduler.xtrabackup.archiver import Archiver
from xtrabackup_scheduler.xtrabackup.engine import XtraBackup


def default_restore_root(now: Optional[datetime] = None) -> Path:
    """
    ./mysql-restore-<YYYYMMDDHHmmss>
    """
    return Path.cwd() / f'mysql-restore-{format_timestamp(now or datetime.now(timezone.utc))}'


class RestorePipeline:
    """
    Downloads, extracts and merges a chain below restore_root.
    """

    def __init__(self, storage: Storage, engine: XtraBackup, archiver: Archiver,
                 restore_root: Path):
        """
        :param storage: archive store
        :param engine: xtrabackup
        :param archiver: tar.gz handling
        :param restore_root: working directory of the restore. base/ is created inside.
        """
        self.storage = storage
        self.engine = engine
        self.archiver = archiver
        self.restore_root = Path(restore_root)
        self.base_dir = self.restore_root / 'base'

    def stages(self, chain: Chain) -> List[Stage]:
        full_backup = chain.full_backup
        incremental_backups = chain.incremental_backups
        stages = [
            Stage('create base directory', self._create_base_dir),
            *self._fetch_stages(full_backup, self.base_dir),
        ]
        if incremental_backups:
            stages.append(Stage(
                'prepare base with log only',
                lambda: self.engine.merge(self.base_dir, log_only=True)))
        else:
            stages.append(Stage(
                'final prepare',
                lambda: self.engine.merge(self.base_dir, log_only=False)))

        for i, backup in enumerate(incremental_backups, start=1):
            incremental_dir = self.restore_root / f'inc_{i}'
            log_only = i < len(incremental_backups)
            stages += self._fetch_stages(backup, incremental_dir)
            stages += [
                Stage(f'merge {backup.file_name}' + (' with log only' if log_only else ''),
                      self._merge_action(incremental_dir, log_only)),
                Stage(f'remove {incremental_dir.name}',
                      self._remove_dir_action(incremental_dir)),
            ]
        return stages

    def run(self, chain: Chain) -> PipelineResult:
        """
        Restore the chain.
        :return: result. output is the prepared base directory on success.
        """
        logger.info('=== Starting restore process ===')
        logger.info(f'Restoring {len(chain)} backup(s)...')
        result = run_pipeline('Restore', self.stages(chain))
        if result.ok:
            result.output = self.base_dir
            logger.info('=== Restore preparation complete ===')
            logger.info(f'Restored data is ready in: {self.base_dir}')
        return result

    def _create_base_dir(self):
        self.restore_root.mkdir(parents=True, exist_ok=True)
        self.base_dir.mkdir()

    def _fetch_stages(self, backup: Backup, dest_dir: Path) -> List[Stage]:
        archive = self.restore_root / backup.file_name

        def extract():
            dest_dir.mkdir(exist_ok=True)
            self.archiver.extract(archive, dest_dir)
            archive.unlink()

        return [
            Stage(f'download {backup.file_name}',
                  lambda: self.storage.download(backup.key, archive)),
            Stage(f'extract {backup.file_name}', extract),
        ]

    def _merge_action(self, incremental_dir: Path, log_only: bool):
        return lambda: self.engine.merge(self.base_dir, log_only=log_only,
                                         incremental_dir=incremental_dir)

    @staticmethod
    def _remove_dir_action(directory: Path):
        return lambda: shutil.rmtree(directory)


def copy_back(engine: XtraBackup, base_dir: Path, datadir: Path) -> PipelineResult:
    """
    Copy a prepared base directory into the data directory of a stopped server.
    """
    return run_pipeline('Copy back', [
        Stage('copy back', lambda: engine.copy_back(base_dir, datadir)),
    ])
