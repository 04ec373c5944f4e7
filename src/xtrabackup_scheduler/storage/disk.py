import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import List

from loguru import logger

from xtrabackup_scheduler.errors import StoreIOFailure
from xtrabackup_scheduler.storage.base import Storage, StoredObject


class DiskStorage(Storage):
    """
    Disk backend for storing the archives in a local (or mounted) directory.
    """

    def __init__(self, backup_dir: Path):
        """
        :param backup_dir: main dir for backups
        """
        self.backup_dir = Path(backup_dir)

    def list_objects(self) -> List[StoredObject]:
        """
        Get all existing files.
        Hidden files are partial uploads and skipped.
        :return: list with existing files.
        """
        try:
            objects = []
            for entry in os.scandir(self.backup_dir):
                if not entry.is_file() or entry.name.startswith('.'):
                    continue
                stat = entry.stat()
                objects.append(StoredObject(
                    key=entry.name,
                    size=stat.st_size,
                    last_modified=datetime.fromtimestamp(stat.st_mtime, timezone.utc),
                ))
        except OSError as e:
            raise StoreIOFailure(f'Could not list {self.backup_dir}: {e}') from e
        return sorted(objects, key=lambda x: x.key)

    def download(self, key: str, destination: Path) -> Path:
        logger.info(f'Copying {key} to {destination}')
        try:
            shutil.copyfile(self.backup_dir / key, destination)
        except OSError as e:
            raise StoreIOFailure(f'Could not download {key}: {e}') from e
        return Path(destination)

    def upload(self, source: Path, name: str) -> str:
        partial = self.backup_dir / f'.{name}.partial'
        logger.info(f'Copying {source} to {self.backup_dir / name}')
        try:
            shutil.copyfile(source, partial)
            os.replace(partial, self.backup_dir / name)
        except OSError as e:
            raise StoreIOFailure(f'Could not upload {name}: {e}') from e
        return name

    def remove(self, key: str) -> None:
        try:
            os.remove(self.backup_dir / key)
        except OSError as e:
            raise StoreIOFailure(f'Could not delete {key}: {e}') from e
