"""
tar.gz archives of backup directories.
"""
import os
import tarfile
from pathlib import Path

from loguru import logger

from xtrabackup_scheduler.errors import ArchiveFailure


class Archiver:
    """
    Packs a directory into a single gzip compressed tar file and back.
    Archives contain the directory content relative to ./ (same layout as tar -C dir .).
    """

    def __init__(self, compresslevel: int = 6):
        """
        :param compresslevel: gzip level 1-9
        """
        self.compresslevel = compresslevel

    def compress(self, source_dir: Path, archive_path: Path) -> Path:
        """
        Create archive_path from the content of source_dir.
        :return: archive_path
        """
        logger.info(f'Creating tar archive {archive_path}...')
        try:
            with tarfile.open(archive_path, 'w:gz', compresslevel=self.compresslevel) as tar:
                tar.add(source_dir, arcname='.')
        except (tarfile.TarError, OSError) as e:
            raise ArchiveFailure(f'Could not create {archive_path}: {e}') from e
        return Path(archive_path)

    def extract(self, archive_path: Path, dest_dir: Path) -> Path:
        """
        Extract archive_path into dest_dir. Members leaving dest_dir are rejected.
        :return: dest_dir
        """
        logger.info(f'Extracting {archive_path} to {dest_dir}...')
        target = Path(dest_dir).resolve()
        try:
            with tarfile.open(archive_path, 'r:gz') as tar:
                members = tar.getmembers()
                for member in members:
                    member_path = (target / member.name).resolve()
                    if os.path.isabs(member.name) or (
                            member_path != target and target not in member_path.parents):
                        raise ArchiveFailure(
                            f'Tar member {member.name} would extract outside {dest_dir}')
                if hasattr(tarfile, 'data_filter'):
                    tar.extractall(target, members=members, filter='data')
                else:
                    tar.extractall(target, members=members)
        except (tarfile.TarError, OSError) as e:
            raise ArchiveFailure(f'Could not extract {archive_path}: {e}') from e
        return Path(dest_dir)
