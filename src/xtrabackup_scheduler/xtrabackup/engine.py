"""
XtraBackup invocations. Builds the command lines and runs them to completion.
"""
import subprocess
from pathlib import Path
from typing import List, Optional

from loguru import logger

from xtrabackup_scheduler.errors import EngineFailure
from xtrabackup_scheduler.utils.converters import redact_arguments

COMPLETION_MARKER = 'xtrabackup_checkpoints'


class XtraBackup:
    """
    Wrapper for the xtrabackup binary.
    The password is passed as --password= and masked in every error and log line.
    """

    def __init__(self, host: str = 'localhost', port: int = 3306,
                 user: str = 'root', password: str = '',
                 binary: str = 'xtrabackup'):
        """
        Init a new engine.
        :param host: default: localhost
        :param port: default: 3306
        :param user: default: root
        :param password: default: ''
        :param binary: name or path of the xtrabackup binary
        """
        self._host = host
        self._port = port
        self._user = user
        self._password = password
        self.binary = binary

    @staticmethod
    def is_complete(directory: Path) -> bool:
        """
        Whether the directory holds a finished backup. xtrabackup writes the
        checkpoints file as the last step of --backup.
        """
        return (Path(directory) / COMPLETION_MARKER).is_file()

    def _connection_args(self) -> List[str]:
        return [
            f'--user={self._user}',
            f'--password={self._password}',
            f'--host={self._host}',
            f'--port={self._port}',
        ]

    def snapshot(self, target_dir: Path, base_dir: Optional[Path] = None):
        """
        Create a backup in target_dir.
        :param target_dir: empty target directory
        :param base_dir: base for an incremental backup. Only read by xtrabackup.
        """
        args = ['--backup', *self._connection_args(), f'--target-dir={target_dir}']
        if base_dir:
            args.append(f'--incremental-basedir={base_dir}')
        args.append('--no-lock')
        self._run(args)

    def merge(self, target_dir: Path, log_only: bool, incremental_dir: Optional[Path] = None):
        """
        Prepare the backup in target_dir (xtrabackup --prepare).
        :param target_dir: base directory. Modified in place.
        :param log_only: only apply the redo log. Keeps the base open for more incrementals.
        :param incremental_dir: incremental backup to merge into the base
        """
        args = ['--prepare']
        if log_only:
            args.append('--apply-log-only')
        args.append(f'--target-dir={target_dir}')
        if incremental_dir:
            args.append(f'--incremental-dir={incremental_dir}')
        self._run(args)

    def copy_back(self, target_dir: Path, datadir: Path):
        """
        Copy a prepared backup into the (empty) data directory of a stopped server.
        """
        self._run(['--copy-back', f'--datadir={datadir}', f'--target-dir={target_dir}'])

    def _run(self, args: List[str]):
        """
        Run xtrabackup. stdout and stderr are streamed to the log.
        :raises EngineFailure: on a non-zero exit code or a missing binary
        """
        command = ' '.join([self.binary, *redact_arguments(args)])
        logger.debug(f'Running {command}')
        try:
            process = subprocess.Popen(
                [self.binary, *args],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
            )
        except OSError as e:
            logger.error(f'Could not start {self.binary}: {e}')
            raise EngineFailure(command, None) from e
        with process:
            for line in process.stdout:
                logger.info(line.rstrip())
        if process.returncode != 0:
            raise EngineFailure(command, process.returncode)
