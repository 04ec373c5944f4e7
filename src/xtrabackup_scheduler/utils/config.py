"""
config handling for dynaconf
"""
import logging
import os
import sys
import tempfile
from dataclasses import dataclass
from datetime import timedelta
from importlib.resources import files
from pathlib import Path
from typing import Optional

from dynaconf import Dynaconf, Validator

from xtrabackup_scheduler.errors import ConfigMissing
from xtrabackup_scheduler.storage.base import StorageTarget

DEFAULT_MYSQL_PORT = 3306


@dataclass(frozen=True)
class DatabaseConfig:
    host: str
    port: int
    user: str
    password: str


@dataclass(frozen=True)
class StorageConfig:
    target: StorageTarget
    dir: Optional[Path] = None
    endpoint: Optional[str] = None
    bucket: Optional[str] = None
    prefix: str = ''
    region: str = 'us-east-1'
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None


@dataclass(frozen=True)
class Config:
    """
    Settings of one run. Built once and handed to every component.
    """
    storage: StorageConfig
    work_dir: Path
    database: Optional[DatabaseConfig] = None
    interval: int = 3600
    retention_days: int = 30
    strict_retention: bool = False
    xtrabackup: str = 'xtrabackup'
    restore_dir: Optional[Path] = None
    list_limit: int = 20
    health_check_url: Optional[str] = None
    proxy: Optional[str] = None

    @property
    def retention(self) -> timedelta:
        return timedelta(days=self.retention_days)


def parse_config(config_folder: Path) -> Dynaconf:
    """
    Parse config with dynaconf.
    default.toml is created from the package defaults if missing.
    :return: Dynaconf
    """
    default_config = config_folder / 'default.toml'
    if not os.path.isfile(default_config):
        try:
            config_folder.mkdir(parents=True, exist_ok=True)
            with open(default_config, 'w', encoding='utf-8') as f:
                f.write(files('xtrabackup_scheduler.data').joinpath('default.toml').read_text())
        except Exception as e:
            logging.critical(f'Failed to create default config {default_config}. '
                             'Consider creating the folder writeable for this user '
                             f'or choose a different path. Error: {e}')
            sys.exit(1)

    settings = Dynaconf(
        envvar_prefix='XB_BACKUP',
        settings_files=['default.toml', 'config.toml'],
        root_path=str(config_folder),
        merge_enabled=True,
        validators=[
            Validator('database.port', cast=int, default=DEFAULT_MYSQL_PORT),
            Validator('backup.target', must_exist=True, cast=StorageTarget),
            Validator('backup.interval', cast=int, default=3600),
            Validator('backup.retention_days', cast=int, default=30),
            Validator('backup.strict_retention', cast=bool, default=False),
            Validator('restore.list_limit', cast=int, default=20),
        ]
    )
    return settings


def _required(settings: Dynaconf, key: str):
    value = settings(key, default=None)
    if value is None or value == '':
        raise ConfigMissing(key)
    return value


def parse_host(host: str, port: int = DEFAULT_MYSQL_PORT) -> tuple:
    """
    Split host:port. The port in the host wins over the given one.
    :return: 2-Tuple[host, port]
    """
    if ':' in host:
        host, port = host.rsplit(':', 1)
    return host, int(port)


def load_config(settings: Dynaconf, require_database: bool = True) -> Config:
    """
    Build the Config from the parsed settings.
    :param settings: dynaconf settings
    :param require_database: restores do not need database credentials
    :raises ConfigMissing: if a required setting is absent
    """
    database = None
    if require_database:
        host, port = parse_host(
            str(_required(settings, 'database.host')),
            settings('database.port', cast=int, default=DEFAULT_MYSQL_PORT)
        )
        database = DatabaseConfig(
            host=host,
            port=port,
            user=str(_required(settings, 'database.user')),
            password=str(_required(settings, 'database.password')),
        )

    target = StorageTarget(_required(settings, 'backup.target'))
    match target:
        case StorageTarget.FILE:
            storage = StorageConfig(target=target,
                                    dir=Path(_required(settings, 'backup.dir')))
        case StorageTarget.S3:
            storage = StorageConfig(
                target=target,
                endpoint=str(_required(settings, 'backup.s3.endpoint')),
                bucket=str(_required(settings, 'backup.s3.bucket')),
                prefix=settings('backup.s3.prefix', default='') or '',
                region=settings('backup.s3.region', default='us-east-1'),
                access_key_id=str(_required(settings, 'backup.s3.access_key_id')),
                secret_access_key=str(_required(settings, 'backup.s3.secret_access_key')),
            )
        case _:
            raise ValueError(f'Invalid backup target: {target}')

    work_dir = settings('backup.work_dir', default=None)
    restore_dir = settings('restore.dir', default=None)
    return Config(
        storage=storage,
        database=database,
        work_dir=(Path(work_dir) if work_dir
                  else Path(tempfile.gettempdir()) / 'xtrabackup-scheduler'),
        interval=settings('backup.interval', cast=int, default=3600),
        retention_days=settings('backup.retention_days', cast=int, default=30),
        strict_retention=settings('backup.strict_retention', cast=bool, default=False),
        xtrabackup=settings('backup.xtrabackup', default='xtrabackup') or 'xtrabackup',
        restore_dir=Path(restore_dir) if restore_dir else None,
        list_limit=settings('restore.list_limit', cast=int, default=20),
        health_check_url=settings('health_check.url', default=None) or None,
        proxy=settings('proxy.url', default=None) or None,
    )
