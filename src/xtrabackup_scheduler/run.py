"""
Creates MySQL backups with XtraBackup, stores them in S3 and restores them.
"""
import sys
import time
from pathlib import Path
from typing import List, Optional

import click
from dynaconf import Dynaconf
from loguru import logger

from xtrabackup_scheduler.chain import Catalog, Chain, load_catalog, resolve_chain
from xtrabackup_scheduler.errors import BackupError, MissingBaseBackup
from xtrabackup_scheduler.restore import RestorePipeline, copy_back, default_restore_root
from xtrabackup_scheduler.scheduler import Scheduler
from xtrabackup_scheduler.storage.base import Storage, StorageTarget
from xtrabackup_scheduler.storage.disk import DiskStorage
from xtrabackup_scheduler.storage.s3 import S3Storage
from xtrabackup_scheduler.utils.config import Config, load_config, parse_config
from xtrabackup_scheduler.utils.converters import format_bytes
from xtrabackup_scheduler.utils.datatypes import Backup, BackupKind
from xtrabackup_scheduler.utils.logging import setup_logging
from xtrabackup_scheduler.xtrabackup.archiver import Archiver
from xtrabackup_scheduler.xtrabackup.engine import XtraBackup


class CtxArgs:
    """
    Cache object for arguments between click group and commands.
    """

    def __init__(self, config_folder: Path, settings: Dynaconf):
        self.config_folder = Path(config_folder)
        self.settings = settings

    def config(self, require_database: bool = True) -> Config:
        """
        Build the config. Exits on missing or invalid settings.
        """
        try:
            return load_config(self.settings, require_database=require_database)
        except (BackupError, ValueError) as e:
            logger.critical(f'Invalid configuration: {e}')
            sys.exit(1)


def build_storage(config: Config) -> Storage:
    """
    Archive store for the configured target.
    """
    match config.storage.target:
        case StorageTarget.FILE:
            return DiskStorage(config.storage.dir)
        case StorageTarget.S3:
            return S3Storage(
                config.storage.endpoint,
                config.storage.bucket,
                config.storage.access_key_id,
                config.storage.secret_access_key,
                prefix=config.storage.prefix,
                region=config.storage.region,
                proxy=config.proxy,
            )
        case _:
            raise ValueError(f'Invalid backup target: {config.storage.target}')


def build_engine(config: Config) -> XtraBackup:
    if not config.database:
        return XtraBackup(binary=config.xtrabackup)
    return XtraBackup(
        host=config.database.host,
        port=config.database.port,
        user=config.database.user,
        password=config.database.password,
        binary=config.xtrabackup,
    )


def open_storage(config: Config) -> Storage:
    """
    build_storage, exits if the store cannot be set up.
    """
    try:
        return build_storage(config)
    except ValueError as e:
        logger.critical(f'Could not set up the archive store: {e}')
        sys.exit(1)


def build_scheduler(config: Config) -> Scheduler:
    return Scheduler(config, open_storage(config), build_engine(config), Archiver())


def print_backups(backups: List[Backup]):
    line = '─' * 80
    click.echo(line)
    click.echo('No. | Type        | Date & Time          | Size      | Filename')
    click.echo(line)
    for i, backup in enumerate(backups, start=1):
        backup_type = 'Incremental' if backup.kind is BackupKind.INCREMENTAL else 'Full       '
        click.echo(f'{i:>3} | {backup_type} | {backup.timestamp_str:<20} | '
                   f'{format_bytes(backup.size):<9} | {backup.file_name}')
    click.echo(line)


def print_chain(chain: Chain):
    click.secho('\nBackups required for restore:', fg='green')
    for i, backup in enumerate(chain, start=1):
        click.echo(f'  {i}. {backup.file_name} ({format_bytes(backup.size)})')
    click.echo(f'  Total: {format_bytes(chain.size)}')


def print_copy_back_help(base_dir: Path, config_folder: Path):
    click.secho('\nIMPORTANT: The restored data is saved in the above directory.\n'
                '   This directory will NOT be automatically deleted.\n', fg='yellow')
    click.echo('To restore this backup to MySQL:\n'
               '1. Stop MySQL server\n'
               '2. Back up your current data directory (just in case)\n'
               '3. Empty your MySQL data directory\n'
               f'4. Run: xtrabackup-scheduler -c {config_folder} copy-back {base_dir} '
               '--datadir /var/lib/mysql\n'
               '   (or: xtrabackup --copy-back --datadir=/var/lib/mysql '
               f'--target-dir={base_dir})\n'
               '5. Fix ownership: chown -R mysql:mysql /var/lib/mysql\n'
               '6. Start MySQL server')


def select_backup(catalog: Catalog, limit: int, key: Optional[str]) -> Optional[Backup]:
    """
    Select by key or ask the user. None if the user quits.
    Exits on an invalid selection.
    """
    if key:
        backup = catalog.find(key)
        if not backup:
            click.secho(f'No match for {key}! Check the name!', file=sys.stderr,
                        fg='red', bold=True)
            sys.exit(1)
        return backup

    backups = catalog.recent(limit)
    click.secho('\nAvailable backups (most recent first):', fg='green', bold=True)
    print_backups(backups)
    selection = click.prompt("\nEnter backup number to restore (or 'q' to quit)",
                             default='', show_default=False).strip()
    if selection.lower() == 'q':
        return None
    if not selection.isdigit() or not 1 <= int(selection) <= len(backups):
        click.secho('Invalid selection.', file=sys.stderr, fg='red')
        sys.exit(1)
    return backups[int(selection) - 1]


@click.group()
@click.option(
    '-c',
    '--config-folder',
    help='Folder where the config files are stored. /etc/xtrabackup-scheduler by default.'
         ' Make sure that the user has read and write access to the folder.',
    default='/etc/xtrabackup-scheduler',
)
@click.pass_context
@click.version_option()
def main(ctx, config_folder):
    """
    Create and restore incremental MySQL backups with XtraBackup.
    """
    try:
        settings = parse_config(Path(config_folder))
        log_dir = settings('logging.dir', default=None)
        setup_logging(Path(log_dir) if log_dir else None,
                      settings('logging.level', default='INFO'))
    except Exception as e:
        logger.exception(f'Error during config parsing! {e}')
        sys.exit(1)
    ctx.obj = CtxArgs(config_folder, settings)


@main.command('backup')
@click.pass_context
def backup_command(ctx):
    """
    Perform one backup.
    A full backup if today has none yet, an incremental backup otherwise.
    """
    args: CtxArgs = ctx.obj
    scheduler = build_scheduler(args.config())
    result = scheduler.tick()
    if not result.ok:
        logger.critical(f'Backup failed! {result.error}')
        sys.exit(1)


@main.command('schedule')
@click.pass_context
def schedule_command(ctx):
    """
    Perform a backup every backup.interval seconds.
    Exits with 1 on the first failed backup. Restarting is left to the supervisor.
    """
    args: CtxArgs = ctx.obj
    config = args.config()
    scheduler = build_scheduler(config)
    logger.info(f'Using backup directory: {config.work_dir}')
    while True:
        result = scheduler.tick()
        if not result.ok:
            logger.critical(f'Backup failed! {result.error}')
            sys.exit(1)
        logger.info(f'Sleeping for {config.interval} seconds...')
        time.sleep(config.interval)


@main.command('list')
@click.pass_context
def list_command(ctx):
    """
    List the most recent backups.
    """
    args: CtxArgs = ctx.obj
    config = args.config(require_database=False)
    try:
        catalog = load_catalog(open_storage(config))
    except BackupError as e:
        logger.critical(f'Could not load backups: {e}')
        sys.exit(1)
    if len(catalog) == 0:
        click.secho('None! You have to create a backup first...', fg='red',
                    file=sys.stderr)
        sys.exit(1)
    click.secho('Listing backups (most recent first):', fg='green', bold=True)
    print_backups(catalog.recent(config.list_limit))


@main.command('restore')
@click.option('-k', '--key', default=None,
              help='File name or key of the backup to restore. Skips the selection.')
@click.option('-y', '--yes', is_flag=True, default=False,
              help='Do not ask for confirmation.')
@click.pass_context
def restore_command(ctx, key, yes):
    """
    Download a backup and its chain and prepare it in a local directory.
    The prepared directory has to be copied into the data dir afterwards (copy-back).
    """
    args: CtxArgs = ctx.obj
    config = args.config(require_database=False)
    storage = open_storage(config)

    logger.info('Fetching backup list...')
    try:
        catalog = load_catalog(storage)
    except BackupError as e:
        logger.critical(f'Restore failed! {e}')
        sys.exit(1)
    if len(catalog) == 0:
        logger.info('No backups found.')
        return

    backup = select_backup(catalog, config.list_limit, key)
    if not backup:
        logger.info('Restore cancelled.')
        return
    logger.info(f'Selected: {backup.file_name}')

    try:
        chain = resolve_chain(catalog, backup)
    except MissingBaseBackup as e:
        logger.critical(f'Restore failed! {e}')
        sys.exit(1)
    print_chain(chain)

    if not yes:
        proceed = click.prompt('\nProceed with restore? (yes/no)', default='no')
        if proceed.strip().lower() != 'yes':
            logger.info('Restore cancelled.')
            return

    restore_root = config.restore_dir or default_restore_root()
    result = RestorePipeline(storage, build_engine(config), Archiver(), restore_root).run(chain)
    if not result.ok:
        logger.critical(f'Restore failed! {result.error}')
        logger.info(f'Partial restore left in {restore_root}')
        sys.exit(1)
    print_copy_back_help(result.output, args.config_folder)


@main.command('copy-back')
@click.argument('base_dir', type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option('--datadir', required=True, type=click.Path(path_type=Path),
              help='Empty data directory of the stopped MySQL server.')
@click.option('-y', '--yes', is_flag=True, default=False,
              help='Do not ask for confirmation.')
@click.pass_context
def copy_back_command(ctx, base_dir, datadir, yes):
    """
    Copy a restored and prepared directory into the MySQL data directory.
    """
    args: CtxArgs = ctx.obj
    if not yes:
        proceed = click.prompt(f'Copy {base_dir} into {datadir}? (yes/no)', default='no')
        if proceed.strip().lower() != 'yes':
            logger.info('Copy back cancelled.')
            return
    engine = XtraBackup(binary=args.settings('backup.xtrabackup', default='xtrabackup'))
    result = copy_back(engine, base_dir, datadir)
    if not result.ok:
        logger.critical(f'Copy back failed! {result.error}')
        sys.exit(1)
    click.secho(f'Copied {base_dir} to {datadir}. Fix the ownership before starting MySQL.',
                fg='green')


if __name__ == '__main__':
    main()
