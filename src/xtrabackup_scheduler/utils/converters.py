"""
helpers for converting values from one format to a different one
"""
import re
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Iterable, List

from xtrabackup_scheduler.errors import MalformedKey

ARCHIVE_EXTENSION = 'tar.gz'
FULL_PREFIX = 'full_backup_'
INCREMENTAL_PREFIX = 'inc_backup_'
DATE_FORMAT = '%Y%m%d'
DATETIME_FORMAT = '%Y%m%d%H%M%S'

_PASSWORD_ARG = re.compile(r'--password=\S+')
_URL_CREDENTIALS = re.compile(r'://[^/@\s]+@')


def parse_timestamp(timestamp: str, fmt: str = DATETIME_FORMAT) -> datetime:
    """
    Convert the given timestamp string to an UTC datetime object.
    :param timestamp: timestamp to parse
    :param fmt: DATE_FORMAT or DATETIME_FORMAT
    :return: parsed timestamp
    """
    return datetime.strptime(timestamp, fmt).replace(tzinfo=timezone.utc)


def format_date(timestamp: datetime) -> str:
    """
    Day part of the given datetime in UTC. YYYYMMDD
    """
    return _as_utc(timestamp).strftime(DATE_FORMAT)


def format_timestamp(timestamp: datetime) -> str:
    """
    Convert the given datetime object to the second granularity string.
    :param timestamp: datetime object
    :return: formatted time. YYYYMMDDHHmmss
    """
    return _as_utc(timestamp).strftime(DATETIME_FORMAT)


def _as_utc(timestamp: datetime) -> datetime:
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc)


def full_backup_name(timestamp: datetime) -> str:
    """
    Name of the full backup (directory) for the day of timestamp.
    """
    return f'{FULL_PREFIX}{format_date(timestamp)}'


def incremental_backup_name(timestamp: datetime) -> str:
    """
    Name of the incremental backup (directory) taken at timestamp.
    """
    return f'{INCREMENTAL_PREFIX}{format_timestamp(timestamp)}'


def parse_file_name(key: str, file_type: str = ARCHIVE_EXTENSION) -> dict:
    """
    Parse the given storage key. Only the base name is looked at.
    full_backup_YYYYMMDD.tar.gz or inc_backup_YYYYMMDDHHmmss.tar.gz
    :param key: storage key or file name
    :param file_type: archive extension
    :return: Dictionary with keys: backup_type ('full' or 'inc'), timestamp, name
    """
    name = PurePosixPath(str(key)).name
    match = re.fullmatch(
        rf'(?:{FULL_PREFIX}(\d{{8}})|{INCREMENTAL_PREFIX}(\d{{14}})){re.escape("." + file_type)}',
        name
    )
    if not match:
        raise MalformedKey(str(key))
    try:
        if match.group(1):
            backup_type = 'full'
            timestamp = parse_timestamp(match.group(1), DATE_FORMAT)
        else:
            backup_type = 'inc'
            timestamp = parse_timestamp(match.group(2), DATETIME_FORMAT)
    except ValueError:
        # 20241399 and friends
        raise MalformedKey(str(key))
    return {
        'backup_type': backup_type,
        'timestamp': timestamp,
        'name': name,
    }


def format_bytes(size: int) -> str:
    """
    Human readable size. 1536 -> 1.5 KB
    """
    sizes = ['B', 'KB', 'MB', 'GB', 'TB']
    value = float(size or 0)
    i = 0
    while value >= 1024 and i < len(sizes) - 1:
        value /= 1024
        i += 1
    return f'{round(value, 2):g} {sizes[i]}'


def redact_text(text: str) -> str:
    """
    Mask password arguments and credentials embedded in URLs.
    """
    text = _PASSWORD_ARG.sub('--password=***', text)
    return _URL_CREDENTIALS.sub('://***@', text)


def redact_arguments(args: Iterable[str]) -> List[str]:
    """
    Mask the value of every --password= argument.
    """
    return ['--password=***' if arg.startswith('--password=') else arg for arg in args]
