import os
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from xtrabackup_scheduler.utils.converters import redact_text


def redact_record(record):
    """
    loguru patcher. Runs before any sink.
    """
    record['message'] = redact_text(record['message'])


def setup_logging(log_dir: Optional[Path], log_level: str):
    logger.configure(patcher=redact_record)
    logger.remove()
    logger.add(sys.stderr,
               format='{time:YYYY-MM-DD HH:mm:ss.SSS!UTC} UTC | {level} | {message}',
               level=log_level)
    if not log_dir:
        return
    if not os.path.isdir(log_dir):
        os.makedirs(log_dir, exist_ok=True)
    format_string = '{time:HH:mm:ss} | {level} | {message}'
    # diagnose is off: it would print local variables such as the password
    logger.add(Path(log_dir) / 'xtrabackup-scheduler.log',
               format=format_string,
               rotation='00:00',
               retention='14 days',
               level=log_level,
               backtrace=True,
               diagnose=False)
