"""
Optional ping of a health check service (e.g. healthchecks.io) after each backup.
"""
from typing import Optional

import requests
from loguru import logger

from xtrabackup_scheduler.errors import LivenessPingFailure


def ping_health_check(url: Optional[str], proxy: Optional[str] = None,
                      timeout: float = 10) -> bool:
    """
    GET the health check url.
    :param url: health check url. Nothing happens if empty.
    :param proxy: http(s) or socks5 proxy url
    :param timeout: seconds
    :return: True if pinged, False if no url is configured
    :raises LivenessPingFailure: if the service could not be reached
    """
    if not url:
        return False
    proxies = {'http': proxy, 'https': proxy} if proxy else None
    try:
        response = requests.get(url, timeout=timeout, proxies=proxies)
        response.raise_for_status()
    except requests.RequestException as e:
        raise LivenessPingFailure(f'Failed to ping healthcheck: {e}') from e
    logger.info('Successfully pinged healthcheck')
    return True
