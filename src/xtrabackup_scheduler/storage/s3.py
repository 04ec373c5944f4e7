from pathlib import Path
from typing import List, Optional

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from xtrabackup_scheduler.errors import StoreIOFailure
from xtrabackup_scheduler.storage.base import Storage, StoredObject
from xtrabackup_scheduler.utils.converters import redact_text


class S3Storage(Storage):
    """
    S3 backend. Works with any S3 compatible endpoint (e.g. Backblaze B2).
    """

    def __init__(self, s3_endpoint: Optional[str], s3_bucket: str, s3_access_key_id: str,
                 s3_secret_access_key: str, prefix: str = '', region: str = 'us-east-1',
                 proxy: Optional[str] = None):
        """
        :param s3_endpoint: endpoint url. https:// is added if no scheme is given.
        :param s3_bucket: bucket name
        :param s3_access_key_id:
        :param s3_secret_access_key:
        :param prefix: folder in the bucket. Leading and trailing slashes are ignored.
        :param region: default: us-east-1
        :param proxy: http(s) proxy url
        """
        if s3_endpoint and '://' not in s3_endpoint:
            s3_endpoint = f'https://{s3_endpoint}'
        self._s3_endpoint = s3_endpoint
        self._s3_bucket = s3_bucket
        self.prefix = prefix.strip('/')

        config = None
        if proxy:
            logger.info(f'Using proxy: {redact_text(proxy)}')
            config = Config(proxies={'http': proxy, 'https': proxy})

        self.s3 = boto3.client(
            's3',
            endpoint_url=self._s3_endpoint,
            region_name=region,
            aws_access_key_id=s3_access_key_id,
            aws_secret_access_key=s3_secret_access_key,
            config=config,
        )

    def _key(self, name: str) -> str:
        return f'{self.prefix}/{name}' if self.prefix else name

    def list_objects(self) -> List[StoredObject]:
        """
        Get all objects below the prefix. Follows the pagination of list_objects_v2.
        :return: list with existing objects.
        """
        params = {'Bucket': self._s3_bucket}
        if self.prefix:
            params['Prefix'] = f'{self.prefix}/'
        objects = []
        try:
            paginator = self.s3.get_paginator('list_objects_v2')
            for page in paginator.paginate(**params):
                for entry in page.get('Contents', []):
                    objects.append(StoredObject(
                        key=entry['Key'],
                        size=entry.get('Size', 0),
                        last_modified=entry.get('LastModified'),
                    ))
        except (BotoCoreError, ClientError) as e:
            raise StoreIOFailure(f'Error listing backups: {e}') from e
        return objects

    def download(self, key: str, destination: Path) -> Path:
        logger.info(f'Downloading {key} from S3...')
        try:
            self.s3.download_file(self._s3_bucket, key, str(destination))
        except (BotoCoreError, ClientError) as e:
            raise StoreIOFailure(f'Error downloading {key}: {e}') from e
        logger.info(f'Downloaded {key} to {destination}')
        return Path(destination)

    def upload(self, source: Path, name: str) -> str:
        key = self._key(name)
        logger.info(f'Uploading {source} to S3 with key: {key}')
        try:
            self.s3.upload_file(str(source), self._s3_bucket, key)
        except (BotoCoreError, ClientError, S3UploadFailedError) as e:
            raise StoreIOFailure(f'Error uploading {source}: {e}') from e
        logger.info(f'Upload of {source} as {key} completed.')
        return key

    def remove(self, key: str) -> None:
        try:
            self.s3.delete_object(Bucket=self._s3_bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StoreIOFailure(f'Error deleting {key}: {e}') from e
