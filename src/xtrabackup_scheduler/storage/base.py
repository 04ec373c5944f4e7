from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional


class StorageTarget(Enum):
    """
    Represents supported archive stores.
    """
    FILE = 'File'
    S3 = 'S3'


@dataclass(frozen=True)
class StoredObject:
    """
    One object as listed by a store.
    """
    key: str
    size: int
    last_modified: Optional[datetime]


class Storage(ABC):
    """
    ABC for archive store implementations.
    Implements how to list, download, upload and delete backup archives.
    """

    @abstractmethod
    def list_objects(self) -> List[StoredObject]:
        """
        Returns every object below the configured prefix. No page limit.
        """
        pass

    @abstractmethod
    def download(self, key: str, destination: Path) -> Path:
        """
        Download the object key to the local file destination.
        :return: destination
        """
        pass

    @abstractmethod
    def upload(self, source: Path, name: str) -> str:
        """
        Upload a local file. The object must only become visible once complete.
        :param source: local archive
        :param name: file name below the prefix
        :return: storage key
        """
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        """
        Removes the object.
        :param key: storage key as returned by list_objects
        """
        pass
