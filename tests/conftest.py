"""
Shared fixtures: a recording xtrabackup and an in memory archive store.
"""
import io
import tarfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

from xtrabackup_scheduler.errors import EngineFailure, StoreIOFailure
from xtrabackup_scheduler.storage.base import Storage, StoredObject
from xtrabackup_scheduler.xtrabackup.archiver import Archiver
from xtrabackup_scheduler.xtrabackup.engine import COMPLETION_MARKER, XtraBackup


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class RecordingXtraBackup(XtraBackup):
    """
    Records the command lines instead of running xtrabackup.
    --backup writes a small backup with the completion marker.
    """

    def __init__(self, *args, fail_on: Optional[str] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls: List[List[str]] = []
        self.fail_on = fail_on

    def _run(self, args: List[str]):
        self.calls.append(list(args))
        if self.fail_on and any(self.fail_on in x for x in args):
            raise EngineFailure(f'{self.binary} {" ".join(args)}', 1)
        if '--backup' in args:
            target = Path(_arg_value(args, '--target-dir='))
            target.mkdir(parents=True, exist_ok=True)
            (target / 'ibdata1').write_bytes(b'data')
            (target / COMPLETION_MARKER).write_text('backup_type = full-backuped\n')

    @property
    def merges(self) -> List[List[str]]:
        return [x for x in self.calls if '--prepare' in x]

    @property
    def snapshots(self) -> List[List[str]]:
        return [x for x in self.calls if '--backup' in x]


def _arg_value(args: List[str], prefix: str) -> str:
    return next(x for x in args if x.startswith(prefix))[len(prefix):]


class MemoryStorage(Storage):
    """
    Archive store backed by a dict.
    fail_on names an operation (list or upload) that raises StoreIOFailure.
    """

    def __init__(self):
        self.objects: Dict[str, Tuple[bytes, Optional[datetime]]] = {}
        self.removed: List[str] = []
        self.fail_on: Optional[str] = None

    def put(self, key: str, data: bytes = b'', last_modified: Optional[datetime] = None):
        self.objects[key] = (data, last_modified)

    def list_objects(self) -> List[StoredObject]:
        if self.fail_on == 'list':
            raise StoreIOFailure('Error listing objects: unreachable')
        return [StoredObject(key, len(data), last_modified)
                for key, (data, last_modified) in self.objects.items()]

    def download(self, key: str, destination: Path) -> Path:
        if key not in self.objects:
            raise StoreIOFailure(f'Error downloading {key}: not found')
        Path(destination).write_bytes(self.objects[key][0])
        return Path(destination)

    def upload(self, source: Path, name: str) -> str:
        if self.fail_on == 'upload':
            raise StoreIOFailure(f'Error uploading {name}: unreachable')
        self.put(name, Path(source).read_bytes(), datetime.now(timezone.utc))
        return name

    def remove(self, key: str) -> None:
        del self.objects[key]
        self.removed.append(key)


def make_archive(files: Dict[str, bytes]) -> bytes:
    """
    tar.gz with the given files below ./
    """
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode='w:gz') as tar:
        for name, data in files.items():
            info = tarfile.TarInfo(f'./{name}')
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


@pytest.fixture
def engine() -> RecordingXtraBackup:
    return RecordingXtraBackup(user='root', password='hunter2')


@pytest.fixture
def archiver() -> Archiver:
    return Archiver(compresslevel=1)


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()
