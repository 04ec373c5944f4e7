import io
import tarfile

import pytest

from xtrabackup_scheduler.errors import ArchiveFailure


def test_compress_and_extract(archiver, tmp_path):
    source = tmp_path / 'full_backup_20240101'
    (source / 'mysql').mkdir(parents=True)
    (source / 'ibdata1').write_bytes(b'\x00' * 1024)
    (source / 'mysql' / 'user.ibd').write_bytes(b'users')

    archive = archiver.compress(source, tmp_path / 'full_backup_20240101.tar.gz')
    with tarfile.open(archive) as tar:
        assert './ibdata1' in tar.getnames()

    target = tmp_path / 'base'
    target.mkdir()
    archiver.extract(archive, target)
    assert (target / 'ibdata1').read_bytes() == b'\x00' * 1024
    assert (target / 'mysql' / 'user.ibd').read_bytes() == b'users'


def test_extract_rejects_path_traversal(archiver, tmp_path):
    archive = tmp_path / 'evil.tar.gz'
    with tarfile.open(archive, 'w:gz') as tar:
        info = tarfile.TarInfo('../evil')
        info.size = 4
        tar.addfile(info, io.BytesIO(b'evil'))
    target = tmp_path / 'base'
    target.mkdir()

    with pytest.raises(ArchiveFailure):
        archiver.extract(archive, target)
    assert not (tmp_path / 'evil').exists()


def test_extract_corrupt_archive(archiver, tmp_path):
    archive = tmp_path / 'broken.tar.gz'
    archive.write_bytes(b'not a tar file')
    with pytest.raises(ArchiveFailure):
        archiver.extract(archive, tmp_path)
