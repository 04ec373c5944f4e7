from datetime import timedelta

import pytest

import xtrabackup_scheduler.scheduler as scheduler_module
from conftest import RecordingXtraBackup, utc
from xtrabackup_scheduler.chain import load_catalog, resolve_chain
from xtrabackup_scheduler.errors import ArchiveFailure, EngineFailure, StoreIOFailure
from xtrabackup_scheduler.scheduler import Scheduler, SchedulerState
from xtrabackup_scheduler.storage.base import StorageTarget
from xtrabackup_scheduler.utils.config import Config, StorageConfig
from xtrabackup_scheduler.xtrabackup.archiver import Archiver
from xtrabackup_scheduler.xtrabackup.engine import COMPLETION_MARKER

MORNING = utc(2024, 1, 1, 0, 5)
NOON = utc(2024, 1, 1, 12, 0, 30)


class FailingArchiver(Archiver):
    def __init__(self):
        super().__init__(compresslevel=1)
        self.fail = True

    def compress(self, source_dir, archive_path):
        if self.fail:
            raise ArchiveFailure(f'Error creating {archive_path}')
        return super().compress(source_dir, archive_path)


@pytest.fixture
def pings(monkeypatch):
    calls = []
    monkeypatch.setattr(scheduler_module, 'ping_health_check',
                        lambda url, proxy: calls.append((url, proxy)) or True)
    return calls


@pytest.fixture
def config(tmp_path):
    return Config(
        storage=StorageConfig(target=StorageTarget.FILE, dir=tmp_path / 'store'),
        work_dir=tmp_path / 'work',
        health_check_url='https://hc-ping.com/abc',
    )


@pytest.fixture
def scheduler(config, storage, engine, archiver, pings):
    return Scheduler(config, storage, engine, archiver)


def test_first_tick_creates_full_backup(scheduler, storage, engine, config, pings):
    assert scheduler.probe(MORNING)[0] is SchedulerState.NO_BASE_TODAY

    result = scheduler.tick(MORNING)

    assert result.ok
    base = config.work_dir / 'full_backup_20240101'
    assert engine.snapshots == [[
        '--backup', '--user=root', '--password=hunter2', '--host=localhost', '--port=3306',
        f'--target-dir={base}', '--no-lock',
    ]]
    assert list(storage.objects) == ['full_backup_20240101.tar.gz']
    # the base stays, the archive is gone
    assert sorted(x.name for x in config.work_dir.iterdir()) == ['full_backup_20240101']
    assert scheduler.probe(NOON) == (SchedulerState.BASE_EXISTS, base)
    assert pings == [('https://hc-ping.com/abc', None)]


def test_following_tick_creates_incremental_backup(scheduler, storage, engine, config):
    scheduler.tick(MORNING)
    base = config.work_dir / 'full_backup_20240101'
    marker = (base / COMPLETION_MARKER).read_text()

    result = scheduler.tick(NOON)

    assert result.ok
    assert engine.snapshots[-1] == [
        '--backup', '--user=root', '--password=hunter2', '--host=localhost', '--port=3306',
        f'--target-dir={config.work_dir / "inc_backup_20240101120030"}',
        f'--incremental-basedir={base}', '--no-lock',
    ]
    assert sorted(storage.objects) == ['full_backup_20240101.tar.gz',
                                       'inc_backup_20240101120030.tar.gz']
    assert sorted(x.name for x in config.work_dir.iterdir()) == ['full_backup_20240101']
    assert (base / COMPLETION_MARKER).read_text() == marker


def test_new_day_starts_a_new_full_backup(scheduler, storage, config):
    scheduler.tick(MORNING)
    scheduler.tick(MORNING + timedelta(days=1))

    assert sorted(storage.objects) == ['full_backup_20240101.tar.gz',
                                       'full_backup_20240102.tar.gz']
    assert sorted(x.name for x in config.work_dir.iterdir()) == ['full_backup_20240102']


def test_unfinished_full_backup_is_redone(scheduler, engine, config):
    base = config.work_dir / 'full_backup_20240101'
    base.mkdir(parents=True)
    (base / 'ibdata1').write_bytes(b'partial')

    assert scheduler.probe(NOON)[0] is SchedulerState.NO_BASE_TODAY
    assert scheduler.tick(NOON).ok
    assert len(engine.snapshots) == 1
    assert '--incremental-basedir' not in ' '.join(engine.snapshots[0])
    assert (base / COMPLETION_MARKER).is_file()


def test_failed_backup_skips_housekeeping(config, storage, archiver, pings):
    engine = RecordingXtraBackup(password='hunter2', fail_on='--backup')
    storage.put('full_backup_20230101.tar.gz', last_modified=utc(2023, 1, 1))
    scheduler = Scheduler(config, storage, engine, archiver)

    result = scheduler.tick(MORNING)

    assert not result.ok
    assert isinstance(result.error, EngineFailure)
    assert result.failed_stage.name == 'full snapshot'
    assert [x.name for x in result.stages] == ['prepare working directory', 'full snapshot']
    assert list(storage.objects) == ['full_backup_20230101.tar.gz']
    assert pings == []
    # left for diagnosis
    assert (config.work_dir / 'full_backup_20240101').is_dir()


def test_retention_runs_after_backup(scheduler, storage):
    storage.put('full_backup_20231101.tar.gz', last_modified=utc(2023, 11, 1))
    storage.put('inc_backup_20231215060000.tar.gz', last_modified=utc(2023, 12, 15))

    result = scheduler.tick(MORNING)

    assert result.ok
    assert storage.removed == ['full_backup_20231101.tar.gz']
    assert 'inc_backup_20231215060000.tar.gz' in storage.objects


def test_failed_ping_does_not_fail_the_tick(config, storage, engine, archiver, monkeypatch):
    import requests

    def fail(*args, **kwargs):
        raise requests.ConnectionError('unreachable')

    monkeypatch.setattr(requests, 'get', fail)
    result = Scheduler(config, storage, engine, archiver).tick(MORNING)
    assert result.ok
    assert result.stages[-1].name == 'liveness ping'


def test_failed_upload_is_followed_by_a_full_backup(scheduler, storage, engine, config, pings):
    storage.fail_on = 'upload'
    result = scheduler.tick(MORNING)
    assert not result.ok
    assert result.failed_stage.name == 'upload'
    assert isinstance(result.error, StoreIOFailure)
    assert storage.objects == {}
    assert pings == []

    # the snapshot on disk is complete, but nothing was stored
    storage.fail_on = None
    base = config.work_dir / 'full_backup_20240101'
    assert (base / COMPLETION_MARKER).is_file()
    assert scheduler.probe(NOON)[0] is SchedulerState.NO_BASE_TODAY

    assert scheduler.tick(NOON).ok
    assert len(engine.snapshots) == 2
    assert '--incremental-basedir' not in ' '.join(engine.snapshots[1])
    assert list(storage.objects) == ['full_backup_20240101.tar.gz']
    assert sorted(x.name for x in config.work_dir.iterdir()) == ['full_backup_20240101']

    assert scheduler.tick(NOON + timedelta(hours=1)).ok
    catalog = load_catalog(storage)
    chain = resolve_chain(catalog, catalog.find('inc_backup_20240101130030.tar.gz'))
    assert [x.key for x in chain] == ['full_backup_20240101.tar.gz',
                                      'inc_backup_20240101130030.tar.gz']


def test_failed_compress_is_followed_by_a_full_backup(config, storage, engine, pings):
    archiver = FailingArchiver()
    scheduler = Scheduler(config, storage, engine, archiver)

    result = scheduler.tick(MORNING)
    assert not result.ok
    assert result.failed_stage.name == 'compress'
    assert isinstance(result.error, ArchiveFailure)
    assert scheduler.probe(NOON)[0] is SchedulerState.NO_BASE_TODAY

    archiver.fail = False
    assert scheduler.tick(NOON).ok
    assert len(engine.snapshots) == 2
    assert '--incremental-basedir' not in ' '.join(engine.snapshots[1])
    assert list(storage.objects) == ['full_backup_20240101.tar.gz']


def test_failed_incremental_keeps_the_base(scheduler, storage, engine, config):
    scheduler.tick(MORNING)
    engine.fail_on = '--incremental-basedir'

    result = scheduler.tick(NOON)

    assert not result.ok
    assert result.failed_stage.name == 'incremental snapshot'
    assert list(storage.objects) == ['full_backup_20240101.tar.gz']
    assert (config.work_dir / 'inc_backup_20240101120030').is_dir()

    engine.fail_on = None
    assert scheduler.probe(NOON + timedelta(hours=1))[0] is SchedulerState.BASE_EXISTS
    assert scheduler.tick(MORNING + timedelta(days=1)).ok
    # leftovers of the failed incremental backup are gone with the old base
    assert sorted(x.name for x in config.work_dir.iterdir()) == ['full_backup_20240102']


def test_unreachable_store_fails_the_tick(scheduler, storage, engine):
    scheduler.tick(MORNING)
    storage.fail_on = 'list'

    result = scheduler.tick(NOON)

    assert not result.ok
    assert result.failed_stage.name == 'probe'
    assert isinstance(result.error, StoreIOFailure)
    assert len(engine.snapshots) == 1
