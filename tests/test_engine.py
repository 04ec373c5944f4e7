import sys

import pytest

from xtrabackup_scheduler.errors import EngineFailure
from xtrabackup_scheduler.xtrabackup.engine import COMPLETION_MARKER, XtraBackup


def test_merge_arguments(engine, tmp_path):
    engine.merge(tmp_path / 'base', log_only=True)
    engine.merge(tmp_path / 'base', log_only=True, incremental_dir=tmp_path / 'inc_1')
    engine.merge(tmp_path / 'base', log_only=False, incremental_dir=tmp_path / 'inc_2')

    assert engine.calls == [
        ['--prepare', '--apply-log-only', f'--target-dir={tmp_path / "base"}'],
        ['--prepare', '--apply-log-only', f'--target-dir={tmp_path / "base"}',
         f'--incremental-dir={tmp_path / "inc_1"}'],
        ['--prepare', f'--target-dir={tmp_path / "base"}',
         f'--incremental-dir={tmp_path / "inc_2"}'],
    ]


def test_failure_redacts_password(tmp_path):
    # python rejects --backup as unknown option and exits with 2
    engine = XtraBackup(user='root', password='hunter2', binary=sys.executable)

    with pytest.raises(EngineFailure) as e:
        engine.snapshot(tmp_path)

    assert e.value.exit_code == 2
    assert '--password=***' in str(e.value)
    assert 'hunter2' not in str(e.value)


def test_missing_binary(tmp_path):
    engine = XtraBackup(password='hunter2', binary=str(tmp_path / 'no-such-xtrabackup'))
    with pytest.raises(EngineFailure) as e:
        engine.merge(tmp_path, log_only=False)
    assert e.value.exit_code is None


def test_successful_run_streams_output():
    engine = XtraBackup(binary=sys.executable)
    engine._run(['-c', 'import sys; print("completed OK!"); sys.stderr.write("done\\n")'])


def test_completion_marker(tmp_path):
    assert not XtraBackup.is_complete(tmp_path)
    (tmp_path / COMPLETION_MARKER).write_text('to_lsn = 1\n')
    assert XtraBackup.is_complete(tmp_path)
