"""
test_safe_io.py - 폴더 락 / 원자적 교체 테스트

DoD:
1. 락은 정상/예외 모두 해제
2. 살아있는 락 → LOCK_TIMEOUT, stale 락 → 정리 후 획득
3. 원자적 교체 실패 시 target 보존 + temp 삭제
"""

import json
import os
import threading
import time
from pathlib import Path
from unittest.mock import patch

import pytest

from src.core.safe_io import (
    atomic_replace,
    atomic_write_json,
    folder_lock,
    folder_locks,
    fsync_file,
    sibling_temp_path,
)
from src.domain.errors import ErrorCodes, PolicyRejectError

# =============================================================================
# folder_lock 테스트
# =============================================================================


class TestFolderLock:
    """folder_lock 컨텍스트 매니저 테스트."""

    def test_lock_acquired_and_released(self, tmp_path: Path):
        lock_dir = tmp_path / ".printprep.lock"

        with folder_lock(tmp_path) as acquired:
            assert acquired == lock_dir
            assert lock_dir.exists()
            meta = json.loads((lock_dir / "lock.meta").read_text(encoding="utf-8"))
            assert meta["pid"] == os.getpid()

        assert not lock_dir.exists()

    def test_lock_released_on_exception(self, tmp_path: Path):
        with pytest.raises(ValueError, match="boom"):
            with folder_lock(tmp_path):
                raise ValueError("boom")

        assert not (tmp_path / ".printprep.lock").exists()

    def test_live_lock_times_out(self, tmp_path: Path):
        """현재 프로세스가 잡은 락 → 대기 후 LOCK_TIMEOUT."""
        with folder_lock(tmp_path):
            with pytest.raises(PolicyRejectError) as exc_info:
                with folder_lock(tmp_path, retry_interval=0.01, max_retries=2):
                    pass

        assert exc_info.value.code == ErrorCodes.LOCK_TIMEOUT
        assert exc_info.value.context["attempts"] == 2

    def test_stale_lock_from_dead_process_is_cleaned(self, tmp_path: Path):
        """같은 호스트의 죽은 PID → stale → 정리 후 획득."""
        lock_dir = tmp_path / ".printprep.lock"
        lock_dir.mkdir()
        (lock_dir / "lock.meta").write_text("{}", encoding="utf-8")

        with patch("src.core.safe_io._read_lock_meta", return_value={
            "pid": 999999,
            "hostname": "this-host",
            "created_at": "2000-01-01T00:00:00+00:00",
        }), patch("src.core.safe_io._get_current_hostname", return_value="this-host"), \
             patch("src.core.safe_io._is_process_alive", return_value=False):
            with folder_lock(tmp_path, retry_interval=0.01, max_retries=2):
                pass

        assert not lock_dir.exists()

    def test_second_thread_waits(self, tmp_path: Path):
        """락을 잡은 스레드가 끝나면 대기 중인 스레드가 획득."""
        order: list[str] = []

        def holder():
            with folder_lock(tmp_path):
                order.append("first-in")
                time.sleep(0.2)
                order.append("first-out")

        thread = threading.Thread(target=holder)
        thread.start()
        time.sleep(0.05)

        with folder_lock(tmp_path, retry_interval=0.05, max_retries=20):
            order.append("second-in")

        thread.join()
        assert order == ["first-in", "first-out", "second-in"]

    def test_multiple_folders(self, tmp_path: Path):
        a = tmp_path / "a"
        b = tmp_path / "b"
        a.mkdir()
        b.mkdir()

        with folder_locks([b, a, a, tmp_path / "missing"]) as locks:
            assert len(locks) == 2
            assert (a / ".printprep.lock").exists()
            assert (b / ".printprep.lock").exists()

        assert not (a / ".printprep.lock").exists()
        assert not (b / ".printprep.lock").exists()


# =============================================================================
# atomic_replace 테스트
# =============================================================================


class TestAtomicReplace:
    """형제 임시 파일 → 원자적 교체."""

    def test_sibling_temp_keeps_extension(self, tmp_path: Path):
        temp = sibling_temp_path(tmp_path / "photo.jpg", ".printprep.tmp")
        assert temp == tmp_path / ".photo.printprep.tmp.jpg"

    def test_replace(self, tmp_path: Path):
        target = tmp_path / "photo.jpg"
        target.write_bytes(b"old")
        temp = sibling_temp_path(target, ".printprep.tmp")
        temp.write_bytes(b"new")

        atomic_replace(temp, target)

        assert target.read_bytes() == b"new"
        assert not temp.exists()

    def test_replace_failure_keeps_target(self, tmp_path: Path):
        target = tmp_path / "photo.jpg"
        target.write_bytes(b"old")
        temp = sibling_temp_path(target, ".printprep.tmp")
        temp.write_bytes(b"new")

        with patch("src.core.safe_io.os.replace", side_effect=OSError("disk error")):
            with pytest.raises(OSError, match="disk error"):
                atomic_replace(temp, target)

        assert target.read_bytes() == b"old"
        assert not temp.exists()

    def test_fsync_failure_is_warning(self, tmp_path: Path, caplog):
        path = tmp_path / "a.jpg"
        path.write_bytes(b"x")

        with patch("src.core.safe_io.os.fsync", side_effect=OSError("unsupported")):
            assert fsync_file(path) is False

        assert "fsync failed" in caplog.text


# =============================================================================
# atomic_write_json 테스트
# =============================================================================


class TestAtomicWriteJson:
    """원자적 JSON 쓰기."""

    def test_write(self, tmp_path: Path):
        path = tmp_path / "logs" / "run.json"

        atomic_write_json(path, {"name": "油画布", "n": 1})

        assert json.loads(path.read_text(encoding="utf-8")) == {"name": "油画布", "n": 1}

    def test_failure_keeps_existing_and_cleans_temp(self, tmp_path: Path):
        path = tmp_path / "run.json"
        path.write_text('{"old": true}', encoding="utf-8")

        with patch("src.core.safe_io.os.replace", side_effect=OSError("disk error")):
            with pytest.raises(OSError):
                atomic_write_json(path, {"new": True})

        assert json.loads(path.read_text(encoding="utf-8")) == {"old": True}
        assert list(tmp_path.glob("*.tmp")) == []
