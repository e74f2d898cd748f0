"""
파일시스템 안전 장치: 폴더 락, 원자적 쓰기/교체

규칙:
- 같은 폴더에 대해 두 배치가 동시에 rename/copy/delete 하지 않음 (폴더 락)
- 원자적 교체: 형제 임시 파일에 먼저 쓰고 rename으로 덮어쓰기
  → 실패해도 정규 경로에 손상된 파일이 남지 않음
- fsync 실패는 경고만 남기고 계속 진행

파일시스템 안정성 (best-effort):
- 락 해제 실패 시 warning 로그 남김
- stale lock 감지: PID/hostname 메타 + TTL 기반 정리
"""

import json
import logging
import os
import socket
import tempfile
import time
from collections.abc import Generator
from contextlib import ExitStack, contextmanager
from datetime import UTC, datetime
from pathlib import Path

from src.domain.constants import BATCH_LOCK_DIRNAME
from src.domain.errors import ErrorCodes, PolicyRejectError

logger = logging.getLogger(__name__)

# Stale lock threshold (seconds) - 1 hour
STALE_LOCK_THRESHOLD_SECONDS = 3600

# Lock metadata filename
LOCK_META_FILENAME = "lock.meta"

# =============================================================================
# Lock Management
# =============================================================================


def _get_current_hostname() -> str:
    """현재 호스트명 반환 (실패 시 'unknown')."""
    try:
        return socket.gethostname()
    except OSError:
        return "unknown"


def _write_lock_meta(lock_dir: Path) -> None:
    """
    락 메타정보 파일 생성.

    메타 내용: PID, hostname, created_at
    """
    meta_path = lock_dir / LOCK_META_FILENAME
    meta = {
        "pid": os.getpid(),
        "hostname": _get_current_hostname(),
        "created_at": datetime.now(UTC).isoformat(),
    }
    try:
        meta_path.write_text(json.dumps(meta), encoding="utf-8")
    except OSError as e:
        logger.warning(f"Failed to write lock meta {meta_path}: {e}")


def _read_lock_meta(lock_dir: Path) -> dict | None:
    """락 메타정보 읽기 (없거나 파싱 실패 시 None)."""
    meta_path = lock_dir / LOCK_META_FILENAME
    try:
        return json.loads(meta_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return None


def _is_process_alive(pid: int) -> bool:
    """PID가 살아있는지 확인 (동일 호스트에서만 유효)."""
    try:
        os.kill(pid, 0)  # signal 0 = 존재 확인만
        return True
    except OSError:
        return False


def _is_stale_lock(
    lock_dir: Path, threshold_seconds: float = STALE_LOCK_THRESHOLD_SECONDS
) -> bool:
    """
    락 디렉토리가 stale(오래된) 상태인지 확인.

    판단 기준:
    1. 메타 파일이 있고 동일 호스트면: PID 생존 여부로 판단
    2. 메타 파일이 있고 다른 호스트면: TTL 기반으로만 판단
    3. 메타 파일이 없으면: 디렉토리 mtime 기준 TTL
    """
    meta = _read_lock_meta(lock_dir)

    if meta:
        lock_hostname = meta.get("hostname", "unknown")
        lock_pid = meta.get("pid")

        if lock_hostname == _get_current_hostname() and lock_pid:
            return not _is_process_alive(lock_pid)

        try:
            created_at = datetime.fromisoformat(meta.get("created_at", ""))
            age_seconds = (datetime.now(UTC) - created_at).total_seconds()
            return age_seconds > threshold_seconds
        except (ValueError, TypeError):
            pass  # 파싱 실패 시 아래로

    try:
        age_seconds = time.time() - lock_dir.stat().st_mtime
        return age_seconds > threshold_seconds
    except OSError:
        return False


def _try_cleanup_stale_lock(lock_dir: Path) -> bool:
    """Stale lock 정리 시도. 정리했으면 True."""
    if not _is_stale_lock(lock_dir):
        return False

    meta = _read_lock_meta(lock_dir)
    meta_info = ""
    if meta:
        meta_info = f" (owner: pid={meta.get('pid')}, host={meta.get('hostname')})"

    try:
        _cleanup_lock_dir(lock_dir)
        logger.warning(
            f"Cleaned up stale lock: {lock_dir}{meta_info}. "
            f"Lock exceeded TTL of {STALE_LOCK_THRESHOLD_SECONDS} seconds."
        )
        return True
    except OSError:
        return False


def _cleanup_lock_dir(lock_dir: Path) -> None:
    """락 디렉토리와 메타 파일 정리."""
    meta_path = lock_dir / LOCK_META_FILENAME
    if meta_path.exists():
        try:
            meta_path.unlink()
        except OSError:
            pass  # rmdir에서 실패가 드러남

    os.rmdir(lock_dir)


@contextmanager
def folder_lock(
    folder: Path,
    retry_interval: float = 0.5,
    max_retries: int = 10,
) -> Generator[Path, None, None]:
    """
    폴더 단위 배치 락.

    사용법:
        with folder_lock(folder):
            # rename / copy / delete

    동작:
    - 락 획득: os.mkdir() 원자적 생성 + 메타 파일(PID, hostname) 기록
    - 락 해제: 정상/예외 모두 메타 삭제 + rmdir()
    - stale lock: 첫 시도 실패 시 정리 후 재시도
    - 해제 실패: warning 로그

    Raises:
        PolicyRejectError: LOCK_TIMEOUT
    """
    lock_dir = folder / BATCH_LOCK_DIRNAME

    acquired = False
    for attempt in range(max_retries):
        try:
            os.mkdir(lock_dir)
            acquired = True
            _write_lock_meta(lock_dir)
            break
        except FileExistsError:
            if attempt == 0 and _try_cleanup_stale_lock(lock_dir):
                try:
                    os.mkdir(lock_dir)
                    acquired = True
                    _write_lock_meta(lock_dir)
                    break
                except FileExistsError:
                    pass  # 다른 프로세스가 먼저 획득
            time.sleep(retry_interval)

    if not acquired:
        raise PolicyRejectError(
            ErrorCodes.LOCK_TIMEOUT,
            folder=str(folder),
            attempts=max_retries,
            total_wait=max_retries * retry_interval,
        )

    try:
        yield lock_dir
    finally:
        try:
            _cleanup_lock_dir(lock_dir)
        except OSError as e:
            logger.warning(
                f"Lock release failed for {folder}: {e}. "
                f"Manual cleanup may be required: rm -rf {lock_dir}"
            )


@contextmanager
def folder_locks(
    folders: list[Path],
    retry_interval: float = 0.5,
    max_retries: int = 10,
) -> Generator[list[Path], None, None]:
    """
    여러 폴더 락을 정렬된 순서로 획득 (교착 방지).

    존재하지 않는 폴더는 건너뜀.
    """
    unique = sorted({f.resolve() for f in folders if f.is_dir()})

    with ExitStack() as stack:
        yield [
            stack.enter_context(folder_lock(folder, retry_interval, max_retries))
            for folder in unique
        ]


# =============================================================================
# Atomic Write / Replace
# =============================================================================


def fsync_file(path: Path) -> bool:
    """
    파일 fsync. 실패 시 경고 후 False (데이터는 보존).
    """
    try:
        fd = os.open(str(path), os.O_RDONLY)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)
        return True
    except OSError as e:
        logger.warning("fsync failed for %s: %s (data preserved)", path, e)
        return False


def _fsync_dir(dir_path: Path) -> None:
    """
    디렉토리 fsync (가능한 환경에서).

    rename 후 디렉토리 엔트리까지 내구성을 강화하려면 필요.
    """
    try:
        dir_fd = os.open(str(dir_path), os.O_RDONLY | os.O_DIRECTORY)
        try:
            os.fsync(dir_fd)
        finally:
            os.close(dir_fd)
    except (OSError, AttributeError) as e:
        # O_DIRECTORY 미지원 (Windows), 권한 문제 등
        logger.warning(
            f"Directory fsync failed for {dir_path}: {e}. "
            f"Rename durability may not be guaranteed."
        )


def sibling_temp_path(target: Path, marker: str) -> Path:
    """
    target과 같은 폴더의 숨김 임시 경로 (확장자 유지).

    예: photo.jpg → .photo.printprep.tmp.jpg
    """
    return target.with_name(f".{target.stem}{marker}{target.suffix}")


def atomic_replace(temp_path: Path, target: Path) -> None:
    """
    완성된 임시 파일로 target을 원자적으로 교체.

    - temp_path는 target과 같은 파일시스템(형제 경로)이어야 함
    - 실패 시 temp 삭제, target은 그대로
    """
    try:
        fsync_file(temp_path)
        os.replace(temp_path, target)
    except OSError:
        if temp_path.exists():
            try:
                temp_path.unlink()
            except OSError:
                logger.warning("Failed to remove temp file %s", temp_path)
        raise

    _fsync_dir(target.parent)


def atomic_write_json(path: Path, data: dict) -> None:
    """
    원자적 JSON 쓰기.

    동작:
    - 중간 상태 없음: temp → rename
    - 파일 fsync + 디렉토리 fsync (실패 시 경고)
    - 실패 시 cleanup: temp 파일 삭제, 기존 파일 보존
    """
    dir_path = path.parent
    dir_path.mkdir(parents=True, exist_ok=True)

    temp_path = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            dir=dir_path,
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        ) as f:
            temp_path = Path(f.name)
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.flush()  # Python 버퍼 → OS 버퍼
            try:
                os.fsync(f.fileno())  # OS 버퍼 → 디스크
            except OSError as e:
                logger.warning(
                    f"File fsync failed for {path}: {e}. "
                    f"Data may not be durable on power loss."
                )

        os.replace(temp_path, path)
        _fsync_dir(dir_path)

    except Exception:
        if temp_path and temp_path.exists():
            try:
                temp_path.unlink()
            except OSError:
                pass
        raise
