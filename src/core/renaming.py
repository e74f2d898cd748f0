"""
Rename Orchestrator: 배치 이름 변경 / 복제

규칙:
- 파일명: {category}-{i}_{fingerprint}.{ext} (i는 배치 내 1부터 시작하는 위치)
- 배치 순서 엄수 (순차 처리, 재정렬/병렬 없음)
- 원본이 없는 항목은 조용히 건너뜀 (결과에도 없음)
- 충돌: 지문이 있어도 존재 확인 → _1, _2 ... (COUNTER 정책)
- 이동: os.rename 우선, 실패 시 copy2 → fsync → 원본 삭제
  → 복사 실패 시 불완전한 대상 파일은 삭제
  → 복사 실패만 치명적, 원본 삭제 실패는 경고
- 항목 하나가 치명적으로 실패하면 남은 배치 중단 (부분 결과 없음)
- rename/copy/delete는 폴더 락 안에서만
"""

import logging
import os
import shutil
from collections.abc import Iterable, Sequence
from pathlib import Path

from src.core.fingerprint import fingerprint
from src.core.logging import emit_warning, record_entry
from src.core.safe_io import folder_locks, fsync_file
from src.domain.constants import (
    DEFAULT_EXTENSION,
    FINGERPRINT_WINDOW_BYTES,
    RENAME_PATTERN,
    REPLICATE_PATTERN,
)
from src.domain.errors import ErrorCodes, PolicyRejectError
from src.domain.schemas import (
    CollisionPolicy,
    MoveResult,
    RenameRequest,
    RenameResult,
    RunLog,
)

logger = logging.getLogger(__name__)

_FORBIDDEN_CATEGORY_CHARS = ("/", "\\", "\0")


# =============================================================================
# Naming
# =============================================================================


def validate_category(category: str) -> str:
    """
    카테고리 라벨 검증 (앞뒤 공백 제거).

    Raises:
        PolicyRejectError: INVALID_CATEGORY (빈 값, 경로 구분자 포함, "."/"..")
    """
    cleaned = (category or "").strip()
    if (
        not cleaned
        or cleaned in (".", "..")
        or any(ch in cleaned for ch in _FORBIDDEN_CATEGORY_CHARS)
    ):
        raise PolicyRejectError(ErrorCodes.INVALID_CATEGORY, category=category)
    return cleaned


def file_extension(path: Path) -> str:
    """점 없는 원래 확장자 (없으면 jpg)."""
    return path.suffix.lstrip(".") or DEFAULT_EXTENSION


def build_rename_name(category: str, index: int, fp: str, extension: str) -> str:
    """
    예: build_rename_name("canvas", 3, "a1B2c3", "tif") → "canvas-3_a1B2c3.tif"
    """
    stem = RENAME_PATTERN.format(category=category, index=index, fingerprint=fp)
    return f"{stem}.{extension}"


def resolve_collision(
    candidate: Path,
    source: Path,
    policy: CollisionPolicy = CollisionPolicy.COUNTER,
) -> Path:
    """
    충돌 없는 대상 경로 결정.

    - 후보가 원본 자신이면 충돌 아님
    - COUNTER: 존재하는 동안 stem_1, stem_2 ... (매 증가 후 재확인)
    - FINGERPRINT_ONLY: 후보 그대로
    """
    if policy is CollisionPolicy.FINGERPRINT_ONLY:
        return candidate

    target = candidate
    counter = 1
    while target.exists() and not _same_path(target, source):
        target = candidate.with_name(f"{candidate.stem}_{counter}{candidate.suffix}")
        counter += 1
    return target


def _same_path(a: Path, b: Path) -> bool:
    try:
        return a.resolve() == b.resolve()
    except OSError:
        return False


# =============================================================================
# Move
# =============================================================================


def move_file(src: Path, dst: Path) -> MoveResult:
    """
    파일 이동 (같은 폴더 rename 우선).

    보장:
    - 원인 보존: 실패 시 operation/errno/message 기록
    - 원자성: 복사 완료 전 원본 삭제 없음
    - fsync 경고: fsync 실패 시 warn (데이터는 보존)
    - 원본 삭제 실패: success=True 유지, operation="unlink_source"로 기록

    Returns:
        MoveResult
    """
    try:
        os.rename(src, dst)
        return MoveResult(success=True, src=src, dst=dst, operation="rename")
    except OSError as e:
        logger.info("rename %s -> %s failed (%s), falling back to copy", src, dst, e)

    try:
        shutil.copy2(str(src), str(dst))
    except OSError as e:
        _discard_partial(dst)
        return MoveResult(
            success=False,
            src=src,
            dst=dst,
            operation="copy",
            errno_code=e.errno,
            error_message=str(e),
            fallback_used=True,
        )

    fsync_warning = not fsync_file(dst)

    try:
        src.unlink()
    except OSError as e:
        logger.warning("Copied %s to %s but could not remove the original: %s", src, dst, e)
        return MoveResult(
            success=True,
            src=src,
            dst=dst,
            operation="unlink_source",
            errno_code=e.errno,
            error_message=str(e),
            fsync_warning=fsync_warning,
            fallback_used=True,
        )

    return MoveResult(
        success=True,
        src=src,
        dst=dst,
        operation="copy",
        fsync_warning=fsync_warning,
        fallback_used=True,
    )


def _discard_partial(dst: Path) -> None:
    """복사 실패 후 남은 불완전한 대상 파일 제거."""
    try:
        dst.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not remove partial copy %s: %s", dst, e)


def _raise_move_failure(result: MoveResult, index: int) -> None:
    raise PolicyRejectError(
        ErrorCodes.RENAME_FAILED,
        index=index,
        src=str(result.src),
        dst=str(result.dst),
        operation=result.operation,
        errno=result.errno_code,
        error=result.error_message,
    )


def _note_move_warnings(
    run_log: RunLog | None,
    result: MoveResult,
    action_id: str,
) -> list[str]:
    warnings: list[str] = []
    if result.operation == "unlink_source":
        warnings.append(f"{ErrorCodes.UNLINK_FAILED}: {result.src}")
        if run_log is not None:
            emit_warning(
                run_log,
                code=ErrorCodes.UNLINK_FAILED,
                action_id=action_id,
                target=str(result.src),
                message=f"original kept after copy: {result.error_message}",
                resolved_value=str(result.dst),
            )
    if result.fsync_warning and run_log is not None:
        emit_warning(
            run_log,
            code=ErrorCodes.FSYNC_FAILED,
            action_id=action_id,
            target=str(result.dst),
            message="fsync failed after copy (data preserved)",
        )
    return warnings


# =============================================================================
# Batches
# =============================================================================


def build_requests(pairs: Iterable[tuple[Path | str, str]]) -> list[RenameRequest]:
    """(경로, 카테고리) 쌍 → 위치 기반 RenameRequest 목록."""
    return [
        RenameRequest(path=Path(path), category=category, index=i)
        for i, (path, category) in enumerate(pairs, start=1)
    ]


def rename_batch(
    pairs: Sequence[tuple[Path | str, str]],
    policy: CollisionPolicy = CollisionPolicy.COUNTER,
    run_log: RunLog | None = None,
    fingerprint_window: int = FINGERPRINT_WINDOW_BYTES,
    lock_retry_interval: float = 0.5,
    lock_max_retries: int = 10,
    warnings: list[str] | None = None,
) -> list[RenameResult]:
    """
    순서가 있는 배치 이름 변경.

    Args:
        pairs: (경로, 카테고리) 목록, 위치가 곧 번호
        policy: 충돌 정책
        run_log: 있으면 원본 → 최종 경로와 경고를 기록
        warnings: 있으면 비치명적 경고 메시지를 추가

    Returns:
        RenameResult 목록 (건너뛴 항목 제외, 순서 유지)

    Raises:
        PolicyRejectError: INVALID_CATEGORY, RENAME_FAILED, LOCK_TIMEOUT
    """
    requests = build_requests(pairs)
    # 디스크 작업 전에 모든 카테고리를 검증
    categories = [validate_category(req.category) for req in requests]

    results: list[RenameResult] = []
    folders = [req.path.parent for req in requests]

    with folder_locks(folders, lock_retry_interval, lock_max_retries):
        for req, category in zip(requests, categories):
            if not req.path.exists():
                logger.debug("Skipping missing source #%d: %s", req.index, req.path)
                continue

            fp = fingerprint(req.path, window=fingerprint_window)
            name = build_rename_name(category, req.index, fp, file_extension(req.path))
            target = resolve_collision(req.path.with_name(name), req.path, policy)

            if _same_path(target, req.path):
                move = MoveResult(success=True, src=req.path, dst=target, operation="noop")
            else:
                move = move_file(req.path, target)
            if not move.success:
                _raise_move_failure(move, req.index)

            action_id = f"rename_{req.index:02d}"
            notes = _note_move_warnings(run_log, move, action_id)
            if warnings is not None:
                warnings.extend(notes)

            result = RenameResult(
                original_path=req.path,
                final_path=target,
                final_name=target.name,
            )
            results.append(result)
            if run_log is not None:
                record_entry(
                    run_log,
                    index=req.index,
                    original_path=req.path,
                    final_path=target,
                    fingerprint=fp,
                    operation=move.operation,
                )
            logger.info("Renamed %s -> %s", req.path.name, target.name)

    return results


def replicate_batch(
    items: Sequence[tuple[Path | str, int]],
    policy: CollisionPolicy = CollisionPolicy.COUNTER,
    run_log: RunLog | None = None,
    lock_retry_interval: float = 0.5,
    lock_max_retries: int = 10,
    warnings: list[str] | None = None,
) -> dict[str, list[str]]:
    """
    각 원본을 N개 파일로 복제: {stem}-1 ... {stem}-N.

    원본은 -1로 이동하고 2..N은 바이트 복사본.

    Returns:
        {원본 경로: [생성된 경로, ...]} (건너뛴 항목 제외, 순서 유지)

    Raises:
        PolicyRejectError: INVALID_COPIES, RENAME_FAILED, LOCK_TIMEOUT
    """
    normalized = [(Path(path), copies) for path, copies in items]
    for path, copies in normalized:
        if not isinstance(copies, int) or copies < 1:
            raise PolicyRejectError(ErrorCodes.INVALID_COPIES, path=str(path), copies=copies)

    produced: dict[str, list[str]] = {}

    with folder_locks(
        [path.parent for path, _ in normalized], lock_retry_interval, lock_max_retries
    ):
        for position, (source, copies) in enumerate(normalized, start=1):
            if not source.exists():
                logger.debug("Skipping missing source #%d: %s", position, source)
                continue

            extension = file_extension(source)
            outputs: list[Path] = []

            # 복사본 먼저 (원본이 아직 제자리에 있을 때), 마지막에 원본을 -1로
            for k in range(2, copies + 1):
                name = f"{REPLICATE_PATTERN.format(stem=source.stem, copy=k)}.{extension}"
                target = resolve_collision(source.with_name(name), source, policy)
                try:
                    shutil.copy2(str(source), str(target))
                except OSError as e:
                    _discard_partial(target)
                    raise PolicyRejectError(
                        ErrorCodes.RENAME_FAILED,
                        index=position,
                        src=str(source),
                        dst=str(target),
                        operation="copy",
                        errno=e.errno,
                        error=str(e),
                    ) from e
                fsync_file(target)
                outputs.append(target)

            first_name = f"{REPLICATE_PATTERN.format(stem=source.stem, copy=1)}.{extension}"
            first = resolve_collision(source.with_name(first_name), source, policy)
            move = move_file(source, first)
            if not move.success:
                _raise_move_failure(move, position)
            notes = _note_move_warnings(run_log, move, f"replicate_{position:02d}")
            if warnings is not None:
                warnings.extend(notes)
            outputs.insert(0, first)

            produced[str(source)] = [str(p) for p in outputs]
            if run_log is not None:
                record_entry(
                    run_log,
                    index=position,
                    original_path=source,
                    copies=[str(p) for p in outputs],
                )
            logger.info("Replicated %s into %d file(s)", source.name, len(outputs))

    return produced
