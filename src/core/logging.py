"""
Run logging: run log schema, entries, warnings

규칙:
- 배치 실행마다 run log 1개 (성공/실패 모두 저장)
- 경고 필수 컨텍스트: level, code, action_id, target,
                    original_value, resolved_value, message
- 원본 → 최종 경로를 entries에 기록 (내용 추적)
"""

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from src.core.ids import generate_run_id
from src.core.safe_io import atomic_write_json
from src.domain.schemas import RunLog, WarningLog

# =============================================================================
# Run Log Management
# =============================================================================


def create_run_log(operation: str) -> RunLog:
    """
    새 RunLog 생성.

    Args:
        operation: rename, replicate, process

    Returns:
        초기화된 RunLog
    """
    return RunLog(
        run_id=generate_run_id(),
        operation=operation,
        started_at=datetime.now(UTC).isoformat(),
        result="pending",
    )


def emit_warning(
    run_log: RunLog,
    code: str,
    action_id: str,
    target: str,
    message: str,
    original_value: str | None = None,
    resolved_value: str | None = None,
) -> None:
    """
    경고 이벤트 기록.

    Args:
        run_log: RunLog 인스턴스
        code: 경고 코드 (예: RESOLUTION_DEFAULTED)
        action_id: 액션 ID (예: rename_03)
        target: 대상 파일 경로
        message: 경고 메시지
        original_value: 원래 값
        resolved_value: 해결된 값
    """
    run_log.warnings.append(WarningLog(
        level="warning",
        code=code,
        action_id=action_id,
        target=target,
        original_value=original_value,
        resolved_value=resolved_value,
        message=message,
    ))


def record_entry(run_log: RunLog, **entry: Any) -> None:
    """처리 항목 기록 (예: original_path, final_path, fingerprint)."""
    run_log.entries.append({
        key: str(value) if isinstance(value, Path) else value
        for key, value in entry.items()
    })


def complete_run_log(
    run_log: RunLog,
    success: bool,
    error_code: str | None = None,
    error_context: dict[str, Any] | None = None,
) -> None:
    """RunLog 완료 처리."""
    run_log.finished_at = datetime.now(UTC).isoformat()
    run_log.result = "success" if success else "failed"

    if not success:
        run_log.error_code = error_code
        run_log.error_context = error_context


def save_run_log(run_log: RunLog, logs_dir: Path) -> Path:
    """
    RunLog를 파일로 저장 (원자적 쓰기).

    Returns:
        저장된 파일 경로
    """
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_path = logs_dir / f"run_{run_log.run_id}.json"
    atomic_write_json(log_path, run_log.to_dict())
    return log_path


def load_run_log(log_path: Path) -> dict[str, Any]:
    """RunLog 파일 로드."""
    data: dict[str, Any] = json.loads(log_path.read_text(encoding="utf-8"))
    return data


def list_run_logs(logs_dir: Path) -> list[Path]:
    """
    logs/ 디렉터리의 모든 run log 파일 목록.

    Returns:
        로그 파일 경로 목록 (최신순)
    """
    if not logs_dir.exists():
        return []

    logs = list(logs_dir.glob("run_*.json"))
    logs.sort(key=lambda p: p.stat().st_mtime, reverse=True)
    return logs
