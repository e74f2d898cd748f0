"""
Error definitions for the pipeline.

규칙:
- 조용한 실패 금지 → PolicyRejectError로 명시적 실패
- 서비스 경계에서 결과 값(ProbeResult 등)으로 변환, 예외로 흐름 제어 금지
- 해상도 누락은 에러가 아님 (기본 DPI로 대체)
"""

from typing import Any


class PolicyRejectError(Exception):
    """
    파이프라인 정책 위반 시 발생하는 에러.

    즉시 중단이 필요한 경우에만 사용:
    - 원본 파일 없음 (단일 파일 작업)
    - 픽셀 크기 확인 불가
    - 외부 엔진 실패/timeout
    - 이름 변경 중 복사 실패 (배치 전체 중단)
    - 락 timeout

    Usage:
        raise PolicyRejectError("ENGINE_FAILED", path=str(path), stderr=stderr)
    """

    def __init__(self, code: str, **context: Any) -> None:
        self.code = code
        self.context = context
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
        return f"[{self.code}] {ctx_str}" if ctx_str else f"[{self.code}]"

    def to_dict(self) -> dict[str, Any]:
        """로그/JSON 직렬화용."""
        return {
            "code": self.code,
            **self.context,
        }


# =============================================================================
# Error Codes
# =============================================================================

class ErrorCodes:
    """에러 코드 상수."""

    # === Source ===
    SOURCE_MISSING = "SOURCE_MISSING"
    DIMENSIONS_UNAVAILABLE = "DIMENSIONS_UNAVAILABLE"
    RESOLUTION_DEFAULTED = "RESOLUTION_DEFAULTED"  # warning, not reject

    # === Rename ===
    INVALID_CATEGORY = "INVALID_CATEGORY"
    INVALID_COPIES = "INVALID_COPIES"
    RENAME_FAILED = "RENAME_FAILED"
    UNLINK_FAILED = "UNLINK_FAILED"  # warning, 복사는 성공
    FSYNC_FAILED = "FSYNC_FAILED"  # warning, 데이터는 보존
    LOCK_TIMEOUT = "LOCK_TIMEOUT"

    # === Geometry ===
    INVALID_TRANSFORM = "INVALID_TRANSFORM"
    UNKNOWN_PRESET = "UNKNOWN_PRESET"

    # === Raster Engine ===
    ENGINE_NOT_FOUND = "ENGINE_NOT_FOUND"
    ENGINE_FAILED = "ENGINE_FAILED"
    ENGINE_TIMEOUT = "ENGINE_TIMEOUT"
    REPLACE_FAILED = "REPLACE_FAILED"
