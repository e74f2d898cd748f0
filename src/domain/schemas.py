"""
Data schemas for the pipeline.

규칙:
- 해상도 정규 단위: pixels per inch (cm 값은 × 2.54 후 저장)
- TransformSpec / PixelGeometry: 불변 (frozen)
- 작업 결과는 예외가 아닌 결과 값으로 반환 (success + error_code)
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from src.domain.constants import CM_PER_INCH, ENGINE_BACKGROUND, OUTPUT_DPI

# =============================================================================
# Resolution
# =============================================================================

class ResolutionUnit(str, Enum):
    """
    해상도 단위.

    EXIF(1/2/3), JFIF(0/1/2), PSD(1/2) 코드를 공통 단위로 매핑.
    """
    UNSPECIFIED = "unspecified"
    INCH = "inch"
    CENTIMETER = "centimeter"

    def to_dpi(self, value: float) -> float:
        """값을 pixels per inch로 정규화."""
        if self is ResolutionUnit.CENTIMETER:
            return value * CM_PER_INCH
        return value


@dataclass(frozen=True)
class ResolutionProbe:
    """
    해상도 탐색 결과.

    source == "default"이면 메타데이터가 없어 기본 DPI로 대체된 것 (낮은 신뢰도).
    """
    dpi: float
    source: str  # exif, jfif, psd, default (ImageAsset은 engine도 가능)

    @property
    def is_fallback(self) -> bool:
        """기본값으로 대체되었는지."""
        return self.source == "default"


@dataclass
class ImageAsset:
    """
    이미지 파일 스냅샷.

    해상도/크기는 파일이 수정되기 전까지만 유효.
    fingerprint는 처음 요청 시 계산되고 invalidate() 후 다시 계산됨.
    """
    path: Path
    pixel_width: int
    pixel_height: int
    dpi: float
    dpi_source: str = "default"
    _fingerprint: str | None = field(default=None, repr=False)

    @property
    def extension(self) -> str:
        return self.path.suffix.lstrip(".").lower()

    @property
    def dpi_is_fallback(self) -> bool:
        return self.dpi_source == "default"

    @property
    def fingerprint(self) -> str:
        if self._fingerprint is None:
            from src.core.fingerprint import fingerprint

            self._fingerprint = fingerprint(self.path)
        return self._fingerprint

    def invalidate(self) -> None:
        """내용이 바뀌었을 때 호출 (지문 재계산)."""
        self._fingerprint = None

    def physical_size_cm(self) -> tuple[float, float]:
        """(가로 cm, 세로 cm)."""
        return (
            self.pixel_width / self.dpi * CM_PER_INCH,
            self.pixel_height / self.dpi * CM_PER_INCH,
        )

    def format_size(self) -> str:
        """UI 표시용: "21.0 x 29.7 cm"."""
        width_cm, height_cm = self.physical_size_cm()
        return f"{width_cm:.1f} x {height_cm:.1f} cm"


@dataclass(frozen=True)
class EngineIdentity:
    """Raster Engine identify() 결과."""
    pixel_width: int
    pixel_height: int
    dpi: float | None = None
    unit: ResolutionUnit = ResolutionUnit.UNSPECIFIED

    @property
    def resolution_dpi(self) -> float | None:
        """pixels per inch로 정규화된 해상도 (0 이하/없음 → None)."""
        if self.dpi is None or self.dpi <= 0:
            return None
        return self.unit.to_dpi(self.dpi)


# =============================================================================
# Transform Schemas
# =============================================================================

class TransformMode(str, Enum):
    """레이아웃 변환 모드."""
    CROP = "crop"        # 채움 스케일 + 중앙 트림 (배경 없음)
    RESIZE = "resize"    # 비율 무시, 목표 크기로 정확히
    PAD = "pad"          # 맞춤 스케일 + 중앙 배치, 여백은 단색
    BORDER = "border"    # 가장자리 확장(단색)/안쪽 자르기
    MIRROR = "mirror"    # border와 같은 기하, 확장부는 거울 반사


def _clamp_percent(value: float) -> float:
    return min(max(float(value), 0.0), 100.0)


@dataclass(frozen=True)
class CropRect:
    """퍼센트 공간 사각형 (원본 크기 기준 0~100)."""
    x: float = 0.0
    y: float = 0.0
    w: float = 100.0
    h: float = 100.0

    def __post_init__(self) -> None:
        # frozen이므로 object.__setattr__로 범위 보정
        for name in ("x", "y", "w", "h"):
            object.__setattr__(self, name, _clamp_percent(getattr(self, name)))


@dataclass(frozen=True)
class BorderInsets:
    """
    가장자리 인셋 (cm, 부호 있음).

    양수: 바깥으로 확장, 음수: 안쪽으로 자르기.
    """
    top: float = 0.0
    right: float = 0.0
    bottom: float = 0.0
    left: float = 0.0


@dataclass(frozen=True)
class TransformSpec:
    """Geometry Compiler 입력. 컴파일 후 변경 불가."""
    mode: TransformMode = TransformMode.PAD
    target_width_cm: float = 0.0
    target_height_cm: float = 0.0
    crop: CropRect = field(default_factory=CropRect)
    border: BorderInsets = field(default_factory=BorderInsets)
    source_dpi: float | None = None


@dataclass(frozen=True)
class PixelRect:
    """정수 픽셀 사각형."""
    x: int
    y: int
    width: int
    height: int

    def to_dict(self) -> dict[str, int]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class EdgeInsets:
    """가장자리별 픽셀 양 (0 이상)."""
    top: int = 0
    right: int = 0
    bottom: int = 0
    left: int = 0

    @property
    def is_zero(self) -> bool:
        return not (self.top or self.right or self.bottom or self.left)

    def to_dict(self) -> dict[str, int]:
        return {
            "top": self.top,
            "right": self.right,
            "bottom": self.bottom,
            "left": self.left,
        }


class EdgeFill(str, Enum):
    """캔버스 확장부 채움 정책."""
    SOLID = "solid"
    MIRROR = "mirror"


@dataclass(frozen=True)
class PixelGeometry:
    """
    컴파일된 픽셀 지시 (Raster Engine 입력).

    처리 순서:
    1. flatten (레이어 → 단색 배경)
    2. source_crop (crop 모드)
    3. scaled 크기로 리샘플 (exact_resize면 비율 무시)
    4. placement offset으로 canvas에 배치 (음수면 트림)
    5. expand (border/mirror) → trim
    6. output_dpi 태깅
    """
    mode: TransformMode
    source_width: int
    source_height: int
    canvas_width: int
    canvas_height: int
    source_crop: PixelRect | None = None
    scaled_width: int | None = None
    scaled_height: int | None = None
    exact_resize: bool = False
    offset_x: int = 0
    offset_y: int = 0
    expand: EdgeInsets = field(default_factory=EdgeInsets)
    trim: PixelRect | None = None
    edge_fill: EdgeFill = EdgeFill.SOLID
    background: str = ENGINE_BACKGROUND
    flatten: bool = True
    output_dpi: int = OUTPUT_DPI

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "source_width": self.source_width,
            "source_height": self.source_height,
            "canvas_width": self.canvas_width,
            "canvas_height": self.canvas_height,
            "source_crop": self.source_crop.to_dict() if self.source_crop else None,
            "scaled_width": self.scaled_width,
            "scaled_height": self.scaled_height,
            "exact_resize": self.exact_resize,
            "offset_x": self.offset_x,
            "offset_y": self.offset_y,
            "expand": self.expand.to_dict(),
            "trim": self.trim.to_dict() if self.trim else None,
            "edge_fill": self.edge_fill.value,
            "background": self.background,
            "flatten": self.flatten,
            "output_dpi": self.output_dpi,
        }


# =============================================================================
# Rename Schemas
# =============================================================================

class CollisionPolicy(str, Enum):
    """
    파일명 충돌 정책.

    COUNTER: 지문이 있어도 존재 확인 후 _1, _2 ... 추가 (기본값)
    FINGERPRINT_ONLY: 지문만으로 고유성을 가정 (추가 확인 없음)
    """
    COUNTER = "counter"
    FINGERPRINT_ONLY = "fingerprint_only"


@dataclass(frozen=True)
class RenameRequest:
    """배치 내 한 항목. index는 1부터 시작."""
    path: Path
    category: str
    index: int


@dataclass(frozen=True)
class RenameResult:
    """이름 변경 결과."""
    original_path: Path
    final_path: Path
    final_name: str

    def to_dict(self) -> dict[str, str]:
        return {
            "original_path": str(self.original_path),
            "final_path": str(self.final_path),
            "final_name": self.final_name,
        }


@dataclass
class MoveResult:
    """
    move_file() 결과.

    규칙: 원인 보존, 원자성 (복사 완료 전 원본 삭제 없음), fsync 경고
    """
    success: bool
    src: Path
    dst: Path | None = None
    operation: str | None = None  # rename, copy, unlink_source
    errno_code: int | None = None
    error_message: str | None = None
    fsync_warning: bool = False
    fallback_used: bool = False  # rename 실패 → copy + unlink


# =============================================================================
# Operation Results (서비스 경계)
# =============================================================================

@dataclass
class OperationResult:
    """모든 외부 작업 결과의 공통 필드."""
    success: bool
    error_code: str | None = None
    error_message: str | None = None
    warnings: list[str] = field(default_factory=list)

    def _base_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "warnings": list(self.warnings),
        }


@dataclass
class ProbeResult(OperationResult):
    """크기 탐색 결과."""
    asset: ImageAsset | None = None

    @property
    def size_text(self) -> str | None:
        return self.asset.format_size() if self.asset else None

    def to_dict(self) -> dict[str, Any]:
        data = self._base_dict()
        data["size"] = self.size_text
        if self.asset:
            data.update({
                "path": str(self.asset.path),
                "pixel_width": self.asset.pixel_width,
                "pixel_height": self.asset.pixel_height,
                "dpi": self.asset.dpi,
                "dpi_source": self.asset.dpi_source,
            })
        return data


@dataclass
class RenameBatchResult(OperationResult):
    """배치 이름 변경 결과. 실패 시 results는 비어 있음."""
    run_id: str | None = None
    results: list[RenameResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = self._base_dict()
        data["run_id"] = self.run_id
        data["results"] = [r.to_dict() for r in self.results]
        return data


@dataclass
class ReplicateResult(OperationResult):
    """복제 결과: 원본 경로 → 생성된 경로 목록."""
    run_id: str | None = None
    copies: dict[str, list[str]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = self._base_dict()
        data["run_id"] = self.run_id
        data["copies"] = dict(self.copies)
        return data


@dataclass
class TransformResult(OperationResult):
    """레이아웃 변환 결과."""
    final_path: Path | None = None
    final_name: str | None = None
    geometry: PixelGeometry | None = None

    def to_dict(self) -> dict[str, Any]:
        data = self._base_dict()
        data["final_path"] = str(self.final_path) if self.final_path else None
        data["final_name"] = self.final_name
        data["geometry"] = self.geometry.to_dict() if self.geometry else None
        return data


# =============================================================================
# Logging Schemas
# =============================================================================

@dataclass
class WarningLog:
    """
    경고 로그.

    경고 필수 컨텍스트: level, code, action_id, target,
                       original_value, resolved_value, message
    """
    level: str = "warning"
    code: str = ""
    action_id: str = ""
    target: str = ""
    original_value: str | None = None
    resolved_value: str | None = None
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level,
            "code": self.code,
            "action_id": self.action_id,
            "target": self.target,
            "original_value": self.original_value,
            "resolved_value": self.resolved_value,
            "message": self.message,
        }


@dataclass
class RunLog:
    """
    실행 로그.

    배치(run) 단위 실행 결과: 원본 → 최종 경로 추적.
    """
    run_id: str
    operation: str  # rename, replicate, process
    started_at: str  # ISO 8601
    finished_at: str | None = None
    result: str = "pending"  # pending, success, failed

    warnings: list[WarningLog] = field(default_factory=list)
    entries: list[dict[str, Any]] = field(default_factory=list)

    error_code: str | None = None
    error_context: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "operation": self.operation,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "result": self.result,
            "warnings": [w.to_dict() for w in self.warnings],
            "entries": list(self.entries),
            "error_code": self.error_code,
            "error_context": self.error_context,
        }
