"""
Geometry Compiler: 퍼센트/cm 지정 → 정확한 픽셀 지시

규칙:
- 순수 함수: 디스크/엔진 접근 없음
- 목표 캔버스 = round(cm / 2.54 × 300), 축별 독립 (원본 DPI와 무관)
- border/mirror 인셋은 원본 DPI로 환산 (300 아님)
- 모든 모드: 레이어 평탄화 + 300 ppi 태깅
- 음수 인셋은 어떤 경우에도 결과 폭/높이를 1px 미만으로 줄이지 않음
"""

import math

from src.domain.constants import CM_PER_INCH, DEFAULT_DPI, OUTPUT_DPI
from src.domain.errors import ErrorCodes, PolicyRejectError
from src.domain.schemas import (
    EdgeFill,
    EdgeInsets,
    PixelGeometry,
    PixelRect,
    TransformMode,
    TransformSpec,
)

# =============================================================================
# Unit Helpers
# =============================================================================


def round_half_up(value: float) -> int:
    """0.5는 0에서 멀어지는 쪽으로 반올림 (부호 유지)."""
    rounded = math.floor(abs(value) + 0.5)
    return int(rounded if value >= 0 else -rounded)


def cm_to_pixels(cm: float, dpi: float) -> int:
    """cm → 픽셀 (부호 유지)."""
    return round_half_up(cm / CM_PER_INCH * dpi)


def target_canvas(width_cm: float, height_cm: float) -> tuple[int, int]:
    """출력 캔버스 픽셀 크기 (항상 OUTPUT_DPI 기준)."""
    if width_cm <= 0 or height_cm <= 0:
        raise PolicyRejectError(
            ErrorCodes.INVALID_TRANSFORM,
            reason="target size must be positive",
            target_width_cm=width_cm,
            target_height_cm=height_cm,
        )
    return (
        max(1, cm_to_pixels(width_cm, OUTPUT_DPI)),
        max(1, cm_to_pixels(height_cm, OUTPUT_DPI)),
    )


def parse_mode(value: str | TransformMode | None) -> TransformMode:
    """모드 문자열 → TransformMode (빈 값은 pad)."""
    if isinstance(value, TransformMode):
        return value
    if not value:
        return TransformMode.PAD
    try:
        return TransformMode(value.strip().lower())
    except ValueError:
        raise PolicyRejectError(
            ErrorCodes.INVALID_TRANSFORM,
            reason="unknown mode",
            mode=value,
        ) from None


def resolve_preset(
    name: str,
    presets: dict[str, tuple[float, float]],
) -> tuple[float, float]:
    """
    용지 프리셋 이름 → (가로 cm, 세로 cm).

    대소문자 무시.

    Raises:
        PolicyRejectError: UNKNOWN_PRESET
    """
    lookup = {key.lower(): size for key, size in presets.items()}
    size = lookup.get(name.strip().lower())
    if size is None:
        raise PolicyRejectError(
            ErrorCodes.UNKNOWN_PRESET,
            preset=name,
            available=sorted(presets),
        )
    return size


# =============================================================================
# Compiler
# =============================================================================


def compile_geometry(
    pixel_width: int,
    pixel_height: int,
    source_dpi: float | None,
    spec: TransformSpec,
) -> PixelGeometry:
    """
    TransformSpec을 Raster Engine용 픽셀 지시로 컴파일.

    Args:
        pixel_width: 원본 가로 픽셀
        pixel_height: 원본 세로 픽셀
        source_dpi: 원본 해상도 (없거나 0 이하이면 spec.source_dpi → DEFAULT_DPI)
        spec: 변환 지정

    Returns:
        PixelGeometry

    Raises:
        PolicyRejectError: INVALID_TRANSFORM
    """
    if pixel_width <= 0 or pixel_height <= 0:
        raise PolicyRejectError(
            ErrorCodes.INVALID_TRANSFORM,
            reason="source dimensions must be positive",
            pixel_width=pixel_width,
            pixel_height=pixel_height,
        )

    dpi = _effective_dpi(source_dpi, spec.source_dpi)

    if spec.mode is TransformMode.CROP:
        return _compile_crop(pixel_width, pixel_height, spec)
    if spec.mode is TransformMode.RESIZE:
        return _compile_resize(pixel_width, pixel_height, spec)
    if spec.mode is TransformMode.PAD:
        return _compile_pad(pixel_width, pixel_height, spec)
    if spec.mode in (TransformMode.BORDER, TransformMode.MIRROR):
        return _compile_border(pixel_width, pixel_height, dpi, spec)

    raise PolicyRejectError(ErrorCodes.INVALID_TRANSFORM, reason="unknown mode", mode=spec.mode)


def _effective_dpi(*candidates: float | None) -> float:
    for dpi in candidates:
        if dpi is not None and dpi > 0:
            return float(dpi)
    return DEFAULT_DPI


def _compile_crop(width: int, height: int, spec: TransformSpec) -> PixelGeometry:
    """
    crop: 퍼센트 사각형 → 채움 스케일 → 중앙 트림.

    짧은 쪽이 캔버스를 정확히 채우고, 긴 쪽 넘침은 양쪽에서 균등하게 잘림.
    """
    canvas_w, canvas_h = target_canvas(spec.target_width_cm, spec.target_height_cm)
    rect = spec.crop

    x = min(round_half_up(rect.x / 100 * width), width - 1)
    y = min(round_half_up(rect.y / 100 * height), height - 1)
    crop_w = min(max(1, round_half_up(rect.w / 100 * width)), width - x)
    crop_h = min(max(1, round_half_up(rect.h / 100 * height)), height - y)

    scale = max(canvas_w / crop_w, canvas_h / crop_h)
    scaled_w = max(canvas_w, round_half_up(crop_w * scale))
    scaled_h = max(canvas_h, round_half_up(crop_h * scale))

    return PixelGeometry(
        mode=TransformMode.CROP,
        source_width=width,
        source_height=height,
        canvas_width=canvas_w,
        canvas_height=canvas_h,
        source_crop=PixelRect(x, y, crop_w, crop_h),
        scaled_width=scaled_w,
        scaled_height=scaled_h,
        offset_x=-((scaled_w - canvas_w) // 2),
        offset_y=-((scaled_h - canvas_h) // 2),
    )


def _compile_resize(width: int, height: int, spec: TransformSpec) -> PixelGeometry:
    """resize: 비율 무시, 목표 크기로 정확히."""
    canvas_w, canvas_h = target_canvas(spec.target_width_cm, spec.target_height_cm)
    return PixelGeometry(
        mode=TransformMode.RESIZE,
        source_width=width,
        source_height=height,
        canvas_width=canvas_w,
        canvas_height=canvas_h,
        scaled_width=canvas_w,
        scaled_height=canvas_h,
        exact_resize=True,
    )


def _compile_pad(width: int, height: int, spec: TransformSpec) -> PixelGeometry:
    """pad: 맞춤 스케일 후 중앙 배치, 남는 여백은 단색 배경."""
    canvas_w, canvas_h = target_canvas(spec.target_width_cm, spec.target_height_cm)

    scale = min(canvas_w / width, canvas_h / height)
    scaled_w = min(canvas_w, max(1, round_half_up(width * scale)))
    scaled_h = min(canvas_h, max(1, round_half_up(height * scale)))

    return PixelGeometry(
        mode=TransformMode.PAD,
        source_width=width,
        source_height=height,
        canvas_width=canvas_w,
        canvas_height=canvas_h,
        scaled_width=scaled_w,
        scaled_height=scaled_h,
        offset_x=(canvas_w - scaled_w) // 2,
        offset_y=(canvas_h - scaled_h) // 2,
    )


def _compile_border(
    width: int,
    height: int,
    dpi: float,
    spec: TransformSpec,
) -> PixelGeometry:
    """
    border / mirror: 양수 인셋은 확장, 음수 인셋은 안쪽 자르기.

    1. 확장 크기 = 원본 + 양수 인셋 합
    2. 음수 인셋으로 자르기 (가장자리 쌍마다 확장 크기 - 1을 넘지 않게)
    3. 최종 = 확장 크기 - 자른 양
    """
    insets = spec.border
    top = cm_to_pixels(insets.top, dpi)
    right = cm_to_pixels(insets.right, dpi)
    bottom = cm_to_pixels(insets.bottom, dpi)
    left = cm_to_pixels(insets.left, dpi)

    expand = EdgeInsets(
        top=max(0, top),
        right=max(0, right),
        bottom=max(0, bottom),
        left=max(0, left),
    )
    expanded_w = width + expand.left + expand.right
    expanded_h = height + expand.top + expand.bottom

    crop_left = min(max(0, -left), expanded_w - 1)
    crop_right = min(max(0, -right), expanded_w - 1 - crop_left)
    crop_top = min(max(0, -top), expanded_h - 1)
    crop_bottom = min(max(0, -bottom), expanded_h - 1 - crop_top)

    final_w = expanded_w - crop_left - crop_right
    final_h = expanded_h - crop_top - crop_bottom

    trim = None
    if crop_left or crop_right or crop_top or crop_bottom:
        trim = PixelRect(crop_left, crop_top, final_w, final_h)

    return PixelGeometry(
        mode=spec.mode,
        source_width=width,
        source_height=height,
        canvas_width=final_w,
        canvas_height=final_h,
        expand=expand,
        trim=trim,
        edge_fill=EdgeFill.MIRROR if spec.mode is TransformMode.MIRROR else EdgeFill.SOLID,
    )
