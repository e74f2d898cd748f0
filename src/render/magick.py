"""
ImageMagick 기반 Raster Engine.

규칙:
- 입력은 항상 첫 프레임/합성 레이어 ({path}[0])
- 모든 모드: 단색 배경으로 평탄화 → 모드별 기하 → 300 ppi 태깅
- subprocess timeout 초과 → ENGINE_TIMEOUT (일시적 실패)
- 비정상 종료 → ENGINE_FAILED (stderr 그대로 전달)
- 실패 시 부분 출력 파일 삭제
"""

import logging
import subprocess
from pathlib import Path

from src.domain.constants import ENGINE_TIMEOUT_SECONDS
from src.domain.errors import ErrorCodes, PolicyRejectError
from src.domain.schemas import (
    EdgeFill,
    EngineIdentity,
    PixelGeometry,
    PixelRect,
    ResolutionUnit,
    TransformMode,
)
from src.render.engine import RasterEngine
from src.render.resolver import (
    BinaryResolver,
    MagickCommand,
    default_resolver,
    require_command,
)

logger = logging.getLogger(__name__)

IDENTIFY_FORMAT = "%w %h %x %y %U"

_MAGICK_UNITS = {
    "pixelsperinch": ResolutionUnit.INCH,
    "pixelspercentimeter": ResolutionUnit.CENTIMETER,
    "undefined": ResolutionUnit.UNSPECIFIED,
}


# =============================================================================
# Instruction Builder
# =============================================================================


def _offset(x: int, y: int) -> str:
    return f"{x:+d}{y:+d}"


def _crop_args(rect: PixelRect) -> list[str]:
    return ["-crop", f"{rect.width}x{rect.height}{_offset(rect.x, rect.y)}", "+repage"]


def build_instructions(geometry: PixelGeometry) -> list[str]:
    """
    PixelGeometry → ImageMagick 인자 목록 (입력/출력 경로 제외).

    예 (pad, 600x400 → 1181x1181):
        -background white -alpha remove -alpha off
        -resize 1181x787! -gravity northwest -extent 1181x1181+0-197 +gravity
        -units PixelsPerInch -density 300
    """
    args: list[str] = ["-background", geometry.background]
    if geometry.flatten:
        args += ["-alpha", "remove", "-alpha", "off"]

    mode = geometry.mode
    if mode is TransformMode.CROP:
        if geometry.source_crop is not None:
            args += _crop_args(geometry.source_crop)
        args += ["-resize", f"{geometry.scaled_width}x{geometry.scaled_height}!"]
        # 넘치는 부분을 중앙 기준으로 트림 (offset은 0 이하)
        args += _crop_args(PixelRect(
            -geometry.offset_x,
            -geometry.offset_y,
            geometry.canvas_width,
            geometry.canvas_height,
        ))

    elif mode is TransformMode.RESIZE:
        args += ["-resize", f"{geometry.canvas_width}x{geometry.canvas_height}!"]

    elif mode is TransformMode.PAD:
        args += ["-resize", f"{geometry.scaled_width}x{geometry.scaled_height}!"]
        args += [
            "-gravity", "northwest",
            "-extent",
            f"{geometry.canvas_width}x{geometry.canvas_height}"
            f"{_offset(-geometry.offset_x, -geometry.offset_y)}",
            "+gravity",
        ]

    elif mode in (TransformMode.BORDER, TransformMode.MIRROR):
        expand = geometry.expand
        if not expand.is_zero:
            expanded_w = geometry.source_width + expand.left + expand.right
            expanded_h = geometry.source_height + expand.top + expand.bottom
            window = f"{expanded_w}x{expanded_h}{_offset(-expand.left, -expand.top)}"
            if geometry.edge_fill is EdgeFill.MIRROR:
                args += [
                    "-virtual-pixel", "mirror",
                    "-set", "option:distort:viewport", window,
                    "-distort", "SRT", "0",
                    "+repage",
                ]
            else:
                args += ["-gravity", "northwest", "-extent", window, "+gravity"]
        if geometry.trim is not None:
            args += _crop_args(geometry.trim)

    args += ["-units", "PixelsPerInch", "-density", str(geometry.output_dpi)]
    return args


def parse_identify_output(text: str) -> EngineIdentity:
    """
    identify -format "%w %h %x %y %U" 출력 파싱.

    IM6는 %x에 단위를 붙이기도 함 ("72 PixelsPerInch 72 PixelsPerInch ...").

    Raises:
        ValueError: 폭/높이를 읽을 수 없음
    """
    tokens = text.split()
    if len(tokens) < 2:
        raise ValueError(f"unexpected identify output: {text!r}")
    width, height = int(tokens[0]), int(tokens[1])

    dpi: float | None = None
    unit = ResolutionUnit.UNSPECIFIED
    for token in tokens[2:]:
        lowered = token.lower()
        if lowered in _MAGICK_UNITS:
            unit = _MAGICK_UNITS[lowered]
            continue
        if dpi is None:
            try:
                dpi = float(token)
            except ValueError:
                continue

    return EngineIdentity(pixel_width=width, pixel_height=height, dpi=dpi, unit=unit)


# =============================================================================
# Engine
# =============================================================================


class MagickEngine(RasterEngine):
    """
    ImageMagick 실행기.

    Usage:
        engine = MagickEngine(default_resolver(config.engine.binary_path))
        engine.transform(src, engine.build_instructions(geometry), tmp)

    실행 파일은 첫 사용 시 탐색 (ImageMagick 없이도 앱 시작 가능).
    """

    def __init__(
        self,
        resolver: BinaryResolver | None = None,
        timeout_seconds: float = ENGINE_TIMEOUT_SECONDS,
    ):
        self.resolver = resolver or default_resolver()
        self.timeout_seconds = timeout_seconds
        self._command: MagickCommand | None = None

    @property
    def command(self) -> MagickCommand:
        if self._command is None:
            self._command = require_command(self.resolver)
        return self._command

    def build_instructions(self, geometry: PixelGeometry) -> list[str]:
        return build_instructions(geometry)

    def identify(self, path: Path) -> EngineIdentity:
        args = [*self.command.identify, "-format", IDENTIFY_FORMAT, f"{path}[0]"]
        result = self._run(args, path)
        try:
            return parse_identify_output(result.stdout.decode(errors="replace"))
        except ValueError as e:
            raise PolicyRejectError(
                ErrorCodes.ENGINE_FAILED,
                path=str(path),
                stderr=str(e),
            ) from e

    def transform(self, path: Path, instructions: list[str], output_path: Path) -> Path:
        args = [*self.command.convert, f"{path}[0]", *instructions, str(output_path)]
        try:
            self._run(args, path)
            if not output_path.exists():
                raise PolicyRejectError(
                    ErrorCodes.ENGINE_FAILED,
                    path=str(path),
                    stderr="engine exited without writing output",
                )
        except PolicyRejectError:
            _remove_partial(output_path)
            raise
        return output_path

    def _run(self, args: list[str], path: Path) -> subprocess.CompletedProcess:
        logger.debug("Running: %s", " ".join(args))
        try:
            result = subprocess.run(args, capture_output=True, timeout=self.timeout_seconds)
        except subprocess.TimeoutExpired as e:
            raise PolicyRejectError(
                ErrorCodes.ENGINE_TIMEOUT,
                path=str(path),
                timeout_seconds=self.timeout_seconds,
            ) from e
        except FileNotFoundError as e:
            # 탐색 후 실행 파일이 사라진 경우 다음 호출에서 다시 탐색
            self._command = None
            raise PolicyRejectError(
                ErrorCodes.ENGINE_NOT_FOUND,
                binary=args[0],
            ) from e

        if result.returncode != 0:
            stderr = result.stderr.decode(errors="replace").strip()
            logger.error("ImageMagick failed (exit %d) for %s: %s", result.returncode, path, stderr)
            raise PolicyRejectError(
                ErrorCodes.ENGINE_FAILED,
                path=str(path),
                returncode=result.returncode,
                stderr=stderr,
            )
        return result


def _remove_partial(output_path: Path) -> None:
    try:
        output_path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Failed to remove partial output %s: %s", output_path, e)
