"""
Image Service: 크기 조회 / 이름 변경 / 복제 / 레이아웃 변환

규칙:
- 외부 작업 결과는 항상 결과 값 (success + error_code), 예외로 흐름 제어 금지
- PolicyRejectError는 이 경계에서 잡아 결과 값으로 변환
- 해상도 누락은 에러가 아님 (기본 DPI + 경고)
- 변환은 형제 임시 파일 → 원자적 교체, 실패 시 원본 그대로
- 배치 작업마다 run log 저장 (logs_dir 설정 시)
"""

import logging
from collections.abc import Sequence
from pathlib import Path

from PIL import Image

from src.core.config import AppConfig
from src.core.geometry import compile_geometry, parse_mode, resolve_preset
from src.core.logging import (
    complete_run_log,
    create_run_log,
    emit_warning,
    record_entry,
    save_run_log,
)
from src.core.metadata import probe_resolution_detail
from src.core.renaming import rename_batch, replicate_batch
from src.core.safe_io import atomic_replace, folder_lock, sibling_temp_path
from src.domain.constants import TRANSFORM_TEMP_SUFFIX
from src.domain.errors import ErrorCodes, PolicyRejectError
from src.domain.schemas import (
    BorderInsets,
    CropRect,
    EngineIdentity,
    ImageAsset,
    PixelGeometry,
    ProbeResult,
    RenameBatchResult,
    ReplicateResult,
    RunLog,
    TransformMode,
    TransformResult,
    TransformSpec,
)
from src.render.engine import RasterEngine

logger = logging.getLogger(__name__)


def read_pixel_size(path: Path) -> tuple[int, int] | None:
    """Pillow로 헤더만 읽어 (가로, 세로) 픽셀. 읽을 수 없으면 None."""
    try:
        with Image.open(path) as img:
            return img.size
    except (OSError, Image.DecompressionBombError) as e:
        logger.debug("Pillow could not read %s: %s", path, e)
        return None


class ImageService:
    """
    이미지 작업 서비스.

    Usage:
        service = ImageService(config, MagickEngine(...))
        result = service.probe_size(path)
        result.size_text  # "21.0 x 29.7 cm"
    """

    def __init__(self, config: AppConfig, engine: RasterEngine):
        self.config = config
        self.engine = engine

    # =========================================================================
    # Probe
    # =========================================================================

    def probe_size(self, path: Path | str) -> ProbeResult:
        """물리 크기 조회 ("W.W x H.H cm")."""
        warnings: list[str] = []
        try:
            asset = self.load_asset(Path(path), warnings)
        except PolicyRejectError as e:
            return ProbeResult(success=False, error_code=e.code, error_message=str(e))
        return ProbeResult(success=True, asset=asset, warnings=warnings)

    def load_asset(self, path: Path, warnings: list[str] | None = None) -> ImageAsset:
        """
        ImageAsset 스냅샷 생성.

        픽셀 크기: Pillow → 엔진 identify 순서.
        해상도: 메타데이터 → 엔진 identify 해상도 → 기본 DPI (경고).

        Raises:
            PolicyRejectError: SOURCE_MISSING, DIMENSIONS_UNAVAILABLE
        """
        if not path.is_file():
            raise PolicyRejectError(ErrorCodes.SOURCE_MISSING, path=str(path))

        identity: EngineIdentity | None = None
        size = read_pixel_size(path)
        if size is None:
            try:
                identity = self.engine.identify(path)
                size = (identity.pixel_width, identity.pixel_height)
            except PolicyRejectError as e:
                raise PolicyRejectError(
                    ErrorCodes.DIMENSIONS_UNAVAILABLE,
                    path=str(path),
                    cause=e.code,
                ) from e

        if size[0] <= 0 or size[1] <= 0:
            raise PolicyRejectError(
                ErrorCodes.DIMENSIONS_UNAVAILABLE,
                path=str(path),
                pixel_width=size[0],
                pixel_height=size[1],
            )

        probe = probe_resolution_detail(path)
        dpi, dpi_source = probe.dpi, probe.source
        if probe.is_fallback and identity is not None and identity.resolution_dpi:
            # 헤더를 못 읽은 형식: 엔진이 보고한 해상도 사용
            dpi, dpi_source = identity.resolution_dpi, "engine"
        elif probe.is_fallback:
            dpi = self.config.default_dpi
            logger.warning("No resolution metadata in %s, assuming %s DPI", path.name, dpi)
            if warnings is not None:
                warnings.append(f"{ErrorCodes.RESOLUTION_DEFAULTED}: {dpi:g} dpi")

        return ImageAsset(
            path=path,
            pixel_width=size[0],
            pixel_height=size[1],
            dpi=dpi,
            dpi_source=dpi_source,
        )

    # =========================================================================
    # Rename / Replicate
    # =========================================================================

    def rename(self, pairs: Sequence[tuple[Path | str, str]]) -> RenameBatchResult:
        """
        배치 이름 변경.

        실패 시 results는 비어 있음 (부분 결과 없음).
        """
        run_log = create_run_log("rename")
        warnings: list[str] = []
        try:
            results = rename_batch(
                pairs,
                policy=self.config.collision_policy,
                run_log=run_log,
                fingerprint_window=self.config.fingerprint_window,
                lock_retry_interval=self.config.lock.retry_interval,
                lock_max_retries=self.config.lock.max_retries,
                warnings=warnings,
            )
        except PolicyRejectError as e:
            self._finish(run_log, error=e)
            return RenameBatchResult(
                success=False,
                error_code=e.code,
                error_message=str(e),
                run_id=run_log.run_id,
            )

        self._finish(run_log)
        return RenameBatchResult(
            success=True,
            warnings=warnings,
            run_id=run_log.run_id,
            results=results,
        )

    def replicate(self, items: Sequence[tuple[Path | str, int]]) -> ReplicateResult:
        """각 파일을 N개로 복제 ({stem}-1 ... {stem}-N)."""
        run_log = create_run_log("replicate")
        warnings: list[str] = []
        try:
            copies = replicate_batch(
                items,
                policy=self.config.collision_policy,
                run_log=run_log,
                lock_retry_interval=self.config.lock.retry_interval,
                lock_max_retries=self.config.lock.max_retries,
                warnings=warnings,
            )
        except PolicyRejectError as e:
            self._finish(run_log, error=e)
            return ReplicateResult(
                success=False,
                error_code=e.code,
                error_message=str(e),
                run_id=run_log.run_id,
            )

        self._finish(run_log)
        return ReplicateResult(
            success=True,
            warnings=warnings,
            run_id=run_log.run_id,
            copies=copies,
        )

    # =========================================================================
    # Process (layout transform)
    # =========================================================================

    def process(
        self,
        path: Path | str,
        mode: str | TransformMode | None = None,
        target_width_cm: float | None = None,
        target_height_cm: float | None = None,
        crop: CropRect | None = None,
        border: BorderInsets | None = None,
        preset: str | None = None,
    ) -> TransformResult:
        """
        레이아웃 변환 후 원본을 결과로 교체.

        Args:
            path: 원본 파일 (같은 경로/확장자로 덮어씀)
            mode: crop, resize, pad(기본), border, mirror
            target_width_cm / target_height_cm: crop/resize/pad 목표 크기
            crop: 퍼센트 사각형 (crop 모드)
            border: cm 인셋 (border/mirror 모드)
            preset: 목표 크기 대신 용지 프리셋 이름 (예: "A4")

        Returns:
            TransformResult {final_path, final_name, geometry}
        """
        source = Path(path)
        run_log = create_run_log("process")
        warnings: list[str] = []
        try:
            transform_mode = parse_mode(mode)
            if preset:
                target_width_cm, target_height_cm = resolve_preset(preset, self.config.presets)

            asset = self.load_asset(source, warnings)
            if asset.dpi_is_fallback and transform_mode in (TransformMode.BORDER, TransformMode.MIRROR):
                emit_warning(
                    run_log,
                    code=ErrorCodes.RESOLUTION_DEFAULTED,
                    action_id="process_01",
                    target=str(source),
                    message="border insets converted with the default DPI",
                    resolved_value=f"{asset.dpi:g}",
                )

            spec = TransformSpec(
                mode=transform_mode,
                target_width_cm=target_width_cm or 0.0,
                target_height_cm=target_height_cm or 0.0,
                crop=crop or CropRect(),
                border=border or BorderInsets(),
                source_dpi=asset.dpi,
            )
            geometry = compile_geometry(asset.pixel_width, asset.pixel_height, asset.dpi, spec)

            with folder_lock(
                source.parent,
                self.config.lock.retry_interval,
                self.config.lock.max_retries,
            ):
                self._render_in_place(source, geometry)
            asset.invalidate()

        except PolicyRejectError as e:
            self._finish(run_log, error=e)
            return TransformResult(success=False, error_code=e.code, error_message=str(e))

        record_entry(
            run_log,
            original_path=source,
            final_path=source,
            geometry=geometry.to_dict(),
        )
        self._finish(run_log)
        logger.info(
            "Processed %s (%s) -> %dx%d px",
            source.name,
            transform_mode.value,
            geometry.canvas_width,
            geometry.canvas_height,
        )
        return TransformResult(
            success=True,
            warnings=warnings,
            final_path=source,
            final_name=source.name,
            geometry=geometry,
        )

    def _render_in_place(self, source: Path, geometry: PixelGeometry) -> None:
        """엔진 → 형제 임시 파일 → 원본 교체. 실패 시 임시 파일 정리."""
        temp_path = sibling_temp_path(source, TRANSFORM_TEMP_SUFFIX)
        try:
            instructions = self.engine.build_instructions(geometry)
            self.engine.transform(source, instructions, temp_path)
            try:
                atomic_replace(temp_path, source)
            except OSError as e:
                raise PolicyRejectError(
                    ErrorCodes.REPLACE_FAILED,
                    path=str(source),
                    errno=e.errno,
                    error=str(e),
                ) from e
        finally:
            if temp_path.exists():
                try:
                    temp_path.unlink()
                except OSError as e:
                    logger.warning("Failed to remove temp file %s: %s", temp_path, e)

    # =========================================================================
    # Lookups
    # =========================================================================

    def presets(self) -> dict[str, tuple[float, float]]:
        """용지 프리셋 (cm)."""
        return dict(self.config.presets)

    def categories(self) -> list[str]:
        """용지 분류 목록."""
        return list(self.config.categories)

    # =========================================================================
    # Run Log
    # =========================================================================

    def _finish(self, run_log: RunLog, error: PolicyRejectError | None = None) -> None:
        if error is None:
            complete_run_log(run_log, success=True)
        else:
            complete_run_log(run_log, success=False, error_code=error.code, error_context=error.context)

        if self.config.logs_dir is None:
            return
        try:
            save_run_log(run_log, self.config.logs_dir)
        except OSError as e:
            logger.warning("Failed to save run log %s: %s", run_log.run_id, e)
