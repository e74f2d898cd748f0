"""
Raster Engine 추상 인터페이스.

규칙:
- 엔진은 픽셀 작업만 담당 (기하 계산은 Geometry Compiler)
- identify(): 크기/해상도 조회, transform(): 지시 실행 후 output_path에 기록
- 실패는 PolicyRejectError(ENGINE_*)로 명시
- 호출은 동기/블로킹, 내부 병렬 없음
"""

from abc import ABC, abstractmethod
from pathlib import Path

from src.domain.schemas import EngineIdentity, PixelGeometry


class RasterEngine(ABC):
    """
    외부 래스터 엔진 추상 클래스.

    구현체: MagickEngine (ImageMagick), 테스트용 가짜 엔진
    """

    @abstractmethod
    def identify(self, path: Path) -> EngineIdentity:
        """
        이미지 크기/해상도 조회.

        Raises:
            PolicyRejectError: ENGINE_NOT_FOUND, ENGINE_FAILED, ENGINE_TIMEOUT
        """

    @abstractmethod
    def build_instructions(self, geometry: PixelGeometry) -> list[str]:
        """PixelGeometry → 엔진 고유 지시 목록."""

    @abstractmethod
    def transform(self, path: Path, instructions: list[str], output_path: Path) -> Path:
        """
        지시를 실행해 output_path에 결과 기록.

        실패 시 output_path에 부분 결과를 남기지 않음.

        Returns:
            output_path

        Raises:
            PolicyRejectError: ENGINE_NOT_FOUND, ENGINE_FAILED, ENGINE_TIMEOUT
        """
