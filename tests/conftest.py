"""
Pytest fixtures for the pipeline tests.

테스트 구성:
- 해상도 메타데이터는 바이트를 직접 조립 (이미지 라이브러리 없이 경계값 제어)
- 픽셀 크기가 필요한 파일은 Pillow로 생성
- 외부 ImageMagick 대신 FakeEngine 사용
"""

import struct
from collections.abc import Callable
from pathlib import Path

import pytest
from PIL import Image

from src.core.config import AppConfig, LockConfig
from src.domain.errors import ErrorCodes, PolicyRejectError
from src.domain.schemas import EngineIdentity, PixelGeometry
from src.render.engine import RasterEngine

# =============================================================================
# Path / Config Fixtures
# =============================================================================

@pytest.fixture
def project_root() -> Path:
    """프로젝트 루트 경로."""
    return Path(__file__).parent.parent


@pytest.fixture
def default_config_path(project_root: Path) -> Path:
    """default.yaml 경로."""
    return project_root / "default.yaml"


@pytest.fixture
def test_config(tmp_path: Path) -> AppConfig:
    """테스트용 설정 (짧은 락 대기, run log는 tmp_path/logs)."""
    return AppConfig(
        lock=LockConfig(retry_interval=0.05, max_retries=3),
        logs_dir=tmp_path / "logs",
    )


# =============================================================================
# Byte Builders (JPEG / TIFF / PSD)
# =============================================================================

def _segment(marker: int, payload: bytes) -> bytes:
    return bytes([0xFF, marker]) + struct.pack(">H", len(payload) + 2) + payload


def build_tiff(
    x_resolution: tuple[int, int] | None = (300, 1),
    unit: int | None = 2,
    byte_order: str = "II",
) -> bytes:
    """IFD0에 XResolution / ResolutionUnit만 있는 최소 TIFF 구조."""
    endian = "<" if byte_order == "II" else ">"
    entry_count = (x_resolution is not None) + (unit is not None)
    data_offset = 8 + 2 + 12 * entry_count + 4

    header = byte_order.encode() + struct.pack(endian + "HI", 42, 8)
    ifd = struct.pack(endian + "H", entry_count)
    extra = b""
    if x_resolution is not None:
        ifd += struct.pack(endian + "HHII", 0x011A, 5, 1, data_offset)
        extra += struct.pack(endian + "II", *x_resolution)
    if unit is not None:
        ifd += struct.pack(endian + "HHIHH", 0x0128, 3, 1, unit, 0)
    ifd += struct.pack(endian + "I", 0)  # next IFD 없음
    return header + ifd + extra


def build_jfif_segment(units: int, density: int) -> bytes:
    payload = b"JFIF\x00" + bytes([1, 1, units]) + struct.pack(">HH", density, density) + b"\x00\x00"
    return _segment(0xE0, payload)


def build_jpeg(
    jfif: tuple[int, int] | None = None,
    exif_tiff: bytes | None = None,
    after_sos: bytes = b"",
) -> bytes:
    """SOI + (APP0 JFIF) + (APP1 Exif) + SOS + 스캔 데이터 + EOI."""
    data = b"\xff\xd8"
    if jfif is not None:
        data += build_jfif_segment(*jfif)
    if exif_tiff is not None:
        data += _segment(0xE1, b"Exif\x00\x00" + exif_tiff)
    data += _segment(0xDA, b"\x01\x01\x00\x00\x3f\x00")
    data += b"\x12\x34" + after_sos + b"\xff\xd9"
    return data


def build_psd(
    h_res: float | None = 300.0,
    h_res_unit: int = 1,
    thumbnail: bytes | None = None,
) -> bytes:
    """헤더 + 빈 color mode + (썸네일) + ResolutionInfo 리소스 PSD."""
    header = b"8BPS" + struct.pack(">H6sHIIHH", 1, b"\x00" * 6, 3, 10, 10, 8, 3)
    color_mode = struct.pack(">I", 0)

    resources = b""
    if thumbnail is not None:
        # 0x040C ThumbnailResource: 28바이트 헤더 + JPEG
        body = struct.pack(">IIIIIIHH", 1, 10, 10, 32, len(thumbnail), len(thumbnail), 24, 1)
        body += thumbnail + b"\x00" * (len(thumbnail) % 2)
        resources += b"8BIM" + struct.pack(">H", 0x040C) + b"\x00\x00"
        resources += struct.pack(">I", len(body)) + body
    if h_res is not None:
        fixed = int(round(h_res * 65536))
        body = struct.pack(">IHHIHH", fixed, h_res_unit, 1, fixed, h_res_unit, 1)
        resources += b"8BIM" + struct.pack(">H", 0x03ED) + b"\x00\x00"
        resources += struct.pack(">I", len(body)) + body
    return header + color_mode + struct.pack(">I", len(resources)) + resources


@pytest.fixture
def tiff_bytes() -> Callable[..., bytes]:
    return build_tiff


@pytest.fixture
def jpeg_bytes() -> Callable[..., bytes]:
    return build_jpeg


@pytest.fixture
def psd_bytes() -> Callable[..., bytes]:
    return build_psd


@pytest.fixture
def make_image(tmp_path: Path) -> Callable[..., Path]:
    """
    Pillow로 실제 이미지 파일 생성.

    Usage:
        path = make_image("a.jpg", size=(600, 400), dpi=(150, 150))
    """

    def _make(
        name: str,
        size: tuple[int, int] = (100, 80),
        dpi: tuple[float, float] | None = None,
        color: str = "red",
        folder: Path | None = None,
    ) -> Path:
        target_dir = folder or tmp_path
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / name
        image = Image.new("RGB", size, color)
        if dpi is None:
            image.save(path)
        else:
            image.save(path, dpi=dpi)
        return path

    return _make


# =============================================================================
# Fake Raster Engine
# =============================================================================

class FakeEngine(RasterEngine):
    """
    테스트용 엔진.

    transform(): 컴파일된 캔버스 크기의 흰 이미지를 300 dpi로 기록
    fail_with: 설정 시 해당 코드로 PolicyRejectError (부분 출력 남김 없음)
    """

    def __init__(self, identity: EngineIdentity | None = None, fail_with: str | None = None):
        self.identity = identity
        self.fail_with = fail_with
        self.identify_calls: list[Path] = []
        self.transform_calls: list[tuple[Path, list[str], Path]] = []
        self.last_geometry: PixelGeometry | None = None

    def identify(self, path: Path) -> EngineIdentity:
        self.identify_calls.append(path)
        if self.identity is None:
            raise PolicyRejectError(ErrorCodes.ENGINE_FAILED, path=str(path), stderr="no decoder")
        return self.identity

    def build_instructions(self, geometry: PixelGeometry) -> list[str]:
        self.last_geometry = geometry
        return [f"{geometry.mode.value}:{geometry.canvas_width}x{geometry.canvas_height}"]

    def transform(self, path: Path, instructions: list[str], output_path: Path) -> Path:
        self.transform_calls.append((path, instructions, output_path))
        if self.fail_with:
            raise PolicyRejectError(self.fail_with, path=str(path), stderr="magick: simulated failure")
        assert self.last_geometry is not None
        size = (self.last_geometry.canvas_width, self.last_geometry.canvas_height)
        Image.new("RGB", size, "white").save(output_path, dpi=(300, 300))
        return output_path


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def jfif_segment() -> Callable[[int, int], bytes]:
    return build_jfif_segment


@pytest.fixture
def engine_factory() -> Callable[..., FakeEngine]:
    """
    설정이 다른 FakeEngine 생성.

    Usage:
        engine = engine_factory(fail_with=ErrorCodes.ENGINE_FAILED)
    """
    return FakeEngine
