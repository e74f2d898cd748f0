"""
해상도 탐색: EXIF / JFIF / PSD 바이트 구조에서 DPI 추출

규칙:
- 이미지 라이브러리에 의존하지 않음 (원시 바이트만 해석)
- 절대 실패하지 않음: EXIF → JFIF → PSD → 기본값 300
- cm 단위 값은 × 2.54로 inch 기준 정규화
- 읽기 전용 (파일 변경 없음)
"""

import logging
import mmap
import struct
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from src.domain.constants import DEFAULT_DPI, METADATA_READ_LIMIT
from src.domain.schemas import ResolutionProbe, ResolutionUnit

logger = logging.getLogger(__name__)

# JPEG markers
SOI = 0xD8
EOI = 0xD9
SOS = 0xDA
APP0 = 0xE0
APP1 = 0xE1

JFIF_IDENTIFIER = b"JFIF\x00"
EXIF_IDENTIFIER = b"Exif\x00\x00"

# TIFF tags / types
TAG_X_RESOLUTION = 0x011A
TAG_RESOLUTION_UNIT = 0x0128
TYPE_SHORT = 3
TYPE_RATIONAL = 5
TYPE_SRATIONAL = 10

EXIF_UNITS = {
    1: ResolutionUnit.UNSPECIFIED,
    2: ResolutionUnit.INCH,
    3: ResolutionUnit.CENTIMETER,
}
JFIF_UNITS = {
    1: ResolutionUnit.INCH,
    2: ResolutionUnit.CENTIMETER,
}

# Photoshop
PSD_SIGNATURE = b"8BPS"
PSD_RESOURCE_SIGNATURE = b"8BIM"
PSD_RESOLUTION_INFO = 0x03ED
PSD_HEADER_SIZE = 26

SourceLike = bytes | bytearray | memoryview | str | Path


# =============================================================================
# Public API
# =============================================================================

def probe_resolution(source: SourceLike) -> float:
    """
    이미지의 물리 해상도(DPI) 반환.

    Args:
        source: 파일 경로 또는 파일 바이트

    Returns:
        pixels per inch (메타데이터 없으면 DEFAULT_DPI)
    """
    return probe_resolution_detail(source).dpi


def probe_resolution_detail(source: SourceLike) -> ResolutionProbe:
    """
    해상도와 출처를 함께 반환.

    source == "default"이면 호출 측에서 낮은 신뢰도로 취급해야 함.
    """
    with _open_source(source) as data:
        for name, reader in (
            ("exif", read_exif_dpi),
            ("jfif", read_jfif_dpi),
            ("psd", read_psd_dpi),
        ):
            dpi = reader(data)
            if dpi is not None:
                return ResolutionProbe(dpi=dpi, source=name)

    logger.debug("No resolution metadata found, using default %s DPI", DEFAULT_DPI)
    return ResolutionProbe(dpi=DEFAULT_DPI, source="default")


# =============================================================================
# EXIF (TIFF structure)
# =============================================================================

def read_exif_dpi(data: bytes) -> float | None:
    """
    EXIF IFD0의 XResolution / ResolutionUnit 해석.

    JPEG APP1("Exif\\0\\0") 또는 TIFF 파일 자체에서 TIFF 구조를 찾음.
    """
    tiff = _find_tiff_block(data)
    if tiff is None:
        return None
    try:
        return _parse_tiff_resolution(tiff)
    except struct.error:
        return None


def _find_tiff_block(data: bytes) -> bytes | None:
    if data[:4] in (b"II*\x00", b"MM\x00*"):
        return data

    if data[:2] != b"\xff\xd8":
        return None

    for marker, start, end in iter_jpeg_segments(data):
        if marker == APP1 and data[start:start + 6] == EXIF_IDENTIFIER:
            return data[start + 6:end]
    return None


def _parse_tiff_resolution(tiff: bytes) -> float | None:
    byte_order = tiff[:2]
    if byte_order == b"II":
        endian = "<"
    elif byte_order == b"MM":
        endian = ">"
    else:
        return None

    (magic,) = struct.unpack(endian + "H", tiff[2:4])
    if magic != 42:
        return None

    (ifd_offset,) = struct.unpack(endian + "I", tiff[4:8])
    if ifd_offset + 2 > len(tiff):
        return None

    (entry_count,) = struct.unpack(endian + "H", tiff[ifd_offset:ifd_offset + 2])

    x_resolution: float | None = None
    unit = ResolutionUnit.INCH

    for k in range(entry_count):
        entry = ifd_offset + 2 + 12 * k
        if entry + 12 > len(tiff):
            break

        tag, value_type, _count = struct.unpack(endian + "HHI", tiff[entry:entry + 8])
        value_field = tiff[entry + 8:entry + 12]

        if tag == TAG_X_RESOLUTION and value_type in (TYPE_RATIONAL, TYPE_SRATIONAL):
            (value_offset,) = struct.unpack(endian + "I", value_field)
            if value_offset + 8 > len(tiff):
                continue
            fmt = endian + ("II" if value_type == TYPE_RATIONAL else "ii")
            numerator, denominator = struct.unpack(
                fmt, tiff[value_offset:value_offset + 8]
            )
            if denominator:
                x_resolution = numerator / denominator

        elif tag == TAG_RESOLUTION_UNIT and value_type == TYPE_SHORT:
            (code,) = struct.unpack(endian + "H", value_field[:2])
            unit = EXIF_UNITS.get(code, ResolutionUnit.INCH)

    if x_resolution is None or x_resolution <= 0:
        return None
    return unit.to_dpi(x_resolution)


# =============================================================================
# JFIF (APP0)
# =============================================================================

def iter_jpeg_segments(data: bytes) -> Iterator[tuple[int, int, int]]:
    """
    JPEG 마커 세그먼트 순회.

    - 0xFF로 시작하지 않는 바이트는 1바이트씩 건너뜀
    - fill(0xFF) / stuffing(0x00) / SOI는 길이 없이 건너뜀
    - SOS(0xDA) 또는 EOI에서 중단 (해상도는 그 뒤에 없음)

    Yields:
        (marker, payload_start, payload_end)
    """
    i = 0
    size = min(len(data), METADATA_READ_LIMIT)
    while i + 4 < size:
        if data[i] != 0xFF:
            i += 1
            continue

        marker = data[i + 1]
        if marker in (SOI, 0x00, 0xFF):
            i += 1
            continue
        if marker in (SOS, EOI):
            return

        length = (data[i + 2] << 8) | data[i + 3]
        if length < 2:
            return  # 손상된 세그먼트

        yield marker, i + 4, min(i + 2 + length, size)
        i += 2 + length


def read_jfif_dpi(data: bytes) -> float | None:
    """
    JFIF APP0 밀도 해석.

    density 0 또는 unit 0(비율만)이면 없는 것으로 보고 계속 탐색.
    JPEG(SOI로 시작)만 대상: PSD 등에 들어 있는 JPEG 썸네일은 무시.
    """
    if data[:2] != b"\xff\xd8":
        return None

    for marker, start, end in iter_jpeg_segments(data):
        if marker != APP0 or end - start < 10:
            continue
        if data[start:start + 5] != JFIF_IDENTIFIER:
            continue

        unit = JFIF_UNITS.get(data[start + 7])
        x_density = (data[start + 8] << 8) | data[start + 9]
        if unit is None or x_density == 0:
            continue
        return unit.to_dpi(float(x_density))
    return None


# =============================================================================
# PSD (Image Resources → ResolutionInfo)
# =============================================================================

def read_psd_dpi(data: bytes) -> float | None:
    """
    Photoshop ResolutionInfo(0x03ED)의 hRes 해석.

    hRes는 16.16 고정소수점이며 항상 pixels per inch로 저장됨
    (hResUnit은 표시 단위일 뿐).
    """
    if data[:4] != PSD_SIGNATURE or len(data) < PSD_HEADER_SIZE + 8:
        return None
    try:
        pos = PSD_HEADER_SIZE
        (color_mode_length,) = struct.unpack(">I", data[pos:pos + 4])
        pos += 4 + color_mode_length

        (resources_length,) = struct.unpack(">I", data[pos:pos + 4])
        pos += 4
        end = min(pos + resources_length, len(data))

        while pos + 12 <= end:
            if data[pos:pos + 4] != PSD_RESOURCE_SIGNATURE:
                return None
            (resource_id,) = struct.unpack(">H", data[pos + 4:pos + 6])
            name_length = data[pos + 6]
            name_total = name_length + 1
            name_total += name_total % 2  # 짝수 패딩
            pos += 6 + name_total

            (size,) = struct.unpack(">I", data[pos:pos + 4])
            pos += 4
            if resource_id == PSD_RESOLUTION_INFO and size >= 4:
                (h_res_fixed,) = struct.unpack(">I", data[pos:pos + 4])
                h_res = h_res_fixed / 65536.0
                return h_res if h_res > 0 else None
            pos += size + (size % 2)
    except struct.error:
        return None
    return None


# =============================================================================
# Helpers
# =============================================================================

@contextmanager
def _open_source(source: SourceLike) -> Iterator[bytes | mmap.mmap]:
    """
    바이트 또는 경로를 읽기 전용 버퍼로 제공.

    경로는 mmap으로 열어 필요한 부분만 읽음 (IFD가 파일 끝에 있는 TIFF 대응).
    JPEG 세그먼트 탐색만 METADATA_READ_LIMIT까지, TIFF IFD는 오프셋 위치를 직접 읽음.
    열 수 없으면 빈 버퍼.
    """
    if isinstance(source, (bytes, bytearray, memoryview)):
        yield bytes(source)
        return

    try:
        f = open(source, "rb")
    except (OSError, TypeError, ValueError) as e:
        logger.debug("Cannot read %s for resolution probe: %s", source, e)
        yield b""
        return

    with f:
        try:
            buffer = mmap.mmap(f.fileno(), 0, access=mmap.ACCESS_READ)
        except (OSError, ValueError):
            # 빈 파일 등 mmap 불가
            yield f.read(METADATA_READ_LIMIT)
            return
        with buffer:
            yield buffer
