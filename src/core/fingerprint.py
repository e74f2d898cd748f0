"""
내용 지문: 파일명 추적/유사 고유성을 위한 6자리 식별자

규칙:
- 입력: 파일 크기 + 앞부분 최대 256 KiB (대용량 인쇄 파일도 거의 상수 시간)
- CRC-32를 파일 크기(8바이트 little-endian)로 먼저 갱신
  → 앞부분이 같아도 크기가 다르면 다른 지문
- base62(0-9A-Za-z) 6자리, 앞자리 '0' 패딩
- 열 수 없는 파일 → "000000" (절대 실패하지 않음)
- 암호학적 해시 아님: 충돌 가능성은 이름 변경 단계의 충돌 검사로 보완
"""

import logging
import os
import zlib
from pathlib import Path

from src.domain.constants import (
    FINGERPRINT_ALPHABET,
    FINGERPRINT_CHUNK_BYTES,
    FINGERPRINT_SENTINEL,
    FINGERPRINT_WIDTH,
    FINGERPRINT_WINDOW_BYTES,
)

logger = logging.getLogger(__name__)


def fingerprint(
    path: Path | str,
    window: int = FINGERPRINT_WINDOW_BYTES,
) -> str:
    """
    파일 내용 지문 계산.

    Args:
        path: 파일 경로
        window: 읽을 최대 바이트 수 (기본 256 KiB)

    Returns:
        6자리 base62 문자열 (실패 시 "000000")
    """
    try:
        with open(path, "rb") as f:
            size = os.fstat(f.fileno()).st_size
            checksum = zlib.crc32(size.to_bytes(8, "little"))

            remaining = window
            while remaining > 0:
                chunk = f.read(min(FINGERPRINT_CHUNK_BYTES, remaining))
                if not chunk:
                    break
                checksum = zlib.crc32(chunk, checksum)
                remaining -= len(chunk)
    except OSError as e:
        logger.warning("Fingerprint fallback for %s: %s", path, e)
        return FINGERPRINT_SENTINEL

    return encode_base62(checksum & 0xFFFFFFFF)


def encode_base62(value: int, width: int = FINGERPRINT_WIDTH) -> str:
    """
    정수를 고정 폭 base62 문자열로 인코딩.

    최상위 자리가 먼저 오도록 (big-endian) 정렬하고 '0'으로 왼쪽 패딩.
    0 → "000000".
    """
    if value < 0:
        raise ValueError(f"value must be non-negative: {value}")

    base = len(FINGERPRINT_ALPHABET)
    digits: list[str] = []
    while value:
        value, remainder = divmod(value, base)
        digits.append(FINGERPRINT_ALPHABET[remainder])

    # 하위 자리부터 쌓였으므로 뒤집기
    encoded = "".join(reversed(digits))
    return encoded.rjust(width, FINGERPRINT_ALPHABET[0])
