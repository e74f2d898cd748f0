"""
Domain Constants: 파이프라인 전역 상수.

해상도 기본값, 지문(fingerprint) 정책, 파일명 정책 등
시스템 전반에서 사용되는 값들. default.yaml에서 일부 오버라이드 가능.
"""

# =============================================================================
# Resolution (해상도 정책)
# =============================================================================
# 시스템 전체의 정규 단위: pixels per inch.
# cm 단위로 저장된 값은 비교/저장 전에 반드시 × 2.54.

CM_PER_INCH = 2.54

# 메타데이터에서 해상도를 찾지 못했을 때의 보수적 기본값 (인쇄 업계 표준 가정).
# 이 값은 "낮은 신뢰도"로 취급해야 함.
DEFAULT_DPI = 300.0

# 모든 출력물은 이 해상도로 정규화/태깅됨
OUTPUT_DPI = 300

# 메타데이터 탐색 시 디스크에서 읽는 최대 바이트 (EXIF/JFIF/PSD 헤더는 앞쪽에 위치)
METADATA_READ_LIMIT = 4 * 1024 * 1024

# =============================================================================
# Fingerprint (내용 지문)
# =============================================================================
# 포맷: base62 6자리 (예: "0aZ3kQ")
# 입력: 파일 크기(8바이트 little-endian) + 앞부분 최대 256 KiB

FINGERPRINT_WINDOW_BYTES = 256 * 1024
FINGERPRINT_CHUNK_BYTES = 64 * 1024
FINGERPRINT_ALPHABET = (
    "0123456789"
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    "abcdefghijklmnopqrstuvwxyz"
)
FINGERPRINT_WIDTH = 6
FINGERPRINT_SENTINEL = "0" * FINGERPRINT_WIDTH

# =============================================================================
# Rename (파일명 정책)
# =============================================================================
# 파일명 패턴: {category}-{batch_index}_{fingerprint}.{ext}
# 충돌 시: {category}-{batch_index}_{fingerprint}_{n}.{ext}
# 예: glossy-1_3fK9aZ.jpg, glossy-1_3fK9aZ_1.jpg

RENAME_PATTERN = "{category}-{index}_{fingerprint}"
REPLICATE_PATTERN = "{stem}-{copy}"
DEFAULT_EXTENSION = "jpg"

COLLISION_POLICY_COUNTER = "counter"
COLLISION_POLICY_FINGERPRINT_ONLY = "fingerprint_only"
DEFAULT_COLLISION_POLICY = COLLISION_POLICY_COUNTER

# 배치 단위 폴더 락 디렉토리명
BATCH_LOCK_DIRNAME = ".printprep.lock"

# =============================================================================
# Source Images (입력 이미지)
# =============================================================================

# 기본 용지 분류 (default.yaml의 categories로 오버라이드 가능)
DEFAULT_PAPER_CATEGORIES = (
    "etching-210",
    "etching-315",
    "watercolor",
    "baryta",
    "museum-etching",
    "glossy",
    "lustre",
    "matte",
    "rough-watercolor",
    "cotton-smooth",
    "metallic",
    "rice-paper",
    "canvas",
    "backlit-film",
    "adhesive-pp",
)

# 용지 크기 프리셋 (cm, 가로 x 세로)
DEFAULT_PAPER_PRESETS = {
    "A4": (21.0, 29.7),
    "A3": (29.7, 42.0),
    "6in": (10.2, 15.2),
    "10in": (20.3, 25.4),
}

# =============================================================================
# Raster Engine (외부 ImageMagick)
# =============================================================================

ENGINE_TIMEOUT_SECONDS = 120
ENGINE_BACKGROUND = "white"
ENGINE_BINARY_NAMES = ("magick", "convert")

# 임시 출력 파일 접미사 (원본과 같은 폴더에 생성 후 rename)
TRANSFORM_TEMP_SUFFIX = ".printprep.tmp"

# =============================================================================
# Hash & ID Prefixes
# =============================================================================

RUN_ID_PREFIX = "RUN-"
