"""
Render layer: 외부 Raster Engine 연동.

역할:
- PixelGeometry → 엔진 지시 → 출력 파일
- ImageMagick (magick / convert), 실행 파일 탐색은 resolver로 교체 가능
"""

from .engine import RasterEngine
from .magick import MagickEngine, build_instructions
from .resolver import BinaryResolver, MagickCommand, default_resolver

__all__ = [
    "RasterEngine",
    "MagickEngine",
    "build_instructions",
    "BinaryResolver",
    "MagickCommand",
    "default_resolver",
]
