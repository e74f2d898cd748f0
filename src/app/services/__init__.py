"""
Application Services.

역할:
- images: 크기 조회, 이름 변경/복제, 레이아웃 변환 (결과 값 반환)
"""

from .images import ImageService

__all__ = [
    "ImageService",
]
