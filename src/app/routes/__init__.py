"""
FastAPI Routes.

API 라우트 (REST)
"""

from . import images

__all__ = ["images"]
