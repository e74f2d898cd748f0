"""
FastAPI 애플리케이션 진입점.

실행:
- 개발: uv run uvicorn src.app.main:app --reload
- 프로덕션: uv run uvicorn src.app.main:app

로컬 단일 작업자용: 127.0.0.1에만 바인딩.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI

from src.app.routes import images
from src.app.services.images import ImageService
from src.core.config import AppConfig, load_config
from src.render.magick import MagickEngine
from src.render.resolver import default_resolver

# =============================================================================
# Service Factory
# =============================================================================


def build_image_service(config: AppConfig) -> ImageService:
    """설정 → ImageMagick 엔진 + ImageService."""
    engine = MagickEngine(
        resolver=default_resolver(config.engine.binary_path),
        timeout_seconds=config.engine.timeout_seconds,
    )
    return ImageService(config, engine)


# =============================================================================
# Lifespan
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    애플리케이션 생명주기 관리.

    시작 시: 설정 로드, 서비스 초기화 (테스트에서 미리 주입한 서비스는 유지)
    """
    if getattr(app.state, "image_service", None) is None:
        app.state.config = load_config()
        app.state.image_service = build_image_service(app.state.config)

    yield


# =============================================================================
# App Instance
# =============================================================================

app = FastAPI(
    title="Print Prep Pipeline",
    description="인쇄용 이미지 크기 조회, 일괄 이름 변경, 레이아웃 변환",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(images.api_router, prefix="/api/images", tags=["Images API"])


# =============================================================================
# Root Endpoints
# =============================================================================


@app.get("/")
async def root() -> dict[str, Any]:
    """엔드포인트 목록."""
    return {
        "message": "Print Prep Pipeline",
        "endpoints": {
            "size": "/api/images/size",
            "rename": "/api/images/rename",
            "replicate": "/api/images/replicate",
            "process": "/api/images/process",
            "presets": "/api/images/presets",
        },
    }


@app.get("/health")
async def health() -> dict[str, str]:
    """헬스 체크."""
    return {"status": "ok"}


# =============================================================================
# CLI Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.app.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
