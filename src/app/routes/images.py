"""
Images Routes: 크기 조회 / 이름 변경 / 복제 / 변환 API.

- GET  /api/images/size?path=...   → 물리 크기 ("21.0 x 29.7 cm")
- POST /api/images/rename          → 배치 이름 변경 (items: JSON)
- POST /api/images/replicate       → 배치 복제 (items: JSON)
- POST /api/images/process         → 레이아웃 변환 (원본 교체)
- GET  /api/images/presets         → 용지 프리셋 + 분류 목록

블로킹 작업(파일 I/O, ImageMagick)은 threadpool에서 실행.
"""

import json
from typing import Any

from fastapi import APIRouter, Form, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool

from src.app.services.images import ImageService
from src.domain.errors import ErrorCodes
from src.domain.schemas import BorderInsets, CropRect, OperationResult

api_router = APIRouter()  # API endpoints

# 실패 결과 → HTTP 상태
STATUS_BY_CODE: dict[str, int] = {
    ErrorCodes.SOURCE_MISSING: 404,
    ErrorCodes.DIMENSIONS_UNAVAILABLE: 422,
    ErrorCodes.INVALID_CATEGORY: 400,
    ErrorCodes.INVALID_COPIES: 400,
    ErrorCodes.INVALID_TRANSFORM: 400,
    ErrorCodes.UNKNOWN_PRESET: 400,
    ErrorCodes.LOCK_TIMEOUT: 409,
    ErrorCodes.ENGINE_NOT_FOUND: 503,
    ErrorCodes.ENGINE_FAILED: 502,
    ErrorCodes.ENGINE_TIMEOUT: 504,
}


def get_image_service(request: Request) -> ImageService:
    """Request에서 ImageService 가져오기."""
    return request.app.state.image_service


def _respond(result: OperationResult) -> dict[str, Any]:
    """성공 결과는 dict, 실패 결과는 HTTPException."""
    data: dict[str, Any] = result.to_dict()  # type: ignore[attr-defined]
    if result.success:
        return data

    status = STATUS_BY_CODE.get(result.error_code or "", 500)
    detail: dict[str, Any] = {
        "code": result.error_code,
        "message": result.error_message,
    }
    if data.get("run_id"):
        detail["run_id"] = data["run_id"]
    raise HTTPException(status_code=status, detail=detail)


def _parse_json(value: str | None, field: str) -> Any:
    if not value:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        raise HTTPException(
            status_code=400,
            detail={"code": "INVALID_JSON", "message": f"{field} must be valid JSON"},
        ) from None


def _parse_items(value: str, keys: tuple[str, str]) -> list[tuple[Any, Any]]:
    """
    items JSON 파싱.

    허용 형식: [{"path": ..., "category": ...}, ...] 또는 [[path, category], ...]
    """
    items = _parse_json(value, "items")
    if not isinstance(items, list):
        raise HTTPException(
            status_code=400,
            detail={"code": "INVALID_ITEMS", "message": "items must be a JSON array"},
        )

    parsed: list[tuple[Any, Any]] = []
    for item in items:
        if isinstance(item, dict) and all(k in item for k in keys):
            parsed.append((item[keys[0]], item[keys[1]]))
        elif isinstance(item, list) and len(item) == 2:
            parsed.append((item[0], item[1]))
        else:
            raise HTTPException(
                status_code=400,
                detail={
                    "code": "INVALID_ITEMS",
                    "message": f"each item needs {keys[0]} and {keys[1]}",
                },
            )
    return parsed


# =============================================================================
# API Routes
# =============================================================================


@api_router.get("/size")
async def get_size(
    request: Request,
    path: str = Query(...),
) -> dict[str, Any]:
    """이미지 물리 크기 조회."""
    service = get_image_service(request)
    result = await run_in_threadpool(service.probe_size, path)
    return _respond(result)


@api_router.post("/rename")
async def rename_images(
    request: Request,
    items: str = Form(...),  # JSON: [{path, category}, ...]
) -> dict[str, Any]:
    """배치 이름 변경. 순서가 곧 번호 (1부터)."""
    pairs = _parse_items(items, ("path", "category"))
    service = get_image_service(request)
    result = await run_in_threadpool(service.rename, pairs)
    return _respond(result)


@api_router.post("/replicate")
async def replicate_images(
    request: Request,
    items: str = Form(...),  # JSON: [{path, copies}, ...]
) -> dict[str, Any]:
    """배치 복제 ({stem}-1 ... {stem}-N)."""
    parsed = _parse_items(items, ("path", "copies"))
    service = get_image_service(request)
    result = await run_in_threadpool(service.replicate, parsed)
    return _respond(result)


@api_router.post("/process")
async def process_image(
    request: Request,
    path: str = Form(...),
    mode: str = Form("pad"),  # crop, resize, pad, border, mirror
    target_width_cm: float | None = Form(None),
    target_height_cm: float | None = Form(None),
    preset: str | None = Form(None),
    crop: str | None = Form(None),  # JSON: {x, y, w, h} (%)
    border: str | None = Form(None),  # JSON: {top, right, bottom, left} (cm)
) -> dict[str, Any]:
    """레이아웃 변환 후 원본 교체."""
    crop_data = _parse_json(crop, "crop")
    border_data = _parse_json(border, "border")
    try:
        crop_rect = CropRect(**crop_data) if crop_data else None
        border_insets = BorderInsets(**border_data) if border_data else None
    except (TypeError, ValueError) as e:
        raise HTTPException(
            status_code=400,
            detail={"code": ErrorCodes.INVALID_TRANSFORM, "message": str(e)},
        ) from e

    service = get_image_service(request)
    result = await run_in_threadpool(
        service.process,
        path,
        mode,
        target_width_cm,
        target_height_cm,
        crop_rect,
        border_insets,
        preset,
    )
    return _respond(result)


@api_router.get("/presets")
async def list_presets(request: Request) -> dict[str, Any]:
    """용지 프리셋 (cm) + 분류 목록."""
    service = get_image_service(request)
    return {
        "presets": {
            name: {"width_cm": size[0], "height_cm": size[1]}
            for name, size in service.presets().items()
        },
        "categories": service.categories(),
    }
