"""Domain layer: constants, errors and schemas."""

from .errors import ErrorCodes, PolicyRejectError
from .schemas import (
    CollisionPolicy,
    ImageAsset,
    MoveResult,
    PixelGeometry,
    RenameResult,
    RunLog,
    TransformMode,
    TransformSpec,
)

__all__ = [
    "ErrorCodes",
    "PolicyRejectError",
    "CollisionPolicy",
    "ImageAsset",
    "MoveResult",
    "PixelGeometry",
    "RenameResult",
    "RunLog",
    "TransformMode",
    "TransformSpec",
]
