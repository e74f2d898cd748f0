"""
설정 로드: default.yaml → AppConfig

규칙:
- 파일이 없거나 섹션이 빠지면 상수 기본값 사용
- 알 수 없는 collision_policy / 음수 timeout → 기본값 대신 ValueError (설정 오류는 조용히 넘기지 않음)
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from src.domain.constants import (
    DEFAULT_COLLISION_POLICY,
    DEFAULT_DPI,
    DEFAULT_PAPER_CATEGORIES,
    DEFAULT_PAPER_PRESETS,
    ENGINE_TIMEOUT_SECONDS,
    FINGERPRINT_WINDOW_BYTES,
)
from src.domain.schemas import CollisionPolicy

PROJECT_ROOT = Path(__file__).parent.parent.parent
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "default.yaml"


@dataclass
class EngineConfig:
    """Raster Engine 설정."""
    binary_path: str | None = None
    timeout_seconds: float = ENGINE_TIMEOUT_SECONDS


@dataclass
class LockConfig:
    """폴더 락 재시도 설정."""
    retry_interval: float = 0.5
    max_retries: int = 10


@dataclass
class AppConfig:
    """애플리케이션 설정 전체."""
    default_dpi: float = DEFAULT_DPI
    fingerprint_window: int = FINGERPRINT_WINDOW_BYTES
    collision_policy: CollisionPolicy = CollisionPolicy(DEFAULT_COLLISION_POLICY)
    engine: EngineConfig = field(default_factory=EngineConfig)
    lock: LockConfig = field(default_factory=LockConfig)
    categories: list[str] = field(default_factory=lambda: list(DEFAULT_PAPER_CATEGORIES))
    presets: dict[str, tuple[float, float]] = field(
        default_factory=lambda: dict(DEFAULT_PAPER_PRESETS)
    )
    logs_dir: Path | None = None


def load_config(config_path: Path | None = None) -> AppConfig:
    """
    설정 파일 로드.

    Args:
        config_path: YAML 경로 (None이면 프로젝트 루트의 default.yaml)

    Returns:
        AppConfig
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if not config_path.exists():
        return AppConfig()

    with open(config_path, encoding="utf-8") as f:
        data: dict[str, Any] = yaml.safe_load(f) or {}

    return config_from_dict(data, base_dir=config_path.parent)


def config_from_dict(data: dict[str, Any], base_dir: Path | None = None) -> AppConfig:
    """YAML 딕셔너리 → AppConfig (상대 경로는 base_dir 기준)."""
    resolution = data.get("resolution") or {}
    rename = data.get("rename") or {}
    engine = data.get("engine") or {}
    lock = data.get("lock") or {}
    logging_section = data.get("logging") or {}

    config = AppConfig()

    if "default_dpi" in resolution:
        config.default_dpi = float(resolution["default_dpi"])
    if "fingerprint_window" in rename:
        config.fingerprint_window = int(rename["fingerprint_window"])
    if "collision_policy" in rename:
        config.collision_policy = CollisionPolicy(rename["collision_policy"])

    timeout = float(engine.get("timeout_seconds", ENGINE_TIMEOUT_SECONDS))
    if timeout <= 0:
        raise ValueError(f"engine.timeout_seconds must be positive: {timeout}")
    config.engine = EngineConfig(
        binary_path=engine.get("binary_path") or None,
        timeout_seconds=timeout,
    )

    config.lock = LockConfig(
        retry_interval=float(lock.get("retry_interval", 0.5)),
        max_retries=int(lock.get("max_retries", 10)),
    )

    if data.get("categories"):
        config.categories = [str(c) for c in data["categories"]]
    if data.get("presets"):
        config.presets = {
            str(name): (float(size[0]), float(size[1]))
            for name, size in data["presets"].items()
        }

    logs_dir = logging_section.get("run_logs_dir")
    if logs_dir:
        path = Path(logs_dir)
        if not path.is_absolute() and base_dir is not None:
            path = base_dir / path
        config.logs_dir = path

    return config
