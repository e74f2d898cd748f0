"""
ImageMagick 실행 파일 탐색 (교체 가능한 resolver).

탐색 순서 (default_resolver):
1. 설정된 경로 (engine.binary_path)
2. PATH: magick → convert (Windows에서는 시스템 convert.exe와 혼동되므로 magick만)
3. 플랫폼별 알려진 설치 경로 (Homebrew, Program Files, /usr/bin 등)

IM7: magick [args] / magick identify [args]
IM6: convert [args] / identify [args]
"""

import glob
import logging
import shutil
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from src.domain.constants import ENGINE_BINARY_NAMES
from src.domain.errors import ErrorCodes, PolicyRejectError

logger = logging.getLogger(__name__)

# 플랫폼별 알려진 설치 위치 (glob 패턴)
WELL_KNOWN_DIRS: dict[str, tuple[str, ...]] = {
    "darwin": (
        "/opt/homebrew/bin",
        "/usr/local/bin",
        "/opt/local/bin",
    ),
    "win32": (
        "C:\\Program Files\\ImageMagick-*",
        "C:\\Program Files (x86)\\ImageMagick-*",
    ),
    "linux": (
        "/usr/bin",
        "/usr/local/bin",
        "/snap/bin",
    ),
}


@dataclass(frozen=True)
class MagickCommand:
    """실행 명령 접두사 (convert / identify)."""
    binary: str
    convert: tuple[str, ...]
    identify: tuple[str, ...]

    @classmethod
    def from_binary(cls, binary: str | Path) -> "MagickCommand":
        """
        실행 파일 경로 → 명령 접두사.

        magick이면 IM7 방식, 그 외(convert)는 IM6 방식으로 옆의 identify 사용.
        """
        path = Path(binary)
        name = path.stem.lower()
        if name == "magick":
            return cls(binary=str(path), convert=(str(path),), identify=(str(path), "identify"))

        sibling = path.with_name(f"identify{path.suffix}")
        identify = str(sibling) if sibling.exists() else "identify"
        return cls(binary=str(path), convert=(str(path),), identify=(identify,))


class BinaryResolver(ABC):
    """ImageMagick 실행 파일 탐색 전략."""

    @abstractmethod
    def resolve(self) -> MagickCommand | None:
        """찾으면 MagickCommand, 없으면 None."""


class ConfiguredPathResolver(BinaryResolver):
    """설정 파일에 지정된 경로."""

    def __init__(self, binary_path: str | Path | None):
        self.binary_path = binary_path

    def resolve(self) -> MagickCommand | None:
        if not self.binary_path:
            return None
        path = Path(self.binary_path).expanduser()
        if path.is_file():
            return MagickCommand.from_binary(path)
        logger.warning("Configured ImageMagick binary not found: %s", path)
        return None


class PathLookupResolver(BinaryResolver):
    """PATH 환경 변수에서 탐색."""

    def __init__(self, names: tuple[str, ...] = ENGINE_BINARY_NAMES, platform: str | None = None):
        platform = platform or sys.platform
        if platform == "win32":
            names = tuple(n for n in names if n != "convert")
        self.names = names

    def resolve(self) -> MagickCommand | None:
        for name in self.names:
            found = shutil.which(name)
            if found:
                return MagickCommand.from_binary(found)
        return None


class WellKnownLocationResolver(BinaryResolver):
    """플랫폼별 알려진 설치 디렉터리에서 탐색."""

    def __init__(
        self,
        platform: str | None = None,
        directories: tuple[str, ...] | None = None,
        names: tuple[str, ...] = ENGINE_BINARY_NAMES,
    ):
        self.platform = platform or sys.platform
        key = "linux" if self.platform.startswith("linux") else self.platform
        self.directories = directories if directories is not None else WELL_KNOWN_DIRS.get(key, ())
        self.names = names

    def resolve(self) -> MagickCommand | None:
        suffix = ".exe" if self.platform == "win32" else ""
        for pattern in self.directories:
            # 버전 디렉터리(ImageMagick-7.1.1-Q16 등)는 최신 이름 우선
            for directory in sorted(glob.glob(pattern), reverse=True):
                for name in self.names:
                    candidate = Path(directory) / f"{name}{suffix}"
                    if candidate.is_file():
                        return MagickCommand.from_binary(candidate)
        return None


class ChainResolver(BinaryResolver):
    """여러 resolver를 순서대로 시도."""

    def __init__(self, resolvers: list[BinaryResolver]):
        self.resolvers = resolvers

    def resolve(self) -> MagickCommand | None:
        for resolver in self.resolvers:
            command = resolver.resolve()
            if command is not None:
                logger.debug("ImageMagick resolved by %s: %s", type(resolver).__name__, command.binary)
                return command
        return None


def default_resolver(binary_path: str | Path | None = None) -> BinaryResolver:
    """설정 경로 → PATH → 알려진 위치 순서의 기본 resolver."""
    return ChainResolver([
        ConfiguredPathResolver(binary_path),
        PathLookupResolver(),
        WellKnownLocationResolver(),
    ])


def require_command(resolver: BinaryResolver) -> MagickCommand:
    """
    resolver 실행, 못 찾으면 에러.

    Raises:
        PolicyRejectError: ENGINE_NOT_FOUND
    """
    command = resolver.resolve()
    if command is None:
        raise PolicyRejectError(
            ErrorCodes.ENGINE_NOT_FOUND,
            searched=list(ENGINE_BINARY_NAMES),
            hint="install ImageMagick or set engine.binary_path",
        )
    return command
