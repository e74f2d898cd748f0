"""
Core layer: 원본 파일을 직접 다루는 핵심 모듈.

이 모듈만 건드리면 원본 손상 → 가장 보수적으로 관리

역할:
- 해상도 탐색, 내용 지문, 이름 변경, 기하 계산, 락/원자적 쓰기
"""

from .fingerprint import encode_base62, fingerprint
from .geometry import compile_geometry, parse_mode, resolve_preset
from .ids import generate_run_id
from .logging import create_run_log, emit_warning, save_run_log
from .metadata import probe_resolution, probe_resolution_detail
from .renaming import move_file, rename_batch, replicate_batch
from .safe_io import atomic_replace, atomic_write_json, folder_lock

__all__ = [
    # metadata
    "probe_resolution",
    "probe_resolution_detail",
    # fingerprint
    "fingerprint",
    "encode_base62",
    # renaming
    "rename_batch",
    "replicate_batch",
    "move_file",
    # geometry
    "compile_geometry",
    "parse_mode",
    "resolve_preset",
    # safe_io
    "folder_lock",
    "atomic_replace",
    "atomic_write_json",
    # ids
    "generate_run_id",
    # logging
    "create_run_log",
    "emit_warning",
    "save_run_log",
]
