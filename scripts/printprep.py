#!/usr/bin/env python3
"""
printprep.py - 인쇄용 이미지 크기 조회 / 일괄 이름 변경 / 복제 / 레이아웃 변환

사용법:
    # 물리 크기 (cm)
    uv run python scripts/printprep.py probe scans/*.tif

    # 일괄 이름 변경: {category}-{i}_{fingerprint}.{ext}
    uv run python scripts/printprep.py rename --category glossy scans/*.jpg

    # 각 파일을 3장으로 복제: {stem}-1 ... {stem}-3
    uv run python scripts/printprep.py replicate --copies 3 scans/poster.jpg

    # A4 채움 크롭 (원본 교체)
    uv run python scripts/printprep.py process scans/poster.jpg --mode crop --preset A4

    # 위쪽 1cm 흰 여백, 아래 0.5cm 잘라내기
    uv run python scripts/printprep.py process scans/poster.tif --mode border --border 1,0,-0.5,0

    # 최근 작업 기록 (run log) 5개
    uv run python scripts/printprep.py logs --limit 5
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# 프로젝트 루트를 path에 추가
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.app.main import build_image_service  # noqa: E402
from src.core.config import load_config  # noqa: E402
from src.core.logging import list_run_logs, load_run_log  # noqa: E402
from src.domain.schemas import BorderInsets, CropRect, OperationResult  # noqa: E402

logger = logging.getLogger("printprep")


def _floats(value: str, count: int, name: str) -> list[float]:
    parts = [p.strip() for p in value.split(",")]
    if len(parts) != count:
        raise argparse.ArgumentTypeError(f"{name} needs {count} comma-separated numbers")
    try:
        return [float(p) for p in parts]
    except ValueError:
        raise argparse.ArgumentTypeError(f"{name} must be numeric: {value}") from None


def parse_crop(value: str) -> CropRect:
    """"x,y,w,h" (%) → CropRect."""
    x, y, w, h = _floats(value, 4, "crop")
    return CropRect(x=x, y=y, w=w, h=h)


def parse_border(value: str) -> BorderInsets:
    """"top,right,bottom,left" (cm) → BorderInsets."""
    top, right, bottom, left = _floats(value, 4, "border")
    return BorderInsets(top=top, right=right, bottom=bottom, left=left)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="인쇄용 이미지 준비 도구",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="설정 파일 경로 (기본: 프로젝트 루트 default.yaml)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="결과를 JSON으로 stdout에 출력",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    probe = sub.add_parser("probe", help="물리 크기 조회")
    probe.add_argument("files", nargs="+", type=Path)

    rename = sub.add_parser("rename", help="일괄 이름 변경 (인자 순서 = 번호)")
    rename.add_argument("--category", required=True, help="용지 분류 (예: glossy)")
    rename.add_argument("files", nargs="+", type=Path)

    replicate = sub.add_parser("replicate", help="파일을 N장으로 복제")
    replicate.add_argument("--copies", type=int, required=True)
    replicate.add_argument("files", nargs="+", type=Path)

    process = sub.add_parser("process", help="레이아웃 변환 (원본 교체)")
    process.add_argument("file", type=Path)
    process.add_argument(
        "--mode",
        default="pad",
        choices=["crop", "resize", "pad", "border", "mirror"],
    )
    process.add_argument("--width", type=float, help="목표 가로 (cm)")
    process.add_argument("--height", type=float, help="목표 세로 (cm)")
    process.add_argument("--preset", help="용지 프리셋 (예: A4)")
    process.add_argument("--crop", type=parse_crop, help="x,y,w,h (%%)")
    process.add_argument("--border", type=parse_border, help="top,right,bottom,left (cm)")

    logs = sub.add_parser("logs", help="최근 작업 기록 (run log) 조회")
    logs.add_argument("--limit", type=int, default=10, help="표시할 개수 (최신순)")

    return parser


def _report(result: OperationResult, as_json: bool) -> int:
    if as_json:
        print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))  # type: ignore[attr-defined]
    for warning in result.warnings:
        logger.warning(warning)
    if not result.success:
        logger.error(f"[{result.error_code}] {result.error_message}")
        return 1
    return 0


def show_run_logs(logs_dir: Path, limit: int, as_json: bool) -> int:
    """logs_dir의 run log를 최신순으로 요약 출력."""
    summaries = []
    for log_path in list_run_logs(logs_dir)[:max(limit, 0)]:
        try:
            data = load_run_log(log_path)
        except (OSError, ValueError) as e:
            logger.warning(f"{log_path.name}: unreadable run log ({e})")
            continue
        summaries.append({
            "run_id": data.get("run_id"),
            "operation": data.get("operation"),
            "result": data.get("result"),
            "started_at": data.get("started_at"),
            "entries": len(data.get("entries") or []),
            "warnings": len(data.get("warnings") or []),
            "error_code": data.get("error_code"),
            "path": str(log_path),
        })

    if as_json:
        print(json.dumps(summaries, ensure_ascii=False, indent=2))
    if not summaries:
        logger.info(f"No run logs in {logs_dir}")
    for s in summaries:
        error = f" [{s['error_code']}]" if s["error_code"] else ""
        logger.info(
            f"{s['run_id']} {s['operation']} {s['result']}{error}: "
            f"{s['entries']} item(s), {s['warnings']} warning(s)"
        )
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)

    if args.command == "logs":
        return show_run_logs(config.logs_dir, args.limit, args.json)

    service = build_image_service(config)

    if args.command == "probe":
        exit_code = 0
        for path in args.files:
            result = service.probe_size(path)
            if result.success:
                logger.info(f"{path.name}: {result.size_text} ({result.asset.dpi:g} dpi, {result.asset.dpi_source})")
            exit_code = max(exit_code, _report(result, args.json))
        return exit_code

    if args.command == "rename":
        result = service.rename([(path, args.category) for path in args.files])
        for item in result.results:
            logger.info(f"{item.original_path.name} → {item.final_name}")
        return _report(result, args.json)

    if args.command == "replicate":
        result = service.replicate([(path, args.copies) for path in args.files])
        for source, outputs in result.copies.items():
            logger.info(f"{Path(source).name} → {len(outputs)}장")
        return _report(result, args.json)

    if args.command == "process":
        result = service.process(
            args.file,
            mode=args.mode,
            target_width_cm=args.width,
            target_height_cm=args.height,
            crop=args.crop,
            border=args.border,
            preset=args.preset,
        )
        if result.success and result.geometry is not None:
            logger.info(
                f"{result.final_name}: {result.geometry.canvas_width}x{result.geometry.canvas_height} px"
            )
        return _report(result, args.json)

    parser.error(f"unknown command: {args.command}")
    return 2


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    sys.exit(main())
