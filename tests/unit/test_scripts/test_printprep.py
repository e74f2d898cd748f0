"""
test_printprep.py - printprep.py CLI 테스트

테스트 케이스:
- TC1: --crop / --border 인자 파싱
- TC2: probe / rename / replicate / process 종료 코드
- TC3: --json 출력
- TC4: logs (run log 조회)
"""

import argparse
import json
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

# scripts 모듈 임포트를 위한 경로 추가
sys.path.insert(0, str(Path(__file__).parent.parent.parent.parent / "scripts"))

from printprep import main, parse_border, parse_crop

from src.app.services.images import ImageService


@pytest.fixture
def run_cli(test_config, fake_engine):
    """FakeEngine 서비스로 main() 실행."""

    def _run(*argv: str) -> int:
        service = ImageService(test_config, fake_engine)
        with patch("printprep.load_config", return_value=test_config), \
             patch("printprep.build_image_service", return_value=service):
            return main(list(argv))

    return _run


class TestArgumentParsing:
    """TC1: 좌표 인자."""

    def test_parse_crop(self):
        rect = parse_crop("10, 20,50,60")
        assert (rect.x, rect.y, rect.w, rect.h) == (10.0, 20.0, 50.0, 60.0)

    def test_parse_border_signed(self):
        insets = parse_border("1,0,-0.5,0")
        assert insets.top == 1.0
        assert insets.bottom == -0.5

    def test_wrong_count(self):
        with pytest.raises(argparse.ArgumentTypeError):
            parse_crop("1,2,3")

    def test_not_numeric(self):
        with pytest.raises(argparse.ArgumentTypeError):
            parse_border("a,b,c,d")

    def test_invalid_mode_exits(self, run_cli, make_image):
        with pytest.raises(SystemExit):
            run_cli("process", str(make_image("a.jpg")), "--mode", "stretch")


class TestCommands:
    """TC2: 서브커맨드."""

    def test_probe(self, run_cli, make_image, caplog):
        caplog.set_level("INFO")
        path = make_image("a.jpg", size=(1181, 591), dpi=(300, 300))

        assert run_cli("probe", str(path)) == 0
        assert "10.0 x 5.0 cm" in caplog.text

    def test_probe_missing_file_fails(self, run_cli, tmp_path: Path, caplog):
        assert run_cli("probe", str(tmp_path / "missing.jpg")) == 1
        assert "SOURCE_MISSING" in caplog.text

    def test_rename(self, run_cli, make_image, tmp_path: Path):
        a = make_image("a.jpg", color="red")
        b = make_image("b.jpg", color="blue")

        assert run_cli("rename", "--category", "matte", str(a), str(b)) == 0

        names = sorted(p.name for p in tmp_path.glob("matte-*"))
        assert len(names) == 2
        assert names[0].startswith("matte-1_")

    def test_replicate(self, run_cli, make_image, tmp_path: Path):
        src = make_image("card.jpg")

        assert run_cli("replicate", "--copies", "2", str(src)) == 0
        assert (tmp_path / "card-1.jpg").exists()
        assert (tmp_path / "card-2.jpg").exists()

    def test_process_with_preset(self, run_cli, make_image, fake_engine):
        path = make_image("a.jpg", size=(600, 400), dpi=(300, 300))

        assert run_cli("process", str(path), "--mode", "crop", "--preset", "A3") == 0
        assert fake_engine.last_geometry.canvas_width == 3508

    def test_process_engine_failure(self, run_cli, make_image, fake_engine):
        fake_engine.fail_with = "ENGINE_FAILED"
        path = make_image("a.jpg", dpi=(300, 300))

        assert run_cli("process", str(path), "--preset", "A4") == 1


class TestJsonOutput:
    """TC3: --json."""

    def test_json_probe(self, run_cli, make_image, capsys):
        path = make_image("a.jpg", size=(2480, 3508), dpi=(300, 300))

        assert run_cli("--json", "probe", str(path)) == 0

        data = json.loads(capsys.readouterr().out)
        assert data["size"] == "21.0 x 29.7 cm"


class TestLogsCommand:
    """TC4: logs."""

    def test_lists_latest_run_log(self, run_cli, make_image, capsys):
        a = make_image("a.jpg", color="red")
        b = make_image("b.jpg", color="blue")
        assert run_cli("rename", "--category", "matte", str(a), str(b)) == 0
        capsys.readouterr()

        assert run_cli("--json", "logs", "--limit", "5") == 0

        data = json.loads(capsys.readouterr().out)
        assert len(data) == 1
        assert data[0]["run_id"].startswith("RUN-")
        assert data[0]["operation"] == "rename"
        assert data[0]["entries"] == 2

    def test_no_logs(self, run_cli, caplog):
        caplog.set_level("INFO")

        assert run_cli("logs") == 0
        assert "No run logs" in caplog.text
