"""
test_images.py - ImageService 테스트 (FakeEngine 사용)

검증 포인트:
1. probe: Pillow 크기 + 메타데이터 해상도, 없으면 엔진 해상도, 그것도 없으면 기본값 + 경고
2. 픽셀 크기: Pillow 실패 시 엔진 identify, 둘 다 실패 → DIMENSIONS_UNAVAILABLE
3. rename / replicate: 결과 값 + run log 저장
4. process: 임시 파일 → 원자적 교체, 실패 시 원본 그대로
"""

import json
from pathlib import Path

import pytest
from PIL import Image

from src.app.services.images import ImageService, read_pixel_size
from src.core.logging import list_run_logs
from src.domain.errors import ErrorCodes
from src.domain.schemas import (
    BorderInsets,
    CropRect,
    EngineIdentity,
    ResolutionUnit,
)


@pytest.fixture
def service(test_config, fake_engine) -> ImageService:
    return ImageService(test_config, fake_engine)


def _leftover_temps(folder: Path) -> list[Path]:
    return [p for p in folder.iterdir() if ".printprep.tmp" in p.name]


# =============================================================================
# Probe
# =============================================================================


class TestProbe:
    """크기 조회."""

    def test_size_from_pillow_and_jfif(self, service, make_image):
        path = make_image("a4.jpg", size=(2480, 3508), dpi=(300, 300))

        result = service.probe_size(path)

        assert result.success
        assert result.size_text == "21.0 x 29.7 cm"
        assert result.asset.dpi_source == "jfif"
        assert result.warnings == []

    def test_missing_resolution_warns(self, service, make_image, caplog):
        path = make_image("plain.jpg", size=(1181, 1181))

        result = service.probe_size(path)

        assert result.success
        assert result.asset.dpi == 300.0
        assert result.size_text == "10.0 x 10.0 cm"
        assert result.warnings == ["RESOLUTION_DEFAULTED: 300 dpi"]
        assert "assuming 300" in caplog.text

    def test_configured_default_dpi(self, test_config, fake_engine, make_image):
        test_config.default_dpi = 150.0
        path = make_image("plain.jpg", size=(591, 591))

        result = ImageService(test_config, fake_engine).probe_size(path)

        assert result.asset.dpi == 150.0
        assert result.size_text == "10.0 x 10.0 cm"

    def test_missing_file(self, service, tmp_path: Path):
        result = service.probe_size(tmp_path / "missing.jpg")

        assert not result.success
        assert result.error_code == ErrorCodes.SOURCE_MISSING
        assert result.to_dict()["size"] is None

    def test_engine_identify_fallback(self, test_config, engine_factory, tmp_path: Path):
        """Pillow가 못 읽는 파일 → 엔진 identify."""
        path = tmp_path / "layered.psd"
        path.write_bytes(b"8BPS-not-really")
        engine = engine_factory(identity=EngineIdentity(1200, 900, 300, ResolutionUnit.INCH))

        result = ImageService(test_config, engine).probe_size(path)

        assert result.success
        assert (result.asset.pixel_width, result.asset.pixel_height) == (1200, 900)
        assert engine.identify_calls == [path]

    def test_engine_resolution_used_when_headers_unreadable(
        self, test_config, engine_factory, tmp_path: Path
    ):
        """메타데이터를 못 읽어도 엔진이 해상도를 알면 기본값/경고 없음."""
        path = tmp_path / "scan.psd"
        path.write_bytes(b"8BPS-not-really")
        engine = engine_factory(identity=EngineIdentity(1200, 900, 150, ResolutionUnit.INCH))

        result = ImageService(test_config, engine).probe_size(path)

        assert result.success
        assert result.asset.dpi == 150.0
        assert result.asset.dpi_source == "engine"
        assert not result.asset.dpi_is_fallback
        assert result.size_text == "20.3 x 15.2 cm"
        assert result.warnings == []

    def test_engine_without_resolution_defaults(
        self, test_config, engine_factory, tmp_path: Path
    ):
        path = tmp_path / "scan.psd"
        path.write_bytes(b"8BPS-not-really")
        engine = engine_factory(identity=EngineIdentity(1200, 900))

        result = ImageService(test_config, engine).probe_size(path)

        assert result.asset.dpi_source == "default"
        assert result.warnings == ["RESOLUTION_DEFAULTED: 300 dpi"]

    def test_dimensions_unavailable(self, service, tmp_path: Path):
        path = tmp_path / "broken.tif"
        path.write_bytes(b"garbage")

        result = service.probe_size(path)

        assert not result.success
        assert result.error_code == ErrorCodes.DIMENSIONS_UNAVAILABLE

    def test_read_pixel_size_unreadable(self, tmp_path: Path):
        path = tmp_path / "x.jpg"
        path.write_bytes(b"\x00\x01")
        assert read_pixel_size(path) is None


# =============================================================================
# Rename / Replicate
# =============================================================================


class TestRename:
    """배치 이름 변경."""

    def test_rename_and_run_log(self, service, make_image, test_config):
        a = make_image("IMG_0001.jpg", color="red")
        b = make_image("IMG_0002.JPG", color="blue")

        result = service.rename([(a, "glossy"), (b, "matte")])

        assert result.success
        assert [r.final_name.split("_")[0] for r in result.results] == ["glossy-1", "matte-2"]
        assert result.results[1].final_name.endswith(".JPG")
        assert all(r.final_path.exists() for r in result.results)
        assert not a.exists()

        logs = list_run_logs(test_config.logs_dir)
        assert len(logs) == 1
        data = json.loads(logs[0].read_text(encoding="utf-8"))
        assert data["run_id"] == result.run_id
        assert data["result"] == "success"
        assert len(data["entries"]) == 2

    def test_invalid_category_returns_error(self, service, make_image, test_config):
        a = make_image("a.jpg")

        result = service.rename([(a, "../escape")])

        assert not result.success
        assert result.error_code == ErrorCodes.INVALID_CATEGORY
        assert result.results == []
        assert a.exists()

        data = json.loads(list_run_logs(test_config.logs_dir)[0].read_text(encoding="utf-8"))
        assert data["result"] == "failed"
        assert data["error_code"] == ErrorCodes.INVALID_CATEGORY

    def test_no_logs_dir(self, test_config, fake_engine, make_image, tmp_path: Path):
        test_config.logs_dir = None
        a = make_image("a.jpg")

        assert ImageService(test_config, fake_engine).rename([(a, "canvas")]).success
        assert not (tmp_path / "logs").exists()


class TestReplicate:
    """복제."""

    def test_three_copies(self, service, make_image):
        src = make_image("print.jpg")

        result = service.replicate([(src, 3)])

        assert result.success
        created = result.copies[str(src)]
        assert [Path(p).name for p in created] == ["print-1.jpg", "print-2.jpg", "print-3.jpg"]
        assert not src.exists()
        assert all(Path(p).exists() for p in created)

    def test_invalid_copies(self, service, make_image):
        src = make_image("print.jpg")

        result = service.replicate([(src, 0)])

        assert not result.success
        assert result.error_code == ErrorCodes.INVALID_COPIES
        assert src.exists()


# =============================================================================
# Process
# =============================================================================


class TestProcess:
    """레이아웃 변환 + 원자적 교체."""

    def test_crop_on_preset_replaces_source(self, service, make_image, fake_engine, tmp_path: Path):
        path = make_image("poster.jpg", size=(1000, 800), dpi=(300, 300))

        result = service.process(
            path, mode="crop", preset="A4", crop=CropRect(x=10, y=10, w=80, h=80)
        )

        assert result.success
        assert result.final_path == path
        assert result.final_name == "poster.jpg"
        assert (result.geometry.canvas_width, result.geometry.canvas_height) == (2480, 3508)
        with Image.open(path) as img:
            assert img.size == (2480, 3508)
        assert _leftover_temps(tmp_path) == []
        assert not (tmp_path / ".printprep.lock").exists()

        _, instructions, output = fake_engine.transform_calls[0]
        assert instructions == ["crop:2480x3508"]
        assert output.name == ".poster.printprep.tmp.jpg"

    def test_default_mode_is_pad(self, service, make_image):
        path = make_image("a.jpg", size=(600, 400), dpi=(300, 300))

        result = service.process(path, target_width_cm=10, target_height_cm=10)

        assert result.success
        assert result.geometry.mode.value == "pad"
        assert result.geometry.offset_y == 197

    def test_border_uses_source_dpi(self, service, make_image):
        path = make_image("a.jpg", size=(900, 900), dpi=(300, 300))

        result = service.process(path, mode="border", border=BorderInsets(top=1.0))

        assert result.success
        with Image.open(path) as img:
            assert img.size == (900, 1018)

    def test_border_without_dpi_logs_warning(self, service, make_image, test_config):
        path = make_image("a.jpg", size=(900, 900))

        result = service.process(path, mode="mirror", border=BorderInsets(left=1.0))

        assert result.success
        assert result.warnings == ["RESOLUTION_DEFAULTED: 300 dpi"]
        data = json.loads(list_run_logs(test_config.logs_dir)[0].read_text(encoding="utf-8"))
        assert data["warnings"][0]["code"] == ErrorCodes.RESOLUTION_DEFAULTED

    def test_engine_failure_leaves_source(self, test_config, engine_factory, make_image, tmp_path: Path):
        path = make_image("a.jpg", size=(300, 200), dpi=(300, 300))
        before = path.read_bytes()
        engine = engine_factory(fail_with=ErrorCodes.ENGINE_FAILED)

        result = ImageService(test_config, engine).process(
            path, mode="resize", target_width_cm=5, target_height_cm=5
        )

        assert not result.success
        assert result.error_code == ErrorCodes.ENGINE_FAILED
        assert path.read_bytes() == before
        assert _leftover_temps(tmp_path) == []
        assert not (tmp_path / ".printprep.lock").exists()

    def test_unknown_preset(self, service, make_image, fake_engine):
        path = make_image("a.jpg")

        result = service.process(path, preset="Letter")

        assert not result.success
        assert result.error_code == ErrorCodes.UNKNOWN_PRESET
        assert fake_engine.transform_calls == []

    def test_unknown_mode(self, service, make_image):
        result = service.process(make_image("a.jpg"), mode="stretch", preset="A4")
        assert result.error_code == ErrorCodes.INVALID_TRANSFORM

    def test_missing_source(self, service, tmp_path: Path):
        result = service.process(tmp_path / "gone.jpg", preset="A4")
        assert result.error_code == ErrorCodes.SOURCE_MISSING


class TestLookups:
    def test_presets_and_categories(self, service):
        assert service.presets()["A4"] == (21.0, 29.7)
        assert "glossy" in service.categories()
