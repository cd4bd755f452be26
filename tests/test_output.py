"""Tests for model export, output paths, progress reporting and settings."""

import logging
import threading

import numpy as np
import pytest
from PIL import Image

from texrecon.core.errors import ConfigurationError, OutputError
from texrecon.core.exporter import save_model
from texrecon.core.model import Model
from texrecon.core.progress import ProgressCounter, Timer
from texrecon.core.settings import Arguments, DataTerm, Settings, parse_args
from texrecon.core.workspace import check_destination, output_paths
from texrecon.logging_config import setup_logging


def _triangle_model():
    image = np.zeros((4, 4, 3), dtype=np.uint8)
    image[..., 0] = 255
    return Model(
        points=np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0]], dtype=np.float32),
        normals=np.array([[0, 0, 1]] * 3, dtype=np.float32),
        tex_coords=np.array([[0.1, 0.1], [0.9, 0.1], [0.1, 0.9]], dtype=np.float32),
        triangles=np.array([[0, 1, 2]], dtype=np.int32),
        texture_width=4,
        texture_height=4,
        texture_data=image.tobytes(),
    )


class TestSaveModel:

    def test_writes_obj_mtl_png(self, tmp_path):
        obj_path = save_model(_triangle_model(), tmp_path / "tri")

        assert obj_path == tmp_path / "tri.obj"
        obj = obj_path.read_text()
        assert "mtllib tri.mtl" in obj
        assert "usemtl tri_material" in obj
        assert sum(line.startswith("v ") for line in obj.splitlines()) == 3
        assert sum(line.startswith("vt ") for line in obj.splitlines()) == 3
        assert sum(line.startswith("vn ") for line in obj.splitlines()) == 3
        assert sum(line.startswith("f ") for line in obj.splitlines()) == 1

        mtl = (tmp_path / "tri.mtl").read_text()
        assert "newmtl tri_material" in mtl
        assert "map_Kd tri.png" in mtl

        with Image.open(tmp_path / "tri.png") as img:
            assert img.size == (4, 4)
            assert img.getpixel((0, 0))[:3] == (255, 0, 0)

    def test_empty_model(self, tmp_path):
        save_model(Model(), tmp_path / "empty")
        obj = (tmp_path / "empty.obj").read_text()
        assert "mtllib empty.mtl" in obj
        assert not any(line.startswith(("v ", "f ")) for line in obj.splitlines())
        assert "map_Kd" not in (tmp_path / "empty.mtl").read_text()
        assert not (tmp_path / "empty.png").exists()

    def test_unwritable_destination(self, tmp_path):
        with pytest.raises(OutputError):
            save_model(_triangle_model(), tmp_path / "missing" / "tri")


class TestOutputPaths:

    def test_layout(self, tmp_path):
        paths = output_paths(tmp_path / "scene")
        assert paths.conf == tmp_path / "scene.conf"
        assert paths.timings == tmp_path / "scene_timings.csv"
        assert paths.labeling == tmp_path / "scene_labeling.vec"
        assert paths.data_costs == tmp_path / "scene_data_costs.spt"
        assert paths.view_selection_model == tmp_path / "scene_view_selection"

    def test_missing_directory(self, tmp_path):
        with pytest.raises(ConfigurationError):
            check_destination(tmp_path / "missing" / "scene")

    def test_existing_directory(self, tmp_path):
        assert check_destination(tmp_path / "scene").model == tmp_path / "scene"


class TestProgress:

    def test_concurrent_increments_not_lost(self):
        counter = ProgressCounter("work", 8000)

        def worker():
            for _ in range(1000):
                counter.inc()

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert counter.count == 8000

    def test_reports_last_increment(self):
        messages = []
        counter = ProgressCounter("Patches", 3, messages.append)
        for _ in range(3):
            counter.inc()
        assert messages[-1] == "Patches: 3 of 3"

    def test_timer_csv(self, tmp_path):
        timer = Timer()
        timer.measure("Loading")
        timer.measure("Total")
        path = tmp_path / "timings.csv"
        timer.write_to_file(path)

        lines = path.read_text().splitlines()
        assert lines[0] == "Event,Time"
        assert [line.split(",")[0] for line in lines[1:]] == ["Loading", "Total"]
        assert [event for event, _ in timer.measurements] == ["Loading", "Total"]

    def test_timer_unwritable(self, tmp_path):
        with pytest.raises(OutputError):
            Timer().write_to_file(tmp_path / "missing" / "timings.csv")


class TestSettings:

    def test_defaults(self):
        arguments, debug = parse_args(["scene", "mesh.ply", "out/model"])
        assert not debug
        assert arguments.settings == Settings()
        assert arguments.labeling_file == ""
        assert arguments.num_threads is None

    def test_flags(self):
        arguments, debug = parse_args([
            "scene", "mesh.ply", "out/model", "-d", "area", "-L", "labels.vec",
            "--skip_global_seam_leveling", "--skip_local_seam_leveling",
            "--skip_geometric_visibility_test", "--keep_unseen_faces",
            "--write_timings", "--num_threads", "3", "--debug",
        ])
        assert debug
        assert arguments.settings.data_term == DataTerm.AREA
        assert not arguments.settings.global_seam_leveling
        assert not arguments.settings.local_seam_leveling
        assert not arguments.settings.geometric_visibility_test
        assert arguments.settings.keep_unseen_faces
        assert arguments.labeling_file == "labels.vec"
        assert arguments.write_timings
        assert arguments.num_threads == 3

    def test_invalid_data_term(self):
        with pytest.raises(SystemExit):
            parse_args(["scene", "mesh.ply", "out", "-d", "nope"])
        with pytest.raises(ConfigurationError):
            Settings(data_term="nope").validate()

    def test_to_string(self):
        text = Arguments(in_scene="scene", labeling_file="l.vec").to_string()
        assert "Input scene: \tscene" in text
        assert "Labeling file: \tl.vec" in text


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


class TestLoggingSetup:

    def test_progress_to_stdout_problems_to_stderr(self, capsys, restore_root_logger):
        setup_logging()
        log = logging.getLogger("texrecon.test")
        log.info("Generating texture patches")
        log.debug("hidden at INFO")
        log.warning("Dropping patch")
        log.error("Wrong labeling file")

        out, err = capsys.readouterr()
        assert "Generating texture patches" in out
        assert "hidden at INFO" not in out
        assert "Dropping patch" not in out and "Dropping patch" in err
        assert "Wrong labeling file" in err
        assert "Generating texture patches" not in err

    def test_debug_flag(self, capsys, restore_root_logger):
        setup_logging(debug=True)
        logging.getLogger("texrecon.test").debug("per-view detail")
        assert "per-view detail" in capsys.readouterr().out

    def test_log_file_receives_everything(self, tmp_path, capsys, restore_root_logger):
        log_file = tmp_path / "logs" / "texrecon.log"
        setup_logging(log_file=log_file)
        log = logging.getLogger("texrecon.test")
        log.info("stage done")
        log.warning("something odd")
        for handler in logging.getLogger().handlers:
            handler.flush()

        text = log_file.read_text()
        assert "stage done" in text
        assert "something odd" in text
