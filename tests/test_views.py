"""Tests for texture views: projection, scene loading and raw buffers."""

import numpy as np
import pytest
from PIL import Image

from texrecon.core.errors import LoadError
from texrecon.core.views import (
    TextureView,
    debug_color,
    generate_debug_embeddings,
    generate_texture_views,
    generate_texture_views_from_buffers,
    read_cam_file,
)


class TestProjection:

    def test_principal_point_is_image_center(self, tetra_views):
        view = tetra_views[0]
        coords, depth = view.project([[0.0, 0.0, 0.0]])
        # K puts the optical axis at 32; the -0.5 shift makes integers pixel centers.
        assert np.allclose(coords, [[31.5, 31.5]])
        assert np.allclose(depth, [3.0])

    def test_camera_position(self, tetra_views):
        assert np.allclose(tetra_views[0].position, [0, 0, -3])
        assert np.allclose(tetra_views[1].position, [0, 0, 3])

    def test_behind_camera_is_nan(self, tetra_views):
        coords = tetra_views[0].get_pixel_coords([[0.0, 0.0, -5.0]])
        assert np.isnan(coords).all()

    def test_valid_pixel_margin(self, tetra_views):
        view = tetra_views[0]
        valid = view.valid_pixel([[0, 0], [62.9, 10], [63, 10], [-0.1, 5], [np.nan, 1]])
        assert valid.tolist() == [True, True, False, False, False]


class TestCamDirectory:

    def _write_view(self, directory, name, t):
        Image.fromarray(np.zeros((48, 64, 3), dtype=np.uint8)).save(directory / f"{name}.png")
        rotation = "1 0 0 0 1 0 0 0 1"
        (directory / f"{name}.cam").write_text(
            f"{t[0]} {t[1]} {t[2]} {rotation}\n0.5 0 0 1 0.5 0.5\n"
        )

    def test_loads_views_sorted(self, tmp_path):
        self._write_view(tmp_path, "b", (0, 0, 4))
        self._write_view(tmp_path, "a", (0, 0, 3))
        (tmp_path / "c.png").write_bytes(b"")  # no .cam file, skipped

        views = generate_texture_views(tmp_path)
        assert [v.id for v in views] == [0, 1]
        assert views[0].image_path.name == "a.png"
        assert np.allclose(views[0].t, [0, 0, 3])
        # Focal length normalized by the larger side (64).
        assert np.allclose(views[0].K, [[32, 0, 32], [0, 32, 24], [0, 0, 1]])
        assert (views[0].width, views[0].height) == (64, 48)

    def test_image_loaded_lazily(self, tmp_path):
        self._write_view(tmp_path, "a", (0, 0, 3))
        view = generate_texture_views(tmp_path)[0]
        assert view.get_image().shape == (48, 64, 3)

    def test_cam_file_defaults(self, tmp_path):
        path = tmp_path / "x.cam"
        path.write_text("1 2 3 1 0 0 0 1 0 0 0 1\n0.8\n")
        flen, paspect, ppoint, R, t = read_cam_file(path)
        assert flen == 0.8
        assert paspect == 1.0
        assert ppoint == (0.5, 0.5)
        assert np.allclose(t, [1, 2, 3])
        assert np.allclose(R, np.eye(3))

    def test_malformed_cam_file(self, tmp_path):
        path = tmp_path / "x.cam"
        path.write_text("1 2 3\n")
        with pytest.raises(LoadError):
            read_cam_file(path)

    def test_empty_scene(self, tmp_path):
        with pytest.raises(LoadError, match="No calibrated views"):
            generate_texture_views(tmp_path)

    def test_missing_scene(self, tmp_path):
        with pytest.raises(LoadError):
            generate_texture_views(tmp_path / "missing")


class TestBuffers:

    def test_intrinsics_vector_and_matrix_agree(self):
        image = bytes(4 * 4 * 3)
        Rt = np.hstack([np.eye(3), np.zeros((3, 1))]).reshape(-1)
        a = generate_texture_views_from_buffers(4, 4, [image], [[2, 3, 1.5, 2.5]], [Rt])
        b = generate_texture_views_from_buffers(
            4, 4, [image], [[2, 0, 1.5, 0, 3, 2.5, 0, 0, 1]], [np.eye(4).reshape(-1)],
        )
        assert np.allclose(a[0].K, b[0].K)
        assert np.allclose(a[0].R, b[0].R)
        assert np.allclose(a[0].t, b[0].t)

    def test_image_rows_top_down(self):
        raster = np.zeros((2, 3, 3), dtype=np.uint8)
        raster[0, 2] = (255, 0, 0)
        views = generate_texture_views_from_buffers(
            3, 2, [raster.tobytes()], [[1, 1, 1, 1]], [np.eye(4)],
        )
        assert tuple(views[0].get_image()[0, 2]) == (255, 0, 0)

    def test_wrong_buffer_size(self):
        with pytest.raises(LoadError):
            generate_texture_views_from_buffers(4, 4, [bytes(10)], [[1, 1, 1, 1]], [np.eye(4)])

    def test_count_mismatch(self):
        with pytest.raises(LoadError):
            generate_texture_views_from_buffers(4, 4, [bytes(48)], [], [np.eye(4)])

    def test_bad_calibration(self):
        with pytest.raises(LoadError):
            generate_texture_views_from_buffers(4, 4, [bytes(48)], [[1, 2, 3]], [np.eye(4)])
        with pytest.raises(LoadError):
            generate_texture_views_from_buffers(4, 4, [bytes(48)], [[1, 1, 1, 1]], [np.eye(3)])


class TestDebugEmbeddings:

    def test_distinct_colors(self):
        colors = {debug_color(i, 6) for i in range(6)}
        assert len(colors) == 6

    def test_views_become_flat(self, tetra_views):
        generate_debug_embeddings(tetra_views)
        for view in tetra_views:
            image = view.get_image()
            assert image.shape == (view.height, view.width, 3)
            assert (image == image[0, 0]).all()
        assert tuple(tetra_views[0].get_image()[0, 0]) != tuple(tetra_views[1].get_image()[0, 0])

    def test_texture_view_repr(self):
        view = TextureView(3, np.eye(3), np.eye(3), np.zeros(3), 8, 6,
                           image=np.zeros((6, 8, 3), dtype=np.uint8))
        assert "id=3" in repr(view)
