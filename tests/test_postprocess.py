"""Tests for texture patches and the parallel validity-mask pass."""

import copy

import numpy as np
import pytest

from texrecon.core.graph import Graph, build_adjacency_graph
from texrecon.core.postprocess import calculate_validity_masks
from texrecon.core.settings import Settings
from texrecon.core.texture_patch import TexturePatch, generate_texture_patches


def _patches(mesh, mesh_info, views, labels, settings=None):
    graph = Graph(mesh.num_faces)
    build_adjacency_graph(mesh, mesh_info, graph)
    graph.set_labels(labels)
    return generate_texture_patches(graph, mesh, mesh_info, views, settings or Settings())


class TestGenerateTexturePatches:

    def test_one_patch_per_label_component(self, tetra_mesh, tetra_mesh_info, tetra_views):
        patches, _ = _patches(tetra_mesh, tetra_mesh_info, tetra_views, [1, 1, 2, 2])
        assert len(patches) == 2
        assert [p.label for p in patches] == [1, 2]
        assert [p.faces for p in patches] == [[0, 1], [2, 3]]

    def test_texcoords_inside_patch(self, tetra_mesh, tetra_mesh_info, tetra_views):
        patches, _ = _patches(tetra_mesh, tetra_mesh_info, tetra_views, [1, 1, 2, 2])
        for patch in patches:
            assert patch.texcoords.shape == (3 * len(patch.faces), 2)
            assert patch.texcoords.min() >= 0
            assert np.all(patch.texcoords[:, 0] <= patch.width - 1)
            assert np.all(patch.texcoords[:, 1] <= patch.height - 1)

    def test_vertex_projection_infos(self, tetra_mesh, tetra_mesh_info, tetra_views):
        _, infos = _patches(tetra_mesh, tetra_mesh_info, tetra_views, [1, 1, 2, 2])
        # Every tetrahedron vertex lies in both two-face patches.
        for vertex_infos in infos:
            assert sorted(i.texture_patch_id for i in vertex_infos) == [0, 1]

    def test_unlabeled_faces_dropped(self, tetra_mesh, tetra_mesh_info, tetra_views):
        patches, _ = _patches(tetra_mesh, tetra_mesh_info, tetra_views, [1, 0, 0, 0])
        assert len(patches) == 1

    def test_unseen_faces_kept(self, tetra_mesh, tetra_mesh_info, tetra_views):
        patches, _ = _patches(tetra_mesh, tetra_mesh_info, tetra_views, [1, 0, 0, 0],
                              Settings(keep_unseen_faces=True))
        assert [p.label for p in patches] == [1, 0]
        assert patches[1].faces == [1, 2, 3]


class TestAdjustColors:

    def _square_patch(self):
        image = np.full((6, 6, 3), 0.5, dtype=np.float32)
        texcoords = [(1, 1), (4, 1), (1, 4), (4, 1), (4, 4), (1, 4)]
        return TexturePatch(1, [0, 1], texcoords, image)

    def test_zero_adjustment_sets_mask_only(self):
        patch = self._square_patch()
        patch.adjust_colors(np.zeros((6, 3)))
        assert patch.validity_mask[1:5, 1:5].all()
        # One pixel of dilation around the covered square.
        assert patch.validity_mask[0, 2]
        assert np.allclose(patch.image, 0.5)

    def test_constant_adjustment(self):
        patch = self._square_patch()
        patch.adjust_colors(np.full((6, 3), 0.25))
        assert np.allclose(patch.image[2, 2], 0.75)

    def test_adjustment_count_checked(self):
        patch = self._square_patch()
        with pytest.raises(ValueError):
            patch.adjust_colors(np.zeros((5, 3)))


class TestCalculateValidityMasks:

    def test_every_patch_gets_a_mask(self, tetra_mesh, tetra_mesh_info, tetra_views):
        patches, _ = _patches(tetra_mesh, tetra_mesh_info, tetra_views, [1, 1, 2, 2])
        messages = []
        processed = calculate_validity_masks(patches, num_threads=2, on_progress=messages.append)
        assert processed == 2
        assert all(p.validity_mask.any() for p in patches)
        assert messages[-1].endswith("2 of 2")

    def test_thread_count_does_not_change_result(self, tetra_mesh, tetra_mesh_info, tetra_views):
        patches, _ = _patches(tetra_mesh, tetra_mesh_info, tetra_views, [1, 2, 1, 2])
        serial = copy.deepcopy(patches)
        parallel = copy.deepcopy(patches)

        calculate_validity_masks(serial, num_threads=1)
        calculate_validity_masks(parallel, num_threads=8)

        for a, b in zip(serial, parallel):
            assert np.array_equal(a.validity_mask, b.validity_mask)
            assert np.array_equal(a.image, b.image)

    def test_empty_patch_list(self):
        assert calculate_validity_masks([]) == 0

    def test_worker_errors_propagate(self):
        class Broken(TexturePatch):
            def adjust_colors(self, adjust_values):
                raise RuntimeError("boom")

        patch = Broken(1, [0], [(0, 0), (1, 0), (0, 1)], np.zeros((2, 2, 3)))
        with pytest.raises(RuntimeError, match="boom"):
            calculate_validity_masks([patch], num_threads=2)
