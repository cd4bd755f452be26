"""Tests for data costs and view selection."""

import numpy as np
import pytest

from texrecon.core.data_costs import DataCosts, calculate_data_costs
from texrecon.core.errors import DataCostLoadError
from texrecon.core.graph import Graph, build_adjacency_graph
from texrecon.core.settings import DataTerm, Settings
from texrecon.core.view_selection import icm_optimize, view_selection


def _graph(mesh, mesh_info):
    graph = Graph(mesh.num_faces)
    build_adjacency_graph(mesh, mesh_info, graph)
    return graph


class TestCalculateDataCosts:

    @pytest.mark.parametrize("data_term", [DataTerm.AREA, DataTerm.GMI])
    def test_each_view_sees_its_side(self, tetra_mesh, tetra_views, data_term):
        settings = Settings(data_term=data_term, geometric_visibility_test=False)
        costs = calculate_data_costs(tetra_mesh, tetra_views, settings)

        assert sorted(costs.face_costs(2)) == [0]
        assert sorted(costs.face_costs(3)) == [0]
        assert sorted(costs.face_costs(0)) == [1]
        assert sorted(costs.face_costs(1)) == [1]

    def test_costs_normalized(self, tetra_mesh, tetra_views):
        settings = Settings(data_term=DataTerm.AREA, geometric_visibility_test=False)
        _, _, values = calculate_data_costs(tetra_mesh, tetra_views, settings).to_arrays()
        assert values.min() >= 0.0
        assert values.max() <= 1.0
        # The best-rated pair defines the scale.
        assert np.isclose(values.min(), 0.0)

    def test_occlusion_test(self, tetra_mesh, tetra_views):
        pytest.importorskip("open3d")
        with_test = calculate_data_costs(tetra_mesh, tetra_views, Settings(data_term=DataTerm.AREA))
        without = calculate_data_costs(
            tetra_mesh, tetra_views,
            Settings(data_term=DataTerm.AREA, geometric_visibility_test=False),
        )
        # A convex mesh never occludes its own front faces.
        assert with_test.num_entries() == without.num_entries()

    def test_flat_images_rate_nothing_with_gmi(self, tetra_mesh, tetra_views):
        for view in tetra_views:
            view.set_image(np.full((view.height, view.width, 3), 90, dtype=np.uint8))
        settings = Settings(data_term=DataTerm.GMI, geometric_visibility_test=False)
        assert calculate_data_costs(tetra_mesh, tetra_views, settings).num_entries() == 0


class TestDataCostFiles:

    def test_save_and_load(self, tmp_path):
        costs = DataCosts(3, 2)
        costs.set_value(0, 1, 0.25)
        costs.set_value(2, 0, 0.75)
        path = tmp_path / "costs.spt"
        DataCosts.save_to_file(costs, path)

        assert path.is_file()
        loaded = DataCosts.load_from_file(path)
        assert (loaded.num_faces, loaded.num_views) == (3, 2)
        assert loaded.get_value(0, 1) == pytest.approx(0.25)
        assert loaded.get_value(2, 0) == pytest.approx(0.75)
        assert loaded.get_value(1, 0) is None

    def test_load_garbage(self, tmp_path):
        path = tmp_path / "costs.spt"
        path.write_bytes(b"not a cost file")
        with pytest.raises(DataCostLoadError):
            DataCosts.load_from_file(path)

    def test_load_missing(self, tmp_path):
        with pytest.raises(DataCostLoadError):
            DataCosts.load_from_file(tmp_path / "missing.spt")


class TestViewSelection:

    def test_labels_follow_only_candidate(self, tetra_mesh, tetra_mesh_info, tetra_views):
        settings = Settings(data_term=DataTerm.AREA, geometric_visibility_test=False)
        costs = calculate_data_costs(tetra_mesh, tetra_views, settings)
        graph = _graph(tetra_mesh, tetra_mesh_info)
        view_selection(costs, graph, settings)
        assert graph.get_labels().tolist() == [2, 2, 1, 1]

    def test_unseen_faces_stay_unlabeled(self):
        graph = Graph(3)
        graph.add_edge(0, 1)
        graph.add_edge(1, 2)
        costs = DataCosts(3, 1)
        costs.set_value(0, 0, 0.0)
        icm_optimize(graph, costs, Settings())
        assert graph.get_labels().tolist() == [1, 0, 0]

    def test_smoothness_removes_isolated_label(self):
        # Path 0-1-2: face 1 slightly prefers view 1 but both neighbors use view 0.
        graph = Graph(3)
        graph.add_edge(0, 1)
        graph.add_edge(1, 2)
        costs = DataCosts(3, 2)
        for face in range(3):
            costs.set_value(face, 0, 0.1)
            costs.set_value(face, 1, 0.9)
        costs.set_value(1, 0, 0.3)
        costs.set_value(1, 1, 0.2)

        icm_optimize(graph, costs, Settings(), smoothness_weight=0.5)
        assert graph.get_labels().tolist() == [1, 1, 1]

    def test_custom_optimizer(self):
        graph = Graph(2)
        costs = DataCosts(2, 3)

        def constant(g, data_costs, settings):
            g.set_labels([3, 3])

        view_selection(costs, graph, Settings(), optimizer=constant)
        assert graph.get_labels().tolist() == [3, 3]

    def test_face_count_mismatch(self):
        with pytest.raises(ValueError):
            view_selection(DataCosts(2, 1), Graph(3), Settings())
