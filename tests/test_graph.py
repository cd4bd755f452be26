"""Tests for mesh loading, adjacency graph building and subgraph extraction."""

import numpy as np
import pytest

from texrecon.core.errors import LoadError
from texrecon.core.graph import Graph, build_adjacency_graph
from texrecon.core.mesh import load_mesh, mesh_from_buffers, prepare_mesh


class TestMesh:

    def test_flat_face_buffer(self, tetra_mesh):
        assert tetra_mesh.num_vertices == 4
        assert tetra_mesh.num_faces == 4
        assert tetra_mesh.faces.shape == (12,)
        assert tetra_mesh.face_vertex_ids(1).tolist() == [0, 1, 3]
        assert tetra_mesh.face_vertex_ids([3, 0]).tolist() == [1, 2, 3, 0, 2, 1]

    def test_outward_face_normals(self, tetra_mesh):
        normals = tetra_mesh.face_normals()
        centroids = tetra_mesh.face_centroids()
        assert np.all(np.einsum("ij,ij->i", normals, centroids) > 0)

    def test_closed_mesh_has_no_border(self, tetra_mesh_info):
        assert not tetra_mesh_info.is_border.any()
        assert all(len(faces) == 3 for faces in tetra_mesh_info.vertex_faces)

    def test_missing_normals_are_computed(self):
        points = [[0, 0, 0], [1, 0, 0], [0, 1, 0]]
        mesh = mesh_from_buffers(points, [], [[0, 1, 2]])
        info = prepare_mesh(mesh)
        assert np.allclose(mesh.normals, [[0, 0, 1]] * 3, atol=1e-6)
        assert info.is_border.all()

    def test_caller_buffers_not_modified(self):
        points = np.zeros((3, 3), dtype=np.float32)
        points[1, 0] = points[2, 1] = 1.0
        normals = np.zeros((3, 3), dtype=np.float32)
        mesh = mesh_from_buffers(points, normals, [[0, 1, 2]])
        prepare_mesh(mesh)
        assert not normals.any()

    def test_out_of_range_index(self):
        with pytest.raises(LoadError):
            mesh_from_buffers([[0, 0, 0], [1, 0, 0], [0, 1, 0]], [], [[0, 1, 3]])

    def test_load_ply(self, tmp_path):
        import trimesh

        path = tmp_path / "tri.ply"
        trimesh.Trimesh(vertices=[[0, 0, 0], [1, 0, 0], [0, 1, 0]],
                        faces=[[0, 1, 2]], process=False).export(path)
        mesh = load_mesh(path)
        assert mesh.num_vertices == 3
        assert mesh.num_faces == 1

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(LoadError):
            load_mesh(tmp_path / "nope.ply")


class TestAdjacencyGraph:

    def test_tetrahedron_is_complete(self, tetra_mesh, tetra_mesh_info):
        graph = Graph(tetra_mesh.num_faces)
        build_adjacency_graph(tetra_mesh, tetra_mesh_info, graph)
        assert graph.num_edges() == 6
        for face in range(4):
            assert sorted(graph.get_adj_nodes(face)) == [f for f in range(4) if f != face]

    def test_faces_sharing_only_a_vertex_are_not_adjacent(self):
        # Two triangles touching at vertex 0.
        mesh = mesh_from_buffers(
            [[0, 0, 0], [1, 0, 0], [0, 1, 0], [-1, 0, 0], [0, -1, 0]], [],
            [[0, 1, 2], [0, 3, 4]],
        )
        graph = Graph(2)
        build_adjacency_graph(mesh, prepare_mesh(mesh), graph)
        assert graph.num_edges() == 0

    def test_duplicate_edges_ignored(self):
        graph = Graph(3)
        graph.add_edge(0, 1)
        graph.add_edge(1, 0)
        graph.add_edge(2, 2)
        assert graph.num_edges() == 1
        assert graph.edges().tolist() == [[0, 1]]

    def test_edge_array_reused_until_graph_changes(self):
        graph = Graph(3)
        graph.add_edge(0, 1)
        first = graph.edges()
        assert graph.edges() is first
        assert not first.flags.writeable

        graph.add_edge(1, 2)
        assert graph.edges().tolist() == [[0, 1], [1, 2]]
        assert first.tolist() == [[0, 1]]


class TestSubgraphs:

    def test_components_per_label(self):
        # Path 0-1-2-3-4, labels split it into runs.
        graph = Graph(5)
        for n in range(4):
            graph.add_edge(n, n + 1)
        graph.set_labels([1, 1, 2, 1, 1])

        assert graph.get_subgraphs(1) == [[0, 1], [3, 4]]
        assert graph.get_subgraphs(2) == [[2]]
        assert graph.get_subgraphs(3) == []

    def test_relabel_after_subgraphs(self):
        graph = Graph(3)
        graph.add_edge(0, 1)
        graph.add_edge(1, 2)
        graph.set_labels([1, 1, 1])
        assert graph.get_subgraphs(1) == [[0, 1, 2]]

        # Labels change between calls; the cached edges must not.
        graph.set_label(1, 2)
        assert graph.get_subgraphs(1) == [[0], [2]]
        assert graph.num_edges() == 2

    def test_get_labels_returns_copy(self):
        graph = Graph(2)
        labels = graph.get_labels()
        labels[0] = 5
        assert graph.get_label(0) == 0

    def test_set_labels_checks_length(self):
        graph = Graph(2)
        with pytest.raises(ValueError):
            graph.set_labels([1, 2, 3])
