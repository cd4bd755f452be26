"""
Face adjacency graph with per-node view labels.

One node per mesh face; an undirected edge joins two faces that share a
mesh edge. Each node carries an integer label:

    0        — unassigned / background (no view textures this face)
    1 .. K   — view index + 1

Labels are written once per run, either by the view-selection optimizer or
by the labeling override path, and only read afterwards.
"""

import logging

import numpy as np
from scipy.sparse import coo_matrix
from scipy.sparse.csgraph import connected_components

from texrecon.core.mesh import MeshInfo, TriangleMesh

logger = logging.getLogger(__name__)


class Graph:
    """Undirected graph over mesh faces with one label per node."""

    def __init__(self, num_nodes: int):
        self._adj: list[list[int]] = [[] for _ in range(num_nodes)]
        self._labels = np.zeros(num_nodes, dtype=np.int64)
        self._num_edges = 0
        self._edge_array: np.ndarray | None = None

    def num_nodes(self) -> int:
        return len(self._adj)

    def num_edges(self) -> int:
        return self._num_edges

    def add_edge(self, n1: int, n2: int) -> None:
        if n1 == n2 or self.has_edge(n1, n2):
            return
        self._adj[n1].append(n2)
        self._adj[n2].append(n1)
        self._num_edges += 1
        self._edge_array = None

    def has_edge(self, n1: int, n2: int) -> bool:
        return n2 in self._adj[n1]

    def get_adj_nodes(self, node: int) -> list[int]:
        return self._adj[node]

    def get_label(self, node: int) -> int:
        return int(self._labels[node])

    def set_label(self, node: int, label: int) -> None:
        self._labels[node] = label

    def get_labels(self) -> np.ndarray:
        """Copy of all node labels, indexed by face."""
        return self._labels.copy()

    def set_labels(self, labels) -> None:
        labels = np.asarray(labels, dtype=np.int64)
        if labels.shape != self._labels.shape:
            raise ValueError(
                f"Expected {len(self._labels)} labels, got {labels.shape}"
            )
        self._labels[:] = labels

    def edges(self) -> np.ndarray:
        """(E, 2) array of edges with n1 < n2, built once until the next add_edge()."""
        if self._edge_array is None:
            pairs = [(n1, n2) for n1, adj in enumerate(self._adj) for n2 in adj if n1 < n2]
            self._edge_array = np.array(pairs, dtype=np.int64).reshape(-1, 2)
            self._edge_array.setflags(write=False)
        return self._edge_array

    def get_subgraphs(self, label: int) -> list[list[int]]:
        """
        Connected components of the nodes carrying `label`.

        Components are returned in order of their smallest node, and each
        component's nodes in ascending order, so the result does not depend
        on edge insertion order.
        """
        nodes = np.flatnonzero(self._labels == label)
        if len(nodes) == 0:
            return []

        local = np.full(self.num_nodes(), -1, dtype=np.int64)
        local[nodes] = np.arange(len(nodes))

        edges = self.edges()
        if len(edges):
            keep = (local[edges[:, 0]] >= 0) & (local[edges[:, 1]] >= 0)
            edges = local[edges[keep]]

        matrix = coo_matrix(
            (np.ones(len(edges), dtype=np.int8), (edges[:, 0], edges[:, 1])),
            shape=(len(nodes), len(nodes)),
        )
        _, component = connected_components(matrix, directed=False)

        subgraphs: dict[int, list[int]] = {}
        for node, c in zip(nodes.tolist(), component.tolist()):
            subgraphs.setdefault(c, []).append(node)
        return sorted(subgraphs.values(), key=lambda s: s[0])


def build_adjacency_graph(mesh: TriangleMesh, mesh_info: MeshInfo, graph: Graph) -> None:
    """
    Connect every pair of faces sharing a mesh edge.

    Walks the faces around each vertex (from MeshInfo) and links faces that
    have the vertex's successor in common, so non-manifold edges connect all
    faces meeting there.
    """
    faces = mesh.triangles()
    for v, adjacent in enumerate(mesh_info.vertex_faces):
        for i, f1 in enumerate(adjacent):
            others = set(faces[f1].tolist())
            others.discard(v)
            for f2 in adjacent[i + 1:]:
                if others & set(faces[f2].tolist()):
                    graph.add_edge(f1, f2)

    logger.info("Adjacency graph: %d nodes, %d edges", graph.num_nodes(), graph.num_edges())
