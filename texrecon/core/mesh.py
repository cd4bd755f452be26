"""
Triangle mesh container and loading.

The pipeline works on a plain, index-based mesh representation:

    vertices — (N, 3) float32 positions
    normals  — (N, 3) float32 per-vertex normals
    faces    — flat uint32 array of length 3·F; face f uses
               vertices faces[3f], faces[3f + 1], faces[3f + 2]

The flat face buffer is what the atlas consolidator indexes into
(`face * 3` offsets), and what the library call receives from its caller.

Meshes are loaded from disk with trimesh, or wrapped from caller buffers.
prepare_mesh() fills in missing vertex normals and builds MeshInfo, the
per-vertex face adjacency used by graph building and seam leveling.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np
import trimesh

from texrecon.core.errors import LoadError

logger = logging.getLogger(__name__)


@dataclass
class TriangleMesh:
    """Index-based triangle mesh with per-vertex normals."""
    vertices: np.ndarray
    normals: np.ndarray
    faces: np.ndarray

    @property
    def num_vertices(self) -> int:
        return len(self.vertices)

    @property
    def num_faces(self) -> int:
        return len(self.faces) // 3

    def face_vertex_ids(self, faces) -> np.ndarray:
        """Vertex ids of one face, or of several faces flattened three per face."""
        return self.triangles()[faces].reshape(-1)

    def triangles(self) -> np.ndarray:
        """(F, 3) view of the face buffer."""
        return self.faces.reshape(-1, 3)

    def face_normals(self) -> np.ndarray:
        """(F, 3) unit face normals; degenerate faces get a zero normal."""
        tris = self.vertices[self.triangles()]
        n = np.cross(tris[:, 1] - tris[:, 0], tris[:, 2] - tris[:, 0])
        length = np.linalg.norm(n, axis=1, keepdims=True)
        return np.divide(n, length, out=np.zeros_like(n), where=length > 0)

    def face_centroids(self) -> np.ndarray:
        return self.vertices[self.triangles()].mean(axis=1)


@dataclass
class MeshInfo:
    """
    Per-vertex topology derived from a mesh.

    vertex_faces[v] lists the faces using vertex v in ascending order.
    is_border[v] is True for vertices on an open boundary edge.
    """
    vertex_faces: list[list[int]] = field(default_factory=list)
    is_border: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=bool))


def _load_trimesh(source_mesh: Path, **kwargs) -> trimesh.Trimesh:
    """
    Load a mesh file via trimesh and ensure we always get a Trimesh object.

    trimesh.load() can return either a trimesh.Trimesh or a trimesh.Scene
    depending on whether the file contains multiple material groups. This
    helper collapses the Scene into a single Trimesh so the rest of the
    pipeline can rely on a consistent type.
    """
    result = trimesh.load(source_mesh, **kwargs)

    if isinstance(result, trimesh.Scene):
        geometries = list(result.geometry.values())
        if not geometries:
            raise LoadError(f"Mesh file contains no geometry: {source_mesh}")
        if len(geometries) == 1:
            result = geometries[0]
        else:
            result = trimesh.util.concatenate(geometries)

    return result


def load_mesh(path) -> TriangleMesh:
    """
    Load a triangle mesh (PLY, OBJ, or any format trimesh reads).

    process=False keeps the vertex order and count exactly as stored; merging
    duplicate vertices would change the indices a labeling file refers to.

    Raises:
        LoadError: If the file is missing, unreadable or not a triangle mesh.
    """
    path = Path(path)
    if not path.is_file():
        raise LoadError(f"Could not load mesh: file not found: {path}")

    try:
        tm = _load_trimesh(path, process=False)
    except LoadError:
        raise
    except Exception as e:
        raise LoadError(f"Could not load mesh: {e}") from e

    if not isinstance(tm, trimesh.Trimesh) or len(tm.faces) == 0:
        raise LoadError(f"Could not load mesh: {path} holds no triangles")

    vertices = np.asarray(tm.vertices, dtype=np.float32)
    faces = np.asarray(tm.faces, dtype=np.uint32).reshape(-1)

    # Stored normals when the file has them, area-weighted face normals
    # otherwise (trimesh computes them on first access).
    normals = np.asarray(tm.vertex_normals, dtype=np.float32).copy()

    logger.info("Loaded mesh %s: %d vertices, %d faces",
                path.name, len(vertices), len(faces) // 3)
    return TriangleMesh(vertices=vertices, normals=normals, faces=faces)


def mesh_from_buffers(points, normals, triangles) -> TriangleMesh:
    """
    Wrap caller-supplied buffers as a TriangleMesh.

    Args:
        points:    (N, 3) vertex positions (any array-like).
        normals:   (N, 3) vertex normals, or empty to have them computed.
        triangles: (F, 3) vertex index triples.

    Raises:
        LoadError: On inconsistent shapes or out-of-range indices.
    """
    try:
        vertices = np.array(points, dtype=np.float32).reshape(-1, 3)
        tris = np.asarray(triangles, dtype=np.int64).reshape(-1, 3)
        if normals is None or len(normals) == 0:
            vertex_normals = np.zeros_like(vertices)
        else:
            vertex_normals = np.array(normals, dtype=np.float32).reshape(-1, 3)
    except ValueError as e:
        raise LoadError(f"Malformed mesh buffers: {e}") from e

    if len(tris) == 0:
        raise LoadError("Mesh has no triangles")
    if len(vertex_normals) != len(vertices):
        raise LoadError(
            f"Mesh has {len(vertices)} points but {len(vertex_normals)} normals"
        )
    if tris.min() < 0 or tris.max() >= len(vertices):
        raise LoadError("Mesh triangle indices out of range")

    return TriangleMesh(
        vertices=vertices,
        normals=vertex_normals,
        faces=tris.astype(np.uint32).reshape(-1),
    )


def prepare_mesh(mesh: TriangleMesh) -> MeshInfo:
    """
    Ensure usable vertex normals and build per-vertex topology.

    Vertex normals that are missing (zero length) are replaced by the
    area-weighted average of adjacent face normals, computed by trimesh.

    Returns:
        MeshInfo for the mesh.
    """
    lengths = np.linalg.norm(mesh.normals, axis=1)
    if len(lengths) and np.any(lengths < 1e-8):
        tm = trimesh.Trimesh(vertices=mesh.vertices, faces=mesh.triangles(),
                             process=False)
        computed = np.asarray(tm.vertex_normals, dtype=np.float32)
        missing = lengths < 1e-8
        mesh.normals[missing] = computed[missing]
        logger.debug("Computed %d missing vertex normals", int(missing.sum()))

    vertex_faces: list[list[int]] = [[] for _ in range(mesh.num_vertices)]
    for corner, vertex in enumerate(mesh.faces.tolist()):
        face = corner // 3
        if not vertex_faces[vertex] or vertex_faces[vertex][-1] != face:
            vertex_faces[vertex].append(face)

    # An edge used by exactly one face is a boundary edge.
    tris = mesh.triangles().astype(np.int64)
    edges = np.sort(np.concatenate([tris[:, [0, 1]], tris[:, [1, 2]], tris[:, [2, 0]]]), axis=1)
    unique_edges, counts = np.unique(edges, axis=0, return_counts=True)
    is_border = np.zeros(mesh.num_vertices, dtype=bool)
    is_border[unique_edges[counts == 1].reshape(-1)] = True

    return MeshInfo(vertex_faces=vertex_faces, is_border=is_border)
