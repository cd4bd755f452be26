"""
Seam leveling — color correction where patches from different views meet.

Photos of the same surface rarely agree on brightness and white balance,
so patch borders show as visible seams. Two passes reduce them.

Global seam leveling:
    Solve for one RGB offset g per (vertex, patch) appearance such that on
    every seam vertex the adjusted colors of all its patches agree, while
    offsets inside a patch stay smooth:

        minimize  Σ_seam vertices Σ_(a,b)  (f_a + g_a − f_b − g_b)²
                + λ² Σ_patch edges (v1,v2)  (g_v1 − g_v2)²

    f is the patch color sampled at the vertex projection. The sparse
    least-squares system is solved per channel with scipy's lsqr; the
    offsets are then rasterized over each patch via adjust_colors(), which
    also establishes the validity masks.

Local seam leveling:
    After the global pass, residual differences remain along seam edges.
    For every seam edge both patches are sampled along the edge, the mean
    of the two is taken as the target, and each patch stores its own
    difference to that target at the seam pixels. The difference is then
    faded out over a strip of LOCAL_LEVELING_STRIP_WIDTH pixels using a
    distance transform (nearest seam pixel, linear falloff), restricted to
    the patch's valid pixels.
"""

import logging
import math

import numpy as np
from scipy.ndimage import distance_transform_edt
from scipy.sparse import coo_matrix
from scipy.sparse.linalg import lsqr

from texrecon.core.graph import Graph
from texrecon.core.mesh import MeshInfo, TriangleMesh
from texrecon.core.settings import GLOBAL_LEVELING_LAMBDA, LOCAL_LEVELING_STRIP_WIDTH

logger = logging.getLogger(__name__)


def _face_patch_map(num_faces: int, texture_patches: list) -> np.ndarray:
    face_patch = np.full(num_faces, -1, dtype=np.int64)
    for patch_id, patch in enumerate(texture_patches):
        face_patch[patch.faces] = patch_id
    return face_patch


def _projection(vertex_projection_infos, vertex: int, patch_id: int):
    for info in vertex_projection_infos[vertex]:
        if info.texture_patch_id == patch_id:
            return info.projection
    return None


def global_seam_leveling(graph: Graph, mesh: TriangleMesh, mesh_info: MeshInfo,
                         vertex_projection_infos: list, texture_patches: list,
                         lambda_: float = GLOBAL_LEVELING_LAMBDA,
                         on_progress=None) -> None:
    """
    Level colors across all seams jointly; finalizes every patch's pixels
    and validity mask.
    """
    # One unknown per (vertex, patch) appearance in a labeled patch.
    index: dict[tuple[int, int], int] = {}
    colors = []
    for vertex, infos in enumerate(vertex_projection_infos):
        for info in infos:
            patch = texture_patches[info.texture_patch_id]
            if patch.label == 0:
                continue
            index[(vertex, info.texture_patch_id)] = len(index)
            colors.append(patch.sample(info.projection)[0])

    num_unknowns = len(index)
    rows, cols, vals = [], [], []
    rhs = []

    colors = np.asarray(colors, dtype=np.float64).reshape(-1, 3)

    # Seam terms: every pair of patches sharing a vertex should agree.
    num_seam_vertices = 0
    for vertex, infos in enumerate(vertex_projection_infos):
        ids = [index[(vertex, i.texture_patch_id)] for i in infos
               if (vertex, i.texture_patch_id) in index]
        if len(ids) < 2:
            continue
        num_seam_vertices += 1
        for a in range(len(ids)):
            for b in range(a + 1, len(ids)):
                row = len(rhs)
                rows += [row, row]
                cols += [ids[a], ids[b]]
                vals += [1.0, -1.0]
                rhs.append(colors[ids[b]] - colors[ids[a]])

    # Smoothness terms along every edge inside a patch.
    tris = mesh.triangles().astype(np.int64)
    for patch_id, patch in enumerate(texture_patches):
        if patch.label == 0:
            continue
        for face in patch.faces:
            v = tris[face]
            for v1, v2 in ((v[0], v[1]), (v[1], v[2]), (v[2], v[0])):
                row = len(rhs)
                rows += [row, row]
                cols += [index[(int(v1), patch_id)], index[(int(v2), patch_id)]]
                vals += [lambda_, -lambda_]
                rhs.append(np.zeros(3))

    adjustments = np.zeros((num_unknowns, 3))
    if num_seam_vertices and num_unknowns:
        A = coo_matrix((vals, (rows, cols)), shape=(len(rhs), num_unknowns)).tocsr()
        b = np.asarray(rhs, dtype=np.float64)
        for channel in range(3):
            adjustments[:, channel] = lsqr(A, b[:, channel], atol=1e-8, btol=1e-8)[0]

    message = (f"Global seam leveling: {num_seam_vertices} seam vertices, "
               f"{num_unknowns} unknowns")
    logger.info(message)
    if on_progress:
        on_progress(message)

    for patch_id, patch in enumerate(texture_patches):
        adjust_values = np.zeros((len(patch.faces) * 3, 3), dtype=np.float32)
        if patch.label != 0:
            corners = tris[patch.faces].reshape(-1)
            for corner, vertex in enumerate(corners.tolist()):
                adjust_values[corner] = adjustments[index[(vertex, patch_id)]]
        patch.adjust_colors(adjust_values)


def _seam_edges(graph: Graph, mesh: TriangleMesh, face_patch: np.ndarray, texture_patches):
    """Yield (v1, v2, patch_a, patch_b) for every edge between two labeled patches."""
    tris = mesh.triangles()
    for f1, f2 in graph.edges().tolist():
        pa, pb = face_patch[f1], face_patch[f2]
        if pa < 0 or pb < 0 or pa == pb:
            continue
        if texture_patches[pa].label == 0 or texture_patches[pb].label == 0:
            continue
        shared = sorted(set(tris[f1].tolist()) & set(tris[f2].tolist()))
        if len(shared) == 2:
            yield shared[0], shared[1], int(pa), int(pb)


def local_seam_leveling(graph: Graph, mesh: TriangleMesh, vertex_projection_infos: list,
                        texture_patches: list,
                        strip_width: int = LOCAL_LEVELING_STRIP_WIDTH,
                        on_progress=None) -> None:
    """Fade the remaining per-seam color difference into each patch."""
    face_patch = _face_patch_map(mesh.num_faces, texture_patches)

    corrections = {}  # patch id → (sum image, count image)
    num_edges = 0
    for v1, v2, pa, pb in _seam_edges(graph, mesh, face_patch, texture_patches):
        ends = {}
        for patch_id in (pa, pb):
            p1 = _projection(vertex_projection_infos, v1, patch_id)
            p2 = _projection(vertex_projection_infos, v2, patch_id)
            if p1 is None or p2 is None:
                break
            ends[patch_id] = (p1, p2)
        if len(ends) != 2:
            continue
        num_edges += 1

        length = max(np.linalg.norm(ends[pa][1] - ends[pa][0]),
                     np.linalg.norm(ends[pb][1] - ends[pb][0]))
        t = np.linspace(0.0, 1.0, max(2, int(math.ceil(length)) + 1))[:, np.newaxis]

        points = {pid: p1 + t * (p2 - p1) for pid, (p1, p2) in ends.items()}
        samples = {pid: texture_patches[pid].sample(points[pid]) for pid in ends}
        target = 0.5 * (samples[pa] + samples[pb])

        for pid in (pa, pb):
            patch = texture_patches[pid]
            if pid not in corrections:
                corrections[pid] = (np.zeros(patch.image.shape, dtype=np.float64),
                                    np.zeros(patch.image.shape[:2], dtype=np.int64))
            total, count = corrections[pid]
            px = np.clip(np.rint(points[pid]).astype(np.int64), 0,
                         [patch.width - 1, patch.height - 1])
            np.add.at(total, (px[:, 1], px[:, 0]), target - samples[pid])
            np.add.at(count, (px[:, 1], px[:, 0]), 1)

    for pid, (total, count) in corrections.items():
        patch = texture_patches[pid]
        seam = count > 0
        mean = np.zeros_like(total)
        mean[seam] = total[seam] / count[seam][:, np.newaxis]

        dist, (nearest_r, nearest_c) = distance_transform_edt(~seam, return_indices=True)
        weight = np.clip(1.0 - dist / strip_width, 0.0, 1.0)
        correction = mean[nearest_r, nearest_c] * weight[..., np.newaxis]

        valid = patch.validity_mask
        patch.image[valid] = np.clip(patch.image[valid] + correction[valid], 0.0, 1.0)

    message = f"Local seam leveling: {num_edges} seam edges in {len(corrections)} patches"
    logger.info(message)
    if on_progress:
        on_progress(message)
