"""
Shared test fixtures for the texrecon test suite.

The scene used throughout is a regular tetrahedron centered at the origin,
seen by two 64×64 pinhole cameras on the z axis:

    view 0 at z = -3 looking along +z (sees faces 2 and 3)
    view 1 at z = +3 looking along -z (sees faces 0 and 1)
"""

import numpy as np
import pytest

from texrecon.core.mesh import mesh_from_buffers, prepare_mesh
from texrecon.core.views import TextureView

IMAGE_SIZE = 64
FOCAL = 32.0

TETRA_POINTS = np.array([
    [0.5, 0.5, 0.5],
    [-0.5, -0.5, 0.5],
    [-0.5, 0.5, -0.5],
    [0.5, -0.5, -0.5],
], dtype=np.float32)

# Outward winding.
TETRA_TRIANGLES = np.array([
    [0, 2, 1],
    [0, 1, 3],
    [0, 3, 2],
    [1, 2, 3],
], dtype=np.int64)

INTRINSIC = [FOCAL, FOCAL, IMAGE_SIZE / 2, IMAGE_SIZE / 2]

EXTRINSICS = [
    np.hstack([np.eye(3), [[0.0], [0.0], [3.0]]]),
    np.hstack([np.diag([-1.0, 1.0, -1.0]), [[0.0], [0.0], [3.0]]]),
]


def textured_image(seed: int) -> np.ndarray:
    """Deterministic noisy RGB image, so gradient-based data terms see detail."""
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=(IMAGE_SIZE, IMAGE_SIZE, 3), dtype=np.uint8)


@pytest.fixture
def tetra_mesh():
    normals = TETRA_POINTS / np.linalg.norm(TETRA_POINTS, axis=1, keepdims=True)
    return mesh_from_buffers(TETRA_POINTS, normals, TETRA_TRIANGLES)


@pytest.fixture
def tetra_mesh_info(tetra_mesh):
    return prepare_mesh(tetra_mesh)


@pytest.fixture
def tetra_views():
    K = np.array([[FOCAL, 0, IMAGE_SIZE / 2], [0, FOCAL, IMAGE_SIZE / 2], [0, 0, 1]])
    return [
        TextureView(i, K, Rt[:, :3], Rt[:, 3], IMAGE_SIZE, IMAGE_SIZE,
                    image=textured_image(i))
        for i, Rt in enumerate(EXTRINSICS)
    ]


@pytest.fixture
def library_inputs():
    """Keyword arguments for reconstruct_texture() describing the same scene."""
    normals = TETRA_POINTS / np.linalg.norm(TETRA_POINTS, axis=1, keepdims=True)
    return dict(
        width=IMAGE_SIZE,
        height=IMAGE_SIZE,
        images_data=[textured_image(0).tobytes(), textured_image(1).tobytes()],
        cameras_intrinsic=[INTRINSIC, INTRINSIC],
        cameras_extrinsic=[Rt.reshape(-1) for Rt in EXTRINSICS],
        points=TETRA_POINTS,
        normals=normals,
        triangles=TETRA_TRIANGLES,
    )
