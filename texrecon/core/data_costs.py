"""
Data costs — how well each view sees each face.

For every face and every view that sees the face, a cost in [0, 1] is
stored; lower is better. Pairs without an entry mean "this view cannot
texture this face". View selection minimizes the sum of these costs plus a
smoothness penalty.

Cost computation per view:
    1. Project all mesh vertices into the view.
    2. Keep faces whose three corners land inside the image, in front of the
       camera, and that face the camera (back-face test).
    3. Optionally drop occluded faces: a ray from the camera center to the
       face centroid must not hit other geometry first. Ray casting uses
       Open3D's RaycastingScene (C++ BVH), all rays in one batch.
    4. Rate the face: projected area in pixels ("area"), or projected area
       times the mean image gradient magnitude over the face ("gmi"), which
       favors sharp, close-up, well-focused views.
Finally all qualities are normalized by the global maximum and turned into
costs (1 - quality / max).

Costs can be saved to and loaded from a .spt file so expensive runs can be
repeated with different labeling or leveling options.
"""

import logging
from pathlib import Path

import numpy as np
from scipy import ndimage

from texrecon.core.errors import DataCostLoadError, OutputError
from texrecon.core.mesh import TriangleMesh
from texrecon.core.settings import DataTerm, Settings

logger = logging.getLogger(__name__)

# Relative slack when comparing a ray's hit distance to the face distance.
VISIBILITY_EPSILON = 1e-3

# Identifies .spt payloads; bumped if the stored arrays change.
SPT_FORMAT_VERSION = 1


class DataCosts:
    """
    Sparse face × view cost table.

    Views are addressed by their 0-based index; the corresponding graph
    label is view + 1.
    """

    def __init__(self, num_faces: int, num_views: int):
        self.num_faces = num_faces
        self.num_views = num_views
        self._costs: list[dict[int, float]] = [{} for _ in range(num_faces)]

    def set_value(self, face: int, view: int, cost: float) -> None:
        if not 0 <= view < self.num_views:
            raise IndexError(f"View {view} out of range (0..{self.num_views - 1})")
        self._costs[face][view] = float(cost)

    def get_value(self, face: int, view: int) -> float | None:
        return self._costs[face].get(view)

    def face_costs(self, face: int) -> dict[int, float]:
        """view → cost for every view that sees `face`."""
        return self._costs[face]

    def num_entries(self) -> int:
        return sum(len(c) for c in self._costs)

    def to_arrays(self) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """(faces, views, costs) arrays sorted by face, then view."""
        faces, views, costs = [], [], []
        for face, entries in enumerate(self._costs):
            for view in sorted(entries):
                faces.append(face)
                views.append(view)
                costs.append(entries[view])
        return (np.array(faces, dtype=np.int64),
                np.array(views, dtype=np.int64),
                np.array(costs, dtype=np.float32))

    @staticmethod
    def save_to_file(data_costs: "DataCosts", path) -> None:
        """
        Write the table as a .spt file (an uncompressed NumPy archive).

        Raises:
            OutputError: If the file cannot be written.
        """
        faces, views, costs = data_costs.to_arrays()
        try:
            # Writing through a file object keeps NumPy from appending ".npz".
            with open(path, "wb") as f:
                np.savez(
                    f,
                    version=np.array(SPT_FORMAT_VERSION),
                    shape=np.array([data_costs.num_faces, data_costs.num_views]),
                    faces=faces, views=views, costs=costs,
                )
        except OSError as e:
            raise OutputError(f"Could not write data costs to {path}: {e}") from e

    @staticmethod
    def load_from_file(path) -> "DataCosts":
        """
        Read a .spt file written by save_to_file().

        Raises:
            DataCostLoadError: If the file is missing, corrupt or malformed.
        """
        path = Path(path)
        try:
            with np.load(path, allow_pickle=False) as archive:
                version = int(archive["version"])
                num_faces, num_views = (int(v) for v in archive["shape"])
                faces = archive["faces"]
                views = archive["views"]
                costs = archive["costs"]
        except Exception as e:
            raise DataCostLoadError(f"Could not load data cost file {path}: {e}") from e

        if version != SPT_FORMAT_VERSION:
            raise DataCostLoadError(
                f"Unsupported data cost file version {version} in {path}"
            )
        if not (len(faces) == len(views) == len(costs)):
            raise DataCostLoadError(f"Corrupt data cost file {path}")
        if len(faces) and (faces.min() < 0 or faces.max() >= num_faces
                           or views.min() < 0 or views.max() >= num_views):
            raise DataCostLoadError(f"Data cost file {path} has out-of-range entries")

        data_costs = DataCosts(num_faces, num_views)
        for face, view, cost in zip(faces.tolist(), views.tolist(), costs.tolist()):
            data_costs.set_value(face, view, cost)
        return data_costs


# ---------------------------------------------------------------------------
# Cost computation
# ---------------------------------------------------------------------------

def _build_raycasting_scene(mesh: TriangleMesh):
    """Build an Open3D raycasting scene for occlusion tests."""
    import open3d as o3d

    mesh_o3d = o3d.geometry.TriangleMesh()
    mesh_o3d.vertices = o3d.utility.Vector3dVector(mesh.vertices.astype(np.float64))
    mesh_o3d.triangles = o3d.utility.Vector3iVector(mesh.triangles().astype(np.int32))

    mesh_tensor = o3d.t.geometry.TriangleMesh.from_legacy(mesh_o3d)
    scene = o3d.t.geometry.RaycastingScene()
    scene.add_triangles(mesh_tensor)
    return scene


def _unoccluded(scene, origin: np.ndarray, targets: np.ndarray, faces: np.ndarray) -> np.ndarray:
    """
    True where the ray origin → target reaches the target's own face first.

    Cast all rays in one batch; a hit closer than the target (beyond a small
    relative slack) on another face means the target is occluded.
    """
    import open3d as o3d

    directions = targets - origin
    distances = np.linalg.norm(directions, axis=1)
    directions = directions / distances[:, np.newaxis]

    rays = np.concatenate(
        [np.broadcast_to(origin, directions.shape), directions], axis=1
    ).astype(np.float32)
    result = scene.cast_rays(o3d.core.Tensor(rays, dtype=o3d.core.Dtype.Float32))

    t_hit = result["t_hit"].numpy()
    hit_face = result["primitive_ids"].numpy().astype(np.int64)
    return (hit_face == faces) | (t_hit >= distances * (1.0 - VISIBILITY_EPSILON))


def _gradient_magnitude(image: np.ndarray) -> np.ndarray:
    """Sobel gradient magnitude of the image's luminance, scaled to [0, 1]."""
    gray = image.astype(np.float32) @ np.array([0.299, 0.587, 0.114], dtype=np.float32)
    gray /= 255.0
    gx = ndimage.sobel(gray, axis=1)
    gy = ndimage.sobel(gray, axis=0)
    return np.hypot(gx, gy)


def _face_qualities(view, mesh: TriangleMesh, settings: Settings, scene) -> tuple[np.ndarray, np.ndarray]:
    """
    Rate every face for one view.

    Returns:
        (faces, qualities) — indices of faces the view sees and their
        positive quality values.
    """
    tris = mesh.triangles().astype(np.int64)
    coords, depth = view.project(mesh.vertices)

    inside = view.valid_pixel(coords) & (depth > 0)
    candidate = inside[tris].all(axis=1)

    # Back-face test: the face normal must point toward the camera.
    centroids = mesh.face_centroids().astype(np.float64)
    to_camera = view.position - centroids
    facing = np.einsum("ij,ij->i", mesh.face_normals().astype(np.float64), to_camera) > 0
    candidate &= facing

    faces = np.flatnonzero(candidate)
    if len(faces) == 0:
        return faces, np.zeros(0)

    if scene is not None:
        visible = _unoccluded(scene, view.position, centroids[faces], faces)
        faces = faces[visible]
        if len(faces) == 0:
            return faces, np.zeros(0)

    p = coords[tris[faces]]  # (n, 3, 2)
    area = 0.5 * np.abs(
        (p[:, 1, 0] - p[:, 0, 0]) * (p[:, 2, 1] - p[:, 0, 1])
        - (p[:, 2, 0] - p[:, 0, 0]) * (p[:, 1, 1] - p[:, 0, 1])
    )

    if settings.data_term == DataTerm.GMI:
        gradient = _gradient_magnitude(view.get_image())
        # Sample at the corners and the centroid, bilinearly.
        samples = np.concatenate([p, p.mean(axis=1, keepdims=True)], axis=1)
        values = ndimage.map_coordinates(
            gradient, [samples[..., 1].ravel(), samples[..., 0].ravel()],
            order=1, mode="nearest",
        ).reshape(len(faces), 4)
        quality = area * values.mean(axis=1)
    else:
        quality = area

    keep = quality > 0
    return faces[keep], quality[keep]


def calculate_data_costs(mesh: TriangleMesh, texture_views: list, settings: Settings,
                         on_progress=None) -> DataCosts:
    """
    Rate every (face, view) pair and return normalized costs.

    Args:
        mesh:          Prepared mesh.
        texture_views: All views of the scene.
        settings:      Selects the data term and the occlusion test.
        on_progress:   Optional callback for status messages.

    Returns:
        DataCosts with entries only for pairs where the view sees the face.
    """
    data_costs = DataCosts(mesh.num_faces, len(texture_views))

    scene = None
    if settings.geometric_visibility_test:
        scene = _build_raycasting_scene(mesh)

    per_view = []
    max_quality = 0.0
    for view in texture_views:
        faces, qualities = _face_qualities(view, mesh, settings, scene)
        # Only the GMI term decodes the photo; drop it before the next view.
        view.release_image()
        per_view.append((faces, qualities))
        if len(qualities):
            max_quality = max(max_quality, float(qualities.max()))
        message = f"View {view.id}: sees {len(faces)} of {mesh.num_faces} faces"
        logger.debug(message)
        if on_progress:
            on_progress(message)

    if max_quality <= 0:
        logger.warning("No view sees any face; every face stays unlabeled")
        return data_costs

    for view, (faces, qualities) in zip(texture_views, per_view):
        costs = 1.0 - np.minimum(qualities / max_quality, 1.0)
        for face, cost in zip(faces.tolist(), costs.tolist()):
            data_costs.set_value(face, view.id, cost)

    logger.info("Data costs: %d face/view entries", data_costs.num_entries())
    return data_costs
