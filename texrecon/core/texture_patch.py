"""
Texture patches — connected same-label faces cut out of their source view.

A patch owns:
    image         — (h, w, 3) float32 RGB in [0, 1], cropped from the view
    validity_mask — (h, w) bool, True for pixels covered by the patch's faces
    faces         — original mesh face indices
    texcoords     — (3·n, 2) patch-local pixel coordinates, one per face corner

Corners are never shared between patches: a mesh vertex on a seam has one
texcoord in every patch it belongs to. VertexProjectionInfo records those
per-vertex appearances for seam leveling.

adjust_colors() is the single place where a patch's pixels and validity
mask are finalized: it rasterizes one RGB offset per face corner over the
patch's triangles and adds it to the covered pixels. With all-zero offsets
it only establishes the validity mask.
"""

import logging
import math
from dataclasses import dataclass, field

import numpy as np
from scipy import ndimage

from texrecon.core.graph import Graph
from texrecon.core.mesh import MeshInfo, TriangleMesh
from texrecon.core.raster import dilate, rasterize_triangles
from texrecon.core.settings import MAX_TEXTURE_SIZE, TEXTURE_PATCH_BORDER, Settings

logger = logging.getLogger(__name__)

# Grey used for faces no view sees when they are kept.
UNSEEN_FACE_COLOR = 0.5


class TexturePatch:
    """A connected set of same-labeled faces with its raster crop."""

    def __init__(self, label: int, faces, texcoords, image: np.ndarray):
        self.label = int(label)
        self.faces = [int(f) for f in faces]
        self.texcoords = np.asarray(texcoords, dtype=np.float64).reshape(-1, 2)
        self.image = np.ascontiguousarray(image, dtype=np.float32)
        self.validity_mask = np.zeros(self.image.shape[:2], dtype=bool)

        if len(self.texcoords) != 3 * len(self.faces):
            raise ValueError(
                f"Patch has {len(self.faces)} faces but {len(self.texcoords)} texcoords"
            )

    def __repr__(self):
        return (f"TexturePatch(label={self.label}, faces={len(self.faces)}, "
                f"{self.width}x{self.height})")

    @property
    def width(self) -> int:
        return self.image.shape[1]

    @property
    def height(self) -> int:
        return self.image.shape[0]

    def face_texcoords(self) -> np.ndarray:
        """(n, 3, 2) texcoords grouped per face."""
        return self.texcoords.reshape(-1, 3, 2)

    def sample(self, coords) -> np.ndarray:
        """Bilinearly sample the patch image at (N, 2) pixel coordinates."""
        coords = np.asarray(coords, dtype=np.float64).reshape(-1, 2)
        rows, cols = coords[:, 1], coords[:, 0]
        return np.stack([
            ndimage.map_coordinates(self.image[..., c], [rows, cols], order=1, mode="nearest")
            for c in range(3)
        ], axis=1)

    def adjust_colors(self, adjust_values) -> None:
        """
        Add per-corner color offsets to the patch and compute its validity mask.

        Args:
            adjust_values: (3·n, 3) RGB offsets, one per face corner, in the
                           same order as texcoords.

        Offsets are interpolated barycentrically across each face. The
        covered region is then grown by one pixel so bilinear lookups at
        face borders read valid texels.
        """
        adjust_values = np.asarray(adjust_values, dtype=np.float32).reshape(-1, 3)
        if len(adjust_values) != len(self.texcoords):
            raise ValueError(
                f"Expected {len(self.texcoords)} adjust values, got {len(adjust_values)}"
            )

        offsets, covered = rasterize_triangles(
            self.face_texcoords(), adjust_values.reshape(-1, 3, 3),
            self.height, self.width,
        )
        offsets, covered = dilate(offsets, covered, 1)

        self.image[covered] = np.clip(self.image[covered] + offsets[covered], 0.0, 1.0)
        self.validity_mask = covered


@dataclass
class VertexProjectionInfo:
    """Where a mesh vertex lands inside one texture patch."""
    texture_patch_id: int
    projection: np.ndarray
    faces: list[int] = field(default_factory=list)


def _unseen_faces_patch(faces: list[int]) -> TexturePatch:
    """
    Flat grey patch for faces no view sees.

    Every face gets its own small right triangle in a grid of 3×3 pixel cells.
    """
    cols = max(1, math.ceil(math.sqrt(len(faces))))
    rows = math.ceil(len(faces) / cols)
    border = TEXTURE_PATCH_BORDER

    texcoords = []
    for i in range(len(faces)):
        ox = border + (i % cols) * 3
        oy = border + (i // cols) * 3
        texcoords.extend([(ox, oy), (ox + 2, oy), (ox, oy + 2)])

    image = np.full((rows * 3 + 2 * border, cols * 3 + 2 * border, 3),
                    UNSEEN_FACE_COLOR, dtype=np.float32)
    return TexturePatch(0, faces, texcoords, image)


def _crop(image: np.ndarray, x0: int, y0: int, width: int, height: int) -> np.ndarray:
    """Crop image[y0:y0+height, x0:x0+width] as float RGB, zero outside the image."""
    crop = np.zeros((height, width, 3), dtype=np.float32)
    ih, iw = image.shape[:2]
    sx0, sy0 = max(x0, 0), max(y0, 0)
    sx1, sy1 = min(x0 + width, iw), min(y0 + height, ih)
    if sx0 < sx1 and sy0 < sy1:
        crop[sy0 - y0:sy1 - y0, sx0 - x0:sx1 - x0] = image[sy0:sy1, sx0:sx1] / 255.0
    return crop


def generate_texture_patches(graph: Graph, mesh: TriangleMesh, mesh_info: MeshInfo,
                             texture_views: list, settings: Settings,
                             max_patch_size: int = MAX_TEXTURE_SIZE,
                             on_progress=None):
    """
    Cut one patch per connected component of same-labeled faces.

    Each component's vertices are projected into the component's view; the
    patch is the projected bounding box plus a small border. Components
    that fall behind the camera or exceed max_patch_size are dropped with a
    warning, leaving their faces untextured.

    Returns:
        (texture_patches, vertex_projection_infos) — the patches, and per mesh
        vertex a list of VertexProjectionInfo (one per patch containing it).
    """
    texture_patches: list[TexturePatch] = []
    vertex_projection_infos: list[list[VertexProjectionInfo]] = [
        [] for _ in range(mesh.num_vertices)
    ]
    border = TEXTURE_PATCH_BORDER
    dropped_faces = 0

    for label in range(1, len(texture_views) + 1):
        subgraphs = graph.get_subgraphs(label)
        if not subgraphs:
            continue

        view = texture_views[label - 1]
        image = view.get_image()

        for faces in subgraphs:
            corner_vertices = mesh.face_vertex_ids(faces)
            coords = view.get_pixel_coords(mesh.vertices[corner_vertices])

            if np.isnan(coords).any():
                logger.warning("Dropping patch of %d faces behind view %d", len(faces), view.id)
                dropped_faces += len(faces)
                continue

            x0 = int(np.floor(coords[:, 0].min())) - border
            y0 = int(np.floor(coords[:, 1].min())) - border
            width = int(np.ceil(coords[:, 0].max())) + border - x0 + 1
            height = int(np.ceil(coords[:, 1].max())) + border - y0 + 1

            if max(width, height) > max_patch_size:
                logger.warning(
                    "Dropping patch of %d faces: %dx%d exceeds %d pixels",
                    len(faces), width, height, max_patch_size,
                )
                dropped_faces += len(faces)
                continue

            texcoords = coords - np.array([x0, y0], dtype=np.float64)
            patch_id = len(texture_patches)
            texture_patches.append(
                TexturePatch(label, faces, texcoords, _crop(image, x0, y0, width, height))
            )

            for corner, vertex in enumerate(corner_vertices.tolist()):
                face = faces[corner // 3]
                infos = vertex_projection_infos[vertex]
                # Patches are built one at a time, so this patch's record is last.
                if infos and infos[-1].texture_patch_id == patch_id:
                    if face not in infos[-1].faces:
                        infos[-1].faces.append(face)
                else:
                    infos.append(VertexProjectionInfo(patch_id, texcoords[corner].copy(), [face]))

        # Every patch of this label is cropped out; the full photo is no longer needed.
        view.release_image()

    if settings.keep_unseen_faces:
        for faces in graph.get_subgraphs(0):
            texture_patches.append(_unseen_faces_patch(faces))

    message = f"{len(texture_patches)} texture patches"
    if dropped_faces:
        message += f" ({dropped_faces} faces dropped)"
    logger.info(message)
    if on_progress:
        on_progress(message)

    return texture_patches, vertex_projection_infos
