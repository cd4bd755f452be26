"""
Texture atlas generation — packing patches into square RGB rasters.

Patches are packed with a shelf packer: sorted by height, placed left to
right along the current shelf, and a new shelf is opened below when the
row is full. Every patch keeps ATLAS_PADDING pixels of clearance on each
side; on finalize the padding around valid pixels is filled by dilation
so bilinear filtering never bleeds in black background.

Atlas sizes are powers of two, starting from an estimate of the packed
area and doubling up to max_texture_size. Patches that do not fit spill
into a further atlas.

Texcoords are stored the way OBJ expects them: normalized to [0, 1] with
the origin at the bottom-left. Patch-local pixel coordinates treat an
integer value as a pixel center, so a corner at atlas pixel (x, y) maps to
u = (x + 0.5) / W, v = 1 − (y + 0.5) / H.
"""

import logging
import math

import numpy as np

from texrecon.core.errors import TexturingError
from texrecon.core.mesh import TriangleMesh
from texrecon.core.raster import dilate
from texrecon.core.settings import ATLAS_PADDING, MAX_TEXTURE_SIZE, MIN_TEXTURE_SIZE
from texrecon.core.texture_patch import TexturePatch

logger = logging.getLogger(__name__)


class TextureAtlas:
    """
    One packed texture raster and the faces it textures.

    After finalize():
        image        — (size, size, 3) uint8
        texcoords    — (M, 2) float32 normalized texcoords
        faces        — original mesh face indices
        texcoord_ids — flat uint32, three texcoord indices per face
    """

    def __init__(self, size: int, padding: int = ATLAS_PADDING):
        self.size = int(size)
        self.padding = int(padding)
        self.image = np.zeros((self.size, self.size, 3), dtype=np.uint8)
        self.validity_mask = np.zeros((self.size, self.size), dtype=bool)
        self.faces: list[int] = []
        self.texcoords = np.zeros((0, 2), dtype=np.float32)
        self.texcoord_ids = np.zeros(0, dtype=np.uint32)
        self.finalized = False

        # Shelf packer state.
        self._cursor_x = 0
        self._shelf_y = 0
        self._shelf_height = 0

        # (mesh vertex, u, v) per inserted face corner, merged on finalize.
        self._corners: list[tuple[int, float, float]] = []

    def __repr__(self):
        return f"TextureAtlas({self.size}x{self.size}, faces={len(self.faces)})"

    def _place(self, width: int, height: int):
        """Reserve a width×height rect; None when it does not fit."""
        if width > self.size or height > self.size:
            return None
        if self._cursor_x + width > self.size:
            self._shelf_y += self._shelf_height
            self._cursor_x = 0
            self._shelf_height = 0
        if self._shelf_y + height > self.size:
            return None
        position = (self._cursor_x, self._shelf_y)
        self._cursor_x += width
        self._shelf_height = max(self._shelf_height, height)
        return position

    def insert(self, patch: TexturePatch, mesh: TriangleMesh) -> bool:
        """
        Copy a patch into the atlas.

        Returns False when the patch does not fit into the remaining space.
        """
        if self.finalized:
            raise TexturingError("Cannot insert into a finalized texture atlas")

        # The padding is reserved on every side and filled by dilation later.
        position = self._place(patch.width + 2 * self.padding,
                               patch.height + 2 * self.padding)
        if position is None:
            return False

        # Top-left pixel of the patch itself inside the atlas.
        ox = position[0] + self.padding
        oy = position[1] + self.padding
        h, w = patch.height, patch.width

        # Patches hold float RGB in [0, 1]; the atlas stores bytes.
        pixels = np.clip(np.rint(patch.image * 255.0), 0, 255).astype(np.uint8)
        self.image[oy:oy + h, ox:ox + w] = pixels
        self.validity_mask[oy:oy + h, ox:ox + w] |= patch.validity_mask

        # Patch pixel coordinates -> normalized OBJ texcoords (origin bottom-left).
        corner_vertices = mesh.face_vertex_ids(patch.faces)
        u = (patch.texcoords[:, 0] + ox + 0.5) / self.size
        v = 1.0 - (patch.texcoords[:, 1] + oy + 0.5) / self.size
        self._corners.extend(zip(corner_vertices.tolist(),
                                 u.astype(np.float32).tolist(),
                                 v.astype(np.float32).tolist()))
        self.faces.extend(patch.faces)
        return True

    def finalize(self) -> None:
        """Merge duplicate corners and fill the padding around valid pixels."""
        # Corners of neighboring faces in the same patch share a vertex and a
        # texcoord; keep one texcoord per distinct (vertex, u, v).
        ids: dict[tuple[int, float, float], int] = {}
        texcoord_ids = np.empty(len(self._corners), dtype=np.uint32)
        texcoords = []
        for i, key in enumerate(self._corners):
            if key not in ids:
                ids[key] = len(texcoords)
                texcoords.append(key[1:])
            texcoord_ids[i] = ids[key]

        self.texcoords = np.asarray(texcoords, dtype=np.float32).reshape(-1, 2)
        self.texcoord_ids = texcoord_ids
        self._corners = []

        # Bleed valid colors into the padding so filtering at patch borders
        # never picks up the black background.
        self.image, self.validity_mask = dilate(self.image, self.validity_mask, self.padding)
        self.finalized = True


def _atlas_size(patches: list, padding: int, max_texture_size: int) -> int:
    """Smallest power of two that could hold the patches' padded area."""
    area = sum((p.width + 2 * padding) * (p.height + 2 * padding) for p in patches)
    largest = max(max(p.width, p.height) + 2 * padding for p in patches)
    side = max(math.sqrt(area), largest, MIN_TEXTURE_SIZE)
    size = 2 ** math.ceil(math.log2(side))
    return min(size, max_texture_size)


def _pack(patches: list, mesh: TriangleMesh, size: int):
    atlas = TextureAtlas(size)
    left = [patch for patch in patches if not atlas.insert(patch, mesh)]
    return atlas, left


def generate_texture_atlases(texture_patches: list, mesh: TriangleMesh,
                             max_texture_size: int = MAX_TEXTURE_SIZE,
                             on_progress=None) -> list:
    """
    Pack all patches into as few atlases as possible.

    Args:
        texture_patches:  Patches with validity masks established.
        mesh:             The mesh the patches' faces index into.
        max_texture_size: Upper bound on the atlas side length.
        on_progress:      Optional callback.

    Returns:
        List of finalized TextureAtlas; empty when there are no patches.

    Raises:
        TexturingError: If a patch is larger than max_texture_size.
    """
    # Tallest first: each shelf takes the height of its first patch.
    remaining = sorted(texture_patches, key=lambda p: (-p.height, -p.width))
    atlases: list[TextureAtlas] = []

    while remaining:
        # Start from the area estimate and double until everything fits or
        # the size cap is reached; leftovers go to the next atlas.
        size = _atlas_size(remaining, ATLAS_PADDING, max_texture_size)
        atlas, left = _pack(remaining, mesh, size)
        while left and size < max_texture_size:
            size *= 2
            atlas, left = _pack(remaining, mesh, size)

        # Not even one patch fits an empty atlas of the maximum size.
        if len(left) == len(remaining):
            patch = left[0]
            raise TexturingError(
                f"Texture patch of {patch.width}x{patch.height} pixels does not fit "
                f"into a {max_texture_size}x{max_texture_size} atlas"
            )

        atlas.finalize()
        atlases.append(atlas)
        remaining = left

        message = (f"Texture atlas {len(atlases)}: {atlas.size}x{atlas.size}, "
                   f"{len(atlas.faces)} faces")
        logger.info(message)
        if on_progress:
            on_progress(message)

    return atlases
