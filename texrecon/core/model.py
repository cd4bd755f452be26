"""
Atlas consolidation — the final output mesh.

build_model() turns the original mesh plus the packed atlases into one
mesh whose vertices are the atlas texcoords: every output vertex carries
one texcoord, and a mesh vertex that sits on a UV seam appears once per
distinct texcoord. Output triangles index the output vertices directly.

Only the first atlas is consolidated. Faces packed into further atlases
are not part of the model.
"""

import logging
from dataclasses import dataclass, field

import numpy as np

from texrecon.core.mesh import TriangleMesh

logger = logging.getLogger(__name__)


@dataclass
class Model:
    """Consolidated output buffers. RGB texture, 3 bytes per pixel."""
    points: np.ndarray = field(default_factory=lambda: np.zeros((0, 3), dtype=np.float32))
    normals: np.ndarray = field(default_factory=lambda: np.zeros((0, 3), dtype=np.float32))
    tex_coords: np.ndarray = field(default_factory=lambda: np.zeros((0, 2), dtype=np.float32))
    triangles: np.ndarray = field(default_factory=lambda: np.zeros((0, 3), dtype=np.int32))
    texture_width: int = 0
    texture_height: int = 0
    texture_data: bytes = b""

    @property
    def num_vertices(self) -> int:
        return len(self.points)

    @property
    def num_triangles(self) -> int:
        return len(self.triangles)

    def is_empty(self) -> bool:
        return self.num_vertices == 0

    def texture_image(self) -> np.ndarray:
        """Texture bytes as an (H, W, 3) uint8 array."""
        return np.frombuffer(self.texture_data, dtype=np.uint8).reshape(
            self.texture_height, self.texture_width, 3
        )


def build_model(mesh: TriangleMesh, texture_atlases: list) -> Model:
    """
    Consolidate the first texture atlas and the mesh into a Model.

    Steps:
    1. No atlases → empty model.
    2. Texture raster and its size come from atlas 0, copied byte for byte.
    3. The atlas texcoords become the output texcoords, one output vertex
       per texcoord.
    4. For atlas face i, mesh.face_vertex_ids(face) gives the original
       vertices and texcoord_ids[i*3 : i*3+3] the matching texcoords.
    5. Those pairs define texcoord index → original vertex.
    6. Output positions and normals are gathered through that mapping.
    7. Output triangles are the texcoord index triples.

    Neither the mesh nor the atlas is modified.
    """
    # Nothing was textured (every face unseen or dropped).
    if not texture_atlases:
        logger.info("No texture atlases, building an empty model")
        return Model()

    atlas = texture_atlases[0]
    if len(texture_atlases) > 1:
        logger.warning("Only the first of %d texture atlases is used for the model",
                       len(texture_atlases))

    # The atlas raster becomes the model texture unchanged, 3 bytes per pixel.
    image = np.ascontiguousarray(atlas.image, dtype=np.uint8)
    texture_height, texture_width = image.shape[:2]

    # One output vertex per atlas texcoord. A mesh vertex on a UV seam has
    # several texcoords and so turns into several output vertices.
    tex_coords = np.array(atlas.texcoords, dtype=np.float32).reshape(-1, 2)
    num_vertices = len(tex_coords)

    # Corner by corner: the mesh vertex each atlas face uses, and the
    # texcoord the atlas assigned to that same corner.
    atlas_faces = np.asarray(atlas.faces, dtype=np.int64)
    original_ids = mesh.face_vertex_ids(atlas_faces).astype(np.int64)
    texcoord_ids = np.asarray(atlas.texcoord_ids, dtype=np.int64).reshape(-1)

    # Texcoord index -> mesh vertex. Texcoords are merged per (vertex, u, v),
    # so every texcoord belongs to exactly one mesh vertex.
    vertex_of_texcoord = np.zeros(num_vertices, dtype=np.int64)
    vertex_of_texcoord[texcoord_ids] = original_ids

    # Positions and normals follow their texcoord; triangles index texcoords.
    model = Model(
        points=mesh.vertices[vertex_of_texcoord].astype(np.float32),
        normals=mesh.normals[vertex_of_texcoord].astype(np.float32),
        tex_coords=tex_coords,
        triangles=texcoord_ids.reshape(-1, 3).astype(np.int32),
        texture_width=int(texture_width),
        texture_height=int(texture_height),
        texture_data=image.tobytes(),
    )
    logger.info("Model: %d vertices, %d triangles, %dx%d texture",
                model.num_vertices, model.num_triangles, texture_width, texture_height)
    return model
