"""
Model export — writes a consolidated Model as an OBJ + MTL + PNG triple.

Given the prefix /out/scene the files are:
    /out/scene.obj  — positions, texcoords, normals, triangles
    /out/scene.mtl  — one material whose map_Kd is the texture
    /out/scene.png  — the atlas texture (RGB)

Geometry text comes from trimesh's OBJ exporter. The material and texture
files are written here so their names follow the prefix, and the OBJ's
mtllib/usemtl lines are rewritten to point at them.
"""

import logging
from pathlib import Path

import numpy as np
import trimesh
from PIL import Image

from texrecon.core.errors import OutputError
from texrecon.core.model import Model

logger = logging.getLogger(__name__)


def _material_name(stem: str) -> str:
    return f"{stem}_material"


def _obj_text(model: Model, stem: str) -> str:
    """OBJ text for a non-empty model, referencing {stem}.mtl."""
    mesh = trimesh.Trimesh(
        vertices=model.points,
        faces=model.triangles,
        vertex_normals=model.normals,
        visual=trimesh.visual.TextureVisuals(uv=model.tex_coords),
        process=False,
    )
    text = trimesh.exchange.obj.export_obj(
        mesh,
        include_normals=True,
        include_color=False,
        include_texture=True,
        return_texture=False,
        write_texture=False,
    )

    # trimesh names its own material; point the OBJ at ours instead.
    lines = [line for line in text.splitlines()
             if not line.startswith(("mtllib", "usemtl"))]
    first_face = next((i for i, line in enumerate(lines) if line.startswith("f ")), len(lines))
    lines.insert(first_face, f"usemtl {_material_name(stem)}")

    header = [line for line in lines[:first_face] if line.startswith("#")]
    body = [line for line in lines if not line.startswith("#")]
    return "\n".join(header + [f"mtllib {stem}.mtl"] + body) + "\n"


def _mtl_text(stem: str, texture_name: str | None) -> str:
    lines = [
        "# Generated by texrecon",
        f"newmtl {_material_name(stem)}",
        "Ka 0.000000 0.000000 0.000000",
        "Kd 1.000000 1.000000 1.000000",
        "Ks 0.000000 0.000000 0.000000",
        "illum 1",
    ]
    if texture_name:
        lines.append(f"map_Kd {texture_name}")
    return "\n".join(lines) + "\n"


def save_model(model: Model, prefix) -> Path:
    """
    Write model files next to each other under the given path prefix.

    An empty model produces an OBJ without geometry and a material without
    a texture.

    Args:
        model:  Consolidated model.
        prefix: Output path without extension.

    Returns:
        Path of the written OBJ file.

    Raises:
        OutputError: If any file cannot be written.
    """
    prefix = Path(prefix)
    stem = prefix.name
    obj_path = prefix.parent / f"{stem}.obj"
    mtl_path = prefix.parent / f"{stem}.mtl"
    png_path = prefix.parent / f"{stem}.png"

    try:
        if model.is_empty():
            obj_text = f"# Generated by texrecon\nmtllib {stem}.mtl\n"
            texture_name = None
        else:
            obj_text = _obj_text(model, stem)
            texture_name = png_path.name
            Image.fromarray(np.ascontiguousarray(model.texture_image())).save(png_path)

        mtl_path.write_text(_mtl_text(stem, texture_name))
        obj_path.write_text(obj_text)
    except OSError as e:
        raise OutputError(f"Could not save model to {obj_path}: {e}") from e

    logger.info("Saved model to %s (%d vertices, %d triangles)",
                obj_path, model.num_vertices, model.num_triangles)
    return obj_path
