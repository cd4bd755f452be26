"""
Entry points for texrecon.

Two ways to run the same pipeline (core/texturing.py):

    run_cli()            — command line: loads a scene directory and a mesh
                           file, writes <prefix>.obj/.mtl/.png plus any
                           requested artifacts. Errors are logged and turn
                           into exit status 1.
    reconstruct_texture() — in-process: takes raw image buffers, camera
                           arrays and mesh buffers, returns the model in
                           memory. Never raises and never exits; failures
                           come back as a non-empty message.
"""

import logging
import sys

from texrecon.core.errors import TexturingError
from texrecon.core.mesh import load_mesh, mesh_from_buffers, prepare_mesh
from texrecon.core.model import Model
from texrecon.core.pipeline import STAGE_DISPLAY_NAMES, PipelineStage
from texrecon.core.progress import Timer
from texrecon.core.settings import Arguments, Settings, parse_args
from texrecon.core.sinks import FileSink, MemorySink
from texrecon.core.texturing import run_pipeline
from texrecon.core.view_selection import Optimizer
from texrecon.core.views import generate_texture_views, generate_texture_views_from_buffers
from texrecon.core.workspace import check_destination
from texrecon.logging_config import setup_logging

logger = logging.getLogger(__name__)


def _write_conf(path, arguments: Arguments) -> None:
    try:
        path.write_text(arguments.to_string())
    except OSError as e:
        # The configuration dump is informational; the run goes on without it.
        logger.warning("Could not write configuration to %s: %s", path, e)


def run_cli(argv=None) -> int:
    """
    Run a texturing job from command line arguments.

    Returns:
        Process exit status: 0 on success, 1 on any fatal error.
        (argparse itself exits with status 2 on malformed arguments.)
    """
    arguments, debug = parse_args(argv)
    setup_logging(debug=debug)

    timer = Timer()
    try:
        paths = check_destination(arguments.out_prefix)
        arguments.settings.validate()

        logger.info("%s:", STAGE_DISPLAY_NAMES[PipelineStage.LOADING])
        texture_views = generate_texture_views(arguments.in_scene)
        mesh = load_mesh(arguments.in_mesh)
        mesh_info = prepare_mesh(mesh)
        timer.measure(PipelineStage.LOADING)

        _write_conf(paths.conf, arguments)

        run_pipeline(mesh, mesh_info, texture_views, arguments, FileSink(paths),
                     timer=timer)
    except TexturingError as e:
        logger.error("%s", e)
        return 1

    return 0


def reconstruct_texture(width: int, height: int, images_data, cameras_intrinsic,
                        cameras_extrinsic, points, normals, triangles,
                        settings: Settings | None = None,
                        optimizer: Optimizer | None = None,
                        labeling=None,
                        on_progress=None) -> tuple[Model | None, str]:
    """
    Texture a mesh from in-memory images and cameras.

    Args:
        width, height:     Size shared by all images.
        images_data:       One RGB buffer (width·height·3 bytes) per view.
        cameras_intrinsic: Per view [fx, fy, cx, cy] or a flattened 3×3 K.
        cameras_extrinsic: Per view a flattened 3×4 [R|t] or 4×4 world-to-camera matrix.
        points, normals:   (N, 3) vertex buffers; normals may be empty.
        triangles:         (F, 3) vertex index triples.
        settings:          Pipeline settings; defaults apply when omitted.
        optimizer:         Optional replacement for the view-selection solver.
        labeling:          Optional per-face label vector; skips view selection.
        on_progress:       Optional callback for status messages.

    Returns:
        (model, "") on success, (None, message) on failure.
    """
    arguments = Arguments(settings=settings or Settings())
    try:
        texture_views = generate_texture_views_from_buffers(
            width, height, images_data, cameras_intrinsic, cameras_extrinsic,
        )
        mesh = mesh_from_buffers(points, normals, triangles)
        mesh_info = prepare_mesh(mesh)

        sink = MemorySink()
        model = run_pipeline(mesh, mesh_info, texture_views, arguments, sink,
                             optimizer=optimizer, on_progress=on_progress,
                             labeling=labeling)
    except Exception as e:
        logger.debug("Texturing failed", exc_info=True)
        return None, str(e) or type(e).__name__

    return model, ""


def main() -> None:
    sys.exit(run_cli())
