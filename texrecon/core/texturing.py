"""
Texturing pipeline orchestrator.

run_pipeline() sequences every stage after loading, exactly once:

    1. Build the face adjacency graph
    2. View selection: compute or load data costs, then optimize labels,
       or apply a precomputed labeling and skip both
    3. Generate texture patches
    4. Global seam leveling, or the parallel validity-mask pass
    5. Local seam leveling
    6. Pack texture atlases
    7. Build the model and hand it to the sink
    8. Timings, and optionally a second model colored by selected view

Where results go is decided by the sink (see sinks.py), so command-line
and library runs share this code path entirely. Stages report progress
through the optional on_progress(str) callback as well as the logger.

Failures are not caught here: TexturingError subclasses and any unexpected
exception propagate to the entry point, which decides how to report them.
"""

import logging

from texrecon.core.atlas import generate_texture_atlases
from texrecon.core.data_costs import DataCosts, calculate_data_costs
from texrecon.core.errors import DataCostLoadError
from texrecon.core.graph import Graph, build_adjacency_graph
from texrecon.core.labeling import apply_labeling, vector_from_file
from texrecon.core.mesh import MeshInfo, TriangleMesh
from texrecon.core.model import Model, build_model
from texrecon.core.pipeline import STAGE_DISPLAY_NAMES, PipelineStage
from texrecon.core.postprocess import calculate_validity_masks
from texrecon.core.progress import Timer
from texrecon.core.seam_leveling import global_seam_leveling, local_seam_leveling
from texrecon.core.settings import ATLAS_PADDING, Arguments
from texrecon.core.sinks import OutputSink
from texrecon.core.texture_patch import generate_texture_patches
from texrecon.core.view_selection import Optimizer, view_selection
from texrecon.core.views import generate_debug_embeddings

logger = logging.getLogger(__name__)


def _announce(stage: str, on_progress) -> None:
    message = STAGE_DISPLAY_NAMES.get(stage, stage)
    logger.info("%s:", message)
    if on_progress:
        on_progress(message)


def _load_data_costs(path, mesh: TriangleMesh, texture_views: list) -> DataCosts:
    data_costs = DataCosts.load_from_file(path)
    if data_costs.num_faces != mesh.num_faces or data_costs.num_views != len(texture_views):
        raise DataCostLoadError(
            f"Data cost file {path} is for {data_costs.num_faces} faces and "
            f"{data_costs.num_views} views, but the scene has {mesh.num_faces} faces "
            f"and {len(texture_views)} views"
        )
    return data_costs


def _select_views(graph: Graph, mesh: TriangleMesh, texture_views: list,
                  arguments: Arguments, sink: OutputSink, timer: Timer,
                  optimizer: Optimizer | None, labeling, on_progress) -> None:
    """Label the graph, by optimization or from a given labeling."""
    # A given labeling replaces data costs and optimization entirely.
    if labeling is not None or arguments.labeling_file:
        _announce(PipelineStage.LABELING, on_progress)
        if labeling is None:
            labeling = vector_from_file(arguments.labeling_file)
        # Validates the whole vector before the graph is touched.
        apply_labeling(labeling, graph, len(texture_views))
        timer.measure(PipelineStage.LABELING)
        return

    _announce(PipelineStage.DATA_COSTS, on_progress)
    if arguments.data_cost_file:
        data_costs = _load_data_costs(arguments.data_cost_file, mesh, texture_views)
        logger.info("Loaded data costs from %s", arguments.data_cost_file)
    else:
        data_costs = calculate_data_costs(mesh, texture_views, arguments.settings, on_progress)
        # Loaded costs are not written back; only fresh ones are.
        if arguments.write_intermediate_results:
            sink.save_data_costs(data_costs)
    timer.measure(PipelineStage.DATA_COSTS)

    _announce(PipelineStage.VIEW_SELECTION, on_progress)
    view_selection(data_costs, graph, arguments.settings, optimizer)
    timer.measure(PipelineStage.VIEW_SELECTION)

    if arguments.write_intermediate_results:
        sink.save_labeling(graph.get_labels())


def _build_view_selection_model(graph: Graph, mesh: TriangleMesh, mesh_info: MeshInfo,
                                texture_views: list, arguments: Arguments,
                                max_patch_size: int, on_progress) -> Model:
    """Re-texture the labeled mesh with one flat color per view."""
    generate_debug_embeddings(texture_views)
    patches, _ = generate_texture_patches(
        graph, mesh, mesh_info, texture_views, arguments.settings, max_patch_size,
    )
    calculate_validity_masks(patches, arguments.num_threads)
    atlases = generate_texture_atlases(patches, mesh, arguments.max_texture_size, on_progress)
    return build_model(mesh, atlases)


def run_pipeline(mesh: TriangleMesh, mesh_info: MeshInfo, texture_views: list,
                 arguments: Arguments, sink: OutputSink,
                 optimizer: Optimizer | None = None, on_progress=None,
                 timer: Timer | None = None, labeling=None) -> Model:
    """
    Texture a prepared mesh with the given views.

    Args:
        mesh:          Mesh to texture (not modified).
        mesh_info:     Adjacency info from prepare_mesh().
        texture_views: Calibrated views; labels i refer to texture_views[i-1].
        arguments:     Run configuration.
        sink:          Receives the model and any requested artifacts.
        optimizer:     Optional replacement for the default view-selection solver.
        on_progress:   Optional callback for status messages.
        timer:         Timer to record stages into; a new one is started if omitted.
        labeling:      Per-face labels to use instead of view selection; takes
                       precedence over arguments.labeling_file.

    Returns:
        The consolidated model (also delivered to the sink).

    Raises:
        TexturingError: On any load, validation or output failure.
    """
    arguments.settings.validate()
    timer = timer or Timer()
    # A patch plus its padding must still fit into the largest atlas.
    max_patch_size = arguments.max_texture_size - 2 * ATLAS_PADDING

    _announce(PipelineStage.ADJACENCY_GRAPH, on_progress)
    graph = Graph(mesh.num_faces)
    build_adjacency_graph(mesh, mesh_info, graph)
    timer.measure(PipelineStage.ADJACENCY_GRAPH)

    _select_views(graph, mesh, texture_views, arguments, sink, timer, optimizer,
                  labeling, on_progress)

    _announce(PipelineStage.TEXTURE_PATCHES, on_progress)
    texture_patches, vertex_projection_infos = generate_texture_patches(
        graph, mesh, mesh_info, texture_views, arguments.settings, max_patch_size, on_progress,
    )
    timer.measure(PipelineStage.TEXTURE_PATCHES)

    # Global leveling establishes validity masks as a side effect; without it
    # the masks come from the parallel pass.
    if arguments.settings.global_seam_leveling:
        _announce(PipelineStage.GLOBAL_SEAM_LEVELING, on_progress)
        global_seam_leveling(graph, mesh, mesh_info, vertex_projection_infos,
                             texture_patches, on_progress=on_progress)
        timer.measure(PipelineStage.GLOBAL_SEAM_LEVELING)
    else:
        _announce(PipelineStage.VALIDITY_MASKS, on_progress)
        calculate_validity_masks(texture_patches, arguments.num_threads, on_progress)
        timer.measure(PipelineStage.VALIDITY_MASKS)

    if arguments.settings.local_seam_leveling:
        _announce(PipelineStage.LOCAL_SEAM_LEVELING, on_progress)
        local_seam_leveling(graph, mesh, vertex_projection_infos, texture_patches,
                            on_progress=on_progress)
    # Recorded even when skipped so every timings report has the same rows.
    timer.measure(PipelineStage.LOCAL_SEAM_LEVELING)

    _announce(PipelineStage.TEXTURE_ATLASES, on_progress)
    texture_atlases = generate_texture_atlases(
        texture_patches, mesh, arguments.max_texture_size, on_progress,
    )
    timer.measure(PipelineStage.TEXTURE_ATLASES)

    _announce(PipelineStage.BUILD_MODEL, on_progress)
    model = build_model(mesh, texture_atlases)
    timer.measure(PipelineStage.BUILD_MODEL)

    _announce(PipelineStage.SAVING, on_progress)
    sink.save_model(model)
    timer.measure(PipelineStage.SAVING)

    total = timer.measure(PipelineStage.TOTAL)
    logger.info("Whole texturing procedure took: %.2fs", total)
    if arguments.write_timings:
        sink.save_timings(timer)

    # Runs last: the debug embeddings overwrite the view rasters in place.
    if arguments.write_view_selection_model:
        logger.info("Generating debug texture patches for the view selection model")
        # Free the primary patches and atlases before building the debug ones.
        del texture_patches, texture_atlases
        sink.save_view_selection_model(_build_view_selection_model(
            graph, mesh, mesh_info, texture_views, arguments, max_patch_size, on_progress,
        ))

    return model
