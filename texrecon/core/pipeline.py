"""
Texturing pipeline — stage definitions.

This module defines the discrete stages of a texturing run. Each stage is
a distinct, timed and logged step:

    1. Loading — Read the mesh and the calibrated views
    2. Adjacency Graph — One node per face, edges between faces sharing an edge
    3. Data Costs — Per face/view cost of texturing the face from that view
       (computed, or loaded from a precomputed file)
    4. View Selection — Assign a view label to every face
       (stages 3 and 4 are skipped when a labeling file is supplied)
    5. Texture Patches — Cut connected same-label faces out of their views
    6. Seam Leveling — Global color adjustment across patch borders, or the
       per-patch validity mask pass when global leveling is disabled,
       followed by optional local leveling
    7. Texture Atlases — Pack patches into one or more rasters
    8. Model Building — Consolidate the first atlas into one indexed mesh
    9. Saving — Hand the model to the output sink

The stage constants are used as Timer event names and progress prefixes so
the timing report and the log read the same.
"""


class PipelineStage:
    """
    String constants identifying each pipeline stage.

    These are used as keys for timing and logging. A class with constants
    (rather than an enum) allows direct string comparison.
    """
    LOADING = "Loading"
    ADJACENCY_GRAPH = "Building adjacency graph"
    DATA_COSTS = "Calculating data costs"
    VIEW_SELECTION = "Running MRF optimization"
    LABELING = "Loading labeling"
    TEXTURE_PATCHES = "Generating texture patches"
    GLOBAL_SEAM_LEVELING = "Running global seam leveling"
    VALIDITY_MASKS = "Calculating texture patch validity masks"
    LOCAL_SEAM_LEVELING = "Running local seam leveling"
    TEXTURE_ATLASES = "Generating texture atlases"
    BUILD_MODEL = "Building OBJ model"
    SAVING = "Saving"
    TOTAL = "Total"


# Human-readable messages printed when a stage starts.
STAGE_DISPLAY_NAMES = {
    PipelineStage.LOADING: "Load and prepare mesh",
    PipelineStage.ADJACENCY_GRAPH: "Building adjacency graph",
    PipelineStage.DATA_COSTS: "View selection",
    PipelineStage.VIEW_SELECTION: "Running view selection",
    PipelineStage.LABELING: "Loading labeling from file",
    PipelineStage.TEXTURE_PATCHES: "Generating texture patches",
    PipelineStage.GLOBAL_SEAM_LEVELING: "Running global seam leveling",
    PipelineStage.VALIDITY_MASKS: "Calculating validity masks for texture patches",
    PipelineStage.LOCAL_SEAM_LEVELING: "Running local seam leveling",
    PipelineStage.TEXTURE_ATLASES: "Generating texture atlases",
    PipelineStage.BUILD_MODEL: "Building objmodel",
    PipelineStage.SAVING: "Saving model",
}
