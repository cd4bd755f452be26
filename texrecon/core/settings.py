"""
Run configuration for texrecon.

Tunables live at module level so they're easy to find and tweak. A run is
described by two dataclasses:

    Settings  — algorithm options (data term, seam leveling, visibility test…)
    Arguments — everything a run needs: input paths, the output prefix,
                optional precomputed artifacts, output flags and Settings

The CLI builds Arguments with parse_args(); the library call builds one
directly with every file-writing flag switched off.
"""

import argparse
from dataclasses import dataclass, field

from texrecon import __version__
from texrecon.core.errors import ConfigurationError


# ---------------------------------------------------------------------------
# Configuration constants
# ---------------------------------------------------------------------------

# Largest atlas edge length in pixels. Patches that do not fit the current
# atlas open a new one; only the first atlas reaches the consolidated model.
MAX_TEXTURE_SIZE = 4096

# Smallest atlas edge length. Tiny meshes still get a usable raster.
MIN_TEXTURE_SIZE = 64

# Empty pixels kept around every patch inside an atlas. Filled by dilation
# so mipmapping does not bleed background into patch borders.
ATLAS_PADDING = 2

# Extra pixels cropped around a patch's projected bounding box.
TEXTURE_PATCH_BORDER = 1

# Weight of the Potts smoothness term relative to data costs (costs are
# normalized to [0, 1]).
SMOOTHNESS_WEIGHT = 0.5

# Iteration cap for the default view-selection solver. ICM converges in a
# handful of sweeps on real meshes; the cap only guards against oscillation.
MAX_VIEW_SELECTION_ITERATIONS = 30

# Regularization weight keeping per-vertex color adjustments smooth inside
# a patch during global seam leveling.
GLOBAL_LEVELING_LAMBDA = 0.1

# Width in pixels of the strip along a seam that local seam leveling blends.
LOCAL_LEVELING_STRIP_WIDTH = 20


class DataTerm:
    """Quality measure used to rate a view for a face."""
    AREA = "area"   # projected face area in pixels
    GMI = "gmi"     # projected area × mean gradient magnitude

    CHOICES = (AREA, GMI)


class SmoothnessTerm:
    """Pairwise penalty between adjacent faces with different labels."""
    POTTS = "potts"

    CHOICES = (POTTS,)


@dataclass
class Settings:
    """
    Algorithm options for one texturing run.

    Mirrors the switches of the command line so a run can be reproduced
    from the written .conf file.
    """
    data_term: str = DataTerm.GMI
    smoothness_term: str = SmoothnessTerm.POTTS
    geometric_visibility_test: bool = True
    global_seam_leveling: bool = True
    local_seam_leveling: bool = True
    keep_unseen_faces: bool = False

    def validate(self) -> None:
        """Raise ConfigurationError for unknown enumerated options."""
        if self.data_term not in DataTerm.CHOICES:
            raise ConfigurationError(
                f"Unknown data term '{self.data_term}'. "
                f"Supported: {', '.join(DataTerm.CHOICES)}"
            )
        if self.smoothness_term not in SmoothnessTerm.CHOICES:
            raise ConfigurationError(
                f"Unknown smoothness term '{self.smoothness_term}'. "
                f"Supported: {', '.join(SmoothnessTerm.CHOICES)}"
            )


@dataclass
class Arguments:
    """
    Everything one texturing run needs besides the loaded mesh and views.

    in_scene / in_mesh are only used by the CLI, which loads the inputs
    itself. data_cost_file and labeling_file are optional precomputed
    artifacts; an empty string means "compute it".
    """
    in_scene: str = ""
    in_mesh: str = ""
    out_prefix: str = "textured"
    data_cost_file: str = ""
    labeling_file: str = ""
    write_timings: bool = False
    write_intermediate_results: bool = False
    write_view_selection_model: bool = False
    num_threads: int | None = None
    max_texture_size: int = MAX_TEXTURE_SIZE
    settings: Settings = field(default_factory=Settings)

    def to_string(self) -> str:
        """Render the full configuration, one `key: value` line each."""
        lines = [
            f"texrecon {__version__}",
            f"Input scene: \t{self.in_scene}",
            f"Input mesh: \t{self.in_mesh}",
            f"Output prefix: \t{self.out_prefix}",
            f"Datacost file: \t{self.data_cost_file}",
            f"Labeling file: \t{self.labeling_file}",
            f"Data term: \t{self.settings.data_term}",
            f"Smoothness term: \t{self.settings.smoothness_term}",
            f"Geometric visibility test: \t{self.settings.geometric_visibility_test}",
            f"Global seam leveling: \t{self.settings.global_seam_leveling}",
            f"Local seam leveling: \t{self.settings.local_seam_leveling}",
            f"Keep unseen faces: \t{self.settings.keep_unseen_faces}",
            f"Max texture size: \t{self.max_texture_size}",
            f"Threads: \t{self.num_threads if self.num_threads else 'auto'}",
        ]
        return "\n".join(lines) + "\n"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="texrecon",
        description=(
            "Textures a mesh given images in form of a scene directory "
            "(images with .cam files, or a COLMAP sparse model)."
        ),
    )
    parser.add_argument("in_scene", help="Scene directory with images and calibration")
    parser.add_argument("in_mesh", help="Triangle mesh to texture (PLY or OBJ)")
    parser.add_argument("out_prefix", help="Output path prefix, e.g. out/model")

    parser.add_argument(
        "-d", "--data_term", choices=DataTerm.CHOICES, default=DataTerm.GMI,
        help="Data term used to rate views [gmi]",
    )
    parser.add_argument(
        "-s", "--smoothness_term", choices=SmoothnessTerm.CHOICES,
        default=SmoothnessTerm.POTTS, help="Smoothness term [potts]",
    )
    parser.add_argument(
        "-D", "--data_costs", dest="data_cost_file", default="",
        help="Skip calculation of data costs and use the given file instead",
    )
    parser.add_argument(
        "-L", "--labeling_file", default="",
        help="Skip view selection and use the labeling from the given file instead",
    )
    parser.add_argument("--skip_geometric_visibility_test", action="store_true",
                        help="Skip the occlusion test when rating views")
    parser.add_argument("--skip_global_seam_leveling", action="store_true",
                        help="Skip global seam leveling")
    parser.add_argument("--skip_local_seam_leveling", action="store_true",
                        help="Skip local seam leveling (Poisson-style strip blending)")
    parser.add_argument("--keep_unseen_faces", action="store_true",
                        help="Keep faces no view sees (textured flat grey)")
    parser.add_argument("--write_timings", action="store_true",
                        help="Write timings to <prefix>_timings.csv")
    parser.add_argument("--write_intermediate_results", action="store_true",
                        help="Write data costs and labeling to <prefix>_data_costs.spt "
                             "and <prefix>_labeling.vec")
    parser.add_argument("--write_view_selection_model", action="store_true",
                        help="Write an additional model colored by selected view")
    parser.add_argument("--num_threads", type=int, default=None,
                        help="Worker threads for the patch post-processing pass")
    parser.add_argument("--max_texture_size", type=int, default=MAX_TEXTURE_SIZE,
                        help=f"Largest atlas edge length in pixels [{MAX_TEXTURE_SIZE}]")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def parse_args(argv=None) -> tuple[Arguments, bool]:
    """
    Parse command line arguments into an Arguments instance.

    Returns:
        (arguments, debug) — debug selects DEBUG log level at the entry point.

    argparse exits with status 2 on malformed arguments.
    """
    ns = _build_parser().parse_args(argv)

    settings = Settings(
        data_term=ns.data_term,
        smoothness_term=ns.smoothness_term,
        geometric_visibility_test=not ns.skip_geometric_visibility_test,
        global_seam_leveling=not ns.skip_global_seam_leveling,
        local_seam_leveling=not ns.skip_local_seam_leveling,
        keep_unseen_faces=ns.keep_unseen_faces,
    )
    arguments = Arguments(
        in_scene=ns.in_scene,
        in_mesh=ns.in_mesh,
        out_prefix=ns.out_prefix,
        data_cost_file=ns.data_cost_file,
        labeling_file=ns.labeling_file,
        write_timings=ns.write_timings,
        write_intermediate_results=ns.write_intermediate_results,
        write_view_selection_model=ns.write_view_selection_model,
        num_threads=ns.num_threads,
        max_texture_size=ns.max_texture_size,
        settings=settings,
    )
    return arguments, ns.debug
