"""
Output path layout for a texturing run.

Every file a run writes is derived from one caller-supplied path prefix
(e.g. `out/statue`). This module builds those paths in one place so
neither the pipeline nor the sinks concatenate strings themselves:

    <prefix>.obj / .mtl / .png                       — textured model
    <prefix>.conf                                    — run configuration
    <prefix>_timings.csv                             — stage timings
    <prefix>_labeling.vec                            — per-face view labels
    <prefix>_data_costs.spt                          — per face/view costs
    <prefix>_view_selection.*                        — debug model colored by view
"""

from dataclasses import dataclass
from pathlib import Path

from texrecon.core.errors import ConfigurationError


@dataclass
class OutputPaths:
    """
    Typed container for all output paths of a run.

    `model` and `view_selection_model` are prefixes (no extension); the
    exporter appends .obj/.mtl and the texture file names.
    """
    prefix: Path
    model: Path
    conf: Path
    timings: Path
    labeling: Path
    data_costs: Path
    view_selection_model: Path


def output_paths(out_prefix) -> OutputPaths:
    """Derive every output path of a run from its prefix."""
    prefix = Path(out_prefix)
    name = prefix.name
    parent = prefix.parent

    return OutputPaths(
        prefix=prefix,
        model=prefix,
        conf=parent / f"{name}.conf",
        timings=parent / f"{name}_timings.csv",
        labeling=parent / f"{name}_labeling.vec",
        data_costs=parent / f"{name}_data_costs.spt",
        view_selection_model=parent / f"{name}_view_selection",
    )


def check_destination(out_prefix) -> OutputPaths:
    """
    Verify the prefix's directory exists and return the run's output paths.

    Output directories are never created implicitly: a typo in the prefix
    should fail before minutes of processing, not after.

    Raises:
        ConfigurationError: If the destination directory does not exist.
    """
    paths = output_paths(out_prefix)
    destination = paths.prefix.parent
    if not paths.prefix.name or not destination.is_dir():
        raise ConfigurationError(
            f"Destination directory does not exist: {destination}"
        )
    return paths
