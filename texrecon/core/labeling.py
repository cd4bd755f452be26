"""
Label vector files and the labeling override path.

A labeling file stores one label per face (0 = unassigned, i = view i-1),
so a view selection can be computed once and reused. Format: a
little-endian uint64 element count followed by that many little-endian
uint64 values.

apply_labeling() is the gatekeeper when a run is given such a file instead
of running view selection: the vector must match the mesh/scene
combination, otherwise the graph is left untouched.
"""

import logging
from pathlib import Path

import numpy as np

from texrecon.core.errors import LabelingMismatchError, LoadError, OutputError
from texrecon.core.graph import Graph

logger = logging.getLogger(__name__)

_HEADER_DTYPE = np.dtype("<u8")
_VALUE_DTYPE = np.dtype("<u8")


def vector_to_file(path, labeling) -> None:
    """
    Write a label vector.

    Raises:
        OutputError: If the file cannot be written.
    """
    values = np.asarray(labeling, dtype=_VALUE_DTYPE).reshape(-1)
    try:
        with open(path, "wb") as f:
            f.write(np.array([len(values)], dtype=_HEADER_DTYPE).tobytes())
            f.write(values.tobytes())
    except OSError as e:
        raise OutputError(f"Could not write labeling to {path}: {e}") from e


def vector_from_file(path) -> np.ndarray:
    """
    Read a label vector written by vector_to_file().

    Raises:
        LoadError: If the file is missing, truncated or has trailing data.
    """
    path = Path(path)
    try:
        raw = path.read_bytes()
    except OSError as e:
        raise LoadError(f"Could not load labeling file {path}: {e}") from e

    header = _HEADER_DTYPE.itemsize
    if len(raw) < header:
        raise LoadError(f"Labeling file {path} is truncated")

    count = int(np.frombuffer(raw[:header], dtype=_HEADER_DTYPE)[0])
    if len(raw) - header != count * _VALUE_DTYPE.itemsize:
        raise LoadError(
            f"Labeling file {path} announces {count} labels but holds "
            f"{(len(raw) - header) // _VALUE_DTYPE.itemsize}"
        )
    return np.frombuffer(raw[header:], dtype=_VALUE_DTYPE).astype(np.int64)


def apply_labeling(labeling, graph: Graph, num_views: int) -> None:
    """
    Validate a label vector against the graph and copy it into the nodes.

    Valid iff the vector has exactly one entry per graph node and no entry
    exceeds num_views. Label num_views itself passes: with labels counted
    from 1 it addresses the last view. The whole vector is checked before
    the first label is written, so a rejected vector leaves the graph as it
    was.

    Raises:
        LabelingMismatchError: On a length mismatch or an out-of-range label.
    """
    labels = np.asarray(labeling, dtype=np.int64).reshape(-1)

    if len(labels) != graph.num_nodes():
        raise LabelingMismatchError(
            "Wrong labeling file for this mesh/scene combination... aborting! "
            f"({len(labels)} labels for {graph.num_nodes()} faces)"
        )

    out_of_range = np.flatnonzero((labels > num_views) | (labels < 0))
    if len(out_of_range):
        face = int(out_of_range[0])
        raise LabelingMismatchError(
            "Wrong labeling file for this mesh/scene combination... aborting! "
            f"(face {face} has label {int(labels[face])}, only {num_views} views)"
        )

    for node, label in enumerate(labels.tolist()):
        graph.set_label(node, label)

    logger.info("Applied labeling: %d of %d faces labeled",
                int((labels > 0).sum()), len(labels))
