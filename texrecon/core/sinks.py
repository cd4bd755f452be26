"""
Output sinks — where a texturing run delivers its results.

The pipeline in texturing.py is identical for command-line runs and
in-process library calls; only the destination of its results differs.
OutputSink is that seam: one method per artifact, each called at most
once per run, in pipeline order.

    FileSink   — serializes everything to disk under an OutputPaths layout
    MemorySink — keeps everything on the instance for the caller to read
"""

import logging
from abc import ABC, abstractmethod

import numpy as np

from texrecon.core.data_costs import DataCosts
from texrecon.core.exporter import save_model
from texrecon.core.labeling import vector_to_file
from texrecon.core.model import Model
from texrecon.core.progress import Timer
from texrecon.core.workspace import OutputPaths

logger = logging.getLogger(__name__)


class OutputSink(ABC):
    """Receiver for the artifacts of one texturing run."""

    @abstractmethod
    def save_data_costs(self, data_costs: DataCosts) -> None:
        """Intermediate per face/view costs (only when requested)."""

    @abstractmethod
    def save_labeling(self, labeling: np.ndarray) -> None:
        """Intermediate per-face labels (only when requested)."""

    @abstractmethod
    def save_model(self, model: Model) -> None:
        """The consolidated textured model."""

    @abstractmethod
    def save_timings(self, timer: Timer) -> None:
        """Stage timings (only when requested)."""

    @abstractmethod
    def save_view_selection_model(self, model: Model) -> None:
        """Debug model textured with one flat color per view (only when requested)."""


class FileSink(OutputSink):
    """Writes every artifact to the paths of a run's output layout."""

    def __init__(self, paths: OutputPaths):
        self.paths = paths

    def save_data_costs(self, data_costs: DataCosts) -> None:
        DataCosts.save_to_file(data_costs, self.paths.data_costs)
        logger.info("Wrote data costs to %s", self.paths.data_costs)

    def save_labeling(self, labeling: np.ndarray) -> None:
        vector_to_file(self.paths.labeling, labeling)
        logger.info("Wrote labeling to %s", self.paths.labeling)

    def save_model(self, model: Model) -> None:
        save_model(model, self.paths.model)

    def save_timings(self, timer: Timer) -> None:
        timer.write_to_file(self.paths.timings)
        logger.info("Wrote timings to %s", self.paths.timings)

    def save_view_selection_model(self, model: Model) -> None:
        save_model(model, self.paths.view_selection_model)


class MemorySink(OutputSink):
    """Holds the run's artifacts; nothing touches the file system."""

    def __init__(self):
        self.model: Model | None = None
        self.view_selection_model: Model | None = None
        self.data_costs: DataCosts | None = None
        self.labeling: np.ndarray | None = None
        self.timings: list[tuple[str, float]] = []

    def save_data_costs(self, data_costs: DataCosts) -> None:
        self.data_costs = data_costs

    def save_labeling(self, labeling: np.ndarray) -> None:
        self.labeling = np.array(labeling, copy=True)

    def save_model(self, model: Model) -> None:
        self.model = model

    def save_timings(self, timer: Timer) -> None:
        self.timings = timer.measurements

    def save_view_selection_model(self, model: Model) -> None:
        self.view_selection_model = model
