"""
Parallel patch post-processing.

When global seam leveling is skipped, every patch still needs its validity
mask. That work is independent per patch, so it runs on a thread pool:
each task owns exactly one patch and applies an all-zero adjustment to it.
Patches never reference each other, so no locking is needed apart from the
shared progress counter. Completion order is irrelevant; the result of
every patch depends only on the patch itself.

NumPy and SciPy release the GIL in their inner loops, so threads overlap
the heavy rasterization and distance-transform work.
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from texrecon.core.pipeline import STAGE_DISPLAY_NAMES, PipelineStage
from texrecon.core.progress import ProgressCounter
from texrecon.core.texture_patch import TexturePatch

logger = logging.getLogger(__name__)


def _calculate_validity_mask(texture_patch: TexturePatch, counter: ProgressCounter) -> None:
    adjust_values = np.zeros((len(texture_patch.faces) * 3, 3), dtype=np.float32)
    texture_patch.adjust_colors(adjust_values)
    counter.inc()


def calculate_validity_masks(texture_patches: list, num_threads: int | None = None,
                             on_progress=None) -> int:
    """
    Compute the validity mask of every patch in parallel.

    Args:
        texture_patches: Patches to process; mutated in place.
        num_threads:     Worker count; defaults to the number of CPUs.
        on_progress:     Optional callback for "i of n" messages.

    Returns:
        Number of patches processed.

    An exception raised for any patch propagates to the caller once the
    pool has shut down.
    """
    workers = num_threads or os.cpu_count() or 1
    counter = ProgressCounter(
        STAGE_DISPLAY_NAMES[PipelineStage.VALIDITY_MASKS],
        len(texture_patches), on_progress,
    )

    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [
            pool.submit(_calculate_validity_mask, patch, counter)
            for patch in texture_patches
        ]
        for future in futures:
            future.result()

    logger.info("Validity masks computed for %d patches with %d threads",
                counter.count, workers)
    return counter.count
