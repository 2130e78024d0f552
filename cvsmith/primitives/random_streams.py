"""Reproducible random substreams for parallel execution.

A single ``numpy.random.SeedSequence`` is created from the run seed and
split once, before dispatch, into one statistically independent child per
repetition. The child travels with its repetition to whichever worker runs
it, so the permutations drawn for a repetition do not depend on the worker
count, the scheduling policy or the completion order.
"""

import logging
from typing import List, Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)


def spawn_substreams(
    seed: Optional[int], n_streams: int
) -> Tuple[np.random.SeedSequence, List[np.random.SeedSequence]]:
    """Split a seed into independent substreams.

    Args:
        seed: Root seed. None draws fresh OS entropy.
        n_streams: Number of substreams.

    Returns:
        Tuple of (root SeedSequence, list of child SeedSequences).
    """
    root = np.random.SeedSequence(seed)
    if seed is None:
        logger.info(f"No rng_seed given; using entropy {root.entropy}")
    return root, root.spawn(n_streams)


def substream_generator(stream: np.random.SeedSequence) -> np.random.Generator:
    """Generator drawing from one substream."""
    return np.random.default_rng(stream)
