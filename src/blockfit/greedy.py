"""
Greedy hill-climbing for blockmodels, used to initialise the Markov chain.
"""
from typing import Callable, Optional

import numpy as np
from scipy.sparse import csr_array

from blockfit.blockmodel import UndirectedBlockmodel

#### Aliases
StepCallback = Callable[[int, UndirectedBlockmodel], None]


def neighbor_counts_by_type(model: UndirectedBlockmodel) -> np.ndarray:
    """
    n x K matrix whose (i, t) entry is the number of neighbours of vertex i
    that currently have type t.
    """
    n, K = model.graph.num_nodes, model.num_types
    membership = csr_array(
        (np.ones(n, dtype=np.int64), (np.arange(n), model.types)),
        shape=(n, K),
    )
    return (model.graph.adjacency.astype(np.int64) @ membership).toarray()


def log_odds(probabilities: np.ndarray, eps: float = 1e-6) -> np.ndarray:
    """
    log(p) - log(1 - p) for every block pair. Probabilities are clipped to
    [eps, 1 - eps] so that empty and saturated pairs stay finite.
    """
    p = np.clip(probabilities, eps, 1.0 - eps)
    return np.log(p) - np.log1p(-p)


class GreedyStrategy:
    """
    Moves every vertex to the block that maximises its local contribution
    to the log-likelihood, until no vertex moves.

    The local contribution of vertex i in block t is, up to a term that does
    not depend on the neighbour counts, the inner product of the neighbour
    counts by type with row t of the log-odds matrix. All vertices are scored
    against the assignment as it was at the start of the step and the new
    types are committed at once. This synchronous sweep is an approximation:
    it does not necessarily reach the fixed point a sequential pass would,
    and it is not guaranteed to recover a planted partition.

    Ties are broken in favour of the lowest block index.
    """
    def __init__(self,
                 max_steps: Optional[int] = None,
                 eps: float = 1e-6,
                 callback: Optional[StepCallback] = None,
                 ):
        self.max_steps = max_steps
        self.eps = eps
        self.callback = callback
        self.step_count = 0
        self.reached_fixed_point = False

    def propose_types(self, model: UndirectedBlockmodel) -> np.ndarray:
        """
        Best type of every vertex given a frozen snapshot of the model.
        The model itself is not touched.
        """
        scores = neighbor_counts_by_type(model) @ log_odds(model.get_probabilities(), self.eps).T
        return np.argmax(scores, axis=1).astype(np.int64)

    def step(self, model: UndirectedBlockmodel) -> bool:
        """
        Perform one synchronous sweep.

        :return: True if any vertex changed its type.
        """
        new_types = self.propose_types(model)
        self.step_count += 1

        changed = not np.array_equal(new_types, model.types)
        if changed:
            model.set_types(new_types)

        if self.callback is not None:
            self.callback(self.step_count, model)

        return changed

    def optimize(self, model: UndirectedBlockmodel) -> int:
        """
        Step until a fixed point is reached (or `max_steps` sweeps were made).
        A sweep that returns to the assignment of two sweeps ago ends the
        run as well, since synchronous updates can oscillate forever.
        `reached_fixed_point` is False after such an exit and when
        `max_steps` runs out.

        :return: Number of sweeps performed.
        """
        steps = 0
        previous = None
        self.reached_fixed_point = False
        while self.max_steps is None or steps < self.max_steps:
            steps += 1
            before = model.get_types()
            if not self.step(model):
                self.reached_fixed_point = True
                break
            if previous is not None and np.array_equal(model.types, previous):
                break # two-cycle
            previous = before
        return steps

    def get_step_count(self) -> int:
        return self.step_count
