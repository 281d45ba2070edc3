"""
Selection of the number of blocks by information criteria.
"""
from typing import Iterable, Iterator, List, Optional, Tuple
from dataclasses import dataclass
import math

from blockfit.blockmodel import UndirectedBlockmodel


def candidate_group_counts(num_nodes: int,
                           min_groups: int = 2,
                           max_groups: Optional[int] = None,
    ) -> List[int]:
    """
    Block counts to try when K is not given.

    The upper bound defaults to floor(sqrt(num_nodes)). This is a heuristic
    cap, not a statistical guarantee, so callers may override it. At least
    `min_groups` itself is always returned.
    """
    if min_groups < 1:
        raise ValueError("min_groups must be at least 1.")
    if max_groups is None:
        max_groups = math.isqrt(max(num_nodes, 0))
    return list(range(min_groups, max(min_groups, max_groups) + 1))


@dataclass
class SelectionResult:
    num_types: int
    log_likelihood: float
    aic: float
    bic: float


class ModelSelection:
    """
    Bookkeeping for a sweep over candidate block counts.

    The sweep is an explicit iteration: `pending()` yields the candidates
    that have no recorded result yet, so an interrupted sweep can resume
    where it stopped and candidates can be fitted independently of each
    other. The model with the lowest AIC is kept; the lowest BIC is tracked
    and reported only.
    """
    def __init__(self, candidates: Iterable[int]):
        self.candidates = list(candidates)
        self.results: List[SelectionResult] = []

        self.best_model: Optional[UndirectedBlockmodel] = None
        self.best_aic = math.inf
        self.best_bic = math.inf

    def pending(self) -> Iterator[int]:
        done = {r.num_types for r in self.results}
        for k in self.candidates:
            if k not in done:
                yield k

    def record(self, num_types: int, model: UndirectedBlockmodel) -> SelectionResult:
        """
        Store the information criteria of the best model found for
        `num_types` blocks.
        """
        if model.num_types != num_types:
            raise ValueError(
                f"Model has {model.num_types} types, expected {num_types}."
            )

        result = SelectionResult(
            num_types=num_types,
            log_likelihood=model.get_log_likelihood(),
            aic=model.aic(),
            bic=model.bic(),
        )
        self.results.append(result)

        if result.aic < self.best_aic:
            self.best_aic = result.aic
            self.best_model = model.copy()
        if result.bic < self.best_bic:
            self.best_bic = result.bic

        return result

    def summary(self) -> List[Tuple[int, float, float]]:
        return [(r.num_types, r.aic, r.bic) for r in self.results]

    def is_done(self) -> bool:
        return next(self.pending(), None) is None
