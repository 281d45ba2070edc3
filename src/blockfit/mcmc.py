"""
Metropolis-Hastings sampler over the type assignments of a blockmodel.

The chain targets the distribution proportional to the likelihood of the
type assignment. Proposals move one uniformly chosen vertex to one of the
other K - 1 blocks, chosen uniformly; the proposal is symmetric, so the
acceptance probability is min(1, L'/L).
"""
from typing import Optional
from math import exp

import numpy as np

from blockfit.blockmodel import UndirectedBlockmodel


class MetropolisHastingsStrategy:
    def __init__(self,
                 model: Optional[UndirectedBlockmodel] = None,
                 rng: Optional[np.random.Generator] = None,
                 seed: Optional[int] = None,
                 ):

        self.rng = rng if rng is not None else np.random.default_rng(seed)

        self.model: Optional[UndirectedBlockmodel] = None
        self.step_count = 0
        self.accept_count = 0
        self.last_proposal_accepted = False

        # best model seen during the lifetime of this sampler
        self._best_model: Optional[UndirectedBlockmodel] = None
        self.best_log_likelihood = -np.inf

        if model is not None:
            self.set_model(model)

    def set_model(self, model: UndirectedBlockmodel) -> None:
        """
        Attach the model to be sampled. The model is mutated in place.
        """
        self.model = model
        self._update_best()

    def step(self) -> bool:
        """
        Propose moving one vertex to another block and accept or reject it.

        :return: True if the proposal was accepted.
        """
        model = self._require_model()
        n, K = model.graph.num_nodes, model.num_types

        accepted = False
        if n > 0 and K > 1:
            vertex = int(self.rng.integers(n))
            old_type = model.get_type(vertex)

            # uniform over the K - 1 other blocks
            new_type = int(self.rng.integers(K - 1))
            if new_type >= old_type:
                new_type += 1

            old_ll = model.get_log_likelihood()
            model.set_type(vertex, new_type)
            delta_ll = model.get_log_likelihood() - old_ll

            accepted = self._accept_move(delta_ll)
            if accepted:
                self.accept_count += 1
            else:
                model.set_type(vertex, old_type)

        self.step_count += 1
        self.last_proposal_accepted = accepted
        self._update_best()

        return accepted

    def _accept_move(self, delta_ll: float) -> bool:
        """
        Metropolis rule: always accept an improvement, otherwise accept with
        probability exp(delta_ll).
        """
        if delta_ll >= 0:
            return True

        z = max(delta_ll, -700.0)
        return self.rng.random() < exp(z)

    def _update_best(self) -> None:
        model = self._require_model()
        log_likelihood = model.get_log_likelihood()
        if self._best_model is None or log_likelihood > self.best_log_likelihood:
            self._best_model = model.copy()
            self.best_log_likelihood = log_likelihood

    def _require_model(self) -> UndirectedBlockmodel:
        if self.model is None:
            raise RuntimeError("No model attached to the sampler; call set_model first.")
        return self.model

    # ------------------------------------------------------------------
    def get_acceptance_ratio(self) -> float:
        """ Accepted proposals over steps taken; 0.0 before the first step. """
        if self.step_count == 0:
            return 0.0
        return self.accept_count / self.step_count

    def get_rng(self) -> np.random.Generator:
        return self.rng

    def get_step_count(self) -> int:
        return self.step_count

    def was_last_proposal_accepted(self) -> bool:
        return self.last_proposal_accepted

    def get_best_model(self) -> UndirectedBlockmodel:
        if self._best_model is None:
            raise RuntimeError("No model attached to the sampler; call set_model first.")
        return self._best_model

    def get_best_log_likelihood(self) -> float:
        return self.best_log_likelihood
