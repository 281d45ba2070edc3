"""
Driver of a blockmodel fit: initialisation, Markov chain to convergence,
selection of the number of blocks and the final sampling run.
"""
from typing import Callable, Optional, TextIO
import sys
import threading

import numpy as np
from tqdm import tqdm

from blockfit.graph_data import GraphData
from blockfit.blockmodel import UndirectedBlockmodel
from blockfit.greedy import GreedyStrategy
from blockfit.mcmc import MetropolisHastingsStrategy
from blockfit.convergence import ConvergenceCriterion, CONVERGENCE_CRITERIA
from blockfit.model_selection import ModelSelection, candidate_group_counts
from blockfit.io import ModelWriter
from blockfit.utils.config import FitConfig, make_fit_config
from blockfit.utils.logger import ChainLogger, StatusLog
from blockfit.utils.util import set_random_seed

#### Aliases
CriterionFactory = Callable[[], ConvergenceCriterion]


class BlockmodelFitter:
    """
    Fits an undirected blockmodel to a graph.

    A single random generator, seeded from the configuration, feeds the
    random initialisation and every sampler, so a fit is reproducible from
    its seed.

    The best model can be dumped while the chain is running: `request_dump`
    only raises a flag, and the flag is served between two completed chain
    steps, never while the model is being mutated.
    """
    def __init__(self,
                 graph: GraphData,
                 config: Optional[FitConfig] = None,
                 writer: Optional[ModelWriter] = None,
                 output: TextIO = sys.stdout,
                 chain_logger: Optional[ChainLogger] = None,
                 criterion_factory: Optional[CriterionFactory] = None,
        ):
        self.graph = graph
        self.config: FitConfig = config if config is not None else make_fit_config()
        self.writer = writer if writer is not None else ModelWriter.create(self.config["output_format"])
        self.output = output
        self.chain_logger = chain_logger
        self.criterion_factory: CriterionFactory = (
            criterion_factory if criterion_factory is not None
            else CONVERGENCE_CRITERIA[self.config["convergence"]]
        )
        self.log = StatusLog(self.config["verbosity"])

        self.rng = set_random_seed(self.config["random_seed"])

        self.model: Optional[UndirectedBlockmodel] = None
        self.mcmc: Optional[MetropolisHastingsStrategy] = None
        self.selection: Optional[ModelSelection] = None

        self._best_model: Optional[UndirectedBlockmodel] = None
        self.best_log_likelihood = -np.inf

        self._dump_requested = threading.Event()

    # ------------------------------------------------------------------
    # dumping the best state
    # ------------------------------------------------------------------
    def request_dump(self) -> None:
        """ Ask for the best model to be written at the next safe point. """
        self._dump_requested.set()

    def dump_requested(self) -> bool:
        return self._dump_requested.is_set()

    def dump_best_state(self) -> None:
        """ Write the best model found so far and clear the dump flag. """
        self.log.info(">> dumping best state of the chain")
        if self._best_model is not None:
            self.writer.write(self._best_model, self.output)
        else:
            self.log.debug(">> no model fitted yet, printing nothing")
        self._dump_requested.clear()

    @property
    def best_model(self) -> Optional[UndirectedBlockmodel]:
        return self._best_model

    # ------------------------------------------------------------------
    # fitting
    # ------------------------------------------------------------------
    def fit_for_group_count(self, num_types: int) -> UndirectedBlockmodel:
        """
        Initialise a model with `num_types` blocks and run the Markov chain
        until the convergence criterion is satisfied.

        :return: The best model seen during the run.
        """
        model = UndirectedBlockmodel(self.graph, num_types)
        model.randomize(self.rng)
        self.model = model

        if self.config["init_method"] == "greedy":
            self.log.info(">> running greedy initialization")
            greedy = GreedyStrategy(callback=self._log_greedy_step)
            steps = greedy.optimize(model)
            if not greedy.reached_fixed_point:
                self.log.info(">> greedy initialization stopped after %d steps without a fixed point", steps)

        self._best_model = model.copy()
        self.best_log_likelihood = model.get_log_likelihood()
        self.mcmc = MetropolisHastingsStrategy(model, rng=self.rng)

        self.log.info(">> starting Markov chain")
        criterion = self.criterion_factory()
        converged = False
        while not converged:
            samples = self.run_block(self.config["block_size"])
            converged = criterion.check(samples)

            report = criterion.report()
            if report:
                self.log.debug(">> %s", report)

        return self._best_model

    def run_block(self, num_samples: int) -> np.ndarray:
        """
        Run `num_samples` steps of the chain.

        :return: The log-likelihood after every step.
        """
        mcmc, model = self._require_chain()
        samples = np.empty(max(int(num_samples), 0), dtype=np.float64)
        log_period = self.config["log_period"]

        for i in range(samples.size):
            mcmc.step()

            log_likelihood = model.get_log_likelihood()
            if log_likelihood > self.best_log_likelihood:
                self._best_model = model.copy()
                self.best_log_likelihood = log_likelihood
            samples[i] = log_likelihood

            step = mcmc.get_step_count()
            if step % log_period == 0 and not self.log.quiet:
                self.log.info(
                    "[%6d] (%2d) %12.4f\t(%.4f)\t%s %8.6f",
                    step, model.num_types, log_likelihood, self.best_log_likelihood,
                    "*" if mcmc.was_last_proposal_accepted() else " ",
                    mcmc.get_acceptance_ratio(),
                )
            if self.chain_logger is not None:
                self.chain_logger.log(
                    step=step,
                    num_types=model.num_types,
                    log_likelihood=log_likelihood,
                    best_log_likelihood=self.best_log_likelihood,
                    accepted=mcmc.was_last_proposal_accepted(),
                    acceptance_ratio=mcmc.get_acceptance_ratio(),
                )

            if self._dump_requested.is_set():
                self.dump_best_state()

        return samples

    def run_indefinitely(self, block_size: int = 1000) -> None:
        """
        Keep sampling until interrupted (Ctrl-C). The best model stays
        available through `request_dump` while the chain runs.
        """
        try:
            while True:
                self.run_block(block_size)
        except KeyboardInterrupt:
            self.log.info(">> interrupted, stopping the chain")

    def select_group_count(self) -> UndirectedBlockmodel:
        """
        Fit a model for every candidate block count and keep the one with
        the lowest AIC.
        """
        if self.selection is None:
            self.selection = ModelSelection(candidate_group_counts(
                self.graph.num_nodes,
                min_groups=self.config["min_groups"],
                max_groups=self.config["max_groups"],
            ))
        selection = self.selection

        pending = list(selection.pending())
        for k in tqdm(pending, desc="Trying type counts", disable=self.log.quiet, file=sys.stderr):
            self.log.info(">> trying with %d types", k)
            best = self.fit_for_group_count(k)
            result = selection.record(k, best)
            self.log.debug(
                ">> AIC = %.4f (%.4f), BIC = %.4f (%.4f)",
                result.aic, selection.best_aic, result.bic, selection.best_bic,
            )

        if selection.best_model is None:
            raise RuntimeError("Model selection finished without any candidate.")

        # continue sampling from the selected model
        self.model = selection.best_model.copy()
        self._best_model = selection.best_model.copy()
        self.best_log_likelihood = self.model.get_log_likelihood()
        self.mcmc = MetropolisHastingsStrategy(self.model, rng=self.rng)

        self.log.info(">> best type count is %d", self.model.num_types)
        return self._best_model

    def run(self) -> UndirectedBlockmodel:
        """
        Run the complete fit and write the best model once at the end.

        :return: The best model found.
        """
        self.log.info(
            ">> graph has %d vertices and %d edges",
            self.graph.num_nodes, self.graph.total_edges,
        )
        self.log.debug(">> using random seed: %s", self.config["random_seed"])

        num_groups = self.config["num_groups"]
        if num_groups is not None:
            best = self.fit_for_group_count(int(num_groups))
            self.log.info(">> AIC = %.4f, BIC = %.4f", best.aic(), best.bic())
        else:
            self.select_group_count()

        num_samples = self.config["num_samples"]
        if num_samples > 0:
            self.log.info(">> convergence condition satisfied, taking %d samples", num_samples)
            self.run_block(num_samples)
        else:
            self.log.info(">> convergence condition satisfied, leaving the chain running anyway")
            self.log.info(">> send SIGUSR1 to dump the current best state")
            self.run_indefinitely()

        self.dump_best_state()
        return self._best_model # type: ignore

    def _require_chain(self):
        if self.mcmc is None or self.model is None:
            raise RuntimeError("No chain set up; call fit_for_group_count first.")
        return self.mcmc, self.model

    def _log_greedy_step(self, step: int, model: UndirectedBlockmodel) -> None:
        log_likelihood = model.get_log_likelihood()
        self.log.info("[%6d] (%2d) %12.4f", step, model.num_types, log_likelihood)
