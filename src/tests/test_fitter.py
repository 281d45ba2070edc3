# tests/test_fitter.py
"""
End-to-end tests of the fitting driver on small graphs. The convergence
criterion is mostly made permissive (a threshold above ln 2 accepts every
block) so the tests do not depend on how quickly a particular chain mixes.
"""
import io
import json

import numpy as np
import pytest

from blockfit.convergence import EntropyConvergenceCriterion
from blockfit.fitter import BlockmodelFitter
from blockfit.io import read_json_fit
from blockfit.utils.config import make_fit_config
from blockfit.utils.logger import ChainLogger


def _permissive():
    return EntropyConvergenceCriterion(threshold=1.0)


def _fitter(graph, output=None, criterion_factory=_permissive, **overrides):
    options = dict(
        num_groups=2,
        block_size=400,
        num_samples=200,
        log_period=100,
        random_seed=0,
        verbosity=0,
        output_format="json",
    )
    options.update(overrides)
    return BlockmodelFitter(
        graph,
        config=make_fit_config(**options),
        output=output if output is not None else io.StringIO(),
        criterion_factory=criterion_factory,
    )


def test_run_with_fixed_group_count(bridged_cliques):
    out = io.StringIO()
    fitter = _fitter(bridged_cliques, out)
    best = fitter.run()

    assert best.num_types == 2
    assert best.get_log_likelihood() == pytest.approx(fitter.best_log_likelihood)
    assert fitter.mcmc.get_step_count() == 400 + 200 # type: ignore

    fit = read_json_fit(io.StringIO(out.getvalue()))
    assert fit.types == best.get_types().tolist()
    assert fit.log_likelihood == pytest.approx(best.get_log_likelihood())


def test_run_is_reproducible(bridged_cliques):
    outputs = []
    for _ in range(2):
        out = io.StringIO()
        _fitter(bridged_cliques, out, random_seed=123).run()
        outputs.append(json.loads(out.getvalue()))
    assert outputs[0]["types"] == outputs[1]["types"]
    assert outputs[0]["log_likelihood"] == outputs[1]["log_likelihood"]


def test_random_initialization(bridged_cliques):
    fitter = _fitter(bridged_cliques, init_method="random", output_format="null")
    best = fitter.run()
    assert best.num_types == 2
    assert np.isfinite(best.get_log_likelihood())


def test_best_model_dominates_samples(bridged_cliques):
    fitter = _fitter(bridged_cliques)
    fitter.fit_for_group_count(2)
    samples = fitter.run_block(300)

    assert samples.shape == (300,)
    assert fitter.best_log_likelihood >= samples.max() - 1e-12
    assert fitter.best_model.get_log_likelihood() == pytest.approx(fitter.best_log_likelihood) # type: ignore


def test_dump_request_served_between_steps(bridged_cliques):
    out = io.StringIO()
    fitter = _fitter(bridged_cliques, out)
    fitter.fit_for_group_count(2)
    assert out.getvalue() == ""

    fitter.request_dump()
    assert fitter.dump_requested()
    fitter.run_block(5)

    assert not fitter.dump_requested()
    fit = read_json_fit(io.StringIO(out.getvalue()))
    assert fit.num_types == 2


def test_run_block_requires_chain(bridged_cliques):
    with pytest.raises(RuntimeError):
        _fitter(bridged_cliques).run_block(10)


def test_select_group_count(sbm_graph):
    fitter = _fitter(sbm_graph, num_groups=None, block_size=200, num_samples=10)
    best = fitter.run()

    selection = fitter.selection
    assert selection is not None
    assert [k for k, _, _ in selection.summary()] == [2, 3, 4]
    assert best.num_types == min(selection.results, key=lambda r: r.aic).num_types
    assert selection.best_aic == pytest.approx(min(r.aic for r in selection.results))


def test_select_group_count_respects_max_groups(sbm_graph):
    fitter = _fitter(sbm_graph, num_groups=None, max_groups=3, block_size=100, num_samples=10)
    fitter.run()
    assert [k for k, _, _ in fitter.selection.summary()] == [2, 3] # type: ignore


def test_run_indefinitely_stops_on_interrupt(bridged_cliques, monkeypatch):
    out = io.StringIO()
    fitter = _fitter(bridged_cliques, out, num_samples=0)
    calls = []

    run_block = fitter.run_block

    def interrupted(num_samples):
        calls.append(num_samples)
        if len(calls) > 3:
            raise KeyboardInterrupt
        return run_block(num_samples)

    monkeypatch.setattr(fitter, "run_block", interrupted)
    best = fitter.run()

    # one block to converge, two open-ended blocks, then the interrupt
    assert len(calls) == 4
    assert read_json_fit(io.StringIO(out.getvalue())).types == best.get_types().tolist()


def test_chain_trace(bridged_cliques):
    trace = io.StringIO()
    fitter = _fitter(bridged_cliques)
    fitter.chain_logger = ChainLogger(trace, log_every=50)
    fitter.fit_for_group_count(2)

    rows = [line for line in trace.getvalue().splitlines() if line]
    assert len(rows) == 400 // 50
    step, _, num_types, *_ = rows[0].split(",")
    assert step == "50"
    assert num_types == "2"


def test_default_criterion_comes_from_config(bridged_cliques):
    fitter = BlockmodelFitter(bridged_cliques, config=make_fit_config(verbosity=0))
    assert fitter.criterion_factory is EntropyConvergenceCriterion


@pytest.mark.parametrize("seed", [0, 1, 2])
def test_run_with_default_criterion(bridged_cliques, seed):
    """ A chain sitting at its optimum repeats a log-likelihood up to rounding. """
    out = io.StringIO()
    fitter = _fitter(
        bridged_cliques, out, criterion_factory=None,
        block_size=1000, num_samples=100, random_seed=seed,
    )
    best = fitter.run()

    fit = read_json_fit(io.StringIO(out.getvalue()))
    assert fit.num_types == 2
    assert fit.types == best.get_types().tolist()
    assert np.isfinite(fit.log_likelihood)
