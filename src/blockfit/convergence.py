"""
Convergence criteria for the Markov chain of the blockmodel fit.
"""
from typing import Optional, Sequence

import numpy as np
from scipy.stats import entropy

# sample ranges below this fraction of the sample magnitude count as constant
RELATIVE_RANGE_TOL = 1e-9


class ConvergenceCriterion:
    """
    Base class for convergence criteria.

    A criterion consumes consecutive blocks of log-likelihood samples and
    decides whether the chain has reached its stationary regime.
    """

    def check(self, samples: Sequence[float]) -> bool:
        """
        Check whether the chain has converged.

        :param samples: Log-likelihoods of one block of consecutive steps.
        :return: True if the chain is considered converged.
        """
        raise NotImplementedError("Subclasses should implement this method.")

    def report(self) -> str:
        """
        Diagnostic message about the last check, or an empty string if there
        is nothing new to report.
        """
        return ""


def jensen_shannon_divergence(p: np.ndarray, q: np.ndarray) -> float:
    """
    Jensen-Shannon divergence (in nats) between two histograms.
    Histograms are normalised first; the result lies in [0, ln 2].
    """
    p = np.asarray(p, dtype=np.float64)
    q = np.asarray(q, dtype=np.float64)
    p = p / p.sum()
    q = q / q.sum()
    m = 0.5 * (p + q)
    return max(0.0, float(entropy(m) - 0.5 * (entropy(p) + entropy(q))))


class EntropyConvergenceCriterion(ConvergenceCriterion):
    """
    Declares convergence when the distribution of sampled log-likelihoods
    stops drifting.

    Each block is histogrammed on a shared range and split into halves. The
    statistic is the Jensen-Shannon divergence between the two halves and,
    from the second block on, between the previous block and the current
    one; the larger of the two is compared against `threshold`. A block of
    samples that are constant up to rounding has divergence 0. A block with
    a strict monotone trend puts its halves in disjoint bins, giving the
    maximum divergence ln 2.

    The criterion keeps the previous block between calls, so a fresh
    instance must be used for every chain. Once converged, it stays
    converged.
    """
    def __init__(self, num_bins: int = 32, threshold: float = 0.05):
        if num_bins < 1:
            raise ValueError("num_bins must be a positive integer.")
        if threshold < 0:
            raise ValueError("threshold must be non-negative.")

        self.num_bins = int(num_bins)
        self.threshold = float(threshold)

        self.converged = False
        self.num_checks = 0
        self.statistic: Optional[float] = None
        self._previous: Optional[np.ndarray] = None
        self._pending_report = ""

    def _histograms(self, *blocks: np.ndarray):
        lo = min(float(b.min()) for b in blocks)
        hi = max(float(b.max()) for b in blocks)
        # incremental log-likelihoods of the same state differ by a few ulps
        if hi - lo <= RELATIVE_RANGE_TOL * max(1.0, abs(lo)):
            return [np.array([b.size]) for b in blocks]
        edges = np.linspace(lo, hi, self.num_bins + 1)
        return [np.histogram(b, bins=edges)[0] for b in blocks]

    def _divergence(self, a: np.ndarray, b: np.ndarray) -> float:
        hist_a, hist_b = self._histograms(a, b)
        return jensen_shannon_divergence(hist_a, hist_b)

    def check(self, samples: Sequence[float]) -> bool:
        samples = np.asarray(samples, dtype=np.float64)
        self.num_checks += 1

        if samples.size < 2 or not np.isfinite(samples).all():
            self.statistic = None
            self._pending_report = (
                f"convergence check #{self.num_checks}: "
                f"block of {samples.size} samples is not usable"
            )
            return self.converged

        half = samples.size // 2
        statistic = self._divergence(samples[:half], samples[half:])
        if self._previous is not None:
            statistic = max(statistic, self._divergence(self._previous, samples))

        self._previous = samples.copy()
        self.statistic = statistic
        self.converged = self.converged or statistic <= self.threshold

        self._pending_report = (
            f"convergence check #{self.num_checks}: "
            f"JS divergence = {statistic:.6f} (threshold {self.threshold:.6f}), "
            f"{'converged' if self.converged else 'not converged'}"
        )
        return self.converged

    def report(self) -> str:
        message, self._pending_report = self._pending_report, ""
        return message


# short name -> criterion class, selectable through the `convergence` option
CONVERGENCE_CRITERIA = {
    "entropy": EntropyConvergenceCriterion,
}
