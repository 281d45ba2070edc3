"""
Profile Bernoulli log-likelihood of an undirected blockmodel.

Every block pair (r, s) contributes

    e_rs * log(p_rs) + (n_rs - e_rs) * log(1 - p_rs),    p_rs = e_rs / n_rs

where e_rs is the number of observed edges and n_rs the number of possible
vertex pairs between the two blocks. Empty pairs (n_rs = 0) and pairs with
p_rs in {0, 1} contribute exactly zero (0 * log 0 := 0).
"""
from numba import jit

import numpy as np


@jit(nopython=True, cache=True)
def _bernoulli_ll_block_pair(e: int, n: int) -> float:
    """
    Profile log-likelihood for one block pair.
    e: number of edges between block pair.
    n: number of possible pairs between block pair.
    """
    if n <= 0 or e <= 0 or e >= n:
        return 0.0

    p = e / n
    return e * np.log(p) + (n - e) * np.log1p(-p)


@jit(nopython=True, cache=True)
def _ll_matrix(edges: np.ndarray, pairs: np.ndarray) -> np.ndarray:
    """
    edges  : e_rs   (int >= 0), K x K
    pairs  : n_rs   (int >= 0), K x K
    returns: l_rs   (float), K x K
    """
    out = np.zeros(edges.shape, dtype=np.float64)
    for r in range(edges.shape[0]):
        for s in range(edges.shape[1]):
            out[r, s] = _bernoulli_ll_block_pair(edges[r, s], pairs[r, s])
    return out


@jit(nopython=True, cache=True)
def _ll_vector(edges: np.ndarray, pairs: np.ndarray) -> np.ndarray:
    out = np.zeros(edges.shape[0], dtype=np.float64)
    for i in range(edges.shape[0]):
        out[i] = _bernoulli_ll_block_pair(edges[i], pairs[i])
    return out


def compute_possible_pairs(block_sizes: np.ndarray) -> np.ndarray:
    """
    Number of vertex pairs between every two blocks.
    Off-diagonal entries are s_r * s_s, diagonal entries s_r * (s_r - 1) / 2.
    """
    sizes = np.asarray(block_sizes, dtype=np.int64)
    pairs = np.outer(sizes, sizes)
    np.fill_diagonal(pairs, sizes * (sizes - 1) // 2)
    return pairs


def compute_probabilities(edges: np.ndarray, pairs: np.ndarray) -> np.ndarray:
    """ Maximum-likelihood edge probabilities, zero where no pair is possible. """
    probs = np.zeros(edges.shape, dtype=np.float64)
    np.divide(edges, pairs, out=probs, where=pairs > 0)
    return probs


def compute_pair_log_likelihoods(edges: np.ndarray, pairs: np.ndarray) -> np.ndarray:
    return _ll_matrix(
        np.ascontiguousarray(edges, dtype=np.int64),
        np.ascontiguousarray(pairs, dtype=np.int64),
    )


def compute_row_log_likelihoods(edges: np.ndarray, pairs: np.ndarray) -> np.ndarray:
    return _ll_vector(
        np.ascontiguousarray(edges, dtype=np.int64),
        np.ascontiguousarray(pairs, dtype=np.int64),
    )


def compute_global_bernoulli_ll(edges: np.ndarray, block_sizes: np.ndarray) -> float:
    """
    Global log-likelihood of the blockmodel from its edge-count matrix and
    block sizes. Only the upper triangle (diagonal included) is summed, since
    the matrices of an undirected model are symmetric.

    :param edges: K x K symmetric matrix of edge counts between blocks.
    :param block_sizes: number of vertices in each block.
    :return: The global log-likelihood.
    """
    pairs = compute_possible_pairs(block_sizes)
    edges = np.asarray(edges, dtype=np.int64)

    if (edges < 0).any():
        raise ValueError("Edge counts must be non-negative.")
    if (edges > pairs).any():
        raise ValueError("Edge count cannot be greater than the number of possible pairs.")

    return float(np.triu(compute_pair_log_likelihoods(edges, pairs)).sum())


def compute_naive_bernoulli_ll(adjacency: np.ndarray, types: np.ndarray, num_types: int) -> float:
    """
    Reference implementation straight from the definition: visit every
    unordered vertex pair. O(n^2), only meant for tests and small graphs.
    """
    adjacency = np.asarray(adjacency)
    n = adjacency.shape[0]
    edges = np.zeros((num_types, num_types), dtype=np.int64)
    pairs = np.zeros((num_types, num_types), dtype=np.int64)

    for u in range(n):
        for v in range(u + 1, n):
            r, s = sorted((int(types[u]), int(types[v])))
            pairs[r, s] += 1
            if adjacency[u, v]:
                edges[r, s] += 1

    ll = 0.0
    for r in range(num_types):
        for s in range(r, num_types):
            e, m = edges[r, s], pairs[r, s]
            if e == 0 or e == m:
                continue
            p = e / m
            ll += e * np.log(p) + (m - e) * np.log(1 - p)
    return float(ll)
