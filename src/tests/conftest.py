from itertools import combinations

import numpy as np
import networkx as nx
import pytest

from blockfit.graph_data import GraphData, gd_from_edges, gd_from_networkx

# ------------------------------------------------------------------ helpers
def two_rings() -> GraphData:
    """ Two disjoint 5-cycles: 0-1-2-3-4-0 and 5-6-7-8-9-5. """
    G = nx.disjoint_union(nx.cycle_graph(5), nx.cycle_graph(5))
    return gd_from_networkx(G)

def four_almost_cliques() -> GraphData:
    """
    Four 4-cliques on {0..3}, {4..7}, {8..11}, {12..15}, each missing one
    edge: (0,1), (5,6), (10,11) and (15,12).
    """
    removed = {(0, 1), (5, 6), (10, 11), (12, 15)}
    edges = [
        (u, v)
        for c in range(4)
        for u, v in combinations(range(4 * c, 4 * c + 4), 2)
        if (u, v) not in removed
    ]
    return gd_from_edges(edges, num_nodes=16)

def two_cliques_with_bridge(size: int = 6) -> GraphData:
    """ Two `size`-cliques joined by the single edge (0, size). """
    edges = list(combinations(range(size), 2))
    edges += list(combinations(range(size, 2 * size), 2))
    edges.append((0, size))
    return gd_from_edges(edges, num_nodes=2 * size)

def planted_partition(sizes=(8, 8, 8), p_in=0.7, p_out=0.05, seed=3) -> GraphData:
    k = len(sizes)
    probs = [[p_in if r == s else p_out for s in range(k)] for r in range(k)]
    G = nx.stochastic_block_model(list(sizes), probs, seed=seed)
    return gd_from_networkx(G)

# ------------------------------------------------------------------ fixtures
@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(0)

@pytest.fixture
def rings() -> GraphData:
    return two_rings()

@pytest.fixture
def rings_types() -> np.ndarray:
    return np.arange(10) // 5

@pytest.fixture
def almost_cliques() -> GraphData:
    return four_almost_cliques()

@pytest.fixture
def almost_cliques_types() -> np.ndarray:
    return np.arange(16) // 4

@pytest.fixture
def bridged_cliques() -> GraphData:
    return two_cliques_with_bridge()

@pytest.fixture
def sbm_graph() -> GraphData:
    return planted_partition()
