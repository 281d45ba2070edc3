"""
Undirected stochastic blockmodel with incrementally maintained likelihood.
"""
from typing import Optional, Sequence, TYPE_CHECKING
import math

import numpy as np

from blockfit.graph_data import GraphData
from blockfit.likelihood import (
    compute_possible_pairs,
    compute_probabilities,
    compute_pair_log_likelihoods,
    compute_row_log_likelihoods,
)

if TYPE_CHECKING:
    from blockfit.io import BlockmodelFit


class UndirectedBlockmodel:
    """
    Blockmodel of an undirected graph with `num_types` blocks.

    The model owns the type assignment of every vertex. Edge counts between
    blocks, block sizes, the edge-probability matrix and the log-likelihood
    are derived from it and kept consistent after every mutation. The graph
    is only referenced and must outlive the model.

    Attributes:
        graph: The graph the model is fitted to.
        num_types: Number of blocks K.
        types: Block of every vertex, values in [0, K).
        block_sizes: Number of vertices in each block.
        edge_counts: K x K symmetric matrix; diagonal entries count the
            edges inside a block once.
    """

    def __init__(self,
                 graph: GraphData,
                 num_types: int,
                 types: Optional[Sequence[int]] = None,
        ):
        if num_types < 1:
            raise ValueError(f"Number of types must be at least 1, got {num_types}.")

        self.graph = graph
        self.num_types = int(num_types)

        if types is None:
            types = np.zeros(graph.num_nodes, dtype=np.int64)
        self.set_types(types)

    # ------------------------------------------------------------------
    # full recompute
    # ------------------------------------------------------------------
    def set_types(self, types: Sequence[int]) -> None:
        """
        Replace the whole type assignment and recompute the derived state.
        """
        types = np.array(types, dtype=np.int64)
        if types.shape != (self.graph.num_nodes,):
            raise ValueError(
                f"Expected {self.graph.num_nodes} types, got array of shape {types.shape}."
            )
        if types.size and (types.min() < 0 or types.max() >= self.num_types):
            raise ValueError(f"Types must lie in [0, {self.num_types}).")

        self.types = types
        self.recompute()

    def randomize(self, rng: np.random.Generator) -> None:
        """ Assign every vertex to a uniformly drawn block. """
        self.set_types(rng.integers(0, self.num_types, size=self.graph.num_nodes))

    def recompute(self) -> None:
        """ Rebuild every derived quantity from the type assignment. """
        K = self.num_types
        self.block_sizes = np.bincount(self.types, minlength=K).astype(np.int64)
        self.edge_counts = self._compute_edge_counts()
        self._pairs = compute_possible_pairs(self.block_sizes)
        self._probabilities = compute_probabilities(self.edge_counts, self._pairs)
        self._pair_ll = compute_pair_log_likelihoods(self.edge_counts, self._pairs)
        self._log_likelihood = float(np.triu(self._pair_ll).sum())

    def _compute_edge_counts(self) -> np.ndarray:
        """
        Count edges between every pair of blocks.

        Every undirected edge appears twice in the CSR adjacency, so the
        off-diagonal tallies come out right and the diagonal is halved.
        """
        K = self.num_types
        adj = self.graph.adjacency
        rows = np.repeat(np.arange(self.graph.num_nodes), np.diff(adj.indptr))
        block_pairs = self.types[rows] * K + self.types[adj.indices]

        counts = np.bincount(block_pairs, minlength=K * K).reshape(K, K).astype(np.int64)
        counts[np.diag_indices(K)] //= 2
        return counts

    # ------------------------------------------------------------------
    # incremental update
    # ------------------------------------------------------------------
    def set_type(self, vertex: int, new_type: int) -> None:
        """
        Move one vertex to `new_type`.

        Only the rows and columns of the two blocks involved change, so the
        update costs O(degree + K) instead of a full recompute.
        """
        if not 0 <= new_type < self.num_types:
            raise ValueError(f"Type {new_type} is not in [0, {self.num_types}).")
        if not 0 <= vertex < self.graph.num_nodes:
            raise IndexError(f"Vertex {vertex} is out of range.")

        old_type = int(self.types[vertex])
        new_type = int(new_type)
        if old_type == new_type:
            return

        neighbor_counts = np.bincount(
            self.types[self.graph.neighbors(vertex)], minlength=self.num_types
        ).astype(np.int64)

        affected = [old_type, new_type]
        ll_before = self._affected_log_likelihood(old_type, new_type)

        self._shift_edge_counts(old_type, -neighbor_counts)
        self._shift_edge_counts(new_type, neighbor_counts)
        self.block_sizes[old_type] -= 1
        self.block_sizes[new_type] += 1
        self.types[vertex] = new_type

        for block in affected:
            pairs = self.block_sizes[block] * self.block_sizes
            pairs[block] = self.block_sizes[block] * (self.block_sizes[block] - 1) // 2
            self._pairs[block, :] = pairs
            self._pairs[:, block] = pairs

            edges = self.edge_counts[block]
            probs = np.zeros(self.num_types, dtype=np.float64)
            np.divide(edges, pairs, out=probs, where=pairs > 0)
            self._probabilities[block, :] = probs
            self._probabilities[:, block] = probs

            row_ll = compute_row_log_likelihoods(edges, pairs)
            self._pair_ll[block, :] = row_ll
            self._pair_ll[:, block] = row_ll

        ll_after = self._affected_log_likelihood(old_type, new_type)
        self._log_likelihood += ll_after - ll_before

    def _shift_edge_counts(self, block: int, delta: np.ndarray) -> None:
        self.edge_counts[block, :] += delta
        self.edge_counts[:, block] += delta
        # the diagonal entry was shifted twice above
        self.edge_counts[block, block] -= delta[block]

    def _affected_log_likelihood(self, block_a: int, block_b: int) -> float:
        """ Summed contribution of every pair touching block_a or block_b. """
        total = self._pair_ll[block_a].sum() + self._pair_ll[block_b].sum()
        return float(total - self._pair_ll[block_a, block_b])

    # ------------------------------------------------------------------
    # accessors
    # ------------------------------------------------------------------
    def get_log_likelihood(self) -> float:
        return self._log_likelihood

    def get_probabilities(self) -> np.ndarray:
        """ Read-only view of the K x K edge-probability matrix. """
        view = self._probabilities.view()
        view.flags.writeable = False
        return view

    def get_type(self, vertex: int) -> int:
        return int(self.types[vertex])

    def get_types(self) -> np.ndarray:
        return self.types.copy()

    def get_num_types(self) -> int:
        return self.num_types

    def get_graph(self) -> GraphData:
        return self.graph

    def get_edge_counts(self) -> np.ndarray:
        return self.edge_counts.copy()

    def get_block_sizes(self) -> np.ndarray:
        return self.block_sizes.copy()

    def copy(self) -> "UndirectedBlockmodel":
        """ Value snapshot sharing only the graph. """
        clone = UndirectedBlockmodel.__new__(UndirectedBlockmodel)
        clone.graph = self.graph
        clone.num_types = self.num_types
        clone.types = self.types.copy()
        clone.block_sizes = self.block_sizes.copy()
        clone.edge_counts = self.edge_counts.copy()
        clone._pairs = self._pairs.copy()
        clone._probabilities = self._probabilities.copy()
        clone._pair_ll = self._pair_ll.copy()
        clone._log_likelihood = self._log_likelihood
        return clone

    # ------------------------------------------------------------------
    # information criteria
    # ------------------------------------------------------------------
    def num_parameters(self) -> int:
        """ Free parameters of the model: the upper triangle of P. """
        return self.num_types * (self.num_types + 1) // 2

    def aic(self) -> float:
        """ Akaike information criterion, 2p - 2 log L. """
        return 2.0 * self.num_parameters() - 2.0 * self._log_likelihood

    def bic(self) -> float:
        """
        Bayesian information criterion, p ln(m) - 2 log L, where the
        observations m are the n(n-1)/2 vertex pairs of the graph.
        """
        n = self.graph.num_nodes
        num_observations = max(n * (n - 1) // 2, 1)
        return self.num_parameters() * math.log(num_observations) - 2.0 * self._log_likelihood

    def to_fit(self, metadata: Optional[dict] = None) -> "BlockmodelFit":
        """
        Convert the model to a BlockmodelFit object for serialization.
        """
        from blockfit.io import BlockmodelFit

        return BlockmodelFit(
            types=self.types.tolist(),
            num_types=self.num_types,
            probabilities=self._probabilities.copy(),
            log_likelihood=self._log_likelihood,
            aic=self.aic(),
            bic=self.bic(),
            metadata=dict(metadata) if metadata else {},
        )

    def __repr__(self) -> str:
        return (
            f"UndirectedBlockmodel(num_nodes={self.graph.num_nodes}, "
            f"num_types={self.num_types}, log_likelihood={self._log_likelihood:.4f})"
        )
