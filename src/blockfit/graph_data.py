from typing import Iterable, Optional, Tuple

import numpy as np
import networkx as nx
from scipy.sparse import csr_array, coo_array


class GraphData:
    """
    Undirected, unweighted graph stored as a symmetric CSR adjacency.

    Multi-edges are collapsed and self-loops are dropped, so the adjacency
    is binary. The object is treated as immutable while a model is fitted
    to it.
    """
    def __init__(self, adjacency_matrix: csr_array):
        if not isinstance(adjacency_matrix, csr_array):
            raise ValueError("Adjacency matrix must be a scipy.sparse.csr_array")
        if adjacency_matrix.shape[0] != adjacency_matrix.shape[1]: # type: ignore
            raise ValueError("Adjacency matrix must be square")

        n = adjacency_matrix.shape[0] # type: ignore
        entries = coo_array(adjacency_matrix)
        keep = (entries.row != entries.col) & (entries.data != 0)
        rows = np.concatenate([entries.row[keep], entries.col[keep]])
        cols = np.concatenate([entries.col[keep], entries.row[keep]])

        adj = csr_array(
            coo_array((np.ones(len(rows), dtype=np.int8), (rows, cols)), shape=(n, n))
        )
        adj.sum_duplicates()
        adj.data[:] = 1  # collapse multi-edges

        self.adjacency = adj
        self.adjacency.sort_indices()

        self.num_nodes: int = self.adjacency.shape[0] # type: ignore
        self.total_edges: int = int(self.adjacency.nnz // 2)
        self.degrees = np.diff(self.adjacency.indptr)

    def __len__(self):
        return self.num_nodes

    def neighbors(self, node: int) -> np.ndarray:
        """ Neighbours of `node`, read straight from the CSR index array. """
        indptr = self.adjacency.indptr
        return self.adjacency.indices[indptr[node]:indptr[node + 1]]


def gd_from_edges(edges: Iterable[Tuple[int, int]], num_nodes: Optional[int] = None) -> GraphData:
    """
    Create a GraphData instance from an iterable of (u, v) vertex pairs.

    If `num_nodes` is None the vertex count is the largest id plus one.
    """
    pairs = np.asarray(list(edges), dtype=np.int64).reshape(-1, 2)
    if num_nodes is None:
        num_nodes = int(pairs.max()) + 1 if pairs.size else 0
    if pairs.size and (pairs.min() < 0 or pairs.max() >= num_nodes):
        raise ValueError(f"Edge endpoints must lie in [0, {num_nodes}).")

    data = np.ones(len(pairs), dtype=np.int8)
    adj = coo_array((data, (pairs[:, 0], pairs[:, 1])), shape=(num_nodes, num_nodes))
    return GraphData(csr_array(adj))


def gd_from_networkx(G: nx.Graph) -> GraphData:
    """
    Create a GraphData instance from a NetworkX graph.
    Nodes are numbered in the graph's node iteration order.
    """
    if G.is_directed():
        G = G.to_undirected()
    adj = nx.to_scipy_sparse_array(G, format="csr", dtype=np.int8)
    return GraphData(csr_array(adj))
