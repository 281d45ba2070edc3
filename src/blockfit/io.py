from typing import Dict, Callable, Optional, TextIO, Union, List
from pathlib import Path
from dataclasses import dataclass, field
import json
import sys

import gzip

import numpy as np
from scipy.sparse import csr_array, load_npz, coo_array
from scipy.io import mmread
import networkx as nx

from blockfit.graph_data import GraphData
from blockfit.blockmodel import UndirectedBlockmodel

# src/blockfit/io.py
@dataclass
class BlockmodelFit:
    types: List[int]
    num_types: int
    probabilities: np.ndarray
    log_likelihood: float
    aic: float
    bic: float
    metadata: dict = field(default_factory=dict)

    @property
    def block_sizes(self) -> List[int]:
        return np.bincount(self.types, minlength=self.num_types).tolist()

ModelLike = Union[UndirectedBlockmodel, BlockmodelFit]

def _as_fit(model: ModelLike) -> BlockmodelFit:
    if isinstance(model, BlockmodelFit):
        return model
    return model.to_fit()

# ---------------------------------------------------------------------
#  Model writers
# ---------------------------------------------------------------------

class ModelWriter:
    """
    Writes a fitted blockmodel to a text stream.

    Concrete writers register themselves under a format name with
    `@ModelWriter.register('name')` and are created with
    `ModelWriter.create('name')`.
    """

    # maps format name -> writer class
    registry: Dict[str, type] = {}

    @classmethod
    def register(cls, *names: str):
        def decorator(writer_cls):
            for name in names:
                cls.registry[name.lower()] = writer_cls
            return writer_cls
        return decorator

    @staticmethod
    def create(name: str) -> "ModelWriter":
        key = name.lower()
        if key not in ModelWriter.registry:
            raise ValueError(
                f"Unknown output format: {name}. "
                f"Available formats: {', '.join(sorted(ModelWriter.registry))}."
            )
        return ModelWriter.registry[key]()

    def write(self, model: ModelLike, stream: TextIO) -> None:
        raise NotImplementedError("This method should be overridden by subclasses.")


@ModelWriter.register("plain")
class PlainTextWriter(ModelWriter):
    """ Human-readable output. """

    def write(self, model: ModelLike, stream: TextIO) -> None:
        fit = _as_fit(model)
        stream.write("# Blockmodel fit\n")
        stream.write(f"num_types\t{fit.num_types}\n")
        stream.write(f"log_likelihood\t{fit.log_likelihood:.6f}\n")
        stream.write(f"aic\t{fit.aic:.6f}\n")
        stream.write(f"bic\t{fit.bic:.6f}\n")
        for key, value in sorted(fit.metadata.items()):
            stream.write(f"{key}\t{value}\n")

        stream.write("\n# Types\n")
        stream.write(" ".join(str(t) for t in fit.types) + "\n")

        stream.write("\n# Probabilities\n")
        for row in np.asarray(fit.probabilities):
            stream.write(" ".join(f"{p:.6f}" for p in row) + "\n")
        stream.flush()


@ModelWriter.register("json")
class JSONWriter(ModelWriter):
    """ Structured output: types, probability matrix and scores. """

    def write(self, model: ModelLike, stream: TextIO) -> None:
        fit = _as_fit(model)
        json.dump({
            "num_types": int(fit.num_types),
            "types": [int(t) for t in fit.types],
            "probabilities": np.asarray(fit.probabilities, dtype=float).tolist(),
            "log_likelihood": float(fit.log_likelihood),
            "aic": float(fit.aic),
            "bic": float(fit.bic),
            "metadata": fit.metadata,
        }, stream, indent=2)
        stream.write("\n")
        stream.flush()


@ModelWriter.register("null")
class NullWriter(ModelWriter):
    """ Discards the model. """

    def write(self, model: ModelLike, stream: TextIO) -> None:
        pass


def read_json_fit(stream: TextIO) -> BlockmodelFit:
    """ Read a model written by JSONWriter. """
    data = json.load(stream)
    return BlockmodelFit(
        types=[int(t) for t in data["types"]],
        num_types=int(data["num_types"]),
        probabilities=np.array(data["probabilities"], dtype=np.float64),
        log_likelihood=float(data["log_likelihood"]),
        aic=float(data["aic"]),
        bic=float(data["bic"]),
        metadata=data.get("metadata", {}),
    )

# ---------------------------------------------------------------------
#  GraphLoader
# ---------------------------------------------------------------------

class GraphLoader:
    """
    Factory that maps a file *extension* to a loader function and returns
    an undirected `GraphData` object.

    Register new loaders with the `@GraphLoader.register('.ext')`
    decorator. Files with an unknown extension, and "-" (standard input),
    are read as edge lists.
    """

    # maps extension (lower-case, incl. leading dot) -> callable
    registry: Dict[str, Callable[[Path], csr_array]] = {}

    # ----------------------- decorator -------------------------------
    @classmethod
    def register(cls, *exts: str):
        """
        Use as::

            @GraphLoader.register('.gml', '.graphml')
            def _load_graphml(path): ...
        """
        def decorator(fn: Callable[[Path], csr_array]):
            for ext in exts:
                cls.registry[ext.lower()] = fn
            return fn
        return decorator

    # ----------------------- public API ------------------------------
    @staticmethod
    def load(path: Union[str, Path], stdin: Optional[TextIO] = None) -> GraphData:
        """Load graph at *path* and return GraphData."""
        if str(path) == "-":
            return GraphData(read_edgelist(stdin if stdin is not None else sys.stdin))

        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {path}")

        loader = GraphLoader.registry.get(path.suffix.lower(), _load_edgelist)
        return GraphData(csr_array(loader(path), dtype=np.int8))

    # ---------------- default loaders -------------------------------

def read_edgelist(lines) -> csr_array:
    """
    Parse an edge list: two integer vertex ids per line, blank lines and
    lines starting with '#' are skipped. Vertex count is the largest id + 1.
    """
    rows, cols = [], []
    for lineno, line in enumerate(lines, start=1):
        if not line.strip() or line.startswith("#"):
            continue
        fields = line.split()
        if len(fields) < 2:
            raise ValueError(f"Malformed edge list line {lineno}: {line.strip()!r}")
        u, v = map(int, fields[:2])
        rows.append(u)
        cols.append(v)

    n = max(rows + cols) + 1 if rows else 0
    data = np.ones(len(rows), dtype=np.int8)
    adj = coo_array((data, (rows, cols)), shape=(n, n))
    adj = csr_array(adj)
    return adj.maximum(adj.T)  # symmetrise

# 1. compressed / plain .npz containing a CSR adjacency ----------------
@GraphLoader.register(".npz")
def _load_npz(path: Path) -> csr_array:
    return csr_array(load_npz(path))


# 2. Matrix Market -----------------------------------------------------
@GraphLoader.register(".mtx")
def _load_mtx(path: Path) -> csr_array:
    return csr_array(mmread(str(path)))


# 3. Plain edge list (.edges, .edgelist, .txt, optional .gz) -----------
@GraphLoader.register(".edges", ".edgelist", ".txt", ".gz")
def _load_edgelist(path: Path) -> csr_array:
    opener = gzip.open if path.suffix == ".gz" else open
    with opener(path, "rt") as f:
        return read_edgelist(f)


# 4. GML / GraphML via NetworkX ---------------------------------------
@GraphLoader.register(".gml", ".graphml")
def _load_graphml(path: Path) -> csr_array:
    G = nx.read_gml(path) if path.suffix == ".gml" else nx.read_graphml(path)
    if G.is_directed():
        G = G.to_undirected()
    return nx.to_scipy_sparse_array(G, format="csr", dtype=np.int8)
