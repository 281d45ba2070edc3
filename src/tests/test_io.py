# tests/test_io.py
import io
import json
from pathlib import Path

import gzip
import numpy as np
import scipy.sparse as sp
from scipy.io import mmwrite
import networkx as nx
import pytest

from blockfit.blockmodel import UndirectedBlockmodel
from blockfit.io import (
    GraphLoader,
    ModelWriter,
    PlainTextWriter,
    JSONWriter,
    NullWriter,
    read_json_fit,
)
# ---------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------
def _simple_adj() -> sp.csr_array:
    """
    3-node graph:
        0 - 1 - 2
    """
    rows, cols = [0, 1, 1, 2], [1, 0, 2, 1]
    data = np.ones(len(rows), dtype=np.int8)
    return sp.csr_array(sp.coo_matrix((data, (rows, cols)), shape=(3, 3)))


@pytest.fixture
def model(rings, rings_types):
    m = UndirectedBlockmodel(rings, 2, rings_types)
    m.set_type(0, 1)
    return m

# ---------------------------------------------------------------------
# 1. writers
# ---------------------------------------------------------------------
def test_writer_registry():
    assert isinstance(ModelWriter.create("plain"), PlainTextWriter)
    assert isinstance(ModelWriter.create("JSON"), JSONWriter)
    assert isinstance(ModelWriter.create("null"), NullWriter)
    with pytest.raises(ValueError, match="Unknown output format: xml"):
        ModelWriter.create("xml")


def test_json_roundtrip(model):
    buf = io.StringIO()
    JSONWriter().write(model, buf)
    buf.seek(0)
    fit = read_json_fit(buf)

    assert fit.num_types == model.num_types
    assert fit.types == model.get_types().tolist()
    assert np.allclose(fit.probabilities, model.get_probabilities())
    assert fit.log_likelihood == pytest.approx(model.get_log_likelihood())
    assert fit.aic == pytest.approx(model.aic())
    assert fit.bic == pytest.approx(model.bic())


def test_json_is_structured(model):
    buf = io.StringIO()
    JSONWriter().write(model.to_fit(metadata={"seed": 3}), buf)
    data = json.loads(buf.getvalue())
    assert set(data) >= {"types", "num_types", "probabilities", "log_likelihood"}
    assert data["metadata"] == {"seed": 3}
    assert len(data["probabilities"]) == 2


def test_plain_text(model):
    buf = io.StringIO()
    PlainTextWriter().write(model, buf)
    text = buf.getvalue()

    assert "num_types\t2" in text
    assert "1 0 0 0 0 1 1 1 1 1" in text
    assert f"{model.get_log_likelihood():.6f}" in text


def test_null_writer(model):
    buf = io.StringIO()
    NullWriter().write(model, buf)
    assert buf.getvalue() == ""

# ---------------------------------------------------------------------
# 2. GraphLoader built-in formats
# ---------------------------------------------------------------------
def test_graphloader_edges(tmp_path: Path):
    f = tmp_path / "toy.edges"
    f.write_text("# comment\n0 1\n\n1 2\n")
    g = GraphLoader.load(f)
    assert g.num_nodes == 3
    assert g.total_edges == 2
    assert g.adjacency[2, 1] == 1, "edge lists are read as undirected"


def test_graphloader_unknown_extension_is_edge_list(tmp_path: Path):
    f = tmp_path / "toy.dat"
    f.write_text("0 3\n3 0\n")
    g = GraphLoader.load(str(f))
    assert g.num_nodes == 4
    assert g.total_edges == 1


def test_graphloader_gz(tmp_path: Path):
    f = tmp_path / "toy.gz"
    with gzip.open(f, "wt") as fh:
        fh.write("0 1\n1 2\n2 0\n")
    g = GraphLoader.load(f)
    assert g.total_edges == 3


def test_graphloader_stdin():
    g = GraphLoader.load("-", stdin=io.StringIO("0 1\n1 2\n"))
    assert g.num_nodes == 3
    assert g.total_edges == 2


def test_graphloader_missing_file(tmp_path: Path):
    missing = tmp_path / "nope.txt"
    with pytest.raises(FileNotFoundError, match="nope.txt"):
        GraphLoader.load(missing)


def test_graphloader_malformed_line(tmp_path: Path):
    f = tmp_path / "bad.txt"
    f.write_text("0 1\n2\n")
    with pytest.raises(ValueError):
        GraphLoader.load(f)


def test_graphloader_npz(tmp_path: Path):
    adj = _simple_adj()
    f = tmp_path / "g.npz"
    sp.save_npz(f, adj)
    g = GraphLoader.load(f)
    assert np.array_equal(g.adjacency.toarray(), adj.toarray())


def test_graphloader_mtx(tmp_path: Path):
    adj = _simple_adj()
    f = tmp_path / "toy.mtx"
    mmwrite(str(f), adj)
    g = GraphLoader.load(f)
    assert np.array_equal(g.adjacency.toarray(), adj.toarray())


def test_graphloader_gml(tmp_path: Path):
    G = nx.Graph()
    G.add_edge(0, 1); G.add_edge(1, 2)
    f = tmp_path / "toy.gml"
    nx.write_gml(G, f)
    g = GraphLoader.load(f)
    assert g.adjacency.nnz == 4      # undirected ⇒ 2 edges ×2


def test_register_new_loader(tmp_path: Path):
    ext = ".foo"

    @GraphLoader.register(ext)
    def _load_foo(path: Path):
        # loader that ignores content, returns 2-node edge
        return sp.csr_array(sp.coo_matrix((np.ones(1, int), ([0], [1])), shape=(2, 2)))

    f = tmp_path / f"dummy{ext}"
    f.write_text("ignored")
    try:
        g = GraphLoader.load(f)
        assert g.adjacency[1, 0] == 1
        assert ext in GraphLoader.registry
    finally:
        GraphLoader.registry.pop(ext, None)
