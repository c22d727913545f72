import math

import pytest

from navkit.common.errors import VertexLookupError
from navkit.common.types import Point
from navkit.planning.graph import Graph


def make_square():
    """
    0 ---- 1
    |      |
    2 ---- 3   加一条对角边 0-3
    """
    g = Graph()
    for p in [(0, 0), (1, 0), (0, 1), (1, 1)]:
        g.add_vertex(p)
    g.add_edge(0, 1, 1.0)
    g.add_edge(0, 2, 1.0)
    g.add_edge(1, 3, 1.0)
    g.add_edge(2, 3, 1.0)
    g.add_edge(0, 3, math.sqrt(2))
    return g


@pytest.mark.unit
def test_vertices_are_indexed_in_insertion_order():
    g = Graph()
    assert g.add_vertex((3, 4)) == 0
    assert g.add_vertex(Point(1, 1)) == 1
    # 重复注册返回已有编号
    assert g.add_vertex((3, 4)) == 0
    assert g.num_vertices() == 2
    assert g.vertex(1) == Point(1, 1)
    assert g.vertices == [Point(3, 4), Point(1, 1)]


@pytest.mark.unit
def test_descriptor_round_trips_every_vertex():
    g = make_square()
    for i in range(g.num_vertices()):
        assert g.descriptor(g.vertex(i)) == i


@pytest.mark.unit
def test_descriptor_unknown_point_raises():
    g = make_square()
    with pytest.raises(VertexLookupError):
        g.descriptor((5, 5))
    # 只接受精确注册的点
    with pytest.raises(VertexLookupError):
        g.descriptor((0.1, 0))


@pytest.mark.unit
def test_weight_is_symmetric_with_sentinel():
    g = make_square()
    g.add_vertex((9, 9))
    n = g.num_vertices()
    for i in range(n):
        assert g.weight(i, i) == 0.0
        for j in range(n):
            assert g.weight(i, j) == g.weight(j, i)
    assert g.weight(1, 2) == Graph.NO_EDGE
    assert g.weight(0, 4) == Graph.NO_EDGE
    assert Graph.NO_EDGE < 0


@pytest.mark.unit
def test_neighbors_sorted_by_index():
    g = make_square()
    assert g.neighbors(0) == [(1, 1.0), (2, 1.0), (3, pytest.approx(math.sqrt(2)))]
    assert g.degree(3) == 3
    assert g.num_edges() == 5
    assert [(i, j) for i, j, _ in g.edges()] == [(0, 1), (0, 2), (0, 3), (1, 3), (2, 3)]


@pytest.mark.robustness
def test_invalid_edges_rejected():
    g = make_square()
    with pytest.raises(ValueError):
        g.add_edge(1, 1, 1.0)
    with pytest.raises(ValueError):
        g.add_edge(1, 2, -0.5)
    with pytest.raises(ValueError):
        g.add_edge(1, 2, math.inf)
    with pytest.raises(IndexError):
        g.add_edge(1, 7, 1.0)


@pytest.mark.unit
def test_copy_is_independent():
    g = make_square()
    h = g.copy()
    h.add_vertex((5, 5))
    h.add_edge(1, 2, 2.0)
    assert g.num_vertices() == 4
    assert g.weight(1, 2) == Graph.NO_EDGE
    assert h.weight(2, 1) == 2.0


@pytest.mark.unit
def test_connected_components():
    g = make_square()
    a = g.add_vertex((7, 7))
    b = g.add_vertex((8, 8))
    g.add_edge(a, b, 0.0)
    count, labels = g.connected_components()
    assert count == 2
    assert labels[a] == labels[b]
    assert g.connected((0, 0), (1, 1))
    assert not g.connected((0, 0), (7, 7))
    assert Graph().connected_components()[0] == 0


@pytest.mark.unit
def test_path_cost():
    g = make_square()
    assert g.path_cost([(0, 0), (1, 0), (1, 1)]) == pytest.approx(2.0)
    assert g.path_cost([(0, 0)]) == 0.0
    assert g.path_cost([(1, 0), (0, 1)]) == math.inf


@pytest.mark.robustness
def test_weight_out_of_range_raises():
    g = make_square()
    with pytest.raises(IndexError):
        g.weight(4, 4)
    with pytest.raises(IndexError):
        g.weight(0, 9)
    with pytest.raises(IndexError):
        g.weight(-1, 0)
