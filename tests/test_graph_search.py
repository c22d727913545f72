import math

import pytest

from navkit.common.errors import ConfigurationError, VertexLookupError
from navkit.common.metrics import manhattan
from navkit.planning.graph import Graph
from navkit.planning.graph_search import (AStarSearch, BidirectionalBreadthFirstSearch,
                                          BreadthFirstSearch, DepthFirstSearch, DijkstraSearch,
                                          NoneSearch, make_search)
from navkit.planning.roadmap_builder import ProbabilisticBuilder, connect_point

ALL_SEARCHES = [DijkstraSearch, BreadthFirstSearch, BidirectionalBreadthFirstSearch,
                AStarSearch, DepthFirstSearch]


def make_diamond():
    """
    两条等价路径 0-1-3 和 0-2-3，外加一条跳数少但代价高的捷径 0-3
    """
    g = Graph()
    for p in [(0, 0), (1, 1), (1, -1), (2, 0)]:
        g.add_vertex(p)
    g.add_edge(0, 1, 1.0)
    g.add_edge(0, 2, 1.0)
    g.add_edge(1, 3, 1.0)
    g.add_edge(2, 3, 1.0)
    g.add_edge(0, 3, 5.0)
    return g


def make_disconnected():
    g = Graph()
    for p in [(0, 0), (1, 0), (5, 5), (6, 5)]:
        g.add_vertex(p)
    g.add_edge(0, 1, 1.0)
    g.add_edge(2, 3, 1.0)
    return g


@pytest.fixture
def prm_graph(block_map):
    """Return a seeded probabilistic roadmap over the block map with two query points"""
    graph = ProbabilisticBuilder(n=60, seed=11)(block_map)
    connect_point(graph, block_map, (2, 10))
    connect_point(graph, block_map, (17, 10))
    return graph


@pytest.mark.unit
def test_none_search_ignores_graph():
    path = NoneSearch()(Graph(), (0, 0), (3, 4))
    assert path == [(0, 0), (3, 4)]


@pytest.mark.unit
@pytest.mark.parametrize("search_cls", ALL_SEARCHES)
def test_start_equals_goal(search_cls):
    search = search_cls()
    assert search(make_diamond(), (1, 1), (1, 1)) == [(1, 1)]
    assert search.last_cost == 0.0


@pytest.mark.unit
@pytest.mark.parametrize("search_cls", ALL_SEARCHES)
def test_disconnected_graph_returns_empty_path(search_cls):
    search = search_cls()
    assert search(make_disconnected(), (0, 0), (6, 5)) == []
    assert search.last_cost == math.inf


@pytest.mark.robustness
@pytest.mark.parametrize("search_cls", ALL_SEARCHES)
def test_unregistered_endpoint_raises(search_cls):
    with pytest.raises(VertexLookupError):
        search_cls()(make_diamond(), (0, 0), (9, 9))


@pytest.mark.unit
def test_dijkstra_minimises_cost_with_lowest_index_tie_break():
    search = DijkstraSearch()
    path = search(make_diamond(), (0, 0), (2, 0))
    assert path == [(0, 0), (1, 1), (2, 0)]
    assert search.last_cost == pytest.approx(2.0)


@pytest.mark.unit
def test_breadth_first_minimises_hops():
    search = BreadthFirstSearch()
    path = search(make_diamond(), (0, 0), (2, 0))
    assert path == [(0, 0), (2, 0)]
    assert search.last_cost == pytest.approx(5.0)


@pytest.mark.unit
def test_bidirectional_matches_breadth_first_hops():
    path = BidirectionalBreadthFirstSearch()(make_diamond(), (0, 0), (2, 0))
    assert path == [(0, 0), (2, 0)]


@pytest.mark.unit
def test_depth_first_explores_lowest_index_first():
    g = make_diamond()
    path = DepthFirstSearch()(g, (0, 0), (2, 0))
    assert path == [(0, 0), (1, 1), (2, 0)]


@pytest.mark.unit
def test_a_star_accepts_named_or_callable_heuristic():
    g = make_diamond()
    assert AStarSearch('chebyshev')(g, (0, 0), (2, 0)) == [(0, 0), (1, 1), (2, 0)]
    assert AStarSearch(manhattan)(g, (0, 0), (2, 0))[-1] == (2, 0)
    with pytest.raises(ConfigurationError):
        AStarSearch('octile')


class TestSearchProperties:
    """在随机路网上比较各搜索算法"""

    @pytest.mark.unit
    def test_dijkstra_cost_is_lowest(self, prm_graph):
        costs = {}
        for cls in ALL_SEARCHES:
            search = cls()
            path = search(prm_graph, (2, 10), (17, 10))
            assert path[0] == (2, 10) and path[-1] == (17, 10)
            costs[cls] = search.last_cost
        for cls in ALL_SEARCHES:
            assert costs[DijkstraSearch] <= costs[cls] + 1e-9

    @pytest.mark.unit
    def test_a_star_euclidean_is_optimal(self, prm_graph):
        dijkstra, a_star = DijkstraSearch(), AStarSearch('euclidean')
        dijkstra(prm_graph, (2, 10), (17, 10))
        a_star(prm_graph, (2, 10), (17, 10))
        assert a_star.last_cost == pytest.approx(dijkstra.last_cost)
        assert a_star.last_expanded <= dijkstra.last_expanded

    @pytest.mark.unit
    def test_bidirectional_hop_count_equals_breadth_first(self, prm_graph):
        for goal in [(17, 10), prm_graph.vertex(5), prm_graph.vertex(30)]:
            bfs = BreadthFirstSearch()(prm_graph, (2, 10), goal)
            bidir = BidirectionalBreadthFirstSearch()(prm_graph, (2, 10), goal)
            assert len(bfs) == len(bidir)

    @pytest.mark.unit
    def test_paths_follow_graph_edges(self, prm_graph):
        for cls in ALL_SEARCHES:
            path = cls()(prm_graph, (2, 10), (17, 10))
            assert prm_graph.path_cost(path) < math.inf

    @pytest.mark.unit
    def test_searches_are_deterministic(self, prm_graph):
        for cls in ALL_SEARCHES:
            assert cls()(prm_graph, (2, 10), (17, 10)) == cls()(prm_graph, (2, 10), (17, 10))


@pytest.mark.unit
def test_make_search_registry():
    assert isinstance(make_search('uniform_cost'), DijkstraSearch)
    assert isinstance(make_search('bfs'), BreadthFirstSearch)
    assert isinstance(make_search('bidirectional_bfs'), BidirectionalBreadthFirstSearch)
    assert isinstance(make_search('a_star', heuristic='manhattan'), AStarSearch)
    assert isinstance(make_search('dfs'), DepthFirstSearch)
    with pytest.raises(ConfigurationError):
        make_search('best_first_beam')
