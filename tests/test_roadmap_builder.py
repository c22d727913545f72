import numpy as np
import pytest

from navkit.common.errors import ConfigurationError, RoadmapConnectivityWarning
from navkit.mapping.occupancy_grid import OccupancyMap
from navkit.planning.graph import Graph
from navkit.planning.roadmap_builder import (MAX_SAMPLES, MIN_SAMPLES, NoneBuilder,
                                             ProbabilisticBuilder, VoronoiBuilder,
                                             auto_sample_count, connect_point, make_builder)


@pytest.mark.unit
def test_none_builder_returns_empty_graph(block_map):
    graph = NoneBuilder()(block_map)
    assert isinstance(graph, Graph)
    assert graph.num_vertices() == 0


@pytest.mark.unit
def test_connect_point_links_visible_vertices(block_map):
    graph = Graph()
    graph.add_vertex((2, 2))
    graph.add_vertex((17, 10))
    graph.add_vertex((2, 17))
    i = connect_point(graph, block_map, (2, 10))
    assert graph.weight(i, 0) == pytest.approx(8.0)
    assert graph.weight(i, 2) == pytest.approx(7.0)
    # 被障碍挡住
    assert graph.weight(i, 1) == Graph.NO_EDGE
    # 已注册的点不重复添加
    assert connect_point(graph, block_map, (2, 10)) == i
    assert graph.num_vertices() == 4


class TestVoronoiBuilder:

    @pytest.mark.unit
    def test_edges_are_collision_free(self, room_map):
        graph = VoronoiBuilder()(room_map)
        assert graph.num_vertices() > 0
        assert graph.num_edges() > 0
        for i, j, w in graph.edges():
            p, q = graph.vertex(i), graph.vertex(j)
            assert room_map.is_free(p) and room_map.is_free(q)
            assert room_map.line_of_sight(p, q)
            assert room_map.segment_clearance(p, q) >= 1.0
            assert w == pytest.approx(np.hypot(q.x - p.x, q.y - p.y))

    @pytest.mark.unit
    def test_safety_clearance_is_respected(self, room_map):
        graph = VoronoiBuilder(safety_clearance=3.0)(room_map)
        for i, j, _ in graph.edges():
            assert room_map.segment_clearance(graph.vertex(i), graph.vertex(j)) >= 3.0

    @pytest.mark.unit
    def test_roadmap_surrounds_obstacle(self, room_map):
        """中心障碍四周都有路网顶点"""
        graph = VoronoiBuilder()(room_map)
        xs = [p.x for p in graph.vertices]
        ys = [p.y for p in graph.vertices]
        assert min(xs) < 12 and max(xs) > 17
        assert min(ys) < 12 and max(ys) > 17

    @pytest.mark.unit
    def test_build_is_deterministic(self, room_map):
        a = VoronoiBuilder()(room_map)
        b = VoronoiBuilder()(room_map)
        assert a.vertices == b.vertices
        assert list(a.edges()) == list(b.edges())

    @pytest.mark.unit
    def test_wall_is_never_crossed(self, wall_map):
        graph = VoronoiBuilder()(wall_map)
        for i, j, _ in graph.edges():
            p, q = graph.vertex(i), graph.vertex(j)
            assert (p.x < 10) == (q.x < 10)

    @pytest.mark.robustness
    def test_fully_occupied_map_gives_empty_graph(self):
        occupancy = OccupancyMap(np.ones((10, 10), dtype=int))
        graph = VoronoiBuilder()(occupancy)
        assert graph.num_vertices() == 0
        assert not graph.degraded

    @pytest.mark.robustness
    def test_invalid_parameters(self):
        with pytest.raises(ConfigurationError):
            VoronoiBuilder(eps=0)
        with pytest.raises(ConfigurationError):
            VoronoiBuilder(safety_clearance=-1)


class TestProbabilisticBuilder:

    @pytest.mark.unit
    def test_auto_sample_count(self):
        assert auto_sample_count(OccupancyMap(np.zeros((10, 10)))) == MIN_SAMPLES
        assert auto_sample_count(OccupancyMap(np.zeros((50, 50)))) == 25
        assert auto_sample_count(OccupancyMap(np.zeros((300, 300)))) == MAX_SAMPLES
        # 障碍越密，单位面积采样越多：1800 自由栅格，障碍占比 0.1 → ceil(18 · 1.2)
        grid = np.zeros((50, 40))
        grid[:5, :] = 1
        assert auto_sample_count(OccupancyMap(grid)) == 22

    @pytest.mark.unit
    def test_auto_sample_count_never_exceeds_free_cells(self):
        grid = np.ones((10, 10))
        grid[0, :5] = 0
        assert auto_sample_count(OccupancyMap(grid)) == 5

    @pytest.mark.unit
    def test_samples_are_free_and_distinct(self, block_map):
        builder = ProbabilisticBuilder(n=50, seed=1)
        graph = builder(block_map)
        assert graph.num_vertices() >= 50
        assert len(set(graph.vertices)) == graph.num_vertices()
        for p in graph.vertices:
            assert block_map.is_free(p)
        for i, j, _ in graph.edges():
            assert block_map.line_of_sight(graph.vertex(i), graph.vertex(j))

    @pytest.mark.unit
    def test_same_seed_same_roadmap(self, block_map):
        a = ProbabilisticBuilder(n=40, seed=7)(block_map)
        b = ProbabilisticBuilder(n=40, seed=7)(block_map)
        assert a.vertices == b.vertices
        assert list(a.edges()) == list(b.edges())

    @pytest.mark.unit
    def test_convex_free_space_is_connected(self, free_map):
        builder = ProbabilisticBuilder(n=20, seed=0)
        graph = builder(free_map)
        assert graph.connected_components()[0] == 1
        assert not graph.degraded
        assert builder.last_report.connected
        assert builder.last_report.batches == 0

    @pytest.mark.unit
    def test_separate_regions_are_not_degraded(self, wall_map):
        """墙两侧各自连通即可，不要求跨越障碍"""
        builder = ProbabilisticBuilder(n=30, seed=3)
        graph = builder(wall_map)
        assert not graph.degraded
        assert graph.connected_components()[0] == 2

    @pytest.mark.robustness
    def test_cap_hit_marks_graph_degraded(self, wall_map):
        builder = ProbabilisticBuilder(n=10, seed=0, max_batches=2,
                                       required_points=[(2, 10), (17, 10)])
        with pytest.warns(RoadmapConnectivityWarning):
            graph = builder(wall_map)
        assert graph.degraded
        report = builder.last_report
        assert report.cap_hit and not report.connected
        assert report.batches == 2
        assert graph.has_vertex((2, 10)) and graph.has_vertex((17, 10))

    @pytest.mark.unit
    def test_extend_tops_up_until_queries_connect(self, alcove_map):
        """终点藏在角落里：补充采样直到起点和终点连通"""
        builder = ProbabilisticBuilder(n=1, seed=0, batch_size=200)
        roadmap = builder(alcove_map)
        assert roadmap.num_vertices() == 1
        graph = builder.extend(roadmap.copy(), alcove_map, [(1, 1), (10, 10)])
        assert graph.connected((1, 1), (10, 10))
        assert not graph.degraded
        assert roadmap.num_vertices() == 1

    @pytest.mark.robustness
    def test_extend_cap_hit_marks_graph_degraded(self, alcove_map):
        builder = ProbabilisticBuilder(n=1, seed=0, max_batches=0)
        graph = Graph()
        graph.add_vertex((1, 10))
        with pytest.warns(RoadmapConnectivityWarning):
            builder.extend(graph, alcove_map, [(1, 1), (10, 10)])
        assert graph.degraded
        assert not graph.connected((1, 1), (10, 10))

    @pytest.mark.unit
    def test_extend_ignores_queries_in_separate_regions(self, wall_map):
        builder = ProbabilisticBuilder(n=1, seed=0, max_batches=0)
        graph = builder.extend(Graph(), wall_map, [(2, 10), (17, 10)])
        assert graph.num_vertices() == 2
        assert not graph.degraded

    @pytest.mark.robustness
    def test_invalid_parameters(self):
        with pytest.raises(ConfigurationError):
            ProbabilisticBuilder(n=-1)
        with pytest.raises(ConfigurationError):
            ProbabilisticBuilder(batch_size=0)


@pytest.mark.unit
def test_make_builder_registry():
    assert isinstance(make_builder('voronoi', eps=1.5), VoronoiBuilder)
    assert isinstance(make_builder('prm', n=10), ProbabilisticBuilder)
    with pytest.raises(ConfigurationError):
        make_builder('rrt')
    with pytest.raises(ConfigurationError):
        make_builder('voronoi', radius=3)


@pytest.mark.unit
def test_default_extend_only_links_by_sight(alcove_map):
    graph = NoneBuilder().extend(Graph(), alcove_map, [(1, 1), (10, 10)])
    assert graph.num_vertices() == 2
    assert not graph.connected((1, 1), (10, 10))
    assert not graph.degraded
