"""
路网构建模块：把占据栅格地图转换为离散带权图

=== 可选构建器 ===
- none：返回空图，用于只靠局部导航（例如纯势场）的场景
- voronoi：广义 Voronoi 路网，边尽量远离障碍，稀疏
- probabilistic：概率路网（PRM），随机采样自由栅格并按视线连边

=== 公共约定 ===
- build(map) -> Graph，不修改地图
- extend(graph, map, points) 把查询点接入路网副本
- 所有边权为端点欧氏距离
- 达到补充采样上限仍不连通时，路网标记为 degraded 并发出警告
"""
import logging
import math
import warnings
from dataclasses import dataclass
from typing import Dict, Sequence

import numpy as np
from scipy.spatial import QhullError, Voronoi

from navkit.common.errors import ConfigurationError, RoadmapConnectivityWarning
from navkit.common.metrics import euclidean
from navkit.common.registry import create
from navkit.common.types import Point, as_point
from navkit.mapping.obstacle_processor import ObstacleProcessor
from navkit.mapping.occupancy_grid import OccupancyMap
from navkit.planning.graph import Graph

logger = logging.getLogger(__name__)

# 自动采样数启发式参数
CELLS_PER_SAMPLE = 100   # 每 100 个自由栅格一个采样点
MIN_SAMPLES = 16
MAX_SAMPLES = 400


def connect_point(graph: Graph, occupancy: OccupancyMap, point) -> int:
    """
    把查询点注册为顶点，并与所有可直视的已有顶点连边

    :return: 顶点编号；点已注册时直接返回已有编号
    """
    point = as_point(point)
    if graph.has_vertex(point):
        return graph.descriptor(point)
    index = graph.add_vertex(point)
    for j in range(index):
        other = graph.vertex(j)
        if occupancy.line_of_sight(point, other):
            graph.add_edge(index, j, euclidean(point, other))
    return index


class RoadmapBuilder:
    """路网构建器基类"""
    name = ''

    def build(self, occupancy: OccupancyMap) -> Graph:
        raise NotImplementedError

    def extend(self, graph: Graph, occupancy: OccupancyMap, points: Sequence) -> Graph:
        """
        把查询点接入路网（原地修改 graph）

        默认只按视线连边；子类可以在查询点不连通时补充顶点。
        """
        for p in points:
            connect_point(graph, occupancy, p)
        return graph

    def __call__(self, occupancy: OccupancyMap) -> Graph:
        return self.build(occupancy)


class NoneBuilder(RoadmapBuilder):
    """空路网：跳过全局规划"""
    name = 'none'

    def build(self, occupancy: OccupancyMap) -> Graph:
        return Graph()


class VoronoiBuilder(RoadmapBuilder):
    """
    广义 Voronoi 路网构建器

    处理流程：
    1. 障碍边界提取、聚类、按 eps 多边形近似（ObstacleProcessor）
    2. 对边界站点求 Voronoi 图（scipy.spatial.Voronoi）
    3. 只保留分隔不同障碍（或同一障碍上相距较远的两段边界）的有限脊线
    4. 剔除不安全的边：端点不在自由空间、净空低于安全阈值、无视线
    5. 顶点吸附到栅格并合并，剪除短的末端分支
    """
    name = 'voronoi'

    def __init__(self, eps: float = 2.0, safety_clearance: float = 1.0,
                 min_spur_length: float = None, min_site_separation: float = None):
        """
        :param eps: 边界多边形近似容差，越小拟合越紧、计算越慢
        :param safety_clearance: 边上任一栅格到障碍的最小距离
        :param min_spur_length: 末端分支短于此长度时剪除，默认 2·eps
        :param min_site_separation: 同一障碍上两站点至少相距多远才保留其脊线，默认 3·max(eps, 1)
        """
        self.processor = ObstacleProcessor(eps=eps)
        if safety_clearance < 0:
            raise ConfigurationError(f"safety_clearance 不能为负: {safety_clearance}")
        self.eps = eps
        self.safety_clearance = safety_clearance
        self.min_spur_length = 2.0 * eps if min_spur_length is None else min_spur_length
        self.min_site_separation = (3.0 * max(eps, 1.0) if min_site_separation is None
                                    else min_site_separation)

    def build(self, occupancy: OccupancyMap) -> Graph:
        graph = Graph()
        sites, labels, n_obstacles = self.processor.process(occupancy)
        if len(sites) < 4:
            logger.info("边界站点不足 (%d)，Voronoi 路网为空", len(sites))
            return graph

        try:
            vor = Voronoi(sites)
        except QhullError as e:
            logger.warning("Voronoi 图构建失败: %s", e)
            graph.degraded = True
            return graph

        adjacency = self._safe_edges(occupancy, vor, sites, labels)
        self._prune_spurs(adjacency)

        # 顶点按坐标排序后插入，保证同一地图得到同一编号
        for p in sorted(adjacency):
            graph.add_vertex(p)
        for p in sorted(adjacency):
            i = graph.descriptor(p)
            for q, w in adjacency[p].items():
                j = graph.descriptor(q)
                if i < j:
                    graph.add_edge(i, j, w)

        logger.info("Voronoi 路网: %d 个障碍, %d 个站点 → %d 个顶点, %d 条边",
                    n_obstacles, len(sites), graph.num_vertices(), graph.num_edges())
        return graph

    def _safe_edges(self, occupancy: OccupancyMap, vor: Voronoi,
                    sites: np.ndarray, labels: np.ndarray) -> Dict[Point, Dict[Point, float]]:
        """筛选脊线并吸附到栅格，返回邻接字典"""
        adjacency: Dict[Point, Dict[Point, float]] = {}
        for (a, b), ridge in zip(vor.ridge_points, vor.ridge_vertices):
            # 无穷远脊线
            if -1 in ridge:
                continue
            # 同一障碍上相邻站点之间的脊线是次要边
            if labels[a] == labels[b] and euclidean(sites[a], sites[b]) < self.min_site_separation:
                continue

            pu = Point(*occupancy.cell(vor.vertices[ridge[0]]))
            pv = Point(*occupancy.cell(vor.vertices[ridge[1]]))
            if pu == pv:
                continue
            if not (occupancy.is_free(pu) and occupancy.is_free(pv)):
                continue
            if occupancy.segment_clearance(pu, pv) < self.safety_clearance:
                continue
            if not occupancy.line_of_sight(pu, pv):
                continue

            w = euclidean(pu, pv)
            adjacency.setdefault(pu, {})[pv] = w
            adjacency.setdefault(pv, {})[pu] = w
        return adjacency

    def _prune_spurs(self, adjacency: Dict[Point, Dict[Point, float]]):
        """
        剪除短分支：从每个叶子沿度为 2 的链走到分叉点，累计长度小于阈值则整段删除

        不通向分叉点的链（整个分量就是一条路径）保留。
        """
        if self.min_spur_length <= 0:
            return
        leaves = sorted(p for p, nbrs in adjacency.items() if len(nbrs) == 1)
        for leaf in leaves:
            if leaf not in adjacency or len(adjacency[leaf]) != 1:
                continue
            chain = [leaf]
            length = 0.0
            junction = None
            prev, cur = None, leaf
            while True:
                nxt = [q for q in adjacency[cur] if q != prev]
                if not nxt:
                    break
                q = nxt[0]
                length += adjacency[cur][q]
                if len(adjacency[q]) != 2:
                    if len(adjacency[q]) >= 3:
                        junction = q
                    break
                if length >= self.min_spur_length:
                    break
                chain.append(q)
                prev, cur = cur, q

            if junction is None or length >= self.min_spur_length:
                continue
            for c in chain:
                for q in adjacency.pop(c):
                    if q in adjacency:
                        adjacency[q].pop(c, None)


@dataclass
class BuildReport:
    """概率路网构建记录"""
    samples: int = 0
    batches: int = 0
    connected: bool = True
    cap_hit: bool = False


def auto_sample_count(occupancy: OccupancyMap) -> int:
    """
    自动采样数：自由面积 / 单位面积，按障碍密度放大

    n = ceil(free / 100 · (1 + 2·obstacle_ratio))，裁剪到 [16, 400] 且不超过自由栅格数。
    同一地图结果确定。
    """
    free = int((~occupancy.grid).sum())
    n = math.ceil(free / CELLS_PER_SAMPLE * (1.0 + 2.0 * occupancy.obstacle_ratio))
    return int(min(max(n, MIN_SAMPLES), MAX_SAMPLES, free))


class ProbabilisticBuilder(RoadmapBuilder):
    """
    概率路网（PRM）构建器

    处理流程：
    1. 在自由栅格中无放回均匀采样 n 个点作为顶点（n=0 时自动确定）
    2. 任意两点之间有视线则连边，边权为欧氏距离
    3. 连通性检查：每个自由区域内的采样点必须属于同一个连通分量，
       required_points 必须两两连通
    4. 不连通则分批补充采样，直到连通或达到 max_batches
    5. extend 接入查询点时同样检查，同一区域内的起点和终点不连通则继续补充
    """
    name = 'probabilistic'

    def __init__(self, n: int = 0, seed=None, batch_size: int = None,
                 max_batches: int = 10, required_points: Sequence = ()):
        """
        :param n: 采样点数，0 表示按地图自动确定
        :param seed: 随机种子，相同种子和地图得到相同路网
        :param batch_size: 每批补充采样数，默认 max(n/2, 16)
        :param max_batches: 补充采样批数上限
        :param required_points: 必须互相连通的查询点，会被注册为顶点
        """
        if n < 0:
            raise ConfigurationError(f"采样点数不能为负: {n}")
        if max_batches < 0:
            raise ConfigurationError(f"max_batches 不能为负: {max_batches}")
        if batch_size is not None and batch_size <= 0:
            raise ConfigurationError(f"batch_size 必须为正数: {batch_size}")
        self.n = int(n)
        self.seed = seed
        self.batch_size = batch_size
        self.max_batches = int(max_batches)
        self.required_points = [as_point(p) for p in required_points]
        self.last_report = BuildReport()

    def sample_count(self, occupancy: OccupancyMap) -> int:
        return self.n if self.n > 0 else auto_sample_count(occupancy)

    def build(self, occupancy: OccupancyMap) -> Graph:
        rng = np.random.default_rng(self.seed)
        graph = Graph()
        report = BuildReport()
        self.last_report = report

        free = occupancy.free_cells()
        available = np.ones(len(free), dtype=bool)

        for p in self.required_points:
            connect_point(graph, occupancy, p)

        if len(free) == 0:
            logger.warning("地图没有自由栅格，概率路网为空")
            report.connected = self._is_connected(graph, occupancy)
            return graph

        # 1. 初始采样
        n = min(self.sample_count(occupancy), len(free))
        report.samples += self._add_samples(graph, occupancy, free, available, rng, n)

        # 2. 补充采样直到连通
        self._top_up(graph, occupancy, free, available, rng, report,
                     lambda: self._is_connected(graph, occupancy))

        logger.info("概率路网: %d 个顶点, %d 条边, 补充 %d 批",
                    graph.num_vertices(), graph.num_edges(), report.batches)
        return graph

    def extend(self, graph: Graph, occupancy: OccupancyMap, points: Sequence) -> Graph:
        """
        接入查询点；同一自由区域内的查询点不连通时（例如终点在采样点都看不到的角落），
        在 graph 上继续分批补充采样，规则与 build 相同

        :param graph: 路网副本，原地修改
        :param points: 查询点（起点、终点）
        """
        points = [as_point(p) for p in points]
        for p in points:
            connect_point(graph, occupancy, p)
        if self._queries_connected(graph, occupancy, points):
            return graph

        free = occupancy.free_cells()
        available = np.array([not graph.has_vertex(Point(int(x), int(y))) for x, y in free],
                             dtype=bool)
        report = BuildReport()
        logger.info("查询点 %s 不在同一连通分量，补充采样", points)
        self._top_up(graph, occupancy, free, available, np.random.default_rng(self.seed), report,
                     lambda: self._queries_connected(graph, occupancy, points))
        return graph

    def _top_up(self, graph: Graph, occupancy: OccupancyMap, free: np.ndarray,
                available: np.ndarray, rng: np.random.Generator, report: BuildReport, connected):
        """分批补充采样直到 connected() 为真；达到批数上限或采样点用尽时标记 degraded"""
        batch = self.batch_size or max(min(self.sample_count(occupancy), len(free)) // 2,
                                       MIN_SAMPLES)
        while not connected():
            if report.batches >= self.max_batches or not available.any():
                report.connected = False
                report.cap_hit = True
                break
            report.samples += self._add_samples(graph, occupancy, free, available, rng, batch)
            report.batches += 1

        if report.cap_hit:
            graph.degraded = True
            msg = (f"概率路网补充采样 {report.batches} 批 (共 {report.samples} 个采样点) 后仍未连通，"
                   f"返回尽力而为的路网")
            logger.warning(msg)
            warnings.warn(msg, RoadmapConnectivityWarning, stacklevel=3)

    def _add_samples(self, graph: Graph, occupancy: OccupancyMap, free: np.ndarray,
                     available: np.ndarray, rng: np.random.Generator, k: int) -> int:
        """从未使用的自由栅格中无放回采样 k 个点并连边，返回实际采样数"""
        pool = np.flatnonzero(available)
        k = min(k, len(pool))
        if k <= 0:
            return 0
        chosen = rng.choice(pool, size=k, replace=False)
        available[chosen] = False
        for idx in chosen:
            x, y = free[idx]
            connect_point(graph, occupancy, Point(int(x), int(y)))
        return k

    def _is_connected(self, graph: Graph, occupancy: OccupancyMap) -> bool:
        """每个自由区域内的顶点同属一个分量，且必经点两两连通"""
        if graph.num_vertices() == 0:
            return True
        _, labels = graph.connected_components()

        component_of_region: Dict[int, int] = {}
        for vertex, component in zip(graph.vertices, labels):
            region = occupancy.region_of(vertex)
            if region == 0:
                continue
            if component_of_region.setdefault(region, component) != component:
                return False

        required = {labels[graph.descriptor(p)] for p in self.required_points}
        return len(required) <= 1

    @staticmethod
    def _queries_connected(graph: Graph, occupancy: OccupancyMap, points) -> bool:
        """同一自由区域内的查询点同属一个分量；位于不同区域的点本来就不可达，不要求连通"""
        _, labels = graph.connected_components()
        component_of_region: Dict[int, int] = {}
        for p in points:
            region = occupancy.region_of(p)
            if region == 0:
                continue
            component = labels[graph.descriptor(p)]
            if component_of_region.setdefault(region, component) != component:
                return False
        return True


BUILDERS = {
    'none': NoneBuilder,
    'voronoi': VoronoiBuilder,
    'probabilistic': ProbabilisticBuilder,
    'prm': ProbabilisticBuilder,
}


def make_builder(name: str, **params) -> RoadmapBuilder:
    """按名称创建路网构建器"""
    return create(BUILDERS, "路网构建器", name, params)
