"""
规划器：组合路网构建、图搜索、局部导航三种策略，并缓存当前工作空间的路网

处理流程（solve）：
1. 路网不是 CURRENT 时用配置的构建器重建
2. 复制路网，由构建器把起点和终点接入副本（概率路网在二者不连通时继续补充采样）
3. 图搜索得到离散路径
4. 插值器把离散路径变成最终路径
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from navkit.common.errors import ConfigurationError, PlannerError
from navkit.common.metrics import path_length
from navkit.common.types import Path, ProblemDefinition, Workspace
from navkit.mapping.occupancy_grid import OccupancyMap
from navkit.planning.graph import Graph
from navkit.planning.graph_search import SEARCHES, GraphSearch, NoneSearch, make_search
from navkit.planning.interpolator import INTERPOLATORS, NoneInterpolator, make_interpolator
from navkit.planning.navigation import Interpolator
from navkit.planning.roadmap_builder import BUILDERS, NoneBuilder, RoadmapBuilder, make_builder

logger = logging.getLogger(__name__)


def _resolve(value, registry, family, factory):
    """策略槽取值：已注册的策略对象原样返回，名称字符串按注册表创建"""
    if isinstance(value, str):
        return factory(value)
    if type(value) not in set(registry.values()):
        raise ConfigurationError(f"{family} 不是已注册的策略: {value!r}")
    return value


@dataclass
class PlannerConfig:
    """规划器配置：三个独立的策略槽，未设置时为空操作策略"""
    roadmap_builder: Union[RoadmapBuilder, str] = field(default_factory=NoneBuilder)
    graph_search: Union[GraphSearch, str] = field(default_factory=NoneSearch)
    interpolator: Union[Interpolator, str] = field(default_factory=NoneInterpolator)

    def __post_init__(self):
        self.roadmap_builder = _resolve(self.roadmap_builder, BUILDERS, "路网构建器", make_builder)
        self.graph_search = _resolve(self.graph_search, SEARCHES, "图搜索算法", make_search)
        self.interpolator = _resolve(self.interpolator, INTERPOLATORS, "插值器", make_interpolator)

    def describe(self) -> str:
        return (f"{self.roadmap_builder.name} + {self.graph_search.name} + "
                f"{self.interpolator.name}")


class RoadmapState(Enum):
    ABSENT = 'absent'      # 尚未构建
    STALE = 'stale'        # 工作空间或构建器变化后未重建
    CURRENT = 'current'    # 与当前工作空间一致


class Planner:
    """
    规划器

    === 使用示例 ===
    planner = Planner(voronoi_planner_config())
    planner.load_workspace(Workspace(OccupancyMap(grid)))
    path = planner.solve(ProblemDefinition((1, 1), (18, 18)))

    路网在第一次 solve 时构建，之后重复使用直到重新加载工作空间或更换构建器。
    规划失败（不可达、局部导航失败）返回空路径；未加载工作空间抛 PlannerError。
    """
    def __init__(self, config: Optional[PlannerConfig] = None):
        self.config = config or PlannerConfig()
        self._workspace: Optional[Workspace] = None
        self._roadmap: Optional[Graph] = None
        self._state = RoadmapState.ABSENT
        # 最近一次求解的中间结果
        self.last_discrete_path: Path = []
        self.query_graph: Optional[Graph] = None

    @property
    def workspace(self) -> Optional[Workspace]:
        return self._workspace

    @property
    def roadmap(self) -> Optional[Graph]:
        """最近构建的路网（不含查询点），可能已过期，见 roadmap_state"""
        return self._roadmap

    @property
    def roadmap_state(self) -> RoadmapState:
        return self._state

    @property
    def roadmap_degraded(self) -> bool:
        """缓存的路网或最近一次查询图是降级结果"""
        if self._roadmap is not None and self._roadmap.degraded:
            return True
        return self.query_graph is not None and self.query_graph.degraded

    def load_workspace(self, workspace: Union[Workspace, OccupancyMap]):
        """加载工作空间，已缓存的路网变为过期"""
        if isinstance(workspace, OccupancyMap):
            workspace = Workspace(workspace)
        self._workspace = workspace
        self.invalidate_roadmap()
        logger.info("加载工作空间: %dx%d, 障碍占比 %.2f",
                    workspace.map.width, workspace.map.height, workspace.map.obstacle_ratio)

    def configure(self, config: PlannerConfig):
        """更换策略配置；构建器变化时路网过期"""
        if config.roadmap_builder is not self.config.roadmap_builder:
            self.invalidate_roadmap()
        self.config = config

    def invalidate_roadmap(self):
        self.query_graph = None
        if self._roadmap is not None:
            self._state = RoadmapState.STALE

    def build_roadmap(self) -> Graph:
        """用当前构建器重建路网"""
        if self._workspace is None:
            raise PlannerError("未加载工作空间")
        builder = self.config.roadmap_builder
        logger.info("构建路网: %s (状态 %s)", builder.name, self._state.value)
        self._roadmap = builder.build(self._workspace.map)
        self._state = RoadmapState.CURRENT
        if self._roadmap.degraded:
            logger.warning("路网为降级结果，规划可能失败")
        return self._roadmap

    def solve(self, pdef: ProblemDefinition) -> Path:
        """
        求解一次规划问题

        :param pdef: 起点与终点
        :return: 最终路径，失败时为空
        :raises PlannerError: 未加载工作空间
        """
        if self._workspace is None:
            raise PlannerError("未加载工作空间，无法求解")
        if self._state is not RoadmapState.CURRENT:
            self.build_roadmap()
        occupancy = self._workspace.map

        # 1. 查询点接入路网副本，缓存的路网保持不变
        graph = self.config.roadmap_builder.extend(self._roadmap.copy(), occupancy,
                                                   [pdef.start, pdef.goal])
        self.query_graph = graph

        # 2. 全局搜索
        discrete = self.config.graph_search.search(graph, pdef.start, pdef.goal)
        self.last_discrete_path = discrete
        if not discrete:
            logger.info("%s → %s 在路网上不可达 (%s)", pdef.start, pdef.goal, self.config.describe())
            return []

        # 3. 局部导航
        path = self.config.interpolator.refine(occupancy, discrete)
        if path:
            logger.info("规划成功: %d 个路径点, 长度 %.2f", len(path), path_length(path))
        return path


def voronoi_planner_config(**builder_params) -> PlannerConfig:
    """Voronoi 路网 + Dijkstra，不做局部导航"""
    return PlannerConfig(roadmap_builder=make_builder('voronoi', **builder_params),
                         graph_search=make_search('dijkstra'))


def prm_planner_config(n: int = 0, seed=None) -> PlannerConfig:
    """概率路网 + Dijkstra，不做局部导航"""
    return PlannerConfig(roadmap_builder=make_builder('probabilistic', n=n, seed=seed),
                         graph_search=make_search('dijkstra'))


def potential_field_planner_config(**params) -> PlannerConfig:
    """不建路网、不搜索，直接从起点势场下降到终点"""
    return PlannerConfig(interpolator=make_interpolator('potential_field', **params))


def grid_astar_planner_config(**params) -> PlannerConfig:
    """不建路网、不搜索，起点到终点直接在栅格上做 A*"""
    return PlannerConfig(interpolator=make_interpolator('a_star', **params))
