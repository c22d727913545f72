"""
统一规划接口 - 推荐的规划器使用方式
"""
from navkit.common.errors import (ConfigurationError, MapError, PlannerError, PlanningError,
                                  RoadmapConnectivityWarning, VertexLookupError)
from navkit.common.types import Path, Point, ProblemDefinition, Workspace
from navkit.mapping.occupancy_grid import OccupancyMap
from navkit.planning.graph import Graph
from navkit.planning.planner import (Planner, PlannerConfig, RoadmapState,
                                     grid_astar_planner_config, potential_field_planner_config,
                                     prm_planner_config, voronoi_planner_config)

__version__ = "0.1.0"


def plan(occupancy: OccupancyMap, start, goal, config: PlannerConfig = None) -> Path:
    """
    一次性规划：加载地图并求解单个问题

    Args:
        occupancy: 占据栅格地图
        start: 起点 (x, y)
        goal: 终点 (x, y)
        config: 策略配置，默认全部为空操作策略

    Returns:
        最终路径，不可达时为空列表
    """
    planner = Planner(config)
    planner.load_workspace(Workspace(occupancy))
    return planner.solve(ProblemDefinition(start, goal))


__all__ = [
    'ConfigurationError', 'MapError', 'PlannerError', 'PlanningError',
    'RoadmapConnectivityWarning', 'VertexLookupError',
    'Path', 'Point', 'ProblemDefinition', 'Workspace',
    'OccupancyMap', 'Graph',
    'Planner', 'PlannerConfig', 'RoadmapState',
    'grid_astar_planner_config', 'potential_field_planner_config', 'prm_planner_config',
    'voronoi_planner_config',
    'plan',
]
