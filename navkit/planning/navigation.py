"""
局部导航公共接口：插值器 / 导航器基类与导航结果
"""
import logging
from dataclasses import dataclass
from enum import Enum

from navkit.common.types import Path, as_point
from navkit.mapping.occupancy_grid import OccupancyMap

logger = logging.getLogger(__name__)


class NavigationStatus(Enum):
    GOAL_REACHED = 'goal_reached'
    STALLED = 'stalled'                  # 沿墙走无进展（循环/死锁）
    LOCAL_MINIMUM = 'local_minimum'      # 势场局部极小
    ITERATION_LIMIT = 'iteration_limit'
    COLLISION = 'collision'
    UNREACHABLE = 'unreachable'          # 栅格上两个航点之间没有路径
    NO_INPUT = 'no_input'                # 输入路径为空


@dataclass
class NavigationResult:
    """局部导航结果：完整轨迹 + 终止原因"""
    path: Path
    status: NavigationStatus
    iterations: int = 0
    message: str = ''

    @property
    def success(self) -> bool:
        return self.status is NavigationStatus.GOAL_REACHED


class Interpolator:
    """
    局部插值器基类：refine(map, path) -> Path

    只通过地图的局部查询（is_free、distance_to_obstacle、line_of_sight）工作，
    离散路径仅作为航点提示，看不到路网。
    子类实现 navigate，失败时 refine 返回空路径，完整诊断保存在 last_result。
    """
    name = ''

    def __init__(self):
        self.last_result = None

    def navigate(self, occupancy: OccupancyMap, path: Path) -> NavigationResult:
        raise NotImplementedError

    def refine(self, occupancy: OccupancyMap, path) -> Path:
        path = [as_point(p) for p in path]
        if not path:
            self.last_result = NavigationResult([], NavigationStatus.NO_INPUT)
            return []

        result = self.navigate(occupancy, path)
        self.last_result = result
        if not result.success:
            logger.warning("%s 局部导航失败: %s (%d 次迭代) %s",
                           self.name, result.status.value, result.iterations, result.message)
            return []
        return result.path

    def __call__(self, occupancy: OccupancyMap, path) -> Path:
        return self.refine(occupancy, path)
