"""
插值器（局部导航器）注册表

=== 可选算法 ===
- none：原样返回离散路径
- bug2：直线 + 沿墙绕障
- potential_field：人工势场梯度下降
- a_star：航点之间做栅格 A*
"""
from navkit.common.registry import create
from navkit.common.types import Path
from navkit.mapping.occupancy_grid import OccupancyMap
from navkit.planning.bug import Bug2Navigator
from navkit.planning.grid_astar import AStarInterpolator
from navkit.planning.navigation import Interpolator, NavigationResult, NavigationStatus
from navkit.planning.potential_field import PotentialFieldInterpolator


class NoneInterpolator(Interpolator):
    """不做局部导航，离散路径即最终路径"""
    name = 'none'

    def navigate(self, occupancy: OccupancyMap, path: Path) -> NavigationResult:
        return NavigationResult(list(path), NavigationStatus.GOAL_REACHED)


INTERPOLATORS = {
    'none': NoneInterpolator,
    'bug2': Bug2Navigator,
    'bug': Bug2Navigator,
    'potential_field': PotentialFieldInterpolator,
    'a_star': AStarInterpolator,
}


def make_interpolator(name: str, **params) -> Interpolator:
    """按名称创建插值器"""
    return create(INTERPOLATORS, "插值器", name, params)
