"""
人工势场局部导航

势函数：
  U(p) = k_att·|p - goal|² + k_rep·(1/ρ - 1/d0)²   (ρ < d0)
  U(p) = k_att·|p - goal|²                         (ρ ≥ d0)
其中 ρ 为 p 到最近障碍的距离（距离变换），d0 为斥力影响半径。

沿 -∇U（中心差分）方向以固定步长前进；在窗口内净位移过小时判定为局部极小。
"""
import logging
import math
from collections import deque

from navkit.common.errors import ConfigurationError
from navkit.common.metrics import euclidean
from navkit.common.types import Path, Point
from navkit.mapping.occupancy_grid import OccupancyMap
from navkit.planning.navigation import Interpolator, NavigationResult, NavigationStatus

logger = logging.getLogger(__name__)

# 斥力计算时距离的下限，避免除零
MIN_CLEARANCE = 1e-3


class PotentialFieldInterpolator(Interpolator):
    """
    势场插值器

    离散路径中的每个航点依次作为吸引目标。失败时返回的诊断：
    • LOCAL_MINIMUM：梯度为零，或最近 stagnation_window 步的净位移小于 stagnation_distance
    • COLLISION：下一步会进入障碍或穿过障碍
    • ITERATION_LIMIT：总步数达到 max_iterations
    """
    name = 'potential_field'

    def __init__(self, attraction: float = 0.5, repulsion: float = 200.0,
                 influence_radius: float = 5.0, step: float = 0.5, tolerance: float = 1.0,
                 max_iterations: int = 2000, stagnation_window: int = 20,
                 stagnation_distance: float = None, fd_step: float = 0.5):
        """
        :param attraction: 引力增益 k_att
        :param repulsion: 斥力增益 k_rep
        :param influence_radius: 斥力影响半径 d0（栅格）
        :param step: 每步移动距离
        :param tolerance: 到达目标的距离容差
        :param max_iterations: 最大步数
        :param stagnation_window: 停滞检测窗口（步数）
        :param stagnation_distance: 窗口内最小净位移，默认等于 step
        :param fd_step: 中心差分步长
        """
        super().__init__()
        for label, value in (('attraction', attraction), ('influence_radius', influence_radius),
                             ('step', step), ('fd_step', fd_step)):
            if value <= 0:
                raise ConfigurationError(f"{label} 必须为正数: {value}")
        if repulsion < 0:
            raise ConfigurationError(f"repulsion 不能为负: {repulsion}")
        if tolerance < 0:
            raise ConfigurationError(f"tolerance 不能为负: {tolerance}")
        if max_iterations <= 0 or stagnation_window <= 0:
            raise ConfigurationError("max_iterations 和 stagnation_window 必须为正数")
        self.attraction = attraction
        self.repulsion = repulsion
        self.influence_radius = influence_radius
        self.step = step
        self.tolerance = tolerance
        self.max_iterations = max_iterations
        self.stagnation_window = stagnation_window
        self.stagnation_distance = step if stagnation_distance is None else stagnation_distance
        self.fd_step = fd_step

    def potential(self, occupancy: OccupancyMap, p: Point, goal: Point) -> float:
        attractive = self.attraction * ((p.x - goal.x) ** 2 + (p.y - goal.y) ** 2)
        rho = occupancy.distance_to_obstacle(p)
        if rho >= self.influence_radius:
            return attractive
        rho = max(rho, MIN_CLEARANCE)
        return attractive + self.repulsion * (1.0 / rho - 1.0 / self.influence_radius) ** 2

    def gradient(self, occupancy: OccupancyMap, p: Point, goal: Point):
        h = self.fd_step
        dx = (self.potential(occupancy, Point(p.x + h, p.y), goal)
              - self.potential(occupancy, Point(p.x - h, p.y), goal)) / (2 * h)
        dy = (self.potential(occupancy, Point(p.x, p.y + h), goal)
              - self.potential(occupancy, Point(p.x, p.y - h), goal)) / (2 * h)
        return dx, dy

    def navigate(self, occupancy: OccupancyMap, path: Path) -> NavigationResult:
        trace = [path[0]]
        if not occupancy.is_free(path[0]):
            return NavigationResult(trace, NavigationStatus.COLLISION, 0, "起点不可通行")

        iterations = 0
        for waypoint in path[1:]:
            status, message, used = self._descend(occupancy, trace, waypoint,
                                                  self.max_iterations - iterations)
            iterations += used
            if status is not NavigationStatus.GOAL_REACHED:
                return NavigationResult(trace, status, iterations, message)
        return NavigationResult(trace, NavigationStatus.GOAL_REACHED, iterations)

    def _descend(self, occupancy: OccupancyMap, trace: Path, goal: Point, budget: int):
        """
        沿势场梯度下降到一个航点，轨迹直接追加到 trace

        :return: (状态, 说明, 使用的步数)
        """
        recent = deque([trace[-1]], maxlen=self.stagnation_window + 1)
        used = 0
        while True:
            pos = trace[-1]
            if euclidean(pos, goal) <= self.tolerance:
                if pos != goal and occupancy.line_of_sight(pos, goal):
                    trace.append(goal)
                return NavigationStatus.GOAL_REACHED, '', used
            if used >= budget:
                return (NavigationStatus.ITERATION_LIMIT,
                        f"超过最大迭代次数 {self.max_iterations}", used)

            gx, gy = self.gradient(occupancy, pos, goal)
            norm = math.hypot(gx, gy)
            if norm < 1e-12:
                return NavigationStatus.LOCAL_MINIMUM, f"在 {pos} 梯度为零", used

            nxt = Point(pos.x - self.step * gx / norm, pos.y - self.step * gy / norm)
            if not occupancy.line_of_sight(pos, nxt):
                return NavigationStatus.COLLISION, f"从 {pos} 到 {nxt} 会碰撞", used
            trace.append(nxt)
            used += 1

            recent.append(nxt)
            if (len(recent) == recent.maxlen
                    and euclidean(recent[0], recent[-1]) < self.stagnation_distance):
                return (NavigationStatus.LOCAL_MINIMUM,
                        f"最近 {self.stagnation_window} 步净位移不足 {self.stagnation_distance}，"
                        f"停滞在 {nxt}", used)
