"""
栅格 A* 插值器：在占据栅格上用 A* 连接离散路径中相邻的两个航点

路网只提供航点提示（不建路网、不搜索时航点就是起点和终点），
航点之间的具体走法由 8 邻域 A* 在栅格上求出。
"""
import heapq
import logging
import math
from typing import Dict, List, Optional, Tuple

from navkit.common.errors import ConfigurationError
from navkit.common.metrics import euclidean
from navkit.common.types import Path, Point
from navkit.mapping.occupancy_grid import OccupancyMap
from navkit.planning.navigation import Interpolator, NavigationResult, NavigationStatus

logger = logging.getLogger(__name__)

Cell = Tuple[int, int]

# 8 邻域动作：dx, dy, cost
MOVES = [(-1, 0, 1.0), (1, 0, 1.0), (0, -1, 1.0), (0, 1, 1.0),
         (-1, -1, math.sqrt(2)), (-1, 1, math.sqrt(2)), (1, -1, math.sqrt(2)), (1, 1, math.sqrt(2))]


class AStarInterpolator(Interpolator):
    """
    栅格 A* 插值器

    === 行为 ===
    - 每一段：航点所在栅格之间做 8 邻域 A*，欧氏距离启发式，对角移动不切障碍的角
    - 输出的首尾是航点本身，中间是栅格中心
    - smooth=True 时对每一段做视线捷径：从当前点直接连到最远的可直视点

    失败时的诊断：
    • COLLISION：航点所在栅格不可通行
    • UNREACHABLE：两个航点之间没有栅格路径
    • ITERATION_LIMIT：扩展的栅格总数超过 max_expansions
    """
    name = 'a_star'

    def __init__(self, clearance: float = 1.0, smooth: bool = False, max_expansions: int = None):
        """
        :param clearance: 允许进入的最小净空（栅格），1.0 表示所有自由栅格都可进入
        :param smooth: 是否做视线捷径
        :param max_expansions: 扩展栅格总数上限，默认不限制
        """
        super().__init__()
        if clearance < 0:
            raise ConfigurationError(f"clearance 不能为负: {clearance}")
        if max_expansions is not None and max_expansions <= 0:
            raise ConfigurationError(f"max_expansions 必须为正数: {max_expansions}")
        self.clearance = clearance
        self.smooth = smooth
        self.max_expansions = max_expansions

    def blocked(self, occupancy: OccupancyMap, cell: Cell) -> bool:
        col, row = cell
        if not (0 <= col < occupancy.width and 0 <= row < occupancy.height):
            return True
        if occupancy.grid[row, col]:
            return True
        return occupancy.distance_to_obstacle(Point(col, row)) < self.clearance

    def visible(self, occupancy: OccupancyMap, a: Point, b: Point) -> bool:
        """两点之间有视线且沿线净空不低于 clearance"""
        return occupancy.line_of_sight(a, b) and occupancy.segment_clearance(a, b) >= self.clearance

    def navigate(self, occupancy: OccupancyMap, path: Path) -> NavigationResult:
        for p in path:
            if self.blocked(occupancy, occupancy.cell(p)):
                return NavigationResult([path[0]], NavigationStatus.COLLISION, 0,
                                        f"航点 {p} 不可通行")

        result: Path = [path[0]]
        expanded = 0
        for a, b in zip(path, path[1:]):
            budget = None if self.max_expansions is None else self.max_expansions - expanded
            cells, used, limited = self.search(occupancy, occupancy.cell(a), occupancy.cell(b), budget)
            expanded += used
            if limited:
                return NavigationResult(result, NavigationStatus.ITERATION_LIMIT, expanded,
                                        f"扩展栅格数超过 {self.max_expansions}")
            if not cells:
                return NavigationResult(result, NavigationStatus.UNREACHABLE, expanded,
                                        f"{a} → {b} 之间没有栅格路径")

            # 首尾换成航点本身
            leg = [a] + [Point(c, r) for c, r in cells[1:-1]] + [b]
            if self.smooth:
                leg = self.shortcut(occupancy, leg)
            for p in leg[1:]:
                if p != result[-1]:
                    result.append(p)

        logger.debug("栅格 A*: %d 个航点 → %d 个路径点, 扩展 %d 个栅格",
                     len(path), len(result), expanded)
        return NavigationResult(result, NavigationStatus.GOAL_REACHED, expanded)

    def search(self, occupancy: OccupancyMap, start: Cell, goal: Cell,
               budget: Optional[int] = None) -> Tuple[List[Cell], int, bool]:
        """
        栅格 A*

        :param budget: 最多扩展的栅格数，None 表示不限制
        :return: (从 start 到 goal 的栅格序列，不可达时为空, 扩展的栅格数, 是否因预算用完而停止)
        """
        open_set = [(euclidean(start, goal), 0.0, start)]
        came_from: Dict[Cell, Cell] = {}
        cost_so_far: Dict[Cell, float] = {start: 0.0}
        closed_set = set()

        while open_set:
            _, cost, current = heapq.heappop(open_set)
            if current in closed_set:
                continue
            if current == goal:
                break
            if budget is not None and len(closed_set) >= budget:
                return [], len(closed_set), True
            closed_set.add(current)

            for dx, dy, move_cost in MOVES:
                neighbor = (current[0] + dx, current[1] + dy)
                if neighbor in closed_set or self.blocked(occupancy, neighbor):
                    continue
                # 对角移动时两侧的栅格都必须可通行
                if dx != 0 and dy != 0 and (self.blocked(occupancy, (current[0] + dx, current[1]))
                                            or self.blocked(occupancy, (current[0], current[1] + dy))):
                    continue

                new_cost = cost + move_cost
                if neighbor not in cost_so_far or new_cost < cost_so_far[neighbor]:
                    cost_so_far[neighbor] = new_cost
                    came_from[neighbor] = current
                    heapq.heappush(open_set, (new_cost + euclidean(neighbor, goal), new_cost, neighbor))

        # 重建路径
        if goal not in came_from and goal != start:
            return [], len(closed_set), False
        cells = [goal]
        while cells[-1] != start:
            cells.append(came_from[cells[-1]])
        return list(reversed(cells)), len(closed_set), False

    def shortcut(self, occupancy: OccupancyMap, leg: Path) -> Path:
        """视线捷径：贪心地跳到最远的可直视点"""
        out = [leg[0]]
        i = 0
        while i < len(leg) - 1:
            j = len(leg) - 1
            while j > i + 1 and not self.visible(occupancy, leg[i], leg[j]):
                j -= 1
            out.append(leg[j])
            i = j
        return out
