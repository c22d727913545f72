"""
Bug 类局部导航：沿直线走向目标，碰到障碍就沿墙绕行

States:
  DIRECT, WALL_FOLLOW, GOAL_REACHED, STALLED
Events:
  ARRIVED, OBSTACLE_HIT, LEAVE_POINT, NO_PROGRESS
"""
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Set, Tuple

from navkit.common.errors import ConfigurationError
from navkit.common.metrics import euclidean
from navkit.common.types import Path, Point, as_point
from navkit.mapping.occupancy_grid import OccupancyMap
from navkit.planning.navigation import Interpolator, NavigationResult, NavigationStatus

logger = logging.getLogger(__name__)

# 4 邻域方向，编号加 1 表示在 (x, y) 坐标系中逆时针转 90°
HEADINGS = [(1, 0), (0, 1), (-1, 0), (0, -1)]

NEIGHBORS_8 = [(dx, dy) for dx in (-1, 0, 1) for dy in (-1, 0, 1) if (dx, dy) != (0, 0)]


def _sign(v: float) -> int:
    return (v > 0) - (v < 0)


class Bug:
    """
    Bug 智能体：在地图中感知和移动的基本能力

    • 被阻挡的栅格：越界，或距离变换小于 clearance
    • 所有移动都逐格检查，轨迹中不会出现被阻挡的位置
    """
    def __init__(self, occupancy: OccupancyMap, position, clearance: float = 1.0):
        """
        :param occupancy: 占据栅格地图
        :param position: 初始位置
        :param clearance: 允许进入的最小净空（栅格），1.0 表示所有自由栅格都可进入
        """
        self.map = occupancy
        self.clearance = clearance
        self._pos = as_point(position)
        self._goal = self._pos
        self._path: Path = [self._pos]
        self.heading = 0
        # 最近一次 move_to 被挡住时的第一个阻挡栅格
        self.last_blocked: Optional[Tuple[int, int]] = None

    @property
    def position(self) -> Point:
        return self._pos

    @property
    def goal(self) -> Point:
        return self._goal

    def set_goal(self, pt):
        self._goal = as_point(pt)

    def path(self) -> Path:
        """走过的轨迹"""
        return list(self._path)

    def goal_reached(self, tolerance: float = 0.5) -> bool:
        return euclidean(self._pos, self._goal) <= tolerance

    def obstacle_distance(self) -> float:
        return self.map.distance_to_obstacle(self._pos)

    def goal_visible(self) -> bool:
        return self.map.line_of_sight(self._pos, self._goal)

    def blocked(self, cell) -> bool:
        col, row = cell
        if not (0 <= col < self.map.width and 0 <= row < self.map.height):
            return True
        return self.map.distance_to_obstacle(Point(col, row)) < self.clearance

    def hugging(self, cell) -> bool:
        """栅格的 8 邻域内有被阻挡的栅格"""
        col, row = cell
        return any(self.blocked((col + dx, row + dy)) for dx, dy in NEIGHBORS_8)

    def _record(self, pt: Point):
        if pt != self._pos:
            self._pos = pt
            self._path.append(pt)

    def move_to(self, target) -> bool:
        """
        沿直线移动到 target

        经过的栅格全部可通行时到达 target 并返回 True；
        否则停在第一个阻挡栅格之前的最后一个可通行栅格，返回 False。
        """
        target = as_point(target)
        cols, rows = self.map.traverse(self._pos, target)
        last_safe = 0
        for k in range(len(cols)):
            if self.blocked((cols[k], rows[k])):
                self.last_blocked = (int(cols[k]), int(rows[k]))
                break
            last_safe = k
        else:
            self.last_blocked = None
            self._record(target)
            return True

        if last_safe > 0:
            self._record(Point(int(cols[last_safe]), int(rows[last_safe])))
        return False

    def move(self, dx: float, dy: float) -> bool:
        return self.move_to((self._pos.x + dx, self._pos.y + dy))

    def _contacts(self, col: int, row: int):
        return [h for h, (dx, dy) in enumerate(HEADINGS) if self.blocked((col + dx, row + dy))]

    def _toward_blocked(self, col: int, row: int, contacts):
        """contacts 中朝向 last_blocked 的方向"""
        bx, by = self.last_blocked
        dx, dy = _sign(bx - col), _sign(by - row)
        return [h for h in contacts if HEADINGS[h] in ((dx, 0), (0, dy))]

    def orient_along_wall(self, direction: int) -> bool:
        """
        贴墙定向：选一个 4 邻接的阻挡方向作为墙，朝向沿墙切线

        • 刚被挡住时，以挡住前进的那个栅格所在的障碍为墙（两个障碍之间的窄缝里不会认错墙）
        • 阻挡栅格只在对角方向时先横移一格，建立 4 邻接
        • 仍有多个候选方向时，取与距离变换负梯度（指向障碍）最一致的方向
        • 墙在朝向的 -direction 一侧

        :return: 找不到墙时返回 False
        """
        col, row = self.map.cell(self._pos)
        contacts = self._contacts(col, row)
        if self.last_blocked is not None:
            toward = self._toward_blocked(col, row, contacts)
            if not toward:
                bx, by = self.last_blocked
                dx, dy = _sign(bx - col), _sign(by - row)
                for sx, sy in ((dx, 0), (0, dy)):
                    if (sx, sy) != (0, 0) and not self.blocked((col + sx, row + sy)):
                        col, row = col + sx, row + sy
                        self._record(Point(col, row))
                        break
                contacts = self._contacts(col, row)
                toward = self._toward_blocked(col, row, contacts)
            if toward:
                contacts = toward
        if not contacts:
            return False

        gx, gy = self.map.clearance_gradient(self._pos)
        wall = max(contacts, key=lambda h: (-(HEADINGS[h][0] * gx + HEADINGS[h][1] * gy), -h))
        self.heading = (wall + direction) % 4
        return True

    def follow_wall(self, direction: int) -> bool:
        """
        沿墙走一步（4 邻域手扶墙规则）

        依次尝试：转向墙一侧、直行、转离墙一侧、掉头；
        优先选择仍然贴着障碍的栅格。无路可走时返回 False。
        """
        col, row = self.map.cell(self._pos)
        order = [(self.heading - direction) % 4, self.heading,
                 (self.heading + direction) % 4, (self.heading + 2) % 4]
        chosen = None
        fallback = None
        for h in order:
            cell = (col + HEADINGS[h][0], row + HEADINGS[h][1])
            if self.blocked(cell):
                continue
            if self.hugging(cell):
                chosen = h
                break
            if fallback is None:
                fallback = h
        if chosen is None:
            chosen = fallback
        if chosen is None:
            return False
        self.heading = chosen
        self._record(Point(col + HEADINGS[chosen][0], row + HEADINGS[chosen][1]))
        return True

    def snap_to_goal(self):
        """在容差范围内且可直视时，把目标点本身加入轨迹"""
        if self._pos != self._goal and self.map.line_of_sight(self._pos, self._goal):
            self._record(self._goal)


class BugMode(Enum):
    DIRECT = 'direct'
    WALL_FOLLOW = 'wall_follow'
    GOAL_REACHED = 'goal_reached'
    STALLED = 'stalled'


TERMINAL_MODES = {BugMode.GOAL_REACHED, BugMode.STALLED}

# 有限状态转换表：{(当前状态, 事件): 新状态}
TRANSITIONS = {
    (BugMode.DIRECT, 'ARRIVED'): BugMode.GOAL_REACHED,
    (BugMode.DIRECT, 'OBSTACLE_HIT'): BugMode.WALL_FOLLOW,
    (BugMode.DIRECT, 'NO_PROGRESS'): BugMode.STALLED,
    (BugMode.WALL_FOLLOW, 'ARRIVED'): BugMode.GOAL_REACHED,
    (BugMode.WALL_FOLLOW, 'LEAVE_POINT'): BugMode.DIRECT,
    (BugMode.WALL_FOLLOW, 'NO_PROGRESS'): BugMode.STALLED,
}


@dataclass
class BugState:
    """Bug2 状态：当前模式 + 沿墙阶段的记录"""
    mode: BugMode = BugMode.DIRECT
    hit_point: Optional[Point] = None
    hit_distance: float = math.inf
    follow_steps: int = 0
    last_side: float = 0.0
    visited: Set[Tuple[Tuple[int, int], int]] = field(default_factory=set)
    reason: str = ''


class Bug2Navigator(Interpolator):
    """
    Bug2 沿墙导航器

    === 行为 ===
    - DIRECT：沿直线以 step 步长走向目标；某一步被挡住就停在障碍前并切换到 WALL_FOLLOW
    - WALL_FOLLOW：手扶墙绕行，直到在比碰撞点更接近目标的位置重新穿过起点-目标连线，切回 DIRECT；
      离开后第一步就被另一个障碍挡住时记为新的碰撞点，沿新障碍绕行
    - 到达容差范围内：GOAL_REACHED
    - 沿墙出现重复状态（绕障一圈没找到离开点）或步数超限：STALLED

    离散路径中的每个航点依次作为一段的目标，输出为完整的访问轨迹。
    """
    name = 'bug2'

    def __init__(self, step: float = 1.0, tolerance: float = 0.5, clearance: float = 1.0,
                 direction: int = 1, max_follow_steps: int = None, max_iterations: int = 10000):
        """
        :param step: 直行步长（栅格）
        :param tolerance: 到达目标的距离容差
        :param clearance: 允许进入的最小净空
        :param direction: 沿墙方向，+1 墙在右手侧，-1 墙在左手侧
        :param max_follow_steps: 单次沿墙的最大步数，默认 4·宽·高
        :param max_iterations: 整个导航的最大迭代次数
        """
        super().__init__()
        if step <= 0:
            raise ConfigurationError(f"step 必须为正数: {step}")
        if tolerance < 0:
            raise ConfigurationError(f"tolerance 不能为负: {tolerance}")
        if direction not in (1, -1):
            raise ConfigurationError(f"direction 只能是 +1 或 -1: {direction}")
        if max_follow_steps is not None and max_follow_steps <= 0:
            raise ConfigurationError(f"max_follow_steps 必须为正数: {max_follow_steps}")
        if max_iterations <= 0:
            raise ConfigurationError(f"max_iterations 必须为正数: {max_iterations}")
        self.step = step
        self.tolerance = tolerance
        self.clearance = clearance
        self.direction = direction
        self.max_follow_steps = max_follow_steps
        self.max_iterations = max_iterations

    def navigate(self, occupancy: OccupancyMap, path: Path) -> NavigationResult:
        bug = Bug(occupancy, path[0], clearance=self.clearance)
        if bug.blocked(occupancy.cell(bug.position)):
            return NavigationResult(bug.path(), NavigationStatus.COLLISION, 0, "起点不可通行")

        max_follow = self.max_follow_steps
        if max_follow is None:
            max_follow = 4 * occupancy.width * occupancy.height
        iterations = 0
        for waypoint in path[1:]:
            state, used = self._run_leg(bug, waypoint, max_follow, self.max_iterations - iterations)
            iterations += used
            if state.mode is BugMode.STALLED:
                return NavigationResult(bug.path(), NavigationStatus.STALLED, iterations, state.reason)
            if state.mode is not BugMode.GOAL_REACHED:
                return NavigationResult(bug.path(), NavigationStatus.ITERATION_LIMIT, iterations,
                                        f"超过最大迭代次数 {self.max_iterations}")
        return NavigationResult(bug.path(), NavigationStatus.GOAL_REACHED, iterations)

    def _run_leg(self, bug: Bug, goal: Point, max_follow: int, budget: int):
        bug.set_goal(goal)
        m_start = bug.position
        state = BugState()
        used = 0
        while state.mode not in TERMINAL_MODES and used < budget:
            used += 1
            event = self._step(bug, state, m_start, max_follow)
            if event is not None:
                self._transition(bug, state, event, m_start)
        if state.mode is BugMode.GOAL_REACHED:
            bug.snap_to_goal()
        return state, used

    def _step(self, bug: Bug, state: BugState, m_start: Point, max_follow: int) -> Optional[str]:
        if state.mode is BugMode.DIRECT:
            return self._step_direct(bug, state)
        return self._step_wall_follow(bug, state, m_start, max_follow)

    def _transition(self, bug: Bug, state: BugState, event: str, m_start: Point):
        """
        执行状态切换：
        1. 在转换表中查找 (当前状态, 事件)
        2. 进入 WALL_FOLLOW 时记录碰撞点，清空沿墙记录
        """
        new_mode = TRANSITIONS[(state.mode, event)]
        logger.debug("bug2: %s --%s--> %s @ %s", state.mode.value, event, new_mode.value, bug.position)
        if new_mode is BugMode.WALL_FOLLOW:
            state.hit_point = bug.position
            state.hit_distance = euclidean(bug.position, bug.goal)
            state.follow_steps = 0
            state.visited = set()
            state.last_side = self._side(m_start, bug.goal, bug.position)
        state.mode = new_mode

    def _step_direct(self, bug: Bug, state: BugState) -> Optional[str]:
        if bug.goal_reached(self.tolerance):
            return 'ARRIVED'
        d = euclidean(bug.position, bug.goal)
        s = min(self.step, d)
        pos, goal = bug.position, bug.goal
        target = Point(pos.x + (goal.x - pos.x) / d * s, pos.y + (goal.y - pos.y) / d * s)
        if bug.move_to(target):
            return 'ARRIVED' if bug.goal_reached(self.tolerance) else None
        if bug.goal_reached(self.tolerance):
            return 'ARRIVED'
        if not bug.orient_along_wall(self.direction):
            state.reason = f"在 {bug.position} 无法贴墙"
            return 'NO_PROGRESS'
        return 'OBSTACLE_HIT'

    def _step_wall_follow(self, bug: Bug, state: BugState, m_start: Point,
                          max_follow: int) -> Optional[str]:
        if not bug.follow_wall(self.direction):
            state.reason = f"在 {bug.position} 被困住"
            return 'NO_PROGRESS'
        state.follow_steps += 1
        pos = bug.position
        if bug.goal_reached(self.tolerance):
            return 'ARRIVED'

        key = (bug.map.cell(pos), bug.heading)
        if key in state.visited:
            state.reason = f"绕障 {state.follow_steps} 步后回到重复状态，目标不可达"
            return 'NO_PROGRESS'
        if state.follow_steps > max_follow:
            state.reason = f"沿墙超过 {max_follow} 步"
            return 'NO_PROGRESS'
        state.visited.add(key)

        side = self._side(m_start, bug.goal, pos)
        crossed = abs(side) <= 0.5 or side * state.last_side < 0
        state.last_side = side
        closer = euclidean(pos, bug.goal) < state.hit_distance - 1e-9
        if crossed and closer:
            return 'LEAVE_POINT'
        return None

    @staticmethod
    def _side(a: Point, b: Point, p: Point) -> float:
        """p 到直线 ab 的有符号距离"""
        length = euclidean(a, b)
        if length == 0:
            return 0.0
        return ((b.x - a.x) * (p.y - a.y) - (b.y - a.y) * (p.x - a.x)) / length
