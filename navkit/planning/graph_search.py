"""
图搜索模块：在路网上计算从起点到目标的离散路径

=== 可选算法 ===
- none：直接返回 [起点, 终点]，忽略路网（调试/可视化基线）
- dijkstra：一致代价搜索，边权和最小
- breadth_first：广度优先，跳数最少
- bidirectional_breadth_first：双向广度优先，跳数最少，平均更快
- a_star：启发式最佳优先，启发函数可采纳时最优
- depth_first：深度优先，只保证找到一条路径

=== 公共约定 ===
- 起点/终点通过 graph.descriptor 查找，未注册时抛 VertexLookupError
- 不可达时返回空路径
- 起点即终点时返回单点路径
"""
import heapq
import logging
import math
from collections import deque
from typing import Callable, Dict, List, Optional, Union

from navkit.common.metrics import Metric, get_metric
from navkit.common.registry import create
from navkit.common.types import Path, Point, as_point
from navkit.planning.graph import Graph

logger = logging.getLogger(__name__)


def reconstruct(graph: Graph, parent: Dict[int, int], goal: int) -> Path:
    """沿父指针回溯到根（父指针指向自身），反转得到起点→终点顺序"""
    path = []
    node = goal
    while parent[node] != node:
        path.append(graph.vertex(node))
        node = parent[node]
    path.append(graph.vertex(node))
    path.reverse()
    return path


class GraphSearch:
    """图搜索基类：search(graph, start, goal) -> Path"""
    name = ''

    def __init__(self):
        # 最近一次搜索的统计，便于调试和比较
        self.last_cost = math.inf
        self.last_expanded = 0

    def search(self, graph: Graph, start, goal) -> Path:
        start, goal = as_point(start), as_point(goal)
        s, g = graph.descriptor(start), graph.descriptor(goal)
        self.last_expanded = 0
        if s == g:
            self.last_cost = 0.0
            return [graph.vertex(s)]
        path = self._search(graph, s, g)
        self.last_cost = graph.path_cost(path) if path else math.inf
        logger.debug("%s: 展开 %d 个顶点, 路径 %d 点, 代价 %.3f",
                     self.name, self.last_expanded, len(path), self.last_cost)
        return path

    def _search(self, graph: Graph, s: int, g: int) -> Path:
        raise NotImplementedError

    def __call__(self, graph: Graph, start, goal) -> Path:
        return self.search(graph, start, goal)


class NoneSearch(GraphSearch):
    """空搜索：不查路网，直接连接起点和终点"""
    name = 'none'

    def search(self, graph: Graph, start, goal) -> Path:
        start, goal = as_point(start), as_point(goal)
        self.last_expanded = 0
        self.last_cost = math.hypot(goal.x - start.x, goal.y - start.y)
        return [start, goal]


class DijkstraSearch(GraphSearch):
    """
    一致代价搜索（Dijkstra）

    每次取出暂定距离最小的未访问顶点并松弛其邻居；
    距离相同时编号小的顶点先出队，对固定的图结果确定。
    """
    name = 'dijkstra'

    def _search(self, graph: Graph, s: int, g: int) -> Path:
        dist = [math.inf] * graph.num_vertices()
        parent = {s: s}
        visited = set()
        dist[s] = 0.0
        open_set = [(0.0, s)]

        while open_set:
            d, current = heapq.heappop(open_set)
            if current in visited:
                continue
            visited.add(current)
            self.last_expanded += 1

            if current == g:
                return reconstruct(graph, parent, g)

            for neighbor, w in graph.neighbors(current):
                if neighbor in visited:
                    continue
                new_dist = d + w
                if new_dist < dist[neighbor]:
                    dist[neighbor] = new_dist
                    parent[neighbor] = current
                    heapq.heappush(open_set, (new_dist, neighbor))
        return []


class BreadthFirstSearch(GraphSearch):
    """
    广度优先搜索

    按层遍历，目标第一次作为被展开顶点的邻居出现时立即返回，
    得到跳数最少（不一定边权最小）的路径。
    """
    name = 'breadth_first'

    def _search(self, graph: Graph, s: int, g: int) -> Path:
        parent = {s: s}
        queue = deque([s])

        while queue:
            current = queue.popleft()
            self.last_expanded += 1
            for neighbor, _ in graph.neighbors(current):
                if neighbor in parent:
                    continue
                parent[neighbor] = current
                if neighbor == g:
                    return reconstruct(graph, parent, g)
                queue.append(neighbor)
        return []


class BidirectionalBreadthFirstSearch(GraphSearch):
    """
    双向广度优先搜索

    每轮分别从起点和终点各扩展一层；某一侧扩展后两侧访问集合出现交集即停止，
    在两侧深度之和最小的交汇顶点处拼接（相同则取编号小者）：
    起点一侧正序，终点一侧反序。
    """
    name = 'bidirectional_breadth_first'

    def _search(self, graph: Graph, s: int, g: int) -> Path:
        forward = {s: (s, 0)}   # 顶点 → (父顶点, 深度)
        backward = {g: (g, 0)}
        forward_frontier = [s]
        backward_frontier = [g]

        while forward_frontier and backward_frontier:
            forward_frontier = self._expand(graph, forward_frontier, forward)
            meet = self._meeting_vertex(forward, backward)
            if meet is not None:
                return self._splice(graph, forward, backward, meet)

            backward_frontier = self._expand(graph, backward_frontier, backward)
            meet = self._meeting_vertex(forward, backward)
            if meet is not None:
                return self._splice(graph, forward, backward, meet)
        return []

    def _expand(self, graph: Graph, frontier: List[int], visited: Dict[int, tuple]) -> List[int]:
        """扩展一整层，返回新的一层"""
        next_frontier = []
        for current in frontier:
            self.last_expanded += 1
            depth = visited[current][1]
            for neighbor, _ in graph.neighbors(current):
                if neighbor not in visited:
                    visited[neighbor] = (current, depth + 1)
                    next_frontier.append(neighbor)
        return next_frontier

    @staticmethod
    def _meeting_vertex(forward: Dict[int, tuple], backward: Dict[int, tuple]) -> Optional[int]:
        common = forward.keys() & backward.keys()
        if not common:
            return None
        return min(common, key=lambda v: (forward[v][1] + backward[v][1], v))

    @staticmethod
    def _splice(graph: Graph, forward, backward, meet: int) -> Path:
        head = []
        node = meet
        while forward[node][0] != node:
            head.append(graph.vertex(node))
            node = forward[node][0]
        head.append(graph.vertex(node))
        head.reverse()

        node = meet
        while backward[node][0] != node:
            node = backward[node][0]
            head.append(graph.vertex(node))
        return head


class AStarSearch(GraphSearch):
    """
    A* 启发式搜索

    开放集按 f = g + h 排序，g 为起点出发的累计边权，h 为到目标的估计距离。
    h 可采纳（欧氏、切比雪夫）时结果最优；选择曼哈顿等不可采纳启发函数
    表示接受非最优路径以换取更少的展开。
    """
    name = 'a_star'

    def __init__(self, heuristic: Union[str, Metric] = 'euclidean'):
        super().__init__()
        self.heuristic: Callable[[Point, Point], float] = (
            get_metric(heuristic) if isinstance(heuristic, str) else heuristic
        )

    def _search(self, graph: Graph, s: int, g: int) -> Path:
        goal = graph.vertex(g)
        cost_so_far = {s: 0.0}
        parent = {s: s}
        closed_set = set()
        open_set = [(self.heuristic(graph.vertex(s), goal), 0.0, s)]

        while open_set:
            _, cost, current = heapq.heappop(open_set)

            if current in closed_set:
                continue
            closed_set.add(current)
            self.last_expanded += 1

            if current == g:
                return reconstruct(graph, parent, g)

            for neighbor, w in graph.neighbors(current):
                if neighbor in closed_set:
                    continue
                new_cost = cost_so_far[current] + w
                if neighbor not in cost_so_far or new_cost < cost_so_far[neighbor]:
                    cost_so_far[neighbor] = new_cost
                    priority = new_cost + self.heuristic(graph.vertex(neighbor), goal)
                    heapq.heappush(open_set, (priority, new_cost, neighbor))
                    parent[neighbor] = current
        return []


class DepthFirstSearch(GraphSearch):
    """
    深度优先搜索

    显式栈，编号小的邻居先探索，返回找到的第一条路径，不保证质量，
    用于可达性检查。
    """
    name = 'depth_first'

    def _search(self, graph: Graph, s: int, g: int) -> Path:
        parent: Dict[int, int] = {}
        stack = [(s, s)]

        while stack:
            current, from_vertex = stack.pop()
            if current in parent:
                continue
            parent[current] = from_vertex
            self.last_expanded += 1

            if current == g:
                return reconstruct(graph, parent, g)

            # 逆序入栈，使编号小的邻居先出栈
            for neighbor, _ in reversed(graph.neighbors(current)):
                if neighbor not in parent:
                    stack.append((neighbor, current))
        return []


SEARCHES = {
    'none': NoneSearch,
    'dijkstra': DijkstraSearch,
    'uniform_cost': DijkstraSearch,
    'breadth_first': BreadthFirstSearch,
    'bfs': BreadthFirstSearch,
    'bidirectional_breadth_first': BidirectionalBreadthFirstSearch,
    'bidirectional_bfs': BidirectionalBreadthFirstSearch,
    'a_star': AStarSearch,
    'depth_first': DepthFirstSearch,
    'dfs': DepthFirstSearch,
}


def make_search(name: str, **params) -> GraphSearch:
    """按名称创建图搜索算法"""
    return create(SEARCHES, "图搜索算法", name, params)
