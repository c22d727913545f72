"""
路网图：顶点数组 + 对称稀疏邻接表

=== 存储方式 ===
- 顶点按插入顺序编号（0, 1, 2, ...），只追加不删除
- 边权存在按顶点编号索引的邻接字典中，加边时同时写入两个方向
- 点到顶点编号的查找表只接受精确注册过的点

=== 约定 ===
- weight(i, i) == 0
- weight(i, j) == weight(j, i)
- 未连接的顶点对返回 NO_EDGE（负数哨兵）
"""
import math
from typing import Dict, Iterator, List, Tuple

import numpy as np
from scipy.sparse import csr_matrix
from scipy.sparse.csgraph import connected_components

from navkit.common.errors import VertexLookupError
from navkit.common.types import Point, as_point


class Graph:
    NO_EDGE = -1.0

    def __init__(self):
        self._vertices: List[Point] = []
        self._index: Dict[Point, int] = {}
        self._adjacency: List[Dict[int, float]] = []
        # 构建器达到迭代上限时置位，表示这是一个尽力而为的路网
        self.degraded = False

    def __len__(self) -> int:
        return len(self._vertices)

    def __repr__(self) -> str:
        return f"Graph(vertices={self.num_vertices()}, edges={self.num_edges()}, degraded={self.degraded})"

    def num_vertices(self) -> int:
        return len(self._vertices)

    def num_edges(self) -> int:
        return sum(len(adj) for adj in self._adjacency) // 2

    @property
    def vertices(self) -> List[Point]:
        return list(self._vertices)

    def vertex(self, i: int) -> Point:
        return self._vertices[i]

    def has_vertex(self, point) -> bool:
        return as_point(point) in self._index

    def add_vertex(self, point) -> int:
        """注册顶点，返回编号；重复注册同一个点返回已有编号"""
        point = as_point(point)
        index = self._index.get(point)
        if index is not None:
            return index
        index = len(self._vertices)
        self._vertices.append(point)
        self._index[point] = index
        self._adjacency.append({})
        return index

    def add_edge(self, i: int, j: int, weight: float):
        """添加无向边 i-j，边权必须为有限非负数"""
        if i == j:
            raise ValueError(f"不允许自环: {i}")
        n = len(self._vertices)
        if not (0 <= i < n and 0 <= j < n):
            raise IndexError(f"顶点编号越界: ({i}, {j})，顶点数 {n}")
        weight = float(weight)
        if not math.isfinite(weight) or weight < 0:
            raise ValueError(f"边权必须为有限非负数: {weight}")
        self._adjacency[i][j] = weight
        self._adjacency[j][i] = weight

    def weight(self, i: int, j: int) -> float:
        """边权，无边时为 NO_EDGE；编号越界抛 IndexError"""
        n = len(self._vertices)
        if not (0 <= i < n and 0 <= j < n):
            raise IndexError(f"顶点编号越界: ({i}, {j})，顶点数 {n}")
        if i == j:
            return 0.0
        return self._adjacency[i].get(j, self.NO_EDGE)

    def descriptor(self, point) -> int:
        """
        精确查找已注册点的顶点编号

        :raises VertexLookupError: 点未注册为顶点
        """
        try:
            return self._index[as_point(point)]
        except KeyError:
            raise VertexLookupError(f"点 {tuple(point)} 不是路网顶点") from None

    def neighbors(self, i: int) -> List[Tuple[int, float]]:
        """邻居列表 (编号, 边权)，按编号升序，保证所有搜索的遍历顺序确定"""
        return sorted(self._adjacency[i].items())

    def degree(self, i: int) -> int:
        return len(self._adjacency[i])

    def edges(self) -> Iterator[Tuple[int, int, float]]:
        """遍历所有边 (i, j, w)，i < j"""
        for i, adj in enumerate(self._adjacency):
            for j, w in sorted(adj.items()):
                if i < j:
                    yield i, j, w

    def copy(self) -> "Graph":
        g = Graph()
        g._vertices = list(self._vertices)
        g._index = dict(self._index)
        g._adjacency = [dict(adj) for adj in self._adjacency]
        g.degraded = self.degraded
        return g

    def to_sparse(self) -> csr_matrix:
        """邻接矩阵（scipy 稀疏格式），只包含存在的边"""
        n = len(self._vertices)
        rows, cols, data = [], [], []
        for i, adj in enumerate(self._adjacency):
            for j, w in adj.items():
                rows.append(i)
                cols.append(j)
                # 零权边在稀疏矩阵中会被当作无边，用极小值代替
                data.append(w if w > 0 else np.finfo(float).tiny)
        return csr_matrix((data, (rows, cols)), shape=(n, n))

    def connected_components(self) -> Tuple[int, np.ndarray]:
        """连通分量 (数量, 每个顶点的分量标签)"""
        if not self._vertices:
            return 0, np.zeros(0, dtype=int)
        count, labels = connected_components(self.to_sparse(), directed=False)
        return int(count), labels

    def connected(self, a, b) -> bool:
        """两个已注册点是否在同一连通分量"""
        _, labels = self.connected_components()
        return bool(labels[self.descriptor(a)] == labels[self.descriptor(b)])

    def path_cost(self, path) -> float:
        """
        沿路网累计路径边权；路径中相邻点之间没有边时返回 inf

        :param path: 由顶点组成的路径
        """
        total = 0.0
        for a, b in zip(path, path[1:]):
            w = self.weight(self.descriptor(a), self.descriptor(b))
            if w < 0:
                return math.inf
            total += w
        return total

