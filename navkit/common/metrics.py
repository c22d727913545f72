"""
距离度量：欧氏、曼哈顿、切比雪夫

A* 搜索用它们作为启发函数。路网边权统一使用欧氏距离，
因此只有欧氏距离和切比雪夫距离是可采纳（不高估）的启发函数。
"""
import math
from typing import Callable, Dict, Sequence

from navkit.common.errors import ConfigurationError

Metric = Callable[[Sequence[float], Sequence[float]], float]


def euclidean(a, b) -> float:
    """sqrt((x2-x1)^2 + (y2-y1)^2)"""
    return math.hypot(b[0] - a[0], b[1] - a[1])


def manhattan(a, b) -> float:
    """|x2-x1| + |y2-y1|"""
    return abs(b[0] - a[0]) + abs(b[1] - a[1])


def chebyshev(a, b) -> float:
    """max(|x2-x1|, |y2-y1|)"""
    return max(abs(b[0] - a[0]), abs(b[1] - a[1]))


METRICS: Dict[str, Metric] = {
    'euclidean': euclidean,
    'manhattan': manhattan,
    'chebyshev': chebyshev,
}


def get_metric(name: str) -> Metric:
    """按名称取度量函数，未知名称属于配置错误"""
    try:
        return METRICS[name]
    except KeyError:
        raise ConfigurationError(
            f"未知的距离度量: {name!r}，可选 {sorted(METRICS)}"
        ) from None


def path_length(path) -> float:
    """路径总长度（相邻航点欧氏距离之和），空路径或单点路径为 0"""
    return sum(euclidean(path[i], path[i + 1]) for i in range(len(path) - 1))
