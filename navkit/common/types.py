"""公共数据类型定义

这个模块定义了整个规划流水线中共用的数据结构，主要用于：
1. 工作空间中点和路径的统一表示
2. 规划问题（起点、终点）的描述
3. 路网构建、图搜索、局部导航之间的数据交换
"""

from dataclasses import dataclass
from typing import List, NamedTuple, Union

from navkit.mapping.occupancy_grid import OccupancyMap


class Point(NamedTuple):
    """2D 点（栅格坐标）

    主要用于：
    1. 路网顶点，按精确相等判断是否为同一顶点
    2. 路径中的航点
    3. 局部导航器的位置

    x 对应栅格列号，y 对应栅格行号，可以是整数也可以是实数。
    与普通元组兼容：``Point(1, 2) == (1, 2)``。
    """
    x: Union[int, float]
    y: Union[int, float]


# 从起点到终点（含两端）的有序点序列，空列表表示“没有找到路径”
Path = List[Point]


def as_point(p) -> Point:
    """把 (x, y) 形式的输入统一转换为 Point"""
    if isinstance(p, Point):
        return p
    x, y = p
    return Point(x, y)


@dataclass
class ProblemDefinition:
    """规划问题：起点和终点

    内部不做校验，调用者需保证两点位于自由空间。

    使用示例：
    ```python
    pdef = ProblemDefinition(start=Point(0, 0), goal=Point(9, 9))
    ```
    """
    start: Point
    goal: Point

    def __post_init__(self):
        self.start = as_point(self.start)
        self.goal = as_point(self.goal)


@dataclass
class Workspace:
    """工作空间：每个会话加载一次，加载后只读"""
    map: OccupancyMap
