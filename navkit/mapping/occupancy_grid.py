import math
from typing import Iterable, Optional, Sequence, Tuple

import numpy as np
from scipy import ndimage as ndi

from navkit.common.errors import MapError

# 8 邻域连通结构，用于自由空间区域标记
EIGHT_CONNECTED = np.ones((3, 3), dtype=bool)


def _round(v: float) -> int:
    """四舍五入到最近的栅格（0.5 向上取整，与线段遍历保持一致）"""
    return int(math.floor(v + 0.5))


def generate_occupancy_grid(map_size, obstacles: Iterable[Sequence[float]], grid_size: float = 1.0):
    """
    占用栅格地图生成：将矩形障碍物离散化为二维导航地图

    算法原理：

    【栅格化方法】
    • 将连续的二维工作空间离散化为栅格网格
    • 每个栅格代表一个正方形区域：边长 = grid_size
    • 坐标映射：世界坐标 (x, y) → 栅格坐标 (列 x/grid_size, 行 y/grid_size)

    【占用判断策略】
    • 空闲栅格：grid[row, col] = 0
    • 占用栅格：grid[row, col] = 1，栅格中心落在某个障碍矩形内（含边界）

    【坐标系统】
    • 输入障碍：(x_min, y_min, x_max, y_max) 世界坐标
    • 输出栅格：二维数组索引 [row, col]，row 对应 y，col 对应 x
    • 边界处理：超出地图范围的部分被裁剪

    :param map_size: 地图物理尺寸，[宽度, 高度]
    :param obstacles: 障碍矩形列表，每项 (x_min, y_min, x_max, y_max)
    :param grid_size: 栅格分辨率，单位/格
    :return: 占用栅格地图，二维 numpy 数组，0=空闲，1=占用

    使用示例：
    ```python
    # 20×20 地图，中间一块 4×8 的障碍
    grid = generate_occupancy_grid([20, 20], [(8, 6, 11, 13)])
    ```
    """
    # 计算栅格地图的行列数：物理尺寸除以栅格大小
    grid_cols = int(map_size[0] // grid_size)
    grid_rows = int(map_size[1] // grid_size)
    if grid_cols <= 0 or grid_rows <= 0:
        raise MapError(f"地图尺寸无效: {map_size}")

    # 初始化占用栅格：全部设为0（空闲状态）
    grid = np.zeros((grid_rows, grid_cols), dtype=np.uint8)

    for x_min, y_min, x_max, y_max in obstacles:
        # 栅格中心在矩形内的行列范围
        c_lo = max(int(math.ceil(x_min / grid_size)), 0)
        c_hi = min(int(math.floor(x_max / grid_size)), grid_cols - 1)
        r_lo = max(int(math.ceil(y_min / grid_size)), 0)
        r_hi = min(int(math.floor(y_max / grid_size)), grid_rows - 1)
        if c_lo > c_hi or r_lo > r_hi:
            continue
        grid[r_lo:r_hi + 1, c_lo:c_hi + 1] = 1

    return grid


class OccupancyMap:
    """
    占据栅格地图：自由/占用表示 + 局部几何查询

    功能概述：
    • is_free：点是否在边界内且未被占用
    • distance_to_obstacle：到最近障碍的距离（距离变换预计算，O(1) 查询）
    • line_of_sight：两点连线是否完全位于自由空间
    • segment_clearance：线段经过栅格的最小净空

    坐标约定：点 (x, y) 中 x 为列号、y 为行号，实数坐标按最近栅格取整。
    地图构造后只读，所有查询都是纯函数。
    """

    def __init__(self, grid):
        """
        :param grid: 二维数组，非零表示障碍，零表示自由
        :raises MapError: 输入不是非空二维数组时
        """
        grid = np.asarray(grid)
        if grid.ndim != 2 or grid.size == 0:
            raise MapError(f"栅格地图必须是非空二维数组, 实际形状 {grid.shape}")

        self.grid = np.array(grid != 0, dtype=bool)
        self.grid.setflags(write=False)
        self.height, self.width = self.grid.shape
        self.has_obstacles = bool(self.grid.any())

        # 距离变换：每个自由栅格到最近占用栅格的欧氏距离，占用栅格为 0
        if self.has_obstacles:
            dt = ndi.distance_transform_edt(~self.grid)
        else:
            dt = np.full(self.grid.shape, np.inf)
        self.dt = np.asarray(dt, dtype=float)
        self.dt.setflags(write=False)

        self._regions: Optional[Tuple[np.ndarray, int]] = None

    @classmethod
    def from_rectangles(cls, width: int, height: int, rectangles=()) -> "OccupancyMap":
        """由矩形障碍列表直接构造地图（单位栅格）"""
        return cls(generate_occupancy_grid([width, height], rectangles, grid_size=1.0))

    @property
    def shape(self) -> Tuple[int, int]:
        return self.grid.shape

    @property
    def obstacle_ratio(self) -> float:
        """障碍栅格占比"""
        return float(self.grid.mean())

    def cell(self, p) -> Tuple[int, int]:
        """点所在栅格 (列, 行)"""
        return _round(p[0]), _round(p[1])

    def in_bounds(self, p) -> bool:
        col, row = self.cell(p)
        return 0 <= col < self.width and 0 <= row < self.height

    def is_free(self, p) -> bool:
        """点在边界内且所在栅格未被占用"""
        col, row = self.cell(p)
        if not (0 <= col < self.width and 0 <= row < self.height):
            return False
        return not self.grid[row, col]

    def distance_to_obstacle(self, p) -> float:
        """
        到最近占用栅格的距离（栅格单位）

        • 整数点直接读取距离变换
        • 实数点在相邻四个栅格之间双线性插值，保证势场梯度连续
        • 越界返回 0，地图中没有任何障碍时返回 inf
        """
        if not self.in_bounds(p):
            return 0.0
        if not self.has_obstacles:
            return math.inf

        x, y = float(p[0]), float(p[1])
        if x.is_integer() and y.is_integer():
            return float(self.dt[int(y), int(x)])

        fx, fy = math.floor(x), math.floor(y)
        tx, ty = x - fx, y - fy
        c0 = min(max(fx, 0), self.width - 1)
        c1 = min(max(fx + 1, 0), self.width - 1)
        r0 = min(max(fy, 0), self.height - 1)
        r1 = min(max(fy + 1, 0), self.height - 1)

        top = (1.0 - tx) * self.dt[r0, c0] + tx * self.dt[r0, c1]
        bottom = (1.0 - tx) * self.dt[r1, c0] + tx * self.dt[r1, c1]
        return float((1.0 - ty) * top + ty * bottom)

    def clearance_gradient(self, p) -> Tuple[float, float]:
        """
        距离变换在点所在栅格的梯度 (d/dx, d/dy)，指向远离障碍的方向

        中心差分，边界处退化为单侧差分。没有障碍时返回 (0, 0)。
        """
        if not self.has_obstacles or not self.in_bounds(p):
            return 0.0, 0.0
        col, row = self.cell(p)
        cl, cr = max(col - 1, 0), min(col + 1, self.width - 1)
        rt, rb = max(row - 1, 0), min(row + 1, self.height - 1)
        gx = (self.dt[row, cr] - self.dt[row, cl]) / max(cr - cl, 1)
        gy = (self.dt[rb, col] - self.dt[rt, col]) / max(rb - rt, 1)
        return float(gx), float(gy)

    def traverse(self, p, q) -> Tuple[np.ndarray, np.ndarray]:
        """
        线段离散遍历（DDA）：返回从 p 到 q 依次经过的栅格列号和行号

        步数取列差和行差中的较大者，每一步在两个方向上按比例前进并取整，
        结果与 Bresenham 直线一致（端点包含在内）。
        """
        c0, r0 = self.cell(p)
        c1, r1 = self.cell(q)
        n = max(abs(c1 - c0), abs(r1 - r0)) + 1
        cols = np.floor(np.linspace(c0, c1, n) + 0.5).astype(int)
        rows = np.floor(np.linspace(r0, r1, n) + 0.5).astype(int)
        return cols, rows

    def _inside(self, cols: np.ndarray, rows: np.ndarray) -> bool:
        return bool(
            (cols >= 0).all() and (cols < self.width).all()
            and (rows >= 0).all() and (rows < self.height).all()
        )

    def line_of_sight(self, p, q) -> bool:
        """两点连线经过的每个栅格都在边界内且空闲时为 True，任一占用即为 False"""
        cols, rows = self.traverse(p, q)
        if not self._inside(cols, rows):
            return False
        return not self.grid[rows, cols].any()

    def segment_clearance(self, p, q) -> float:
        """线段经过栅格的最小距离变换值，越界为 0"""
        cols, rows = self.traverse(p, q)
        if not self._inside(cols, rows):
            return 0.0
        return float(self.dt[rows, cols].min())

    def free_cells(self) -> np.ndarray:
        """所有自由栅格坐标，N×2 数组，每行 (x, y)，按行优先顺序排列"""
        return np.argwhere(~self.grid)[:, ::-1]

    def free_regions(self) -> Tuple[np.ndarray, int]:
        """
        自由空间 8 连通区域标记

        :return: (标签数组, 区域数)，标签 0 表示障碍，区域编号从 1 开始
        """
        if self._regions is None:
            labels, count = ndi.label(~self.grid, structure=EIGHT_CONNECTED)
            self._regions = (labels, int(count))
        return self._regions

    def region_of(self, p) -> int:
        """点所在自由区域编号，障碍或越界返回 0"""
        if not self.is_free(p):
            return 0
        labels, _ = self.free_regions()
        col, row = self.cell(p)
        return int(labels[row, col])
