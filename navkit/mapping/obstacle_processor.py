import numpy as np
from scipy import ndimage as ndi
from sklearn.cluster import DBSCAN

from navkit.common.errors import ConfigurationError
from navkit.mapping.occupancy_grid import OccupancyMap

# 4 邻域结构：只要有一个上下左右邻居是自由栅格，障碍栅格就算边界
FOUR_CONNECTED = ndi.generate_binary_structure(2, 1)


class ObstacleProcessor:
    """
    障碍物边界处理核心模块

    功能概述：
    • 边界提取：从占据栅格中找出与自由空间相邻的障碍栅格（地图外框视为障碍）
    • 障碍聚类：使用DBSCAN对边界栅格聚类，识别独立障碍物
    • 多边形近似：按容差 eps 对每个障碍的边界抽稀，得到 Voronoi 站点

    算法特点：
    • 外框参与聚类：地图边界本身也是一个障碍，保证 Voronoi 图有界
    • 自适应聚类：DBSCAN自动确定障碍数量，8 邻接的边界栅格归为同一障碍
    • 容差可调：eps 越小边界拟合越紧，站点越多，Voronoi 计算越慢
    """
    def __init__(self, cluster_distance: float = 1.5, eps: float = 2.0):
        """
        初始化障碍物处理器

        参数说明：
        :param cluster_distance: DBSCAN聚类半径ε(栅格)
            - 1.5 覆盖对角相邻栅格，等价于 8 连通分量
            - 调大会把相距很近的障碍合并为一个
        :param eps: 多边形近似容差(栅格)
            - 每个 eps×eps 的方块内每个障碍只保留一个边界站点
            - 近似偏差不超过 eps·√2
        """
        if cluster_distance <= 0:
            raise ConfigurationError(f"cluster_distance 必须为正数: {cluster_distance}")
        if eps <= 0:
            raise ConfigurationError(f"eps 必须为正数: {eps}")
        self.cluster_distance = cluster_distance
        self.eps = eps

    def boundary_cells(self, occupancy: OccupancyMap) -> np.ndarray:
        """
        边界提取：与自由空间 4 邻接的障碍栅格

        地图四周补一圈障碍作为外框，外框坐标为 -1 或 width/height。

        :param occupancy: 占据栅格地图
        :return: N×2 数组，每行 (x, y)
        """
        padded = np.pad(occupancy.grid, 1, mode='constant', constant_values=True)
        interior = ndi.binary_erosion(padded, structure=FOUR_CONNECTED, border_value=1)
        boundary = padded & ~interior
        # argwhere 给出 (row, col)，转换为 (x, y) 并去掉补边偏移
        return np.argwhere(boundary)[:, ::-1].astype(float) - 1.0

    def cluster_obstacles(self, points: np.ndarray) -> np.ndarray:
        """
        障碍物聚类：使用DBSCAN对边界栅格进行密度聚类

        • eps=cluster_distance: 邻域半径
        • min_samples=1: 孤立的单个障碍栅格也是一个障碍，不存在噪声点

        :param points: 边界栅格，N×2 数组
        :return: 聚类标签，N 维数组，值≥0表示障碍编号
        """
        if len(points) == 0:
            return np.zeros(0, dtype=int)
        clustering = DBSCAN(eps=self.cluster_distance, min_samples=1).fit(points)
        return clustering.labels_

    def approximate_boundaries(self, points: np.ndarray, labels: np.ndarray):
        """
        多边形近似：每个障碍在每个 eps×eps 方块内只保留第一个边界点

        :return: (站点数组 M×2, 站点所属障碍标签 M)
        """
        if len(points) == 0:
            return points, labels
        if self.eps <= 1.0:
            return points, labels
        keys = np.column_stack([labels, np.floor(points / self.eps).astype(int)])
        _, first = np.unique(keys, axis=0, return_index=True)
        first.sort()
        return points[first], labels[first]

    def process(self, occupancy: OccupancyMap):
        """
        处理完整流水线：边界提取 → 障碍聚类 → 多边形近似

        :param occupancy: 占据栅格地图
        :return: (站点数组, 站点障碍标签, 障碍数量)
        """
        # 1. 边界提取：找出与自由空间接触的障碍栅格
        boundary = self.boundary_cells(occupancy)

        # 2. 障碍物聚类：识别独立的障碍物实体
        labels = self.cluster_obstacles(boundary)

        # 3. 多边形近似：按容差抽稀边界
        sites, site_labels = self.approximate_boundaries(boundary, labels)

        n_obstacles = int(labels.max()) + 1 if len(labels) else 0
        return sites, site_labels, n_obstacles
