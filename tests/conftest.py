import numpy as np
import pytest

from navkit.common.types import Workspace
from navkit.mapping.occupancy_grid import OccupancyMap
from navkit.planning.planner import Planner, PlannerConfig


def assert_path_free(occupancy, path):
    """路径上每个点都在自由空间"""
    for p in path:
        assert occupancy.is_free(p), f"路径点 {p} 不在自由空间"


def assert_segments_visible(occupancy, path):
    """相邻路径点之间都有视线"""
    for a, b in zip(path, path[1:]):
        assert occupancy.line_of_sight(a, b), f"{a} → {b} 穿过障碍"


@pytest.fixture
def free_map():
    """Return a 10×10 obstacle-free map"""
    return OccupancyMap(np.zeros((10, 10), dtype=int))


@pytest.fixture
def open_map():
    """Return a 30×30 obstacle-free map"""
    return OccupancyMap(np.zeros((30, 30), dtype=int))


@pytest.fixture
def wall_map():
    """Return a 20×20 map split by a solid wall at column 10"""
    return OccupancyMap.from_rectangles(20, 20, [(10, 0, 10, 19)])


@pytest.fixture
def block_map():
    """Return a 20×20 map with one rectangular obstacle between (2,10) and (17,10)"""
    return OccupancyMap.from_rectangles(20, 20, [(8, 6, 11, 13)])


@pytest.fixture
def room_map():
    """Return a 30×30 map with a central square obstacle"""
    return OccupancyMap.from_rectangles(30, 30, [(12, 12, 17, 17)])


@pytest.fixture
def funnel_map():
    """Return a mirror-symmetric 41×21 corridor with an obstacle centred on row 10"""
    return OccupancyMap.from_rectangles(41, 21, [
        (0, 0, 40, 0),
        (0, 20, 40, 20),
        (19, 8, 21, 12),
    ])


@pytest.fixture
def enclosed_goal_map():
    """Return a 20×20 map where (10,10) is walled in by a closed ring"""
    grid = np.zeros((20, 20), dtype=int)
    grid[8:13, 8:13] = 1
    grid[9:12, 9:12] = 0
    return OccupancyMap(grid)


@pytest.fixture
def make_planner():
    """Return a factory building a planner with a workspace already loaded"""
    def _make(occupancy, config=None):
        planner = Planner(config or PlannerConfig())
        planner.load_workspace(Workspace(occupancy))
        return planner
    return _make


@pytest.fixture
def alcove_map():
    """Return a 12×12 map whose corner pocket (9..11, 9..11) opens only through (11, 8)"""
    return OccupancyMap.from_rectangles(12, 12, [
        (8, 8, 10, 8),
        (8, 9, 8, 11),
    ])
