"""
规划流水线的异常与警告定义

两类失败严格区分：
1. 领域失败（无路径 / 导航停滞）：返回空路径，不抛异常
2. 编程或配置失败：抛出下面的异常，立即中止当前操作
"""


class PlanningError(Exception):
    """规划相关异常的基类"""
    pass


class MapError(PlanningError):
    """占据栅格地图格式不正确"""
    pass


class VertexLookupError(PlanningError):
    """查询的点没有注册为路网顶点"""
    pass


class ConfigurationError(PlanningError):
    """策略选择或参数配置错误"""
    pass


class PlannerError(PlanningError):
    """规划器使用顺序错误，例如未加载工作空间就求解"""
    pass


class RoadmapConnectivityWarning(UserWarning):
    """路网构建达到迭代上限仍未连通，返回的是尽力而为的结果"""
    pass
