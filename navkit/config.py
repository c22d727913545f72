"""
配置加载：JSON 配置文件 → 规划器

配置中每个策略槽是一个 {"type": 名称, ...构造参数} 块，例如：
{
    "planner": {
        "roadmap_builder": {"type": "probabilistic", "n": 200, "seed": 7},
        "graph_search": {"type": "a_star", "heuristic": "euclidean"},
        "interpolator": {"type": "bug2", "step": 1.0}
    },
    "logging": {"level": "DEBUG"}
}
"""
import copy
import json
import logging

from navkit.common.errors import ConfigurationError
from navkit.common.log import setup_logger
from navkit.planning.graph_search import make_search
from navkit.planning.interpolator import make_interpolator
from navkit.planning.planner import Planner, PlannerConfig
from navkit.planning.roadmap_builder import make_builder

logger = logging.getLogger(__name__)

# 默认配置，可通过 JSON 文件覆盖
default_config = {
    "planner": {
        "roadmap_builder": {"type": "none"},
        "graph_search": {"type": "none"},
        "interpolator": {"type": "none"},
    },
    "logging": {"level": "INFO"},
}

SLOT_FACTORIES = {
    "roadmap_builder": make_builder,
    "graph_search": make_search,
    "interpolator": make_interpolator,
}


def load_config(path):
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"配置文件 {path} 不是合法的 JSON: {e}") from e


def merge_config(base: dict, override: dict) -> dict:
    """递归合并配置，override 中的值优先，不修改输入"""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _build_slot(slot: str, block) -> object:
    if isinstance(block, str):
        block = {"type": block}
    if not isinstance(block, dict) or "type" not in block:
        raise ConfigurationError(f"{slot} 配置必须是包含 'type' 的字典: {block!r}")
    params = {k: v for k, v in block.items() if k != "type"}
    return SLOT_FACTORIES[slot](block["type"], **params)


def build_planner_config(cfg: dict) -> PlannerConfig:
    """
    从配置字典创建 PlannerConfig

    :param cfg: 完整配置或其中的 "planner" 部分
    :raises ConfigurationError: 策略名称未知、参数错误或存在未知的槽
    """
    planner_cfg = cfg.get("planner", cfg)
    unknown = set(planner_cfg) - set(SLOT_FACTORIES)
    if unknown:
        raise ConfigurationError(f"未知的规划器配置项: {sorted(unknown)}")
    slots = {slot: _build_slot(slot, block) for slot, block in planner_cfg.items()}
    return PlannerConfig(**slots)


def setup_from_config(path=None, overrides: dict = None) -> Planner:
    """
    读取配置（可选文件 + 覆盖项），初始化日志并返回规划器
    """
    cfg = default_config
    if path:
        cfg = merge_config(cfg, load_config(path))
    if overrides:
        cfg = merge_config(cfg, overrides)

    setup_logger(cfg.get("logging", {}).get("level", "INFO"))
    config = build_planner_config(cfg)
    logger.info("规划器配置: %s", config.describe())
    return Planner(config)
