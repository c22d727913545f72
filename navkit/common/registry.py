from typing import Any, Dict, Mapping

from navkit.common.errors import ConfigurationError


def create(registry: Mapping[str, type], family: str, name: str, params: Dict[str, Any]):
    """
    按名称实例化策略对象

    :param registry: 名称 → 策略类
    :param family: 策略族名称，仅用于报错信息
    :param name: 策略名称
    :param params: 构造参数
    :raises ConfigurationError: 名称未知或参数不被接受
    """
    try:
        cls = registry[name]
    except (KeyError, TypeError):
        raise ConfigurationError(
            f"未知的{family}: {name!r}，可选 {sorted(registry)}"
        ) from None
    try:
        return cls(**params)
    except TypeError as e:
        raise ConfigurationError(f"{family} {name!r} 参数错误: {e}") from e
