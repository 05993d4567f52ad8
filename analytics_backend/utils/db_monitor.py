"""
数据库连接池监控工具
"""
from typing import Dict, Any

from sqlalchemy.pool import QueuePool

from ..database import get_database


def describe_pool(pool) -> Dict[str, Any]:
    """
    获取单个连接池的统计信息

    StaticPool（内存SQLite）没有容量统计，只返回池类型。
    """
    if not isinstance(pool, QueuePool):
        return {"pool_class": type(pool).__name__, "status": "healthy"}

    return {
        "pool_class": type(pool).__name__,
        "pool_size": pool.size(),  # 连接池大小
        "checked_in": pool.checkedin(),  # 可用连接数
        "checked_out": pool.checkedout(),  # 正在使用的连接数
        "overflow": pool.overflow(),  # 溢出连接数
        "total_connections": pool.size() + pool.overflow(),  # 总连接数
        "status": "healthy" if pool.checkedin() > 0 or pool.checkedout() < pool.size() else "busy",
    }


def get_pool_status(connector=None) -> Dict[str, Any]:
    """
    获取元数据库和数据仓库的连接池状态

    Args:
        connector: 数据仓库连接器，为None时只返回元数据库

    Returns:
        包含连接池统计信息的字典
    """
    status = {"metadata": describe_pool(get_database().engine.pool)}
    if connector is not None:
        status["warehouse"] = describe_pool(connector.engine.pool)
    return status
