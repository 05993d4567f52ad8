"""
数据库适配器模块
屏蔽数据仓库方言差异：驱动、连接参数、筛选谓词渲染和访问范围语句
"""
from .base import DatabaseAdapter
from .factory import DatabaseAdapterFactory
from .postgresql import PostgreSQLAdapter
from .sqlite import SQLiteAdapter

__all__ = [
    'DatabaseAdapter',
    'DatabaseAdapterFactory',
    'PostgreSQLAdapter',
    'SQLiteAdapter',
]
