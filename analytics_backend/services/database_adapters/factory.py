"""
数据库适配器工厂
根据数据库类型或连接URL选择适配器
"""
from typing import Dict, List, Type
from .base import DatabaseAdapter
from .postgresql import PostgreSQLAdapter
from .sqlite import SQLiteAdapter


class DatabaseAdapterFactory:
    """数据库适配器工厂类"""

    _adapters: Dict[str, Type[DatabaseAdapter]] = {
        "postgresql": PostgreSQLAdapter,
        "sqlite": SQLiteAdapter,
    }

    # URL scheme 别名
    _scheme_aliases: Dict[str, str] = {
        "postgres": "postgresql",
    }

    @classmethod
    def _canonical(cls, db_type: str) -> str:
        lowered = db_type.strip().lower()
        return cls._scheme_aliases.get(lowered, lowered)

    @classmethod
    def get_adapter(cls, db_type: str) -> DatabaseAdapter:
        """
        根据数据库类型获取适配器实例

        Args:
            db_type: 数据库类型，如 'postgresql', 'postgres', 'sqlite'

        Raises:
            ValueError: 不支持的数据库类型
        """
        adapter_class = cls._adapters.get(cls._canonical(db_type))
        if not adapter_class:
            raise ValueError(
                f"不支持的数据库类型: {db_type}。"
                f"支持的类型: {', '.join(cls._adapters.keys())}"
            )
        return adapter_class()

    @classmethod
    def for_url(cls, url: str) -> DatabaseAdapter:
        """
        根据连接URL的scheme推断适配器

        'postgresql+psycopg2://...' 和 'postgres://...' 都对应 PostgreSQL。
        """
        scheme = url.split("://", 1)[0]
        return cls.get_adapter(scheme.split("+", 1)[0])

    @classmethod
    def get_supported_types(cls) -> List[str]:
        return list(cls._adapters.keys())

    @classmethod
    def is_supported(cls, db_type: str) -> bool:
        return cls._canonical(db_type) in cls._adapters
