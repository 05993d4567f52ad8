"""
SQLite数据库适配器

用于元数据库和本地测试。SQLite没有会话变量，不支持访问范围。
"""
import json
from typing import Any, Dict

from ..query_builder.vocabulary import FilterOperator
from .base import DatabaseAdapter


class SQLiteAdapter(DatabaseAdapter):
    """SQLite数据库适配器"""

    def get_driver_name(self) -> str:
        """获取SQLite驱动名称"""
        return "sqlite"

    def get_connect_args(self) -> Dict[str, Any]:
        """获取SQLite连接参数"""
        return {"check_same_thread": False}

    def render_filter_predicate(self, expression: str, operator: FilterOperator, placeholder: str) -> str:
        """in 通过 json_each 展开数组参数；SQLite 的 LIKE 对ASCII不区分大小写"""
        if operator is FilterOperator.IN:
            return f"{expression} IN (SELECT value FROM json_each({placeholder}))"
        if operator is FilterOperator.ILIKE:
            return f"{expression} LIKE {placeholder}"
        return super().render_filter_predicate(expression, operator, placeholder)

    def bind_filter_value(self, operator: FilterOperator, value: Any) -> Any:
        if operator is FilterOperator.IN:
            values = list(value) if isinstance(value, (list, tuple)) else [value]
            return json.dumps(values, ensure_ascii=False)
        return value

    def get_db_type(self) -> str:
        """返回数据库类型"""
        return "sqlite"
