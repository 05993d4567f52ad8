"""
PostgreSQL数据库适配器
"""
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import text

from ..query_builder.vocabulary import FilterOperator
from .base import DatabaseAdapter

# 访问范围使用的会话变量（由行级安全策略读取）
SCOPE_USER_SETTING = "app.sis_user_id"
SCOPE_ADMIN_SETTING = "app.is_admin"


class PostgreSQLAdapter(DatabaseAdapter):
    """PostgreSQL数据库适配器"""

    def get_driver_name(self) -> str:
        """获取PostgreSQL驱动名称"""
        return "postgresql+psycopg2"

    def get_connect_args(self) -> Dict[str, Any]:
        """获取PostgreSQL连接参数"""
        return {}

    def render_filter_predicate(self, expression: str, operator: FilterOperator, placeholder: str) -> str:
        """in 绑定数组参数，ilike 原生支持"""
        if operator is FilterOperator.IN:
            return f"{expression} = ANY({placeholder})"
        if operator is FilterOperator.ILIKE:
            return f"{expression} ILIKE {placeholder}"
        return super().render_filter_predicate(expression, operator, placeholder)

    def bind_filter_value(self, operator: FilterOperator, value: Any) -> Any:
        # psycopg2 将 list 适配为 ARRAY
        if operator is FilterOperator.IN:
            return list(value) if isinstance(value, (list, tuple)) else [value]
        return value

    @property
    def supports_access_scope(self) -> bool:
        return True

    def establish_access_scope(self, connection, sis_user_id: str, is_admin: bool) -> None:
        """set_config(..., true) 只在当前事务内生效，事务结束自动失效"""
        connection.execute(
            text(f"SELECT set_config('{SCOPE_USER_SETTING}', :value, true)"),
            {"value": str(sis_user_id)},
        )
        connection.execute(
            text(f"SELECT set_config('{SCOPE_ADMIN_SETTING}', :value, true)"),
            {"value": "true" if is_admin else "false"},
        )

    def read_access_scope(self, connection) -> Tuple[Optional[str], Optional[str]]:
        row = connection.execute(
            text(
                f"SELECT current_setting('{SCOPE_USER_SETTING}', true) AS sis_user_id, "
                f"current_setting('{SCOPE_ADMIN_SETTING}', true) AS is_admin"
            )
        ).first()
        if row is None:
            return None, None
        return row[0], row[1]

    def get_db_type(self) -> str:
        """返回数据库类型"""
        return "postgresql"
