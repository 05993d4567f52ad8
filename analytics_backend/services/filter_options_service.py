"""
筛选器候选值服务

根据筛选器目录中的 table/column 读取候选值（SELECT DISTINCT），
查询与报表一样在调用方的访问范围内执行。
"""
from typing import Any, List, Tuple

from sqlalchemy import text

from ..database import Database, get_database
from ..models.report import Filter
from ..utils.logger import get_logger
from .database_connector import WarehouseConnector, get_warehouse_connector
from .dto import AuthUser
from .query_builder.errors import FilterNotFoundError, FilterSourceError
from .query_builder.vocabulary import is_safe_identifier

logger = get_logger(__name__)


class FilterOptionsService:
    """筛选器候选值服务类"""

    def __init__(self, database: Database, connector: WarehouseConnector):
        self.database = database
        self.connector = connector

    def resolve_source(self, filter_code: str) -> Tuple[str, str, str]:
        """
        获取筛选器的取值来源

        Returns:
            (schema, table, column)

        Raises:
            FilterNotFoundError: 筛选器不存在
            FilterSourceError: table 不是 schema.table 形式，或含有不合法的标识符
        """
        with self.database.get_session() as session:
            row = session.get(Filter, filter_code)
            if row is None:
                raise FilterNotFoundError(filter_code)
            qualified_table, column = row.table, row.column

        if not qualified_table or not column:
            raise FilterSourceError("筛选器没有配置 table/column", filter_code)

        schema_name, _, table_name = qualified_table.partition(".")
        for identifier in (schema_name, table_name, column):
            if not is_safe_identifier(identifier):
                raise FilterSourceError(
                    f"取值来源不是合法标识符: {qualified_table}.{column}", filter_code
                )
        return schema_name, table_name, column

    def get_options(self, filter_code: str, user: AuthUser) -> List[Any]:
        """
        获取筛选器的候选值（去重、升序、不含NULL）

        Args:
            filter_code: 筛选器代码
            user: 已认证的调用方

        Returns:
            候选值列表
        """
        schema_name, table_name, column = self.resolve_source(filter_code)
        sql = (
            f"SELECT DISTINCT {column} AS value FROM {schema_name}.{table_name} "
            f"WHERE {column} IS NOT NULL ORDER BY {column}"
        )

        with self.connector.scoped_connection(user) as connection:
            rows = connection.execute(text(sql)).fetchall()

        values = [row[0] for row in rows]
        logger.info(
            f"筛选器候选值: filter_code={filter_code}, user={user.sis_user_id}, count={len(values)}"
        )
        return values


# 全局筛选器候选值服务实例
_filter_options_service = None


def get_filter_options_service() -> FilterOptionsService:
    """获取全局筛选器候选值服务实例"""
    global _filter_options_service
    if _filter_options_service is None:
        _filter_options_service = FilterOptionsService(get_database(), get_warehouse_connector())
    return _filter_options_service
