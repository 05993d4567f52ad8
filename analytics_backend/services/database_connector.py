"""
数据仓库连接器
管理数据仓库连接池、访问范围和编译后查询的执行
"""
import os
import re
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.pool import QueuePool, StaticPool

from ..database import get_database
from ..utils.logger import (
    get_logger,
    log_database_connection_error,
    log_security_incident,
    log_sql_error,
    mask_url_password,
)
from .database_adapters import DatabaseAdapter, DatabaseAdapterFactory
from .dto import AuthUser
from .query_builder.catalog import CatalogSnapshot, TableInfo
from .query_builder.compiler import CompiledQuery
from .query_builder.errors import AccessScopeMismatchError

logger = get_logger(__name__)

_POSITIONAL_PLACEHOLDER = re.compile(r"\$(\d+)")


class QueryResult:
    """查询结果"""
    def __init__(self, data: List[Dict[str, Any]], columns: List[str]):
        self.data = data
        self.columns = columns


def to_named_binds(sql: str, params: Sequence[Any]) -> Tuple[str, Dict[str, Any]]:
    """
    将 $1..$n 占位符转换为SQLAlchemy命名参数

    Args:
        sql: 编译后的SQL
        params: 位置参数

    Returns:
        (SQL文本, 参数字典)，如 ("... = :p_1", {"p_1": "2024"})

    Raises:
        ValueError: 占位符编号超出参数个数
    """
    def replace(match):
        index = int(match.group(1))
        if index < 1 or index > len(params):
            raise ValueError(f"占位符 ${index} 没有对应的参数")
        return f":p_{index}"

    converted = _POSITIONAL_PLACEHOLDER.sub(replace, sql)
    return converted, {f"p_{i}": value for i, value in enumerate(params, start=1)}


class WarehouseConnector:
    """数据仓库连接器类"""

    def __init__(self, db_url: Optional[str] = None, db_type: Optional[str] = None,
                 engine: Optional[Engine] = None):
        """
        初始化数据仓库连接器

        Args:
            db_url: 数据仓库URL，为None时读取环境变量 WAREHOUSE_DB_URL（未设置时与元数据库相同）
            db_type: 数据库类型，为None时读取环境变量 WAREHOUSE_DB_TYPE 或根据URL推断
            engine: 已创建的Engine（测试使用）
        """
        if db_url is None:
            db_url = os.getenv("WAREHOUSE_DB_URL") or get_database().db_url
        db_type = db_type or os.getenv("WAREHOUSE_DB_TYPE")

        self.adapter: DatabaseAdapter = (
            DatabaseAdapterFactory.get_adapter(db_type) if db_type
            else DatabaseAdapterFactory.for_url(db_url)
        )
        self.db_url = db_url

        if engine is None:
            engine = self._create_engine(db_url)
        self.engine = engine

    def _create_engine(self, db_url: str) -> Engine:
        connection_string = self.adapter.normalize_url(db_url)
        connect_args = self.adapter.get_connect_args()
        try:
            if connection_string in ("sqlite://", "sqlite:///:memory:"):
                engine = create_engine(connection_string, poolclass=StaticPool, connect_args=connect_args)
            else:
                engine = create_engine(
                    connection_string,
                    poolclass=QueuePool,
                    pool_size=int(os.getenv("WAREHOUSE_DB_POOL_SIZE", 5)),
                    max_overflow=10,
                    pool_timeout=30,
                    pool_recycle=3600,
                    pool_pre_ping=True,
                    connect_args=connect_args,
                )
        except Exception as e:
            log_database_connection_error(logger, db_url, e)
            raise

        logger.info(f"创建数据仓库连接: {mask_url_password(connection_string)} ({self.adapter.get_db_type()})")
        return engine

    @contextmanager
    def scoped_connection(self, user: AuthUser) -> Iterator[Connection]:
        """
        获取建立了访问范围的连接

        一个请求对应一个事务：建立访问范围 → 回读校验 → 执行查询 → 提交。
        访问范围只在该事务内有效，任何异常都会回滚并归还连接。

        Args:
            user: 已认证的调用方

        Yields:
            已开启事务、访问范围已校验的连接

        Raises:
            AccessScopeMismatchError: 回读的访问范围与调用方不一致
        """
        with self.engine.connect() as connection:
            with connection.begin():
                self.adapter.establish_access_scope(connection, user.sis_user_id, user.is_admin)
                self.assert_access_scope(connection, user)
                yield connection

    def assert_access_scope(self, connection: Connection, user: AuthUser) -> None:
        """
        回读并校验当前事务的访问范围

        Raises:
            AccessScopeMismatchError: 用户ID缺失或不一致，或管理员标记不一致
        """
        raw_user_id, raw_is_admin = self.adapter.read_access_scope(connection)
        scoped_user_id = str(raw_user_id or "").strip()
        scoped_is_admin = str(raw_is_admin or "").strip() == "true"
        context = {
            "sis_user_id": user.sis_user_id,
            "is_admin": user.is_admin,
            "scoped_sis_user_id": scoped_user_id,
            "scoped_is_admin": scoped_is_admin,
        }

        if not scoped_user_id:
            detail = "访问范围缺失: app.sis_user_id 未设置"
        elif scoped_user_id != str(user.sis_user_id):
            detail = "访问范围不一致: app.sis_user_id 与当前用户不符"
        elif scoped_is_admin != bool(user.is_admin):
            detail = "访问范围不一致: app.is_admin 与当前用户不符"
        else:
            return

        log_security_incident(logger, detail, context)
        raise AccessScopeMismatchError(detail)

    def execute_compiled(self, connection: Connection, compiled: CompiledQuery) -> QueryResult:
        """
        在给定连接上执行编译后的查询

        Args:
            connection: 访问范围已校验的连接
            compiled: 编译结果

        Returns:
            QueryResult对象
        """
        sql, bind_params = to_named_binds(compiled.text, compiled.params)
        logger.debug(
            f"准备执行报表查询:\n"
            f"  报表: {compiled.report_id}\n"
            f"  版本: {compiled.content_version}\n"
            f"  SQL: {sql[:200]}{'...' if len(sql) > 200 else ''}"
        )
        try:
            result = connection.execute(text(sql), bind_params)
            columns = list(result.keys())
            data = [dict(zip(columns, row)) for row in result.fetchall()]
        except Exception as e:
            log_sql_error(logger, compiled.text, compiled.report_id, e, compiled.params)
            raise

        logger.info(
            f"报表查询成功: report_id={compiled.report_id}, "
            f"rows={len(data)}, columns={len(columns)}"
        )
        return QueryResult(data=data, columns=columns)

    def run_compiled(self, compiled: CompiledQuery, user: AuthUser) -> QueryResult:
        """在调用方的访问范围内执行编译后的查询"""
        with self.scoped_connection(user) as connection:
            return self.execute_compiled(connection, compiled)

    def get_structural_catalog(self, schemas: Sequence[str]) -> CatalogSnapshot:
        """
        读取数据仓库的结构目录快照

        Args:
            schemas: 需要读取的schema列表

        Returns:
            CatalogSnapshot
        """
        inspector = inspect(self.engine)
        existing = set(inspector.get_schema_names())
        present = [schema for schema in schemas if schema in existing]

        tables: List[TableInfo] = []
        for schema in present:
            kinds = [("table", inspector.get_table_names(schema=schema))]
            kinds.append(("view", inspector.get_view_names(schema=schema)))
            try:
                kinds.append(("materialized_view", inspector.get_materialized_view_names(schema=schema)))
            except NotImplementedError:
                pass

            for kind, names in kinds:
                for name in names:
                    columns = {
                        column["name"]: str(column["type"])
                        for column in inspector.get_columns(name, schema=schema)
                    }
                    primary_key: Tuple[str, ...] = ()
                    if kind == "table":
                        constraint = inspector.get_pk_constraint(name, schema=schema) or {}
                        primary_key = tuple(constraint.get("constrained_columns") or ())
                    tables.append(
                        TableInfo(
                            schema_name=schema,
                            table_name=name,
                            kind=kind,
                            columns=columns,
                            primary_key=primary_key,
                        )
                    )

        snapshot = CatalogSnapshot.from_tables(
            tables,
            schemas=present,
            loaded_at=datetime.now(timezone.utc).isoformat(),
        )
        logger.info(f"读取结构目录成功: schemas={present}, tables={len(tables)}")
        return snapshot

    def get_pool_status(self) -> Dict[str, Any]:
        """获取连接池状态"""
        pool = self.engine.pool
        status = {"pool_class": type(pool).__name__}
        if isinstance(pool, QueuePool):
            status.update({
                "size": pool.size(),
                "checked_in": pool.checkedin(),
                "checked_out": pool.checkedout(),
                "overflow": pool.overflow(),
            })
        return status

    def dispose(self):
        """关闭连接池"""
        self.engine.dispose()
        logger.info("关闭数据仓库连接池")


# 全局数据仓库连接器实例
_warehouse_connector = None


def get_warehouse_connector() -> WarehouseConnector:
    """获取全局数据仓库连接器实例"""
    global _warehouse_connector
    if _warehouse_connector is None:
        _warehouse_connector = WarehouseConnector()
    return _warehouse_connector



def close_warehouse_connector():
    """关闭全局数据仓库连接器（应用关闭时调用）"""
    global _warehouse_connector
    if _warehouse_connector is not None:
        _warehouse_connector.dispose()
        _warehouse_connector = None
