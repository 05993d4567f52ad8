"""
安全报表服务
整合依赖图加载、校验、编译、访问范围和脱敏，实现完整的报表运行流程
"""
import os
from typing import Any, Mapping, Optional, Tuple

from ..database import Database, get_database
from ..utils.logger import get_logger
from .anonymize_service import AnonymizeService
from .cache_service import CacheService, get_cache_service
from .database_connector import WarehouseConnector, get_warehouse_connector
from .dto import AuthUser, ColumnShape, ReportRunMeta, ReportRunResult
from .report_utils import shape_rows
from .schema_catalog import SchemaCatalogService
from .query_builder.catalog import CatalogSnapshot
from .query_builder.compiler import CompiledQuery, QueryCompiler
from .query_builder.graph import Graph
from .query_builder.graph_loader import GraphLoader
from .query_builder.validator import GraphValidator, ValidationResult
from .query_builder.vocabulary import is_safe_identifier

logger = get_logger(__name__)


class SecureReportService:
    """安全报表服务类"""

    def __init__(
        self,
        database: Database,
        connector: WarehouseConnector,
        cache: CacheService,
        schema_catalog: Optional[SchemaCatalogService] = None,
        anonymize_service: Optional[AnonymizeService] = None,
    ):
        """
        初始化安全报表服务

        Args:
            database: 元数据库实例
            connector: 数据仓库连接器
            cache: 缓存服务（依赖图快照）
            schema_catalog: 结构目录服务，为None时只做结构校验
            anonymize_service: 脱敏服务
        """
        self.database = database
        self.connector = connector
        self.cache = cache
        self.schema_catalog = schema_catalog
        self.anonymize = anonymize_service or AnonymizeService(database)
        self.loader = GraphLoader(database)
        self.validator = GraphValidator()
        self.compiler = QueryCompiler(adapter=connector.adapter, validator=self.validator)
        self.graph_ttl = int(os.getenv("GRAPH_CACHE_TTL", 60))

    def resolve_report_id(self, route: str) -> str:
        """路由 → 报表ID"""
        return self.loader.resolve_route(route)

    def load_graph(self, report_id: str) -> Graph:
        """
        获取报表的依赖图快照（按TTL缓存）

        Raises:
            ReportNotFoundError: 报表不存在或未启用
            GraphIntegrityError: base数据源数量不为1
        """
        return self.cache.get_or_load(
            f"graph:{report_id}",
            lambda: self.loader.load_active_graph(report_id),
            ttl=self.graph_ttl,
        )

    def invalidate_report(self, report_id: str) -> bool:
        """
        发布新的依赖图后调用，下一次请求会重新加载

        Returns:
            缓存中是否存在该报表的快照
        """
        removed = self.cache.delete(f"graph:{report_id}")
        logger.info(f"依赖图缓存已失效: report_id={report_id}, removed={removed}")
        return removed

    def _catalog(self) -> Optional[CatalogSnapshot]:
        if self.schema_catalog is None:
            return None
        return self.schema_catalog.get_snapshot()

    @staticmethod
    def natural_key_for(graph: Graph, catalog: Optional[CatalogSnapshot]) -> Tuple[str, ...]:
        """base表在结构目录中记录的主键列"""
        if catalog is None:
            return ()
        info = catalog.get_table(graph.base.schema_name, graph.base.table_name)
        if info is None or not info.primary_key:
            return ()
        if not all(is_safe_identifier(column) for column in info.primary_key):
            logger.info(
                f"base表 {info.schema_name}.{info.table_name} 的主键列不符合标识符语法，"
                f"不用于默认排序: {list(info.primary_key)}"
            )
            return ()
        return info.primary_key

    def validate_report(self, report_id: str) -> ValidationResult:
        """
        校验报表的依赖图（结构 + 存在性）

        Returns:
            ValidationResult（不抛出校验错误，由调用方决定如何展示）
        """
        graph = self.load_graph(report_id)
        return self.validator.validate(graph, self._catalog())

    def compile_report(
        self,
        report_id: str,
        param_values: Optional[Mapping[str, Any]] = None,
        strict_filters: bool = False,
    ) -> CompiledQuery:
        """
        编译报表

        Args:
            report_id: 报表ID
            param_values: 筛选值
            strict_filters: 是否对未知筛选参数报错

        Returns:
            CompiledQuery

        Raises:
            StructuralViolationError / SchemaDriftError: 依赖图校验失败
            GroupingMismatchError: 聚合字段与未分组字段混用
        """
        graph = self.load_graph(report_id)
        catalog = self._catalog()
        if catalog is not None:
            self.validator.validate(graph, catalog).raise_for_errors()
        return self.compiler.compile(
            graph,
            param_values,
            natural_key=self.natural_key_for(graph, catalog),
            strict_filters=strict_filters,
        )

    def run_report(
        self,
        route: str,
        param_values: Optional[Mapping[str, Any]],
        user: AuthUser,
        anonymize: bool = False,
    ) -> ReportRunResult:
        """
        在调用方的访问范围内运行报表

        完整流程：
        1. 路由解析为报表ID
        2. 加载依赖图快照，校验并编译
        3. 建立访问范围并回读校验（不一致立即中止，不读取任何数据）
        4. 执行查询并提交
        5. 按输出结构整理结果，应用PII脱敏

        Args:
            route: 报表路由
            param_values: 筛选值
            user: 已认证的调用方
            anonymize: 是否脱敏

        Returns:
            ReportRunResult
        """
        report_id = self.resolve_report_id(route)
        compiled = self.compile_report(report_id, param_values)

        with self.connector.scoped_connection(user) as connection:
            result = self.connector.execute_compiled(connection, compiled)

        rules = self.anonymize.get_pii_columns()
        data = shape_rows(result.data, compiled.output_shape)
        data = self.anonymize.anonymize_rows(data, rules, anonymize)

        logger.info(
            f"报表运行完成: report_id={report_id}, user={user.sis_user_id}, "
            f"rows={len(data)}, anonymized={anonymize}"
        )

        return ReportRunResult(
            data=data,
            columns=[ColumnShape(key=key, data_type=data_type) for key, data_type in compiled.output_shape],
            meta=ReportRunMeta(
                report_id=report_id,
                route=route,
                content_version=compiled.content_version,
                anonymized=anonymize,
                pii_columns=rules,
                ignored_filters=list(compiled.ignored_filters),
            ),
        )


# 全局安全报表服务实例
_secure_report_service = None


def get_secure_report_service() -> SecureReportService:
    """获取全局安全报表服务实例"""
    global _secure_report_service
    if _secure_report_service is None:
        connector = get_warehouse_connector()
        cache = get_cache_service()
        _secure_report_service = SecureReportService(
            database=get_database(),
            connector=connector,
            cache=cache,
            schema_catalog=SchemaCatalogService(connector, cache),
        )
    return _secure_report_service

