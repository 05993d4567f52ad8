"""
血缘索引

报表与其读取的表/视图之间的关系，用于变更前的影响分析。
全部是对启用的依赖行和启用的报表的只读投影，停用一个数据源节点后
它立即从所有查询结果中消失。
"""
from typing import List, Optional

from sqlalchemy import and_, select

from ...database import Database, get_database
from ...models.dependency import ReportDependency, ReportDependencyJoin
from ...models.report import Report
from ...utils.logger import get_logger
from ..dto import DependencyDetailRow, ReportReference, TableUsageRow
from .graph import SourceNode
from .graph_loader import to_source_node

logger = get_logger(__name__)


class LineageService:
    """血缘查询服务"""

    def __init__(self, database: Database):
        """
        初始化血缘查询服务

        Args:
            database: 元数据库实例
        """
        self.database = database

    def _active_dependencies(self):
        return (
            select(ReportDependency, Report)
            .join(Report, Report.id == ReportDependency.report_id)
            .where(ReportDependency.is_active.is_(True), Report.is_active.is_(True))
        )

    def tables_used_by(self, report_id: str) -> List[SourceNode]:
        """
        报表读取的所有数据源（按声明顺序，base在前）

        Args:
            report_id: 报表ID

        Returns:
            SourceNode 列表；报表不存在或未启用时为空列表
        """
        with self.database.get_session() as session:
            rows = session.execute(
                self._active_dependencies()
                .where(ReportDependency.report_id == report_id)
                .order_by(ReportDependency.dependency_id)
            ).all()
            dependencies = [dependency for dependency, _ in rows]

        nodes = []
        base = [d for d in dependencies if d.relation_role == "base"]
        others = [d for d in dependencies if d.relation_role != "base"]
        for index, dependency in enumerate(base + others):
            nodes.append(to_source_node(dependency, index))
        return nodes

    def reports_using(self, schema: str, table: str) -> List[ReportReference]:
        """
        读取指定表/视图的所有启用报表（按路由排序，去重）

        Args:
            schema: schema名称
            table: 表或视图名称

        Returns:
            ReportReference 列表
        """
        with self.database.get_session() as session:
            reports = session.execute(
                select(Report)
                .where(
                    Report.is_active.is_(True),
                    Report.id.in_(
                        select(ReportDependency.report_id).where(
                            ReportDependency.source_schema == schema,
                            ReportDependency.source_name == table,
                            ReportDependency.is_active.is_(True),
                        )
                    ),
                )
                .order_by(Report.route)
            ).scalars().all()

            return [
                ReportReference(id=r.id, route=r.route, title=r.title, category=r.category or "")
                for r in reports
            ]

    def table_usage(self, schema: Optional[str] = None, table: Optional[str] = None) -> List[TableUsageRow]:
        """
        报表-表使用明细

        Args:
            schema: 可选，按schema过滤
            table: 可选，按表名过滤

        Returns:
            TableUsageRow 列表（按路由、别名排序）
        """
        query = self._active_dependencies()
        if schema is not None:
            query = query.where(ReportDependency.source_schema == schema)
        if table is not None:
            query = query.where(ReportDependency.source_name == table)
        query = query.order_by(Report.route, ReportDependency.source_alias)

        with self.database.get_session() as session:
            rows = session.execute(query).all()
            return [
                TableUsageRow(
                    report_id=report.id,
                    route=report.route,
                    title=report.title,
                    category=report.category or "",
                    source_schema=dependency.source_schema,
                    source_name=dependency.source_name,
                    source_alias=dependency.source_alias,
                    source_kind=dependency.source_kind,
                    relation_role=dependency.relation_role,
                    join_type=dependency.join_type,
                    join_to_alias=dependency.join_to_alias,
                    join_priority=dependency.join_priority,
                )
                for dependency, report in rows
            ]

    def dependency_detail(self, report_id: str) -> List[DependencyDetailRow]:
        """
        报表的数据源节点及其启用的连接谓词

        每个谓词一行；没有谓词的节点（base、cross join）也输出一行，谓词字段为None。
        """
        query = (
            select(ReportDependency, Report.route, ReportDependencyJoin)
            .join(Report, Report.id == ReportDependency.report_id)
            .outerjoin(
                ReportDependencyJoin,
                and_(
                    ReportDependencyJoin.dependency_id == ReportDependency.dependency_id,
                    ReportDependencyJoin.is_active.is_(True),
                ),
            )
            .where(
                ReportDependency.report_id == report_id,
                ReportDependency.is_active.is_(True),
                Report.is_active.is_(True),
            )
            .order_by(ReportDependency.dependency_id, ReportDependencyJoin.predicate_order)
        )

        with self.database.get_session() as session:
            rows = session.execute(query).all()
            detail = []
            for dependency, route, predicate in rows:
                row = DependencyDetailRow(
                    report_id=dependency.report_id,
                    route=route,
                    source_alias=dependency.source_alias,
                    source_schema=dependency.source_schema,
                    source_name=dependency.source_name,
                    relation_role=dependency.relation_role,
                    join_type=dependency.join_type,
                    join_to_alias=dependency.join_to_alias,
                    join_priority=dependency.join_priority,
                )
                if predicate is not None:
                    row = row.model_copy(update={
                        "left_alias": predicate.left_alias,
                        "left_column": predicate.left_column,
                        "operator": predicate.operator,
                        "right_alias": predicate.right_alias,
                        "right_column": predicate.right_column,
                        "predicate_order": predicate.predicate_order,
                    })
                detail.append(row)

        logger.debug(f"报表 {report_id} 的依赖明细: {len(detail)} 行")
        return detail


# 全局血缘查询服务实例
_lineage_service = None


def get_lineage_service() -> LineageService:
    """获取全局血缘查询服务实例"""
    global _lineage_service
    if _lineage_service is None:
        _lineage_service = LineageService(get_database())
    return _lineage_service
