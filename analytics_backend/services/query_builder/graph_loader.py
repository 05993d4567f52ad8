"""
依赖图加载

从元数据库读取报表当前生效的依赖图，转换为不可变的 Graph 快照。
只读取 is_active = true 的行，从不写入元数据。
"""
from typing import Iterable, List, Optional

from sqlalchemy import select

from ...database import Database
from ...models.report import Report
from ...models.dependency import (
    ReportDependency,
    ReportDependencyJoin,
    ReportDependencyField,
    ReportDependencyFilterBinding,
    ReportDependencyGrouping,
    ReportDependencySorting,
)
from ...utils.logger import get_logger
from .errors import GraphIntegrityError, ReportNotFoundError
from .graph import (
    FilterBinding,
    Graph,
    GroupingSpec,
    JoinPredicate,
    OutputField,
    SortingSpec,
    SourceNode,
)
from .vocabulary import RelationRole

logger = get_logger(__name__)


def normalize_route(route: Optional[str]) -> str:
    """去除首尾空白和斜杠"""
    return str(route or "").strip().strip("/")


def to_source_node(row: ReportDependency, declaration_index: int,
                   predicates: Iterable[ReportDependencyJoin] = ()) -> SourceNode:
    """ORM数据源行 → SourceNode"""
    return SourceNode(
        dependency_id=row.dependency_id,
        alias=row.source_alias,
        schema_name=row.source_schema,
        table_name=row.source_name,
        source_kind=row.source_kind,
        role=row.relation_role,
        join_type=row.join_type,
        join_to_alias=row.join_to_alias,
        join_priority=row.join_priority if row.join_priority is not None else 100,
        declaration_index=declaration_index,
        predicates=tuple(
            JoinPredicate(
                left_alias=p.left_alias,
                left_column=p.left_column,
                operator=p.operator,
                right_alias=p.right_alias,
                right_column=p.right_column,
                predicate_order=p.predicate_order,
            )
            for p in sorted(predicates, key=lambda p: (p.predicate_order, p.join_id or 0))
        ),
    )


def to_output_field(row: ReportDependencyField, declaration_index: int) -> OutputField:
    """ORM输出字段行 → OutputField"""
    return OutputField(
        source_alias=row.source_alias,
        source_column=row.source_column,
        output_key=row.output_key,
        output_label=row.output_label,
        data_type=row.data_type,
        expression_type=row.expression_type,
        aggregate_fn=row.aggregate_fn,
        format_hint=row.format_hint,
        output_order=row.output_order if row.output_order is not None else 100,
        sortable=bool(row.sortable),
        filterable=bool(row.filterable),
        declaration_index=declaration_index,
    )


def to_filter_binding(row: ReportDependencyFilterBinding, declaration_index: int) -> FilterBinding:
    """ORM筛选器绑定行 → FilterBinding"""
    return FilterBinding(
        filter_code=row.filter_code,
        source_alias=row.source_alias,
        source_column=row.source_column,
        operator=row.operator,
        value_transform=row.value_transform,
        predicate_order=row.predicate_order,
        declaration_index=declaration_index,
    )


class GraphLoader:
    """依赖图加载器"""

    def __init__(self, database: Database):
        """
        初始化依赖图加载器

        Args:
            database: 元数据库实例
        """
        self.database = database

    def resolve_route(self, route: str) -> str:
        """
        将路由解析为报表ID（只查找启用的报表）

        路由比较前去除首尾空白和斜杠，"/exit-status/" 与 "exit-status" 等价。

        Raises:
            ReportNotFoundError: 路由不存在或报表未启用
        """
        normalized = normalize_route(route)
        if normalized:
            with self.database.get_session() as session:
                rows = session.execute(
                    select(Report.id, Report.route)
                    .where(Report.is_active.is_(True))
                    .order_by(Report.route)
                ).all()
            for report_id, report_route in rows:
                if normalize_route(report_route) == normalized:
                    return report_id

        raise ReportNotFoundError(route)

    def load_active_graph(self, report_id: str) -> Graph:
        """
        加载报表当前生效的依赖图

        Args:
            report_id: 报表ID

        Returns:
            Graph 快照

        Raises:
            ReportNotFoundError: 报表不存在或未启用
            GraphIntegrityError: 没有或存在多个启用的base数据源
        """
        with self.database.get_session() as session:
            report = session.execute(
                select(Report).where(Report.id == report_id, Report.is_active.is_(True))
            ).scalar_one_or_none()
            if report is None:
                raise ReportNotFoundError(report_id)

            dependencies = session.execute(
                select(ReportDependency)
                .where(
                    ReportDependency.report_id == report_id,
                    ReportDependency.is_active.is_(True),
                )
                .order_by(ReportDependency.dependency_id)
            ).scalars().all()

            dependency_ids = [d.dependency_id for d in dependencies]
            predicate_rows: List[ReportDependencyJoin] = []
            if dependency_ids:
                predicate_rows = session.execute(
                    select(ReportDependencyJoin).where(
                        ReportDependencyJoin.dependency_id.in_(dependency_ids),
                        ReportDependencyJoin.is_active.is_(True),
                    )
                ).scalars().all()

            field_rows = session.execute(
                select(ReportDependencyField)
                .where(
                    ReportDependencyField.report_id == report_id,
                    ReportDependencyField.is_active.is_(True),
                )
                .order_by(ReportDependencyField.field_id)
            ).scalars().all()

            binding_rows = session.execute(
                select(ReportDependencyFilterBinding)
                .where(
                    ReportDependencyFilterBinding.report_id == report_id,
                    ReportDependencyFilterBinding.is_active.is_(True),
                )
                .order_by(ReportDependencyFilterBinding.binding_id)
            ).scalars().all()

            grouping_rows = session.execute(
                select(ReportDependencyGrouping)
                .where(
                    ReportDependencyGrouping.report_id == report_id,
                    ReportDependencyGrouping.is_active.is_(True),
                )
                .order_by(ReportDependencyGrouping.grouping_order, ReportDependencyGrouping.grouping_id)
            ).scalars().all()

            sorting_rows = session.execute(
                select(ReportDependencySorting)
                .where(
                    ReportDependencySorting.report_id == report_id,
                    ReportDependencySorting.is_active.is_(True),
                )
                .order_by(ReportDependencySorting.sort_order, ReportDependencySorting.sorting_id)
            ).scalars().all()

            graph = self._build_graph(
                report_id,
                dependencies,
                predicate_rows,
                field_rows,
                binding_rows,
                grouping_rows,
                sorting_rows,
            )

        logger.debug(
            f"依赖图已加载: report_id={report_id}, joins={len(graph.joins)}, "
            f"fields={len(graph.fields)}, version={graph.content_version}"
        )
        return graph

    def _build_graph(self, report_id, dependencies, predicate_rows, field_rows,
                     binding_rows, grouping_rows, sorting_rows) -> Graph:
        bases = [d for d in dependencies if d.relation_role == RelationRole.BASE.value]
        if len(bases) != 1:
            aliases = ", ".join(d.source_alias for d in bases) or "无"
            logger.error(f"报表 {report_id} 的启用base数据源数量为 {len(bases)}: {aliases}")
            raise GraphIntegrityError(
                f"报表必须有且只有一个启用的base数据源，实际为 {len(bases)} 个",
                report_id=report_id,
            )
        base_row = bases[0]

        predicates_by_dependency = {}
        for predicate in predicate_rows:
            predicates_by_dependency.setdefault(predicate.dependency_id, []).append(predicate)

        base = to_source_node(base_row, 0, predicates_by_dependency.get(base_row.dependency_id, ()))
        joins = []
        for row in dependencies:
            if row is base_row:
                continue
            joins.append(
                to_source_node(row, len(joins) + 1, predicates_by_dependency.get(row.dependency_id, ()))
            )

        return Graph(
            report_id=report_id,
            base=base,
            joins=tuple(joins),
            fields=tuple(to_output_field(row, i) for i, row in enumerate(field_rows)),
            filter_bindings=tuple(to_filter_binding(row, i) for i, row in enumerate(binding_rows)),
            grouping=tuple(
                GroupingSpec(output_key=row.output_key, grouping_order=row.grouping_order)
                for row in grouping_rows
            ),
            sorting=tuple(
                SortingSpec(output_key=row.output_key, direction=row.sort_direction, sort_order=row.sort_order)
                for row in sorting_rows
            ),
        )
