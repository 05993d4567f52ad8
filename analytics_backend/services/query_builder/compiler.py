"""
报表查询编译器

将依赖图快照和筛选值编译为参数化查询。编译过程是纯函数：
不做I/O，不修改输入，相同输入总是得到相同的输出。

SQL文本只由以下内容拼接而成：
- 通过标识符语法校验的别名、schema、表名、列名、输出key
- 词汇表中的关键字和运算符
- 占位符 $1..$n
筛选值只出现在 params 中，永远不会进入SQL文本。
"""
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict

from ...utils.logger import get_logger
from .errors import GraphIntegrityError, GroupingMismatchError, UnknownFilterCodeError
from .graph import Graph, OutputField, SourceNode
from .transforms import apply_value_transform, normalize_param_value
from .validator import GraphValidator, join_emission_order
from .vocabulary import (
    AggregateFunction,
    FilterOperator,
    JoinType,
    PredicateOperator,
    SortDirection,
    ValueTransform,
    is_safe_identifier,
)

logger = get_logger(__name__)


class CompiledQuery(BaseModel):
    """
    编译结果

    Attributes:
        text: 参数化SQL，占位符为 $1..$n（按出现顺序编号）
        params: 与占位符一一对应的参数列表
        output_shape: 有序的 (output_key, data_type) 列表
        report_id: 报表ID
        content_version: 编译所用依赖图快照的版本号
        ignored_filters: 传入但没有对应绑定的筛选参数code
    """
    model_config = ConfigDict(frozen=True)

    text: str
    params: Tuple[Any, ...] = ()
    output_shape: Tuple[Tuple[str, str], ...] = ()
    report_id: Optional[str] = None
    content_version: Optional[str] = None
    ignored_filters: Tuple[str, ...] = ()

    @property
    def placeholder_count(self) -> int:
        return len(self.params)

    @property
    def output_keys(self) -> List[str]:
        return [key for key, _ in self.output_shape]


def _column_ref(alias: str, column: str) -> str:
    """别名.列名，拼接前再次确认标识符安全"""
    if not (is_safe_identifier(alias) and is_safe_identifier(column)):
        raise GraphIntegrityError(f"非法标识符: {alias!r}.{column!r}")
    return f"{alias}.{column}"


def _field_expression(field: OutputField) -> str:
    column = _column_ref(field.source_alias, field.source_column)
    if field.is_aggregate:
        return f"{AggregateFunction(field.aggregate_fn).value}({column})"
    return column


def _ordered_fields(graph: Graph) -> List[OutputField]:
    return sorted(graph.fields, key=lambda f: (f.output_order, f.declaration_index))


class QueryCompiler:
    """报表查询编译器（无状态）"""

    def __init__(self, adapter=None, validator: Optional[GraphValidator] = None):
        """
        初始化编译器

        Args:
            adapter: 数据仓库方言适配器，默认为PostgreSQL
            validator: 依赖图校验器
        """
        if adapter is None:
            from ..database_adapters.postgresql import PostgreSQLAdapter
            adapter = PostgreSQLAdapter()
        self.adapter = adapter
        self.validator = validator or GraphValidator()

    def compile(
        self,
        graph: Graph,
        param_values: Optional[Mapping[str, Any]] = None,
        natural_key: Optional[Sequence[str]] = None,
        strict_filters: bool = False,
    ) -> CompiledQuery:
        """
        编译依赖图

        Args:
            graph: 依赖图快照
            param_values: 筛选值（filter_code → 字符串值），缺失或为空表示不筛选
            natural_key: base表的主键列，用于默认排序
            strict_filters: 为True时，没有对应绑定的筛选参数会抛出 UnknownFilterCodeError

        Returns:
            CompiledQuery

        Raises:
            StructuralViolationError: 依赖图结构不合法
            GroupingMismatchError: 聚合字段与未分组字段混用
            UnknownFilterCodeError: 严格模式下存在未知筛选参数
        """
        param_values = dict(param_values or {})

        self.validator.validate(graph).raise_for_errors()
        self._check_grouping(graph)

        ignored = sorted(code for code in param_values if code not in graph.filter_codes)
        if ignored:
            if strict_filters:
                raise UnknownFilterCodeError(ignored)
            logger.info(f"报表 {graph.report_id} 忽略未知筛选参数: {', '.join(ignored)}")

        fields = _ordered_fields(graph)
        params: List[Any] = []

        parts = [self._select_clause(fields), self._from_clause(graph)]

        where = self._where_clause(graph, param_values, params)
        if where:
            parts.append(where)

        group_by = self._group_by_clause(graph)
        if group_by:
            parts.append(group_by)

        order_by = self._order_by_clause(graph, fields, natural_key)
        if order_by:
            parts.append(order_by)

        compiled = CompiledQuery(
            text="\n".join(parts),
            params=tuple(params),
            output_shape=tuple((f.output_key, f.data_type) for f in fields),
            report_id=graph.report_id,
            content_version=graph.content_version,
            ignored_filters=tuple(ignored),
        )
        logger.debug(
            f"报表 {graph.report_id} 编译完成: params={compiled.placeholder_count}, "
            f"version={compiled.content_version}"
        )
        return compiled

    def _check_grouping(self, graph: Graph):
        if not graph.has_aggregates and not graph.grouping:
            return
        grouped = {spec.output_key for spec in graph.grouping}
        ungrouped = [
            f.output_key
            for f in _ordered_fields(graph)
            if not f.is_aggregate and f.output_key not in grouped
        ]
        if ungrouped:
            raise GroupingMismatchError(ungrouped, report_id=graph.report_id)

    def _select_clause(self, fields: List[OutputField]) -> str:
        columns = []
        for field in fields:
            if not is_safe_identifier(field.output_key):
                raise GraphIntegrityError(f"非法输出key: {field.output_key!r}")
            columns.append(f"{_field_expression(field)} AS {field.output_key}")
        return "SELECT " + ", ".join(columns)

    def _source_ref(self, node: SourceNode) -> str:
        for part in (node.schema_name, node.table_name, node.alias):
            if not is_safe_identifier(part):
                raise GraphIntegrityError(f"非法标识符: {part!r}")
        return f"{node.schema_name}.{node.table_name} AS {node.alias}"

    def _from_clause(self, graph: Graph) -> str:
        lines = [f"FROM {self._source_ref(graph.base)}"]
        emitted = {graph.base.alias}
        for node in join_emission_order(graph):
            if node.join_to_alias not in emitted:
                raise GraphIntegrityError(
                    f"join {node.alias} 的连接目标 {node.join_to_alias} 尚未出现在FROM子句中",
                    report_id=graph.report_id,
                )
            join_type = JoinType(node.join_type)
            line = f"{join_type.keyword} {self._source_ref(node)}"
            if join_type is not JoinType.CROSS:
                conditions = []
                for predicate in sorted(node.predicates, key=lambda p: p.predicate_order):
                    operator = PredicateOperator(predicate.operator)
                    conditions.append(
                        f"{_column_ref(predicate.left_alias, predicate.left_column)} "
                        f"{operator.value} "
                        f"{_column_ref(predicate.right_alias, predicate.right_column)}"
                    )
                if not conditions:
                    raise GraphIntegrityError(f"join {node.alias} 没有连接谓词", report_id=graph.report_id)
                line += " ON " + " AND ".join(conditions)
            lines.append(line)
            emitted.add(node.alias)
        return "\n".join(lines)

    def _where_clause(self, graph: Graph, param_values: Dict[str, Any], params: List[Any]) -> str:
        bindings = sorted(graph.filter_bindings, key=lambda b: (b.predicate_order, b.declaration_index))
        conditions = []
        for binding in bindings:
            raw = normalize_param_value(param_values.get(binding.filter_code))
            if raw is None:
                continue
            operator = FilterOperator(binding.operator)
            value = apply_value_transform(ValueTransform(binding.value_transform), raw)
            if operator.binds_array and isinstance(value, list) and not value:
                # csv_to_array 拆分后为空，等同于未传值
                continue
            params.append(self.adapter.bind_filter_value(operator, value))
            placeholder = f"${len(params)}"
            conditions.append(
                self.adapter.render_filter_predicate(
                    _column_ref(binding.source_alias, binding.source_column),
                    operator,
                    placeholder,
                )
            )
        if not conditions:
            return ""
        return "WHERE " + " AND ".join(conditions)

    def _group_by_clause(self, graph: Graph) -> str:
        if not graph.grouping:
            return ""
        fields = graph.field_by_key()
        expressions = [_field_expression(fields[spec.output_key]) for spec in graph.grouping]
        return "GROUP BY " + ", ".join(expressions)

    def _order_by_clause(self, graph: Graph, fields: List[OutputField],
                         natural_key: Optional[Sequence[str]]) -> str:
        if graph.sorting:
            by_key = graph.field_by_key()
            terms = [
                f"{_field_expression(by_key[spec.output_key])} {SortDirection(spec.direction).value.upper()}"
                for spec in graph.sorting
            ]
            return "ORDER BY " + ", ".join(terms)

        # 默认排序
        if graph.grouping:
            by_key = graph.field_by_key()
            terms = [_field_expression(by_key[spec.output_key]) for spec in graph.grouping]
            return "ORDER BY " + ", ".join(terms)

        if graph.has_aggregates:
            # 只有聚合字段时结果只有一行
            return ""

        # 主键来自数据仓库目录而不是报表元数据，不符合标识符语法时退回下一种默认排序
        if natural_key and all(is_safe_identifier(column) for column in natural_key):
            terms = [_column_ref(graph.base.alias, column) for column in natural_key]
            return "ORDER BY " + ", ".join(terms)

        for field in fields:
            if field.source_alias == graph.base.alias and not field.is_aggregate:
                return f"ORDER BY {_field_expression(field)}"

        return "ORDER BY 1"
