"""
依赖图校验器

两遍校验：
1. 结构校验：不做任何I/O，只检查图本身（标识符语法、别名引用、词汇表取值等）
2. 存在性校验：对照数据仓库结构目录快照，检查引用的schema/表/列是否存在

结构校验有错误时不再执行存在性校验，存在性校验的报告建立在结构合法的前提上。
"""
from typing import Dict, List, Optional, Set, Tuple

from pydantic import BaseModel, Field

from ...utils.logger import get_logger
from .catalog import CatalogSnapshot, is_type_compatible
from .errors import SchemaDriftError, StructuralViolationError, ValidationIssue
from .graph import Graph, SourceNode
from .vocabulary import (
    AggregateFunction,
    DataType,
    ExpressionType,
    FilterOperator,
    JoinType,
    PredicateOperator,
    RelationRole,
    SortDirection,
    SourceKind,
    ValueTransform,
    is_safe_identifier,
    parse_vocabulary,
)

logger = get_logger(__name__)


class ValidationResult(BaseModel):
    """校验结果"""
    report_id: str
    content_version: Optional[str] = None
    issues: List[ValidationIssue] = Field(default_factory=list)
    existence_checked: bool = False

    @property
    def errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.is_error]

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if not i.is_error]

    @property
    def ok(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        """
        有致命问题时抛出对应的异常

        Raises:
            StructuralViolationError: 存在结构错误
            SchemaDriftError: 结构合法但引用的表/列不存在
        """
        structural = [i for i in self.errors if i.stage == "structural"]
        if structural:
            raise StructuralViolationError(structural, report_id=self.report_id)
        existence = [i for i in self.errors if i.stage == "existence"]
        if existence:
            raise SchemaDriftError(existence, report_id=self.report_id)


def join_emission_order(graph: Graph) -> List[SourceNode]:
    """join的输出顺序：join_priority 升序，相同时按声明顺序"""
    return sorted(graph.joins, key=lambda n: (n.join_priority, n.declaration_index))


class _StructuralPass:
    """结构校验（一次性对象，收集所有问题后返回）"""

    def __init__(self, graph: Graph):
        self.graph = graph
        self.issues: List[ValidationIssue] = []
        self.declared_aliases: Set[str] = {node.alias for node in graph.nodes}

    def add(self, rule: str, message: str, alias=None, table=None, column=None, severity="error"):
        self.issues.append(
            ValidationIssue(rule=rule, message=message, severity=severity,
                            alias=alias, table=table, column=column)
        )

    def check_identifier(self, value, what: str, alias=None, table=None, column=None):
        if not is_safe_identifier(value):
            self.add(
                "invalid_identifier",
                f"{what} 不符合标识符语法: {value!r}",
                alias=alias, table=table, column=column,
            )
            return False
        return True

    def run(self) -> List[ValidationIssue]:
        self.check_nodes()
        self.check_joins()
        self.check_join_priority()
        self.check_fields()
        self.check_filter_bindings()
        self.check_grouping_and_sorting()
        return self.issues

    def check_nodes(self):
        seen: Set[str] = set()
        for node in self.graph.nodes:
            table = node.qualified_name
            self.check_identifier(node.alias, "别名", alias=node.alias, table=table)
            self.check_identifier(node.schema_name, "schema", alias=node.alias, table=table)
            self.check_identifier(node.table_name, "表名", alias=node.alias, table=table)

            if node.alias in seen:
                self.add("duplicate_alias", f"别名重复: {node.alias}", alias=node.alias, table=table)
            seen.add(node.alias)

            if parse_vocabulary(SourceKind, node.source_kind) is None:
                self.add(
                    "unknown_source_kind",
                    f"未知的数据源类型: {node.source_kind!r}",
                    alias=node.alias, table=table,
                )

        base = self.graph.base
        if not base.is_base:
            self.add("base_shape", f"base数据源的角色不是base: {base.role!r}", alias=base.alias)
        if base.join_type is not None or base.join_to_alias is not None:
            self.add(
                "base_shape",
                "base数据源不能有连接类型或连接目标",
                alias=base.alias, table=base.qualified_name,
            )

    def check_joins(self):
        earlier: Set[str] = {self.graph.base.alias}
        later_aliases = {node.alias for node in self.graph.joins}
        for node in sorted(self.graph.joins, key=lambda n: n.declaration_index):
            table = node.qualified_name
            role = parse_vocabulary(RelationRole, node.role)
            if role is None:
                self.add("unknown_relation_role", f"未知的数据源角色: {node.role!r}", alias=node.alias, table=table)
            elif role is RelationRole.BASE:
                self.add("multiple_base", "只能有一个base数据源", alias=node.alias, table=table)

            join_type = None
            if node.join_type is None or node.join_to_alias is None:
                self.add("join_shape", "join数据源必须同时有连接类型和连接目标", alias=node.alias, table=table)
            else:
                join_type = parse_vocabulary(JoinType, node.join_type)
                if join_type is None:
                    self.add("unknown_join_type", f"未知的连接类型: {node.join_type!r}", alias=node.alias, table=table)

                target = node.join_to_alias
                if target == node.alias:
                    self.add("self_join", f"join不能连接到自身: {target}", alias=node.alias, table=table)
                elif target not in earlier:
                    if target in later_aliases:
                        self.add(
                            "forward_reference",
                            f"连接目标 {target} 在 {node.alias} 之后才声明",
                            alias=node.alias, table=table,
                        )
                    else:
                        self.add("join_target_unknown", f"连接目标别名不存在: {target}", alias=node.alias, table=table)

            if join_type is JoinType.CROSS:
                if node.predicates:
                    self.add(
                        "cross_join_predicate",
                        "cross join不能有连接谓词",
                        alias=node.alias, table=table,
                    )
            elif not node.predicates:
                self.add("join_without_predicate", "join至少需要一个连接谓词", alias=node.alias, table=table)

            for predicate in node.predicates:
                if parse_vocabulary(PredicateOperator, predicate.operator) is None:
                    self.add(
                        "unknown_predicate_operator",
                        f"未知的连接谓词运算符: {predicate.operator!r}",
                        alias=node.alias, table=table,
                    )
                for side_alias, side_column in (
                    (predicate.left_alias, predicate.left_column),
                    (predicate.right_alias, predicate.right_column),
                ):
                    self.check_identifier(side_column, "连接列", alias=side_alias, column=side_column)
                    if side_alias not in self.declared_aliases:
                        self.add(
                            "predicate_alias_unknown",
                            f"连接谓词引用了未声明的别名: {side_alias}",
                            alias=side_alias, column=side_column,
                        )

            earlier.add(node.alias)

    def check_join_priority(self):
        # 按输出顺序逐个加入FROM子句，连接目标和谓词引用的别名必须已经出现
        emitted: Set[str] = {self.graph.base.alias}
        for node in join_emission_order(self.graph):
            target = node.join_to_alias
            if target is not None and target in self.declared_aliases and target not in emitted:
                self.add(
                    "join_priority_order",
                    f"join {node.alias} 的优先级 {node.join_priority} 早于其连接目标 {target}",
                    alias=node.alias, table=node.qualified_name,
                )
            for predicate in node.predicates:
                for side_alias in (predicate.left_alias, predicate.right_alias):
                    if side_alias in self.declared_aliases and side_alias not in emitted | {node.alias}:
                        self.add(
                            "join_priority_order",
                            f"join {node.alias} 的连接谓词引用了尚未连接的别名 {side_alias}",
                            alias=node.alias, table=node.qualified_name,
                        )
            emitted.add(node.alias)

    def check_fields(self):
        if not self.graph.fields:
            self.add("no_output_fields", "报表没有启用的输出字段")

        seen_keys: Set[str] = set()
        for field in self.graph.fields:
            alias = field.source_alias
            self.check_identifier(field.output_key, "输出key", alias=alias, column=field.source_column)
            self.check_identifier(field.source_column, "列名", alias=alias, column=field.source_column)
            if alias not in self.declared_aliases:
                self.add(
                    "field_alias_unknown",
                    f"输出字段 {field.output_key} 引用了未声明的别名: {alias}",
                    alias=alias, column=field.source_column,
                )
            if field.output_key in seen_keys:
                self.add("duplicate_output_key", f"输出key重复: {field.output_key}", alias=alias, column=field.source_column)
            seen_keys.add(field.output_key)

            if parse_vocabulary(DataType, field.data_type) is None:
                self.add(
                    "unknown_data_type",
                    f"输出字段 {field.output_key} 的数据类型未知: {field.data_type!r}",
                    alias=alias, column=field.source_column,
                )

            expression_type = parse_vocabulary(ExpressionType, field.expression_type)
            if expression_type is None:
                self.add(
                    "unknown_expression_type",
                    f"输出字段 {field.output_key} 的表达式类型未知: {field.expression_type!r}",
                    alias=alias, column=field.source_column,
                )
            elif expression_type is ExpressionType.AGGREGATE:
                if not field.aggregate_fn:
                    self.add(
                        "aggregate_without_function",
                        f"聚合字段 {field.output_key} 缺少聚合函数",
                        alias=alias, column=field.source_column,
                    )
                elif parse_vocabulary(AggregateFunction, field.aggregate_fn) is None:
                    self.add(
                        "unknown_aggregate_function",
                        f"未知的聚合函数: {field.aggregate_fn!r}",
                        alias=alias, column=field.source_column,
                    )
            elif field.aggregate_fn:
                self.add(
                    "function_without_aggregate",
                    f"普通字段 {field.output_key} 不能设置聚合函数",
                    alias=alias, column=field.source_column,
                )

    def check_filter_bindings(self):
        for binding in self.graph.filter_bindings:
            alias = binding.source_alias
            column = binding.source_column
            if not binding.filter_code:
                self.add("invalid_filter_code", "筛选器code不能为空", alias=alias, column=column)
            self.check_identifier(column, "筛选列", alias=alias, column=column)
            if alias not in self.declared_aliases:
                self.add(
                    "binding_alias_unknown",
                    f"筛选器 {binding.filter_code} 引用了未声明的别名: {alias}",
                    alias=alias, column=column,
                )

            operator = parse_vocabulary(FilterOperator, binding.operator)
            transform = parse_vocabulary(ValueTransform, binding.value_transform)
            if operator is None:
                self.add(
                    "unknown_filter_operator",
                    f"筛选器 {binding.filter_code} 的运算符未知: {binding.operator!r}",
                    alias=alias, column=column,
                )
            if transform is None:
                self.add(
                    "unknown_value_transform",
                    f"筛选器 {binding.filter_code} 的值转换未知: {binding.value_transform!r}",
                    alias=alias, column=column,
                )
            if (
                transform is ValueTransform.CSV_TO_ARRAY
                and operator is not None
                and not operator.binds_array
            ):
                self.add(
                    "transform_operator_mismatch",
                    f"筛选器 {binding.filter_code} 的 csv_to_array 只能与 in 运算符一起使用",
                    alias=alias, column=column,
                )
            if (
                operator is not None
                and operator.binds_array
                and transform is not None
                and transform is not ValueTransform.CSV_TO_ARRAY
            ):
                # 整个字符串作为单元素数组绑定，"a,b" 不会被拆分
                self.add(
                    "in_without_csv_to_array",
                    f"筛选器 {binding.filter_code} 使用 in 运算符但值转换不是 csv_to_array，传入值按单个元素匹配",
                    alias=alias, column=column, severity="warning",
                )

    def check_grouping_and_sorting(self):
        fields = self.graph.field_by_key()
        for spec in self.graph.grouping:
            field = fields.get(spec.output_key)
            if field is None:
                self.add("grouping_unknown_key", f"分组引用了未声明的输出key: {spec.output_key}")
            elif field.is_aggregate:
                self.add(
                    "grouping_aggregate_key",
                    f"不能按聚合字段分组: {spec.output_key}",
                    alias=field.source_alias, column=field.source_column,
                )

        for spec in self.graph.sorting:
            if spec.output_key not in fields:
                self.add("sorting_unknown_key", f"排序引用了未声明的输出key: {spec.output_key}")
            if parse_vocabulary(SortDirection, spec.direction) is None:
                self.add("unknown_sort_direction", f"未知的排序方向: {spec.direction!r}")


class _ExistencePass:
    """存在性校验（对照结构目录快照）"""

    def __init__(self, graph: Graph, catalog: CatalogSnapshot):
        self.graph = graph
        self.catalog = catalog
        self.issues: List[ValidationIssue] = []
        self.tables_by_alias: Dict[str, object] = {}
        self._reported_columns: Set[Tuple[str, str]] = set()

    def add(self, rule, message, severity="error", alias=None, table=None, column=None):
        self.issues.append(
            ValidationIssue(
                rule=rule,
                message=message,
                severity=severity,
                stage="existence",
                alias=alias,
                table=table,
                column=column,
            )
        )

    def run(self) -> List[ValidationIssue]:
        for node in self.graph.nodes:
            self.check_node(node)

        for node in self.graph.nodes:
            for predicate in node.predicates:
                self.check_column(predicate.left_alias, predicate.left_column)
                self.check_column(predicate.right_alias, predicate.right_column)

        for field in self.graph.fields:
            if self.check_column(field.source_alias, field.source_column):
                self.check_type(field)

        for binding in self.graph.filter_bindings:
            self.check_column(binding.source_alias, binding.source_column)

        return self.issues

    def check_node(self, node: SourceNode):
        table = node.qualified_name
        if not self.catalog.has_schema(node.schema_name):
            self.add("missing_schema", f"schema不存在: {node.schema_name}", alias=node.alias, table=table)
            return
        info = self.catalog.get_table(node.schema_name, node.table_name)
        if info is None:
            self.add("missing_table", f"表或视图不存在: {table}", alias=node.alias, table=table)
            return
        if info.kind != node.source_kind:
            self.add(
                "source_kind_mismatch",
                f"{table} 声明为 {node.source_kind}，实际为 {info.kind}",
                alias=node.alias, table=table,
            )
        self.tables_by_alias[node.alias] = info

    def check_column(self, alias: str, column: str) -> bool:
        info = self.tables_by_alias.get(alias)
        if info is None:
            # 表本身已报告缺失
            return False
        if info.has_column(column):
            return True
        if (alias, column) not in self._reported_columns:
            self._reported_columns.add((alias, column))
            table = f"{info.schema_name}.{info.table_name}"
            self.add("missing_column", f"列不存在: {table}.{column}", alias=alias, table=table, column=column)
        return False

    def check_type(self, field):
        # count 的结果总是数字，与底层列类型无关
        if field.aggregate_fn == AggregateFunction.COUNT.value:
            return
        info = self.tables_by_alias[field.source_alias]
        column_type = info.columns.get(field.source_column)
        data_type = DataType(field.data_type)
        if not is_type_compatible(data_type, column_type):
            self.add(
                "type_mismatch",
                f"输出字段 {field.output_key} 声明为 {field.data_type}，底层列类型为 {column_type}",
                severity="warning",
                alias=field.source_alias,
                table=f"{info.schema_name}.{info.table_name}",
                column=field.source_column,
            )


class GraphValidator:
    """依赖图校验器（无状态）"""

    def validate(self, graph: Graph, catalog: Optional[CatalogSnapshot] = None) -> ValidationResult:
        """
        校验依赖图

        Args:
            graph: 依赖图快照
            catalog: 数据仓库结构目录快照，为None时只做结构校验

        Returns:
            ValidationResult
        """
        issues = _StructuralPass(graph).run()
        existence_checked = False
        if catalog is not None and not any(i.is_error for i in issues):
            issues.extend(_ExistencePass(graph, catalog).run())
            existence_checked = True

        result = ValidationResult(
            report_id=graph.report_id,
            content_version=graph.content_version,
            issues=issues,
            existence_checked=existence_checked,
        )

        if result.errors:
            logger.warning(
                f"报表 {graph.report_id} 校验失败: "
                + "; ".join(f"{i.rule}({i.alias or '-'}.{i.column or '-'})" for i in result.errors)
            )
        for warning in result.warnings:
            logger.info(f"报表 {graph.report_id} 校验警告: {warning.rule} - {warning.message}")
        return result
