"""
报表依赖图的内存快照

Graph 是只读值对象：加载时已过滤到 is_active 的行，加载后不可修改。
字段保留元数据中的原始字符串，词汇表校验由 GraphValidator 负责，
这样非法取值可以按行报告，而不是在加载时直接失败。
"""
import hashlib
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from .vocabulary import ExpressionType, RelationRole


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class JoinPredicate(_Frozen):
    """连接谓词：left_alias.left_column <op> right_alias.right_column"""
    left_alias: str
    left_column: str
    operator: str = "="
    right_alias: str
    right_column: str
    predicate_order: int = 1


class SourceNode(_Frozen):
    """数据源节点（base 或 join）"""
    dependency_id: Optional[int] = None
    alias: str
    schema_name: str
    table_name: str
    source_kind: str = "table"
    role: str = RelationRole.JOIN.value
    join_type: Optional[str] = None
    join_to_alias: Optional[str] = None
    join_priority: int = 100
    # 声明顺序：base 固定为0，join 按 dependency_id 递增
    declaration_index: int = 0
    predicates: Tuple[JoinPredicate, ...] = ()

    @property
    def is_base(self) -> bool:
        return self.role == RelationRole.BASE.value

    @property
    def qualified_name(self) -> str:
        return f"{self.schema_name}.{self.table_name}"


class OutputField(_Frozen):
    """输出字段：普通列或聚合表达式，以 output_key 作为结果行的key"""
    source_alias: str
    source_column: str
    output_key: str
    output_label: str
    data_type: str = "text"
    expression_type: str = ExpressionType.COLUMN.value
    aggregate_fn: Optional[str] = None
    format_hint: Optional[str] = None
    output_order: int = 100
    sortable: bool = True
    filterable: bool = False
    declaration_index: int = 0

    @property
    def is_aggregate(self) -> bool:
        return self.expression_type == ExpressionType.AGGREGATE.value


class FilterBinding(_Frozen):
    """筛选器绑定：外部筛选器code → 具体列上的谓词"""
    filter_code: str
    source_alias: str
    source_column: str
    operator: str = "="
    value_transform: str = "identity"
    predicate_order: int = 1
    declaration_index: int = 0


class GroupingSpec(_Frozen):
    output_key: str
    grouping_order: int = 100


class SortingSpec(_Frozen):
    output_key: str
    direction: str = "asc"
    sort_order: int = 100


class Graph(_Frozen):
    """
    单个报表当前生效的依赖图

    Attributes:
        report_id: 报表ID
        base: 唯一的base数据源
        joins: join数据源（按声明顺序）
        fields: 输出字段（按声明顺序）
        filter_bindings: 筛选器绑定（按声明顺序）
        grouping: 分组（按 grouping_order）
        sorting: 排序（按 sort_order）
    """
    report_id: str
    base: SourceNode
    joins: Tuple[SourceNode, ...] = ()
    fields: Tuple[OutputField, ...] = ()
    filter_bindings: Tuple[FilterBinding, ...] = ()
    grouping: Tuple[GroupingSpec, ...] = ()
    sorting: Tuple[SortingSpec, ...] = ()

    @property
    def nodes(self) -> Tuple[SourceNode, ...]:
        """base + joins，按声明顺序"""
        return (self.base,) + tuple(sorted(self.joins, key=lambda n: n.declaration_index))

    def node_by_alias(self) -> Dict[str, SourceNode]:
        return {node.alias: node for node in self.nodes}

    def field_by_key(self) -> Dict[str, OutputField]:
        return {f.output_key: f for f in self.fields}

    @property
    def has_aggregates(self) -> bool:
        return any(f.is_aggregate for f in self.fields)

    @property
    def filter_codes(self) -> Tuple[str, ...]:
        seen = []
        for binding in self.filter_bindings:
            if binding.filter_code not in seen:
                seen.append(binding.filter_code)
        return tuple(seen)

    @property
    def content_version(self) -> str:
        """内容版本号：相同内容的快照得到相同的版本号"""
        digest = hashlib.sha256(self.model_dump_json().encode("utf-8")).hexdigest()
        return digest[:16]
