"""
报表查询编译器

依赖图元数据 → 校验 → 参数化查询。不执行任何由调用方或元数据作者提供的SQL片段。
"""
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
)
from .errors import (
    AccessScopeMismatchError,
    FilterNotFoundError,
    FilterSourceError,
    GraphIntegrityError,
    GroupingMismatchError,
    ReportNotFoundError,
    ReportQueryError,
    SchemaDriftError,
    StructuralViolationError,
    UnknownFilterCodeError,
    ValidationError,
    ValidationIssue,
)
from .graph import (
    FilterBinding,
    Graph,
    GroupingSpec,
    JoinPredicate,
    OutputField,
    SortingSpec,
    SourceNode,
)
from .catalog import CatalogSnapshot, TableInfo, classify_column_type
from .transforms import apply_value_transform
from .validator import GraphValidator, ValidationResult
from .compiler import CompiledQuery, QueryCompiler
from .graph_loader import GraphLoader
from .lineage import LineageService, get_lineage_service

__all__ = [
    "AggregateFunction",
    "DataType",
    "ExpressionType",
    "FilterOperator",
    "JoinType",
    "PredicateOperator",
    "RelationRole",
    "SortDirection",
    "SourceKind",
    "ValueTransform",
    "is_safe_identifier",
    "AccessScopeMismatchError",
    "FilterNotFoundError",
    "FilterSourceError",
    "GraphIntegrityError",
    "GroupingMismatchError",
    "ReportNotFoundError",
    "ReportQueryError",
    "SchemaDriftError",
    "StructuralViolationError",
    "UnknownFilterCodeError",
    "ValidationError",
    "ValidationIssue",
    "FilterBinding",
    "Graph",
    "GroupingSpec",
    "JoinPredicate",
    "OutputField",
    "SortingSpec",
    "SourceNode",
    "CatalogSnapshot",
    "TableInfo",
    "classify_column_type",
    "apply_value_transform",
    "GraphValidator",
    "ValidationResult",
    "CompiledQuery",
    "QueryCompiler",
    "GraphLoader",
    "LineageService",
    "get_lineage_service",
]
