"""
报表依赖图模型

每个报表的数据来源图：一个base数据源、若干join数据源及其连接谓词、
输出字段、筛选器绑定、分组与排序。表结构与meta schema的DDL保持一致，
其他工具会直接读取这些表。
"""
from sqlalchemy import (
    DDL,
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import relationship

from .base import Base, TimestampMixin, IdentityKey, META_SCHEMA


class ReportDependency(Base, TimestampMixin):
    """报表数据源节点表（base / join）"""
    __tablename__ = "report_dependencies"
    __table_args__ = (
        CheckConstraint(
            "source_kind IN ('table', 'view', 'materialized_view')",
            name="report_dependencies_source_kind_check",
        ),
        CheckConstraint(
            "relation_role IN ('base', 'join')",
            name="report_dependencies_relation_role_check",
        ),
        CheckConstraint(
            "join_type IS NULL OR join_type IN ('inner', 'left', 'right', 'full', 'cross')",
            name="report_dependencies_join_type_check",
        ),
        CheckConstraint(
            "(relation_role = 'base' AND join_type IS NULL AND join_to_alias IS NULL) "
            "OR (relation_role = 'join' AND join_type IS NOT NULL AND join_to_alias IS NOT NULL)",
            name="report_dependencies_base_join_shape_check",
        ),
        UniqueConstraint("report_id", "source_alias", name="report_dependencies_report_alias_uidx"),
        Index("report_dependencies_report_active_idx", "report_id", "is_active"),
        Index("report_dependencies_table_lookup_idx", "source_schema", "source_name", "is_active"),
        {"schema": META_SCHEMA},
    )

    dependency_id = Column(IdentityKey, primary_key=True, autoincrement=True)
    report_id = Column(
        Text,
        ForeignKey(f"{META_SCHEMA}.reports.id", ondelete="CASCADE"),
        nullable=False,
    )
    source_alias = Column(Text, nullable=False)
    source_schema = Column(Text, nullable=False)
    source_name = Column(Text, nullable=False)
    source_kind = Column(Text, nullable=False, default="table")
    relation_role = Column(Text, nullable=False, default="join")
    join_type = Column(Text, nullable=True)
    join_to_alias = Column(Text, nullable=True)
    join_priority = Column(Integer, nullable=False, default=100)
    is_active = Column(Boolean, nullable=False, default=True)
    extra = Column("metadata", JSON, nullable=False, default=dict)

    report = relationship("Report", back_populates="dependencies")
    joins = relationship(
        "ReportDependencyJoin",
        back_populates="dependency",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ReportDependencyJoin.predicate_order",
    )

    def __repr__(self):
        return (
            f"<ReportDependency(report_id={self.report_id}, alias={self.source_alias}, "
            f"source={self.source_schema}.{self.source_name}, role={self.relation_role})>"
        )


class ReportDependencyJoin(Base, TimestampMixin):
    """join数据源的连接谓词表"""
    __tablename__ = "report_dependency_joins"
    __table_args__ = (
        CheckConstraint(
            "operator IN ('=', '!=', '>', '>=', '<', '<=')",
            name="report_dependency_joins_operator_check",
        ),
        Index("report_dependency_joins_dependency_idx", "dependency_id", "is_active", "predicate_order"),
        {"schema": META_SCHEMA},
    )

    join_id = Column(IdentityKey, primary_key=True, autoincrement=True)
    dependency_id = Column(
        IdentityKey,
        ForeignKey(f"{META_SCHEMA}.report_dependencies.dependency_id", ondelete="CASCADE"),
        nullable=False,
    )
    left_alias = Column(Text, nullable=False)
    left_column = Column(Text, nullable=False)
    operator = Column(Text, nullable=False, default="=")
    right_alias = Column(Text, nullable=False)
    right_column = Column(Text, nullable=False)
    predicate_order = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)

    dependency = relationship("ReportDependency", back_populates="joins")

    def __repr__(self):
        return (
            f"<ReportDependencyJoin({self.left_alias}.{self.left_column} {self.operator} "
            f"{self.right_alias}.{self.right_column})>"
        )


class ReportDependencyField(Base, TimestampMixin):
    """输出字段表（决定SELECT列表和输出结构）"""
    __tablename__ = "report_dependency_fields"
    __table_args__ = (
        CheckConstraint(
            "expression_type IN ('column', 'aggregate')",
            name="report_dependency_fields_expression_type_check",
        ),
        CheckConstraint(
            "data_type IN ('text', 'number', 'percent', 'date', 'boolean', 'json')",
            name="report_dependency_fields_data_type_check",
        ),
        CheckConstraint(
            "aggregate_fn IS NULL OR aggregate_fn IN ('count', 'sum', 'avg', 'min', 'max')",
            name="report_dependency_fields_aggregate_check",
        ),
        UniqueConstraint("report_id", "output_key", name="report_dependency_fields_output_key_uidx"),
        Index("report_dependency_fields_report_idx", "report_id", "is_active", "output_order"),
        {"schema": META_SCHEMA},
    )

    field_id = Column(IdentityKey, primary_key=True, autoincrement=True)
    report_id = Column(
        Text,
        ForeignKey(f"{META_SCHEMA}.reports.id", ondelete="CASCADE"),
        nullable=False,
    )
    source_alias = Column(Text, nullable=False)
    source_column = Column(Text, nullable=False)
    output_key = Column(Text, nullable=False)
    output_label = Column(Text, nullable=False)
    data_type = Column(Text, nullable=False, default="text")
    expression_type = Column(Text, nullable=False, default="column")
    aggregate_fn = Column(Text, nullable=True)
    format_hint = Column(Text, nullable=True)
    output_order = Column(Integer, nullable=False, default=100)
    sortable = Column(Boolean, nullable=False, default=True)
    filterable = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    extra = Column("metadata", JSON, nullable=False, default=dict)

    def __repr__(self):
        return f"<ReportDependencyField(report_id={self.report_id}, output_key={self.output_key})>"


class ReportDependencyFilterBinding(Base, TimestampMixin):
    """筛选器绑定表（决定WHERE条件）"""
    __tablename__ = "report_dependency_filter_bindings"
    __table_args__ = (
        CheckConstraint(
            "operator IN ('=', '!=', '>', '>=', '<', '<=', 'in', 'ilike')",
            name="report_dependency_filter_bindings_operator_check",
        ),
        CheckConstraint(
            "value_transform IN ('identity', 'csv_to_array', 'lowercase', 'trim')",
            name="report_dependency_filter_bindings_transform_check",
        ),
        UniqueConstraint(
            "report_id", "filter_code", "source_alias", "source_column",
            name="report_dependency_filter_bindings_uidx",
        ),
        Index("report_dependency_filter_bindings_report_idx", "report_id", "is_active"),
        {"schema": META_SCHEMA},
    )

    binding_id = Column(IdentityKey, primary_key=True, autoincrement=True)
    report_id = Column(
        Text,
        ForeignKey(f"{META_SCHEMA}.reports.id", ondelete="CASCADE"),
        nullable=False,
    )
    filter_code = Column(
        Text,
        ForeignKey(f"{META_SCHEMA}.filters.filter_code", ondelete="CASCADE"),
        nullable=False,
    )
    source_alias = Column(Text, nullable=False)
    source_column = Column(Text, nullable=False)
    operator = Column(Text, nullable=False, default="=")
    value_transform = Column(Text, nullable=False, default="identity")
    predicate_order = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)
    extra = Column("metadata", JSON, nullable=False, default=dict)

    def __repr__(self):
        return (
            f"<ReportDependencyFilterBinding(report_id={self.report_id}, "
            f"filter_code={self.filter_code}, target={self.source_alias}.{self.source_column})>"
        )


class ReportDependencyGrouping(Base):
    """分组表（引用输出字段key）"""
    __tablename__ = "report_dependency_grouping"
    __table_args__ = (
        UniqueConstraint("report_id", "output_key", name="report_dependency_grouping_uidx"),
        {"schema": META_SCHEMA},
    )

    grouping_id = Column(IdentityKey, primary_key=True, autoincrement=True)
    report_id = Column(
        Text,
        ForeignKey(f"{META_SCHEMA}.reports.id", ondelete="CASCADE"),
        nullable=False,
    )
    output_key = Column(Text, nullable=False)
    grouping_order = Column(Integer, nullable=False, default=100)
    is_active = Column(Boolean, nullable=False, default=True)


class ReportDependencySorting(Base):
    """排序表（引用输出字段key）"""
    __tablename__ = "report_dependency_sorting"
    __table_args__ = (
        CheckConstraint(
            "sort_direction IN ('asc', 'desc')",
            name="report_dependency_sorting_direction_check",
        ),
        UniqueConstraint("report_id", "output_key", name="report_dependency_sorting_uidx"),
        {"schema": META_SCHEMA},
    )

    sorting_id = Column(IdentityKey, primary_key=True, autoincrement=True)
    report_id = Column(
        Text,
        ForeignKey(f"{META_SCHEMA}.reports.id", ondelete="CASCADE"),
        nullable=False,
    )
    output_key = Column(Text, nullable=False)
    sort_direction = Column(Text, nullable=False, default="asc")
    sort_order = Column(Integer, nullable=False, default=100)
    is_active = Column(Boolean, nullable=False, default=True)


# 标识符格式约束只在PostgreSQL上创建（SQLite没有 ~ 正则运算符）
IDENTIFIER_PATTERN = "^[a-z][a-z0-9_]*$"


def _identifier_format_check(table, name, *columns):
    condition = " AND ".join(f"{column} ~ '{IDENTIFIER_PATTERN}'" for column in columns)
    ddl = DDL(
        f"ALTER TABLE {table.fullname} ADD CONSTRAINT {name} CHECK ({condition})"
    ).execute_if(dialect="postgresql")
    event.listen(table, "after_create", ddl)
    return ddl


IDENTIFIER_FORMAT_CHECKS = {
    name: _identifier_format_check(model.__table__, name, *columns)
    for model, name, columns in (
        (ReportDependency, "report_dependencies_alias_format_check", ("source_alias",)),
        (ReportDependency, "report_dependencies_schema_format_check", ("source_schema",)),
        (ReportDependency, "report_dependencies_name_format_check", ("source_name",)),
        (ReportDependencyJoin, "report_dependency_joins_column_format_check",
         ("left_column", "right_column")),
        (ReportDependencyField, "report_dependency_fields_source_column_format_check",
         ("source_column",)),
        (ReportDependencyField, "report_dependency_fields_output_key_format_check",
         ("output_key",)),
        (ReportDependencyFilterBinding, "report_dependency_filter_bindings_column_format_check",
         ("source_column",)),
    )
}
