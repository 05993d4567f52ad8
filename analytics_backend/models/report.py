"""
报表目录模型（报表、筛选器目录、报表筛选器声明）
"""
from sqlalchemy import Boolean, Column, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from .base import Base, TimestampMixin, META_SCHEMA


class Report(Base, TimestampMixin):
    """报表表"""
    __tablename__ = "reports"
    __table_args__ = {"schema": META_SCHEMA}

    id = Column(Text, primary_key=True)
    route = Column(Text, nullable=False, unique=True)
    title = Column(Text, nullable=False)
    category = Column(Text, nullable=False, default="")
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    # 删除报表时级联删除全部依赖图数据
    dependencies = relationship(
        "ReportDependency",
        back_populates="report",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    fields = relationship(
        "ReportDependencyField",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    filter_bindings = relationship(
        "ReportDependencyFilterBinding",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    grouping = relationship(
        "ReportDependencyGrouping",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    sorting = relationship(
        "ReportDependencySorting",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    report_filters = relationship(
        "ReportFilter",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<Report(id={self.id}, route={self.route}, active={self.is_active})>"


class Filter(Base):
    """筛选器目录表"""
    __tablename__ = "filters"
    __table_args__ = {"schema": META_SCHEMA}

    filter_code = Column(Text, primary_key=True)
    label = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    type = Column(Text, nullable=True)  # select, multiselect, text ...
    table = Column("table", Text, nullable=True)
    column = Column("column", Text, nullable=True)

    def __repr__(self):
        return f"<Filter(filter_code={self.filter_code}, type={self.type})>"


class ReportFilter(Base):
    """报表筛选器声明表"""
    __tablename__ = "report_filters"
    __table_args__ = {"schema": META_SCHEMA}

    report_id = Column(
        Text,
        ForeignKey(f"{META_SCHEMA}.reports.id", ondelete="CASCADE"),
        primary_key=True,
    )
    filter_code = Column(
        Text,
        ForeignKey(f"{META_SCHEMA}.filters.filter_code", ondelete="CASCADE"),
        primary_key=True,
    )
    type = Column(String(50), nullable=True)
    default_value = Column(Text, nullable=True)

    filter = relationship("Filter", lazy="joined")

    def __repr__(self):
        return f"<ReportFilter(report_id={self.report_id}, filter_code={self.filter_code})>"
