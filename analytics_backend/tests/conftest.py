"""
测试公共fixture

元数据库使用内存SQLite；数据仓库使用另一个内存SQLite，
通过 ATTACH 模拟 data schema。
"""
from typing import Optional, Tuple

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.pool import StaticPool

from analytics_backend.database import Database, set_database
from analytics_backend.models import (
    Filter,
    PiiColumn,
    Report,
    ReportDependency,
    ReportDependencyField,
    ReportDependencyFilterBinding,
    ReportDependencyJoin,
    ReportFilter,
    User,
)
from analytics_backend.services.cache_service import CacheService
from analytics_backend.services.database_adapters import SQLiteAdapter
from analytics_backend.services.database_connector import WarehouseConnector
from analytics_backend.services.query_builder.graph import (
    FilterBinding,
    Graph,
    JoinPredicate,
    OutputField,
    SourceNode,
)

EXIT_STATUS_ID = "exit-status"
EXIT_STATUS_ROUTE = "student-exit-status"


class ScopedSQLiteAdapter(SQLiteAdapter):
    """
    带访问范围的SQLite适配器（测试替身）

    建立的访问范围保存在对象上；override_user_id 用于模拟回读到的值与调用方不一致。
    """

    def __init__(self, override_user_id: Optional[str] = None):
        self.override_user_id = override_user_id
        self.established = []
        self._scope: Tuple[Optional[str], Optional[str]] = (None, None)

    @property
    def supports_access_scope(self) -> bool:
        return True

    def establish_access_scope(self, connection, sis_user_id: str, is_admin: bool) -> None:
        self.established.append((sis_user_id, is_admin))
        self._scope = (str(sis_user_id), "true" if is_admin else "false")

    def read_access_scope(self, connection):
        user_id, is_admin = self._scope
        if self.override_user_id is not None:
            user_id = self.override_user_id
        return user_id, is_admin


def exit_status_graph(**overrides) -> Graph:
    """报表 exit-status 的依赖图（不经过元数据库）"""
    values = dict(
        report_id=EXIT_STATUS_ID,
        base=SourceNode(
            alias="s",
            schema_name="data",
            table_name="student_exit_status",
            role="base",
        ),
        joins=(
            SourceNode(
                alias="p",
                schema_name="data",
                table_name="programs",
                role="join",
                join_type="left",
                join_to_alias="s",
                declaration_index=1,
                predicates=(
                    JoinPredicate(
                        left_alias="s",
                        left_column="program_code",
                        right_alias="p",
                        right_column="program_code",
                    ),
                ),
            ),
        ),
        fields=(
            OutputField(
                source_alias="s",
                source_column="sis_user_id",
                output_key="sis_user_id",
                output_label="Student ID",
                output_order=1,
                declaration_index=0,
            ),
            OutputField(
                source_alias="p",
                source_column="program_name",
                output_key="program_name",
                output_label="Program",
                output_order=2,
                declaration_index=1,
            ),
        ),
        filter_bindings=(
            FilterBinding(
                filter_code="academic_year",
                source_alias="s",
                source_column="academic_year",
            ),
        ),
    )
    values.update(overrides)
    return Graph(**values)


def add_exit_status_report(session, report_id: str = EXIT_STATUS_ID, route: str = EXIT_STATUS_ROUTE,
                           category: str = "student_outcomes", title: str = "Student Exit Status"):
    """写入 exit-status 报表及其依赖图，返回 Report"""
    if session.get(Filter, "academic_year") is None:
        session.add(Filter(
            filter_code="academic_year",
            label="Academic Year",
            type="select",
            table="data.student_exit_status",
            column="academic_year",
        ))
        session.flush()

    report = Report(id=report_id, route=route, title=title, category=category)
    base = ReportDependency(
        source_alias="s",
        source_schema="data",
        source_name="student_exit_status",
        source_kind="table",
        relation_role="base",
    )
    programs = ReportDependency(
        source_alias="p",
        source_schema="data",
        source_name="programs",
        source_kind="table",
        relation_role="join",
        join_type="left",
        join_to_alias="s",
    )
    programs.joins.append(ReportDependencyJoin(
        left_alias="s",
        left_column="program_code",
        operator="=",
        right_alias="p",
        right_column="program_code",
        predicate_order=1,
    ))
    report.dependencies.extend([base, programs])
    report.fields.extend([
        ReportDependencyField(
            source_alias="s",
            source_column="sis_user_id",
            output_key="sis_user_id",
            output_label="Student ID",
            data_type="text",
            output_order=1,
        ),
        ReportDependencyField(
            source_alias="p",
            source_column="program_name",
            output_key="program_name",
            output_label="Program",
            data_type="text",
            output_order=2,
        ),
    ])
    report.filter_bindings.append(ReportDependencyFilterBinding(
        filter_code="academic_year",
        source_alias="s",
        source_column="academic_year",
        operator="=",
        value_transform="identity",
    ))
    report.report_filters.append(ReportFilter(filter_code="academic_year"))
    session.add(report)
    session.flush()
    return report


@pytest.fixture
def database():
    """内存SQLite元数据库（替换全局实例）"""
    db = Database("sqlite://")
    db.create_tables()
    set_database(db)
    yield db
    set_database(None)
    db.engine.dispose()


@pytest.fixture
def seeded_database(database):
    """写入 exit-status 报表、两个用户和一条PII规则"""
    with database.get_session() as session:
        add_exit_status_report(session)
        session.add_all([
            User(sis_user_id="123", email="student.analyst@example.edu", display_name="Analyst"),
            User(sis_user_id="900", email="admin@example.edu", display_name="Admin", is_admin=True),
            User(sis_user_id="404", email="former@example.edu", is_active=False),
            PiiColumn(column_name="sis_user_id", redacted_value="REDACTED"),
        ])
    return database


@pytest.fixture
def warehouse_engine():
    """内存SQLite数据仓库，data schema 通过 ATTACH 模拟"""
    engine = create_engine("sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False})
    with engine.begin() as connection:
        connection.execute(text("ATTACH DATABASE ':memory:' AS data"))
        connection.execute(text(
            "CREATE TABLE data.student_exit_status ("
            "sis_user_id TEXT PRIMARY KEY, program_code TEXT, academic_year TEXT, exit_status TEXT)"
        ))
        connection.execute(text(
            "CREATE TABLE data.programs (program_code TEXT PRIMARY KEY, program_name TEXT)"
        ))
        connection.execute(text(
            "INSERT INTO data.programs VALUES ('MD', 'Doctor of Medicine'), ('PA', 'Physician Assistant')"
        ))
        connection.execute(text(
            "INSERT INTO data.student_exit_status VALUES "
            "('123', 'MD', '2024', 'graduated'), "
            "('124', 'PA', '2024', 'withdrawn'), "
            "('125', 'MD', '2023', 'graduated'), "
            "('126', 'XX', '2024', 'graduated')"
        ))
    yield engine
    engine.dispose()


@pytest.fixture
def scoped_adapter():
    return ScopedSQLiteAdapter()


@pytest.fixture
def warehouse(warehouse_engine, scoped_adapter):
    """使用测试替身适配器的数据仓库连接器"""
    connector = WarehouseConnector(db_url="sqlite://", engine=warehouse_engine)
    connector.adapter = scoped_adapter
    return connector


@pytest.fixture
def cache():
    return CacheService(max_size=32, default_ttl=60)
