"""
安全报表服务测试（元数据库 + 数据仓库均为内存SQLite）
"""
from unittest.mock import Mock

import pytest

from analytics_backend.models import ReportDependencyField
from analytics_backend.services.dto import AuthUser
from analytics_backend.services.query_builder import (
    AccessScopeMismatchError,
    CatalogSnapshot,
    GroupingMismatchError,
    ReportNotFoundError,
    SchemaDriftError,
    TableInfo,
    UnknownFilterCodeError,
)
from analytics_backend.services.schema_catalog import SchemaCatalogService
from analytics_backend.services.secure_report import SecureReportService

from conftest import EXIT_STATUS_ID, EXIT_STATUS_ROUTE, ScopedSQLiteAdapter

ANALYST = AuthUser(sis_user_id="123", email="student.analyst@example.edu")


@pytest.fixture
def service(seeded_database, warehouse, cache):
    return SecureReportService(database=seeded_database, connector=warehouse, cache=cache)


def stub_catalog(snapshot):
    catalog = Mock(spec=SchemaCatalogService)
    catalog.get_snapshot.return_value = snapshot
    return catalog


class TestRunReport:
    """测试报表运行"""

    def test_end_to_end(self, service):
        result = service.run_report(EXIT_STATUS_ROUTE, {"academic_year": "2024"}, ANALYST)

        assert result.count == 3
        assert result.data[0] == {"sis_user_id": "123", "program_name": "Doctor of Medicine"}
        assert [c.key for c in result.columns] == ["sis_user_id", "program_name"]
        assert result.meta.report_id == EXIT_STATUS_ID
        assert result.meta.anonymized is False
        assert [rule.column_name for rule in result.meta.pii_columns] == ["sis_user_id"]

    def test_anonymize(self, service):
        result = service.run_report(EXIT_STATUS_ROUTE, {"academic_year": "2024"}, ANALYST, anonymize=True)

        assert {row["sis_user_id"] for row in result.data} == {"REDACTED"}
        assert result.data[0]["program_name"] == "Doctor of Medicine"
        assert result.meta.anonymized is True

    def test_unknown_filter_is_ignored(self, service):
        result = service.run_report(EXIT_STATUS_ROUTE, {"academic_year": "2023", "campus": "north"}, ANALYST)
        assert [row["sis_user_id"] for row in result.data] == ["125"]
        assert result.meta.ignored_filters == ["campus"]

    def test_no_filters_returns_all_rows(self, service):
        result = service.run_report(EXIT_STATUS_ROUTE, {}, ANALYST)
        assert result.count == 4

    def test_unknown_route(self, service):
        with pytest.raises(ReportNotFoundError):
            service.run_report("nope", {}, ANALYST)

    def test_scope_mismatch_returns_no_rows(self, service, warehouse):
        """回读的用户与调用方不一致时中止，不返回任何数据"""
        warehouse.adapter = ScopedSQLiteAdapter(override_user_id="456")
        service.connector.execute_compiled = Mock(wraps=service.connector.execute_compiled)

        with pytest.raises(AccessScopeMismatchError):
            service.run_report(EXIT_STATUS_ROUTE, {"academic_year": "2024"}, ANALYST)
        service.connector.execute_compiled.assert_not_called()

        warehouse.adapter = ScopedSQLiteAdapter()
        result = service.run_report(EXIT_STATUS_ROUTE, {"academic_year": "2024"}, ANALYST)
        assert result.count == 3


class TestCompileReport:
    """测试编译预览和校验"""

    def test_strict_filters(self, service):
        with pytest.raises(UnknownFilterCodeError):
            service.compile_report(EXIT_STATUS_ID, {"campus": "north"}, strict_filters=True)

    def test_grouping_mismatch(self, service, seeded_database):
        with seeded_database.get_session() as session:
            session.add(ReportDependencyField(
                report_id=EXIT_STATUS_ID,
                source_alias="s",
                source_column="sis_user_id",
                output_key="students",
                output_label="Students",
                data_type="number",
                expression_type="aggregate",
                aggregate_fn="count",
            ))

        with pytest.raises(GroupingMismatchError) as exc_info:
            service.compile_report(EXIT_STATUS_ID, {})
        assert exc_info.value.ungrouped_keys == ["sis_user_id", "program_name"]

    def test_schema_drift(self, service):
        service.schema_catalog = stub_catalog(CatalogSnapshot.from_tables(
            [TableInfo(schema_name="data", table_name="student_exit_status",
                       columns={"sis_user_id": "TEXT", "program_code": "TEXT", "academic_year": "TEXT"})],
            schemas=["data"],
        ))
        with pytest.raises(SchemaDriftError) as exc_info:
            service.compile_report(EXIT_STATUS_ID, {})
        assert [issue.table for issue in exc_info.value.issues] == ["data.programs"]

    def test_natural_key_from_catalog(self, service, warehouse):
        service.schema_catalog = SchemaCatalogService(warehouse, service.cache, schemas=["data"])
        compiled = service.compile_report(EXIT_STATUS_ID, {})
        assert compiled.text.endswith("ORDER BY s.sis_user_id")

        result = service.validate_report(EXIT_STATUS_ID)
        assert result.ok
        assert result.existence_checked

    def test_unsafe_primary_key_is_not_used(self, service, warehouse):
        """base表主键列名不符合标识符语法时，报表仍可编译和运行"""
        service.schema_catalog = stub_catalog(CatalogSnapshot.from_tables(
            [
                TableInfo(schema_name="data", table_name="student_exit_status",
                          columns={"StudentID": "INTEGER", "sis_user_id": "TEXT",
                                   "program_code": "TEXT", "academic_year": "TEXT"},
                          primary_key=("StudentID",)),
                TableInfo(schema_name="data", table_name="programs",
                          columns={"program_code": "TEXT", "program_name": "TEXT"}),
            ],
            schemas=["data"],
        ))
        graph = service.load_graph(EXIT_STATUS_ID)
        assert service.natural_key_for(graph, service.schema_catalog.get_snapshot()) == ()

        compiled = service.compile_report(EXIT_STATUS_ID, {})
        assert compiled.text.endswith("ORDER BY s.sis_user_id")

        result = service.run_report(EXIT_STATUS_ROUTE, {"academic_year": "2024"}, ANALYST)
        assert result.count == 3

    def test_graph_is_cached_until_invalidated(self, service, seeded_database):
        first = service.load_graph(EXIT_STATUS_ID)
        with seeded_database.get_session() as session:
            session.add(ReportDependencyField(
                report_id=EXIT_STATUS_ID,
                source_alias="s",
                source_column="exit_status",
                output_key="exit_status",
                output_label="Exit Status",
                output_order=3,
            ))

        assert service.load_graph(EXIT_STATUS_ID) is first

        assert service.invalidate_report(EXIT_STATUS_ID) is True
        assert service.invalidate_report(EXIT_STATUS_ID) is False
        reloaded = service.load_graph(EXIT_STATUS_ID)
        assert reloaded.content_version != first.content_version
        assert "exit_status" in reloaded.field_by_key()
