"""
报表目录服务测试
"""
import pytest

from analytics_backend.models import Filter, Report, ReportFilter
from analytics_backend.services.catalog_service import (
    CatalogService,
    normalize_category,
    to_category_label,
)

from conftest import EXIT_STATUS_ID, EXIT_STATUS_ROUTE, add_exit_status_report


@pytest.fixture
def catalog(seeded_database):
    with seeded_database.get_session() as session:
        add_exit_status_report(session, report_id="enrollment", route="/enrollment/",
                               category="Admissions", title="enrollment trend")
        add_exit_status_report(session, report_id="board-pass", route="board-pass",
                               category="student_outcomes", title="Board Pass Rates")
        session.add(Report(id="retired", route="retired", title="Retired", category="admissions",
                           is_active=False))
        session.add(Report(id="no-route", route="  ", title="Broken", category=""))
    return CatalogService(seeded_database)


class TestCategoryHelpers:
    """测试分类辅助函数"""

    def test_normalize_category(self):
        assert normalize_category("  Student_Outcomes ") == "student_outcomes"
        assert normalize_category(None) == ""

    def test_to_category_label(self):
        assert to_category_label("student_outcomes") == "Student Outcomes"
        assert to_category_label("clinical-rotations") == "Clinical Rotations"
        assert to_category_label("") == "Other"


class TestActiveReports:
    """测试启用报表列表"""

    def test_sorted_by_category_then_title(self, catalog):
        reports = catalog.get_active_reports()
        assert [r.id for r in reports] == ["enrollment", "board-pass", EXIT_STATUS_ID]

    def test_route_normalized_and_href(self, catalog):
        enrollment = catalog.get_active_reports()[0]
        assert enrollment.route == "enrollment"
        assert enrollment.href == "/reports/enrollment"
        assert enrollment.category == "admissions"

    def test_categories(self, catalog):
        categories = catalog.get_active_categories()
        assert [(c.category_key, c.category_label) for c in categories] == [
            ("admissions", "Admissions"),
            ("student_outcomes", "Student Outcomes"),
        ]
        assert [r.id for r in categories[1].reports] == ["board-pass", EXIT_STATUS_ID]


class TestReportConfig:
    """测试报表配置"""

    def test_config_with_filters(self, catalog):
        config = catalog.get_report_config(f"/{EXIT_STATUS_ROUTE}")
        assert config.id == EXIT_STATUS_ID
        assert config.route == EXIT_STATUS_ROUTE
        assert len(config.filters) == 1
        academic_year = config.filters[0]
        assert academic_year.filter_code == "academic_year"
        assert academic_year.label == "Academic Year"
        assert academic_year.type == "select"
        assert academic_year.column == "academic_year"

    def test_declaration_type_overrides_catalog(self, catalog, seeded_database):
        with seeded_database.get_session() as session:
            session.add(Filter(filter_code="program", type=None))
            session.flush()
            session.add(ReportFilter(report_id=EXIT_STATUS_ID, filter_code="program", type="multiselect"))

        config = catalog.get_report_config(EXIT_STATUS_ROUTE)
        program = next(f for f in config.filters if f.filter_code == "program")
        assert program.type == "multiselect"
        assert program.label == "program"

    @pytest.mark.parametrize("route", ["", "  ", "retired", "unknown"])
    def test_missing_config(self, catalog, route):
        assert catalog.get_report_config(route) is None
