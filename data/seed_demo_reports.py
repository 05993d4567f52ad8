"""
Seed the metadata store with the demo report

Creates the "Student Exit Status" report: one base table, one left join,
two output fields and an academic_year filter binding, plus a demo admin
user and a PII rule. Running it twice is safe (existing rows are replaced).

Usage:
    python data/seed_demo_reports.py --admin-email admin@example.edu
"""
import argparse
import sys

from analytics_backend.database import get_database, init_database
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

DEMO_REPORT_ID = "exit-status"
DEMO_ROUTE = "student-exit-status"


def build_demo_report() -> Report:
    """Build the exit-status report and its dependency graph (not yet persisted)"""
    report = Report(
        id=DEMO_REPORT_ID,
        route=DEMO_ROUTE,
        title="Student Exit Status",
        category="student_outcomes",
        description="Exit status of students by program and academic year",
    )

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
        join_priority=100,
    )
    programs.joins.append(
        ReportDependencyJoin(
            left_alias="s",
            left_column="program_code",
            operator="=",
            right_alias="p",
            right_column="program_code",
            predicate_order=1,
        )
    )
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

    report.filter_bindings.append(
        ReportDependencyFilterBinding(
            filter_code="academic_year",
            source_alias="s",
            source_column="academic_year",
            operator="=",
            value_transform="identity",
            predicate_order=1,
        )
    )
    report.report_filters.append(ReportFilter(filter_code="academic_year", type="select"))
    return report


def seed_demo_reports(database, admin_email: str = None):
    """
    Replace the demo report, its filter catalog entry and PII rule

    Args:
        database: metadata Database
        admin_email: optional email for a demo admin user
    """
    with database.get_session() as session:
        existing = session.get(Report, DEMO_REPORT_ID)
        if existing is not None:
            session.delete(existing)
            session.flush()

        session.merge(Filter(
            filter_code="academic_year",
            label="Academic Year",
            description="Academic year, e.g. 2024",
            type="select",
            table="data.student_exit_status",
            column="academic_year",
        ))
        session.flush()

        session.add(build_demo_report())
        session.merge(PiiColumn(column_name="sis_user_id", redacted_value="REDACTED"))

        if admin_email:
            session.merge(User(
                sis_user_id="0",
                email=admin_email.lower(),
                display_name="Demo Admin",
                is_active=True,
                is_admin=True,
            ))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the demo report")
    parser.add_argument("--admin-email", help="Create a demo admin user with this email")
    args = parser.parse_args()

    try:
        init_database()
        seed_demo_reports(get_database(), args.admin_email)
        print(f"✅ Seeded report {DEMO_REPORT_ID} (route /{DEMO_ROUTE})")
    except Exception as e:
        print(f"❌ Seeding failed: {e}")
        sys.exit(1)
