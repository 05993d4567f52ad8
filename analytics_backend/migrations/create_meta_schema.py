"""
Metadata schema migration: create meta/auth tables and lineage views

Creates every ORM table (meta.reports, meta.report_dependencies, ...).
On PostgreSQL it also installs the updated_at trigger and the two lineage
views used for pre-change impact analysis:

    meta.v_report_table_usage       one row per active source node of an active report
    meta.v_report_dependency_detail source nodes with their active join predicates

SQLite (local development) only gets the tables.
"""
import sys

from sqlalchemy import text

from analytics_backend.database import get_database
from analytics_backend.models.base import Base, META_SCHEMA
from analytics_backend.utils.logger import get_logger

logger = get_logger(__name__)

UPDATED_AT_FUNCTION = f"""
CREATE OR REPLACE FUNCTION {META_SCHEMA}.set_updated_at_now() RETURNS trigger AS $$
BEGIN
    NEW.updated_at = now();
    RETURN NEW;
END;
$$ LANGUAGE plpgsql
"""

TABLE_USAGE_VIEW = f"""
CREATE OR REPLACE VIEW {META_SCHEMA}.v_report_table_usage AS
SELECT
    r.id AS report_id,
    r.route,
    r.title,
    r.category,
    d.source_schema,
    d.source_name,
    d.source_alias,
    d.source_kind,
    d.relation_role,
    d.join_type,
    d.join_to_alias,
    d.join_priority
FROM {META_SCHEMA}.report_dependencies d
JOIN {META_SCHEMA}.reports r ON r.id = d.report_id
WHERE d.is_active AND r.is_active
"""

DEPENDENCY_DETAIL_VIEW = f"""
CREATE OR REPLACE VIEW {META_SCHEMA}.v_report_dependency_detail AS
SELECT
    r.id AS report_id,
    r.route,
    d.source_alias,
    d.source_schema,
    d.source_name,
    d.relation_role,
    d.join_type,
    d.join_to_alias,
    d.join_priority,
    j.left_alias,
    j.left_column,
    j.operator,
    j.right_alias,
    j.right_column,
    j.predicate_order
FROM {META_SCHEMA}.report_dependencies d
JOIN {META_SCHEMA}.reports r ON r.id = d.report_id
LEFT JOIN {META_SCHEMA}.report_dependency_joins j
    ON j.dependency_id = d.dependency_id AND j.is_active
WHERE d.is_active AND r.is_active
"""


def timestamped_tables():
    """meta schema 中带 updated_at 列的表"""
    return [
        table.name
        for table in Base.metadata.sorted_tables
        if table.schema == META_SCHEMA and "updated_at" in table.columns
    ]


def migrate_create_meta_schema():
    """Create metadata tables, triggers and lineage views"""
    db = get_database()

    logger.info("Starting metadata schema migration...")
    db.create_tables()
    logger.info("✓ Tables created")

    if db.is_sqlite:
        logger.info("SQLite metadata store: skipping triggers and lineage views")
        return

    with db.engine.begin() as conn:
        conn.execute(text(UPDATED_AT_FUNCTION))
        for table in timestamped_tables():
            trigger = f"set_{table}_updated_at"
            conn.execute(text(f"DROP TRIGGER IF EXISTS {trigger} ON {META_SCHEMA}.{table}"))
            conn.execute(text(
                f"CREATE TRIGGER {trigger} BEFORE UPDATE ON {META_SCHEMA}.{table} "
                f"FOR EACH ROW EXECUTE FUNCTION {META_SCHEMA}.set_updated_at_now()"
            ))
            logger.info(f"✓ {table}: updated_at trigger")

        conn.execute(text(TABLE_USAGE_VIEW))
        conn.execute(text(DEPENDENCY_DETAIL_VIEW))
        logger.info("✓ Lineage views created")

    logger.info("✅ Metadata schema migration completed successfully!")


if __name__ == "__main__":
    import argparse
    parser = argparse.ArgumentParser(description='Create the metadata schema')
    parser.add_argument('--no-interactive', action='store_true', help='Skip confirmation')
    args = parser.parse_args()

    print("=" * 60)
    print("Metadata Schema Migration")
    print("=" * 60)

    if not args.no_interactive:
        print("\nPress Enter to continue, Ctrl+C to cancel...")
        try:
            input()
        except KeyboardInterrupt:
            print("\n❌ Migration cancelled")
            sys.exit(0)

    try:
        migrate_create_meta_schema()
        print("\n🎉 Migration successful!")
    except Exception as e:
        print(f"\n❌ Migration failed: {e}")
        sys.exit(1)
