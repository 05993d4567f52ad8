"""
报表查询编译器测试
"""
import re

import pytest
import sqlglot
from sqlglot import exp

from analytics_backend.services.database_adapters import PostgreSQLAdapter, SQLiteAdapter
from analytics_backend.services.query_builder import (
    CompiledQuery,
    FilterBinding,
    GraphIntegrityError,
    GroupingMismatchError,
    GroupingSpec,
    JoinPredicate,
    OutputField,
    QueryCompiler,
    SortingSpec,
    SourceNode,
    StructuralViolationError,
    UnknownFilterCodeError,
)
from analytics_backend.services.database_connector import to_named_binds

from conftest import exit_status_graph

PLACEHOLDER = re.compile(r"\$(\d+)")


def placeholders(compiled: CompiledQuery):
    return [int(n) for n in PLACEHOLDER.findall(compiled.text)]


def aggregate_graph(grouping=()):
    """a 为普通字段，b 为 sum 聚合"""
    return exit_status_graph(
        joins=(),
        fields=(
            OutputField(source_alias="s", source_column="a", output_key="a", output_label="A", output_order=1),
            OutputField(
                source_alias="s",
                source_column="b",
                output_key="b",
                output_label="B",
                data_type="number",
                expression_type="aggregate",
                aggregate_fn="sum",
                output_order=2,
                declaration_index=1,
            ),
        ),
        filter_bindings=(),
        grouping=tuple(grouping),
    )


@pytest.fixture
def compiler():
    return QueryCompiler()


class TestEndToEnd:
    """测试 exit-status 报表的完整编译结果"""

    def test_exit_status_report(self, compiler):
        compiled = compiler.compile(exit_status_graph(), {"academic_year": "2024"})

        assert compiled.text == (
            "SELECT s.sis_user_id AS sis_user_id, p.program_name AS program_name\n"
            "FROM data.student_exit_status AS s\n"
            "LEFT JOIN data.programs AS p ON s.program_code = p.program_code\n"
            "WHERE s.academic_year = $1\n"
            "ORDER BY s.sis_user_id"
        )
        assert compiled.params == ("2024",)
        assert compiled.output_shape == (("sis_user_id", "text"), ("program_name", "text"))
        assert compiled.report_id == "exit-status"
        assert "GROUP BY" not in compiled.text

    def test_compile_is_deterministic(self, compiler):
        """相同输入得到相同输出"""
        graph = exit_status_graph()
        first = compiler.compile(graph, {"academic_year": "2024"})
        second = compiler.compile(graph, {"academic_year": "2024"})
        assert first == second
        assert first.content_version == graph.content_version


class TestIdentifierSafety:
    """测试标识符安全和参数化"""

    def test_values_never_inlined(self, compiler):
        hostile = "2024'; DROP TABLE data.programs; --"
        compiled = compiler.compile(exit_status_graph(), {"academic_year": hostile})

        assert hostile not in compiled.text
        assert "DROP" not in compiled.text
        assert compiled.params == (hostile,)

    def test_placeholder_count_matches_params(self, compiler):
        graph = exit_status_graph(filter_bindings=(
            FilterBinding(filter_code="academic_year", source_alias="s", source_column="academic_year"),
            FilterBinding(
                filter_code="programs",
                source_alias="p",
                source_column="program_code",
                operator="in",
                value_transform="csv_to_array",
                predicate_order=2,
                declaration_index=1,
            ),
            FilterBinding(
                filter_code="status",
                source_alias="s",
                source_column="exit_status",
                operator="ilike",
                value_transform="lowercase",
                predicate_order=3,
                declaration_index=2,
            ),
        ))
        compiled = compiler.compile(graph, {"academic_year": "2024", "programs": "MD,PA", "status": "GRAD%"})

        assert placeholders(compiled) == [1, 2, 3]
        assert compiled.placeholder_count == len(compiled.params) == 3
        assert compiled.params == ("2024", ["MD", "PA"], "grad%")
        assert "p.program_code = ANY($2)" in compiled.text
        assert "s.exit_status ILIKE $3" in compiled.text

    def test_invalid_identifier_rejected_before_emission(self, compiler):
        graph = exit_status_graph(fields=(
            OutputField(
                source_alias="s",
                source_column="sis_user_id; DROP TABLE x",
                output_key="sis_user_id",
                output_label="Student ID",
            ),
        ))
        with pytest.raises(StructuralViolationError) as exc_info:
            compiler.compile(graph, {})

        rules = [issue.rule for issue in exc_info.value.issues]
        assert "invalid_identifier" in rules

    def test_uppercase_alias_rejected(self, compiler):
        graph = exit_status_graph(base=SourceNode(
            alias="S",
            schema_name="data",
            table_name="student_exit_status",
            role="base",
        ))
        with pytest.raises(StructuralViolationError):
            compiler.compile(graph, {})


class TestFilterOptionality:
    """测试筛选器可选性"""

    def test_empty_params_omit_where(self, compiler):
        compiled = compiler.compile(exit_status_graph(), {})
        assert "WHERE" not in compiled.text
        assert compiled.params == ()

    @pytest.mark.parametrize("value", ["", "   ", None])
    def test_empty_value_treated_as_absent(self, compiler, value):
        compiled = compiler.compile(exit_status_graph(), {"academic_year": value})
        assert "WHERE" not in compiled.text
        assert compiled.params == ()

    def test_empty_csv_array_skipped(self, compiler):
        graph = exit_status_graph(filter_bindings=(
            FilterBinding(
                filter_code="programs",
                source_alias="s",
                source_column="program_code",
                operator="in",
                value_transform="csv_to_array",
            ),
        ))
        compiled = compiler.compile(graph, {"programs": " , ,"})
        assert "WHERE" not in compiled.text

    def test_unknown_filter_code_ignored(self, compiler):
        compiled = compiler.compile(exit_status_graph(), {"academic_year": "2024", "campus": "north"})

        assert compiled.params == ("2024",)
        assert compiled.ignored_filters == ("campus",)

    def test_unknown_filter_code_strict(self, compiler):
        with pytest.raises(UnknownFilterCodeError) as exc_info:
            compiler.compile(exit_status_graph(), {"campus": "north"}, strict_filters=True)
        assert exc_info.value.filter_codes == ["campus"]
        assert exc_info.value.http_status == 400

    def test_bindings_ordered_by_predicate_order(self, compiler):
        graph = exit_status_graph(filter_bindings=(
            FilterBinding(filter_code="year", source_alias="s", source_column="academic_year",
                          predicate_order=2, declaration_index=0),
            FilterBinding(filter_code="status", source_alias="s", source_column="exit_status",
                          predicate_order=1, declaration_index=1),
        ))
        compiled = compiler.compile(graph, {"year": "2024", "status": "graduated"})

        assert "WHERE s.exit_status = $1 AND s.academic_year = $2" in compiled.text
        assert compiled.params == ("graduated", "2024")

    def test_shared_filter_code_binds_every_target(self, compiler):
        """同一个筛选器code可以绑定到多个列"""
        graph = exit_status_graph(filter_bindings=(
            FilterBinding(filter_code="program", source_alias="s", source_column="program_code"),
            FilterBinding(filter_code="program", source_alias="p", source_column="program_code",
                          declaration_index=1),
        ))
        compiled = compiler.compile(graph, {"program": "MD"})

        assert "WHERE s.program_code = $1 AND p.program_code = $2" in compiled.text
        assert compiled.params == ("MD", "MD")


class TestGrouping:
    """测试聚合与分组"""

    def test_aggregate_without_grouping_fails(self, compiler):
        with pytest.raises(GroupingMismatchError) as exc_info:
            compiler.compile(aggregate_graph(), {})
        assert exc_info.value.ungrouped_keys == ["a"]
        assert exc_info.value.http_status == 400

    def test_grouping_makes_it_compile(self, compiler):
        compiled = compiler.compile(aggregate_graph(grouping=[GroupingSpec(output_key="a")]), {})

        assert "SELECT s.a AS a, sum(s.b) AS b" in compiled.text
        assert "GROUP BY s.a" in compiled.text
        assert compiled.text.endswith("ORDER BY s.a")

    def test_aggregate_only_has_no_order_by(self, compiler):
        graph = exit_status_graph(
            joins=(),
            fields=(
                OutputField(
                    source_alias="s",
                    source_column="sis_user_id",
                    output_key="students",
                    output_label="Students",
                    data_type="number",
                    expression_type="aggregate",
                    aggregate_fn="count",
                ),
            ),
            filter_bindings=(),
        )
        compiled = compiler.compile(graph, {})
        assert compiled.text == "SELECT count(s.sis_user_id) AS students\nFROM data.student_exit_status AS s"


class TestOrdering:
    """测试排序"""

    def test_sorting_spec(self, compiler):
        graph = exit_status_graph(sorting=(
            SortingSpec(output_key="program_name", direction="desc"),
            SortingSpec(output_key="sis_user_id", direction="asc", sort_order=200),
        ))
        compiled = compiler.compile(graph, {})
        assert compiled.text.endswith("ORDER BY p.program_name DESC, s.sis_user_id ASC")

    def test_natural_key_default(self, compiler):
        compiled = compiler.compile(exit_status_graph(), {}, natural_key=("academic_year", "sis_user_id"))
        assert compiled.text.endswith("ORDER BY s.academic_year, s.sis_user_id")

    @pytest.mark.parametrize("natural_key", [("StudentID",), ("_id",), ("sis_user_id", "Term Code")])
    def test_unsafe_natural_key_falls_back(self, compiler, natural_key):
        """目录中的主键列不符合标识符语法时，退回第一个base字段"""
        compiled = compiler.compile(exit_status_graph(), {}, natural_key=natural_key)
        assert compiled.text.endswith("ORDER BY s.sis_user_id")

    def test_fields_follow_output_order(self, compiler):
        fields = exit_status_graph().fields
        graph = exit_status_graph(fields=(
            fields[0].model_copy(update={"output_order": 5}),
            fields[1].model_copy(update={"output_order": 1}),
        ))
        compiled = compiler.compile(graph, {})

        assert compiled.output_keys == ["program_name", "sis_user_id"]
        assert compiled.text.startswith("SELECT p.program_name AS program_name, s.sis_user_id AS sis_user_id")


class TestJoins:
    """测试连接输出"""

    def test_join_priority_controls_emission(self, compiler):
        graph = exit_status_graph(joins=(
            SourceNode(
                alias="p", schema_name="data", table_name="programs", role="join",
                join_type="left", join_to_alias="s", join_priority=200, declaration_index=1,
                predicates=(JoinPredicate(left_alias="s", left_column="program_code",
                                          right_alias="p", right_column="program_code"),),
            ),
            SourceNode(
                alias="t", schema_name="data", table_name="terms", role="join",
                join_type="inner", join_to_alias="s", join_priority=50, declaration_index=2,
                predicates=(JoinPredicate(left_alias="s", left_column="academic_year",
                                          right_alias="t", right_column="academic_year"),),
            ),
        ))
        compiled = compiler.compile(graph, {})
        lines = compiled.text.split("\n")

        assert lines[2] == "INNER JOIN data.terms AS t ON s.academic_year = t.academic_year"
        assert lines[3] == "LEFT JOIN data.programs AS p ON s.program_code = p.program_code"

    def test_cross_join_has_no_on_clause(self, compiler):
        graph = exit_status_graph(joins=(
            SourceNode(alias="c", schema_name="data", table_name="calendar", role="join",
                       join_type="cross", join_to_alias="s", declaration_index=1),
        ), fields=exit_status_graph().fields[:1])
        compiled = compiler.compile(graph, {})
        assert "CROSS JOIN data.calendar AS c\n" in compiled.text

    def test_multiple_predicates_joined_with_and(self, compiler):
        graph = exit_status_graph(joins=(
            SourceNode(
                alias="p", schema_name="data", table_name="programs", role="join",
                join_type="inner", join_to_alias="s", declaration_index=1,
                predicates=(
                    JoinPredicate(left_alias="s", left_column="academic_year", operator=">=",
                                  right_alias="p", right_column="start_year", predicate_order=2),
                    JoinPredicate(left_alias="s", left_column="program_code",
                                  right_alias="p", right_column="program_code", predicate_order=1),
                ),
            ),
        ))
        compiled = compiler.compile(graph, {})
        assert (
            "INNER JOIN data.programs AS p ON s.program_code = p.program_code "
            "AND s.academic_year >= p.start_year"
        ) in compiled.text

    def test_forward_reference_rejected(self, compiler):
        graph = exit_status_graph(joins=(
            SourceNode(
                alias="p", schema_name="data", table_name="programs", role="join",
                join_type="left", join_to_alias="d", declaration_index=1,
                predicates=(JoinPredicate(left_alias="d", left_column="program_code",
                                          right_alias="p", right_column="program_code"),),
            ),
            SourceNode(
                alias="d", schema_name="data", table_name="departments", role="join",
                join_type="left", join_to_alias="s", declaration_index=2,
                predicates=(JoinPredicate(left_alias="s", left_column="department_code",
                                          right_alias="d", right_column="department_code"),),
            ),
        ))
        with pytest.raises(StructuralViolationError) as exc_info:
            compiler.compile(graph, {})
        assert "forward_reference" in [issue.rule for issue in exc_info.value.issues]


class TestParsedStructure:
    """用 sqlglot 解析编译结果，检查语句结构而不是文本"""

    @staticmethod
    def parse(compiled: CompiledQuery) -> exp.Expression:
        sql, _ = to_named_binds(compiled.text, compiled.params)
        return sqlglot.parse_one(sql, read="postgres")

    def test_sources_and_select_list(self, compiler):
        tree = self.parse(compiler.compile(exit_status_graph(), {"academic_year": "2024"}))

        assert isinstance(tree, exp.Select)
        assert [e.alias_or_name for e in tree.expressions] == ["sis_user_id", "program_name"]
        assert [(c.table, c.name) for c in (e.this for e in tree.expressions)] == [
            ("s", "sis_user_id"),
            ("p", "program_name"),
        ]

        base = tree.find(exp.From).this
        assert (base.db, base.name, base.alias) == ("data", "student_exit_status", "s")

        [join] = list(tree.find_all(exp.Join))
        assert join.side == "LEFT"
        assert (join.this.db, join.this.name, join.this.alias) == ("data", "programs", "p")
        on = join.args["on"]
        assert isinstance(on, exp.EQ)
        assert (on.left.table, on.right.table) == ("s", "p")

    def test_every_value_is_a_placeholder(self, compiler):
        graph = exit_status_graph(filter_bindings=(
            FilterBinding(filter_code="academic_year", source_alias="s", source_column="academic_year"),
            FilterBinding(filter_code="programs", source_alias="p", source_column="program_code",
                          operator="in", value_transform="csv_to_array", declaration_index=1),
            FilterBinding(filter_code="status", source_alias="s", source_column="exit_status",
                          operator="ilike", declaration_index=2),
        ))
        compiled = compiler.compile(graph, {"academic_year": "2024'; --", "programs": "MD,PA", "status": "g%"})
        tree = self.parse(compiled)

        assert [p.name for p in tree.find_all(exp.Placeholder, bfs=False)] == ["p_1", "p_2", "p_3"]
        assert list(tree.find_all(exp.Literal)) == []
        where = tree.find(exp.Where)
        assert where.find(exp.Any) is not None
        assert where.find(exp.ILike) is not None

    def test_grouping(self, compiler):
        compiled = compiler.compile(aggregate_graph(grouping=[GroupingSpec(output_key="a")]), {})
        tree = self.parse(compiled)

        assert [c.sql() for c in tree.find(exp.Group).expressions] == ["s.a"]
        assert tree.find(exp.Sum).this.sql() == "s.b"
        assert [o.this.sql() for o in tree.find(exp.Order).expressions] == ["s.a"]


class TestDialects:
    """测试方言差异"""

    def test_sqlite_in_uses_json_each(self):
        compiler = QueryCompiler(adapter=SQLiteAdapter())
        graph = exit_status_graph(filter_bindings=(
            FilterBinding(filter_code="programs", source_alias="s", source_column="program_code",
                          operator="in", value_transform="csv_to_array"),
        ))
        compiled = compiler.compile(graph, {"programs": "MD, PA"})

        assert "s.program_code IN (SELECT value FROM json_each($1))" in compiled.text
        assert compiled.params == ('["MD", "PA"]',)

    def test_default_adapter_is_postgresql(self):
        assert isinstance(QueryCompiler().adapter, PostgreSQLAdapter)


def test_compiler_does_not_mutate_graph(compiler):
    graph = exit_status_graph()
    before = graph.model_dump()
    compiler.compile(graph, {"academic_year": "2024"})
    assert graph.model_dump() == before


def test_integrity_error_payload_is_generic():
    error = GraphIntegrityError("join p 没有连接谓词", report_id="exit-status")
    assert error.to_payload() == {"error": "报表配置错误"}
