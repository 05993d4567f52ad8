"""
筛选值转换测试
"""
import pytest

from analytics_backend.services.query_builder.transforms import (
    apply_value_transform,
    normalize_param_value,
    split_csv,
)
from analytics_backend.services.query_builder.vocabulary import ValueTransform


class TestApplyValueTransform:
    """测试值转换"""

    def test_csv_to_array(self):
        """逗号分隔字符串拆分为列表并去除空白"""
        assert apply_value_transform(ValueTransform.CSV_TO_ARRAY, "a, b ,c") == ["a", "b", "c"]

    def test_csv_to_array_drops_empty_pieces(self):
        assert apply_value_transform(ValueTransform.CSV_TO_ARRAY, "a,, ,b,") == ["a", "b"]

    def test_lowercase(self):
        assert apply_value_transform(ValueTransform.LOWERCASE, "ACME") == "acme"

    def test_trim(self):
        assert apply_value_transform(ValueTransform.TRIM, "  2024 ") == "2024"

    def test_identity_is_noop(self):
        """identity 不做任何修改（包括空白）"""
        assert apply_value_transform(ValueTransform.IDENTITY, " Mixed Case ") == " Mixed Case "

    def test_split_csv_single_value(self):
        assert split_csv("MD") == ["MD"]


class TestNormalizeParamValue:
    """测试筛选值规范化"""

    @pytest.mark.parametrize("value", [None, "", "   ", [], ()])
    def test_absent_values(self, value):
        """空值视为未传入"""
        assert normalize_param_value(value) is None

    def test_string_passthrough(self):
        assert normalize_param_value("2024") == "2024"

    def test_list_joined_with_commas(self):
        assert normalize_param_value(["MD", "PA"]) == "MD,PA"

    def test_bool_and_number(self):
        assert normalize_param_value(True) == "true"
        assert normalize_param_value(False) == "false"
        assert normalize_param_value(2024) == "2024"
