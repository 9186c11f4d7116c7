"""
DM → MySQL 타입 매핑 테스트
규칙 분기마다 독립된 케이스로 검증
"""

import pytest

from dm_migration.extractor import ColumnDefinition
from dm_migration.type_mapper import TargetColumn, map_column, map_columns, map_type


class TestExactKeywords:
    """표준 정수/불리언/실수 키워드"""

    @pytest.mark.parametrize(
        "source_type, expected",
        [
            ("BIGINT", "BIGINT"),
            ("INT", "INT"),
            ("INTEGER", "INT"),
            ("SMALLINT", "SMALLINT"),
            ("TINYINT", "TINYINT"),
            ("BYTE", "TINYINT"),
            ("BIT", "TINYINT(1)"),
            ("BOOL", "TINYINT(1)"),
            ("BOOLEAN", "TINYINT(1)"),
            ("REAL", "DOUBLE"),
            ("DOUBLE", "DOUBLE"),
            ("DOUBLE PRECISION", "DOUBLE"),
            ("FLOAT", "DOUBLE"),
        ],
    )
    def test_keyword(self, source_type, expected):
        assert map_type(source_type) == expected

    def test_case_and_whitespace_normalized(self):
        """소문자/앞뒤 공백이 있어도 매칭"""
        assert map_type("  int ") == "INT"
        assert map_type("bigint") == "BIGINT"


class TestNumeric:
    """NUMBER / DECIMAL / NUMERIC / DEC"""

    def test_unspecified_precision_defaults_to_wide_decimal(self):
        assert map_type("NUMBER", precision=0, scale=0) == "DECIMAL(38,4)"

    @pytest.mark.parametrize(
        "precision, expected",
        [
            (1, "TINYINT"),
            (3, "TINYINT"),
            (4, "SMALLINT"),
            (5, "SMALLINT"),
            (6, "INT"),
            (9, "INT"),
            (10, "BIGINT"),
            (19, "BIGINT"),
            (20, "DECIMAL(20,0)"),
            (38, "DECIMAL(38,0)"),
        ],
    )
    def test_integer_precision_picks_smallest_width(self, precision, expected):
        assert map_type("NUMBER", precision=precision, scale=0) == expected

    def test_fractional_decimal(self):
        assert map_type("NUMBER", precision=10, scale=2) == "DECIMAL(10,2)"

    def test_precision_clamped_to_65(self):
        assert map_type("NUMBER", precision=80, scale=2) == "DECIMAL(65,2)"

    def test_scale_clamped_to_30(self):
        assert map_type("NUMBER", precision=40, scale=35) == "DECIMAL(40,30)"

    def test_precision_raised_to_scale(self):
        assert map_type("NUMBER", precision=3, scale=5) == "DECIMAL(5,5)"

    @pytest.mark.parametrize("source_type", ["DECIMAL", "NUMERIC", "DEC"])
    def test_other_numeric_keywords(self, source_type):
        assert map_type(source_type, precision=5, scale=0) == "SMALLINT"
        assert map_type(source_type, precision=12, scale=4) == "DECIMAL(12,4)"


class TestCharacter:
    """문자열 타입은 바이트 길이(1문자 3바이트 가정)로 결정"""

    @pytest.mark.parametrize(
        "length, expected",
        [
            (100, "VARCHAR(100)"),
            (5461, "VARCHAR(5461)"),
            (5462, "TEXT"),
            (6000, "TEXT"),
            (21845, "TEXT"),
            (21846, "LONGTEXT"),
            (25000, "LONGTEXT"),
        ],
    )
    def test_length_thresholds(self, length, expected):
        assert map_type("VARCHAR2", length=length) == expected

    @pytest.mark.parametrize("source_type", ["CHAR", "VARCHAR", "NVARCHAR2", "CHARACTER", "VARSTR"])
    def test_char_like_keywords(self, source_type):
        assert map_type(source_type, length=20) == "VARCHAR(20)"


class TestDateTime:
    def test_date_includes_time(self):
        assert map_type("DATE") == "DATETIME"

    def test_timestamp_on_mysql8_keeps_fraction(self):
        assert map_type("TIMESTAMP", version=8) == "DATETIME(6)"

    def test_timestamp_on_mysql5_drops_fraction(self):
        assert map_type("TIMESTAMP", version=5) == "DATETIME"

    def test_timestamp_with_time_zone(self):
        assert map_type("TIMESTAMP WITH TIME ZONE", version=8) == "DATETIME(6)"

    def test_other_time_types(self):
        assert map_type("TIME") == "DATETIME"
        assert map_type("DATETIME", version=8) == "DATETIME"


class TestLargeObjects:
    @pytest.mark.parametrize("source_type", ["CLOB", "TEXT", "NCLOB"])
    def test_text_lobs(self, source_type):
        assert map_type(source_type, length=0) == "LONGTEXT"

    def test_longvarchar_follows_character_rule(self):
        """LONGVARCHAR 는 CHAR 를 포함하므로 문자열 규칙이 먼저 적용"""
        assert map_type("LONGVARCHAR", length=2147483647) == "LONGTEXT"
        assert map_type("LONGVARCHAR", length=200) == "VARCHAR(200)"

    @pytest.mark.parametrize("source_type", ["BLOB", "IMAGE", "BINARY", "VARBINARY", "LONGVARBINARY"])
    def test_binary_lobs(self, source_type):
        assert map_type(source_type) == "LONGBLOB"


class TestFallback:
    @pytest.mark.parametrize("source_type", ["INTERVAL YEAR", "ROWID", "", None])
    def test_unknown_types_become_longtext(self, source_type):
        assert map_type(source_type) == "LONGTEXT"


class TestMapColumns:
    """컬럼 정의 변환 시 플래그와 순서 보존"""

    def test_flags_and_order_preserved(self, sample_columns):
        mapped = map_columns(sample_columns, version=8)

        assert [c.name for c in mapped] == ["ID", "NAME", "CREATED_AT"]
        assert [c.is_primary_key for c in mapped] == [c.is_primary_key for c in sample_columns]
        assert [c.is_auto_increment for c in mapped] == [c.is_identity for c in sample_columns]
        assert [c.data_type for c in mapped] == ["BIGINT", "VARCHAR(100)", "DATETIME(6)"]

    def test_single_column(self):
        column = ColumnDefinition("AMOUNT", "NUMBER", 22, 12, 2, False, 4)
        assert map_column(column, version=5) == TargetColumn(
            name="AMOUNT",
            data_type="DECIMAL(12,2)",
            nullable=False,
            is_primary_key=False,
            is_auto_increment=False,
        )

    def test_composite_primary_key_count(self):
        columns = [
            ColumnDefinition("A", "INT", is_primary_key=True, column_id=1),
            ColumnDefinition("B", "INT", column_id=2),
            ColumnDefinition("C", "INT", is_primary_key=True, column_id=3),
        ]
        mapped = map_columns(columns)
        assert len(mapped) == len(columns)
        assert [c.name for c in mapped if c.is_primary_key] == ["A", "C"]
