"""
Unit Tests for the Checksum Validator
=====================================

Tests for type classification, checksum query generation and matching.
"""

import pytest

from query_verifier.checksum.kinds import (
    ChecksumKind,
    checksum_kind,
    has_cardinality,
    has_floating_elements,
)
from query_verifier.checksum.strategies import COMPARATORS, GENERATORS, floats_match
from query_verifier.checksum.validator import ChecksumValidator, ensure_same_columns
from query_verifier.config import VerifierConfig
from query_verifier.errors import SchemaMismatchError
from query_verifier.models import ChecksumResult, Column, ColumnCategory, MatchVerdict, classify_type


class TestColumnClassification:
    """Tests for mapping engine types onto checksum kinds."""

    @pytest.mark.parametrize(
        "type_name, category",
        [
            ("bigint", ColumnCategory.NUMERIC),
            ("decimal(10,2)", ColumnCategory.NUMERIC),
            ("INT", ColumnCategory.NUMERIC),
            ("double", ColumnCategory.FLOATING_POINT),
            ("REAL", ColumnCategory.FLOATING_POINT),
            ("varchar(20)", ColumnCategory.STRING),
            ("TEXT", ColumnCategory.STRING),
            ("timestamp(3) with time zone", ColumnCategory.TIMESTAMP),
            ("boolean", ColumnCategory.BOOLEAN),
            ("array(double)", ColumnCategory.COMPLEX),
            ("map(varchar, bigint)", ColumnCategory.COMPLEX),
            ("", ColumnCategory.OTHER),
            ("ipaddress", ColumnCategory.OTHER),
        ],
    )
    def test_classify_type(self, type_name: str, category: ColumnCategory) -> None:
        """Test that type names map to the expected category."""
        assert classify_type(type_name) == category

    def test_every_category_has_a_kind(self) -> None:
        """Test that checksum kinds cover all categories."""
        assert checksum_kind(Column.of("x", "double")) == ChecksumKind.FLOATING
        assert checksum_kind(Column.of("x", "bigint")) == ChecksumKind.NUMERIC
        assert checksum_kind(Column.of("x", "boolean")) == ChecksumKind.BOOLEAN
        assert checksum_kind(Column.of("x", "varchar")) == ChecksumKind.HASH
        assert checksum_kind(Column.of("x", "json")) == ChecksumKind.HASH
        assert checksum_kind(Column.of("x", "")) == ChecksumKind.HASH

    def test_structured_columns(self) -> None:
        """Test cardinality and nested-float detection."""
        assert has_cardinality(Column.of("x", "array(bigint)"))
        assert not has_cardinality(Column.of("x", "row(a bigint)"))
        assert has_floating_elements(Column.of("x", "map(varchar, double)"))
        assert not has_floating_elements(Column.of("x", "array(varchar)"))
        assert not has_floating_elements(Column.of("x", "double"))


class TestChecksumQueryGeneration:
    """Tests for checksum SQL generation."""

    def test_single_pass_query(self, validator: ChecksumValidator, columns: list[Column]) -> None:
        """Test that one query covers the row count and every column."""
        sql = validator.generate_checksum_query("tmp_table", columns)

        assert sql.startswith("SELECT\n")
        assert 'count(*) AS "row_count"' in sql
        assert 'sum("id") AS "id$sum"' in sql
        assert 'checksum("id") AS "id$checksum"' in sql
        assert 'count_if(is_nan("price")) AS "price$nan_count"' in sql
        assert 'sum(CASE WHEN is_finite("price") THEN "price" END) AS "price$sum"' in sql
        assert 'checksum("name") AS "name$checksum"' in sql
        assert sql.endswith('FROM "tmp_table"')

    def test_dotted_table_name_is_quoted_per_part(self, validator: ChecksumValidator) -> None:
        """Test that catalog.schema.table names are quoted part by part."""
        sql = validator.generate_checksum_query("hive.tmp.t1", [Column.of("a", "bigint")])
        assert sql.endswith('FROM "hive"."tmp"."t1"')

    def test_identifiers_are_escaped(self, validator: ChecksumValidator) -> None:
        """Test that embedded quotes in column names are doubled."""
        sql = validator.generate_checksum_query("t", [Column.of('we"ird', "varchar")])
        assert 'checksum("we""ird")' in sql

    def test_boolean_and_array_aggregates(self, validator: ChecksumValidator) -> None:
        """Test kind-specific aggregates."""
        sql = validator.generate_checksum_query(
            "t", [Column.of("flag", "boolean"), Column.of("tags", "array(varchar)")]
        )
        assert 'count_if("flag") AS "flag$true_count"' in sql
        assert 'count_if(NOT "flag") AS "flag$false_count"' in sql
        assert 'sum(cardinality("tags")) AS "tags$cardinality_sum"' in sql


class TestChecksumMatching:
    """Tests for comparing control and test checksum rows."""

    def test_identical_rows_match(self, validator, columns, make_checksum) -> None:
        """Test that identical checksums produce MATCH."""
        result = validator.match_checksums(columns, make_checksum(), make_checksum())
        assert result.verdict == MatchVerdict.MATCH
        assert result.matched
        assert result.mismatches == ()

    def test_float_sum_within_tolerance(self, validator, columns, make_checksum) -> None:
        """Test that floating sums tolerate relative error."""
        control = make_checksum(price__sum=1000.0)
        test = make_checksum(price__sum=1000.0 + 1e-3)
        assert validator.match_checksums(columns, control, test).matched

    def test_float_sum_outside_tolerance(self, validator, columns, make_checksum) -> None:
        """Test that large floating drift is a mismatch."""
        control = make_checksum(price__sum=1000.0)
        test = make_checksum(price__sum=1001.0)
        result = validator.match_checksums(columns, control, test)
        assert result.verdict == MatchVerdict.MISMATCH
        assert result.mismatched_columns == ["price"]
        assert result.mismatches[0].aggregate == "sum"

    def test_missing_float_sum_equals_zero(self, validator, columns, make_checksum) -> None:
        """Test that a NULL sum (no finite values) compares as zero."""
        control = make_checksum(price__sum=None)
        test = make_checksum(price__sum=0.0)
        assert validator.match_checksums(columns, control, test).matched

    def test_special_values_compared_exactly(self, validator, columns, make_checksum) -> None:
        """Test that NaN counts are not tolerance-matched."""
        control = make_checksum(price__nan_count=1)
        test = make_checksum(price__nan_count=2)
        result = validator.match_checksums(columns, control, test)
        assert result.verdict == MatchVerdict.MISMATCH
        assert result.mismatches[0].aggregate == "nan_count"

    def test_reports_every_mismatched_column(self, validator, columns, make_checksum) -> None:
        """Test that matching does not stop at the first mismatch."""
        control = make_checksum()
        test = make_checksum(id__checksum="0000000000000001", name__checksum="ffffffffffffffff")
        result = validator.match_checksums(columns, control, test)
        assert result.mismatched_columns == ["id", "name"]
        assert "id" in result.message and "name" in result.message

    def test_row_count_mismatch(self, validator, columns, make_checksum) -> None:
        """Test that differing row counts are reported."""
        result = validator.match_checksums(columns, make_checksum(3), make_checksum(4))
        assert result.verdict == MatchVerdict.MISMATCH
        assert result.row_count_mismatch
        assert result.mismatched_columns[0] == "row_count"

    def test_missing_aggregate_is_error(self, validator, columns, make_checksum) -> None:
        """Test that an incomplete checksum row yields ERROR, not a crash."""
        test = make_checksum()
        values = dict(test.values)
        del values["price$sum"]
        result = validator.match_checksums(
            columns, make_checksum(), ChecksumResult(row_count=3, values=values)
        )
        assert result.verdict == MatchVerdict.ERROR
        assert "price$sum" in result.message

    @pytest.mark.parametrize("category", list(ColumnCategory))
    def test_every_category_has_a_strategy(self, category: ColumnCategory) -> None:
        """Test that each column category maps to a kind with a generator and comparator."""
        kind = checksum_kind(Column(name="c", type_name="t", category=category))
        assert kind in GENERATORS
        assert kind in COMPARATORS

    def test_strategy_tables_cover_every_kind(self) -> None:
        """Test that no checksum kind is left without a strategy."""
        assert set(GENERATORS) == set(ChecksumKind)
        assert set(COMPARATORS) == set(ChecksumKind)


class TestHelpers:
    """Tests for column agreement and float tolerance helpers."""

    def test_ensure_same_columns(self, columns: list[Column]) -> None:
        """Test that identical column lists pass and renamed ones fail."""
        ensure_same_columns(columns, list(columns))
        with pytest.raises(SchemaMismatchError) as exc:
            ensure_same_columns(columns, columns[:2] + [Column.of("title", "varchar")])
        assert exc.value.test_columns == ["id", "price", "title"]

    def test_floats_match_absolute_margin(self) -> None:
        """Test that values near zero match on the absolute margin."""
        config = VerifierConfig(absolute_error_margin=1e-9)
        assert floats_match(1e-12, -1e-12, config)
        assert not floats_match(1.0, -1.0, config)

    def test_floats_match_relative_margin(self) -> None:
        """Test the relative margin boundary."""
        config = VerifierConfig(relative_error_margin=1e-2)
        assert floats_match(100.0, 100.5, config)
        assert not floats_match(100.0, 105.0, config)
