"""Tests for column type normalization and cross-engine mapping.

Covers canonical spellings, SQLite affinity, type mapping with warnings and
overrides, default translation and per-value conversions.
"""

import json
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from schema_bridge.schema.models import Dialect, UnsupportedDialectError
from schema_bridge.schema.types import (
    canonical_type,
    get_value_transformation,
    map_default,
    map_type,
    split_type,
    sqlite_affinity,
    types_compatible,
)


# ------------------------------------------------------------------
# Dialect parsing
# ------------------------------------------------------------------


class TestDialectParse:
    """Dialect identifiers and their aliases."""

    @pytest.mark.parametrize("value", ["sqlite", "SQLite3", " sqlite "])
    def test_sqlite_aliases(self, value: str) -> None:
        assert Dialect.parse(value) is Dialect.SQLITE

    @pytest.mark.parametrize("value", ["postgres", "postgresql", "PG"])
    def test_postgres_aliases(self, value: str) -> None:
        assert Dialect.parse(value) is Dialect.POSTGRES

    def test_unknown_dialect_raises(self) -> None:
        with pytest.raises(UnsupportedDialectError, match="mysql"):
            Dialect.parse("mysql")

    def test_unsupported_dialect_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            Dialect.parse("oracle")


# ------------------------------------------------------------------
# Canonical types
# ------------------------------------------------------------------


class TestCanonicalType:
    """Normalization of engine-native type strings."""

    def test_split_type_with_parameters(self) -> None:
        assert split_type("NUMERIC(10, 2)") == ("numeric", [10, 2], False)

    def test_split_type_array(self) -> None:
        assert split_type("text[]") == ("text", [], True)

    def test_split_type_multiword(self) -> None:
        assert split_type("character  varying") == ("character varying", [], False)

    def test_postgres_verbose_spellings_folded(self) -> None:
        assert canonical_type("character varying(255)", "postgres") == "varchar(255)"
        assert canonical_type("timestamp with time zone", "postgres") == "timestamptz"
        assert canonical_type("integer", "postgres") == "int"
        assert canonical_type("boolean", "postgres") == "bool"

    def test_sqlite_keeps_declared_name(self) -> None:
        assert canonical_type("INTEGER", "sqlite") == "integer"
        assert canonical_type("NUMERIC(10, 2)", "sqlite") == "numeric(10,2)"

    def test_typeless_sqlite_column_is_text(self) -> None:
        assert canonical_type("", "sqlite") == "text"

    def test_array_suffix_preserved(self) -> None:
        assert canonical_type("character varying[]", "postgres") == "varchar[]"


class TestSqliteAffinity:
    """SQLite storage affinity rules."""

    @pytest.mark.parametrize(
        "declared, affinity",
        [
            ("BIGINT", "INTEGER"),
            ("VARCHAR(10)", "TEXT"),
            ("CLOB", "TEXT"),
            ("", "BLOB"),
            ("BLOB", "BLOB"),
            ("DOUBLE", "REAL"),
            ("FLOAT", "REAL"),
            ("DECIMAL(5,2)", "NUMERIC"),
            ("BOOLEAN", "NUMERIC"),
        ],
    )
    def test_affinity(self, declared: str, affinity: str) -> None:
        assert sqlite_affinity(declared) == affinity


# ------------------------------------------------------------------
# Type mapping
# ------------------------------------------------------------------


class TestMapType:
    """Cross-engine type mapping."""

    def test_same_dialect_unchanged(self) -> None:
        assert map_type("varchar(20)", "postgres", "postgres") == "varchar(20)"

    def test_sqlite_varchar_keeps_length(self) -> None:
        assert map_type("varchar(50)", "sqlite", "postgres") == "VARCHAR(50)"

    def test_sqlite_blob_to_bytea(self) -> None:
        assert map_type("blob", "sqlite", "postgres") == "BYTEA"

    def test_sqlite_datetime_to_timestamp(self) -> None:
        assert map_type("datetime", "sqlite", "postgres") == "TIMESTAMP"

    def test_typeless_sqlite_column_to_text(self) -> None:
        assert map_type("", "sqlite", "postgres") == "TEXT"

    def test_postgres_jsonb_to_text(self) -> None:
        assert map_type("jsonb", "postgres", "sqlite") == "TEXT"

    def test_postgres_bool_to_integer(self) -> None:
        assert map_type("bool", "postgres", "sqlite") == "INTEGER"

    def test_postgres_array_to_text(self) -> None:
        assert map_type("int[]", "postgres", "sqlite") == "TEXT"

    def test_unknown_type_passes_through_with_warning(self) -> None:
        warnings: list[str] = []
        assert map_type("geometry", "postgres", "sqlite", warnings) == "geometry"
        assert len(warnings) == 1
        assert "geometry" in warnings[0]

    def test_unknown_type_without_warning_list(self) -> None:
        assert map_type("hstore", "postgres", "sqlite") == "hstore"

    def test_override_on_full_type(self) -> None:
        overrides = {"NUMERIC(10,2)": "REAL"}
        assert map_type("numeric(10,2)", "postgres", "sqlite", overrides=overrides) == "REAL"

    def test_override_on_base_type(self) -> None:
        overrides = {"MONEY": "REAL"}
        assert map_type("money", "postgres", "sqlite", overrides=overrides) == "REAL"

    def test_override_wins_over_builtin_mapping(self) -> None:
        warnings: list[str] = []
        result = map_type("text", "sqlite", "postgres", warnings, {"TEXT": "CITEXT"})
        assert result == "CITEXT"
        assert warnings == []


class TestTypesCompatible:
    """Source/target type agreement after mapping."""

    def test_integer_matches_postgres_int(self) -> None:
        assert types_compatible("integer", "int", "sqlite", "postgres")

    def test_varchar_length_ignored_on_postgres(self) -> None:
        assert types_compatible("varchar(50)", "varchar(255)", "sqlite", "postgres")

    def test_text_does_not_match_int(self) -> None:
        assert not types_compatible("text", "int", "sqlite", "postgres")

    def test_serial_matches_int(self) -> None:
        assert types_compatible("int", "serial", "postgres", "postgres")

    def test_sqlite_target_compares_affinity(self) -> None:
        assert types_compatible("bool", "integer", "postgres", "sqlite")
        assert types_compatible("varchar", "text", "postgres", "sqlite")
        assert not types_compatible("text", "integer", "postgres", "sqlite")


# ------------------------------------------------------------------
# Defaults
# ------------------------------------------------------------------


class TestMapDefault:
    """Default expression translation."""

    def test_none_stays_none(self) -> None:
        assert map_default(None, "postgres", "sqlite") is None

    def test_same_dialect_unchanged(self) -> None:
        assert map_default("now()", "postgres", "postgres") == "now()"

    def test_sequence_default_dropped(self) -> None:
        assert map_default("nextval('users_id_seq'::regclass)", "postgres", "sqlite") is None

    def test_cast_suffix_stripped(self) -> None:
        assert map_default("'active'::character varying", "postgres", "sqlite") == "'active'"

    def test_now_becomes_current_timestamp(self) -> None:
        assert map_default("now()", "postgres", "sqlite") == "CURRENT_TIMESTAMP"

    def test_postgres_boolean_literal(self) -> None:
        assert map_default("true", "postgres", "sqlite") == "1"
        assert map_default("false", "postgres", "sqlite") == "0"

    def test_postgres_function_dropped(self) -> None:
        assert map_default("gen_random_uuid()", "postgres", "sqlite") is None

    def test_sqlite_datetime_now(self) -> None:
        assert map_default("(datetime('now'))", "sqlite", "postgres") == "CURRENT_TIMESTAMP"

    def test_sqlite_boolean_for_boolean_target(self) -> None:
        assert map_default("1", "sqlite", "postgres", "BOOLEAN") == "true"
        assert map_default("0", "sqlite", "postgres", "BOOLEAN") == "false"

    def test_sqlite_integer_default_kept(self) -> None:
        assert map_default("0", "sqlite", "postgres", "INTEGER") == "0"

    def test_sqlite_function_dropped(self) -> None:
        assert map_default("(random())", "sqlite", "postgres", "INTEGER") is None


# ------------------------------------------------------------------
# Value transformations
# ------------------------------------------------------------------


class TestValueTransformation:
    """Per-value converters used while copying rows."""

    def test_same_dialect_needs_no_conversion(self) -> None:
        assert get_value_transformation("int", "int", "postgres", "postgres") is None

    def test_postgres_to_sqlite_bool(self) -> None:
        convert = get_value_transformation("bool", "INTEGER", "postgres", "sqlite")
        assert convert(True) == 1
        assert convert(False) == 0
        assert convert(None) is None

    def test_postgres_to_sqlite_structured_values(self) -> None:
        convert = get_value_transformation("jsonb", "TEXT", "postgres", "sqlite")
        assert json.loads(convert({"a": [1, 2]})) == {"a": [1, 2]}
        assert convert(date(2024, 1, 2)) == "2024-01-02"
        assert convert(Decimal("1.50")) == "1.50"

    def test_sqlite_to_postgres_bool(self) -> None:
        convert = get_value_transformation("integer", "BOOLEAN", "sqlite", "postgres")
        assert convert(1) is True
        assert convert(0) is False
        assert convert("yes") is True

    def test_sqlite_to_postgres_timestamptz(self) -> None:
        convert = get_value_transformation("text", "timestamptz", "sqlite", "postgres")
        result = convert("2024-01-02T03:04:05Z")
        assert result == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    def test_sqlite_to_postgres_naive_timestamp(self) -> None:
        convert = get_value_transformation("text", "TIMESTAMP", "sqlite", "postgres")
        assert convert("2024-01-02 03:04:05") == datetime(2024, 1, 2, 3, 4, 5)

    def test_sqlite_to_postgres_numeric(self) -> None:
        convert = get_value_transformation("real", "NUMERIC(10,2)", "sqlite", "postgres")
        assert convert("1.50") == Decimal("1.50")

    def test_sqlite_to_postgres_json_serialized(self) -> None:
        convert = get_value_transformation("text", "jsonb", "sqlite", "postgres")
        assert convert('{"a": 1}') == '{"a": 1}'
        assert json.loads(convert({"a": 1})) == {"a": 1}

    def test_sqlite_to_postgres_array(self) -> None:
        convert = get_value_transformation("text", "text[]", "sqlite", "postgres")
        assert convert('["a", "b"]') == ["a", "b"]
        assert convert("plain") == ["plain"]

    def test_integer_target_needs_no_conversion(self) -> None:
        assert get_value_transformation("integer", "INTEGER", "sqlite", "postgres") is None
