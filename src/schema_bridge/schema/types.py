"""Column type normalization and cross-engine type mapping.

Everything here is pure: no I/O, no connections.  Introspectors use
``canonical_type``/``split_type`` to normalize catalog output, the differ uses
``types_compatible`` to decide whether two columns really differ, and the
migration code uses ``map_type``, ``map_default`` and
``get_value_transformation`` to carry columns and values across engines.

Usage:
    from schema_bridge.schema.types import map_type, types_compatible

    warnings: list[str] = []
    map_type("varchar(50)", "sqlite", "postgres", warnings)   # 'VARCHAR(50)'
    map_type("jsonb", "postgres", "sqlite", warnings)         # 'TEXT'
    map_type("geometry", "postgres", "sqlite", warnings)      # 'geometry' (+ warning)
"""

import json
import logging
import re
import uuid
from collections.abc import Callable
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any

from schema_bridge.schema.models import Dialect

logger = logging.getLogger(__name__)


# ============================================================================
# Mapping Tables
# ============================================================================

SQLITE_TO_POSTGRES_TYPES: dict[str, str] = {
    # Integer types
    "INTEGER": "INTEGER",
    "INT": "INTEGER",
    "INT2": "SMALLINT",
    "INT8": "BIGINT",
    "TINYINT": "SMALLINT",
    "SMALLINT": "SMALLINT",
    "MEDIUMINT": "INTEGER",
    "BIGINT": "BIGINT",
    "UNSIGNED BIG INT": "BIGINT",
    # Real/Float types
    "REAL": "REAL",
    "DOUBLE": "DOUBLE PRECISION",
    "DOUBLE PRECISION": "DOUBLE PRECISION",
    "FLOAT": "REAL",
    # Numeric/Decimal
    "NUMERIC": "NUMERIC",
    "DECIMAL": "DECIMAL",
    # Text types
    "TEXT": "TEXT",
    "CHARACTER": "VARCHAR",
    "CHAR": "VARCHAR",
    "VARCHAR": "VARCHAR",
    "VARYING CHARACTER": "VARCHAR",
    "NCHAR": "VARCHAR",
    "NATIVE CHARACTER": "VARCHAR",
    "NVARCHAR": "VARCHAR",
    "CLOB": "TEXT",
    # Binary
    "BLOB": "BYTEA",
    # Boolean
    "BOOLEAN": "BOOLEAN",
    "BOOL": "BOOLEAN",
    # Date/Time (SQLite stores these as text or numbers)
    "DATE": "DATE",
    "DATETIME": "TIMESTAMP",
    "TIMESTAMP": "TIMESTAMP",
    "TIME": "TIME",
}

POSTGRES_TO_SQLITE_TYPES: dict[str, str] = {
    # Integer types
    "INTEGER": "INTEGER",
    "INT": "INTEGER",
    "INT4": "INTEGER",
    "SMALLINT": "INTEGER",
    "INT2": "INTEGER",
    "BIGINT": "INTEGER",
    "INT8": "INTEGER",
    "SERIAL": "INTEGER",
    "BIGSERIAL": "INTEGER",
    "SMALLSERIAL": "INTEGER",
    # Float types
    "REAL": "REAL",
    "FLOAT4": "REAL",
    "DOUBLE PRECISION": "REAL",
    "FLOAT8": "REAL",
    # Numeric
    "NUMERIC": "NUMERIC",
    "DECIMAL": "NUMERIC",
    "MONEY": "NUMERIC",
    # Text types
    "TEXT": "TEXT",
    "VARCHAR": "TEXT",
    "CHARACTER VARYING": "TEXT",
    "CHAR": "TEXT",
    "CHARACTER": "TEXT",
    "BPCHAR": "TEXT",
    "CITEXT": "TEXT",
    # Binary
    "BYTEA": "BLOB",
    # Boolean
    "BOOLEAN": "INTEGER",
    "BOOL": "INTEGER",
    # Date/Time
    "DATE": "TEXT",
    "TIME": "TEXT",
    "TIMETZ": "TEXT",
    "TIME WITH TIME ZONE": "TEXT",
    "TIME WITHOUT TIME ZONE": "TEXT",
    "TIMESTAMP": "TEXT",
    "TIMESTAMPTZ": "TEXT",
    "TIMESTAMP WITH TIME ZONE": "TEXT",
    "TIMESTAMP WITHOUT TIME ZONE": "TEXT",
    "INTERVAL": "TEXT",
    # JSON
    "JSON": "TEXT",
    "JSONB": "TEXT",
    # UUID
    "UUID": "TEXT",
    # Network types
    "INET": "TEXT",
    "CIDR": "TEXT",
    "MACADDR": "TEXT",
    # Geometric types (simplified)
    "POINT": "TEXT",
    "LINE": "TEXT",
    "LSEG": "TEXT",
    "BOX": "TEXT",
    "PATH": "TEXT",
    "POLYGON": "TEXT",
    "CIRCLE": "TEXT",
    # Full-text search
    "TSVECTOR": "TEXT",
    "TSQUERY": "TEXT",
}

# PostgreSQL types that accept a (length) or (precision, scale) suffix
_POSTGRES_PARAMETERIZED = {"VARCHAR", "CHAR", "NUMERIC", "DECIMAL", "BIT", "VARBIT"}

# Verbose catalog spellings -> short canonical names
_POSTGRES_ALIASES = {
    "character varying": "varchar",
    "character": "char",
    "bpchar": "char",
    "integer": "int",
    "int4": "int",
    "int8": "bigint",
    "int2": "smallint",
    "serial4": "serial",
    "serial8": "bigserial",
    "boolean": "bool",
    "decimal": "numeric",
    "float8": "double precision",
    "float4": "real",
    "timestamp with time zone": "timestamptz",
    "timestamp without time zone": "timestamp",
    "time with time zone": "timetz",
    "time without time zone": "time",
    "bit varying": "varbit",
}

_TYPE_PARTS = re.compile(r"^\s*([^(\[]*?)\s*(?:\(([^)]*)\))?\s*((?:\[\])*)\s*$")


# ============================================================================
# Canonical Types
# ============================================================================


def split_type(native_type: str) -> tuple[str, list[int], bool]:
    """Split a type string into base name, numeric parameters and array flag.

    Example:
        split_type("NUMERIC(10, 2)")     # ('numeric', [10, 2], False)
        split_type("character varying")  # ('character varying', [], False)
        split_type("text[]")             # ('text', [], True)
    """
    text = " ".join((native_type or "").strip().lower().split())
    match = _TYPE_PARTS.match(text)
    if not match:
        return text, [], False

    base, raw_params, array_suffix = match.groups()
    params: list[int] = []
    if raw_params:
        for part in raw_params.split(","):
            part = part.strip()
            if part.isdigit():
                params.append(int(part))
    return base, params, bool(array_suffix)


def canonical_type(native_type: str, dialect: Dialect | str) -> str:
    """Normalize an engine-native type string to its canonical spelling.

    Lowercases, collapses whitespace and, for PostgreSQL, folds the verbose
    ``information_schema`` spellings into their short names.  Typeless SQLite
    columns become ``text``.
    """
    dialect = Dialect.parse(dialect)
    base, params, is_array = split_type(native_type)
    if not base:
        base = "text"
    if dialect is Dialect.POSTGRES:
        base = _POSTGRES_ALIASES.get(base, base)

    result = base
    if params:
        result += "(" + ",".join(str(p) for p in params) + ")"
    if is_array:
        result += "[]"
    return result


def sqlite_affinity(declared_type: str) -> str:
    """Return the SQLite storage affinity for a declared column type.

    Follows SQLite's documented affinity rules, in order.
    """
    upper = (declared_type or "").upper()
    if "INT" in upper:
        return "INTEGER"
    if any(token in upper for token in ("CHAR", "CLOB", "TEXT")):
        return "TEXT"
    if not upper or "BLOB" in upper:
        return "BLOB"
    if any(token in upper for token in ("REAL", "FLOA", "DOUB")):
        return "REAL"
    return "NUMERIC"


# ============================================================================
# Cross-engine Mapping
# ============================================================================


def map_type(
    native_type: str,
    source_dialect: Dialect | str,
    target_dialect: Dialect | str,
    warnings: list[str] | None = None,
    overrides: dict[str, str] | None = None,
) -> str:
    """Map a column type from one engine to another.

    Same-dialect calls return the input unchanged.  Unknown types pass
    through unchanged; a warning is logged and appended to ``warnings``
    when a list is supplied.

    Args:
        native_type: Column type as the source engine spells it.
        source_dialect: Engine the type comes from.
        target_dialect: Engine the type is for.
        warnings: Optional list collecting unmapped-type warnings.
        overrides: Optional custom mappings keyed by upper-cased type
            (full type first, then base type).

    Returns:
        The type string to use on the target engine.
    """
    source = Dialect.parse(source_dialect)
    target = Dialect.parse(target_dialect)
    if source is target:
        return native_type

    normalized = " ".join((native_type or "").upper().split())
    base, params, is_array = split_type(native_type)
    base_upper = base.upper()

    if overrides:
        for key in (normalized, base_upper):
            if key in overrides:
                return overrides[key]

    if source is Dialect.SQLITE:
        if not base_upper:
            return "TEXT"
        mapped = SQLITE_TO_POSTGRES_TYPES.get(base_upper)
        if mapped:
            if params and mapped in _POSTGRES_PARAMETERIZED:
                return f"{mapped}({','.join(str(p) for p in params)})"
            return mapped
    else:
        if is_array:
            return "TEXT"
        mapped = POSTGRES_TO_SQLITE_TYPES.get(base_upper)
        if mapped:
            return mapped

    message = (
        f"No {source.value} -> {target.value} mapping for type '{native_type}'; "
        f"kept as-is"
    )
    logger.warning(message)
    if warnings is not None:
        warnings.append(message)
    return native_type


def types_compatible(
    source_type: str,
    target_type: str,
    source_dialect: Dialect | str,
    target_dialect: Dialect | str,
    overrides: dict[str, str] | None = None,
) -> bool:
    """Check whether a source column type matches a target column type.

    The source type is mapped into the target dialect first.  SQLite
    targets compare storage affinity; PostgreSQL targets compare the
    canonical base type, ignoring length and precision.
    """
    target = Dialect.parse(target_dialect)
    mapped = map_type(source_type, source_dialect, target, overrides=overrides)

    if target is Dialect.SQLITE:
        return sqlite_affinity(mapped) == sqlite_affinity(target_type)

    def _base(type_name: str) -> str:
        return canonical_type(type_name, target).split("(")[0]

    mapped_base, target_base = _base(mapped), _base(target_type)
    serial_aliases = {"serial": "int", "bigserial": "bigint", "smallserial": "smallint"}
    mapped_base = serial_aliases.get(mapped_base, mapped_base)
    target_base = serial_aliases.get(target_base, target_base)
    return mapped_base == target_base


_CAST_SUFFIX = re.compile(r"::[a-z_][a-z0-9_ ]*(?:\([0-9, ]*\))?(?:\[\])?", re.IGNORECASE)
_NOW_FUNCTIONS = {"now()", "current_timestamp", "transaction_timestamp()", "localtimestamp"}


def map_default(
    default: str | None,
    source_dialect: Dialect | str,
    target_dialect: Dialect | str,
    target_type: str = "",
) -> str | None:
    """Translate a column default expression across engines.

    Returns ``None`` for defaults that cannot be expressed on the target
    (sequence calls, engine-specific functions).
    """
    if default is None:
        return None
    source = Dialect.parse(source_dialect)
    target = Dialect.parse(target_dialect)
    if source is target:
        return default

    value = default.strip()
    lowered = value.lower()

    if source is Dialect.POSTGRES:
        if "nextval(" in lowered:
            return None
        value = _CAST_SUFFIX.sub("", value).strip()
        lowered = value.lower()
        if lowered in _NOW_FUNCTIONS:
            return "CURRENT_TIMESTAMP"
        if lowered in ("current_date", "current_time"):
            return lowered.upper()
        if lowered in ("true", "false"):
            return "1" if lowered == "true" else "0"
        if "(" in value:
            logger.debug(f"Dropping default {default!r}: no SQLite equivalent")
            return None
        return value

    # SQLite -> PostgreSQL
    stripped = value[1:-1].strip() if value.startswith("(") and value.endswith(")") else value
    lowered = stripped.lower()
    if lowered in ("current_timestamp", "datetime('now')", "datetime(\"now\")"):
        return "CURRENT_TIMESTAMP"
    if lowered in ("current_date", "date('now')"):
        return "CURRENT_DATE"
    if lowered in ("current_time", "time('now')"):
        return "CURRENT_TIME"
    if canonical_type(target_type or "", Dialect.POSTGRES).startswith("bool"):
        if stripped in ("0", "1"):
            return "true" if stripped == "1" else "false"
    if "(" in stripped:
        logger.debug(f"Dropping default {default!r}: no PostgreSQL equivalent")
        return None
    return stripped


# ============================================================================
# Value Transformations
# ============================================================================


def _to_sqlite_value(value: Any) -> Any:
    """Convert a driver value into something SQLite can store."""
    if value is None:
        return None
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, (int, float, str, bytes)):
        return value
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, (list, dict)):
        return json.dumps(value, default=str)
    if isinstance(value, (Decimal, uuid.UUID, timedelta)):
        return str(value)
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    return str(value)


def _to_postgres_bool(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip().lower() in ("1", "t", "true", "y", "yes")
    return value != 0


def _to_postgres_array(value: Any) -> Any:
    if value is None or isinstance(value, list):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except ValueError:
            return [value]
        return parsed if isinstance(parsed, list) else [parsed]
    return [value]


def _to_postgres_json(value: Any) -> Any:
    # asyncpg encodes json/jsonb parameters from their text form
    if value is None or isinstance(value, str):
        return value
    return json.dumps(value)


def _parse_datetime(value: Any, aware: bool) -> Any:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        parsed = datetime.fromtimestamp(value, tz=timezone.utc)
    else:
        parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    if aware and parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    if not aware and parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _parse_date(value: Any) -> Any:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])


def _parse_time(value: Any) -> Any:
    if value is None or isinstance(value, time):
        return value
    return time.fromisoformat(str(value).strip())


def _to_decimal(value: Any) -> Any:
    if value is None or isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _to_text(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def get_value_transformation(
    source_type: str,
    target_type: str,
    source_dialect: Dialect | str,
    target_dialect: Dialect | str,
) -> Callable[[Any], Any] | None:
    """Return a per-value converter for a column, or ``None`` if not needed.

    Args:
        source_type: Column type on the source engine.
        target_type: Column type on the target engine.
        source_dialect: Engine rows are read from.
        target_dialect: Engine rows are written to.

    Example:
        convert = get_value_transformation("bool", "INTEGER", "postgres", "sqlite")
        convert(True)  # 1
    """
    source = Dialect.parse(source_dialect)
    target = Dialect.parse(target_dialect)
    if source is target:
        return None

    if target is Dialect.SQLITE:
        return _to_sqlite_value

    target_canonical = canonical_type(target_type, Dialect.POSTGRES)
    base = target_canonical.split("(")[0]

    if target_canonical.endswith("[]"):
        return _to_postgres_array
    if base == "bool":
        return _to_postgres_bool
    if base in ("json", "jsonb"):
        return _to_postgres_json
    if base == "timestamptz":
        return lambda value: _parse_datetime(value, aware=True)
    if base == "timestamp":
        return lambda value: _parse_datetime(value, aware=False)
    if base == "date":
        return _parse_date
    if base in ("time", "timetz"):
        return _parse_time
    if base == "numeric":
        return _to_decimal
    if base in ("text", "varchar", "char", "citext"):
        return _to_text
    return None
