"""Parse and render single MySQL/MariaDB column definitions."""

from __future__ import annotations

import re

from sql_text import find_closing_paren, quote_identifier, skip_quoted
from sql_types import ColumnDef, ColumnParseError

KNOWN_TYPES = frozenset(
    {
        "bit", "bool", "boolean", "tinyint", "smallint", "mediumint", "int", "integer", "bigint", "serial",
        "decimal", "dec", "numeric", "fixed", "float", "double", "real",
        "date", "datetime", "timestamp", "time", "year",
        "char", "varchar", "nchar", "nvarchar", "binary", "varbinary",
        "tinyblob", "blob", "mediumblob", "longblob", "tinytext", "text", "mediumtext", "longtext",
        "enum", "set", "json", "uuid", "inet4", "inet6", "vector",
        "geometry", "point", "linestring", "polygon", "multipoint", "multilinestring", "multipolygon",
        "geometrycollection",
    }
)
CHARACTER_TYPES = frozenset({"char", "varchar"})

_TYPE_RE = re.compile(r"([A-Za-z][\w]*)\s*(?:\((.*)\))?", flags=re.S)
_WORD_RE = re.compile(r"[^\s()'\"`,]+")
_LITERAL_PREFIX_RE = re.compile(r"[bBxXnN]|_\w+")
_NUMERIC_ARGS_RE = re.compile(r"\d+(?:\s*,\s*\d+)*")
# A parenthesised group directly after one of these starts an expression.
_NO_ATTACH = frozenset({"DEFAULT", "AS", "CHECK", "COMMENT"})


def _tokenize(fragment: str) -> list[str]:
    tokens: list[str] = []
    idx = 0
    length = len(fragment)
    while idx < length:
        ch = fragment[idx]
        if ch.isspace() or ch in ",)":
            idx += 1
            continue
        if ch in "'\"`":
            end = skip_quoted(fragment, idx)
            tokens.append(fragment[idx:end])
            idx = end
            continue
        if ch == "(":
            close = find_closing_paren(fragment, idx)
            end = length if close < 0 else close + 1
            group = fragment[idx:end]
            adjacent = idx > 0 and not fragment[idx - 1].isspace()
            if tokens and (len(tokens) == 1 or adjacent) and tokens[-1].upper() not in _NO_ATTACH:
                tokens[-1] += group
            else:
                tokens.append(group)
            idx = end
            continue
        m = _WORD_RE.match(fragment, idx)
        end = m.end()
        if end < length and fragment[end] == "'" and _LITERAL_PREFIX_RE.fullmatch(m.group(0)):
            end = skip_quoted(fragment, end)
        tokens.append(fragment[idx:end])
        idx = end
    return tokens


def scan_column(fragment: str) -> tuple[ColumnDef, bool]:
    """Parse a column fragment, also reporting an inline ``UNIQUE`` marker.

    The unique key itself needs the column name, so the CREATE TABLE parser
    builds it from the returned flag.
    """
    tokens = _tokenize(fragment)
    if not tokens:
        raise ColumnParseError(f"Empty column definition: {fragment!r}")

    m = _TYPE_RE.fullmatch(tokens[0])
    if not m or m.group(1).lower() not in KNOWN_TYPES:
        raise ColumnParseError(f"Unrecognised column type in {fragment.strip()!r}")

    datatype = m.group(1).lower()
    args = (m.group(2) or "").strip()
    typesize = 0
    if args and _NUMERIC_ARGS_RE.fullmatch(args):
        args = re.sub(r"\s+", "", args)
        typesize = int(args.split(",")[0])

    is_unsigned = False
    zerofill = False
    is_nullable = True
    default: str | None = None
    is_auto_increment = False
    is_primary = False
    is_unique = False

    upper = [t.upper() for t in tokens]
    i = 1
    while i < len(tokens):
        word = upper[i]
        nxt = upper[i + 1] if i + 1 < len(tokens) else ""
        if word == "UNSIGNED":
            is_unsigned = True
        elif word == "ZEROFILL":
            zerofill = True
        elif word == "NOT" and nxt == "NULL":
            is_nullable = False
            i += 1
        elif word == "NULL":
            is_nullable = True
        elif word == "DEFAULT" and nxt:
            default = tokens[i + 1]
            i += 1
        elif word == "AUTO_INCREMENT":
            is_auto_increment = True
        elif word == "PRIMARY" and nxt == "KEY":
            is_primary = True
            i += 1
        elif word == "KEY":
            # a bare KEY attribute is shorthand for PRIMARY KEY
            is_primary = True
        elif word == "UNIQUE":
            is_unique = True
            if nxt == "KEY":
                i += 1
        elif word == "CHARACTER" and nxt == "SET":
            i += 2
        elif word == "ON" and nxt == "UPDATE":
            i += 2
        elif word in ("CHARSET", "COLLATE", "COMMENT", "AS", "CHECK", "COLUMN_FORMAT", "STORAGE"):
            i += 1
        elif word == "REFERENCES":
            # inline REFERENCES is accepted but ignored by MySQL
            break
        i += 1

    col_type = datatype + (f"({args})" if args else "")
    if is_unsigned:
        col_type += " unsigned"
    if zerofill:
        col_type += " zerofill"

    column = ColumnDef(
        type=col_type,
        datatype=datatype,
        is_unsigned=is_unsigned,
        typesize=typesize,
        length=typesize if datatype in CHARACTER_TYPES else 0,
        is_nullable=is_nullable,
        default=default,
        is_auto_increment=is_auto_increment,
        is_primary=is_primary,
        fragment=fragment.strip(),
    )
    return column, is_unique


def parse_column(fragment: str) -> ColumnDef:
    """Parse a column definition such as ``varchar(64) NOT NULL DEFAULT ''``.

    The fragment starts at the type; the column name is not part of it.
    Unique, index and foreign key membership is left empty: those keys may
    span several columns and are attached by the statement-level parser.
    """
    return scan_column(fragment)[0]


def column_definition(column: ColumnDef) -> str:
    parts = [column.type, "NULL" if column.is_nullable else "NOT NULL"]
    if column.default is not None:
        parts += ["DEFAULT", column.default]
    if column.is_auto_increment:
        parts.append("AUTO_INCREMENT")
    return " ".join(parts)


def column_def_to_string(column: ColumnDef) -> str:
    text = column_definition(column)
    if column.is_primary:
        text += " PRIMARY KEY"
    return text


def _render_columns(columns: tuple[str, ...]) -> str:
    return "(" + ",".join(quote_identifier(c) for c in columns) + ")"


def column_keys(column: ColumnDef) -> str:
    keys: list[str] = []
    if column.is_primary:
        keys.append("PRIMARY KEY")
    for key in column.unique:
        keys.append(f"UNIQUE KEY {quote_identifier(key.name or '')} {_render_columns(key.columns)}")
    for key in column.index:
        keys.append(f"KEY {quote_identifier(key.name or '')} {_render_columns(key.columns)}")
    for key in column.foreign:
        if key.ref is None:
            continue
        prefix = f"CONSTRAINT {quote_identifier(key.name)} " if key.name else ""
        keys.append(
            f"{prefix}FOREIGN KEY {_render_columns(key.columns)}"
            f" REFERENCES {quote_identifier(key.ref.table)} ({quote_identifier(key.ref.column)})"
        )
    return "; ".join(keys)
