"""Classify the statements of a MySQL/MariaDB dump into buckets and order its tables."""

from __future__ import annotations

import dataclasses
import logging
import re
from pathlib import Path
from typing import Iterable

from parse_column import scan_column
from resolve_order import resolve_order
from split_alter import ALTER_HEAD_RE, alter_clauses, is_foreign_clause, parse_alter_clause, single_clause_statement
from sql_config import SqlConfig
from sql_text import (
    IDENTIFIER_PATTERN,
    QUALIFIED_NAME_PATTERN,
    find_closing_paren,
    is_balanced,
    split_sql_list,
    split_statements,
    strip_comments,
    unquote_identifier,
    unquote_qualified,
)
from sql_types import (
    AlterParsed,
    AlterType,
    ColumnParseError,
    FailedQuery,
    KeyInfo,
    ParsedNames,
    ParsedQuery,
    SqlParseError,
    StatementParseError,
    TableDeps,
    TableInfo,
)

logger = logging.getLogger(__name__)

_QNAME = QUALIFIED_NAME_PATTERN
_DEFINER_VALUE = r"(?:`[^`]*`|'[^']*'|\"[^\"]*\"|[\w$.%-]+)(?:\s*@\s*(?:`[^`]*`|'[^']*'|\"[^\"]*\"|[\w$.%-]+))?|CURRENT_USER(?:\s*\(\s*\))?"
_CREATE_PREFIX = (
    r"^CREATE\s+(?:OR\s+REPLACE\s+)?(?:ALGORITHM\s*=\s*\w+\s+)?"
    rf"(?:DEFINER\s*=\s*(?:{_DEFINER_VALUE})\s+)?(?:SQL\s+SECURITY\s+\w+\s+)?"
)
_IF_NOT_EXISTS = r"(?:IF\s+NOT\s+EXISTS\s+)?"
_DEFINER_RE = re.compile(rf"DEFINER\s*=\s*(?:{_DEFINER_VALUE})", flags=re.I)
_CONDITIONAL_COMMENT_RE = re.compile(r"/\*!\d*\s?|\*/")
_VALUES_RE = re.compile(r"\s*VALUES?\b\s*", flags=re.I)
_TABLE_ITEM_RE = re.compile(
    r"^(?:PRIMARY\s+KEY|UNIQUE\b|KEY\b|INDEX\b|FULLTEXT\b|SPATIAL\b|CONSTRAINT\b|FOREIGN\s+KEY|CHECK\b|PERIOD\s+FOR\b)",
    flags=re.I,
)
_COLUMN_ITEM_RE = re.compile(rf"^(?P<name>{IDENTIFIER_PATTERN})\s+(?P<definition>.+)$", flags=re.S)


@dataclasses.dataclass(frozen=True)
class _Matcher:
    bucket: str
    prefix: re.Pattern
    name: re.Pattern | None = None


def _named(prefix: str) -> re.Pattern:
    return re.compile(prefix + rf"\s+{_IF_NOT_EXISTS}(?P<name>{_QNAME})", flags=re.I | re.S)


_CREATE_TABLE_RE = _named(r"^CREATE\s+(?:OR\s+REPLACE\s+)?(?:TEMPORARY\s+)?TABLE")
_INSERT_HEAD_RE = re.compile(
    rf"^INSERT\s+(?:(?:LOW_PRIORITY|DELAYED|HIGH_PRIORITY)\s+)?(?:IGNORE\s+)?(?:INTO\s+)?(?P<name>{_QNAME})",
    flags=re.I,
)

# Tried in order; the first matching prefix decides the bucket.
MATCHERS: tuple[_Matcher, ...] = (
    _Matcher("view", re.compile(_CREATE_PREFIX + r"VIEW\b", flags=re.I), _named(_CREATE_PREFIX + "VIEW")),
    _Matcher(
        "functions",
        re.compile(_CREATE_PREFIX + r"(?:AGGREGATE\s+)?FUNCTION\b", flags=re.I),
        _named(_CREATE_PREFIX + r"(?:AGGREGATE\s+)?FUNCTION"),
    ),
    _Matcher("procedures", re.compile(_CREATE_PREFIX + r"PROCEDURE\b", flags=re.I), _named(_CREATE_PREFIX + "PROCEDURE")),
    _Matcher("triggers", re.compile(_CREATE_PREFIX + r"TRIGGER\b", flags=re.I), _named(_CREATE_PREFIX + "TRIGGER")),
    _Matcher("table", re.compile(r"^CREATE\s+(?:OR\s+REPLACE\s+)?(?:TEMPORARY\s+)?TABLE\b", flags=re.I), _CREATE_TABLE_RE),
    _Matcher("alter", re.compile(r"^ALTER\s+(?:ONLINE\s+|IGNORE\s+)*TABLE\b", flags=re.I), ALTER_HEAD_RE),
    _Matcher("insert", re.compile(r"^INSERT\b", flags=re.I), _INSERT_HEAD_RE),
    _Matcher("drop", re.compile(r"^DROP\s", flags=re.I)),
)


def statement_head(statement: str) -> str:
    """Statement text without comments and with conditional-comment markers removed."""
    head = strip_comments(statement)
    if "/*!" not in head:
        return head
    return _CONDITIONAL_COMMENT_RE.sub(" ", head).strip()


def match_statement(statement: str) -> tuple[str, str | None]:
    """Bucket and extracted name of a statement.

    Raises :class:`StatementParseError` when the statement starts like a
    known kind but its name or parentheses cannot be parsed.
    """
    head = statement_head(statement)
    for matcher in MATCHERS:
        if not matcher.prefix.match(head):
            continue
        name = None
        if matcher.name is not None:
            m = matcher.name.match(head)
            if not m:
                raise StatementParseError(f"Cannot find the {matcher.bucket} name", code="MISSING_NAME")
            name = unquote_qualified(m.group("name"))
        if matcher.bucket != "drop" and not is_balanced(statement):
            raise StatementParseError("Unbalanced parentheses", code="UNBALANCED_PARENS")
        return matcher.bucket, name
    return "misc", None


def change_definer(statement: str, config: SqlConfig | None) -> str:
    """Point a DEFINER clause at the configured user and host."""
    if config is None or not config.user:
        return statement
    return _DEFINER_RE.sub(f"DEFINER=`{config.user}`@`{config.host}`", statement, count=1)


def apply_alter_clause(info: TableInfo, parsed: AlterParsed) -> TableInfo:
    """Return a new TableInfo with one decomposed ALTER clause applied."""
    columns = dict(info.columns)

    if parsed.type is AlterType.MODIFY:
        new = parsed.definition
        old = columns.get(parsed.column)
        if old is not None:
            new = dataclasses.replace(
                new,
                is_primary=old.is_primary or new.is_primary,
                unique=old.unique,
                index=old.index,
                foreign=old.foreign,
            )
        columns[parsed.column] = new
        return TableInfo(name=info.name, columns=columns)

    key = KeyInfo(name=parsed.name, columns=parsed.columns, column=parsed.column, ref=parsed.ref)
    for name in parsed.columns:
        col = columns.get(name)
        if col is None:
            logger.warning("%s key %s names unknown column %s.%s", parsed.type.value, parsed.name, info.name, name)
            continue
        if parsed.type is AlterType.PRIMARY:
            col = dataclasses.replace(col, is_primary=True)
        elif parsed.type is AlterType.UNIQUE:
            col = dataclasses.replace(col, unique=col.unique + (key,))
        elif parsed.type is AlterType.INDEX:
            col = dataclasses.replace(col, index=col.index + (key,))
        else:
            col = dataclasses.replace(col, foreign=col.foreign + (key,))
        columns[name] = col
    return TableInfo(name=info.name, columns=columns)


def parse_create_table(statement: str) -> tuple[TableInfo, tuple[str, ...]]:
    """Build a TableInfo and the referenced table names from one CREATE TABLE."""
    statement = strip_comments(statement)
    m = _CREATE_TABLE_RE.match(statement)
    if not m:
        raise StatementParseError("Cannot find the table name", code="MISSING_NAME")
    name = unquote_qualified(m.group("name"))

    rest = statement[m.end():]
    open_idx = rest.find("(")
    if open_idx < 0 or rest[:open_idx].strip():
        # CREATE TABLE ... LIKE / AS SELECT carry no column list
        return TableInfo(name=name), ()
    close_idx = find_closing_paren(rest, open_idx)
    if close_idx < 0:
        raise StatementParseError(f"Unbalanced column block in {name}", code="UNBALANCED_PARENS")

    columns = {}
    keys: list[AlterParsed] = []
    for item in split_sql_list(rest[open_idx + 1 : close_idx]):
        if _TABLE_ITEM_RE.match(item):
            try:
                parsed = parse_alter_clause("ADD " + item)
            except SqlParseError as exc:
                raise StatementParseError(f"{name}: {exc}") from exc
            if parsed is not None:
                keys.append(parsed)
            continue

        cm = _COLUMN_ITEM_RE.match(item)
        if not cm:
            raise ColumnParseError(f"{name}: cannot read column definition {item!r}")
        col_name = unquote_identifier(cm.group("name"))
        try:
            column, is_unique = scan_column(cm.group("definition"))
        except ColumnParseError as exc:
            raise ColumnParseError(f"{name}.{col_name}: {exc}") from exc
        if is_unique:
            column = dataclasses.replace(column, unique=(KeyInfo(name=col_name, columns=(col_name,)),))
        columns[col_name] = column

    info = TableInfo(name=name, columns=columns)
    deps: list[str] = []
    for parsed in keys:
        info = apply_alter_clause(info, parsed)
        if parsed.type is AlterType.FOREIGN and parsed.ref.table not in deps:
            deps.append(parsed.ref.table)
    return info, tuple(deps)


def split_create_foreign_keys(statement: str) -> tuple[str, list[str]]:
    """Move the foreign-key items of a CREATE TABLE into ALTER TABLE statements.

    Returns the CREATE TABLE without those items and one ``ALTER TABLE t ADD``
    statement per foreign key. A statement without foreign keys comes back
    unchanged.
    """
    text = strip_comments(statement)
    m = _CREATE_TABLE_RE.match(text)
    if not m:
        return statement, []
    open_idx = text.find("(", m.end())
    if open_idx < 0 or text[m.end() : open_idx].strip():
        return statement, []
    close_idx = find_closing_paren(text, open_idx)
    if close_idx < 0:
        return statement, []

    name = unquote_qualified(m.group("name"))
    kept: list[str] = []
    foreign: list[str] = []
    for item in split_sql_list(text[open_idx + 1 : close_idx]):
        if _TABLE_ITEM_RE.match(item) and is_foreign_clause(item):
            foreign.append(single_clause_statement(name, "ADD " + item))
        else:
            kept.append(item)
    if not foreign:
        return statement, []
    body = ",\n  ".join(kept)
    return f"{text[: open_idx + 1]}\n  {body}\n{text[close_idx:]}", foreign


def insert_multiple_to_single(statement: str) -> list[str]:
    """Split a multi-row INSERT into one INSERT per VALUES tuple.

    The column list and any trailing clause (``ON DUPLICATE KEY UPDATE``)
    are repeated on every statement. INSERT ... SELECT and INSERT ... SET
    are returned unchanged.
    """
    text = strip_comments(statement)
    m = _INSERT_HEAD_RE.match(text)
    if not m:
        return [statement]
    head = text[: m.end()].strip()
    rest = text[m.end():].strip().rstrip(";")

    columns = ""
    if rest.startswith("("):
        close = find_closing_paren(rest, 0)
        if close < 0:
            return [statement]
        if _VALUES_RE.match(rest, close + 1):
            columns = rest[: close + 1]
            rest = rest[close + 1 :]

    vm = _VALUES_RE.match(rest)
    if not vm:
        return [statement]

    tuples: list[str] = []
    tail = ""
    idx = vm.end()
    while idx < len(rest):
        ch = rest[idx]
        if ch == "(":
            close = find_closing_paren(rest, idx)
            if close < 0:
                return [statement]
            tuples.append(rest[idx : close + 1])
            idx = close + 1
        elif ch == "," or ch.isspace():
            idx += 1
        else:
            tail = rest[idx:].strip()
            break

    if len(tuples) <= 1:
        return [statement]
    return [" ".join(part for part in (head, columns, "VALUES", values, tail) if part) for values in tuples]


def table_dependencies(creates: dict[str, tuple[str, ...]], alter_refs: dict[str, list[str]]) -> list[TableDeps]:
    deps: list[TableDeps] = []
    for name, inline in creates.items():
        merged = list(inline)
        for ref in alter_refs.get(name, []):
            if ref not in merged:
                merged.append(ref)
        deps.append(TableDeps(table=name, dependencies=tuple(merged)))
    return deps


def classify(dump_text: str, config: SqlConfig | None = None) -> tuple[ParsedQuery, list[FailedQuery]]:
    """Split a dump into statements and sort them into buckets.

    Statements matching no known kind go to ``misc``. A statement that
    matches a kind but fails structural parsing is reported as a
    :class:`FailedQuery` and kept out of every bucket; a malformed ALTER
    clause is reported while its statement stays in ``alter``.
    """
    buckets: dict[str, list[str]] = {
        "functions": [],
        "procedures": [],
        "triggers": [],
        "table": [],
        "alter": [],
        "view": [],
        "drop": [],
        "misc": [],
    }
    insert: dict[str, list[str]] = {}
    names: dict[str, list[str]] = {"table": [], "view": [], "functions": [], "procedures": [], "triggers": []}
    failed: list[FailedQuery] = []
    tables: dict[str, TableInfo] = {}
    creates: dict[str, tuple[str, ...]] = {}

    for statement in split_statements(dump_text):
        try:
            bucket, name = match_statement(statement)
            if bucket == "table":
                info, refs = parse_create_table(statement)
        except SqlParseError as exc:
            logger.warning("Failed to parse statement (%s): %s", exc.code, exc)
            failed.append(FailedQuery(code=exc.code, msg=str(exc), query=statement))
            continue

        logger.debug("Classified %s statement %s", bucket, name or "")
        if bucket == "insert":
            insert.setdefault(name, []).append(statement)
            continue
        if bucket in ("view", "functions", "procedures", "triggers"):
            statement = change_definer(statement, config)
        if bucket == "table":
            if name in tables:
                logger.warning("Table %s is created more than once; keeping the last definition", name)
            tables[name] = info
            creates[name] = refs
        buckets[bucket].append(statement)
        if bucket in names and name not in names[bucket]:
            names[bucket].append(name)

    alter_refs: dict[str, list[str]] = {}
    for statement in buckets["alter"]:
        table, clauses = alter_clauses(statement)
        for clause in clauses:
            try:
                parsed = parse_alter_clause(clause)
            except SqlParseError as exc:
                logger.warning("Failed to parse ALTER clause of %s: %s", table, exc)
                failed.append(FailedQuery(code=exc.code, msg=str(exc), query=single_clause_statement(table, clause)))
                continue
            if parsed is None:
                continue
            if parsed.type is AlterType.FOREIGN:
                refs = alter_refs.setdefault(table, [])
                if parsed.ref.table not in refs:
                    refs.append(parsed.ref.table)
            if table in tables:
                tables[table] = apply_alter_clause(tables[table], parsed)
            else:
                logger.debug("ALTER for table %s which this dump does not create", table)

    sort = resolve_order(table_dependencies(creates, alter_refs))

    parsed_query = ParsedQuery(
        functions=buckets["functions"],
        procedures=buckets["procedures"],
        triggers=buckets["triggers"],
        table=buckets["table"],
        alter=buckets["alter"],
        view=buckets["view"],
        insert=insert,
        drop=buckets["drop"],
        sort=sort,
        misc=buckets["misc"],
        names=ParsedNames(
            tables=names["table"],
            views=names["view"],
            functions=names["functions"],
            procedures=names["procedures"],
            triggers=names["triggers"],
        ),
        tables=tables,
    )
    logger.info(
        "Classified %d statements: %d tables, %d alters, %d insert targets, %d failed",
        parsed_query.statement_count(),
        len(buckets["table"]),
        len(buckets["alter"]),
        len(insert),
        len(failed),
    )
    return parsed_query, failed


def table_infos(statements: Iterable[str], config: SqlConfig | None = None) -> dict[str, TableInfo]:
    """TableInfo snapshot from CREATE TABLE texts, e.g. SHOW CREATE TABLE output."""
    parsed, failed = classify(";\n".join(statements), config)
    for item in failed:
        logger.warning("Snapshot statement skipped (%s): %s", item.code, item.msg)
    return parsed.tables


def load_snapshot(path: Path, config: SqlConfig | None = None) -> dict[str, TableInfo]:
    """Tables of a dump file, or of every ``*.sql`` file below a directory."""
    if path.is_dir():
        texts = [p.read_text(encoding="utf-8") for p in sorted(path.glob("**/*.sql"))]
    else:
        texts = [path.read_text(encoding="utf-8")]
    return table_infos(texts, config)
