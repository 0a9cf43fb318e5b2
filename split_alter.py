"""Decompose ALTER TABLE statements into key and foreign-key clauses."""

from __future__ import annotations

import logging
import re
from typing import Iterable

from parse_column import parse_column
from sql_text import (
    IDENTIFIER_PATTERN,
    QUALIFIED_NAME_PATTERN,
    mask_literals,
    parse_identifier_list,
    quote_identifier,
    split_sql_list,
    strip_comments,
    unquote_identifier,
    unquote_qualified,
)
from sql_types import AlterParsed, AlterParseError, AlterSplit, AlterType, ColumnParseError, ForeignKey

logger = logging.getLogger(__name__)

_ID = IDENTIFIER_PATTERN
_QNAME = QUALIFIED_NAME_PATTERN
_PAREN_LIST = r"\((?P<cols>(?:[^()]|\([^()]*\))*)\)"
_CONSTRAINT = rf"(?:CONSTRAINT(?:\s+(?!PRIMARY\b|UNIQUE\b|FOREIGN\b|CHECK\b)(?P<constraint>{_ID}))?\s+)?"
_USING = r"(?:\s*USING\s+\w+)?"

ALTER_HEAD_RE = re.compile(
    rf"^\s*ALTER\s+(?:ONLINE\s+|IGNORE\s+)*TABLE\s+(?:IF\s+EXISTS\s+)?(?P<name>{_QNAME})",
    flags=re.I,
)

_PRIMARY_RE = re.compile(
    rf"^ADD\s+{_CONSTRAINT}PRIMARY\s+KEY{_USING}\s*{_PAREN_LIST}",
    flags=re.I | re.S,
)
_MODIFY_RE = re.compile(rf"^MODIFY\s+(?:COLUMN\s+)?(?:IF\s+EXISTS\s+)?(?P<column>{_ID})\s+(?P<definition>.+)$", flags=re.I | re.S)
_FOREIGN_RE = re.compile(
    rf"^ADD\s+{_CONSTRAINT}FOREIGN\s+KEY(?:\s+IF\s+NOT\s+EXISTS)?(?:\s+(?P<index>{_ID}))?\s*{_PAREN_LIST}"
    rf"\s*REFERENCES\s+(?P<table>{_QNAME})\s*\((?P<refs>[^()]*)\)",
    flags=re.I | re.S,
)
_UNIQUE_RE = re.compile(
    rf"^ADD\s+{_CONSTRAINT}UNIQUE(?:\s+(?:KEY|INDEX))?(?:\s+IF\s+NOT\s+EXISTS)?"
    rf"(?:\s+(?!USING\b)(?P<name>{_ID}))?{_USING}\s*{_PAREN_LIST}",
    flags=re.I | re.S,
)
_INDEX_RE = re.compile(
    rf"^ADD\s+(?:FULLTEXT\s+|SPATIAL\s+)?(?:KEY|INDEX)(?:\s+IF\s+NOT\s+EXISTS)?"
    rf"(?:\s+(?!USING\b)(?P<name>{_ID}))?{_USING}\s*{_PAREN_LIST}",
    flags=re.I | re.S,
)

# Leading keyword sequences that commit a clause to one of the AlterType kinds.
_KIND_PREFIXES = (
    (AlterType.PRIMARY, re.compile(rf"^ADD\s+{_CONSTRAINT}PRIMARY\s+KEY\b", flags=re.I)),
    (AlterType.MODIFY, re.compile(r"^MODIFY\b", flags=re.I)),
    (AlterType.FOREIGN, re.compile(rf"^ADD\s+{_CONSTRAINT}FOREIGN\s+KEY\b", flags=re.I)),
    (AlterType.UNIQUE, re.compile(rf"^ADD\s+{_CONSTRAINT}UNIQUE\b", flags=re.I)),
    (AlterType.INDEX, re.compile(r"^ADD\s+(?:FULLTEXT\s+|SPATIAL\s+)?(?:KEY|INDEX)\b", flags=re.I)),
)
_FOREIGN_KEY_RE = re.compile(r"\bFOREIGN\s+KEY\b", flags=re.I)


def alter_table_name(statement: str) -> str | None:
    m = ALTER_HEAD_RE.match(statement)
    if not m:
        return None
    return unquote_qualified(m.group("name"))


def alter_clauses(statement: str) -> tuple[str | None, list[str]]:
    """Table name and the comma-separated clauses of one ALTER TABLE, comments removed."""
    statement = strip_comments(statement)
    m = ALTER_HEAD_RE.match(statement)
    if not m:
        return None, []
    body = statement[m.end():].strip().rstrip(";").strip()
    return unquote_qualified(m.group("name")), split_sql_list(body)


def is_foreign_clause(clause: str) -> bool:
    return bool(_FOREIGN_KEY_RE.search(mask_literals(clause)))


def split_alter(statement: str) -> AlterSplit:
    """Partition the clauses of one ALTER TABLE into key and foreign-key clauses.

    Foreign-key clauses are kept apart because they can only be applied once
    every referenced table exists.
    """
    table, clauses = alter_clauses(statement)
    key: list[str] = []
    foreign: list[str] = []
    for clause in clauses:
        if is_foreign_clause(clause):
            foreign.append(clause)
        else:
            key.append(clause)
    return AlterSplit(table=table, key=key, foreign=foreign)


def single_clause_statement(table: str, clause: str) -> str:
    return f"ALTER TABLE {quote_identifier(table)} {clause}"


def split_alter_statements(statements: Iterable[str]) -> AlterSplit:
    """Turn ALTER statements into one-clause statements, keys first then foreign keys.

    A single failing clause then no longer takes its sibling clauses down
    with it when the statements are executed.
    """
    key: list[str] = []
    foreign: list[str] = []
    for statement in statements:
        split = split_alter(statement)
        if split.table is None:
            key.append(statement)
            continue
        if len(split.key) + len(split.foreign) <= 1:
            (foreign if split.foreign else key).append(statement)
            continue
        key.extend(single_clause_statement(split.table, c) for c in split.key)
        foreign.extend(single_clause_statement(split.table, c) for c in split.foreign)
    return AlterSplit(table=None, key=key, foreign=foreign)


def _commit_kind(clause: str) -> AlterType | None:
    for kind, pattern in _KIND_PREFIXES:
        if pattern.match(clause):
            return kind
    return None


def _constraint_name(m: re.Match) -> str | None:
    name = m.group("constraint")
    return unquote_identifier(name) if name else None


def parse_alter_clause(clause: str) -> AlterParsed | None:
    """Classify one ALTER clause into an :class:`AlterParsed` record.

    Returns ``None`` for clauses outside the PRIMARY/MODIFY/FOREIGN/UNIQUE/
    INDEX kinds (``ADD COLUMN``, ``DROP``, table options). Raises
    :class:`AlterParseError` when a clause opens like one of those kinds but
    its structure is malformed.
    """
    clause = clause.strip().rstrip(";").strip()
    kind = _commit_kind(clause)
    if kind is None:
        logger.debug("ALTER clause is not a key or modify clause: %s", clause)
        return None

    if kind is AlterType.PRIMARY:
        m = _PRIMARY_RE.match(clause)
        if not m:
            raise AlterParseError(f"Malformed PRIMARY KEY clause: {clause}")
        columns = parse_identifier_list(m.group("cols"))
        if not columns:
            raise AlterParseError(f"PRIMARY KEY without columns: {clause}")
        return AlterParsed(type=kind, name="PRIMARY", columns=columns)

    if kind is AlterType.MODIFY:
        m = _MODIFY_RE.match(clause)
        if not m:
            raise AlterParseError(f"Malformed MODIFY clause: {clause}")
        column = unquote_identifier(m.group("column"))
        try:
            definition = parse_column(m.group("definition"))
        except ColumnParseError as exc:
            raise AlterParseError(f"Malformed MODIFY clause: {exc}") from exc
        return AlterParsed(type=kind, column=column, columns=(column,), definition=definition)

    if kind is AlterType.FOREIGN:
        m = _FOREIGN_RE.match(clause)
        if not m:
            raise AlterParseError(f"Malformed or missing REFERENCES in foreign key clause: {clause}")
        columns = parse_identifier_list(m.group("cols"))
        refs = parse_identifier_list(m.group("refs"))
        if not columns or not refs:
            raise AlterParseError(f"Foreign key without columns: {clause}")
        name = _constraint_name(m) or (unquote_identifier(m.group("index")) if m.group("index") else None)
        return AlterParsed(
            type=kind,
            name=name,
            column=columns[0],
            columns=columns,
            ref=ForeignKey(table=unquote_qualified(m.group("table")), column=refs[0]),
        )

    pattern = _UNIQUE_RE if kind is AlterType.UNIQUE else _INDEX_RE
    m = pattern.match(clause)
    if not m:
        raise AlterParseError(f"Malformed {kind.value} clause: {clause}")
    columns = parse_identifier_list(m.group("cols"))
    if not columns:
        raise AlterParseError(f"{kind.value} key without columns: {clause}")
    name = m.group("name")
    if name:
        name = unquote_identifier(name)
    elif kind is AlterType.UNIQUE:
        name = _constraint_name(m)
    return AlterParsed(type=kind, name=name or columns[0], columns=columns)
