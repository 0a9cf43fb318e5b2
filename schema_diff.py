"""Column-level comparison of two table snapshots and the SQL that reconciles them."""

from __future__ import annotations

import enum
import logging

from parse_column import column_def_to_string, column_definition, column_keys
from sql_text import quote_identifier
from sql_types import ColCompDetail, ColumnDef, ColumnDiff, DiffReport, KeyInfo, ParsedQuery, TableCompare, TableInfo

logger = logging.getLogger(__name__)

NEW = "new"
SAME = "same"
MODIFIED = "mod"
REMOVED = "nomore"
UNPARSABLE = "unparsable"


class DiffFlag(enum.IntFlag):
    NONE = 0
    REMOVED = 0x01
    MODIFIED = 0x02
    ADDED = 0x04


_STATUS_FLAGS = {
    REMOVED: DiffFlag.REMOVED,
    MODIFIED: DiffFlag.MODIFIED,
    UNPARSABLE: DiffFlag.MODIFIED,
    NEW: DiffFlag.ADDED,
}


def _key_order(key: KeyInfo) -> tuple:
    ref = (key.ref.table, key.ref.column) if key.ref else ("", "")
    return (key.name or "", key.columns, key.column or "", ref)


def _signature(column: ColumnDef) -> tuple:
    # Key order depends on where a dump declares keys, so compare them sorted.
    return (
        column.type,
        column.is_nullable,
        column.default,
        column.is_auto_increment,
        column.is_primary,
        tuple(sorted(column.unique, key=_key_order)),
        tuple(sorted(column.index, key=_key_order)),
        tuple(sorted(column.foreign, key=_key_order)),
    )


def is_parsable(column: ColumnDef | None) -> bool:
    return column is not None and bool(column.datatype)


def column_detail(table: str, name: str, column: ColumnDef) -> str:
    """Render ``\\`t\\`.\\`c\\` <definition>[; <keys>]`` for reports."""
    if not is_parsable(column):
        return UNPARSABLE
    text = f"{quote_identifier(table)}.{quote_identifier(name)} {column_definition(column)}"
    keys = column_keys(column)
    if keys:
        text += f"; {keys}"
    return text


def _compare_column(table: str, name: str, source: ColumnDef | None, target: ColumnDef | None) -> ColumnDiff:
    if (source is not None and not is_parsable(source)) or (target is not None and not is_parsable(target)):
        logger.warning("Column %s.%s has no datatype; reporting it as unparsable", table, name)
        return ColumnDiff(
            status=UNPARSABLE,
            source=None if source is None else column_detail(table, name, source),
            target=None if target is None else column_detail(table, name, target),
        )
    if target is None:
        return ColumnDiff(status=REMOVED, source=column_detail(table, name, source))
    if source is None:
        return ColumnDiff(status=NEW, target=column_detail(table, name, target))
    status = SAME if _signature(source) == _signature(target) else MODIFIED
    return ColumnDiff(status=status, source=column_detail(table, name, source), target=column_detail(table, name, target))


def diff(source: dict[str, TableInfo], target: dict[str, TableInfo], include_same: bool = False) -> DiffReport:
    """Compare two table snapshots column by column.

    Tables and columns come out sorted by name so equal inputs always give
    identical reports. Unchanged columns are left out unless
    ``include_same`` is set, and tables with nothing to report are omitted.
    """
    report: DiffReport = {}
    for table in sorted(set(source) | set(target)):
        src_cols = source[table].columns if table in source else {}
        dst_cols = target[table].columns if table in target else {}
        entries: dict[str, ColumnDiff] = {}
        for name in sorted(set(src_cols) | set(dst_cols)):
            entry = _compare_column(table, name, src_cols.get(name), dst_cols.get(name))
            if entry.status == SAME and not include_same:
                continue
            entries[name] = entry
        if entries:
            report[table] = entries
    return report


def diff_errno(report: DiffReport) -> DiffFlag:
    """Bitmask of the kinds of difference found in a report."""
    flags = DiffFlag.NONE
    for entries in report.values():
        for entry in entries.values():
            flags |= _STATUS_FLAGS.get(entry.status, DiffFlag.NONE)
    return flags


def compare_tables(parsed: ParsedQuery, existing: dict[str, TableInfo]) -> dict[str, TableCompare]:
    """Compare the tables a dump creates with tables that already exist.

    Only tables present on both sides are returned, in creation order. Each
    :class:`ColCompDetail` carries the dump's column definition, ready for
    ``ALTER TABLE ... ADD``.
    """
    result: dict[str, TableCompare] = {}
    for table in parsed.sort:
        if table not in existing or table not in parsed.tables:
            continue
        wanted = parsed.tables[table].columns
        have = existing[table].columns
        compare = TableCompare()
        for name, column in wanted.items():
            detail = ColCompDetail(name=name, detail=column_definition(column))
            if name not in have:
                compare.new.append(detail)
            elif _signature(column) == _signature(have[name]):
                compare.same.append(detail)
            else:
                compare.mod.append(detail)
        compare.nomore.extend(name for name in have if name not in wanted)
        result[table] = compare
    return result


def _collect_keys(info: TableInfo) -> tuple[list[str], list[KeyInfo], list[KeyInfo], list[KeyInfo]]:
    primary = [name for name, col in info.columns.items() if col.is_primary]
    unique: list[KeyInfo] = []
    index: list[KeyInfo] = []
    foreign: list[KeyInfo] = []
    for col in info.columns.values():
        for bucket, keys in ((unique, col.unique), (index, col.index), (foreign, col.foreign)):
            for key in keys:
                if key not in bucket:
                    bucket.append(key)
    return primary, unique, index, foreign


def _column_list(columns: tuple[str, ...] | list[str]) -> str:
    return "(" + ",".join(quote_identifier(c) for c in columns) + ")"


def render_create_table(info: TableInfo) -> str:
    primary, unique, index, foreign = _collect_keys(info)
    lines = [f"  {quote_identifier(name)} {column_definition(col)}" for name, col in info.columns.items()]
    if primary:
        lines.append(f"  PRIMARY KEY {_column_list(primary)}")
    for key in unique:
        lines.append(f"  UNIQUE KEY {quote_identifier(key.name or key.columns[0])} {_column_list(key.columns)}")
    for key in index:
        lines.append(f"  KEY {quote_identifier(key.name or key.columns[0])} {_column_list(key.columns)}")
    for key in foreign:
        if key.ref is None:
            continue
        prefix = f"CONSTRAINT {quote_identifier(key.name)} " if key.name else ""
        lines.append(
            f"  {prefix}FOREIGN KEY {_column_list(key.columns)} "
            f"REFERENCES {quote_identifier(key.ref.table)} ({quote_identifier(key.ref.column)})"
        )
    return f"CREATE TABLE IF NOT EXISTS {quote_identifier(info.name)} (\n" + ",\n".join(lines) + "\n);"


def corrective_statements(source: dict[str, TableInfo], target: dict[str, TableInfo], report: DiffReport) -> list[str]:
    """SQL that moves ``source`` towards ``target`` for every reported difference.

    MODIFY statements restate the column definition; changed key membership
    is shown in the report but not rewritten here.
    """
    statements: list[str] = []
    for table, entries in report.items():
        quoted = quote_identifier(table)
        if table not in source and table in target:
            statements.append(render_create_table(target[table]))
            continue
        if table not in target:
            statements.append(f"DROP TABLE IF EXISTS {quoted};")
            continue
        for name, entry in entries.items():
            column = quote_identifier(name)
            if entry.status == NEW:
                statements.append(f"ALTER TABLE {quoted} ADD COLUMN {column} {column_def_to_string(target[table].columns[name])};")
            elif entry.status == MODIFIED:
                statements.append(f"ALTER TABLE {quoted} MODIFY COLUMN {column} {column_definition(target[table].columns[name])};")
            elif entry.status == REMOVED:
                statements.append(f"ALTER TABLE {quoted} DROP COLUMN {column};")
            elif entry.status == UNPARSABLE:
                logger.warning("No statement generated for unparsable column %s.%s", table, name)
    return statements


def apply_report(source: dict[str, TableInfo], target: dict[str, TableInfo], report: DiffReport) -> dict[str, TableInfo]:
    """Return a copy of ``source`` with the reported target columns applied."""
    result = {name: TableInfo(name=info.name, columns=dict(info.columns)) for name, info in source.items()}
    for table, entries in report.items():
        if table not in result:
            result[table] = TableInfo(name=table)
        columns = result[table].columns
        for name, entry in entries.items():
            if entry.status == REMOVED:
                columns.pop(name, None)
            elif entry.status in (NEW, MODIFIED, UNPARSABLE) and table in target and name in target[table].columns:
                columns[name] = target[table].columns[name]
        if not columns and table not in target:
            del result[table]
    return result
