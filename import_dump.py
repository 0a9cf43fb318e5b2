#!/usr/bin/env python3
"""Build (and optionally run) an ordered import of a MySQL/MariaDB dump."""

from __future__ import annotations

import argparse
import dataclasses
import difflib
import logging
import re
import sys
from pathlib import Path
from typing import Iterable, Protocol

from classify_dump import classify, insert_multiple_to_single, load_snapshot, match_statement, split_create_foreign_keys
from resolve_order import deferred_references
from schema_diff import compare_tables
from split_alter import split_alter_statements
from sql_config import ImportOptions, SqlConfig, WithData, configure_logging, load_config
from sql_text import quote_identifier
from sql_types import ConnResponse, FailedQuery, ParsedQuery, TableCompare, TableDeps

logger = logging.getLogger(__name__)

FOREIGN_KEY_CHECKS_OFF = "SET FOREIGN_KEY_CHECKS=0"
FOREIGN_KEY_CHECKS_ON = "SET FOREIGN_KEY_CHECKS=1"

_CREATE_TABLE_HEAD_RE = re.compile(
    r"^CREATE\s+(?:OR\s+REPLACE\s+)?(?P<temporary>TEMPORARY\s+)?TABLE\s+(?:IF\s+NOT\s+EXISTS\s+)?",
    flags=re.I,
)
# Phases whose statements may contain ';' and need their own delimiter in a script.
_COMPOUND_PHASES = frozenset({"functions", "procedures", "triggers"})


class Connection(Protocol):
    def execute(self, statement: str) -> ConnResponse: ...


@dataclasses.dataclass(frozen=True)
class PlanStep:
    phase: str
    statement: str


def create_if_not_exists(statement: str) -> str:
    def repl(m: re.Match) -> str:
        return "CREATE TEMPORARY TABLE IF NOT EXISTS " if m.group("temporary") else "CREATE TABLE IF NOT EXISTS "

    return _CREATE_TABLE_HEAD_RE.sub(repl, statement, count=1)


def _by_name(statements: Iterable[str]) -> dict[str, list[str]]:
    grouped: dict[str, list[str]] = {}
    for statement in statements:
        _, name = match_statement(statement)
        grouped.setdefault(name, []).append(statement)
    return grouped


def _keep_new_routines(statements: list[str], existing: set[str]) -> list[str]:
    kept = []
    for statement in statements:
        _, name = match_statement(statement)
        if name in existing:
            logger.info("Skipping %s: it already exists", name)
            continue
        kept.append(statement)
    return kept


def build_import_plan(
    parsed: ParsedQuery,
    options: ImportOptions,
    comparison: dict[str, TableCompare] | None = None,
    existing_routines: Iterable[str] = (),
    existing_tables: Iterable[str] = (),
) -> list[PlanStep]:
    """Order the classified statements of a dump for execution.

    With ``drop_first`` every table or view in ``existing_tables`` and every
    function or procedure in ``existing_routines`` is dropped, then the
    dump's own DROP statements run. Without it, tables listed in
    ``comparison`` already exist: their CREATE and INSERT statements are
    skipped and their new columns are added by ALTER. The remaining CREATE
    TABLE statements become ``IF NOT EXISTS`` and routines or triggers named
    in ``existing_routines`` are skipped.

    Foreign keys, inline or from ALTER, run in the ``foreign`` phase after
    every table exists.
    """
    steps: list[PlanStep] = [PlanStep("setup", FOREIGN_KEY_CHECKS_OFF)]

    def add(phase: str, statements: Iterable[str]) -> None:
        steps.extend(PlanStep(phase, s) for s in statements)

    functions = list(parsed.functions)
    procedures = list(parsed.procedures)
    triggers = list(parsed.triggers)
    added_columns: list[str] = []
    skipped: set[str] = set()

    if options.drop_first:
        for table in existing_tables:
            add("drop", [f"DROP TABLE IF EXISTS {quote_identifier(table)}", f"DROP VIEW IF EXISTS {quote_identifier(table)}"])
        for routine in existing_routines:
            add(
                "drop",
                [f"DROP FUNCTION IF EXISTS {quote_identifier(routine)}", f"DROP PROCEDURE IF EXISTS {quote_identifier(routine)}"],
            )
        add("drop", parsed.drop)
    else:
        existing = set(existing_routines)
        functions = _keep_new_routines(functions, existing)
        procedures = _keep_new_routines(procedures, existing)
        triggers = _keep_new_routines(triggers, existing)
        for table, compare in (comparison or {}).items():
            skipped.add(table)
            for column in compare.new:
                added_columns.append(
                    f"ALTER TABLE {quote_identifier(table)} ADD {quote_identifier(column.name)} {column.detail}"
                )

    inline_foreign: list[str] = []
    creates = _by_name(parsed.table)
    for table in parsed.sort:
        if table in skipped:
            continue
        for statement in creates.get(table, []):
            statement, foreign = split_create_foreign_keys(statement)
            inline_foreign.extend(foreign)
            add("table", [statement if options.drop_first else create_if_not_exists(statement)])

    add("functions", functions)
    add("procedures", procedures)

    split = split_alter_statements(parsed.alter)
    add("alter", added_columns + split.key)
    add("foreign", inline_foreign + split.foreign)
    add("triggers", triggers)

    for view in parsed.names.views:
        # a dump may carry a placeholder table for each view
        add("view", [f"DROP TABLE IF EXISTS {quote_identifier(view)}", f"DROP VIEW IF EXISTS {quote_identifier(view)}"])
    add("view", parsed.view)

    if options.with_data is not WithData.NONE:
        targets = list(parsed.sort) if parsed.sort else list(parsed.insert)
        for table in parsed.insert:
            if table not in targets:
                logger.warning("Skipping rows for %s: the dump does not create that table", table)
        for table in targets:
            if table in skipped:
                continue
            for statement in parsed.insert.get(table, []):
                if options.with_data is WithData.SINGLE:
                    add("insert", insert_multiple_to_single(statement))
                else:
                    add("insert", [statement])

    steps.append(PlanStep("teardown", FOREIGN_KEY_CHECKS_ON))
    return steps


def _failure(step: PlanStep, response: ConnResponse) -> FailedQuery:
    error = response.error
    code = getattr(error, "errno", None)
    msg = getattr(error, "msg", None) or str(error)
    return FailedQuery(code=code, msg=msg, query=step.statement)


def run_import(
    conn: Connection,
    parsed: ParsedQuery,
    options: ImportOptions,
    comparison: dict[str, TableCompare] | None = None,
    existing_routines: Iterable[str] = (),
    existing_tables: Iterable[str] = (),
) -> list[FailedQuery]:
    """Execute the import plan one statement at a time and collect failures."""
    failed: list[FailedQuery] = []
    for step in build_import_plan(parsed, options, comparison, existing_routines, existing_tables):
        response = conn.execute(step.statement)
        if response.status:
            logger.debug("%s: %s", step.phase, step.statement)
            continue
        failure = _failure(step, response)
        logger.warning("%s statement failed (%s): %s", step.phase, failure.code, failure.msg)
        failed.append(failure)

    if options.close_connection:
        close = getattr(conn, "close", None)
        if close is not None:
            close()
    return failed


def render_script(steps: list[PlanStep]) -> str:
    lines: list[str] = []
    phase = None
    for step in steps:
        if step.phase != phase:
            if lines:
                lines.append("")
            lines.append(f"-- {step.phase}")
            phase = step.phase
        if step.phase in _COMPOUND_PHASES:
            lines.extend(["DELIMITER $$", f"{step.statement}$$", "DELIMITER ;"])
        else:
            lines.append(f"{step.statement};")
    lines.append("")
    return "\n".join(lines)


def _table_deps(parsed: ParsedQuery) -> list[TableDeps]:
    deps: list[TableDeps] = []
    for name in parsed.sort:
        refs: list[str] = []
        info = parsed.tables.get(name)
        for column in info.columns.values() if info else ():
            for key in column.foreign:
                if key.ref and key.ref.table not in refs:
                    refs.append(key.ref.table)
        deps.append(TableDeps(table=name, dependencies=tuple(refs)))
    return deps


def generate_markdown(dump_path: Path, parsed: ParsedQuery, failed: list[FailedQuery], steps: list[PlanStep]) -> str:
    deps = _table_deps(parsed)
    dep_map = {d.table: d.dependencies for d in deps}
    deferred = deferred_references(deps, parsed.sort)
    row_count = sum(1 for s in steps if s.phase == "insert")

    lines: list[str] = []
    lines.append(f"# Import plan: {dump_path.name}")
    lines.append("")
    lines.append(
        f"- **{parsed.statement_count()} statements classified**: {len(parsed.table)} tables, "
        f"{len(parsed.alter)} alters, {len(parsed.view)} views, {len(parsed.functions)} functions, "
        f"{len(parsed.procedures)} procedures, {len(parsed.triggers)} triggers, "
        f"{sum(len(v) for v in parsed.insert.values())} inserts, {len(parsed.drop)} drops, {len(parsed.misc)} misc"
    )
    lines.append(f"- **{len(steps)} planned statements** ({row_count} inserts)")
    lines.append(f"- **Failed to parse**: {len(failed)}")
    lines.append("")

    lines.append("## Creation order")
    lines.append("")
    if parsed.sort:
        lines.append("| # | Table | References |")
        lines.append("|---|-------|------------|")
        for idx, table in enumerate(parsed.sort, start=1):
            refs = ", ".join(f"`{r}`" for r in dep_map.get(table, ())) or "-"
            lines.append(f"| {idx} | `{table}` | {refs} |")
    else:
        lines.append("The dump creates no tables.")
    lines.append("")

    lines.append("## Deferred foreign keys")
    lines.append("")
    if deferred:
        lines.append("These references point at tables created later; their keys are added by ALTER after all tables exist.")
        lines.append("")
        for table, ref in deferred:
            lines.append(f"- `{table}` -> `{ref}`")
    else:
        lines.append("No table references a table created after it.")
    lines.append("")

    lines.append("## Failed queries")
    lines.append("")
    if failed:
        lines.append("| Code | Message | Query |")
        lines.append("|------|---------|-------|")
        for item in failed:
            query = " ".join(item.query.split())
            if len(query) > 80:
                query = query[:77] + "..."
            lines.append(f"| {item.code} | {item.msg} | `{query}` |")
    else:
        lines.append("Every statement was classified.")
    lines.append("")
    return "\n".join(lines)


def generate_outputs(
    dump_path: Path,
    config: SqlConfig | None = None,
    options: ImportOptions | None = None,
    existing_path: Path | None = None,
) -> tuple[str, str]:
    options = options or ImportOptions()
    parsed, failed = classify(dump_path.read_text(encoding="utf-8"), config)

    comparison = None
    if existing_path is not None:
        comparison = compare_tables(parsed, load_snapshot(existing_path, config))
        options = dataclasses.replace(options, drop_first=False)

    steps = build_import_plan(parsed, options, comparison)
    return render_script(steps), generate_markdown(dump_path, parsed, failed, steps)


def write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def check_equal(path: Path, generated: str) -> bool:
    if not path.exists():
        print(f"[check] missing file: {path}", file=sys.stderr)
        return False

    existing = path.read_text(encoding="utf-8")
    if existing == generated:
        return True

    print(f"[check] drift detected: {path}", file=sys.stderr)
    diff = difflib.unified_diff(
        existing.splitlines(),
        generated.splitlines(),
        fromfile=str(path),
        tofile=f"generated:{path}",
        lineterm="",
    )
    for idx, line in enumerate(diff):
        if idx > 200:
            print("... (diff truncated)", file=sys.stderr)
            break
        print(line, file=sys.stderr)
    return False


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Order the statements of a SQL dump into an import script and summary")
    parser.add_argument("--dump", required=True, help="Input SQL dump")
    parser.add_argument("--config", help="YAML file with db and import settings")
    parser.add_argument("--existing", help="Dump or directory of SHOW CREATE TABLE files for tables that already exist")
    parser.add_argument("--out-sql", default="import.sql", help="Output SQL file")
    parser.add_argument("--out-md", default="import.md", help="Output markdown file")
    parser.add_argument("--check", action="store_true", help="Verify outputs are up-to-date without writing")
    parser.add_argument("-v", "--verbose", type=int, help="0 warnings, 1 info, 2 debug (overrides the config)")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    config, options = SqlConfig(), ImportOptions()
    if args.config:
        config, options = load_config(Path(args.config))
    configure_logging(args.verbose if args.verbose is not None else config.verbose)

    dump_path = Path(args.dump)
    out_sql = Path(args.out_sql)
    out_md = Path(args.out_md)
    existing_path = Path(args.existing) if args.existing else None

    try:
        sql_output, md_output = generate_outputs(dump_path, config, options, existing_path)
    except OSError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    if args.check:
        sql_ok = check_equal(out_sql, sql_output)
        md_ok = check_equal(out_md, md_output)
        return 0 if sql_ok and md_ok else 1

    write_text(out_sql, sql_output)
    write_text(out_md, md_output)
    print(f"Generated {out_sql}")
    print(f"Generated {out_md}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
