#!/usr/bin/env python3
"""Compare two schema snapshots and emit a markdown report plus corrective SQL."""

from __future__ import annotations

import argparse
import sys
from collections import Counter
from pathlib import Path

from classify_dump import load_snapshot
from import_dump import check_equal, write_text
from schema_diff import MODIFIED, NEW, REMOVED, SAME, UNPARSABLE, DiffFlag, corrective_statements, diff, diff_errno
from sql_config import configure_logging
from sql_types import DiffReport, TableInfo

# Above the DiffFlag bits: unreadable input or drifted output.
EXIT_FAILURE = 0x08


def generate_markdown(source_path: Path, target_path: Path, report: DiffReport, errno: DiffFlag) -> str:
    counts: Counter = Counter(entry.status for entries in report.values() for entry in entries.values())

    lines: list[str] = []
    lines.append(f"# Schema comparison: {source_path.name} -> {target_path.name}")
    lines.append("")
    if not report:
        lines.append("The schemas are identical.")
        lines.append("")
        return "\n".join(lines)

    flags = [flag.name for flag in (DiffFlag.REMOVED, DiffFlag.MODIFIED, DiffFlag.ADDED) if flag in errno]
    lines.append(f"- **{len(report)} tables** with differences (errno {int(errno)}: {', '.join(flags)})")
    lines.append(
        f"- {counts[NEW]} new, {counts[MODIFIED]} modified, {counts[REMOVED]} removed, "
        f"{counts[SAME]} unchanged, {counts[UNPARSABLE]} unparsable columns"
    )
    lines.append("")

    for table, entries in report.items():
        lines.append(f"## `{table}`")
        lines.append("")
        lines.append("| Column | Status | Source | Target |")
        lines.append("|--------|--------|--------|--------|")
        for name, entry in entries.items():
            source = f"`{entry.source}`" if entry.source else "-"
            target = f"`{entry.target}`" if entry.target else "-"
            lines.append(f"| `{name}` | {entry.status} | {source} | {target} |")
        lines.append("")
    return "\n".join(lines)


def generate_sql(source: dict[str, TableInfo], target: dict[str, TableInfo], report: DiffReport) -> str:
    statements = corrective_statements(source, target, report)
    if not statements:
        return "-- no changes\n"
    return "\n".join(statements) + "\n"


def generate_outputs(source_path: Path, target_path: Path, include_same: bool = False) -> tuple[str, str, DiffFlag]:
    source = load_snapshot(source_path)
    target = load_snapshot(target_path)
    report = diff(source, target, include_same=include_same)
    errno = diff_errno(report)
    return generate_sql(source, target, report), generate_markdown(source_path, target_path, report, errno), errno


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Compare table definitions of two dumps or snapshot directories")
    parser.add_argument("--source", required=True, help="Current schema: dump file or directory of *.sql files")
    parser.add_argument("--target", required=True, help="Desired schema: dump file or directory of *.sql files")
    parser.add_argument("--all", action="store_true", help="Also list unchanged columns")
    parser.add_argument("--out-sql", default="compare.sql", help="Output SQL file")
    parser.add_argument("--out-md", default="compare.md", help="Output markdown file")
    parser.add_argument("--check", action="store_true", help="Verify outputs are up-to-date without writing")
    parser.add_argument("-v", "--verbose", type=int, default=0, help="0 warnings, 1 info, 2 debug")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Exit status is the difference bitmask (0 when the schemas match)."""
    args = parse_args(argv)
    configure_logging(args.verbose)

    out_sql = Path(args.out_sql)
    out_md = Path(args.out_md)
    try:
        sql_output, md_output, errno = generate_outputs(Path(args.source), Path(args.target), args.all)
    except OSError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_FAILURE

    if args.check:
        sql_ok = check_equal(out_sql, sql_output)
        md_ok = check_equal(out_md, md_output)
        return int(errno) if sql_ok and md_ok else int(errno) | EXIT_FAILURE

    write_text(out_sql, sql_output)
    write_text(out_md, md_output)
    print(f"Generated {out_sql}")
    print(f"Generated {out_md}")
    return int(errno)


if __name__ == "__main__":
    raise SystemExit(main())
