import dataclasses
import unittest
from pathlib import Path

from classify_dump import classify, load_snapshot
from parse_column import parse_column
from schema_diff import (
    DiffFlag,
    apply_report,
    compare_tables,
    corrective_statements,
    diff,
    diff_errno,
    render_create_table,
)
from sql_types import ColumnDef, ColumnDiff, KeyInfo, TableInfo


FIXTURES = Path(__file__).resolve().parent / "fixtures"


def table(name: str, /, **columns: str) -> TableInfo:
    return TableInfo(name=name, columns={col: parse_column(fragment) for col, fragment in columns.items()})


class TestDiff(unittest.TestCase):
    def test_modified_column_has_both_details(self) -> None:
        source = {"t": table("t", name="VARCHAR(50) NOT NULL")}
        target = {"t": table("t", name="VARCHAR(100) NOT NULL")}
        self.assertEqual(
            diff(source, target),
            {
                "t": {
                    "name": ColumnDiff(
                        status="mod",
                        source="`t`.`name` varchar(50) NOT NULL",
                        target="`t`.`name` varchar(100) NOT NULL",
                    )
                }
            },
        )

    def test_new_and_removed(self) -> None:
        source = {"t": table("t", id="int NOT NULL", old="text"), "gone": table("gone", id="int")}
        target = {"t": table("t", id="int NOT NULL", fresh="date"), "added": table("added", id="int")}
        report = diff(source, target)
        self.assertEqual(list(report), ["added", "gone", "t"])
        self.assertEqual(report["t"]["old"], ColumnDiff(status="nomore", source="`t`.`old` text NULL"))
        self.assertEqual(report["t"]["fresh"], ColumnDiff(status="new", target="`t`.`fresh` date NULL"))
        self.assertEqual(report["gone"]["id"].status, "nomore")
        self.assertEqual(report["added"]["id"].status, "new")
        self.assertNotIn("id", report["t"])

    def test_include_same(self) -> None:
        source = {"t": table("t", id="int NOT NULL")}
        report = diff(source, source, include_same=True)
        self.assertEqual(report["t"]["id"].status, "same")

    def test_self_diff_is_empty(self) -> None:
        parsed, _ = classify((FIXTURES / "sample_dump.sql").read_text(encoding="utf-8"))
        self.assertEqual(diff(parsed.tables, parsed.tables), {})
        self.assertEqual(diff_errno({}), DiffFlag.NONE)

    def test_report_is_sorted_regardless_of_input_order(self) -> None:
        a = {"z": table("z", b="int", a="int"), "y": table("y", c="int")}
        b = {"y": table("y", c="int"), "z": table("z", a="int", b="int")}
        report = diff({}, a)
        self.assertEqual(list(report), ["y", "z"])
        self.assertEqual(list(report["z"]), ["a", "b"])
        self.assertEqual(repr(diff({}, a)), repr(diff({}, b)))

    def test_key_order_does_not_matter(self) -> None:
        k1 = KeyInfo(name="a", columns=("x",))
        k2 = KeyInfo(name="b", columns=("x", "y"))
        col = parse_column("int NOT NULL")
        source = {"t": TableInfo("t", {"x": dataclasses.replace(col, index=(k1, k2))})}
        target = {"t": TableInfo("t", {"x": dataclasses.replace(col, index=(k2, k1))})}
        self.assertEqual(diff(source, target), {})

    def test_key_membership_is_compared(self) -> None:
        col = parse_column("varchar(20) NOT NULL")
        source = {"t": TableInfo("t", {"email": col})}
        target = {"t": TableInfo("t", {"email": dataclasses.replace(col, unique=(KeyInfo("email", ("email",)),))})}
        entry = diff(source, target)["t"]["email"]
        self.assertEqual(entry.status, "mod")
        self.assertEqual(entry.target, "`t`.`email` varchar(20) NOT NULL; UNIQUE KEY `email` (`email`)")

    def test_unparsable_column(self) -> None:
        broken = ColumnDef(type="", datatype="")
        source = {"t": TableInfo("t", {"a": broken, "b": parse_column("int")})}
        target = {"t": TableInfo("t", {"a": parse_column("int"), "b": parse_column("bigint")})}
        report = diff(source, target)
        self.assertEqual(report["t"]["a"], ColumnDiff(status="unparsable", source="unparsable", target="`t`.`a` int NULL"))
        self.assertEqual(report["t"]["b"].status, "mod")

    def test_errno(self) -> None:
        source = {"t": table("t", a="int", b="int")}
        target = {"t": table("t", a="bigint", c="int")}
        self.assertEqual(diff_errno(diff(source, target)), DiffFlag.REMOVED | DiffFlag.MODIFIED | DiffFlag.ADDED)
        self.assertEqual(int(diff_errno(diff(source, {"t": table("t", a="int")}))), 0x01)


class TestConvergence(unittest.TestCase):
    def test_apply_report_converges(self) -> None:
        source = {
            "t": table("t", id="int NOT NULL", name="varchar(50) NOT NULL", old="text"),
            "gone": table("gone", id="int"),
        }
        target = {
            "t": table("t", id="int NOT NULL", name="varchar(100) NOT NULL", fresh="date"),
            "added": table("added", id="int NOT NULL"),
        }
        fixed = apply_report(source, target, diff(source, target))
        self.assertEqual(diff(fixed, target), {})
        self.assertNotIn("gone", fixed)
        # inputs are left untouched
        self.assertIn("old", source["t"].columns)

    def test_snapshot_against_dump_converges(self) -> None:
        parsed, _ = classify((FIXTURES / "sample_dump.sql").read_text(encoding="utf-8"))
        existing = load_snapshot(FIXTURES / "existing")
        report = diff(existing, parsed.tables)
        self.assertEqual(diff(apply_report(existing, parsed.tables, report), parsed.tables), {})


class TestCorrectiveSql(unittest.TestCase):
    def test_statements(self) -> None:
        source = {"t": table("t", name="varchar(50) NOT NULL", old="text"), "gone": table("gone", id="int")}
        target = {"t": table("t", name="varchar(100) NOT NULL", fresh="date"), "added": table("added", id="int")}
        self.assertEqual(
            corrective_statements(source, target, diff(source, target)),
            [
                "CREATE TABLE IF NOT EXISTS `added` (\n  `id` int NULL\n);",
                "DROP TABLE IF EXISTS `gone`;",
                "ALTER TABLE `t` ADD COLUMN `fresh` date NULL;",
                "ALTER TABLE `t` MODIFY COLUMN `name` varchar(100) NOT NULL;",
                "ALTER TABLE `t` DROP COLUMN `old`;",
            ],
        )

    def test_rendered_create_table_parses_back(self) -> None:
        parsed, _ = classify((FIXTURES / "sample_dump.sql").read_text(encoding="utf-8"))
        for name, info in parsed.tables.items():
            with self.subTest(table=name):
                reparsed, failed = classify(render_create_table(info))
                self.assertEqual(failed, [])
                self.assertEqual(diff({name: info}, reparsed.tables), {})


class TestCompareTables(unittest.TestCase):
    def test_existing_tables(self) -> None:
        parsed, _ = classify((FIXTURES / "sample_dump.sql").read_text(encoding="utf-8"))
        result = compare_tables(parsed, load_snapshot(FIXTURES / "existing"))
        self.assertEqual(list(result), ["author", "member"])

        member = result["member"]
        self.assertEqual([c.name for c in member.new], ["name"])
        self.assertEqual(member.new[0].detail, "varchar(100) NOT NULL")
        self.assertEqual([c.name for c in member.same], ["id"])
        self.assertEqual([c.name for c in member.mod], ["email"])
        self.assertEqual(member.nomore, ["legacy_code"])

        author = result["author"]
        self.assertEqual([c.name for c in author.mod], ["id"])
        self.assertEqual([c.name for c in author.same], ["name"])


if __name__ == "__main__":
    unittest.main()
