import unittest

from split_alter import alter_clauses, parse_alter_clause, split_alter, split_alter_statements
from sql_types import AlterParseError, AlterType, ForeignKey


class TestSplitAlter(unittest.TestCase):
    def test_separates_foreign_clauses(self) -> None:
        split = split_alter("ALTER TABLE t ADD PRIMARY KEY (id), ADD FOREIGN KEY (x) REFERENCES y(z);")
        self.assertEqual(split.table, "t")
        self.assertEqual(split.key, ["ADD PRIMARY KEY (id)"])
        self.assertEqual(split.foreign, ["ADD FOREIGN KEY (x) REFERENCES y(z)"])

        parsed = parse_alter_clause(split.foreign[0])
        self.assertIs(parsed.type, AlterType.FOREIGN)
        self.assertEqual(parsed.ref, ForeignKey(table="y", column="z"))
        self.assertEqual(parsed.column, "x")

    def test_clause_split_respects_nesting(self) -> None:
        table, clauses = alter_clauses(
            "ALTER TABLE `db`.`book`\n  ADD PRIMARY KEY (`isbn`,`copy`),\n  ADD KEY `by_title` (`title`(20), `isbn`);"
        )
        self.assertEqual(table, "book")
        self.assertEqual(clauses, ["ADD PRIMARY KEY (`isbn`,`copy`)", "ADD KEY `by_title` (`title`(20), `isbn`)"])

    def test_comments_between_clauses_are_dropped(self) -> None:
        table, clauses = alter_clauses("ALTER TABLE t\n  ADD KEY k (a), -- author's index\n  ADD KEY j (b) /* (b) */;")
        self.assertEqual(table, "t")
        self.assertEqual(clauses, ["ADD KEY k (a)", "ADD KEY j (b)"])

    def test_split_alter_statements_makes_one_clause_statements(self) -> None:
        split = split_alter_statements(
            [
                "ALTER TABLE `loan`\n  ADD PRIMARY KEY (`id`),\n  ADD CONSTRAINT `loan_book` FOREIGN KEY (`book`) REFERENCES `book` (`isbn`)",
                "ALTER TABLE `member` MODIFY `id` int(11) NOT NULL AUTO_INCREMENT",
            ]
        )
        self.assertEqual(
            split.key,
            [
                "ALTER TABLE `loan` ADD PRIMARY KEY (`id`)",
                "ALTER TABLE `member` MODIFY `id` int(11) NOT NULL AUTO_INCREMENT",
            ],
        )
        self.assertEqual(
            split.foreign,
            ["ALTER TABLE `loan` ADD CONSTRAINT `loan_book` FOREIGN KEY (`book`) REFERENCES `book` (`isbn`)"],
        )


class TestParseAlterClause(unittest.TestCase):
    def test_primary(self) -> None:
        parsed = parse_alter_clause("ADD PRIMARY KEY (`a`,`b`,`c`) USING BTREE")
        self.assertIs(parsed.type, AlterType.PRIMARY)
        self.assertEqual(parsed.columns, ("a", "b", "c"))

    def test_modify(self) -> None:
        parsed = parse_alter_clause("MODIFY COLUMN `id` int(11) NOT NULL AUTO_INCREMENT")
        self.assertIs(parsed.type, AlterType.MODIFY)
        self.assertEqual(parsed.column, "id")
        self.assertTrue(parsed.definition.is_auto_increment)
        self.assertFalse(parsed.definition.is_nullable)

    def test_named_constraint_foreign_key(self) -> None:
        parsed = parse_alter_clause(
            "ADD CONSTRAINT `loan_member` FOREIGN KEY (`member`) REFERENCES `member` (`id`) ON DELETE CASCADE"
        )
        self.assertEqual(parsed.name, "loan_member")
        self.assertEqual(parsed.columns, ("member",))
        self.assertEqual(parsed.ref, ForeignKey(table="member", column="id"))

    def test_unique_and_index(self) -> None:
        unique = parse_alter_clause("ADD UNIQUE KEY `email` (`email`,`lab`)")
        self.assertIs(unique.type, AlterType.UNIQUE)
        self.assertEqual((unique.name, unique.columns), ("email", ("email", "lab")))

        index = parse_alter_clause("ADD FULLTEXT KEY `ft_title` (`title`)")
        self.assertIs(index.type, AlterType.INDEX)
        self.assertEqual(index.name, "ft_title")

    def test_unnamed_keys_take_first_column_name(self) -> None:
        self.assertEqual(parse_alter_clause("ADD UNIQUE (`code`, `name`)").name, "code")
        self.assertEqual(parse_alter_clause("ADD INDEX (`created`)").name, "created")

    def test_other_clauses_are_ignored(self) -> None:
        for clause in ("ADD COLUMN `x` int", "DROP COLUMN `x`", "ENGINE=InnoDB", "AUTO_INCREMENT=3"):
            with self.subTest(clause=clause):
                self.assertIsNone(parse_alter_clause(clause))

    def test_malformed_clauses_raise(self) -> None:
        for clause in (
            "ADD FOREIGN KEY (x)",
            "ADD PRIMARY KEY ()",
            "ADD UNIQUE KEY `u`",
            "MODIFY `id` nonsense",
        ):
            with self.subTest(clause=clause):
                with self.assertRaises(AlterParseError) as ctx:
                    parse_alter_clause(clause)
                self.assertEqual(ctx.exception.code, "BAD_ALTER_CLAUSE")


if __name__ == "__main__":
    unittest.main()
