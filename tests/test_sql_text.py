import unittest

from sql_text import (
    find_closing_paren,
    is_balanced,
    mask_literals,
    parse_identifier_list,
    quote_identifier,
    split_sql_list,
    split_statements,
    strip_comments,
    strip_leading_comments,
    unquote_qualified,
)


class TestSplitStatements(unittest.TestCase):
    def test_splits_on_semicolons(self) -> None:
        self.assertEqual(split_statements("SELECT 1; SELECT 2;\nSELECT 3"), ["SELECT 1", "SELECT 2", "SELECT 3"])

    def test_ignores_delimiters_inside_literals_and_identifiers(self) -> None:
        text = "INSERT INTO t VALUES ('a;b', \"c;d\");\nCREATE TABLE `we;ird` (id int);"
        self.assertEqual(
            split_statements(text),
            ["INSERT INTO t VALUES ('a;b', \"c;d\")", "CREATE TABLE `we;ird` (id int)"],
        )

    def test_handles_escaped_and_doubled_quotes(self) -> None:
        text = "INSERT INTO t VALUES ('it\\'s; ok'), ('it''s; ok');SELECT 2;"
        self.assertEqual(split_statements(text), ["INSERT INTO t VALUES ('it\\'s; ok'), ('it''s; ok')", "SELECT 2"])

    def test_drops_comments_and_comment_only_fragments(self) -> None:
        text = "-- header; not a statement\n# another; one\n/* block; comment */\nSELECT 1;\n-- trailing\n"
        self.assertEqual(split_statements(text), ["SELECT 1"])

    def test_keeps_conditional_comments(self) -> None:
        self.assertEqual(split_statements("/*!40101 SET NAMES utf8mb4 */;"), ["/*!40101 SET NAMES utf8mb4 */"])

    def test_double_dash_without_space_is_not_a_comment(self) -> None:
        self.assertEqual(split_statements("SELECT 1--1;SELECT 2;"), ["SELECT 1--1", "SELECT 2"])

    def test_delimiter_blocks(self) -> None:
        text = (
            "DELIMITER $$\n"
            "CREATE PROCEDURE p() BEGIN\n  SELECT 1;\n  SELECT 2;\nEND$$\n"
            "DELIMITER ;\n"
            "SELECT 3;\n"
        )
        self.assertEqual(
            split_statements(text),
            ["CREATE PROCEDURE p() BEGIN\n  SELECT 1;\n  SELECT 2;\nEND", "SELECT 3"],
        )

    def test_delimiter_after_comment_lines(self) -> None:
        text = "--\n-- Triggers\n--\nDELIMITER //\nCREATE TRIGGER t BEFORE INSERT ON x FOR EACH ROW SET @a = 1;//\nDELIMITER ;\n"
        self.assertEqual(split_statements(text), ["CREATE TRIGGER t BEFORE INSERT ON x FOR EACH ROW SET @a = 1;"])

    def test_delimiter_word_inside_statement_is_not_a_directive(self) -> None:
        text = "CREATE TABLE t (\ndelimiter int\n);SELECT 1;"
        self.assertEqual(split_statements(text), ["CREATE TABLE t (\ndelimiter int\n)", "SELECT 1"])


class TestSqlTextHelpers(unittest.TestCase):
    def test_strip_leading_comments(self) -> None:
        self.assertEqual(strip_leading_comments("-- a\n/* b */ # c\nSELECT 1"), "SELECT 1")

    def test_leading_double_dash_needs_whitespace(self) -> None:
        self.assertEqual(strip_leading_comments("--x\nSELECT 1"), "--x\nSELECT 1")
        self.assertEqual(strip_leading_comments("--\nSELECT 1"), "SELECT 1")

    def test_strip_comments_keeps_quoted_and_conditional_text(self) -> None:
        text = "a INT, -- it's a note\n  b CHAR(1) DEFAULT '-- x' /* (b) */, # c\n  c INT /*!50100 COMMENT 'y' */"
        self.assertEqual(
            strip_comments(text),
            "a INT, \n  b CHAR(1) DEFAULT '-- x' , \n  c INT /*!50100 COMMENT 'y' */",
        )

    def test_mask_literals_keeps_offsets(self) -> None:
        text = "a '(x)' `b)` /* ( */ c"
        masked = mask_literals(text)
        self.assertEqual(len(masked), len(text))
        self.assertNotIn("(", masked)
        self.assertTrue(masked.endswith(" c"))

    def test_is_balanced(self) -> None:
        self.assertTrue(is_balanced("f(a, g(b)) ')'"))
        self.assertFalse(is_balanced("f(a, g(b)"))
        self.assertFalse(is_balanced(")("))
        self.assertTrue(is_balanced("f(a -- it's (\n)"))
        self.assertTrue(is_balanced("f(a # )\n)"))

    def test_find_closing_paren_skips_literals(self) -> None:
        text = "(a, ')', (b))x"
        self.assertEqual(find_closing_paren(text, 0), len(text) - 2)
        self.assertEqual(find_closing_paren("(a", 0), -1)

    def test_find_closing_paren_skips_comments(self) -> None:
        text = "(a, -- it's (\n b /* ) */)x"
        self.assertEqual(find_closing_paren(text, 0), len(text) - 2)

    def test_split_sql_list(self) -> None:
        self.assertEqual(
            split_sql_list("a int, b enum('x,y', 'z'), PRIMARY KEY (a, b)"),
            ["a int", "b enum('x,y', 'z')", "PRIMARY KEY (a, b)"],
        )
        self.assertEqual(split_sql_list("  "), [])
        self.assertEqual(
            split_sql_list("a int, -- one, two\n b int # x, y\n, c int"),
            ["a int", "-- one, two\n b int # x, y", "c int"],
        )

    def test_identifiers(self) -> None:
        self.assertEqual(unquote_qualified("`db`.`my``table`"), "my`table")
        self.assertEqual(unquote_qualified("plain"), "plain")
        self.assertEqual(quote_identifier("my`table"), "`my``table`")

    def test_parse_identifier_list_strips_lengths_and_order(self) -> None:
        self.assertEqual(parse_identifier_list("(`title`(20), `isbn` DESC, created ASC)"), ("title", "isbn", "created"))


if __name__ == "__main__":
    unittest.main()
