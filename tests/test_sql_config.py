import logging
import tempfile
import unittest
from pathlib import Path

from sql_config import ImportOptions, SqlConfig, WithData, coerce_with_data, load_config, log_level


class TestWithData(unittest.TestCase):
    def test_policy(self) -> None:
        cases = [
            (True, WithData.ALL),
            (1, WithData.ALL),
            (None, WithData.ALL),
            ("single", WithData.SINGLE),
            ("SINGLE", WithData.SINGLE),
            (2, WithData.SINGLE),
            (False, WithData.NONE),
            (0, WithData.NONE),
            ("Single", WithData.NONE),
            ("yes", WithData.NONE),
            (3, WithData.NONE),
            (WithData.SINGLE, WithData.SINGLE),
        ]
        for value, expected in cases:
            with self.subTest(value=value):
                self.assertIs(coerce_with_data(value), expected)


class TestLoadConfig(unittest.TestCase):
    def _write(self, content: str) -> Path:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        path = Path(tmp.name) / "config.yaml"
        path.write_text(content, encoding="utf-8")
        return path

    def test_sections(self) -> None:
        path = self._write(
            "db:\n"
            "  host: db.internal\n"
            "  port: 3307\n"
            "  user: importer\n"
            "  password: secret\n"
            "  database: library\n"
            "  verbose: 2\n"
            "import:\n"
            "  withData: single\n"
            "  dropFirst: false\n"
            "  closeConnection: true\n"
        )
        config, options = load_config(path)
        self.assertEqual(
            config,
            SqlConfig(host="db.internal", port=3307, user="importer", password="secret", database="library", verbose=2),
        )
        self.assertEqual(options, ImportOptions(with_data=WithData.SINGLE, drop_first=False, close_connection=True))

    def test_defaults_and_unknown_keys(self) -> None:
        path = self._write("db:\n  user: root\n  socket: /tmp/mysql.sock\n")
        with self.assertLogs("sql_config", level="WARNING") as logs:
            config, options = load_config(path)
        self.assertEqual(config, SqlConfig(user="root"))
        self.assertEqual(options, ImportOptions())
        self.assertIn("socket", logs.output[0])

    def test_empty_file(self) -> None:
        self.assertEqual(load_config(self._write("")), (SqlConfig(), ImportOptions()))

    def test_rejects_non_mapping(self) -> None:
        with self.assertRaises(ValueError):
            load_config(self._write("- a\n- b\n"))

    def test_log_level(self) -> None:
        self.assertEqual(log_level(0), logging.WARNING)
        self.assertEqual(log_level(1), logging.INFO)
        self.assertEqual(log_level(3), logging.DEBUG)


if __name__ == "__main__":
    unittest.main()
