"""Tests for SQL dump formatting."""

from datetime import datetime, timezone

import pytest

from sitepull.services.export import SqlWriter, escape_value


class TestEscapeValue:
    """Tests for escape_value."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, "NULL"),
            (True, "1"),
            (False, "0"),
            (42, "42"),
            (-1.5, "-1.5"),
            (b"\x00\xff", "X'00FF'"),
            ("plain", "'plain'"),
        ],
    )
    def test_scalars(self, value, expected):
        assert escape_value(value) == expected

    @pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan")])
    def test_non_finite_float_is_null(self, value):
        assert escape_value(value) == "NULL"
        assert escape_value(value, dialect="sqlite") == "NULL"

    def test_mysql_escapes(self):
        assert escape_value("it's\n\\x") == "'it\\'s\\n\\\\x'"
        assert escape_value("nul\x00") == "'nul\\0'"

    def test_sqlite_doubles_quotes(self):
        assert escape_value("it's", dialect="sqlite") == "'it''s'"
        assert escape_value("a\\b", dialect="sqlite") == "'a\\b'"


class TestSqlWriter:
    """Tests for SqlWriter."""

    def test_unknown_dialect(self):
        with pytest.raises(ValueError):
            SqlWriter("oracle")

    def test_header_timestamp(self):
        now = datetime(2024, 5, 1, 12, 30, 0, tzinfo=timezone.utc)
        header = SqlWriter().header(now)
        assert "-- Generated: 2024-05-01 12:30:00 UTC" in header
        assert "SET foreign_key_checks = 0;" in header

    def test_mysql_table_lifecycle(self):
        writer = SqlWriter("mysql")
        opened = writer.table_open("wp_posts", "CREATE TABLE `wp_posts` (`id` int);")
        assert "DROP TABLE IF EXISTS `wp_posts`;" in opened
        assert "CREATE TABLE `wp_posts` (`id` int);" in opened
        assert "LOCK TABLES `wp_posts` WRITE;" in opened
        closed = writer.table_close("wp_posts")
        assert "UNLOCK TABLES;" in closed

    def test_insert(self):
        line = SqlWriter("mysql").insert("t", ["id", "name"], [1, "a'b"])
        assert line == "INSERT INTO `t` (`id`, `name`) VALUES (1, 'a\\'b');\n"

    def test_sqlite_quoting(self):
        writer = SqlWriter("sqlite")
        assert writer.ident('odd"name') == '"odd""name"'
        line = writer.insert("t", ["v"], ["x"])
        assert line == 'INSERT INTO "t" ("v") VALUES (\'x\');\n'

    def test_sqlite_transaction(self):
        writer = SqlWriter("sqlite")
        assert "BEGIN TRANSACTION;" in writer.header()
        assert "COMMIT;" in writer.footer()
        assert "LOCK TABLES" not in writer.table_open("t", "CREATE TABLE t (x)")
