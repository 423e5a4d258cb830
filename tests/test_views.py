"""Tests for view pattern resolution."""

import logging

import pytest

from statefx import UnresolvedViewError, ViewTable, resolve
from statefx.views import Alternation, CatchAll, Exact, PrefixWildcard, RegexPattern, parse_pattern


def _view(name):
    return lambda state: (name, state)


class TestParsePattern:
    def test_variants(self):
        assert parse_pattern("idle") == Exact("idle")
        assert parse_pattern("a| b |c") == Alternation(("a", "b", "c"))
        assert parse_pattern("load.*") == PrefixWildcard("load")
        assert isinstance(parse_pattern("/^err/"), RegexPattern)
        assert parse_pattern("*") == CatchAll()

    def test_regex_with_pipe_is_regex(self):
        parsed = parse_pattern("/a|b/")
        assert isinstance(parsed, RegexPattern)
        assert parsed.matches("xbx")

    def test_invalid_regex_skipped_with_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="statefx.views"):
            assert parse_pattern("/([/") is None
        assert "Invalid view regex pattern" in caplog.text


class TestPrecedence:
    def test_exact_beats_prefix(self):
        table = ViewTable({"load.*": _view("prefix"), "loading": _view("exact")})
        assert table.render("loading") == ("exact", "loading")
        assert table.render("loaded") == ("prefix", "loaded")

    def test_alternation_beats_prefix(self):
        table = ViewTable({"a.*": _view("prefix"), "x|a.b": _view("alt")})
        assert table.match("a.b") == "x|a.b"

    def test_prefix_beats_regex(self):
        table = ViewTable({"/^form/": _view("regex"), "form.*": _view("prefix")})
        assert table.match("form.step1") == "form.*"

    def test_regex_beats_catch_all(self):
        table = ViewTable({"*": _view("any"), r"/^err\d+$/": _view("regex")})
        assert table.match("err42") == r"/^err\d+$/"
        assert table.match("err") == "*"

    def test_regex_searches(self):
        table = ViewTable({"/fail/": _view("regex")})
        assert table.match("upload.failed") == "/fail/"

    def test_declaration_order_within_class(self):
        table = ViewTable({"ab.*": _view("first"), "a.*": _view("second")})
        assert table.render("abc") == ("first", "abc")

    def test_patterns_in_resolution_order(self):
        table = ViewTable({"*": _view("any"), "x.*": _view("p"), "a|b": _view("alt"), "idle": _view("e")})
        assert table.patterns == ["idle", "a|b", "x.*", "*"]


class TestResolve:
    def test_resolve_returns_factory(self):
        factory = _view("idle")
        assert resolve({"idle": factory}, "idle") is factory

    def test_resolve_none_when_unmatched(self):
        assert resolve({"idle": _view("idle")}, "busy") is None

    def test_render_raises_when_unmatched(self):
        table = ViewTable({"idle": _view("idle")})
        with pytest.raises(UnresolvedViewError) as exc_info:
            table.render("busy")
        assert exc_info.value.state == "busy"
        assert isinstance(exc_info.value, LookupError)

    def test_invalid_regex_does_not_block_others(self, caplog):
        with caplog.at_level(logging.WARNING, logger="statefx.views"):
            table = ViewTable({"/(/": _view("bad"), "*": _view("any")})
        assert len(table) == 1
        assert table.render("anything") == ("any", "anything")

    def test_accepts_compiled_table(self):
        table = ViewTable({"*": _view("any")})
        assert resolve(table, "x") is not None
