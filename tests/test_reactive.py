"""Tests for reactive bindings."""

from statefx import Graph, bind, resolve_reactive


class _Label:
    text = ""


class TestResolveReactive:
    def test_plain_value(self):
        assert resolve_reactive("hi") == "hi"

    def test_callable(self):
        assert resolve_reactive(lambda: 3) == 3


class TestBind:
    def test_plain_value_set_once(self):
        label = _Label()
        assert bind(label, "text", "static") is None
        assert label.text == "static"

    def test_callable_stays_in_sync(self):
        g = Graph()
        name = g.cell("Ada")
        label = _Label()
        stop = bind(label, "text", lambda: f"Hello {name.get()}", graph=g)
        assert label.text == "Hello Ada"
        name.set("Grace")
        assert label.text == "Hello Grace"
        stop()
        name.set("Linus")
        assert label.text == "Hello Grace"
