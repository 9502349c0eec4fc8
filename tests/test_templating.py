"""
Tests for the Jinja2 template engine.
"""

import uuid

import pytest

from mtls_kafka.core.exceptions import TemplateError
from mtls_kafka.core.templating import TemplateEngine


class TestTemplateEngine:
    def test_render_named_template(self):
        engine = TemplateEngine({"key": "Key {{ index }}"})

        assert engine.render("key", {"index": 3}) == "Key 3"

    def test_extra_context_does_not_leak(self):
        engine = TemplateEngine({"t": "{{ a }}"})
        engine.set_context({"a": "base"})

        assert engine.render("t", {"a": "extra"}) == "extra"
        assert engine.render("t") == "base"
        assert engine.context == {"a": "base"}

    def test_replacing_a_template_clears_cache(self):
        engine = TemplateEngine({"t": "one"})
        assert engine.render("t") == "one"

        engine.add_string_template("t", "two")

        assert engine.render("t") == "two"

    def test_unknown_template(self):
        with pytest.raises(TemplateError, match="Template not found") as exc_info:
            TemplateEngine().render("nope")

        assert exc_info.value.template_name == "nope"

    def test_strict_undefined(self):
        with pytest.raises(TemplateError):
            TemplateEngine().render_string("{{ missing }}")

    def test_filters(self):
        engine = TemplateEngine()
        engine.update_context({"items": [1, 2], "blank": ""})

        assert engine.render_string("{{ items | to_json }}") == "[1,2]"
        assert engine.render_string("{{ blank | default_empty('n/a') }}") == "n/a"
        value = "12345678-1234-5678-1234-567812345678"
        assert engine.render_string("{{ v | uuid }}", {"v": value}) == value

    def test_globals(self):
        engine = TemplateEngine()

        uuid.UUID(engine.render_string("{{ uuid4() }}"))
        assert int(engine.render_string("{{ timestamp_ms() }}")) > 0
