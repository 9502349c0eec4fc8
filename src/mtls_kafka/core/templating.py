"""
Jinja2 templating engine with runtime-modifiable context.

Used for:
- Rendering YAML config profiles against environment variables
- Rendering keys and payloads of generated producer batches
"""

import uuid
from datetime import datetime, timezone
from typing import Any

import orjson
from jinja2 import Environment, StrictUndefined, Template

from mtls_kafka.core.exceptions import TemplateError


class TemplateEngine:
    """
    Jinja2 template engine for string templates.

    Features:
    - Named string templates compiled once and cached
    - Runtime-modifiable base context
    - Custom filters and globals
    - Strict undefined variable handling

    Usage:
        engine = TemplateEngine({"key": "Key {{ index }}"})
        engine.render("key", {"index": 3})  # "Key 3"
    """

    def __init__(self, string_templates: dict[str, str] | None = None) -> None:
        self._context: dict[str, Any] = {}
        self._string_templates = dict(string_templates or {})
        self._template_cache: dict[str, Template] = {}

        self._env = Environment(
            undefined=StrictUndefined,
            autoescape=False,
            keep_trailing_newline=True,
        )
        self._register_filters()
        self._register_globals()

    def _register_filters(self) -> None:
        """Register custom Jinja2 filters."""
        self._env.filters.update({
            "to_json": self._filter_to_json,
            "uuid": self._filter_uuid,
            "default_empty": lambda v, d="": v if v else d,
        })

    def _register_globals(self) -> None:
        """Register custom Jinja2 globals."""
        self._env.globals.update({
            "now": datetime.now,
            "utcnow": lambda: datetime.now(timezone.utc),
            "uuid4": lambda: str(uuid.uuid4()),
            "timestamp_ms": lambda: int(datetime.now().timestamp() * 1000),
        })

    @staticmethod
    def _filter_to_json(value: Any, indent: int | None = None) -> str:
        """Convert value to JSON string using orjson."""
        opts = orjson.OPT_INDENT_2 if indent else 0
        return orjson.dumps(value, option=opts).decode("utf-8")

    @staticmethod
    def _filter_uuid(value: Any = None) -> str:
        """Generate or convert to UUID."""
        if value is None:
            return str(uuid.uuid4())
        return str(uuid.UUID(str(value)))

    @property
    def context(self) -> dict[str, Any]:
        """Get current context (copy)."""
        return self._context.copy()

    def set_context(self, context: dict[str, Any]) -> None:
        """Replace the entire context."""
        self._context = dict(context)

    def update_context(self, updates: dict[str, Any]) -> None:
        """Update context with new values."""
        self._context.update(updates)

    def add_string_template(self, name: str, template_string: str) -> None:
        """
        Add a named string template at runtime.

        Args:
            name: Template name.
            template_string: Template content.
        """
        self._string_templates[name] = template_string
        self._template_cache.pop(name, None)

    def render(
        self,
        template_name: str,
        extra_context: dict[str, Any] | None = None,
    ) -> str:
        """
        Render a named template.

        Args:
            template_name: Name of a registered string template.
            extra_context: Additional context to merge (doesn't modify base context).

        Returns:
            Rendered template string.

        Raises:
            TemplateError: If template not found or rendering fails.
        """
        if template_name not in self._string_templates:
            raise TemplateError(
                f"Template not found: {template_name}",
                template_name=template_name,
            )

        try:
            template = self._template_cache.get(template_name)
            if template is None:
                template = self._env.from_string(self._string_templates[template_name])
                self._template_cache[template_name] = template
            return template.render(**{**self._context, **(extra_context or {})})
        except Exception as e:
            raise TemplateError(
                f"Failed to render template: {e}",
                template_name=template_name,
            ) from e

    def render_string(
        self,
        template_string: str,
        extra_context: dict[str, Any] | None = None,
    ) -> str:
        """
        Render a template from a string.

        Args:
            template_string: Template content as string.
            extra_context: Additional context to merge.

        Returns:
            Rendered string.
        """
        try:
            template = self._env.from_string(template_string)
            return template.render(**{**self._context, **(extra_context or {})})
        except Exception as e:
            raise TemplateError(f"Failed to render string template: {e}") from e
