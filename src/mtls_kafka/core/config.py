"""
Configuration management with Jinja templating and .env integration.

Provides:
- Environment variable lookup from .env and the process environment
- Loading YAML profiles with Jinja variable substitution
- Type-safe parsing into Pydantic models
"""

import os
from pathlib import Path
from typing import Any, TypeVar

import yaml
from dotenv import dotenv_values
from pydantic import BaseModel

from mtls_kafka.core.exceptions import ConfigurationError
from mtls_kafka.core.templating import TemplateEngine

T = TypeVar("T", bound=BaseModel)


class ConfigManager:
    """
    Configuration manager with Jinja templating and environment variable support.

    Values from the process environment take precedence over the .env file.

    Usage:
        manager = ConfigManager(env_file=Path(".env"))
        brokers = manager.get_env("KAFKA_BROKERS", "localhost:9092")
        profile = manager.load_yaml("consumer.yaml")
    """

    def __init__(
        self,
        env_file: Path | None = None,
        load_system_env: bool = True,
    ) -> None:
        """
        Initialize the configuration manager.

        Args:
            env_file: Path to .env file.
            load_system_env: Whether to load system environment variables.
        """
        self._env_file = env_file
        self._env_vars: dict[str, str] = {}
        self._load_environment_variables(load_system_env)

        self._template_engine = TemplateEngine()
        self._template_engine.set_context(self._env_vars)

    def _load_environment_variables(self, load_system_env: bool) -> None:
        """Load environment variables from .env and system."""
        if self._env_file:
            if not self._env_file.exists():
                raise ConfigurationError(
                    f"Environment file not found: {self._env_file}",
                    config_path=str(self._env_file),
                )
            self._env_vars.update(
                {k: v for k, v in dotenv_values(self._env_file).items() if v is not None}
            )

        if load_system_env:
            self._env_vars.update(os.environ)

    @property
    def env_vars(self) -> dict[str, str]:
        """Merged environment (copy)."""
        return self._env_vars.copy()

    @property
    def template_engine(self) -> TemplateEngine:
        """Engine whose context is the merged environment."""
        return self._template_engine

    def get_env(self, key: str, default: str | None = None) -> str | None:
        """Look up ``key`` in the process environment, then the .env file."""
        return self._env_vars.get(key, default)

    def require_env(self, key: str) -> str:
        """Like get_env, but a missing variable is a ConfigurationError."""
        value = self._env_vars.get(key)
        if value is None:
            raise ConfigurationError(
                f"Required environment variable not found: {key}",
                details={"variable": key},
            )
        return value

    def load_yaml(
        self,
        file_path: Path | str,
        render_template: bool = True,
        extra_context: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Load a YAML file with optional Jinja rendering.

        Args:
            file_path: Path to the YAML file.
            render_template: Whether to render Jinja variables.
            extra_context: Additional context for rendering.

        Returns:
            Parsed YAML content as dictionary.

        Raises:
            ConfigurationError: If file not found or parsing fails.
        """
        path = Path(file_path)

        try:
            content = path.read_text(encoding="utf-8")

            if render_template:
                content = self._template_engine.render_string(content, extra_context)

            data = yaml.safe_load(content)
        except FileNotFoundError as e:
            raise ConfigurationError(
                f"Configuration file not found: {path}",
                config_path=str(path),
            ) from e
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Failed to parse YAML: {e}",
                config_path=str(path),
            ) from e
        except Exception as e:
            raise ConfigurationError(
                f"Failed to load configuration: {e}",
                config_path=str(path),
            ) from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                "Configuration file must contain a mapping",
                config_path=str(path),
            )
        return data

    def load_config(
        self,
        file_path: Path | str | None,
        model: type[T],
        section: str | None = None,
        defaults: dict[str, Any] | None = None,
        overrides: dict[str, Any] | None = None,
    ) -> T:
        """
        Build a Pydantic model from defaults, an optional YAML file and overrides.

        Precedence, lowest first: ``defaults``, the file (or its ``section``),
        then ``overrides``. None values in ``overrides`` are ignored.

        Args:
            file_path: Path to the YAML file, or None to skip the file.
            model: Pydantic model class to parse into.
            section: Optional top-level key to read instead of the whole document.
            defaults: Values used when neither the file nor overrides set them.
            overrides: Values that take precedence over the file.

        Returns:
            Parsed and validated model instance.

        Raises:
            ConfigurationError: If file not found, parsing, or validation fails.
        """
        data: dict[str, Any] = {}
        if file_path is not None:
            data = self.load_yaml(file_path)
            if section is not None:
                data = data.get(section) or {}

        merged = {
            **(defaults or {}),
            **data,
            **{k: v for k, v in (overrides or {}).items() if v is not None},
        }

        try:
            return model(**merged)
        except ConfigurationError as e:
            e.config_path = str(file_path) if file_path is not None else None
            raise
        except Exception as e:
            raise ConfigurationError(
                f"Failed to validate configuration: {e}",
                config_path=str(file_path) if file_path is not None else None,
                details={"model": model.__name__},
            ) from e
