"""Configuration loading with pydantic-settings.

Supports loading configuration from multiple sources with precedence:
1. Direct kwargs (highest priority)
2. Environment variables (PGTYPEGEN__SECTION__KEY)
3. Repo config file (pgtypegen.yaml, else .pgtypegen/config.yaml)
4. Built-in defaults (lowest priority)
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from pgtypegen.config.models import TypegenConfig
from pgtypegen.core.errors import ConfigError

CONFIG_FILENAMES = ("pgtypegen.yaml", ".pgtypegen/config.yaml")


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open() as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError.parse_error(str(path), str(e)) from e
    if not isinstance(data, dict):
        raise ConfigError.parse_error(str(path), "top level must be a mapping")
    return data


def find_config_file(root: Path) -> Path | None:
    for name in CONFIG_FILENAMES:
        candidate = root / name
        if candidate.is_file():
            return candidate
    return None


class _YamlSource(PydanticBaseSettingsSource):
    """Settings source that reads from pre-loaded YAML config."""

    def __init__(self, settings_cls: type[BaseSettings], yaml_config: dict[str, Any]) -> None:
        super().__init__(settings_cls)
        self._yaml_config = yaml_config

    def get_field_value(
        self,
        field: Any,  # noqa: ARG002
        field_name: str,
    ) -> tuple[Any, str, bool]:
        val = self._yaml_config.get(field_name)
        return val, field_name, val is not None

    def __call__(self) -> dict[str, Any]:
        return self._yaml_config


def _make_settings_class(yaml_config: dict[str, Any]) -> type[BaseSettings]:
    """Create a Settings class with instance-based YAML source (thread-safe)."""

    class TypegenSettings(TypegenConfig, BaseSettings):  # type: ignore[misc]
        """Root config. Env vars: PGTYPEGEN__DATABASE__URL, PGTYPEGEN__WORKERS, etc."""

        model_config = SettingsConfigDict(
            env_prefix="PGTYPEGEN__",
            env_nested_delimiter="__",
            case_sensitive=False,
        )

        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls: type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
            file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        ) -> tuple[PydanticBaseSettingsSource, ...]:
            # Precedence (first wins): init kwargs > env vars > yaml file
            return (init_settings, env_settings, _YamlSource(settings_cls, yaml_config))

    return TypegenSettings


def load_config(root_dir: Path | None = None, **kwargs: Any) -> TypegenConfig:
    """Load config: defaults < config file < env vars < kwargs.

    Args:
        root_dir: Project root; config files are looked up here and relative
                  include/exclude globs are matched against it.
                  Defaults to the current working directory.
        **kwargs: Override values (highest precedence). ``None`` values are
                  dropped so CLI options that were not given fall through.

    Returns:
        Fully resolved configuration object.

    Raises:
        ConfigError: On invalid YAML syntax or validation errors.
    """
    root_dir = (root_dir or Path.cwd()).resolve()

    config_file = find_config_file(root_dir)
    yaml_config = _load_yaml(config_file) if config_file else {}

    overrides = {key: value for key, value in kwargs.items() if value is not None}
    overrides.setdefault("root_dir", root_dir)

    settings_cls = _make_settings_class(yaml_config)
    try:
        settings = settings_cls(**overrides)
    except ValidationError as e:
        err = e.errors()[0]
        field = ".".join(str(loc) for loc in err["loc"])
        raise ConfigError.invalid_value(field, err.get("input"), err["msg"]) from e
    return TypegenConfig.model_validate(settings.model_dump())
