"""Security configuration loader with Pydantic v2 validation.

Loads and validates a ``security.yaml`` file into a typed
:class:`SecurityConfig` object.  Unknown keys are allowed to support
future schema additions without breakage.

Example
-------
>>> loader = ConfigLoader()
>>> config = loader.load_string("storage_type: memory\\ncache_ttl: 5000\\n")
>>> config.cache_ttl
5000.0
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from aumos_record_security.errors import PermissionConfigError
from aumos_record_security.permissions.models import PermissionConfig

StorageType = Literal["memory", "redis", "database", "custom"]


class DatabaseConfig(BaseModel):
    """Where the database backend keeps permission rows."""

    model_config = {"extra": "allow"}

    datasource: str
    table: str | None = Field(default=None)


class SecurityConfig(BaseModel):
    """Top-level security engine configuration.

    All options fall back to defaults; an empty mapping is a valid,
    fully-enabled in-memory configuration with no policies.
    """

    model_config = {"extra": "allow", "arbitrary_types_allowed": True}

    enabled: bool = Field(default=True)
    storage_type: StorageType = Field(default="memory")
    permissions: list[PermissionConfig] = Field(default_factory=list)
    redis_url: str | None = Field(default=None)
    database_config: DatabaseConfig | None = Field(default=None)
    exempt_objects: list[str] = Field(default_factory=list)
    enable_row_level_security: bool = Field(default=True)
    enable_field_level_security: bool = Field(default=True)
    precompile_rules: bool = Field(default=True)
    enable_cache: bool = Field(default=True)
    cache_ttl: float = Field(default=60000.0, gt=0, description="Milliseconds.")
    throw_on_denied: bool = Field(default=True)
    enable_audit: bool = Field(default=False)
    audit_capacity: int = Field(default=1000, ge=1)
    audit_log_path: Path | None = Field(default=None)
    storage: Any = Field(default=None, exclude=True)

    @field_validator("exempt_objects")
    @classmethod
    def dedupe_exempt_objects(cls, values: list[str]) -> list[str]:
        return list(dict.fromkeys(values))

    @model_validator(mode="after")
    def check_unique_objects(self) -> "SecurityConfig":
        seen: set[str] = set()
        for config in self.permissions:
            if config.object in seen:
                raise ValueError(f"Duplicate permission config for object '{config.object}'")
            seen.add(config.object)
        return self

    def is_exempt(self, object_name: str) -> bool:
        return object_name in self.exempt_objects


def coerce_security_config(config: SecurityConfig | dict[str, Any] | None) -> SecurityConfig:
    """Accept a model, a raw mapping or ``None`` and return a validated config.

    Raises
    ------
    PermissionConfigError
        When validation fails.
    """
    if isinstance(config, SecurityConfig):
        return config
    try:
        return SecurityConfig.model_validate(config or {})
    except ValidationError as exc:
        raise PermissionConfigError(f"Invalid security configuration: {exc}") from exc


class ConfigLoader:
    """Loads and validates security YAML configuration.

    Example
    -------
    >>> loader = ConfigLoader()
    >>> config = loader.load(Path("security.yaml"))
    """

    def load(self, config_path: Path) -> SecurityConfig:
        """Load and validate a security YAML file.

        Parameters
        ----------
        config_path:
            Path to the ``security.yaml`` file.

        Returns
        -------
        SecurityConfig
            Validated configuration object.

        Raises
        ------
        FileNotFoundError:
            When the config file does not exist.
        PermissionConfigError:
            When the YAML cannot be parsed or fails validation.
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Security config not found: {config_path}")

        with config_path.open("r", encoding="utf-8") as fh:
            try:
                raw: dict[str, object] = yaml.safe_load(fh) or {}
            except yaml.YAMLError as exc:
                raise PermissionConfigError(
                    f"Failed to parse YAML: {exc}", str(config_path)
                ) from exc

        return self._validate(raw, str(config_path))

    def load_string(self, yaml_content: str) -> SecurityConfig:
        """Load and validate a YAML string directly."""
        try:
            raw: dict[str, object] = yaml.safe_load(yaml_content) or {}
        except yaml.YAMLError as exc:
            raise PermissionConfigError(f"Failed to parse YAML string: {exc}") from exc
        return self._validate(raw, None)

    def defaults(self) -> SecurityConfig:
        """Return a default configuration with all defaults applied."""
        return SecurityConfig()

    @staticmethod
    def _validate(raw: object, config_path: str | None) -> SecurityConfig:
        if not isinstance(raw, dict):
            raise PermissionConfigError("Security config must be a YAML mapping.", config_path)
        try:
            return SecurityConfig.model_validate(raw)
        except ValidationError as exc:
            raise PermissionConfigError(str(exc), config_path) from exc
