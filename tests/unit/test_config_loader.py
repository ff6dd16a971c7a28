"""Tests for ConfigLoader and SecurityConfig validation."""
from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from aumos_record_security.errors import PermissionConfigError
from aumos_record_security.plugin.config_loader import (
    ConfigLoader,
    SecurityConfig,
    coerce_security_config,
)

_YAML = textwrap.dedent(
    """\
    storage_type: memory
    cache_ttl: 5000
    exempt_objects: [audit_logs, audit_logs, sessions]
    permissions:
      - object: accounts
        object_permissions:
          read: [member, admin]
        field_masking:
          ssn:
            mask_format: "***-**-{last4}"
            visible_to: [admin]
    """
)


class TestConfigLoaderDefaults:
    def test_defaults_returns_security_config(self) -> None:
        assert isinstance(ConfigLoader().defaults(), SecurityConfig)

    def test_default_values(self) -> None:
        config = ConfigLoader().defaults()
        assert config.enabled is True
        assert config.storage_type == "memory"
        assert config.permissions == []
        assert config.enable_row_level_security is True
        assert config.enable_field_level_security is True
        assert config.precompile_rules is True
        assert config.enable_cache is True
        assert config.cache_ttl == 60000.0
        assert config.throw_on_denied is True
        assert config.enable_audit is False


class TestConfigLoaderLoad:
    def test_load_string(self) -> None:
        config = ConfigLoader().load_string(_YAML)
        assert config.cache_ttl == 5000.0
        assert config.permissions[0].object == "accounts"
        assert config.permissions[0].field_masking["ssn"].visible_to == ["admin"]

    def test_exempt_objects_deduplicated(self) -> None:
        config = ConfigLoader().load_string(_YAML)
        assert config.exempt_objects == ["audit_logs", "sessions"]
        assert config.is_exempt("sessions") is True
        assert config.is_exempt("accounts") is False

    def test_load_file(self, tmp_path: Path) -> None:
        path = tmp_path / "security.yaml"
        path.write_text(_YAML, encoding="utf-8")
        assert ConfigLoader().load(path).storage_type == "memory"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            ConfigLoader().load(tmp_path / "missing.yaml")

    def test_empty_string_is_defaults(self) -> None:
        assert ConfigLoader().load_string("").storage_type == "memory"

    def test_invalid_yaml(self) -> None:
        with pytest.raises(PermissionConfigError):
            ConfigLoader().load_string("permissions: [unclosed")

    def test_non_mapping_rejected(self) -> None:
        with pytest.raises(PermissionConfigError, match="mapping"):
            ConfigLoader().load_string("- a\n- b\n")

    def test_error_carries_path(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("cache_ttl: -1\n", encoding="utf-8")
        with pytest.raises(PermissionConfigError) as exc_info:
            ConfigLoader().load(path)
        assert exc_info.value.config_path == str(path)

    def test_duplicate_objects_rejected(self) -> None:
        with pytest.raises(PermissionConfigError, match="Duplicate"):
            ConfigLoader().load_string(
                "permissions:\n  - object: a\n  - object: a\n"
            )

    def test_unknown_storage_type_rejected(self) -> None:
        with pytest.raises(PermissionConfigError):
            ConfigLoader().load_string("storage_type: sqlite\n")

    def test_unknown_keys_allowed(self) -> None:
        config = ConfigLoader().load_string("future_option: 1\n")
        assert config.model_extra == {"future_option": 1}


class TestCoerceSecurityConfig:
    def test_passes_model_through(self) -> None:
        config = SecurityConfig()
        assert coerce_security_config(config) is config

    def test_none_is_defaults(self) -> None:
        assert coerce_security_config(None).enabled is True

    def test_invalid_mapping(self) -> None:
        with pytest.raises(PermissionConfigError):
            coerce_security_config({"audit_capacity": 0})
