"""Plugin core package for aumos-record-security.

Exports the SecurityPlugin entry point, lifecycle hooks, and
configuration loader.
"""
from __future__ import annotations

from aumos_record_security.plugin.config_loader import (
    ConfigLoader,
    DatabaseConfig,
    SecurityConfig,
    coerce_security_config,
)
from aumos_record_security.plugin.hooks import SecurityHooks
from aumos_record_security.plugin.security_plugin import SecurityComponents, SecurityPlugin

__all__ = [
    "ConfigLoader",
    "DatabaseConfig",
    "SecurityComponents",
    "SecurityConfig",
    "SecurityHooks",
    "SecurityPlugin",
    "coerce_security_config",
]
