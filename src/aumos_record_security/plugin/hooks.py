"""Host lifecycle hooks.

SecurityHooks is a callable container for hosts that dispatch hooks by
event rather than letting the plugin register itself.  Each method takes
the hook context mapping, fills in what the event implies (for example
``operation="update"``) and delegates to the :class:`SecurityPlugin`.

Example
-------
::

    plugin = SecurityPlugin(config)
    await plugin.install(kernel)
    hooks = SecurityHooks(plugin)
    host.on("before_update", hooks.before_update)
    host.on("after_find", hooks.after_query)
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, MutableMapping

if TYPE_CHECKING:
    from aumos_record_security.plugin.security_plugin import SecurityPlugin

logger = logging.getLogger(__name__)


class SecurityHooks:
    """Lifecycle hooks wrapping a :class:`SecurityPlugin`.

    Parameters
    ----------
    plugin:
        The installed :class:`SecurityPlugin` instance.
    """

    def __init__(self, plugin: "SecurityPlugin") -> None:
        self._plugin = plugin

    # ------------------------------------------------------------------
    # Query hooks
    # ------------------------------------------------------------------

    async def before_query(self, context: MutableMapping[str, Any]) -> None:
        """Called before records are fetched.

        Parameters
        ----------
        context:
            Must include ``object_name`` and may include ``query``,
            ``user``, ``user_id`` and ``roles``.  On return
            ``query["filters"]`` carries the security filters and
            ``skip`` is set when no record can match.
        """
        await self._plugin.before_query(context)

    async def after_query(self, context: MutableMapping[str, Any]) -> None:
        """Called after records are fetched; ``result`` is replaced in place."""
        await self._plugin.after_query(context)

    # ------------------------------------------------------------------
    # Mutation hooks
    # ------------------------------------------------------------------

    async def before_mutation(self, context: MutableMapping[str, Any]) -> None:
        """Called before any mutation; ``context["operation"]`` must be set."""
        await self._plugin.before_mutation(context)

    async def before_create(self, context: MutableMapping[str, Any]) -> None:
        await self._mutation("create", context)

    async def before_update(self, context: MutableMapping[str, Any]) -> None:
        await self._mutation("update", context)

    async def before_delete(self, context: MutableMapping[str, Any]) -> None:
        await self._mutation("delete", context)

    async def _mutation(self, operation: str, context: MutableMapping[str, Any]) -> None:
        context.setdefault("operation", operation)
        await self._plugin.before_mutation(context)
