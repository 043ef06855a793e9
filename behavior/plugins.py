"""
Plugin effect contract.

The engine never looks inside a plugin. plugin_trigger behaviors are
forwarded to:

    execute(plugin_id, payload) -> PluginResult{success, data, message}

A plugin_trigger without a plugin_id goes to every plugin subscribed to the
current state via trigger_by_state().

Plugins are registered either as objects with an execute(payload) method or
as plain callables; both may be sync or async.
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, Union

from .models import PetState

logger = logging.getLogger("companion.behavior.plugins")


@dataclass
class PluginResult:
    success: bool
    data: Any = None
    message: Optional[str] = None

    def to_dict(self) -> dict:
        return {"success": self.success, "data": self.data, "message": self.message}


def _to_result(value: Any) -> PluginResult:
    if isinstance(value, PluginResult):
        return value
    if isinstance(value, dict) and "success" in value:
        return PluginResult(
            success=bool(value["success"]),
            data=value.get("data"),
            message=value.get("message"),
        )
    return PluginResult(success=True, data=value)


class PluginRegistry:
    """Maps plugin ids to their implementations and dispatches calls."""

    def __init__(self):
        self._plugins: dict[str, Union[Callable, Any]] = {}
        self._states: dict[str, Optional[frozenset]] = {}

    def register(self, plugin_id: str, plugin: Union[Callable, Any], states: Optional[Iterable] = None) -> None:
        """Register a plugin.

        states limits which pet states trigger_by_state() dispatches it for;
        None subscribes it to every state.
        """
        if plugin_id in self._plugins:
            logger.warning(f"Plugin {plugin_id!r} re-registered; replacing previous implementation")
        if not callable(plugin) and not callable(getattr(plugin, "execute", None)):
            raise TypeError(f"Plugin {plugin_id!r} must be callable or provide execute(payload)")
        self._plugins[plugin_id] = plugin
        self._states[plugin_id] = None if states is None else frozenset(PetState(s) for s in states)
        logger.info(f"Plugin registered: {plugin_id}")

    def unregister(self, plugin_id: str) -> bool:
        self._states.pop(plugin_id, None)
        return self._plugins.pop(plugin_id, None) is not None

    def has(self, plugin_id: str) -> bool:
        return plugin_id in self._plugins

    def list_plugins(self) -> list[str]:
        return list(self._plugins)

    def plugins_for_state(self, state: PetState) -> list[str]:
        state = PetState(state)
        return [pid for pid, states in self._states.items() if states is None or state in states]

    async def execute(self, plugin_id: str, payload: Optional[dict] = None) -> PluginResult:
        """Run a plugin. Exceptions from the plugin propagate to the caller."""
        plugin = self._plugins.get(plugin_id)
        if plugin is None:
            return PluginResult(success=False, message=f"Plugin {plugin_id!r} not registered")

        handler = getattr(plugin, "execute", None)
        if not callable(handler):
            handler = plugin
        result = handler(dict(payload or {}))
        if inspect.isawaitable(result):
            result = await result
        return _to_result(result)

    async def trigger_by_state(self, state: PetState, payload: Optional[dict] = None) -> dict[str, PluginResult]:
        """Run every plugin subscribed to state, in registration order.

        A plugin that raises is logged and reported as a failed result; the
        remaining plugins still run.
        """
        results: dict[str, PluginResult] = {}
        for plugin_id in self.plugins_for_state(state):
            try:
                results[plugin_id] = await self.execute(plugin_id, payload)
            except Exception as e:
                logger.error(f"Plugin {plugin_id} raised {type(e).__name__}: {e}")
                results[plugin_id] = PluginResult(success=False, message=str(e))
        return results
