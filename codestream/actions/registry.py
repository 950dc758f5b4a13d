"""Capability registry for ``<action>`` blocks.

Maps ``(module, action)`` string pairs to callables of the external
data-layer client. Handlers are validated when they are registered, so an
action naming an unknown pair fails with a clear "unsupported operation"
error instead of a missing-attribute lookup at call time.

Usage::

    registry = CapabilityRegistry()
    registry.register_module("items", data_client.items, actions=["insert", "patch"])
    result = await registry.invoke("items", "insert", ["Products", {"title": "Mug"}])
"""

from __future__ import annotations

import inspect
import logging
from typing import TYPE_CHECKING, Any

from codestream.exceptions import RegistrationError, UnsupportedOperationError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

logger = logging.getLogger(__name__)


class CapabilityRegistry:
    """Explicit mapping of ``(module, action)`` to handlers.

    Handlers may be plain functions or coroutine functions; their return
    value (awaited when needed) is the action result.
    """

    def __init__(self) -> None:
        self._handlers: dict[tuple[str, str], Callable[..., Any]] = {}

    def register(self, module: str, action: str, handler: Callable[..., Any]) -> None:
        """Register a handler for ``module.action``.

        Raises:
            RegistrationError: If a name is empty, the handler is not
                callable, or the pair is already registered.
        """
        if not module or not action:
            raise RegistrationError("Module and action names must be non-empty")
        if not callable(handler):
            raise RegistrationError(f"Handler for {module}.{action} is not callable")
        key = (module, action)
        if key in self._handlers:
            raise RegistrationError(f"Operation {module}.{action} is already registered")

        self._handlers[key] = handler
        logger.debug("Registered operation %s.%s", module, action)

    def register_module(
        self,
        module: str,
        obj: Any,
        actions: Iterable[str] | None = None,
    ) -> None:
        """Register the operations of a client object under ``module``.

        Args:
            module: Module name used in ``<action module="...">``.
            obj: Client object exposing the operations as attributes.
            actions: Operation names to register. Defaults to every public
                callable attribute of ``obj``.

        Raises:
            RegistrationError: If a named operation is missing or not callable.
        """
        if actions is None:
            actions = [
                name
                for name in dir(obj)
                if not name.startswith("_") and callable(getattr(obj, name, None))
            ]
        for action in actions:
            handler = getattr(obj, action, None)
            if handler is None:
                raise RegistrationError(f"Module '{module}' has no operation '{action}'")
            self.register(module, action, handler)

    def supports(self, module: str, action: str) -> bool:
        return (module, action) in self._handlers

    def operations(self) -> list[str]:
        """List registered operations as ``module.action`` strings."""
        return sorted(f"{module}.{action}" for module, action in self._handlers)

    def resolve(self, module: str, action: str) -> Callable[..., Any]:
        """Return the handler for ``module.action``.

        Raises:
            UnsupportedOperationError: If the pair is not registered.
        """
        try:
            return self._handlers[(module, action)]
        except KeyError:
            raise UnsupportedOperationError(
                f"Unsupported operation: {module}.{action}",
                module=module,
                action=action,
            ) from None

    async def invoke(self, module: str, action: str, args: Sequence[Any]) -> Any:
        """Call ``module.action`` with ``args`` as positional arguments."""
        handler = self.resolve(module, action)
        logger.info("Calling %s.%s with %d argument(s)", module, action, len(args))
        result = handler(*args)
        if inspect.isawaitable(result):
            result = await result
        return result
