"""Call router: the only path by which one cell reaches another.

Handlers are registered at startup against a ``Destination`` and an action
name. ``invoke`` looks the pair up, runs the handler inside a tracing span
and a logging context, and normalizes failures:

- unknown destination or action: ``NotFoundError``
- a ``CellGatewayError`` raised by the handler: re-raised unchanged
- anything else: wrapped in ``InvocationError``

The router never lets a handler failure escape as a bare exception.
"""

import inspect
import re
import time
from collections.abc import Mapping
from typing import Any, Final, Protocol

from loguru import logger

from cellgate.core.constants import MILLISECONDS_PER_SECOND
from cellgate.core.context import RequestContext
from cellgate.core.exceptions import CellGatewayError, InvocationError, NotFoundError
from cellgate.core.observability import trace_operation
from cellgate.core.types import ActionHandler, CellResult, Payload
from cellgate.gateway.destinations import Destination

ACTION_NAME_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")


class Cell(Protocol):
    """A unit of functionality reachable through the router."""

    destination: Destination

    def actions(self) -> Mapping[str, ActionHandler]:
        """Action handlers this cell exposes, keyed by action name."""
        ...

    async def health(self) -> dict[str, Any]:
        """Report the cell's health."""
        ...


class CellRouter:
    """Typed registry of cell actions with uniform invocation semantics.

    Args:
        default_channel: Channel recorded when the request names none.
    """

    def __init__(self, default_channel: str = "stable") -> None:
        self._handlers: dict[Destination, dict[str, ActionHandler]] = {}
        self._cells: dict[Destination, Cell] = {}
        self._default_channel = default_channel

    def register(
        self, destination: Destination, action: str, handler: ActionHandler
    ) -> None:
        """Register one action handler.

        Raises:
            TypeError: If ``destination`` is not a ``Destination`` or the
                handler is not an async callable.
            ValueError: If the action name is malformed or already registered.
        """
        if not isinstance(destination, Destination):
            msg = f"destination must be a Destination, got {type(destination).__name__}"
            raise TypeError(msg)
        if not ACTION_NAME_PATTERN.match(action):
            msg = f"Invalid action name {action!r} for {destination}"
            raise ValueError(msg)
        if not _is_async_callable(handler):
            msg = f"Handler for {destination}:{action} must be an async callable"
            raise TypeError(msg)

        actions = self._handlers.setdefault(destination, {})
        if action in actions:
            msg = f"Action {action!r} is already registered for {destination}"
            raise ValueError(msg)

        actions[action] = handler
        logger.debug("Registered {}:{}", destination.value, action)

    def register_cell(self, cell: Cell) -> None:
        """Register every action of ``cell`` and keep it for health checks."""
        if cell.destination in self._cells:
            msg = f"A cell is already registered at {cell.destination}"
            raise ValueError(msg)

        for action, handler in cell.actions().items():
            self.register(cell.destination, action, handler)
        self._cells[cell.destination] = cell

        logger.info(
            "Registered cell {} with {} actions",
            cell.destination.value,
            len(self._handlers.get(cell.destination, {})),
        )

    def destinations(self) -> list[Destination]:
        """Destinations that have at least one registered action."""
        return list(self._handlers)

    def actions(self, destination: Destination | str) -> list[str]:
        """Sorted action names registered for ``destination``.

        Raises:
            NotFoundError: If nothing is registered at ``destination``.
        """
        return sorted(self._actions_for(Destination.parse(destination)))

    async def invoke(
        self,
        destination: Destination | str,
        action: str,
        payload: Payload | None = None,
    ) -> CellResult:
        """Invoke ``action`` on ``destination`` with ``payload``.

        Args:
            destination: Target cell, as an enum member or ``group/name``.
            action: Action name within the cell.
            payload: Arguments for the handler; defaults to an empty mapping.

        Returns:
            CellResult: Whatever the handler returned.

        Raises:
            NotFoundError: If the destination or action is not registered.
            CellGatewayError: Any structured error raised by the handler.
            InvocationError: If the handler failed unexpectedly.
        """
        target = Destination.parse(destination)
        handler = self._actions_for(target).get(action)
        if handler is None:
            raise NotFoundError(
                f"Action '{action}' is not registered for {target.value}",
                context={"destination": target.value, "action": action},
            )

        channel = RequestContext.get_channel() or self._default_channel

        with (
            logger.contextualize(destination=target.value, action=action, channel=channel),
            trace_operation(
                "cell.invoke", destination=target.value, action=action, channel=channel
            ) as span,
        ):
            logger.info("Invoking {}:{} on channel {}", target.value, action, channel)
            start_time = time.perf_counter()

            try:
                result = await handler(payload or {})
            except CellGatewayError as e:
                span.set_attribute("error_code", e.error_code)
                logger.info(
                    "Cell action {}:{} raised {}",
                    target.value,
                    action,
                    e.error_code,
                    severity=e.severity.value,
                )
                raise
            except Exception as e:
                span.record_exception(e)
                logger.opt(exception=e).error(
                    "Cell action {}:{} failed unexpectedly", target.value, action
                )
                raise InvocationError(
                    f"{target.value}:{action} failed: {type(e).__name__}",
                    context={"destination": target.value, "action": action},
                    cause=e,
                ) from e

            duration_ms = round(
                (time.perf_counter() - start_time) * MILLISECONDS_PER_SECOND, 2
            )
            logger.debug(
                "Completed {}:{} in {}ms",
                target.value,
                action,
                duration_ms,
                duration_ms=duration_ms,
            )

        return result

    async def health(self, destination: Destination | str) -> dict[str, Any]:
        """Return the health report of the cell at ``destination``.

        A cell that fails its own health check is reported as unhealthy
        rather than raising.

        Raises:
            NotFoundError: If no cell is registered at ``destination``.
        """
        target = Destination.parse(destination)
        cell = self._cells.get(target)
        if cell is None:
            raise NotFoundError(
                f"No cell registered at '{target.value}'",
                context={"destination": target.value},
            )

        try:
            return await cell.health()
        except Exception as e:  # noqa: BLE001
            logger.opt(exception=e).warning("Health check for {} failed", target.value)
            return {
                "cellId": target.value,
                "status": "unhealthy",
                "error": type(e).__name__,
                "endpoints": self.actions(target),
            }

    def _actions_for(self, destination: Destination) -> dict[str, ActionHandler]:
        actions = self._handlers.get(destination)
        if not actions:
            raise NotFoundError(
                f"No cell registered at '{destination.value}'",
                context={"destination": destination.value},
            )
        return actions


def _is_async_callable(handler: object) -> bool:
    if inspect.iscoroutinefunction(handler):
        return True
    call = getattr(handler, "__call__", None)  # noqa: B004
    return call is not None and inspect.iscoroutinefunction(call)
