"""FastAPI dependencies exposing the lifespan-owned ``CellContext``.

The context lives on ``app.state`` rather than in a module global so that
tests can build an app around their own context.
"""

from typing import Annotated

from fastapi import Depends, Request

from cellgate.gateway.context import CellContext
from cellgate.gateway.router import CellRouter


def get_cell_context(request: Request) -> CellContext:
    """Return the context installed by ``create_app`` or its lifespan.

    Raises:
        RuntimeError: If the application has not started.
    """
    context: CellContext | None = getattr(request.app.state, "cell_context", None)
    if context is None:
        msg = "Cell context is not initialized; is the application lifespan running?"
        raise RuntimeError(msg)
    return context


def get_cell_router(
    context: Annotated[CellContext, Depends(get_cell_context)],
) -> CellRouter:
    return context.router


# Type aliases for cleaner dependency injection
CellContextDep = Annotated[CellContext, Depends(get_cell_context)]
CellRouterDep = Annotated[CellRouter, Depends(get_cell_router)]
