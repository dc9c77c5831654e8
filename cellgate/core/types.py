"""Type aliases for loosely structured data passed between layers.

Payloads crossing the gateway are plain mappings so that cells stay
decoupled from each other's schema classes. These aliases document intent
at the seams where static typing cannot say more.
"""

from collections.abc import Awaitable, Callable, Mapping
from typing import Any

# JSON-compatible value, used for API responses and request bodies
type JsonValue = (
    dict[str, "JsonValue"] | list["JsonValue"] | str | int | float | bool | None
)

# Arguments handed to a cell action, keyed by camelCase argument name
type Payload = Mapping[str, Any]

# Result returned by a cell action; serialized to JSON by the API layer
type CellResult = Any

# Async handler bound to a single cell action
type ActionHandler = Callable[[Payload], Awaitable[CellResult]]

# Structured extras for log records
type LogContext = dict[str, Any]

# Context dictionary for error details; values must be JSON-serializable
type ErrorContext = dict[str, Any]
