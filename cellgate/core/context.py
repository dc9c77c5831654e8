"""Request-scoped values carried across async boundaries.

The request context middleware fills these from incoming headers. The
gateway reads the channel for its invocation log, and the identity cell
reads the caller's tenant and user from here instead of from a global
session object.
"""

import uuid
from contextvars import ContextVar

_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
_channel_var: ContextVar[str | None] = ContextVar("cell_channel", default=None)
_tenant_id_var: ContextVar[str | None] = ContextVar("tenant_id", default=None)
_user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)


class RequestContext:
    """Async-safe storage for request-scoped identifiers."""

    @staticmethod
    def set_correlation_id(correlation_id: str) -> None:
        """Set the correlation ID for the current context.

        Args:
            correlation_id: The correlation ID to store in the context.
        """
        _correlation_id_var.set(correlation_id)

    @staticmethod
    def get_correlation_id() -> str | None:
        """Get the correlation ID from the current context.

        Returns:
            str | None: The correlation ID if set, None otherwise.
        """
        return _correlation_id_var.get()

    @staticmethod
    def set_channel(channel: str) -> None:
        """Set the release channel the caller asked for."""
        _channel_var.set(channel)

    @staticmethod
    def get_channel() -> str | None:
        """Get the release channel for the current request."""
        return _channel_var.get()

    @staticmethod
    def set_identity(tenant_id: str | None, user_id: str | None) -> None:
        """Record the caller identity presented with the request.

        Args:
            tenant_id: Tenant the caller acts for, if presented.
            user_id: Authenticated user, or None for guests.
        """
        _tenant_id_var.set(tenant_id)
        _user_id_var.set(user_id)

    @staticmethod
    def get_tenant_id() -> str | None:
        """Get the tenant the current caller acts for."""
        return _tenant_id_var.get()

    @staticmethod
    def get_user_id() -> str | None:
        """Get the user making the current request, None for guests."""
        return _user_id_var.get()

    @staticmethod
    def clear() -> None:
        """Clear all context variables."""
        _correlation_id_var.set(None)
        _channel_var.set(None)
        _tenant_id_var.set(None)
        _user_id_var.set(None)


def generate_correlation_id() -> str:
    """Generate a unique correlation ID for request tracking.

    Returns:
        str: A string representation of a UUID4.
    """
    return str(uuid.uuid4())


def generate_request_id() -> str:
    """Generate a unique request ID for individual request tracking.

    Returns:
        str: A prefixed UUID4 string in format 'req-<uuid4>'.
    """
    return f"req-{uuid.uuid4()}"
