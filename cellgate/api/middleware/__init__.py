"""FastAPI middleware for cross-cutting request/response concerns.

- **RequestContextMiddleware**: correlation ID, channel and caller identity
- **RequestLoggingMiddleware**: structured logging with timing
- **error_handler**: exception handlers producing ``ErrorResponse`` bodies

Request context is registered last so it runs first, and the request
log lines carry the correlation ID.
"""
