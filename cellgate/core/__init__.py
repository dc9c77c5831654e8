"""Cross-cutting building blocks shared by every layer.

- **config**: Pydantic settings with environment overrides
- **context**: Request-scoped correlation, channel and identity values
- **exceptions**: Structured exception hierarchy with error codes
- **error_context**: Redaction of sensitive values before logging
- **logging**: Loguru setup with console and JSON formatters
- **observability**: OpenTelemetry tracing helpers
- **types**: Shared type aliases
"""
