"""API-related constants."""

# HTTP Status Codes
HTTP_500_INTERNAL_SERVER_ERROR = 500

# HTTP Headers
CORRELATION_ID_HEADER = "X-Correlation-ID"
REQUEST_ID_HEADER = "X-Request-ID"
CHANNEL_HEADER = "X-Cell-Channel"
TENANT_ID_HEADER = "X-Tenant-ID"
USER_ID_HEADER = "X-User-ID"

# Identity header values longer than this are ignored
MAX_IDENTITY_HEADER_LENGTH = 64
