"""Core application constants."""

from decimal import Decimal

# Time constants
MILLISECONDS_PER_SECOND = 1000

# Security and redaction
REDACTED = "[REDACTED]"

# Money is carried as Decimal and rounded half-up to cents
CENTS = Decimal("0.01")
