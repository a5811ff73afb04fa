"""Back-office engine: scoped access control and payment approvals."""

__version__ = "0.1.0"
