"""
Provisioning Kernel

Shared foundation for the BCB 352 provisioning engine:
- Structured JSON logging with request-scoped context
- Typed exception hierarchy with machine-readable codes
- Pure domain value objects and result types
- Append-only persistence of analyses, alerts and milestone state
"""

__version__ = "0.1.0"
