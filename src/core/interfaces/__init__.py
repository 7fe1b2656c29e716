"""Core interfaces.

Contracts (Protocol) implemented by the concrete adapters, so the services
depend on abstractions only.
"""

from core.interfaces.resource import ResourceKind

__all__ = ["ResourceKind"]
