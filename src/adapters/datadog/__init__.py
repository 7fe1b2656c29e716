"""Datadog resource kinds.

Each module implements `core.interfaces.resource.ResourceKind`.
"""

from adapters.datadog.dashboards import DASHBOARDS, DashboardKind
from adapters.datadog.monitors import MONITORS, MonitorKind

KINDS = {
    DASHBOARDS.name: DASHBOARDS,
    MONITORS.name: MONITORS,
}

__all__ = [
    "DASHBOARDS",
    "DashboardKind",
    "KINDS",
    "MONITORS",
    "MonitorKind",
]
