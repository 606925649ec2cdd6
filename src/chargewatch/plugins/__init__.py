"""Plugin framework for observing SnapshotPoller cycles."""

from .base import PluginContext, PollerHook, PollerPlugin
from .connector_transition import ConnectorTransitionPlugin
from .fluentd_audit import FluentdAuditPlugin
from .prometheus_metrics import PrometheusMetricsPlugin

__all__ = [
    "ConnectorTransitionPlugin",
    "FluentdAuditPlugin",
    "PluginContext",
    "PollerHook",
    "PollerPlugin",
    "PrometheusMetricsPlugin",
]
