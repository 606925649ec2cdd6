"""Plugin for Prometheus metrics instrumentation."""

import time

from prometheus_client import Counter, Gauge, Histogram

from ..models import ConnectorStatus
from .base import PluginContext, PollerHook, PollerPlugin


class PrometheusMetricsPlugin(PollerPlugin):
    """
    Exposes Prometheus metrics for the derived live state.

    This plugin tracks:
    - Poll latency, successes and failures per device
    - Per-device reachability and last successful poll
    - Per-connector charging flag and numeric status

    Metrics are exposed via the standard prometheus_client registry.
    Use prometheus_client.start_http_server() or generate_latest() to expose /metrics.
    """

    # Class-level metrics (shared across all plugin instances)
    # This ensures metrics persist when pollers are restarted

    chargewatch_poll_seconds = Histogram(
        "chargewatch_poll_seconds",
        "Snapshot fetch and reconstruction duration in seconds",
        labelnames=["device_id"],
    )

    chargewatch_polls_total = Counter(
        "chargewatch_polls_total",
        "Total number of successful snapshot polls",
        labelnames=["device_id"],
    )

    chargewatch_poll_failures_total = Counter(
        "chargewatch_poll_failures_total",
        "Total number of failed snapshot polls",
        labelnames=["device_id", "error_type"],
    )

    chargewatch_last_poll_ts = Gauge(
        "chargewatch_last_poll_ts",
        "Unix timestamp of the last successful poll",
        labelnames=["device_id"],
    )

    chargewatch_device_online = Gauge(
        "chargewatch_device_online",
        "1 if the device was seen within the offline threshold, 0 otherwise",
        labelnames=["device_id"],
    )

    chargewatch_connector_charging = Gauge(
        "chargewatch_connector_charging",
        "1 if a transaction is active on the connector, 0 otherwise",
        labelnames=["device_id", "connector_id"],
    )

    chargewatch_connector_status = Gauge(
        "chargewatch_connector_status",
        "Numeric derived status code of the connector",
        labelnames=["device_id", "connector_id"],
    )

    def hooks(self) -> dict[PollerHook, str]:
        """Register hooks for successful and failed polls."""
        return {
            PollerHook.AFTER_POLL: "after_poll",
            PollerHook.POLL_FAILED: "poll_failed",
        }

    def _status_to_numeric(self, status: ConnectorStatus) -> int:
        """Convert derived status to the OCPP 1.6 ChargePointStatus numbering."""
        status_map = {
            ConnectorStatus.AVAILABLE: 0,
            ConnectorStatus.CHARGING: 2,
            ConnectorStatus.UNAVAILABLE: 7,
            ConnectorStatus.FAULTED: 8,
        }
        return status_map.get(status, -1)

    async def after_poll(self, context: PluginContext):
        """Record poll latency and publish the snapshot's state."""
        device_id = context.device_id
        snapshot = context.snapshot

        if context.duration is not None:
            self.chargewatch_poll_seconds.labels(device_id=device_id).observe(context.duration)
        self.chargewatch_polls_total.labels(device_id=device_id).inc()
        self.chargewatch_last_poll_ts.labels(device_id=device_id).set(time.time())

        self.chargewatch_device_online.labels(device_id=device_id).set(1 if snapshot.online else 0)

        for connector in snapshot.connectors:
            labels = {"device_id": device_id, "connector_id": str(connector.connector_id)}
            self.chargewatch_connector_charging.labels(**labels).set(
                1 if connector.is_charging else 0
            )
            self.chargewatch_connector_status.labels(**labels).set(
                self._status_to_numeric(connector.status)
            )

    async def poll_failed(self, context: PluginContext):
        """Count failed polls by exception type."""
        error_type = type(context.error).__name__ if context.error else "Unknown"
        self.chargewatch_poll_failures_total.labels(
            device_id=context.device_id,
            error_type=error_type,
        ).inc()
