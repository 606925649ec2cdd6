"""Plugin to log connector status transitions between consecutive snapshots."""

from .base import PluginContext, PollerHook, PollerPlugin


class ConnectorTransitionPlugin(PollerPlugin):
    """
    Logs a structured event whenever a connector's derived status changes.

    Compares each snapshot with the previous one of the same poller. The first
    snapshot of a device only establishes the baseline. Transitions are also
    kept in ``transitions`` as (device_id, connector_id, old, new) tuples for
    inspection.
    """

    def __init__(self, history_size: int = 100):
        super().__init__()
        self.history_size = history_size
        self.transitions: list[tuple[str, int, str, str]] = []

    def hooks(self) -> dict[PollerHook, str]:
        return {PollerHook.AFTER_POLL: "on_snapshot"}

    async def on_snapshot(self, context: PluginContext):
        previous = context.previous
        if previous is None or previous.device_id != context.device_id:
            return

        for connector in context.snapshot.connectors:
            before = previous.connector(connector.connector_id)
            if before is None or before.status == connector.status:
                continue

            transition = (
                context.device_id,
                connector.connector_id,
                before.status.value,
                connector.status.value,
            )
            self.transitions.append(transition)
            del self.transitions[: -self.history_size]

            transaction = connector.active_transaction or before.active_transaction
            self.logger.info(
                f"Connector {connector.connector_id} on {context.device_id}: "
                f"{before.status.value} -> {connector.status.value}",
                extra={
                    "event_type": "connector_transition",
                    "event_data": {
                        "device_id": context.device_id,
                        "connector_id": connector.connector_id,
                        "from_status": before.status.value,
                        "to_status": connector.status.value,
                        "transaction_id": transaction.transaction_id if transaction else None,
                    },
                },
            )
