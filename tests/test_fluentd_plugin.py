"""Tests for the Fluentd audit logging plugin."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from chargewatch.errors import StoreUnavailable
from chargewatch.models import ConnectorSnapshot, ConnectorStatus, DeviceSnapshot
from chargewatch.plugins import FluentdAuditPlugin
from chargewatch.poller import SnapshotPoller


def snapshot(status=ConnectorStatus.AVAILABLE, minute=0):
    return DeviceSnapshot(
        device_id="TEST001",
        online=True,
        connectors=(ConnectorSnapshot(connector_id=1, status=status),),
        evaluated_at=datetime(2026, 10, 19, 12, minute, tzinfo=UTC),
    )


class TestFluentdAuditPlugin:
    """Test the Fluentd audit logging plugin."""

    @pytest.mark.asyncio
    async def test_plugin_initialization(self):
        """Test that Fluentd sender is initialized."""
        with patch("fluent.sender.FluentSender") as mock_sender_class:
            mock_sender = MagicMock()
            mock_sender_class.return_value = mock_sender

            plugin = FluentdAuditPlugin(
                tag_prefix="test_chargewatch",
                host="test-host",
                port=12345,
            )
            poller = SnapshotPoller(AsyncMock(), interval=60, plugins=[plugin])

            await plugin.initialize(poller)

            # Verify sender was created with correct parameters
            mock_sender_class.assert_called_once_with(
                "test_chargewatch",
                host="test-host",
                port=12345,
                timeout=3.0,
                buffer_overflow_handler=None,
                nanosecond_precision=False,
            )

            assert plugin.sender is mock_sender

    @pytest.mark.asyncio
    async def test_snapshot_logging(self):
        """Test that a polled snapshot is sent to Fluentd."""
        with patch("fluent.sender.FluentSender") as mock_sender_class:
            mock_sender = MagicMock()
            mock_sender_class.return_value = mock_sender

            plugin = FluentdAuditPlugin()
            poller = SnapshotPoller(
                AsyncMock(return_value=snapshot(ConnectorStatus.CHARGING)),
                interval=60,
                plugins=[plugin],
                consumer_id="dashboard",
            )

            poller.start("TEST001", lambda s: None)
            await poller.refresh()
            await poller.close()

            # Verify emit was called
            assert mock_sender.emit.call_count == 1
            tag, data = mock_sender.emit.call_args[0]
            assert tag == "snapshot"
            assert data["type"] == "snapshot"
            assert data["device"] == "TEST001"
            assert data["consumer"] == "dashboard"
            assert data["snapshot"]["status"] == "Charging"
            assert data["snapshot"]["connectors"][0]["status"] == "Charging"

            # Sender is released on close
            mock_sender.close.assert_called_once()
            assert plugin.sender is None

    @pytest.mark.asyncio
    async def test_unchanged_snapshot_not_repeated(self):
        """Test that only state changes are emitted."""
        with patch("fluent.sender.FluentSender") as mock_sender_class:
            mock_sender = MagicMock()
            mock_sender_class.return_value = mock_sender

            plugin = FluentdAuditPlugin()
            poller = SnapshotPoller(AsyncMock(), interval=60, plugins=[plugin])
            await plugin.initialize(poller)

            context = MagicMock(poller=poller, device_id="TEST001")
            for value in (
                snapshot(minute=0),
                snapshot(minute=1),
                snapshot(ConnectorStatus.CHARGING, minute=2),
                snapshot(ConnectorStatus.CHARGING, minute=3),
                snapshot(minute=4),
            ):
                context.snapshot = value
                await plugin.log_snapshot(context)

            statuses = [
                call[0][1]["snapshot"]["connectors"][0]["status"]
                for call in mock_sender.emit.call_args_list
            ]
            assert statuses == ["Available", "Charging", "Available"]

    @pytest.mark.asyncio
    async def test_poll_failure_logging(self):
        """Test that failed polls are sent to Fluentd."""
        with patch("fluent.sender.FluentSender") as mock_sender_class:
            mock_sender = MagicMock()
            mock_sender_class.return_value = mock_sender

            plugin = FluentdAuditPlugin()
            poller = SnapshotPoller(
                AsyncMock(side_effect=StoreUnavailable("database is locked")),
                interval=60,
                plugins=[plugin],
            )

            poller.start("TEST001", lambda s: None)
            await poller.refresh()
            await poller.close()

            tag, data = mock_sender.emit.call_args[0]
            assert tag == "poll.error"
            assert data["type"] == "poll_error"
            assert data["error_type"] == "StoreUnavailable"
            assert data["error"] == "database is locked"
            assert data["failures"] == 1

    @pytest.mark.asyncio
    async def test_sender_initialization_failure(self):
        """Test that the plugin degrades to a no-op when Fluentd is unreachable."""
        with patch("fluent.sender.FluentSender", side_effect=OSError("refused")):
            plugin = FluentdAuditPlugin()
            poller = SnapshotPoller(AsyncMock(), interval=60, plugins=[plugin])

            await plugin.initialize(poller)
            assert plugin.sender is None

            context = MagicMock(poller=poller, device_id="TEST001", snapshot=snapshot())
            await plugin.log_snapshot(context)

    @pytest.mark.asyncio
    async def test_emit_error_is_logged(self, caplog):
        """Test that a failing emit never raises into the poller."""
        with patch("fluent.sender.FluentSender") as mock_sender_class:
            mock_sender = MagicMock()
            mock_sender.emit.side_effect = ConnectionError("broken pipe")
            mock_sender_class.return_value = mock_sender

            plugin = FluentdAuditPlugin()
            poller = SnapshotPoller(AsyncMock(), interval=60, plugins=[plugin])
            await plugin.initialize(poller)

            context = MagicMock(poller=poller, device_id="TEST001", snapshot=snapshot())
            await plugin.log_snapshot(context)

            assert "Failed to send event to Fluentd" in caplog.text
