"""Tests for transaction correlation."""

import logging
import random
from datetime import timedelta

import pytest

from chargewatch.models import ActiveTransaction, Direction
from chargewatch.reconstruction import (
    CorrelationOutcome,
    correlate_transaction,
    find_active_transaction,
    sort_frames,
)


@pytest.mark.unit
class TestSortFrames:
    """Test log ordering."""

    def test_newest_first(self, frames):
        old = frames.make("Heartbeat", ago=timedelta(minutes=3))
        new = frames.make("Heartbeat", ago=timedelta(minutes=1))
        assert sort_frames([old, new]) == [new, old]

    def test_higher_id_wins_ties(self, frames):
        first = frames.make("Heartbeat", id=10)
        second = frames.make("Heartbeat", id=11)
        assert sort_frames([first, second]) == [second, first]

    def test_created_at_used_when_timestamp_missing(self, frames, now):
        stored = frames.make("Heartbeat", timestamp=None, created_at=now - timedelta(seconds=5))
        older = frames.make("Heartbeat", ago=timedelta(minutes=1))
        assert sort_frames([older, stored]) == [stored, older]

    def test_frames_without_any_timestamp_are_dropped(self, frames, caplog):
        timed = frames.make("Heartbeat")
        untimed = frames.make("Heartbeat", timestamp=None)

        with caplog.at_level(logging.WARNING):
            assert sort_frames([untimed, timed]) == [timed]

        assert "without timestamp" in caplog.text


@pytest.mark.unit
class TestFindActiveTransaction:
    """Test the two-stage Start/Response/Stop correlation."""

    def test_no_frames(self, now):
        assert find_active_transaction([], 1, now) is None

    def test_no_start_for_connector(self, frames, now):
        log = [
            frames.make("Heartbeat"),
            frames.start(2, "m1"),
            frames.response("m1", 42),
            frames.status(1, "Available"),
        ]
        result = correlate_transaction(log, 1, now)
        assert result.outcome == CorrelationOutcome.NO_START
        assert result.transaction is None

    def test_start_with_response_is_active(self, frames, now):
        log = [frames.start(1, "m1"), frames.response("m1", 42)]

        transaction = find_active_transaction(log, 1, now)

        assert transaction == ActiveTransaction(
            transaction_id=42,
            connector_id=1,
            start_time=now - timedelta(minutes=10),
        )

    def test_later_stop_closes_transaction(self, frames, now):
        log = [frames.start(1, "m1"), frames.response("m1", 42), frames.stop(42)]

        result = correlate_transaction(log, 1, now)

        assert result.outcome == CorrelationOutcome.STOPPED
        assert result.transaction is None

    def test_stop_matches_by_value_across_types(self, frames, now):
        log = [frames.start(1, "m1"), frames.response("m1", 42), frames.stop("42")]
        assert find_active_transaction(log, 1, now) is None

    def test_stop_matches_whole_number_float(self, frames, now):
        log = [frames.start(1, "m1"), frames.response("m1", 42), frames.stop(42.0)]
        assert correlate_transaction(log, 1, now).outcome == CorrelationOutcome.STOPPED

    def test_fractional_stop_id_does_not_close(self, frames, now):
        log = [frames.start(1, "m1"), frames.response("m1", 42), frames.stop(42.5)]
        assert find_active_transaction(log, 1, now).transaction_id == 42

    def test_outgoing_stop_does_not_close(self, frames, now):
        log = [
            frames.start(1, "m1"),
            frames.response("m1", 42),
            frames.stop(42, direction=Direction.OUTGOING),
        ]
        assert find_active_transaction(log, 1, now) is not None

    def test_stop_for_other_transaction_does_not_close(self, frames, now):
        log = [frames.start(1, "m1"), frames.response("m1", 42), frames.stop(41)]
        assert find_active_transaction(log, 1, now).transaction_id == 42

    def test_stop_transaction_id_from_raw(self, frames, now):
        log = [
            frames.start(1, "m1"),
            frames.response("m1", 42),
            frames.stop(42, message_data=None, raw=[2, "s1", {"transactionId": 42}]),
        ]
        assert find_active_transaction(log, 1, now) is None

    def test_stale_start_is_ignored(self, frames, now):
        log = [
            frames.start(1, "m1", ago=timedelta(hours=2, seconds=1)),
            frames.response("m1", 42, ago=timedelta(hours=2)),
        ]

        result = correlate_transaction(log, 1, now)

        assert result.outcome == CorrelationOutcome.STALE
        assert result.transaction is None

    def test_start_exactly_two_hours_old_is_still_active(self, frames, now):
        log = [
            frames.start(1, "m1", ago=timedelta(hours=2)),
            frames.response("m1", 42, ago=timedelta(hours=2)),
        ]
        assert find_active_transaction(log, 1, now) is not None

    def test_custom_staleness_window(self, frames, now):
        log = [frames.start(1, "m1"), frames.response("m1", 42)]
        assert find_active_transaction(log, 1, now, stale_after=timedelta(minutes=5)) is None

    def test_only_latest_start_is_considered(self, frames, now):
        """An older unstopped session never resurfaces behind a newer stopped one."""
        log = [
            frames.start(1, "old", ago=timedelta(minutes=30)),
            frames.response("old", 7, ago=timedelta(minutes=30)),
            frames.start(1, "new", ago=timedelta(minutes=10)),
            frames.response("new", 8, ago=timedelta(minutes=10)),
            frames.stop(8),
        ]

        result = correlate_transaction(log, 1, now)

        assert result.outcome == CorrelationOutcome.STOPPED
        assert result.start_frame.message_id == "new"

    def test_latest_of_two_unstopped_starts_wins(self, frames, now):
        log = [
            frames.start(1, "old", ago=timedelta(minutes=30)),
            frames.response("old", 7, ago=timedelta(minutes=30)),
            frames.start(1, "new", ago=timedelta(minutes=10)),
            frames.response("new", 8, ago=timedelta(minutes=10)),
        ]
        assert find_active_transaction(log, 1, now).transaction_id == 8

    def test_outgoing_start_is_not_a_candidate(self, frames, now):
        log = [
            frames.start(1, "m1", direction=Direction.OUTGOING),
            frames.response("m1", 42),
        ]
        assert correlate_transaction(log, 1, now).outcome == CorrelationOutcome.NO_START

    def test_connector_from_message_data(self, frames, now):
        log = [
            frames.start(1, "m1", in_column=False),
            frames.response("m1", 42),
        ]
        assert find_active_transaction(log, 1, now).transaction_id == 42

    def test_connector_column_wins_over_payload(self, frames, now):
        log = [
            frames.start(1, "m1", message_data={"connectorId": 2, "idTag": "TAG-1"}),
            frames.response("m1", 42),
        ]
        assert find_active_transaction(log, 1, now).transaction_id == 42
        assert find_active_transaction(log, 2, now) is None

    def test_connector_from_raw_payload(self, frames, now):
        log = [
            frames.start(
                2, "m1", in_column=False, message_data=None, raw=[2, "m1", {"connectorId": 2}]
            ),
            frames.response("m1", 42),
        ]
        assert find_active_transaction(log, 2, now).transaction_id == 42

    def test_start_without_connector_belongs_to_connector_zero(self, frames, now):
        log = [
            frames.start(0, "m1", in_column=False, message_data={"idTag": "TAG-1"}),
            frames.response("m1", 42),
        ]
        assert find_active_transaction(log, 0, now) is not None
        assert find_active_transaction(log, 1, now) is None

    def test_transaction_id_from_response_raw(self, frames, now):
        log = [
            frames.start(1, "m1"),
            frames.response("m1", 42, message_data=None, raw=[3, "m1", {"transactionId": 43}]),
        ]
        assert find_active_transaction(log, 1, now).transaction_id == 43

    def test_response_without_id_falls_back_to_start(self, frames, now):
        log = [
            frames.start(1, "m1", message_data={"connectorId": 1, "transactionId": 99}),
            frames.response("m1", None, message_data={"idTagInfo": {"status": "Accepted"}}),
        ]
        assert find_active_transaction(log, 1, now).transaction_id == 99

    def test_missing_response_falls_back_to_start_raw(self, frames, now):
        log = [
            frames.start(1, "m1", raw=[2, "m1", {"connectorId": 1, "transactionId": "abc"}]),
        ]
        assert find_active_transaction(log, 1, now).transaction_id == "abc"

    def test_incoming_response_is_not_paired(self, frames, now):
        log = [
            frames.start(1, "m1"),
            frames.make("Response", message_id="m1", message_data={"transactionId": 42}),
        ]
        assert correlate_transaction(log, 1, now).outcome == CorrelationOutcome.UNRESOLVED

    def test_unresolved_transaction_is_not_active(self, frames, now):
        result = correlate_transaction([frames.start(1, "m1")], 1, now)

        assert result.outcome == CorrelationOutcome.UNRESOLVED
        assert result.transaction is None
        assert result.start_frame.message_id == "m1"

    def test_two_unresolved_starts_are_flagged_ambiguous(self, frames, now, caplog):
        log = [
            frames.start(1, "m1", ago=timedelta(minutes=20)),
            frames.start(1, "m2", ago=timedelta(minutes=5)),
        ]

        with caplog.at_level(logging.WARNING):
            result = correlate_transaction(log, 1, now)

        assert result.outcome == CorrelationOutcome.AMBIGUOUS
        assert result.transaction is None
        assert result.start_frame.message_id == "m2"
        assert any(
            getattr(record, "event_type", None) == "ambiguous_transaction"
            for record in caplog.records
        )

    def test_unresolved_latest_with_resolved_older_is_not_ambiguous(self, frames, now):
        log = [
            frames.start(1, "m1", ago=timedelta(minutes=20)),
            frames.response("m1", 42, ago=timedelta(minutes=20)),
            frames.start(1, "m2", ago=timedelta(minutes=5)),
        ]
        assert correlate_transaction(log, 1, now).outcome == CorrelationOutcome.UNRESOLVED

    def test_same_timestamp_start_uses_higher_id(self, frames, now):
        log = [
            frames.start(1, "m1", ago=timedelta(minutes=5), id=100),
            frames.response("m1", 1),
            frames.start(1, "m2", ago=timedelta(minutes=5), id=101),
            frames.response("m2", 2),
        ]
        assert find_active_transaction(log, 1, now).transaction_id == 2

    def test_start_time_uses_created_at_fallback(self, frames, now):
        created = now - timedelta(minutes=3)
        log = [
            frames.start(1, "m1", timestamp=None, created_at=created),
            frames.response("m1", 42),
        ]
        assert find_active_transaction(log, 1, now).start_time == created

    def test_input_order_does_not_matter(self, frames, now):
        log = [
            frames.start(1, "old", ago=timedelta(minutes=30)),
            frames.response("old", 7, ago=timedelta(minutes=30)),
            frames.stop(7, ago=timedelta(minutes=20)),
            frames.start(1, "new", ago=timedelta(minutes=10)),
            frames.response("new", 8, ago=timedelta(minutes=10)),
            frames.make("Heartbeat"),
        ]
        expected = find_active_transaction(log, 1, now)

        shuffled = list(log)
        random.Random(7).shuffle(shuffled)

        assert find_active_transaction(shuffled, 1, now) == expected
        assert expected.transaction_id == 8
