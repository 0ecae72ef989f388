"""
tests/unit/test_message_bus.py — MessageBus Unit Tests

Covers:
  - subscribe: per-class routing, duplicate owner ignored, non-callable rejected
  - publish: source stamping, self-delivery suppressed unless loop_back
  - taps see every message; failing subscribers/taps never raise to publisher
  - unsubscribe_all
  - publish_json: decoded traffic delivered, malformed traffic dropped
"""

from __future__ import annotations

import pytest

from supervisors.bus import (
    Channel,
    Heartbeat,
    MessageBus,
    ReportControl,
    ReportOp,
)
from supervisors.exceptions import HandlerNotCallableError


def _make_bus(system: str = "vehicle") -> MessageBus:
    return MessageBus(system)


class TestSubscribe:

    def test_routes_by_message_class(self):
        bus = _make_bus()
        got_reports, got_beats = [], []
        bus.subscribe(ReportControl, "reporter", got_reports.append)
        bus.subscribe(Heartbeat, "power", got_beats.append)

        bus.publish(Heartbeat(source="slave"))

        assert got_reports == []
        assert len(got_beats) == 1

    def test_duplicate_owner_subscribes_once(self):
        bus = _make_bus()
        got = []
        bus.subscribe(Heartbeat, "power", got.append)
        bus.subscribe(Heartbeat, "power", got.append)
        assert bus.subscriber_count(Heartbeat) == 1
        bus.publish(Heartbeat())
        assert len(got) == 1

    def test_non_callable_rejected(self):
        bus = _make_bus()
        with pytest.raises(HandlerNotCallableError) as exc_info:
            bus.subscribe(Heartbeat, "power", "not-a-function")
        assert exc_info.value.message_type == "Heartbeat"

    def test_unsubscribe_all(self):
        bus = _make_bus()
        bus.subscribe(Heartbeat, "power", lambda m: None)
        bus.subscribe(ReportControl, "power", lambda m: None)
        bus.subscribe(Heartbeat, "other", lambda m: None)

        bus.unsubscribe_all("power")

        assert bus.subscriber_count(Heartbeat) == 1
        assert bus.subscriber_count(ReportControl) == 0


class TestPublish:

    def test_stamps_empty_source_with_system(self):
        bus = _make_bus("auv-7")
        msg = Heartbeat()
        bus.publish(msg)
        assert msg.source == "auv-7"

    def test_keeps_explicit_source(self):
        bus = _make_bus("auv-7")
        msg = Heartbeat(source="slave")
        bus.publish(msg)
        assert msg.source == "slave"

    def test_own_messages_not_delivered_back(self):
        bus = _make_bus()
        got = []
        bus.subscribe(ReportControl, "reporter", got.append)
        delivered = bus.publish(ReportControl(source_entity="reporter"))
        assert delivered == 0
        assert got == []

    def test_loop_back_delivers_to_self(self):
        bus = _make_bus()
        got = []
        bus.subscribe(ReportControl, "reporter", got.append)
        delivered = bus.publish(ReportControl(source_entity="reporter"), loop_back=True)
        assert delivered == 1
        assert len(got) == 1

    def test_failing_subscriber_does_not_stop_others(self):
        bus = _make_bus()
        got = []

        def boom(msg):
            raise RuntimeError("inbox full")

        bus.subscribe(Heartbeat, "bad", boom)
        bus.subscribe(Heartbeat, "good", got.append)

        delivered = bus.publish(Heartbeat())

        assert delivered == 1
        assert len(got) == 1

    def test_tap_sees_everything_including_own(self):
        bus = _make_bus()
        seen = []
        bus.add_tap(seen.append)
        bus.publish(Heartbeat(source_entity="power"))
        bus.publish(ReportControl())
        assert [m.type_name() for m in seen] == ["Heartbeat", "ReportControl"]

    def test_failing_tap_is_swallowed(self):
        bus = _make_bus()

        def boom(msg):
            raise ValueError("tap broke")

        bus.add_tap(boom)
        assert bus.publish(Heartbeat()) == 0

    def test_non_callable_tap_rejected(self):
        bus = _make_bus()
        with pytest.raises(HandlerNotCallableError):
            bus.add_tap(None)


class TestPublishJson:

    def test_valid_message_is_delivered(self):
        bus = _make_bus()
        got = []
        bus.subscribe(ReportControl, "reporter", got.append)

        ok = bus.publish_json(
            '{"type": "ReportControl", "source": "ccu-1", "op": "request_start", '
            '"comm_interface": "gsm", "period": 30}'
        )

        assert ok is True
        assert got[0].comm_interface is Channel.GSM
        assert got[0].op is ReportOp.REQUEST_START

    @pytest.mark.parametrize(
        "raw",
        [
            "{broken",
            '{"type": "Unknown"}',
            '{"type": "ReportControl", "comm_interface": "telepathy"}',
            '{"type": "ReportControl", "period": "often"}',
        ],
    )
    def test_malformed_message_is_dropped(self, raw):
        bus = _make_bus()
        got = []
        bus.subscribe(ReportControl, "reporter", got.append)
        assert bus.publish_json(raw) is False
        assert got == []
