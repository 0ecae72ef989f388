"""
tests/integration/test_supervisors_flow.py — Tasks Running Together on One Bus

Covers:
  - A requester subscribes over JSON traffic, receives STARTED, then periodic
    REQUEST_REPORT messages, then STOPPED; reporter status goes ACTIVE → IDLE
  - Power sequencer activation against a simulated slave that answers
    channel power-up with heartbeats, then deactivation back to channel off
  - Malformed external traffic never reaches a task
"""

from __future__ import annotations

import asyncio
import json
import time

import pytest

from supervisors.bus import (
    ChannelOp,
    EntityState,
    Heartbeat,
    MessageBus,
    PowerChannelControl,
    ReportControl,
    ReportOp,
    Status,
)
from supervisors.config.settings import PowerConfig, ReporterConfig
from supervisors.main import build_tasks
from supervisors.power import PowerSequencerTask
from supervisors.reporter import ReporterTask
from supervisors.tasks import ActivationState


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _make_bus() -> tuple[MessageBus, list]:
    bus = MessageBus("vehicle")
    seen: list = []
    bus.add_tap(seen.append)
    return bus, seen


async def _wait_until(predicate, timeout: float = 2.0, step: float = 0.01) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(step)


async def _stop_all(tasks, runners) -> None:
    for task in tasks:
        task.stop()
    await asyncio.wait_for(asyncio.gather(*runners), timeout=2.0)


def _ops(seen: list, op: ReportOp) -> list[ReportControl]:
    return [m for m in seen if isinstance(m, ReportControl) and m.op is op]


# ─────────────────────────────────────────────────────────────────────────────
# Reporter
# ─────────────────────────────────────────────────────────────────────────────

class TestReporterFlow:

    @pytest.mark.asyncio
    async def test_subscribe_report_unsubscribe(self):
        bus, seen = _make_bus()
        reporter = ReporterTask(bus, ReporterConfig(poll_interval=0.01, min_period=0.01))
        runner = asyncio.create_task(reporter.run())
        await asyncio.sleep(0)

        start = {
            "type": "ReportControl", "source": "ccu-1", "op": "request_start",
            "comm_interface": "satellite", "period": 0.05, "sys_dst": "ops-center",
        }
        assert bus.publish_json(json.dumps(start))

        await _wait_until(lambda: len(_ops(seen, ReportOp.REQUEST_REPORT)) >= 2)
        (ack,) = _ops(seen, ReportOp.STARTED)
        assert ack.destination == "ccu-1"
        assert reporter.entity_state[1] is Status.ACTIVE
        report = _ops(seen, ReportOp.REQUEST_REPORT)[0]
        assert report.sys_dst == "ops-center"

        assert bus.publish_json(json.dumps({**start, "op": "request_stop"}))
        await _wait_until(lambda: len(_ops(seen, ReportOp.STOPPED)) == 1)
        assert reporter.dispatcher.is_empty()
        assert reporter.entity_state[1] is Status.IDLE

        await _stop_all([reporter], [runner])

    @pytest.mark.asyncio
    async def test_malformed_traffic_dropped(self):
        bus, seen = _make_bus()
        reporter = ReporterTask(bus, ReporterConfig(poll_interval=0.01))
        runner = asyncio.create_task(reporter.run())
        await asyncio.sleep(0)

        bad = {
            "type": "ReportControl", "source": "ccu-1", "op": "request_start",
            "comm_interface": "smoke-signals", "period": 10,
        }
        assert bus.publish_json(json.dumps(bad)) is False
        await asyncio.sleep(0.05)

        assert reporter.dispatcher.is_empty()
        assert _ops(seen, ReportOp.STARTED) == []

        await _stop_all([reporter], [runner])


# ─────────────────────────────────────────────────────────────────────────────
# Power sequencer
# ─────────────────────────────────────────────────────────────────────────────

class _SimulatedSlave:
    """Sends heartbeats while its power channel is on."""

    def __init__(self, bus: MessageBus, channel: str) -> None:
        self._bus = bus
        self._channel = channel
        self.powered = False
        bus.add_tap(self._on_message)

    def _on_message(self, msg) -> None:
        if isinstance(msg, PowerChannelControl) and msg.name == self._channel:
            self.powered = msg.op is ChannelOp.TURN_ON

    async def run(self, stop: asyncio.Event) -> None:
        while not stop.is_set():
            if self.powered:
                self._bus.publish(Heartbeat(source="slave-cpu"))
            await asyncio.sleep(0.02)


class TestPowerFlow:

    @pytest.mark.asyncio
    async def test_activation_and_deactivation(self):
        from supervisors.bus import SetEntityParameters

        bus, seen = _make_bus()
        config = PowerConfig(
            enabled=True,
            power_channel="CPU Slave",
            slave_system="slave-cpu",
            slave_entity="Slave.Supervisor",
            activation_time=2.0,
            deactivation_time=0.05,
            poll_interval=0.01,
        )
        sequencer = PowerSequencerTask(bus, config)
        slave = _SimulatedSlave(bus, "CPU Slave")
        stop = asyncio.Event()
        runners = [asyncio.create_task(sequencer.run())]
        slave_runner = asyncio.create_task(slave.run(stop))
        await asyncio.sleep(0)

        bus.publish(SetEntityParameters(name="Power.Sequencer", params={"Active": "true"}))
        await _wait_until(sequencer.is_active)
        assert slave.powered
        assert any(
            isinstance(m, SetEntityParameters) and m.name == "Slave.Supervisor"
            and m.params == {"Active": "true"}
            for m in seen
        )

        bus.publish(SetEntityParameters(name="Power.Sequencer", params={"Active": "false"}))
        await _wait_until(
            lambda: sequencer.activation_state is ActivationState.INACTIVE
        )
        assert not slave.powered
        statuses = [
            m.status for m in seen
            if isinstance(m, EntityState) and m.source_entity == "Power.Sequencer"
        ]
        assert statuses == [Status.IDLE, Status.ACTIVE, Status.IDLE]

        stop.set()
        await slave_runner
        await _stop_all([sequencer], runners)


# ─────────────────────────────────────────────────────────────────────────────
# Both tasks from settings
# ─────────────────────────────────────────────────────────────────────────────

class TestBuiltFromSettings:

    @pytest.mark.asyncio
    async def test_acoustic_self_subscription_at_start(self):
        from supervisors.config.settings import Settings

        settings = Settings(
            reporter={"acoustic_reports": True, "acoustic_period": 30, "poll_interval": 0.01},
        )
        bus, seen = _make_bus()
        tasks = build_tasks(settings, bus)
        runners = [asyncio.create_task(t.run()) for t in tasks]

        reporter = tasks[0]
        await _wait_until(lambda: not reporter.dispatcher.is_empty())
        (ack,) = _ops(seen, ReportOp.STARTED)
        assert ack.destination == "vehicle"
        assert ack.sys_dst == "broadcast"

        await _stop_all(tasks, runners)
