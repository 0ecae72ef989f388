"""
power/sequencer.py — Slave CPU Power Sequencer

Powers a subordinate compute module on and off through a named power
channel, using the task activation FSM:

  activation    power channel ON, then wait up to activation_time for a
                heartbeat from the slave whose timestamp is within
                max_clock_skew of our clock. Heartbeat seen → active and
                the slave entity is told Active=true. Timeout → activation
                failed and the channel is switched back OFF.
  deactivation  slave entity told Active=false, slave asked to power down
                (PWR_DOWN_IP), channel switched OFF after deactivation_time.

Independently of the FSM, a PowerOperation addressed to the slave is
honoured: PWR_UP switches the channel on, PWR_DOWN asks the slave to shut
down and switches the channel off once deactivation_time has elapsed.
"""

from __future__ import annotations

import time
from typing import Callable, Optional

from supervisors.bus.message_bus import MessageBus
from supervisors.bus.messages import (
    ChannelOp,
    EntityStateCode,
    Heartbeat,
    PowerChannelControl,
    PowerOp,
    PowerOperation,
    SetEntityParameters,
    Status,
)
from supervisors.config.settings import PowerConfig
from supervisors.observability.logger import get_logger
from supervisors.tasks.base import BaseTask
from supervisors.tasks.timers import Countdown

log = get_logger(__name__)


class PowerSequencerTask(BaseTask):
    """Activation-gated power control of one slave CPU."""

    default_name = "Power.Sequencer"
    supports_activation = True

    def __init__(
        self,
        bus: MessageBus,
        config: PowerConfig,
        *,
        name: Optional[str] = None,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(bus, name=name, clock=clock, poll_interval=config.poll_interval)
        self._config = config
        self._timer = Countdown(clock=monotonic)
        self.slave_alive = False
        # True while a power down requested over the bus is in progress.
        self.ccu_power_down = False

        self.bind(PowerOperation, self.consume_power_operation)
        self.bind(Heartbeat, self.consume_heartbeat)

    @property
    def config(self) -> PowerConfig:
        return self._config

    # ── Consumers ─────────────────────────────────────────────────────────────

    def consume_heartbeat(self, msg: Heartbeat) -> None:
        if not self.is_activating() or msg.source != self._config.slave_system:
            return

        if abs(msg.timestamp - self.now()) <= self._config.max_clock_skew:
            log.debug("power.slave.alive", slave=msg.source)
            self.slave_alive = True
        else:
            log.debug(
                "power.slave.unsynchronized",
                slave=msg.source,
                skew=round(msg.timestamp - self.now(), 3),
            )

    def consume_power_operation(self, msg: PowerOperation) -> None:
        log.debug(
            "power.operation",
            destination=msg.destination,
            slave=self._config.slave_system,
            op=msg.op.value,
        )
        if msg.destination != self._config.slave_system:
            return

        if msg.op is PowerOp.PWR_UP:
            self.ccu_power_down = False
            self._power_channel(True)
        elif msg.op is PowerOp.PWR_DOWN:
            self._send_power_down()
            self.ccu_power_down = True
            self._timer.set_top(self._config.deactivation_time)

    # ── Activation hooks ──────────────────────────────────────────────────────

    def on_request_activation(self) -> None:
        self.slave_alive = False
        self.ccu_power_down = False
        self._power_channel(True)
        self._timer.set_top(self._config.activation_time)

    def on_activation(self) -> None:
        self.set_entity_state(EntityStateCode.NORMAL, Status.ACTIVE)

    def on_request_deactivation(self) -> None:
        self._set_slave_active(False)
        self._send_power_down()
        self._timer.set_top(self._config.deactivation_time)

    def on_deactivation(self) -> None:
        self._power_channel(False)
        self.set_entity_state(EntityStateCode.NORMAL, Status.IDLE)

    # ── Periodic checks ───────────────────────────────────────────────────────

    def on_tick(self) -> None:
        if self.is_active():
            self.set_entity_state(EntityStateCode.NORMAL, Status.ACTIVE)
        else:
            self.set_entity_state(EntityStateCode.NORMAL, Status.IDLE)

        self.check_activation()
        self.check_deactivation()
        self.check_power_down()

    def check_activation(self) -> None:
        if not self.is_activating():
            return

        if self._timer.overflow():
            log.warning(
                "power.activation.failed",
                slave=self._config.slave_system,
                waited=self._config.activation_time,
            )
            self.activation_failed("failed to contact device")
            self._power_channel(False)
            return

        if self.slave_alive:
            self.activate()
            self._set_slave_active(True)
            log.info(
                "power.activation.took",
                seconds=round(self._config.activation_time - self._timer.remaining(), 2),
            )

    def check_deactivation(self) -> None:
        if not self.is_deactivating():
            return

        if self._timer.overflow():
            self.deactivate()

    def check_power_down(self) -> None:
        if not self.ccu_power_down:
            return

        if self._timer.overflow():
            self._power_channel(False)
            self.set_entity_state(EntityStateCode.NORMAL, Status.IDLE)
            self.ccu_power_down = False

    # ── Outgoing messages ─────────────────────────────────────────────────────

    def _power_channel(self, on: bool) -> None:
        op = ChannelOp.TURN_ON if on else ChannelOp.TURN_OFF
        log.info("power.channel", channel=self._config.power_channel, op=op.value)
        self.dispatch(PowerChannelControl(name=self._config.power_channel, op=op))

    def _set_slave_active(self, value: bool) -> None:
        self.dispatch(
            SetEntityParameters(
                name=self._config.slave_entity,
                params={"Active": "true" if value else "false"},
            )
        )

    def _send_power_down(self) -> None:
        self.dispatch(
            PowerOperation(destination=self._config.slave_system, op=PowerOp.PWR_DOWN_IP)
        )
