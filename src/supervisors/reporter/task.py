"""
reporter/task.py — Periodic Status-Report Supervisor

Host task around the report Dispatcher. Requesters send ReportControl
messages; this task keeps one subscription per (requester, channel) and,
once per polling tick, asks the transport layer for a report on every
subscription that came due.

Message handling (dispatch table keyed by ReportControl.op):
    REQUEST_START  → Dispatcher.add()    → reply STARTED
    REQUEST_STOP   → Dispatcher.remove() → reply STOPPED (even if absent)
    anything else  → debug "unexpected transition", no state change

Due subscriptions become ReportControl(op=REQUEST_REPORT) on the bus; the
transport task for that channel builds and sends the actual report.

The acoustic_reports setting subscribes this system itself through the
normal request path (loop-back REQUEST_START, destination "broadcast"), and
disabling it clears the whole ACOUSTIC channel.

Entity status mirrors the registry: IDLE when empty, ACTIVE otherwise.
"""

from __future__ import annotations

import time
from typing import Callable, Optional

from supervisors.bus.message_bus import MessageBus
from supervisors.bus.messages import (
    Channel,
    EntityStateCode,
    ReportControl,
    ReportOp,
    Status,
)
from supervisors.config.settings import ReporterConfig
from supervisors.observability.logger import get_logger
from supervisors.reporter.dispatcher import Dispatcher, DueReport
from supervisors.tasks.base import BaseTask

log = get_logger(__name__)

BROADCAST = "broadcast"


class ReporterTask(BaseTask):
    """Supervisor that schedules periodic status reports per requester."""

    default_name = "Supervisors.Reporter"

    def __init__(
        self,
        bus: MessageBus,
        config: Optional[ReporterConfig] = None,
        *,
        name: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        config = config or ReporterConfig()
        super().__init__(bus, name=name, clock=clock, poll_interval=config.poll_interval)
        self._config = config
        self._applied: Optional[ReporterConfig] = None
        self.dispatcher = Dispatcher(on_due=self._request_report, min_period=config.min_period)
        self._handlers: dict[ReportOp, Callable[[ReportControl], None]] = {
            ReportOp.REQUEST_START: self._on_request_start,
            ReportOp.REQUEST_STOP: self._on_request_stop,
        }
        self.bind(ReportControl, self.consume_report_control)

    @property
    def config(self) -> ReporterConfig:
        return self._config

    # ── Parameters ────────────────────────────────────────────────────────────

    def on_start(self) -> None:
        self.update_parameters(self._config)

    def update_parameters(self, config: ReporterConfig) -> None:
        """Apply (new) settings. The first call always counts as a change."""
        previous = self._applied
        self._config = config
        self._applied = config

        if previous is not None and (
            previous.poll_interval != config.poll_interval
            or previous.min_period != config.min_period
        ):
            log.info(
                "reporter.timing.updated",
                poll_interval=config.poll_interval,
                min_period=config.min_period,
            )
        self._poll_interval = config.poll_interval
        self.dispatcher.min_period = config.min_period

        changed = (
            previous is None
            or previous.acoustic_reports != config.acoustic_reports
            or previous.acoustic_period != config.acoustic_period
        )
        if changed:
            if config.acoustic_reports:
                log.info("reporter.acoustic.enabled", period=config.acoustic_period)
                self.dispatch(
                    ReportControl(
                        op=ReportOp.REQUEST_START,
                        comm_interface=Channel.ACOUSTIC,
                        period=config.acoustic_period,
                        sys_dst=BROADCAST,
                    ),
                    loop_back=True,
                )
            else:
                log.info("reporter.acoustic.disabled")
                self.dispatcher.clear_channel(Channel.ACOUSTIC)

        self._update_status()

    # ── Consumers ─────────────────────────────────────────────────────────────

    def consume_report_control(self, msg: ReportControl) -> None:
        handler = self._handlers.get(msg.op)
        if handler is None:
            log.debug(
                "reporter.unexpected_transition",
                op=msg.op.value,
                source=msg.source,
                channel=msg.comm_interface.value,
            )
        else:
            handler(msg)
        self._update_status()

    def _on_request_start(self, msg: ReportControl) -> None:
        self.dispatcher.add(
            msg.source,
            msg.comm_interface,
            msg.period,
            self.now(),
            destination=msg.sys_dst or None,
        )
        self.dispatch_reply(msg, msg.copy(op=ReportOp.STARTED, timestamp=self.now()))

    def _on_request_stop(self, msg: ReportControl) -> None:
        self.dispatcher.remove(msg.source, msg.comm_interface)
        self.dispatch_reply(msg, msg.copy(op=ReportOp.STOPPED, timestamp=self.now()))

    # ── Main loop ─────────────────────────────────────────────────────────────

    def on_tick(self) -> None:
        self.dispatcher.tick(self.now())
        self._update_status()

    def _request_report(self, due: DueReport) -> None:
        log.info(
            "reporter.report_requested",
            requester=due.requester_id,
            channel=due.channel.value,
            destination=due.destination,
        )
        self.dispatch(
            ReportControl(
                op=ReportOp.REQUEST_REPORT,
                comm_interface=due.channel,
                period=due.period,
                sys_dst=due.destination or "",
                timestamp=due.at,
            )
        )

    def _update_status(self) -> None:
        status = Status.IDLE if self.dispatcher.is_empty() else Status.ACTIVE
        self.set_entity_state(EntityStateCode.NORMAL, status)
