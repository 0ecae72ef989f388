"""
reporter/dispatcher.py — Report Ticket Dispatcher

In-memory registry of report subscriptions plus the per-tick decision of
which of them are due.

Design
------
* Keyed by (requester_id, channel): add() is an upsert, so a retransmitted
  start request re-subscribes instead of duplicating.
* remove() of an unknown key is a silent no-op.
* clear_channel() swaps in a filtered registry in one assignment, so no
  half-cleared registry is ever visible to tick().
* tick(now) walks subscriptions in insertion order. A due subscription is
  signalled, then marked dispatched at `now`. Each one fires at most once
  per tick: a period shorter than the host's poll interval degrades to
  "once per tick".
* Never raises for well-formed input. Channel values are validated where
  messages are decoded, not here. An on_due callback that raises is logged
  and the subscription is still marked dispatched, so one failing report
  cannot starve the others.
* A subscription removed by an earlier on_due in the same pass does not fire.
* Single-threaded: every call comes from the owning task's loop.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Callable, Optional

from supervisors.bus.messages import Channel
from supervisors.observability.logger import get_logger
from supervisors.reporter.ticket import (
    MIN_PERIOD_SECONDS,
    Subscription,
    SubscriptionKey,
)

log = get_logger(__name__)


@dataclass(frozen=True)
class DueReport:
    """A subscription that came due during one tick."""
    requester_id: str
    channel: Channel
    destination: Optional[str]
    period: float
    at: float

    @property
    def key(self) -> SubscriptionKey:
        return (self.requester_id, self.channel)


OnDue = Callable[[DueReport], None]


class Dispatcher:
    """
    Subscription registry and due-set scheduler.

    Usage::

        dispatcher = Dispatcher(on_due=send_report)
        dispatcher.add("ccu-1", Channel.ACOUSTIC, 60.0, now=t0)
        dispatcher.tick(now=t0 + 60.0)   # → send_report(DueReport(...))
    """

    def __init__(
        self,
        on_due: Optional[OnDue] = None,
        min_period: float = MIN_PERIOD_SECONDS,
    ) -> None:
        self._on_due = on_due
        self._min_period = min_period
        self._subscriptions: dict[SubscriptionKey, Subscription] = {}

    @property
    def min_period(self) -> float:
        return self._min_period

    @min_period.setter
    def min_period(self, value: float) -> None:
        # Applies to later add() calls; live subscriptions keep their period.
        self._min_period = value

    # ── Registry ──────────────────────────────────────────────────────────────

    def add(
        self,
        requester_id: str,
        channel: Channel,
        period: float,
        now: float,
        destination: Optional[str] = None,
    ) -> None:
        key = (requester_id, channel)
        existing = self._subscriptions.get(key)
        if existing is not None:
            existing.reschedule(period, now, destination, self._min_period)
            if existing.period != period:
                log.warning(
                    "dispatcher.period_clamped",
                    requester=requester_id,
                    channel=channel.value,
                    requested=period,
                    period=existing.period,
                )
            log.info(
                "dispatcher.subscription.renewed",
                requester=requester_id,
                channel=channel.value,
                period=existing.period,
            )
            return

        subscription = Subscription.create(
            requester_id, channel, period, now, destination, self._min_period,
        )
        self._subscriptions[key] = subscription
        if subscription.period != period:
            log.warning(
                "dispatcher.period_clamped",
                requester=requester_id,
                channel=channel.value,
                requested=period,
                period=subscription.period,
            )
        log.info(
            "dispatcher.subscription.added",
            requester=requester_id,
            channel=channel.value,
            period=subscription.period,
            total=len(self._subscriptions),
        )

    def remove(self, requester_id: str, channel: Channel) -> bool:
        removed = self._subscriptions.pop((requester_id, channel), None)
        if removed is None:
            log.debug("dispatcher.remove.absent", requester=requester_id, channel=channel.value)
            return False
        log.info(
            "dispatcher.subscription.removed",
            requester=requester_id,
            channel=channel.value,
            total=len(self._subscriptions),
        )
        return True

    def clear_channel(self, channel: Channel) -> int:
        kept = {k: s for k, s in self._subscriptions.items() if s.channel != channel}
        removed = len(self._subscriptions) - len(kept)
        self._subscriptions = kept
        log.info("dispatcher.channel_cleared", channel=channel.value, removed=removed)
        return removed

    def is_empty(self) -> bool:
        return not self._subscriptions

    # ── Scheduling ────────────────────────────────────────────────────────────

    def tick(self, now: float) -> list[DueReport]:
        """Signal and mark every due subscription. Returns what fired."""
        fired: list[DueReport] = []
        for subscription in list(self._subscriptions.values()):
            # Removed by an earlier on_due in this same pass.
            if self._subscriptions.get(subscription.key) is not subscription:
                continue
            if not subscription.is_due(now):
                continue
            report = DueReport(
                requester_id=subscription.requester_id,
                channel=subscription.channel,
                destination=subscription.destination,
                period=subscription.period,
                at=now,
            )
            if self._on_due is not None:
                try:
                    self._on_due(report)
                except Exception as e:
                    log.error(
                        "dispatcher.on_due_failed",
                        requester=report.requester_id,
                        channel=report.channel.value,
                        error=str(e),
                        error_type=type(e).__name__,
                        exc_info=True,
                    )
            subscription.mark_dispatched(now)
            fired.append(report)

        if fired:
            log.debug("dispatcher.tick", now=now, due=len(fired), total=len(self._subscriptions))
        return fired

    # ── Introspection (copies only) ───────────────────────────────────────────

    def __len__(self) -> int:
        return len(self._subscriptions)

    def __contains__(self, key: object) -> bool:
        return key in self._subscriptions

    def get(self, requester_id: str, channel: Channel) -> Optional[Subscription]:
        subscription = self._subscriptions.get((requester_id, channel))
        return dataclasses.replace(subscription) if subscription is not None else None

    def subscriptions(self) -> tuple[Subscription, ...]:
        return tuple(dataclasses.replace(s) for s in self._subscriptions.values())
