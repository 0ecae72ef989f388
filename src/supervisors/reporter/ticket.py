"""
reporter/ticket.py — Report Subscription (Ticket)

One requester's standing ask for periodic reports on one channel.

The key (requester_id, channel) is fixed for the lifetime of the record;
the schedule (period, last_dispatch) and the report destination change on
re-subscription. Periods that are not strictly positive (including NaN)
are clamped to a floor instead of being rejected.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from supervisors.bus.messages import Channel

# Smallest period a subscription may run at, in seconds.
MIN_PERIOD_SECONDS = 1.0

SubscriptionKey = tuple[str, Channel]


def clamp_period(period: float, min_period: float = MIN_PERIOD_SECONDS) -> float:
    """Return `period`, or `min_period` when period is not > 0."""
    if not period > 0:
        return min_period
    return float(period)


@dataclass
class Subscription:
    requester_id: str
    channel: Channel
    period: float
    last_dispatch: float
    destination: Optional[str] = None

    @classmethod
    def create(
        cls,
        requester_id: str,
        channel: Channel,
        period: float,
        now: float,
        destination: Optional[str] = None,
        min_period: float = MIN_PERIOD_SECONDS,
    ) -> "Subscription":
        """First dispatch happens one full period after `now`."""
        return cls(
            requester_id=requester_id,
            channel=channel,
            period=clamp_period(period, min_period),
            last_dispatch=now,
            destination=destination,
        )

    @property
    def key(self) -> SubscriptionKey:
        return (self.requester_id, self.channel)

    def is_due(self, now: float) -> bool:
        return now - self.last_dispatch >= self.period

    def mark_dispatched(self, now: float) -> None:
        self.last_dispatch = now

    def matches_key(self, requester_id: str, channel: Channel) -> bool:
        return self.requester_id == requester_id and self.channel == channel

    def reschedule(
        self,
        period: float,
        now: float,
        destination: Optional[str] = None,
        min_period: float = MIN_PERIOD_SECONDS,
    ) -> None:
        """Replace the period and restart the schedule from `now`."""
        self.period = clamp_period(period, min_period)
        self.last_dispatch = now
        self.destination = destination
