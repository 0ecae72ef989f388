"""
reporter/ — Periodic status-report subscriptions

Public API:
    from supervisors.reporter import Dispatcher, Subscription, ReporterTask

Component overview:
    Subscription    One requester's standing ask on one channel (ticket)
    Dispatcher      Registry + per-tick due-set decision
    ReporterTask    Bus host: start/stop requests, acknowledgments, report requests
"""

from supervisors.reporter.dispatcher import Dispatcher, DueReport
from supervisors.reporter.task import ReporterTask
from supervisors.reporter.ticket import MIN_PERIOD_SECONDS, Subscription, clamp_period

__all__ = [
    "Dispatcher",
    "DueReport",
    "ReporterTask",
    "Subscription",
    "MIN_PERIOD_SECONDS",
    "clamp_period",
]
