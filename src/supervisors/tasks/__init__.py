"""
tasks/ — Supervisor task runtime

Public API:
    from supervisors.tasks import BaseTask, ActivationState, Countdown
"""

from supervisors.tasks.base import ActivationState, BaseTask
from supervisors.tasks.timers import Countdown

__all__ = ["ActivationState", "BaseTask", "Countdown"]
