"""
supervisors — Vehicle supervisor tasks

    reporter/   periodic status-report scheduler
    power/      slave CPU power sequencer
    bus/        in-process message bus and wire messages
    tasks/      task base (inbox, polling loop, activation FSM)
"""

__version__ = "0.1.0"
