"""
exceptions.py — Supervisors Error Hierarchy

All supervisor-specific exceptions live here. Layers raise typed subclasses
of SupervisorError, never bare Exception.

Import from here, not from individual modules:
    from supervisors.exceptions import MessageDecodeError, TaskStateError

Hierarchy:
    SupervisorError
    ├── BusError
    │   └── HandlerNotCallableError
    ├── ProtocolError
    │   ├── MessageDecodeError
    │   └── UnknownMessageError
    └── TaskError
        └── TaskStateError

ConfigError lives in supervisors.config.settings next to the validator that
raises it.
"""

from __future__ import annotations


# ─────────────────────────────────────────────────────────────────────────────
# Root
# ─────────────────────────────────────────────────────────────────────────────

class SupervisorError(Exception):
    """Base class for all supervisor exceptions."""


# ─────────────────────────────────────────────────────────────────────────────
# Bus layer
# ─────────────────────────────────────────────────────────────────────────────

class BusError(SupervisorError):
    """Base for message bus wiring errors."""


class HandlerNotCallableError(BusError):
    """A task tried to bind something that is not callable as a consumer."""

    def __init__(self, message_type: str, message: str = "") -> None:
        self.message_type = message_type
        super().__init__(
            message or f"Consumer bound for '{message_type}' is not callable."
        )


# ─────────────────────────────────────────────────────────────────────────────
# Protocol layer
# ─────────────────────────────────────────────────────────────────────────────

class ProtocolError(SupervisorError):
    """Base for malformed or unsupported wire messages."""


class MessageDecodeError(ProtocolError):
    """A message could not be decoded into a typed message object."""

    def __init__(self, field_name: str, value: object, message: str = "") -> None:
        self.field_name = field_name
        self.value = value
        super().__init__(message or f"Invalid value for '{field_name}': {value!r}")


class UnknownMessageError(ProtocolError):
    """The message type tag is not known to this bus."""

    def __init__(self, type_name: str) -> None:
        self.type_name = type_name
        super().__init__(f"Unknown message type: '{type_name}'")


# ─────────────────────────────────────────────────────────────────────────────
# Task layer
# ─────────────────────────────────────────────────────────────────────────────

class TaskError(SupervisorError):
    """Base for task lifecycle errors."""


class TaskStateError(TaskError):
    """An activation state transition was requested from the wrong state."""

    def __init__(self, task: str, current: str, attempted: str) -> None:
        self.task = task
        self.current = current
        self.attempted = attempted
        super().__init__(
            f"Task '{task}' cannot {attempted} while {current}."
        )


__all__ = [
    "SupervisorError",
    # Bus
    "BusError",
    "HandlerNotCallableError",
    # Protocol
    "ProtocolError",
    "MessageDecodeError",
    "UnknownMessageError",
    # Task
    "TaskError",
    "TaskStateError",
]
