"""
bus/messages.py — Typed Bus Messages and JSON Codec

Every message carried by the MessageBus is a dataclass subclass of Message.
The enums below are closed tag sets: anything outside them is rejected at
decode time, so tasks never see an unknown channel or operation.

Wire form (JSON, used by bridges that feed external traffic into the bus):

    {"type": "ReportControl", "source": "ccu-1", "destination": null,
     "timestamp": 1700000000.0, "op": "request_start",
     "comm_interface": "acoustic", "period": 60, "sys_dst": "broadcast"}
"""

from __future__ import annotations

import dataclasses
import json
import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, ClassVar, Optional, Union

from supervisors.exceptions import MessageDecodeError, UnknownMessageError


# ─────────────────────────────────────────────────────────────────────────────
# Enumerations
# ─────────────────────────────────────────────────────────────────────────────

class Channel(str, Enum):
    """Communication interface a report is delivered over."""
    ACOUSTIC  = "acoustic"
    SATELLITE = "satellite"
    GSM       = "gsm"
    MOBILE    = "mobile"
    RADIO     = "radio"


class ReportOp(str, Enum):
    REQUEST_START  = "request_start"
    STARTED        = "started"
    REQUEST_STOP   = "request_stop"
    STOPPED        = "stopped"
    REQUEST_REPORT = "request_report"
    REPORT_SENT    = "report_sent"


class PowerOp(str, Enum):
    PWR_DOWN    = "pwr_down"
    PWR_DOWN_IP = "pwr_down_ip"
    PWR_UP      = "pwr_up"


class ChannelOp(str, Enum):
    TURN_OFF = "turn_off"
    TURN_ON  = "turn_on"


class EntityStateCode(str, Enum):
    BOOT    = "boot"
    NORMAL  = "normal"
    FAULT   = "fault"
    ERROR   = "error"
    FAILURE = "failure"


class Status(str, Enum):
    IDLE         = "idle"
    ACTIVE       = "active"
    ACTIVATING   = "activating"
    DEACTIVATING = "deactivating"


# ─────────────────────────────────────────────────────────────────────────────
# Field coercers (decode boundary)
# ─────────────────────────────────────────────────────────────────────────────

def _finite_float(value: Any) -> float:
    if isinstance(value, bool):
        raise TypeError("bool is not a number")
    result = float(value)
    if not math.isfinite(result):
        raise ValueError("not finite")
    return result


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _str_dict(value: Any) -> dict[str, str]:
    if not isinstance(value, dict):
        raise TypeError("expected an object")
    return {str(k): str(v) for k, v in value.items()}


# ─────────────────────────────────────────────────────────────────────────────
# Base message
# ─────────────────────────────────────────────────────────────────────────────

@dataclass
class Message:
    """
    Envelope shared by every bus message.

    source          System that produced the message.
    destination     Target system, or None for anyone listening.
    source_entity   Name of the producing task (filled by the bus).
    timestamp       Seconds since the epoch at creation.
    """
    source: str = ""
    destination: Optional[str] = None
    source_entity: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    _coercers: ClassVar[dict[str, Callable[[Any], Any]]] = {
        "source": str,
        "destination": _optional_str,
        "source_entity": _optional_str,
        "timestamp": _finite_float,
    }

    @classmethod
    def type_name(cls) -> str:
        return cls.__name__

    def copy(self, **changes: Any) -> "Message":
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type_name()}
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            data[f.name] = value.value if isinstance(value, Enum) else value
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        kwargs: dict[str, Any] = {}
        coercers = {**Message._coercers, **cls._coercers}
        for f in dataclasses.fields(cls):
            if f.name not in data:
                continue
            raw = data[f.name]
            coerce = coercers.get(f.name)
            if coerce is None:
                kwargs[f.name] = raw
                continue
            try:
                kwargs[f.name] = coerce(raw)
            except (TypeError, ValueError) as exc:
                raise MessageDecodeError(f.name, raw) from exc
        return cls(**kwargs)


# ─────────────────────────────────────────────────────────────────────────────
# Concrete messages
# ─────────────────────────────────────────────────────────────────────────────

@dataclass
class ReportControl(Message):
    """Start/stop a periodic report subscription, or request one report."""
    op: ReportOp = ReportOp.REQUEST_START
    comm_interface: Channel = Channel.ACOUSTIC
    period: float = 0.0
    sys_dst: str = ""

    _coercers: ClassVar[dict[str, Callable[[Any], Any]]] = {
        "op": ReportOp,
        "comm_interface": Channel,
        "period": _finite_float,
        "sys_dst": str,
    }


@dataclass
class Heartbeat(Message):
    """Liveness announcement from a system."""


@dataclass
class PowerOperation(Message):
    op: PowerOp = PowerOp.PWR_UP

    _coercers: ClassVar[dict[str, Callable[[Any], Any]]] = {"op": PowerOp}


@dataclass
class PowerChannelControl(Message):
    name: str = ""
    op: ChannelOp = ChannelOp.TURN_OFF

    _coercers: ClassVar[dict[str, Callable[[Any], Any]]] = {"name": str, "op": ChannelOp}


@dataclass
class SetEntityParameters(Message):
    """Set named parameters of a task entity (e.g. Active=true)."""
    name: str = ""
    params: dict[str, str] = field(default_factory=dict)

    _coercers: ClassVar[dict[str, Callable[[Any], Any]]] = {"name": str, "params": _str_dict}


@dataclass
class EntityState(Message):
    state: EntityStateCode = EntityStateCode.BOOT
    status: Status = Status.IDLE

    _coercers: ClassVar[dict[str, Callable[[Any], Any]]] = {
        "state": EntityStateCode,
        "status": Status,
    }


MESSAGE_TYPES: dict[str, type[Message]] = {
    cls.type_name(): cls
    for cls in (
        ReportControl,
        Heartbeat,
        PowerOperation,
        PowerChannelControl,
        SetEntityParameters,
        EntityState,
    )
}


def decode_message(raw: Union[str, bytes, dict[str, Any]]) -> Message:
    """
    Parse a JSON string (or already-decoded dict) into a typed Message.

    Raises:
        MessageDecodeError:  invalid JSON, or a field outside its closed set.
        UnknownMessageError: the "type" tag is not a known message.
    """
    if isinstance(raw, dict):
        data = raw
    else:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise MessageDecodeError("json", raw) from exc
        if not isinstance(data, dict):
            raise MessageDecodeError("json", raw, "Message must be a JSON object")

    type_name = str(data.get("type", ""))
    cls = MESSAGE_TYPES.get(type_name)
    if cls is None:
        raise UnknownMessageError(type_name)
    return cls.from_dict(data)
