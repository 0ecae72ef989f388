"""
bus/ — In-process publish/subscribe layer

Usage:
    from supervisors.bus import MessageBus, ReportControl, ReportOp, Channel

    bus = MessageBus(system="vehicle")
    bus.publish(ReportControl(op=ReportOp.REQUEST_START, comm_interface=Channel.ACOUSTIC))
"""

from supervisors.bus.message_bus import MessageBus
from supervisors.bus.messages import (
    Channel,
    ChannelOp,
    EntityState,
    EntityStateCode,
    Heartbeat,
    Message,
    PowerChannelControl,
    PowerOp,
    PowerOperation,
    ReportControl,
    ReportOp,
    SetEntityParameters,
    Status,
    decode_message,
)

__all__ = [
    "MessageBus",
    # Messages
    "Message",
    "ReportControl",
    "Heartbeat",
    "PowerOperation",
    "PowerChannelControl",
    "SetEntityParameters",
    "EntityState",
    "decode_message",
    # Enums
    "Channel",
    "ReportOp",
    "PowerOp",
    "ChannelOp",
    "EntityStateCode",
    "Status",
]
