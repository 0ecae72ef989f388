"""
bus/message_bus.py — In-Process Message Bus

Routes typed Message objects between tasks living in one asyncio process.

Delivery model:
  - Tasks subscribe per message class with a synchronous deliver callback
    (normally a put_nowait() into the task's inbox queue).
  - publish() stamps the source system, then hands the message to every
    subscriber of its class. A task does not receive its own messages
    unless the publisher asks for loop-back.
  - Taps observe every published message (transports, bridges, tests).
  - publish_json() is the boundary for external traffic: malformed input
    is logged and dropped, never delivered.

The bus never raises to a publisher.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Union

from supervisors.bus.messages import Message, decode_message
from supervisors.exceptions import HandlerNotCallableError, ProtocolError
from supervisors.observability.logger import get_logger

log = get_logger(__name__)

Deliver = Callable[[Message], None]


@dataclass(frozen=True)
class _Subscriber:
    owner: str
    deliver: Deliver


class MessageBus:
    """
    Publish/subscribe hub shared by all tasks of one system.

    Usage:
        bus = MessageBus(system="vehicle")
        bus.subscribe(ReportControl, "Supervisors.Reporter", inbox.put_nowait)
        bus.publish(ReportControl(op=ReportOp.REQUEST_START, period=60))
    """

    def __init__(self, system: str) -> None:
        self._system = system
        self._subscribers: dict[type[Message], list[_Subscriber]] = {}
        self._taps: list[Deliver] = []

    @property
    def system(self) -> str:
        return self._system

    # ── Wiring ────────────────────────────────────────────────────────────────

    def subscribe(self, message_type: type[Message], owner: str, deliver: Deliver) -> None:
        if not callable(deliver):
            raise HandlerNotCallableError(message_type.type_name())
        subscribers = self._subscribers.setdefault(message_type, [])
        if any(s.owner == owner for s in subscribers):
            log.debug("bus.subscribe.duplicate", type=message_type.type_name(), owner=owner)
            return
        subscribers.append(_Subscriber(owner=owner, deliver=deliver))
        log.debug("bus.subscribed", type=message_type.type_name(), owner=owner)

    def unsubscribe_all(self, owner: str) -> None:
        for message_type, subscribers in self._subscribers.items():
            self._subscribers[message_type] = [s for s in subscribers if s.owner != owner]

    def add_tap(self, tap: Deliver) -> None:
        if not callable(tap):
            raise HandlerNotCallableError("*")
        self._taps.append(tap)

    def subscriber_count(self, message_type: type[Message]) -> int:
        return len(self._subscribers.get(message_type, []))

    # ── Publishing ────────────────────────────────────────────────────────────

    def publish(self, message: Message, *, loop_back: bool = False) -> int:
        """
        Deliver a message to every subscriber of its class.

        Returns:
            Number of subscribers the message was handed to (taps excluded).
        """
        if not message.source:
            message.source = self._system

        delivered = 0
        for subscriber in list(self._subscribers.get(type(message), [])):
            if subscriber.owner == message.source_entity and not loop_back:
                continue
            try:
                subscriber.deliver(message)
                delivered += 1
            except Exception as e:
                log.error(
                    "bus.deliver_failed",
                    type=message.type_name(),
                    owner=subscriber.owner,
                    error=str(e),
                    error_type=type(e).__name__,
                )

        for tap in list(self._taps):
            try:
                tap(message)
            except Exception as e:
                log.warning("bus.tap_failed", type=message.type_name(), error=str(e))

        log.debug(
            "bus.published",
            type=message.type_name(),
            entity=message.source_entity,
            delivered=delivered,
        )
        return delivered

    def publish_json(self, raw: Union[str, bytes, dict]) -> bool:
        """
        Decode external traffic and publish it.

        Returns:
            True if the message was decoded and published, False if dropped.
        """
        try:
            message = decode_message(raw)
        except ProtocolError as e:
            log.warning("bus.decode_rejected", error=str(e), error_type=type(e).__name__)
            return False
        self.publish(message)
        return True
