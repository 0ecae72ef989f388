"""
tasks/base.py — Supervisor Task Base

Every supervisor runs as a BaseTask subclass inside one asyncio loop.

Design
------
* Inbox: the bus hands messages to put_nowait() on the task's own
  asyncio.Queue. Nothing is consumed until the task's loop drains it, so
  all handler code runs serialised on the task's coroutine.
* Polling: run() loops `wait_for_messages(poll_interval)` → `on_tick()`
  until stop() is called. on_tick() runs after every wake-up whether or not
  a message arrived, so periodic checks always make progress.
* Dispatch table: bind(MessageType, handler), one consumer per class.
  A handler or on_tick() that raises is logged and the loop keeps going.
* Entity state: set_entity_state() publishes EntityState only on change.
* Activation FSM (opt-in via `supports_activation`):

      INACTIVE ──request_activation──▶ ACTIVATING ──activate──▶ ACTIVE
         ▲                                 │                       │
         └────────activation_failed────────┘            request_deactivation
         ▲                                                         ▼
         └──────────────────deactivate─────────────────── DEACTIVATING

  Requests arrive as SetEntityParameters(name=<task>, params={"Active": ...}).
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Callable, ClassVar, Optional

from supervisors.bus.message_bus import MessageBus
from supervisors.bus.messages import (
    EntityState,
    EntityStateCode,
    Message,
    SetEntityParameters,
    Status,
)
from supervisors.exceptions import HandlerNotCallableError, TaskStateError
from supervisors.observability.logger import bind_task, clear_task, get_logger

log = get_logger(__name__)

Clock = Callable[[], float]

_TRUE_VALUES = {"true", "1", "yes", "on"}


class ActivationState(str, Enum):
    INACTIVE     = "inactive"
    ACTIVATING   = "activating"
    ACTIVE       = "active"
    DEACTIVATING = "deactivating"


class BaseTask:
    """
    Cooperative, single-coroutine supervisor task.

    Subclasses bind their message handlers in __init__ and override the
    on_* hooks they need.
    """

    default_name: ClassVar[str] = "Task"
    supports_activation: ClassVar[bool] = False

    def __init__(
        self,
        bus: MessageBus,
        *,
        name: Optional[str] = None,
        clock: Clock = time.time,
        poll_interval: float = 1.0,
    ) -> None:
        self.name = name or self.default_name
        self._bus = bus
        self._clock = clock
        self._poll_interval = poll_interval
        self._inbox: asyncio.Queue[Message] = asyncio.Queue()
        self._consumers: dict[type[Message], Callable[[Message], None]] = {}
        self._stopping = False
        self._entity_state: Optional[tuple[EntityStateCode, Status]] = None
        self._activation = ActivationState.INACTIVE
        self.last_activation_error: Optional[str] = None

        if self.supports_activation:
            self.bind(SetEntityParameters, self._consume_entity_parameters)

    # ── Properties ────────────────────────────────────────────────────────────

    @property
    def system(self) -> str:
        return self._bus.system

    @property
    def activation_state(self) -> ActivationState:
        return self._activation

    @property
    def entity_state(self) -> Optional[tuple[EntityStateCode, Status]]:
        return self._entity_state

    def now(self) -> float:
        return self._clock()

    # ── Bus wiring ────────────────────────────────────────────────────────────

    def bind(self, message_type: type[Message], handler: Callable) -> None:
        if not callable(handler):
            raise HandlerNotCallableError(message_type.type_name())
        self._consumers[message_type] = handler
        self._bus.subscribe(message_type, self.name, self._inbox.put_nowait)

    def dispatch(self, message: Message, *, loop_back: bool = False) -> None:
        message.source_entity = self.name
        self._bus.publish(message, loop_back=loop_back)

    def dispatch_reply(self, request: Message, reply: Message) -> None:
        reply.destination = request.source
        reply.source = ""
        self.dispatch(reply)

    # ── Inbox ─────────────────────────────────────────────────────────────────

    async def wait_for_messages(self, timeout: float) -> int:
        """
        Wait up to `timeout` seconds for a message, then consume everything
        queued. Returns the number of messages consumed.
        """
        try:
            first = await asyncio.wait_for(self._inbox.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return 0
        self._consume(first)
        return 1 + self.consume_pending()

    def consume_pending(self) -> int:
        """Consume every queued message without waiting."""
        count = 0
        while True:
            try:
                message = self._inbox.get_nowait()
            except asyncio.QueueEmpty:
                return count
            self._consume(message)
            count += 1

    def _consume(self, message: Message) -> None:
        handler = self._consumers.get(type(message))
        if handler is None:
            log.debug("task.no_consumer", task=self.name, type=message.type_name())
            return
        try:
            handler(message)
        except Exception as e:
            log.error(
                "task.consume_failed",
                task=self.name,
                type=message.type_name(),
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def stop(self) -> None:
        """Ask the loop to exit at its next wake-up."""
        self._stopping = True

    def stopping(self) -> bool:
        return self._stopping

    async def run(self) -> None:
        """Main loop. Returns after stop() once the current wait elapses."""
        bind_task(self.name)
        log.info("task.started", task=self.name, poll_interval=self._poll_interval)
        try:
            self.on_start()
            while not self.stopping():
                await self.wait_for_messages(self._poll_interval)
                self._tick()
        except asyncio.CancelledError:
            log.info("task.cancelled", task=self.name)
            raise
        finally:
            self._bus.unsubscribe_all(self.name)
            log.info("task.stopped", task=self.name)
            clear_task()

    def _tick(self) -> None:
        try:
            self.on_tick()
        except Exception as e:
            log.error(
                "task.tick_failed",
                task=self.name,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )

    def on_start(self) -> None:
        """Called once before the first wait."""

    def on_tick(self) -> None:
        """Called after every wake-up of the main loop."""

    # ── Entity state ──────────────────────────────────────────────────────────

    def set_entity_state(self, state: EntityStateCode, status: Status) -> None:
        if self._entity_state == (state, status):
            return
        self._entity_state = (state, status)
        log.debug("task.entity_state", task=self.name, state=state.value, status=status.value)
        self.dispatch(EntityState(state=state, status=status))

    # ── Activation FSM ────────────────────────────────────────────────────────

    def is_active(self) -> bool:
        return self._activation is ActivationState.ACTIVE

    def is_activating(self) -> bool:
        return self._activation is ActivationState.ACTIVATING

    def is_deactivating(self) -> bool:
        return self._activation is ActivationState.DEACTIVATING

    def request_activation(self) -> None:
        if self._activation is not ActivationState.INACTIVE:
            log.debug("task.activation.ignored", task=self.name, state=self._activation.value)
            return
        self._activation = ActivationState.ACTIVATING
        self.last_activation_error = None
        log.info("task.activation.requested", task=self.name)
        self.on_request_activation()

    def activate(self) -> None:
        self._require(ActivationState.ACTIVATING, "activate")
        self._activation = ActivationState.ACTIVE
        log.info("task.activation.done", task=self.name)
        self.on_activation()

    def activation_failed(self, reason: str) -> None:
        self._require(ActivationState.ACTIVATING, "fail activation")
        self._activation = ActivationState.INACTIVE
        self.last_activation_error = reason
        log.warning("task.activation.failed", task=self.name, reason=reason)

    def request_deactivation(self) -> None:
        if self._activation not in (ActivationState.ACTIVE, ActivationState.ACTIVATING):
            log.debug("task.deactivation.ignored", task=self.name, state=self._activation.value)
            return
        self._activation = ActivationState.DEACTIVATING
        log.info("task.deactivation.requested", task=self.name)
        self.on_request_deactivation()

    def deactivate(self) -> None:
        self._require(ActivationState.DEACTIVATING, "deactivate")
        self._activation = ActivationState.INACTIVE
        log.info("task.deactivation.done", task=self.name)
        self.on_deactivation()

    def on_request_activation(self) -> None:
        """Hook: activation was requested."""

    def on_activation(self) -> None:
        """Hook: task became active."""

    def on_request_deactivation(self) -> None:
        """Hook: deactivation was requested."""

    def on_deactivation(self) -> None:
        """Hook: task became inactive."""

    def _require(self, expected: ActivationState, attempted: str) -> None:
        if self._activation is not expected:
            raise TaskStateError(self.name, self._activation.value, attempted)

    def _consume_entity_parameters(self, msg: SetEntityParameters) -> None:
        if msg.name != self.name or "Active" not in msg.params:
            return
        if msg.params["Active"].strip().lower() in _TRUE_VALUES:
            self.request_activation()
        else:
            self.request_deactivation()
