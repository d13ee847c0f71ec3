"""In-process event bus: trigger ingress and run-outcome notifications.

Two directions share one bus:

  inbound   runtime_record.created, schedule.tick
            An embedding application publishes TriggerEvents; the
            TriggerManager (see TriggerManager.attach) starts the runs.

  outbound  run.succeeded, run.dead_lettered, run.reconciled
            RunOutcomePublisher, registered as a lifecycle callback by the
            Stepflow runtime, announces every settled run to subscribers.

Subscribers are plain callables (sync or async) taking one argument.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable

from stepflow.callbacks.base import BaseCallback
from stepflow.exceptions import TriggerError
from stepflow.types import RunStatus, TriggerEvent, TriggerType, WorkflowRun

logger = logging.getLogger(__name__)

# ── Topics ─────────────────────────────────────────────────────────────────
EVENT_RUNTIME_RECORD_CREATED = "runtime_record.created"
EVENT_SCHEDULE_TICK          = "schedule.tick"
EVENT_RUN_SUCCEEDED          = "run.succeeded"
EVENT_RUN_DEAD_LETTERED      = "run.dead_lettered"
EVENT_RUN_RECONCILED         = "run.reconciled"

_TRIGGER_TOPICS = {
    TriggerType.RUNTIME_RECORD_CREATED: EVENT_RUNTIME_RECORD_CREATED,
    TriggerType.SCHEDULE_TICK:          EVENT_SCHEDULE_TICK,
}


def topic_for(trigger_type: TriggerType) -> str:
    """Bus topic for an inbound trigger.  Manual runs never travel over the bus."""
    try:
        return _TRIGGER_TOPICS[TriggerType(trigger_type)]
    except KeyError:
        raise TriggerError(
            f"No bus topic for trigger '{TriggerType(trigger_type).value}'; use execute_manual()",
            trigger_type=TriggerType(trigger_type).value,
        ) from None


class EventBus:
    """Topic-keyed pub/sub for one process.

    Usage::

        bus = flow.event_bus
        bus.subscribe(EVENT_RUN_DEAD_LETTERED, page_on_call)
        await bus.publish(TriggerEvent(trigger_type="runtime_record_created", ...))
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Callable[[Any], Any]]] = {}

    def subscribe(self, topic: str, handler: Callable[[Any], Any]) -> None:
        self._subscribers.setdefault(topic, []).append(handler)

    def unsubscribe(self, topic: str, handler: Callable[[Any], Any]) -> None:
        """Drop one registration of *handler*; unknown handlers are ignored."""
        handlers = self._subscribers.get(topic, [])
        if handler in handlers:
            handlers.remove(handler)

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, []))

    async def emit(self, topic: str, data: Any = None) -> int:
        """Deliver *data* to every handler of *topic*, in subscription order.

        A failing handler is logged and skipped.  Handlers subscribed while
        the emit is in progress see the next emit, not this one.

        Returns:
            How many handlers completed without raising.
        """
        delivered = 0
        for handler in list(self._subscribers.get(topic, [])):
            try:
                result = handler(data)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception:
                logger.exception("EventBus handler failed for topic=%r", topic)
        return delivered

    async def publish(self, event: TriggerEvent) -> int:
        """Emit an inbound trigger event on its topic.

        Raises:
            TriggerError: manual events, which have no topic.
        """
        topic = topic_for(event.trigger_type)
        delivered = await self.emit(topic, event)
        if delivered == 0:
            logger.warning(
                "No handler took %s event tenant=%s event_id=%s", topic, event.tenant_id, event.event_id
            )
        return delivered


class RunOutcomePublisher(BaseCallback):
    """Lifecycle callback that announces settled runs on an EventBus."""

    def __init__(self, bus: EventBus) -> None:
        self.bus = bus

    async def on_run_complete(self, run: WorkflowRun, **kwargs: Any) -> None:
        topic = EVENT_RUN_SUCCEEDED if run.status == RunStatus.SUCCEEDED else EVENT_RUN_DEAD_LETTERED
        await self.bus.emit(topic, run)

    async def on_run_reconciled(self, run: WorkflowRun, action: str, **kwargs: Any) -> None:
        await self.bus.emit(EVENT_RUN_RECONCILED, {"run": run, "action": action})
