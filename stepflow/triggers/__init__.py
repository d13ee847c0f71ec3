"""STEPFLOW Trigger System — matching, manual/event dispatch, and schedule ticks."""

from stepflow.triggers.event_bus import (
    EVENT_RUN_DEAD_LETTERED,
    EVENT_RUN_RECONCILED,
    EVENT_RUN_SUCCEEDED,
    EVENT_RUNTIME_RECORD_CREATED,
    EVENT_SCHEDULE_TICK,
    EventBus,
    RunOutcomePublisher,
)
from stepflow.triggers.manager import TriggerManager
from stepflow.triggers.matcher import TriggerMatcher, matches
from stepflow.triggers.scheduler import ScheduleTicker

__all__ = [
    "EventBus",
    "RunOutcomePublisher",
    "EVENT_RUNTIME_RECORD_CREATED",
    "EVENT_SCHEDULE_TICK",
    "EVENT_RUN_SUCCEEDED",
    "EVENT_RUN_DEAD_LETTERED",
    "EVENT_RUN_RECONCILED",
    "TriggerManager",
    "TriggerMatcher",
    "matches",
    "ScheduleTicker",
]
