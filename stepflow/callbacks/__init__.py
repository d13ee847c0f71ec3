"""Callback/hook system for STEPFLOW run lifecycle events."""

from stepflow.callbacks.base import BaseCallback, StepflowCallback, fire_callbacks
from stepflow.callbacks.logging import LoggingCallback

__all__ = ["StepflowCallback", "BaseCallback", "LoggingCallback", "fire_callbacks"]
