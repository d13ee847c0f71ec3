"""Pydantic models for YAML configuration validation.

These mirror stepflow/types.py structures but accept the looser shapes
people write by hand (trigger: "manual", enabled: yes) and coerce them.
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from stepflow.types import Step, TriggerType


class TriggerYAML(BaseModel):
    """Trigger block of a workflow entry."""

    type: TriggerType = TriggerType.MANUAL
    entity_logical_name: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def coerce_type(cls, v):
        if isinstance(v, str):
            return TriggerType(v.strip().lower())
        return v


class WorkflowYAML(BaseModel):
    """Validated schema for one entry in workflows.yaml."""

    logical_name: str
    display_name: Optional[str] = None      # defaults to logical_name
    description: Optional[str] = None
    tenant_id: Optional[str] = None         # defaults to the loader's tenant
    trigger: TriggerYAML = Field(default_factory=TriggerYAML)
    steps: list[Step] = Field(default_factory=list)
    max_attempts: int = Field(default=3, ge=1, le=10)
    enabled: bool = True

    @field_validator("trigger", mode="before")
    @classmethod
    def coerce_trigger(cls, v):
        # `trigger: manual` is shorthand for `trigger: {type: manual}`
        if isinstance(v, str):
            return {"type": v}
        return v


class WorkflowsConfig(BaseModel):
    """Root schema for workflows.yaml."""
    workflows: list[WorkflowYAML] = Field(default_factory=list)
