from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class ReconcileRequest(BaseModel):
    force: bool = Field(False, description="Run even if the document checksum was already applied")
    reason: Literal["declarative change", "auto-update", "forced-update"] = Field(
        "declarative change", description="Why the desired configuration changed"
    )


class PlanRequest(BaseModel):
    document: str = Field(..., description="Desired-state document (YAML or JSON)")


class StepModel(BaseModel):
    action: str
    target: str
    phase: int
    mode: str | None = None


class PlanResponse(BaseModel):
    restart_requested: bool
    changes: dict[str, list[dict[str, str]]]
    steps: list[StepModel]
