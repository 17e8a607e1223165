"""
providers/schemas.py - Pydantic schemas for provider output.

Provider output is untrusted. Drafts keep timestamps and process types as
plain strings so that conversion errors surface in the core, where they are
reported as rejected candidates with a reason.
"""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class PerceptionResponse(BaseModel):
    """Structured answer of the vision model for one raw-material photo."""

    material_name: str = Field(..., description="Identified material, e.g. 'Ginseng'")
    detected_form: str = Field("", description="Physical form, e.g. 'whole root', 'slices'")
    estimated_moisture_pct: float = Field(..., ge=0, le=100, description="Moisture content in percent")
    quality_check: Literal["pass", "fail"] = Field(..., description="Visual quality verdict")
    reasoning: str = Field("", description="Short rationale for the verdict")


class ScheduleItemDraft(BaseModel):
    order_id: str
    equipment_id: str
    start: str = Field(..., description="ISO-8601 start time")
    end: str = Field(..., description="ISO-8601 end time")
    process_type: str = Field(..., description="washing | steaming | drying | cutting | packaging")
    notes: Optional[str] = None


class KPIDraft(BaseModel):
    """KPIs as claimed by the provider; advisory only."""

    total_duration_hours: Optional[float] = None
    cleaning_cycles: Optional[int] = None
    equipment_utilization_pct: Optional[float] = None


class PlanDraft(BaseModel):
    """An unvalidated candidate plan."""

    plan_id: Optional[str] = None
    name: str = "Candidate plan"
    description: str = ""
    strategy: str = ""
    score: Optional[float] = None
    items: List[ScheduleItemDraft] = Field(default_factory=list)
    kpis: Optional[KPIDraft] = None


class PlanDraftList(BaseModel):
    plans: List[PlanDraft] = Field(default_factory=list)
