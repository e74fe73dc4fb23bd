"""Pydantic schemas for janitor run reports."""

from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel, Field

from app.services.janitor import JanitorReport


class SweepSummaryResponse(BaseModel):
    name: str = Field(..., description="Sweep name: 'objects' or 'counters'.")
    ok: bool = Field(..., description="False when the sweep failed and will be retried next run.")
    removed: int = Field(..., ge=0, description="Number of objects or counters removed.")
    keys: List[str] = Field(default_factory=list, description="Removed keys.")
    error: str | None = Field(default=None, description="Error type when the sweep failed.")


class JanitorReportResponse(BaseModel):
    """Outcome of one janitor run."""

    ok: bool
    started_at: datetime
    duration_ms: float = Field(..., ge=0)
    sweeps: List[SweepSummaryResponse]

    @classmethod
    def from_report(cls, report: JanitorReport) -> "JanitorReportResponse":
        return cls(
            ok=report.ok,
            started_at=report.started_at,
            duration_ms=round(report.duration_ms, 2),
            sweeps=[
                SweepSummaryResponse(
                    name=sweep.name,
                    ok=sweep.ok,
                    removed=sweep.removed,
                    keys=sweep.keys,
                    error=sweep.error,
                )
                for sweep in report.sweeps
            ],
        )
