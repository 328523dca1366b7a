"""
Pydantic request/response schemas for the PropPicks ledger API.

Using explicit schemas instead of raw dicts prevents mass-assignment
on the stored rows and generates accurate OpenAPI docs.  Field aliases
keep the camelCase JSON the web frontend already speaks.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from backend.core.ledger_types import StatRow, WagerRecord


# ---------------------------------------------------------------------------
# Past bets
# ---------------------------------------------------------------------------

class PastBetCreate(BaseModel):
    """
    Payload for POST /api/past-bets.

    ``type`` is clamped to Single when unrecognised.  A blank or unparseable
    ``date`` means "now".  Result fields are never accepted here; they are
    written via POST /api/past-bets/result.
    """

    type: str = Field("Single", description="Single | SGP | SGP+")
    date: Optional[str] = Field(None, description="RFC3339 placement time")
    model: str = Field(..., min_length=1, max_length=120)
    sport: str = Field(..., min_length=1, max_length=32, description='e.g. "NBA"')
    event: str = Field(..., min_length=1, max_length=1000)
    odds: str = Field(..., min_length=1, max_length=32, description='"+650" or "-115"')
    stake: float = Field(1.0, gt=0, le=100, description="Units risked")

    @field_validator("model", "sport", "event", "odds")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    def placed_at(self) -> Optional[datetime]:
        """Parsed ``date``; None when blank or unparseable."""
        raw = (self.date or "").strip()
        if not raw:
            return None
        try:
            return datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return None

    model_config = {
        "json_schema_extra": {
            "example": {
                "type": "SGP",
                "date": "2026-01-21T23:30:00Z",
                "model": "Sharp Consensus",
                "sport": "NBA",
                "event": "Celtics @ Knicks: Brunson 25+ pts, Knicks ML",
                "odds": "+265",
                "stake": 1.0,
            }
        }
    }


class PastBetResult(BaseModel):
    """Payload for POST /api/past-bets/result.  Blank/unknown outcome clears the grade."""

    id: str = Field(..., min_length=1, max_length=64)
    outcome: str = Field("", max_length=16, description='"win" | "loss" | "push" | ""')

    @field_validator("id")
    @classmethod
    def strip_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("id is required")
        return v


class PastBetOut(BaseModel):
    """One wager as the frontend sees it; result fields omitted while ungraded."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    type: str
    date: str
    model: str
    sport: str
    event: str
    odds: str
    stake: float
    result: Optional[str] = None
    result_units: Optional[float] = Field(None, alias="resultUnits")

    @classmethod
    def from_record(cls, rec: WagerRecord) -> "PastBetOut":
        return cls(
            id=rec.id,
            type=rec.mode.value,
            date=rec.placed_at.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            model=rec.model,
            sport=rec.sport,
            event=rec.event,
            odds=rec.odds,
            stake=rec.stake,
            result=rec.result.value if rec.result else None,
            result_units=round(rec.result_units, 4) if rec.result else None,
        )


class PastBetList(BaseModel):
    bets: list[PastBetOut]


class PastBetWriteResponse(BaseModel):
    ok: bool = True
    bet: PastBetOut


# ---------------------------------------------------------------------------
# Model stats
# ---------------------------------------------------------------------------

class StatOut(BaseModel):
    """One aggregate cell."""

    model_config = ConfigDict(populate_by_name=True)

    model: str
    sport: str
    mode: str
    bets: int
    wins: int
    losses: int
    pushes: int
    units: float
    roi_pct: float = Field(..., alias="roiPct")

    @classmethod
    def from_row(cls, row: StatRow) -> "StatOut":
        return cls(
            model=row.key.model,
            sport=row.key.sport,
            mode=row.key.mode,
            bets=row.bets,
            wins=row.wins,
            losses=row.losses,
            pushes=row.pushes,
            units=round(row.units, 4),
            roi_pct=round(row.roi_pct, 2),
        )


class StatList(BaseModel):
    stats: list[StatOut]


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------

class DemoSeedRequest(BaseModel):
    """Payload for POST /admin/demo/seed."""

    user: str = Field(..., min_length=1, max_length=128, description="Demo user key to seed")
    limit: Optional[int] = Field(None, ge=1, le=1000)


class DemoSeedResponse(BaseModel):
    user: str
    source_user: str
    bets_copied: int
    graded_copied: int
    stat_rows: int
