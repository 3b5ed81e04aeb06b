"""API-specific response schemas (Pydantic v2)."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# -- Error --


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    error: str


# -- Conversion --


class ConversionResponse(BaseModel):
    """Exchange rate between two currencies at a point in time."""

    model_config = ConfigDict(populate_by_name=True)

    from_symbol: str = Field(alias="from")
    to_symbol: str = Field(alias="to")
    rate: float
    timestamp: datetime = Field(description="The instant the rate was resolved for")
    data_timestamps: dict[str, datetime] = Field(
        description="Each price's own observation time, for judging staleness"
    )


# -- Health --


class HealthResponse(BaseModel):
    """Response for GET /health."""

    status: str = "OK"
    timestamp: datetime
    version: str
    storage: bool
    scheduler_running: bool = False
