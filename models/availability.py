"""Availability read models. Derived on every query, never persisted."""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class TimeSlot(BaseModel):
    """One bookable slot of a resource's day."""

    start: datetime
    end: datetime
    is_available: bool


class OperatingWindow(BaseModel):
    """Hours that applied to the queried day."""

    start: str
    end: str
    timezone: str


class Availability(BaseModel):
    """Slot grid of a resource for one calendar day."""

    resource_id: str
    date: date
    is_available: bool = True
    operating_hours: Optional[OperatingWindow] = None
    time_slots: List[TimeSlot] = Field(default_factory=list)
    message: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "resource_id": "uuid-here",
                "date": "2026-10-20",
                "is_available": True,
                "operating_hours": {
                    "start": "08:00",
                    "end": "20:00",
                    "timezone": "UTC",
                },
                "time_slots": [
                    {
                        "start": "2026-10-20T08:00:00Z",
                        "end": "2026-10-20T08:30:00Z",
                        "is_available": True,
                    }
                ],
            }
        }
