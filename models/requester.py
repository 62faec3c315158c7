"""Requester model: the authenticated caller of a booking operation."""

from typing import Optional

from pydantic import BaseModel, Field


class Requester(BaseModel):
    """Caller identity as asserted by the upstream authentication layer.

    Roles and departments are free-form strings; which roles count as admin
    is configuration (ADMIN_ROLES).
    """

    user_id: str = Field(..., min_length=1)
    role: Optional[str] = None
    department: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "user_id": "uuid-here",
                "role": "student",
                "department": "Computer Science",
            }
        }
