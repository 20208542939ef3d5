"""
Guest User Schemas
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class GuestUserCreate(BaseModel):
    """Request body for POST /guest-users."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str = Field(..., min_length=1, max_length=200)
    mobile_number: str = Field(..., min_length=1, max_length=32)

    @field_validator("name", "mobile_number")
    @classmethod
    def strip_whitespace(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class GuestUserResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: UUID
    name: str
    mobile_number: str
    created_at: datetime | None = None


class GuestUserEnvelope(BaseModel):
    """Response for POST /guest-users."""

    message: str
    data: GuestUserResponse
