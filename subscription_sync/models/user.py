"""User model at the boundary of the user system."""

from typing import Optional

from pydantic import BaseModel, Field


class UserRecord(BaseModel):
    """A user known to the service; email is the correlation key with the provider."""

    id: str = Field(..., description="Opaque user identifier")
    email: str = Field(..., min_length=3, description="User email address")
    first_name: Optional[str] = Field(None, description="First name")
    last_name: Optional[str] = Field(None, description="Last name")
