"""
Caller identity models.

Identity is established by the auth collaborator; the queue only reads
the claims of the bearer token.
"""

from pydantic import BaseModel, Field
from typing import Optional
from enum import Enum


class UserRole(str, Enum):
    """User roles in the system."""
    PATIENT = "patient"
    DOCTOR = "doctor"


class User(BaseModel):
    """Authenticated caller."""
    id: str = Field(..., alias="_id")
    role: UserRole
    email: Optional[str] = None

    class Config:
        populate_by_name = True


class TokenData(BaseModel):
    """JWT token payload data."""
    user_id: Optional[str] = None
    email: Optional[str] = None
    role: Optional[UserRole] = None
