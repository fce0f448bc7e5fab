"""
Team and actor schemas.
"""

from enum import Enum
from typing import Optional

from models.base import BaseSchema


class TeamRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


class Actor(BaseSchema):
    """The authenticated user performing an operation."""
    id: str
    email: Optional[str] = None


class Team(BaseSchema):
    id: str
    name: str
