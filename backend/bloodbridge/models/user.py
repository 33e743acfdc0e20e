from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from .matching import BloodGroup, UserStatus

UserRole = Literal["donor", "volunteer", "admin"]


class UserPublic(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    email: EmailStr
    name: str
    role: UserRole
    status: UserStatus = UserStatus.ACTIVE
    blood_group: Optional[BloodGroup] = Field(default=None, alias="bloodGroup")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
