"""
Pydantic schemas for the LoveNest API.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator


class RegisterRequest(BaseModel):
    name: str = Field(..., max_length=100)
    password: str = Field(..., min_length=6, max_length=256)
    femaleName: Optional[str] = Field(default=None, max_length=100)
    maleName: Optional[str] = Field(default=None, max_length=100)

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value


class LoginRequest(BaseModel):
    name: str = Field(..., max_length=100)
    password: str = Field(..., max_length=256)


class UserResponse(BaseModel):
    id: str
    name: str
    femaleName: Optional[str] = None
    maleName: Optional[str] = None
    createdAt: int


class AuthResponse(BaseModel):
    token: str
    user: UserResponse


class OkResponse(BaseModel):
    ok: Literal[True] = True


class HealthResponse(BaseModel):
    status: Literal["ok"]
