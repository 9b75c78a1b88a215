"""Pydantic schemas for user accounts."""

from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


class UserCreate(BaseModel):
    """Schema for registering a user."""

    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)
    max_loans: Optional[int] = Field(None, ge=0, le=100)
    is_admin: bool = False

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.strip().lower()


class UserUpdate(BaseModel):
    """Schema for updating a user's profile. All fields optional."""

    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)
    max_loans: Optional[int] = Field(None, ge=0, le=100)


class UserResponse(BaseModel):
    """Schema for user responses. Never carries the password hash."""

    id: str
    email: str
    first_name: str
    last_name: str
    phone: Optional[str]
    is_active: bool
    max_loans: int

    model_config = {"from_attributes": True}
