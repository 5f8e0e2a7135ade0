"""
Authentication request/response models for the three principal kinds
(business, manufacturer, user).
"""

import re
from datetime import date
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from brandlink.models.security_models import UserType

PASSWORD_MIN_LENGTH = 8


def _validate_password_strength(v: str) -> str:
    if len(v) < PASSWORD_MIN_LENGTH:
        raise ValueError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")
    if not re.search(r"[A-Za-z]", v) or not re.search(r"\d", v):
        raise ValueError("Password must contain at least one letter and one digit")
    return v


class BaseRegisterRequest(BaseModel):
    email: EmailStr = Field(..., description="Login email, unique per account kind")
    password: str = Field(..., max_length=128, description="Account password")

    @field_validator("password")
    @classmethod
    def validate_password(cls, v):
        return _validate_password_strength(v)


class RegisterBusinessRequest(BaseRegisterRequest):
    business_name: str = Field(..., min_length=2, max_length=100, description="Brand / business name")
    industry: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)
    website: Optional[str] = Field(None, max_length=200)
    phone_number: Optional[str] = Field(None, max_length=30)

    @field_validator("business_name")
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Business name cannot be empty")
        return v


class RegisterManufacturerRequest(BaseRegisterRequest):
    name: str = Field(..., min_length=2, max_length=100, description="Manufacturer name")
    industry: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)
    services_offered: List[str] = Field(default_factory=list)
    moq: Optional[int] = Field(None, ge=0, description="Minimum order quantity")


class RegisterUserRequest(BaseRegisterRequest):
    first_name: Optional[str] = Field(None, max_length=50)
    last_name: Optional[str] = Field(None, max_length=50)
    date_of_birth: Optional[date] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)
    device_fingerprint: Optional[str] = Field(None, max_length=256)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., max_length=128)

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, v):
        return _validate_password_strength(v)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Lifetime in seconds")
    session_id: str
    principal_type: UserType
    principal_id: str
