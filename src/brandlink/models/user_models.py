"""
End-user profile models.
"""

from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class Language(str, Enum):
    EN = "en"
    ES = "es"
    FR = "fr"
    DE = "de"


class UserPreferences(BaseModel):
    language: Language = Language.EN
    email_notifications: bool = True
    push_notifications: bool = True
    marketing_emails: bool = False


class UserProfileUpdate(BaseModel):
    first_name: Optional[str] = Field(None, max_length=50)
    last_name: Optional[str] = Field(None, max_length=50)
    date_of_birth: Optional[date] = None
    profile_picture_url: Optional[str] = Field(None, max_length=500)
    preferences: Optional[UserPreferences] = None

    @field_validator("date_of_birth")
    @classmethod
    def not_in_future(cls, v):
        if v is not None and v > date.today():
            raise ValueError("Date of birth cannot be in the future")
        return v
