"""
Manufacturer profile, search and connection models.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from brandlink.models.brand_models import Headquarters


class Certification(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    issuer: Optional[str] = Field(None, max_length=100)
    valid_until: Optional[str] = None
    document_url: Optional[str] = Field(None, max_length=500)


class ManufacturerProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    industry: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)
    services_offered: Optional[List[str]] = Field(None, max_length=50)
    moq: Optional[int] = Field(None, ge=0)
    headquarters: Optional[Headquarters] = None
    contact_email: Optional[str] = Field(None, max_length=254)
    phone_number: Optional[str] = Field(None, max_length=30)
    website: Optional[str] = Field(None, max_length=200)
    profile_picture_url: Optional[str] = Field(None, max_length=500)
    established_year: Optional[int] = Field(None, ge=1800, le=2100)
    employee_count: Optional[int] = Field(None, ge=0)
    certifications: Optional[List[Certification]] = Field(None, max_length=50)
    production_capacity: Optional[str] = Field(None, max_length=200)
    lead_time_days: Optional[int] = Field(None, ge=0, le=365)
    social_urls: Optional[List[str]] = Field(None, max_length=10)


class ManufacturerSearchFilters(BaseModel):
    query: Optional[str] = Field(None, max_length=200)
    industry: Optional[str] = None
    services: Optional[List[str]] = None
    min_moq: Optional[int] = Field(None, ge=0)
    max_moq: Optional[int] = Field(None, ge=0)
    country: Optional[str] = None
    certifications: Optional[List[str]] = None
    verified_only: bool = False
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)

    @model_validator(mode="after")
    def check_moq_range(self):
        if self.min_moq is not None and self.max_moq is not None and self.min_moq > self.max_moq:
            raise ValueError("min_moq cannot exceed max_moq")
        return self


class ConnectionStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    DISCONNECTED = "disconnected"


class ConnectionRequest(BaseModel):
    """Sent by either side; the target is the counterparty's account ID."""

    target_id: str = Field(..., description="Manufacturer ID (from a brand) or business ID (from a manufacturer)")
    message: Optional[str] = Field(None, max_length=1000)


class ConnectionResponse(BaseModel):
    accept: bool
    message: Optional[str] = Field(None, max_length=1000)
