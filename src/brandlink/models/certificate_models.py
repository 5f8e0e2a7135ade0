"""
NFT certificate models.
"""

import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from brandlink.models.brand_models import WALLET_PATTERN

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$"


class CertificateStatus(str, Enum):
    PENDING = "pending"
    MINTED = "minted"
    FAILED = "failed"
    TRANSFERRED = "transferred"
    PENDING_TRANSFER = "pending_transfer"
    TRANSFER_FAILED = "transfer_failed"
    REVOKED = "revoked"


class OwnershipStatus(str, Enum):
    RELAYER = "relayer"
    BRAND = "brand"
    EXTERNAL = "external"
    REVOKED = "revoked"


class CertificationLevel(str, Enum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"


class CertificateData(BaseModel):
    serial_number: Optional[str] = Field(None, max_length=100)
    batch_number: Optional[str] = Field(None, max_length=100)
    quality_score: Optional[int] = Field(None, ge=0, le=100)
    certification_level: Optional[CertificationLevel] = None
    valid_until: Optional[datetime] = None


class DeployContractRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    symbol: str = Field(..., min_length=1, max_length=10)
    base_uri: Optional[str] = Field(None, max_length=500)

    @field_validator("symbol")
    @classmethod
    def upper_symbol(cls, v):
        v = v.strip().upper()
        if not v.isalnum():
            raise ValueError("Symbol must be alphanumeric")
        return v


class MintCertificateRequest(BaseModel):
    """
    Attributes:
        recipient: Email address or wallet (`0x` + 40 hex chars) of the certificate holder.
        product_id: Product the certificate vouches for.
    """

    recipient: str = Field(..., max_length=254)
    product_id: str = Field(..., min_length=1, max_length=100)
    certificate_data: CertificateData = Field(default_factory=CertificateData)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("recipient")
    @classmethod
    def validate_recipient(cls, v):
        v = v.strip()
        if not (re.match(EMAIL_PATTERN, v) or re.match(WALLET_PATTERN, v)):
            raise ValueError("Recipient must be an email address or a wallet address")
        return v

    @property
    def recipient_type(self) -> str:
        return "wallet" if re.match(WALLET_PATTERN, self.recipient) else "email"


class BatchTransferRequest(BaseModel):
    certificate_ids: List[str] = Field(..., min_length=1, max_length=100)


class RevokeCertificateRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class SupplyChainEventRequest(BaseModel):
    product_id: str = Field(..., min_length=1, max_length=100)
    event_type: str = Field(..., min_length=1, max_length=50)
    location: str = Field("", max_length=200)
    details: Dict[str, Any] = Field(default_factory=dict)
