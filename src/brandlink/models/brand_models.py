"""
Brand (business) profile and brand settings models.
"""

import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

HEX_COLOR_PATTERN = r"^#(?:[0-9a-fA-F]{3}){1,2}$"
SUBDOMAIN_PATTERN = r"^[a-z0-9](?:[a-z0-9-]{1,61}[a-z0-9])?$"
WALLET_PATTERN = r"^0x[a-fA-F0-9]{40}$"
DOMAIN_PATTERN = r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)(\.[A-Za-z0-9-]{1,63})+$"

RESERVED_SUBDOMAINS = {"www", "api", "admin", "app", "mail", "dashboard", "static"}


class Headquarters(BaseModel):
    country: Optional[str] = Field(None, max_length=100)
    city: Optional[str] = Field(None, max_length=100)
    address: Optional[str] = Field(None, max_length=300)


class BrandProfileUpdate(BaseModel):
    """Editable brand profile fields. `plan`, `email` and verification flags are not editable here."""

    business_name: Optional[str] = Field(None, min_length=2, max_length=100)
    industry: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)
    contact_email: Optional[str] = Field(None, max_length=254)
    website: Optional[str] = Field(None, max_length=200)
    phone_number: Optional[str] = Field(None, max_length=30)
    profile_picture_url: Optional[str] = Field(None, max_length=500)
    social_urls: Optional[List[str]] = Field(None, max_length=10)
    headquarters: Optional[Headquarters] = None
    business_information: Optional[Dict[str, Any]] = None
    certifications: Optional[List[str]] = Field(None, max_length=50)
    wallet_address: Optional[str] = Field(None, pattern=WALLET_PATTERN)


class WebhookConfig(BaseModel):
    url: str = Field(..., max_length=500)
    events: List[str] = Field(default_factory=list)
    is_active: bool = True

    @field_validator("url")
    @classmethod
    def validate_url(cls, v):
        if not v.startswith("https://"):
            raise ValueError("Webhook URLs must use https")
        return v


class EcommerceIntegration(BaseModel):
    shop_domain: Optional[str] = Field(None, max_length=200)
    connected: bool = False
    sync_products: bool = False


class IntegrationsUpdate(BaseModel):
    webhook_endpoints: Optional[List[WebhookConfig]] = Field(None, max_length=20)
    api_documentation: Optional[str] = Field(None, max_length=500)
    shopify_integration: Optional[EcommerceIntegration] = None
    woocommerce_integration: Optional[EcommerceIntegration] = None
    wix_integration: Optional[EcommerceIntegration] = None


class TransferSettings(BaseModel):
    auto_transfer_enabled: bool = False
    transfer_delay_minutes: int = Field(5, ge=0, le=10080)
    max_transfer_attempts: int = Field(3, ge=1, le=10)


class BrandSettingsUpdate(BaseModel):
    theme_color: Optional[str] = Field(None, pattern=HEX_COLOR_PATTERN)
    logo_url: Optional[str] = Field(None, max_length=500)
    banner_images: Optional[List[str]] = Field(None, max_length=10)
    custom_css: Optional[str] = Field(None, max_length=10000)
    subdomain: Optional[str] = Field(None, min_length=3, max_length=63)
    custom_domain: Optional[str] = Field(None, max_length=253)
    social_media_links: Optional[Dict[str, str]] = None
    brand_guidelines: Optional[str] = Field(None, max_length=5000)
    certificate_wallet: Optional[str] = Field(None, pattern=WALLET_PATTERN)
    transfer_settings: Optional[TransferSettings] = None

    @field_validator("subdomain")
    @classmethod
    def validate_subdomain(cls, v):
        if v is None:
            return v
        v = v.lower()
        if not re.match(SUBDOMAIN_PATTERN, v):
            raise ValueError("Subdomain may only contain lowercase letters, digits and hyphens")
        if v in RESERVED_SUBDOMAINS:
            raise ValueError(f"Subdomain '{v}' is reserved")
        return v

    @field_validator("custom_domain")
    @classmethod
    def validate_domain(cls, v):
        if v is None:
            return v
        v = v.lower()
        if not re.match(DOMAIN_PATTERN, v):
            raise ValueError("Invalid custom domain")
        return v
