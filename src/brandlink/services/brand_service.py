"""
# Brand Service

Brand (business) profile, brand settings and brand-side discovery.

- **Profile**: the `businesses` document. Only fields in `BrandProfileUpdate` are
  editable; `plan` is managed by billing.
- **Settings**: one `brand_settings` document per business, created with defaults
  on first access. Subdomains and custom domains are globally unique.
- **Public listing**: active, non-deleted brands with industry filter and text
  search. Pages are cached in Redis for `CACHE_DEFAULT_TTL` seconds.
- **Recommendations**: completeness guidance plus manufacturers ranked by fit with
  the brand's industry and certifications.
"""

import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError

from brandlink.config import settings
from brandlink.database import db_manager
from brandlink.managers.logging_manager import get_logger
from brandlink.managers.redis_manager import redis_manager
from brandlink.models.brand_models import BrandProfileUpdate, BrandSettingsUpdate, IntegrationsUpdate
from brandlink.models.security_models import UserType
from brandlink.services.comparison_engine import match_against_criteria, rank_manufacturers
from brandlink.services.completeness_service import completeness_calculator
from brandlink.services.security_service import security_service
from brandlink.utils.documents import to_object_id, to_public
from brandlink.utils.errors import ConflictError, NotFoundError

logger = get_logger(prefix="[BrandService]")

PUBLIC_PROFILE_FIELDS = (
    "business_name",
    "industry",
    "description",
    "website",
    "profile_picture_url",
    "social_urls",
    "headquarters",
    "certifications",
    "is_email_verified",
    "created_at",
)

DEFAULT_TRANSFER_SETTINGS = {
    "auto_transfer_enabled": False,
    "transfer_delay_minutes": 5,
    "max_transfer_attempts": 3,
}

# Settings changes that are audited as security relevant.
SECURITY_SENSITIVE_SETTINGS = {"certificate_wallet", "custom_domain", "transfer_settings"}


class BrandService:
    def __init__(self):
        self.businesses_collection = "businesses"
        self.settings_collection = "brand_settings"

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    async def _get_business_document(self, business_id: str) -> Dict[str, Any]:
        collection = db_manager.get_collection(self.businesses_collection)
        business = await collection.find_one({"_id": to_object_id(business_id, "Brand"), "deleted_at": None})
        if not business:
            raise NotFoundError("Brand not found", details={"business_id": business_id})
        return business

    async def get_profile(self, business_id: str) -> Dict[str, Any]:
        return to_public(await self._get_business_document(business_id))

    async def get_public_profile(self, business_id: str) -> Dict[str, Any]:
        cache_key = f"brand:public:{business_id}"
        cached = await redis_manager.get_json(cache_key)
        if cached is not None:
            return cached

        business = await self._get_business_document(business_id)
        if not business.get("is_active", True):
            raise NotFoundError("Brand not found", details={"business_id": business_id})
        profile = {k: business.get(k) for k in PUBLIC_PROFILE_FIELDS}
        profile["id"] = str(business["_id"])
        await redis_manager.set_json(cache_key, profile, ttl=settings.CACHE_DEFAULT_TTL)
        return profile

    async def update_profile(self, business_id: str, update: BrandProfileUpdate) -> Dict[str, Any]:
        changes = update.model_dump(exclude_unset=True)
        if not changes:
            return await self.get_profile(business_id)

        changes["updated_at"] = datetime.now(timezone.utc)
        collection = db_manager.get_collection(self.businesses_collection)
        result = await collection.update_one(
            {"_id": to_object_id(business_id, "Brand"), "deleted_at": None}, {"$set": changes}
        )
        if result.matched_count == 0:
            raise NotFoundError("Brand not found", details={"business_id": business_id})

        await self._invalidate_cache(business_id)
        logger.info("Updated brand profile %s fields: %s", business_id, sorted(changes))
        return await self.get_profile(business_id)

    async def deactivate(self, business_id: str, reason: Optional[str] = None) -> None:
        """Soft delete the brand and revoke its sessions."""
        now = datetime.now(timezone.utc)
        collection = db_manager.get_collection(self.businesses_collection)
        result = await collection.update_one(
            {"_id": to_object_id(business_id, "Brand"), "deleted_at": None},
            {"$set": {"is_active": False, "deleted_at": now, "deactivation_reason": reason, "updated_at": now}},
        )
        if result.matched_count == 0:
            raise NotFoundError("Brand not found", details={"business_id": business_id})

        await security_service.revoke_all_user_sessions(
            business_id, reason="account_deactivated", user_type=UserType.BUSINESS
        )
        await self._invalidate_cache(business_id)
        logger.info("Deactivated brand %s", business_id)

    async def list_public_brands(
        self,
        industry: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        cache_key = f"brand:list:{industry or '*'}:{search or '*'}:{page}:{limit}"
        cached = await redis_manager.get_json(cache_key)
        if cached is not None:
            return cached

        query: Dict[str, Any] = {"deleted_at": None, "is_active": {"$ne": False}}
        if industry:
            query["industry"] = industry
        if search:
            pattern = re.escape(search.strip())
            query["$or"] = [
                {"business_name": {"$regex": pattern, "$options": "i"}},
                {"description": {"$regex": pattern, "$options": "i"}},
            ]

        collection = db_manager.get_collection(self.businesses_collection)
        projection = {field: 1 for field in PUBLIC_PROFILE_FIELDS}
        cursor = collection.find(query, projection).sort("business_name", ASCENDING).skip((page - 1) * limit).limit(limit)
        brands = [to_public(doc) for doc in await cursor.to_list(length=limit)]
        total = await collection.count_documents(query)

        result = {"brands": brands, "total": total, "page": page, "limit": limit}
        await redis_manager.set_json(cache_key, result, ttl=settings.CACHE_DEFAULT_TTL)
        return result

    async def _invalidate_cache(self, business_id: str) -> None:
        await redis_manager.delete(f"brand:public:{business_id}")
        await redis_manager.delete_pattern("brand:list:*")

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    async def get_settings(self, business_id: str) -> Dict[str, Any]:
        """Brand settings, created with defaults on first access."""
        collection = db_manager.get_collection(self.settings_collection)
        existing = await collection.find_one({"business_id": business_id})
        if existing:
            return to_public(existing)

        await self._get_business_document(business_id)
        now = datetime.now(timezone.utc)
        document = {
            "business_id": business_id,
            "theme_color": "#3B82F6",
            "banner_images": [],
            "integrations": {},
            "transfer_settings": dict(DEFAULT_TRANSFER_SETTINGS),
            "web3_settings": {},
            "created_at": now,
            "updated_at": now,
        }
        try:
            result = await collection.insert_one(document)
            document["_id"] = result.inserted_id
        except DuplicateKeyError:
            # Created by a concurrent request.
            document = await collection.find_one({"business_id": business_id})
        logger.info("Created default brand settings for %s", business_id)
        return to_public(document)

    async def _check_unique(self, business_id: str, field: str, value: str) -> None:
        collection = db_manager.get_collection(self.settings_collection)
        taken = await collection.find_one({field: value, "business_id": {"$ne": business_id}})
        if taken:
            raise ConflictError(f"This {field.replace('_', ' ')} is already in use", details={field: value})

    async def update_settings(
        self, business_id: str, update: BrandSettingsUpdate, ip_address: Optional[str] = None
    ) -> Dict[str, Any]:
        await self.get_settings(business_id)
        changes = update.model_dump(exclude_unset=True)
        if not changes:
            return await self.get_settings(business_id)

        for field in ("subdomain", "custom_domain"):
            if changes.get(field):
                await self._check_unique(business_id, field, changes[field])

        set_fields = {k: v for k, v in changes.items() if v is not None}
        # Unset rather than store null so the sparse unique indexes ignore the document.
        unset_fields = {k: "" for k, v in changes.items() if v is None}
        set_fields["updated_at"] = datetime.now(timezone.utc)
        operation: Dict[str, Any] = {"$set": set_fields}
        if unset_fields:
            operation["$unset"] = unset_fields

        collection = db_manager.get_collection(self.settings_collection)
        try:
            await collection.update_one({"business_id": business_id}, operation)
        except DuplicateKeyError as e:
            raise ConflictError("Subdomain or custom domain is already in use") from e

        sensitive = {k: v for k, v in changes.items() if k in SECURITY_SENSITIVE_SETTINGS}
        if sensitive:
            await security_service.log_security_settings_change(
                business_id, UserType.BUSINESS, sensitive, ip_address=ip_address
            )
        logger.info("Updated brand settings %s fields: %s", business_id, sorted(changes))
        return await self.get_settings(business_id)

    async def update_integrations(self, business_id: str, update: IntegrationsUpdate) -> Dict[str, Any]:
        await self.get_settings(business_id)
        changes = update.model_dump(exclude_unset=True)
        set_fields = {f"integrations.{k}": v for k, v in changes.items()}
        set_fields["updated_at"] = datetime.now(timezone.utc)

        collection = db_manager.get_collection(self.settings_collection)
        await collection.update_one({"business_id": business_id}, {"$set": set_fields})
        logger.info("Updated integrations for %s: %s", business_id, sorted(changes))
        return await self.get_settings(business_id)

    # ------------------------------------------------------------------
    # Completeness and recommendations
    # ------------------------------------------------------------------

    async def get_completeness(self, business_id: str) -> Dict[str, Any]:
        business = await self._get_business_document(business_id)
        brand_settings = await self.get_settings(business_id)
        plan = business.get("plan", "foundation")
        return completeness_calculator.overall(
            business, brand_settings, brand_settings.get("integrations") or {}, plan
        )

    async def get_manufacturer_recommendations(self, business_id: str, limit: int = 10) -> list:
        business = await self._get_business_document(business_id)
        criteria: Dict[str, Any] = {}
        if business.get("industry"):
            criteria["industry"] = business["industry"]
        if business.get("certifications"):
            criteria["certifications"] = business["certifications"]

        collection = db_manager.get_collection("manufacturers")
        cursor = collection.find({"is_active": {"$ne": False}, "deleted_at": None}).limit(200)
        candidates = []
        for manufacturer in await cursor.to_list(length=200):
            manufacturer = to_public(manufacturer)
            manufacturer["match_score"] = match_against_criteria(manufacturer, criteria)
            candidates.append(manufacturer)
        return rank_manufacturers(candidates)[:limit]

    async def get_recommendations(self, business_id: str) -> Dict[str, Any]:
        completeness = await self.get_completeness(business_id)
        manufacturers = await self.get_manufacturer_recommendations(business_id)
        return {
            "completeness": completeness,
            "manufacturers": [
                {
                    "id": m["id"],
                    "name": m.get("name"),
                    "industry": m.get("industry"),
                    "match_score": m["match_score"],
                    "ranking_score": m["ranking_score"],
                }
                for m in manufacturers
            ],
        }


brand_service = BrandService()
