"""
# Manufacturer Service

Manufacturer profiles, discovery and brand/manufacturer connections.

## Profile score

`profile_completeness` weighs fields by tier:

| Tier | Weight | Fields |
|------|--------|--------|
| required | 5 | name, email, industry, description, services offered, MOQ |
| optional | 3 | country, contact email, phone, website, picture, certifications |
| enhanced | 2 | founding year, headcount, capacity, lead time, social links |

`profile_score = completeness * 0.7 + verified 10 + email verified 5 + active in 30 days 5`,
capped at 100 and recomputed on every profile update.

## Connections

A connection is one document per (business, manufacturer) pair:

    pending -> accepted | rejected
    accepted -> disconnected
    rejected | disconnected -> pending (new request)

Only the counterparty of the initiator may accept or reject. Either side may
disconnect. Notifications for requests and acceptances are best effort.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError

from brandlink.database import db_manager
from brandlink.managers.logging_manager import get_logger
from brandlink.models.manufacturer_models import (
    ConnectionStatus,
    ManufacturerProfileUpdate,
    ManufacturerSearchFilters,
)
from brandlink.models.security_models import UserType
from brandlink.services.comparison_engine import find_similar_manufacturers
from brandlink.services.notification_service import notification_service
from brandlink.utils.documents import ensure_aware, get_path, to_object_id, to_public
from brandlink.utils.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError

logger = get_logger(prefix="[ManufacturerService]")

REQUIRED_FIELDS = ("name", "email", "industry", "description", "services_offered", "moq")
OPTIONAL_FIELDS = (
    "headquarters.country",
    "contact_email",
    "phone_number",
    "website",
    "profile_picture_url",
    "certifications",
)
ENHANCED_FIELDS = ("established_year", "employee_count", "production_capacity", "lead_time_days", "social_urls")
FIELD_WEIGHTS = {"required": 5, "optional": 3, "enhanced": 2}

COMPLETENESS_FACTOR = 0.7
VERIFIED_BONUS = 10
EMAIL_VERIFIED_BONUS = 5
RECENT_ACTIVITY_BONUS = 5
RECENT_ACTIVITY_DAYS = 30


def _has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, dict)):
        return bool(value)
    return True


def profile_completeness(manufacturer: Dict[str, Any]) -> int:
    earned = 0
    possible = 0
    for tier, fields in (("required", REQUIRED_FIELDS), ("optional", OPTIONAL_FIELDS), ("enhanced", ENHANCED_FIELDS)):
        weight = FIELD_WEIGHTS[tier]
        possible += weight * len(fields)
        earned += weight * sum(1 for f in fields if _has_value(get_path(manufacturer, f)))
    return min(round(earned / possible * 100), 100) if possible else 0


def profile_score(manufacturer: Dict[str, Any], now: Optional[datetime] = None) -> int:
    now = now or datetime.now(timezone.utc)
    score = profile_completeness(manufacturer) * COMPLETENESS_FACTOR
    if manufacturer.get("is_verified"):
        score += VERIFIED_BONUS
    if manufacturer.get("is_email_verified"):
        score += EMAIL_VERIFIED_BONUS
    last_login = ensure_aware(manufacturer.get("last_login_at"))
    if last_login and now - last_login <= timedelta(days=RECENT_ACTIVITY_DAYS):
        score += RECENT_ACTIVITY_BONUS
    return min(round(score), 100)


class ManufacturerService:
    def __init__(self):
        self.manufacturers_collection = "manufacturers"
        self.connections_collection = "connections"

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    async def _get_document(self, manufacturer_id: str) -> Dict[str, Any]:
        collection = db_manager.get_collection(self.manufacturers_collection)
        manufacturer = await collection.find_one(
            {"_id": to_object_id(manufacturer_id, "Manufacturer"), "deleted_at": None}
        )
        if not manufacturer:
            raise NotFoundError("Manufacturer not found", details={"manufacturer_id": manufacturer_id})
        return manufacturer

    async def get_profile(self, manufacturer_id: str) -> Dict[str, Any]:
        manufacturer = to_public(await self._get_document(manufacturer_id))
        manufacturer["profile_completeness"] = profile_completeness(manufacturer)
        return manufacturer

    async def update_profile(self, manufacturer_id: str, update: ManufacturerProfileUpdate) -> Dict[str, Any]:
        changes = update.model_dump(exclude_unset=True)
        current = await self._get_document(manufacturer_id)
        if not changes:
            return await self.get_profile(manufacturer_id)

        merged = {**current, **changes}
        changes["profile_score"] = profile_score(merged)
        changes["updated_at"] = datetime.now(timezone.utc)

        collection = db_manager.get_collection(self.manufacturers_collection)
        await collection.update_one({"_id": current["_id"]}, {"$set": changes})
        logger.info("Updated manufacturer %s, profile score %d", manufacturer_id, changes["profile_score"])
        return await self.get_profile(manufacturer_id)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    @staticmethod
    def build_search_query(filters: ManufacturerSearchFilters) -> Dict[str, Any]:
        query: Dict[str, Any] = {"is_active": {"$ne": False}, "deleted_at": None}
        if filters.industry:
            query["industry"] = filters.industry
        if filters.services:
            query["services_offered"] = {"$in": filters.services}
        if filters.min_moq is not None or filters.max_moq is not None:
            moq: Dict[str, int] = {}
            if filters.min_moq is not None:
                moq["$gte"] = filters.min_moq
            if filters.max_moq is not None:
                moq["$lte"] = filters.max_moq
            query["moq"] = moq
        if filters.country:
            query["headquarters.country"] = filters.country
        if filters.certifications:
            query["certifications.name"] = {"$in": filters.certifications}
        if filters.verified_only:
            query["is_verified"] = True
        if filters.query:
            pattern = re.escape(filters.query.strip())
            query["$or"] = [
                {"name": {"$regex": pattern, "$options": "i"}},
                {"description": {"$regex": pattern, "$options": "i"}},
                {"services_offered": {"$regex": pattern, "$options": "i"}},
            ]
        return query

    async def search(self, filters: ManufacturerSearchFilters) -> Dict[str, Any]:
        query = self.build_search_query(filters)
        collection = db_manager.get_collection(self.manufacturers_collection)
        skip = (filters.page - 1) * filters.limit
        cursor = (
            collection.find(query)
            .sort([("profile_score", DESCENDING), ("name", ASCENDING)])
            .skip(skip)
            .limit(filters.limit)
        )
        manufacturers = [to_public(m) for m in await cursor.to_list(length=filters.limit)]
        total = await collection.count_documents(query)
        return {"manufacturers": manufacturers, "total": total, "page": filters.page, "limit": filters.limit}

    async def find_similar(self, manufacturer_id: str, threshold: int = 50, limit: int = 10) -> List[Dict[str, Any]]:
        source = to_public(await self._get_document(manufacturer_id))
        collection = db_manager.get_collection(self.manufacturers_collection)
        query: Dict[str, Any] = {"is_active": {"$ne": False}, "deleted_at": None}
        if source.get("industry"):
            query["$or"] = [{"industry": source["industry"]}, {"services_offered": {"$in": source.get("services_offered") or []}}]
        candidates = [to_public(m) for m in await collection.find(query).limit(200).to_list(length=200)]
        return find_similar_manufacturers(source, candidates, threshold)[:limit]

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    @staticmethod
    def _pair(principal_type: UserType, principal_id: str, target_id: str) -> Dict[str, str]:
        if principal_type == UserType.BUSINESS:
            return {"business_id": principal_id, "manufacturer_id": target_id}
        if principal_type == UserType.MANUFACTURER:
            return {"business_id": target_id, "manufacturer_id": principal_id}
        raise AuthorizationError("Only brands and manufacturers can connect")

    async def _counterparty_name(self, principal_type: UserType, principal_id: str) -> str:
        collection_name = "businesses" if principal_type == UserType.BUSINESS else self.manufacturers_collection
        doc = await db_manager.get_collection(collection_name).find_one(
            {"_id": to_object_id(principal_id, "Account")}, {"business_name": 1, "name": 1}
        )
        if not doc:
            return "A partner"
        return doc.get("business_name") or doc.get("name") or "A partner"

    async def request_connection(
        self, principal_type: UserType, principal_id: str, target_id: str, message: Optional[str] = None
    ) -> Dict[str, Any]:
        principal_type = UserType(principal_type)
        pair = self._pair(principal_type, principal_id, target_id)

        target_type = UserType.MANUFACTURER if principal_type == UserType.BUSINESS else UserType.BUSINESS
        target_collection = self.manufacturers_collection if target_type == UserType.MANUFACTURER else "businesses"
        target = await db_manager.get_collection(target_collection).find_one(
            {"_id": to_object_id(target_id, "Account"), "deleted_at": None}
        )
        if not target:
            raise NotFoundError(f"{target_type.value.capitalize()} not found", details={"id": target_id})

        collection = db_manager.get_collection(self.connections_collection)
        existing = await collection.find_one(pair)
        now = datetime.now(timezone.utc)
        fields = {
            "status": ConnectionStatus.PENDING.value,
            "initiated_by": principal_type.value,
            "message": message,
            "responded_at": None,
            "updated_at": now,
        }

        if existing:
            if existing["status"] in (ConnectionStatus.PENDING.value, ConnectionStatus.ACCEPTED.value):
                raise ConflictError(
                    "A connection already exists between these accounts",
                    details={"status": existing["status"]},
                )
            await collection.update_one({"_id": existing["_id"]}, {"$set": fields})
            connection = {**existing, **fields}
        else:
            connection = {**pair, **fields, "created_at": now}
            try:
                result = await collection.insert_one(connection)
            except DuplicateKeyError as e:
                raise ConflictError("A connection already exists between these accounts") from e
            connection["_id"] = result.inserted_id

        if principal_type == UserType.MANUFACTURER:
            await db_manager.get_collection(self.manufacturers_collection).update_one(
                {"_id": to_object_id(principal_id, "Manufacturer")}, {"$inc": {"connection_requests.sent": 1}}
            )

        connection = to_public(connection)
        requester_name = await self._counterparty_name(principal_type, principal_id)
        await notification_service.notify_connection_request(target_id, target_type, requester_name, connection["id"])
        logger.info("%s %s requested connection with %s", principal_type.value, principal_id, target_id)
        return connection

    async def _get_connection_for(self, principal_type: UserType, principal_id: str, connection_id: str):
        collection = db_manager.get_collection(self.connections_collection)
        connection = await collection.find_one({"_id": to_object_id(connection_id, "Connection")})
        side = "business_id" if UserType(principal_type) == UserType.BUSINESS else "manufacturer_id"
        if not connection or connection.get(side) != principal_id:
            raise NotFoundError("Connection not found", details={"connection_id": connection_id})
        return connection

    async def respond_to_connection(
        self, principal_type: UserType, principal_id: str, connection_id: str, accept: bool
    ) -> Dict[str, Any]:
        principal_type = UserType(principal_type)
        connection = await self._get_connection_for(principal_type, principal_id, connection_id)
        if connection["status"] != ConnectionStatus.PENDING.value:
            raise ValidationError("Only pending connection requests can be answered", details={"status": connection["status"]})
        if connection["initiated_by"] == principal_type.value:
            raise AuthorizationError("You cannot answer your own connection request")

        now = datetime.now(timezone.utc)
        status = ConnectionStatus.ACCEPTED if accept else ConnectionStatus.REJECTED
        collection = db_manager.get_collection(self.connections_collection)
        await collection.update_one(
            {"_id": connection["_id"]}, {"$set": {"status": status.value, "responded_at": now, "updated_at": now}}
        )

        manufacturers = db_manager.get_collection(self.manufacturers_collection)
        manufacturer_oid = to_object_id(connection["manufacturer_id"], "Manufacturer")
        if accept:
            await manufacturers.update_one(
                {"_id": manufacturer_oid},
                {"$addToSet": {"brands": connection["business_id"]}, "$inc": {"connection_requests.approved": 1}},
            )
        else:
            await manufacturers.update_one({"_id": manufacturer_oid}, {"$inc": {"connection_requests.rejected": 1}})

        if accept:
            initiator_type = UserType(connection["initiated_by"])
            initiator_id = connection["business_id"] if initiator_type == UserType.BUSINESS else connection["manufacturer_id"]
            partner_name = await self._counterparty_name(principal_type, principal_id)
            await notification_service.notify_connection_accepted(initiator_id, initiator_type, partner_name, connection_id)

        logger.info("Connection %s %s by %s %s", connection_id, status.value, principal_type.value, principal_id)
        return to_public({**connection, "status": status.value, "responded_at": now})

    async def disconnect(self, principal_type: UserType, principal_id: str, connection_id: str) -> None:
        connection = await self._get_connection_for(principal_type, principal_id, connection_id)
        if connection["status"] != ConnectionStatus.ACCEPTED.value:
            raise ValidationError("Only accepted connections can be disconnected", details={"status": connection["status"]})

        now = datetime.now(timezone.utc)
        await db_manager.get_collection(self.connections_collection).update_one(
            {"_id": connection["_id"]}, {"$set": {"status": ConnectionStatus.DISCONNECTED.value, "updated_at": now}}
        )
        await db_manager.get_collection(self.manufacturers_collection).update_one(
            {"_id": to_object_id(connection["manufacturer_id"], "Manufacturer")},
            {"$pull": {"brands": connection["business_id"]}},
        )
        logger.info("Connection %s disconnected by %s", connection_id, principal_id)

    async def list_connections(
        self, principal_type: UserType, principal_id: str, status: Optional[ConnectionStatus] = None
    ) -> List[Dict[str, Any]]:
        side = "business_id" if UserType(principal_type) == UserType.BUSINESS else "manufacturer_id"
        query: Dict[str, Any] = {side: principal_id}
        if status:
            query["status"] = ConnectionStatus(status).value
        cursor = db_manager.get_collection(self.connections_collection).find(query).sort("updated_at", DESCENDING)
        return [to_public(c) for c in await cursor.to_list(length=500)]

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------

    async def get_analytics(self, manufacturer_id: str) -> Dict[str, Any]:
        manufacturer = await self._get_document(manufacturer_id)
        connections = db_manager.get_collection(self.connections_collection)
        total_requests = await connections.count_documents({"manufacturer_id": manufacturer_id})
        accepted = await connections.count_documents(
            {"manufacturer_id": manufacturer_id, "status": {"$in": [ConnectionStatus.ACCEPTED.value, ConnectionStatus.DISCONNECTED.value]}}
        )
        established = manufacturer.get("established_year")
        return {
            "manufacturer_id": manufacturer_id,
            "profile_score": manufacturer.get("profile_score", 0),
            "profile_completeness": profile_completeness(manufacturer),
            "brands_count": len(manufacturer.get("brands") or []),
            "connection_requests": total_requests,
            "connection_success_rate": round(accepted / total_requests * 100, 1) if total_requests else 0.0,
            "years_in_business": datetime.now(timezone.utc).year - established if established else None,
            "certifications_count": len(manufacturer.get("certifications") or []),
        }


manufacturer_service = ManufacturerService()
