"""
# Security Service

Persistence and analysis for the account security layer:

- **Security events**: audit records with a 90 day retention (TTL on `expires_at`).
  Critical events, and password changes/resets, suspicious activity, lockouts and
  2FA removal, revoke every session of the affected account.
- **Sessions**: one record per login, checked on every authenticated request.
- **Token blacklist**: revoked JWTs, keyed by `jti` (or a hash prefix for tokens
  without one), kept until the token would have expired anyway.
- **Anomaly detection**: failed-login, distinct-IP and session-creation counts over
  the last hour, compared with configured thresholds.
- **Reporting**: per-account audit report with a capped risk score, and system wide
  metrics.

Event logging is best effort. A failure to write an audit record is logged and
never fails the request that triggered it.
"""

import hashlib
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from jose import jwt
from jose.exceptions import JWTError
from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from brandlink.config import settings
from brandlink.database import db_manager
from brandlink.managers.logging_manager import get_logger
from brandlink.models.security_models import (
    FAILED_EVENT_RISK_POINTS,
    MAX_RISK_SCORE,
    SESSION_INVALIDATING_EVENTS,
    SEVERITY_RISK_POINTS,
    SecurityAuditReport,
    SecurityEvent,
    SecurityEventType,
    SecuritySeverity,
    SuspiciousActivityResult,
    UserType,
)
from brandlink.utils.errors import NotFoundError
from brandlink.utils.logging_utils import log_security_event

logger = get_logger(prefix="[SecurityService]")


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _unverified_claims(token: str) -> Dict[str, Any]:
    try:
        return jwt.get_unverified_claims(token)
    except JWTError:
        return {}


def extract_token_id(token: str) -> str:
    """The token's `jti` claim, or the first 16 hex chars of its SHA-256."""
    return _unverified_claims(token).get("jti") or hash_token(token)[:16]


def risk_level_for(score: int) -> str:
    if score < 20:
        return "low"
    if score < 50:
        return "medium"
    if score < 80:
        return "high"
    return "critical"


def calculate_risk_score(events: List[Dict[str, Any]]) -> int:
    """Fixed points per severity plus a penalty per failed event, capped at 100."""
    score = 0
    for event in events:
        try:
            severity = SecuritySeverity(event.get("severity", SecuritySeverity.LOW.value))
        except ValueError:
            severity = SecuritySeverity.LOW
        score += SEVERITY_RISK_POINTS[severity]
        if event.get("success") is False:
            score += FAILED_EVENT_RISK_POINTS
    return min(score, MAX_RISK_SCORE)


class SecurityService:
    """Service managing security events, sessions and revoked tokens."""

    def __init__(self):
        self.events_collection = "security_events"
        self.sessions_collection = "active_sessions"
        self.blacklist_collection = "blacklisted_tokens"

    # ------------------------------------------------------------------
    # Security events
    # ------------------------------------------------------------------

    @staticmethod
    def should_invalidate_sessions(event_type: SecurityEventType, severity: SecuritySeverity) -> bool:
        return severity == SecuritySeverity.CRITICAL or event_type in SESSION_INVALIDATING_EVENTS

    async def log_security_event(self, event: SecurityEvent) -> Optional[str]:
        """
        Persist a security event and apply its session side effects.

        Args:
            event: The event to record. `timestamp` and `expires_at` default to now and
                now + retention.

        Returns:
            Optional[str]: Inserted document ID, or `None` if the write failed.
        """
        now = datetime.now(timezone.utc)
        document = event.model_dump()
        document.update(
            event_type=event.event_type.value,
            user_type=event.user_type.value,
            severity=event.severity.value,
            timestamp=event.timestamp or now,
            expires_at=event.expires_at or now + timedelta(days=settings.SECURITY_EVENT_RETENTION_DAYS),
        )

        try:
            collection = db_manager.get_collection(self.events_collection)
            result = await collection.insert_one(document)
        except (PyMongoError, ConnectionError) as e:
            logger.error("Failed to log security event %s for %s: %s", event.event_type.value, event.user_id, e)
            return None

        log_security_event(
            event_type=event.event_type.value,
            user_id=event.user_id,
            ip_address=event.ip_address,
            success=event.success,
            details={"severity": event.severity.value, "user_type": event.user_type.value},
        )

        if self.should_invalidate_sessions(event.event_type, event.severity):
            try:
                revoked = await self.revoke_all_user_sessions(
                    event.user_id,
                    user_type=event.user_type,
                    reason=f"security_event_{event.event_type.value}",
                )
                logger.info(
                    "Invalidated %d sessions for %s due to %s", revoked, event.user_id, event.event_type.value
                )
            except (PyMongoError, ConnectionError) as e:
                logger.error("Failed to invalidate sessions for %s: %s", event.user_id, e)

        return str(result.inserted_id)

    async def get_user_security_events(
        self,
        user_id: str,
        limit: int = 50,
        event_types: Optional[List[SecurityEventType]] = None,
        since: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """Newest-first events for an account."""
        query: Dict[str, Any] = {"user_id": user_id}
        if event_types:
            query["event_type"] = {"$in": [SecurityEventType(t).value for t in event_types]}
        if since:
            query["timestamp"] = {"$gte": since}

        collection = db_manager.get_collection(self.events_collection)
        cursor = collection.find(query, {"_id": 0}).sort("timestamp", DESCENDING).limit(limit)
        return await cursor.to_list(length=limit)

    async def log_authentication_attempt(
        self,
        user_id: str,
        user_type: UserType,
        success: bool,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        failure_reason: Optional[str] = None,
    ) -> Optional[str]:
        additional_data = {"failure_reason": failure_reason} if failure_reason else {}
        return await self.log_security_event(
            SecurityEvent(
                event_type=SecurityEventType.LOGIN_SUCCESS if success else SecurityEventType.LOGIN_FAILED,
                user_id=user_id,
                user_type=user_type,
                severity=SecuritySeverity.LOW if success else SecuritySeverity.MEDIUM,
                success=success,
                ip_address=ip_address,
                user_agent=user_agent,
                additional_data=additional_data,
            )
        )

    async def log_password_change(
        self,
        user_id: str,
        user_type: UserType,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Optional[str]:
        return await self.log_security_event(
            SecurityEvent(
                event_type=SecurityEventType.PASSWORD_CHANGE,
                user_id=user_id,
                user_type=user_type,
                severity=SecuritySeverity.HIGH,
                ip_address=ip_address,
                user_agent=user_agent,
            )
        )

    async def log_security_settings_change(
        self,
        user_id: str,
        user_type: UserType,
        changes: Dict[str, Any],
        ip_address: Optional[str] = None,
    ) -> Optional[str]:
        return await self.log_security_event(
            SecurityEvent(
                event_type=SecurityEventType.SECURITY_SETTINGS_CHANGED,
                user_id=user_id,
                user_type=user_type,
                severity=SecuritySeverity.MEDIUM,
                ip_address=ip_address,
                additional_data={"changed_fields": sorted(changes.keys())},
            )
        )

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def create_session(
        self,
        user_id: str,
        user_type: UserType,
        token_id: str,
        expires_at: datetime,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        device_fingerprint: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> str:
        """Record a new active session and return its ID."""
        now = datetime.now(timezone.utc)
        session_id = session_id or f"sess_{uuid.uuid4().hex}"
        collection = db_manager.get_collection(self.sessions_collection)
        await collection.insert_one(
            {
                "session_id": session_id,
                "user_id": user_id,
                "user_type": UserType(user_type).value,
                "token_id": token_id,
                "ip_address": ip_address,
                "user_agent": user_agent,
                "device_fingerprint": device_fingerprint,
                "created_at": now,
                "last_activity": now,
                "expires_at": expires_at,
                "is_active": True,
            }
        )
        logger.info("Created session %s for %s %s", session_id, UserType(user_type).value, user_id)
        return session_id

    async def get_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        collection = db_manager.get_collection(self.sessions_collection)
        return await collection.find_one({"session_id": session_id})

    async def is_session_valid(self, session_id: str) -> bool:
        session = await self.get_session(session_id)
        if not session or not session.get("is_active"):
            return False
        expires_at = session.get("expires_at")
        if expires_at is not None:
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=timezone.utc)
            if expires_at <= datetime.now(timezone.utc):
                return False
        return True

    async def update_session_activity(self, session_id: str) -> bool:
        try:
            collection = db_manager.get_collection(self.sessions_collection)
            result = await collection.update_one(
                {"session_id": session_id, "is_active": True},
                {"$set": {"last_activity": datetime.now(timezone.utc)}},
            )
            return result.modified_count > 0
        except PyMongoError as e:
            logger.warning("Failed to update activity for session %s: %s", session_id, e)
            return False

    async def revoke_session(self, session_id: str, reason: str = "manual_revoke") -> Dict[str, Any]:
        """
        Deactivate one session and record a `session_revoked` event.

        Raises:
            NotFoundError: If the session does not exist.
        """
        collection = db_manager.get_collection(self.sessions_collection)
        session = await collection.find_one({"session_id": session_id})
        if not session:
            raise NotFoundError("Session not found", details={"session_id": session_id})

        await collection.update_one(
            {"session_id": session_id},
            {"$set": {"is_active": False, "revoked_at": datetime.now(timezone.utc), "revoked_reason": reason}},
        )

        await self.log_security_event(
            SecurityEvent(
                event_type=SecurityEventType.SESSION_REVOKED,
                user_id=session["user_id"],
                user_type=session.get("user_type", UserType.USER.value),
                severity=SecuritySeverity.MEDIUM,
                session_id=session_id,
                additional_data={"reason": reason},
            )
        )
        return session

    async def revoke_all_user_sessions(
        self,
        user_id: str,
        exclude_session_id: Optional[str] = None,
        reason: str = "security_event",
        user_type: UserType = UserType.USER,
    ) -> int:
        """Deactivate every active session of an account, optionally keeping one."""
        query: Dict[str, Any] = {"user_id": user_id, "is_active": True}
        if exclude_session_id:
            query["session_id"] = {"$ne": exclude_session_id}

        collection = db_manager.get_collection(self.sessions_collection)
        result = await collection.update_many(
            query,
            {"$set": {"is_active": False, "revoked_at": datetime.now(timezone.utc), "revoked_reason": reason}},
        )

        await self.log_security_event(
            SecurityEvent(
                event_type=SecurityEventType.ALL_SESSIONS_REVOKED,
                user_id=user_id,
                user_type=user_type,
                severity=SecuritySeverity.HIGH,
                additional_data={
                    "revoked_count": result.modified_count,
                    "reason": reason,
                    "exclude_session_id": exclude_session_id or "none",
                },
            )
        )
        return result.modified_count

    async def get_user_active_sessions(self, user_id: str) -> List[Dict[str, Any]]:
        collection = db_manager.get_collection(self.sessions_collection)
        cursor = collection.find(
            {"user_id": user_id, "is_active": True, "expires_at": {"$gt": datetime.now(timezone.utc)}},
            {"_id": 0},
        ).sort("last_activity", DESCENDING)
        return await cursor.to_list(length=None)

    # ------------------------------------------------------------------
    # Token blacklist
    # ------------------------------------------------------------------

    async def blacklist_token(
        self,
        token: str,
        user_id: str,
        reason: str = "manual_revoke",
        user_type: UserType = UserType.USER,
    ) -> str:
        """
        Revoke a JWT until its natural expiry.

        Returns:
            str: The token ID under which the token was blacklisted.
        """
        claims = _unverified_claims(token)
        token_id = claims.get("jti") or hash_token(token)[:16]
        now = datetime.now(timezone.utc)
        if claims.get("exp"):
            expires_at = datetime.fromtimestamp(int(claims["exp"]), tz=timezone.utc)
        else:
            expires_at = now + timedelta(hours=settings.BLACKLIST_DEFAULT_TTL_HOURS)

        collection = db_manager.get_collection(self.blacklist_collection)
        try:
            await collection.update_one(
                {"token_id": token_id},
                {
                    "$setOnInsert": {
                        "token_id": token_id,
                        "user_id": user_id,
                        "token_hash": hash_token(token),
                        "reason": reason,
                        "blacklisted_at": now,
                        "expires_at": expires_at,
                    }
                },
                upsert=True,
            )
        except DuplicateKeyError:
            logger.debug("Token %s already blacklisted", token_id)

        await self.log_security_event(
            SecurityEvent(
                event_type=SecurityEventType.TOKEN_INVALIDATED,
                user_id=user_id,
                user_type=user_type,
                severity=SecuritySeverity.MEDIUM,
                token_id=token_id,
                additional_data={"reason": reason},
            )
        )
        return token_id

    async def is_token_blacklisted(self, token: str) -> bool:
        """`True` when the token was revoked; `False` if the lookup itself fails."""
        try:
            collection = db_manager.get_collection(self.blacklist_collection)
            found = await collection.find_one(
                {"$or": [{"token_id": extract_token_id(token)}, {"token_hash": hash_token(token)}]}
            )
            return found is not None
        except (PyMongoError, ConnectionError) as e:
            logger.error("Failed to check token blacklist: %s", e)
            return False

    # ------------------------------------------------------------------
    # Maintenance and analysis
    # ------------------------------------------------------------------

    async def cleanup_expired_data(self) -> Dict[str, int]:
        """Deactivate lapsed sessions and purge lapsed blacklist entries."""
        now = datetime.now(timezone.utc)
        sessions = db_manager.get_collection(self.sessions_collection)
        expired_sessions = await sessions.update_many(
            {"is_active": True, "expires_at": {"$lt": now}}, {"$set": {"is_active": False, "revoked_reason": "expired"}}
        )
        blacklist = db_manager.get_collection(self.blacklist_collection)
        expired_tokens = await blacklist.delete_many({"expires_at": {"$lt": now}})

        counts = {
            "expired_sessions": expired_sessions.modified_count,
            "expired_blacklist_entries": expired_tokens.deleted_count,
        }
        logger.info("Cleaned up expired security data: %s", counts)
        return counts

    async def detect_suspicious_activity(
        self,
        user_id: str,
        ip_address: Optional[str] = None,
        user_type: UserType = UserType.USER,
    ) -> SuspiciousActivityResult:
        """
        Check the last hour of activity against the anomaly thresholds.

        Suspicious when any holds: failed logins >= 5, distinct source IPs >= 3, or
        sessions created >= 10. A suspicious result is itself recorded as a high
        severity event, which revokes the account's sessions.
        """
        since = datetime.now(timezone.utc) - timedelta(minutes=settings.SUSPICIOUS_WINDOW_MINUTES)
        try:
            events = db_manager.get_collection(self.events_collection)
            sessions = db_manager.get_collection(self.sessions_collection)

            failed_logins = await events.count_documents(
                {"user_id": user_id, "event_type": SecurityEventType.LOGIN_FAILED.value, "timestamp": {"$gte": since}}
            )
            unique_ips = await events.distinct("ip_address", {"user_id": user_id, "timestamp": {"$gte": since}})
            unique_ips = [ip for ip in unique_ips if ip]
            recent_sessions = await sessions.count_documents({"user_id": user_id, "created_at": {"$gte": since}})
        except (PyMongoError, ConnectionError) as e:
            logger.error("Failed to detect suspicious activity for %s: %s", user_id, e)
            return SuspiciousActivityResult(is_suspicious=False)

        metrics = {
            "failed_logins": failed_logins,
            "unique_ips": len(unique_ips),
            "recent_sessions": recent_sessions,
        }
        reasons = []
        if failed_logins >= settings.SUSPICIOUS_FAILED_LOGIN_THRESHOLD:
            reasons.append("excessive_failed_logins")
        if len(unique_ips) >= settings.SUSPICIOUS_UNIQUE_IP_THRESHOLD:
            reasons.append("multiple_ip_addresses")
        if recent_sessions >= settings.SUSPICIOUS_SESSION_THRESHOLD:
            reasons.append("rapid_session_creation")

        if reasons:
            logger.warning("Suspicious activity for %s: %s %s", user_id, reasons, metrics)
            await self.log_security_event(
                SecurityEvent(
                    event_type=SecurityEventType.SUSPICIOUS_ACTIVITY,
                    user_id=user_id,
                    user_type=user_type,
                    severity=SecuritySeverity.HIGH,
                    success=False,
                    ip_address=ip_address,
                    additional_data={**metrics, "reasons": reasons},
                )
            )

        return SuspiciousActivityResult(is_suspicious=bool(reasons), reasons=reasons, metrics=metrics)

    async def get_security_audit_report(self, user_id: str, days: int = 30) -> SecurityAuditReport:
        since = datetime.now(timezone.utc) - timedelta(days=days)
        collection = db_manager.get_collection(self.events_collection)
        events = await collection.find({"user_id": user_id, "timestamp": {"$gte": since}}, {"_id": 0}).sort(
            "timestamp", DESCENDING
        ).to_list(length=None)

        by_type: Dict[str, int] = {}
        by_severity: Dict[str, int] = {}
        for event in events:
            by_type[event.get("event_type")] = by_type.get(event.get("event_type"), 0) + 1
            by_severity[event.get("severity")] = by_severity.get(event.get("severity"), 0) + 1

        active_sessions = await self.get_user_active_sessions(user_id)
        risk_score = calculate_risk_score(events)

        return SecurityAuditReport(
            user_id=user_id,
            period_days=days,
            total_events=len(events),
            events_by_type=by_type,
            events_by_severity=by_severity,
            failed_events=sum(1 for e in events if e.get("success") is False),
            active_sessions=len(active_sessions),
            recent_events=events[:10],
            risk_score=risk_score,
            risk_level=risk_level_for(risk_score),
        )

    async def get_system_security_metrics(self, days: int = 7) -> Dict[str, Any]:
        since = datetime.now(timezone.utc) - timedelta(days=days)
        events = db_manager.get_collection(self.events_collection)
        match = {"$match": {"timestamp": {"$gte": since}}}

        by_type = await events.aggregate([match, {"$group": {"_id": "$event_type", "count": {"$sum": 1}}}]).to_list(
            length=None
        )
        by_severity = await events.aggregate(
            [match, {"$group": {"_id": "$severity", "count": {"$sum": 1}}}]
        ).to_list(length=None)
        top_users = await events.aggregate(
            [
                match,
                {"$group": {"_id": "$user_id", "event_count": {"$sum": 1}}},
                {"$sort": {"event_count": -1}},
                {"$limit": 10},
            ]
        ).to_list(length=10)

        sessions = db_manager.get_collection(self.sessions_collection)
        blacklist = db_manager.get_collection(self.blacklist_collection)
        events_by_type = {row["_id"]: row["count"] for row in by_type}

        return {
            "period_days": days,
            "total_events": sum(events_by_type.values()),
            "events_by_type": events_by_type,
            "events_by_severity": {row["_id"]: row["count"] for row in by_severity},
            "top_users": [{"user_id": row["_id"], "event_count": row["event_count"]} for row in top_users],
            "active_sessions": await sessions.count_documents({"is_active": True}),
            "blacklisted_tokens": await blacklist.count_documents({}),
            "suspicious_activity_count": events_by_type.get(SecurityEventType.SUSPICIOUS_ACTIVITY.value, 0),
        }


security_service = SecurityService()
