"""
# Authentication Service

Registration, login and credential management for businesses (brands),
manufacturers and end users.

Each principal kind lives in its own collection; emails are unique per kind.
Login issues an HS256 JWT carrying:

| Claim | Meaning |
|-------|---------|
| `sub` | Account ID |
| `type` | `business`, `manufacturer` or `user` |
| `jti` | Token ID used for blacklisting |
| `sid` | Server-side session ID |
| `exp` / `iat` | Expiry / issue time |

Every login creates a session record. Logout blacklists the token and revokes the
session, so a stolen token stops working as soon as its owner signs out.

Failed passwords increment `login_attempts`. Reaching `MAX_LOGIN_ATTEMPTS` locks the
account for `LOCKOUT_HOURS`.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

import bcrypt
from jose import jwt
from jose.exceptions import ExpiredSignatureError, JWTError
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from brandlink.config import settings
from brandlink.database import db_manager
from brandlink.managers.logging_manager import get_logger
from brandlink.models.auth_models import (
    BaseRegisterRequest,
    RegisterBusinessRequest,
    RegisterManufacturerRequest,
    RegisterUserRequest,
    TokenResponse,
)
from brandlink.models.security_models import SecurityEvent, SecurityEventType, SecuritySeverity, UserType
from brandlink.services.notification_service import notification_service
from brandlink.services.security_service import security_service
from brandlink.utils.documents import ensure_aware, to_object_id, to_public
from brandlink.utils.errors import (
    AccountLockedError,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)

logger = get_logger(prefix="[AuthService]")

ACCOUNT_COLLECTIONS = {
    UserType.BUSINESS: "businesses",
    UserType.MANUFACTURER: "manufacturers",
    UserType.USER: "users",
}

INVALID_CREDENTIALS = "Invalid email or password"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=12)).decode("utf-8")


def verify_password(password: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is malformed")
        return False


def _secret_key() -> str:
    return settings.SECRET_KEY.get_secret_value()


def create_access_token(
    subject: str,
    principal_type: UserType,
    session_id: str,
    token_id: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> Tuple[str, datetime]:
    """Sign an access token; returns the token and its expiry."""
    now = datetime.now(timezone.utc)
    expires_at = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    payload = {
        "sub": subject,
        "type": UserType(principal_type).value,
        "jti": token_id or uuid.uuid4().hex,
        "sid": session_id,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    return jwt.encode(payload, _secret_key(), algorithm=settings.ALGORITHM), expires_at


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Verify signature and expiry.

    Raises:
        AuthenticationError: Expired, malformed or incomplete tokens.
    """
    try:
        payload = jwt.decode(token, _secret_key(), algorithms=[settings.ALGORITHM])
    except ExpiredSignatureError as e:
        raise AuthenticationError("Token has expired", code="token_expired") from e
    except JWTError as e:
        raise AuthenticationError("Invalid token", code="invalid_token") from e

    if not payload.get("sub") or payload.get("type") not in {t.value for t in UserType}:
        raise AuthenticationError("Invalid token", code="invalid_token")
    return payload


def is_account_locked(account: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    lock_until = ensure_aware(account.get("lock_until"))
    return bool(lock_until and lock_until > (now or datetime.now(timezone.utc)))


class AuthService:
    """Account registration and authentication for every principal kind."""

    def _collection(self, principal_type: UserType):
        return db_manager.get_collection(ACCOUNT_COLLECTIONS[UserType(principal_type)])

    def _new_account_document(self, principal_type: UserType, request: BaseRegisterRequest) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        document: Dict[str, Any] = {
            "email": request.email.lower(),
            "password": hash_password(request.password),
            "is_email_verified": False,
            "is_active": True,
            "login_attempts": 0,
            "created_at": now,
            "updated_at": now,
        }

        if isinstance(request, RegisterBusinessRequest):
            document.update(
                business_name=request.business_name,
                industry=request.industry,
                description=request.description,
                website=request.website,
                phone_number=request.phone_number,
                contact_email=request.email.lower(),
                plan="foundation",
            )
        elif isinstance(request, RegisterManufacturerRequest):
            document.update(
                name=request.name,
                industry=request.industry,
                description=request.description,
                services_offered=request.services_offered,
                moq=request.moq,
                certifications=[],
                brands=[],
                is_verified=False,
                profile_score=0,
                connection_requests={"sent": 0, "approved": 0, "rejected": 0},
            )
        elif isinstance(request, RegisterUserRequest):
            document.update(
                first_name=request.first_name,
                last_name=request.last_name,
                date_of_birth=request.date_of_birth.isoformat() if request.date_of_birth else None,
                preferences={"language": "en", "email_notifications": True, "push_notifications": True},
            )
        else:
            raise ValidationError(f"Unsupported registration for {principal_type}")

        return document

    async def register(self, principal_type: UserType, request: BaseRegisterRequest) -> Dict[str, Any]:
        """
        Create an account.

        Raises:
            ConflictError: If the email is already registered for this account kind.
        """
        principal_type = UserType(principal_type)
        collection = self._collection(principal_type)
        email = request.email.lower()

        if await collection.find_one({"email": email}):
            raise ConflictError("An account with this email already exists", details={"email": email})

        document = self._new_account_document(principal_type, request)
        try:
            result = await collection.insert_one(document)
        except DuplicateKeyError as e:
            raise ConflictError("An account with this email already exists", details={"email": email}) from e

        document["_id"] = result.inserted_id
        logger.info("Registered %s account %s", principal_type.value, result.inserted_id)
        return to_public(document)

    async def login(
        self,
        principal_type: UserType,
        email: str,
        password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        device_fingerprint: Optional[str] = None,
    ) -> TokenResponse:
        """
        Authenticate credentials and open a session.

        Raises:
            AuthenticationError: Unknown email or wrong password.
            AccountLockedError: Too many failed attempts; lock still running.
            AuthorizationError: Deactivated account.
        """
        principal_type = UserType(principal_type)
        collection = self._collection(principal_type)
        now = datetime.now(timezone.utc)

        account = await collection.find_one({"email": email.lower()})
        if not account or account.get("deleted_at"):
            logger.info("Login for unknown %s account from %s", principal_type.value, ip_address)
            raise AuthenticationError(INVALID_CREDENTIALS)

        account_id = str(account["_id"])

        if is_account_locked(account, now):
            await security_service.log_authentication_attempt(
                account_id, principal_type, False, ip_address, user_agent, failure_reason="account_locked"
            )
            raise AccountLockedError(
                "Account is temporarily locked due to repeated failed logins",
                details={"lock_until": ensure_aware(account["lock_until"]).isoformat()},
            )

        if account.get("is_active") is False:
            raise AuthorizationError("Account is deactivated", code="account_deactivated")

        if not verify_password(password, account.get("password")):
            await self._register_failed_attempt(collection, account, principal_type, now, ip_address, user_agent)
            raise AuthenticationError(INVALID_CREDENTIALS)

        session_id = f"sess_{uuid.uuid4().hex}"
        token_id = uuid.uuid4().hex
        token, expires_at = create_access_token(account_id, principal_type, session_id, token_id)

        await security_service.create_session(
            user_id=account_id,
            user_type=principal_type,
            token_id=token_id,
            expires_at=expires_at,
            ip_address=ip_address,
            user_agent=user_agent,
            device_fingerprint=device_fingerprint,
            session_id=session_id,
        )
        await collection.update_one(
            {"_id": account["_id"]},
            {"$set": {"login_attempts": 0, "last_login_at": now}, "$unset": {"lock_until": ""}},
        )
        await security_service.log_authentication_attempt(account_id, principal_type, True, ip_address, user_agent)

        logger.info("%s %s logged in (session %s)", principal_type.value, account_id, session_id)
        return TokenResponse(
            access_token=token,
            expires_in=int((expires_at - now).total_seconds()),
            session_id=session_id,
            principal_type=principal_type,
            principal_id=account_id,
        )

    async def _register_failed_attempt(
        self,
        collection,
        account: Dict[str, Any],
        principal_type: UserType,
        now: datetime,
        ip_address: Optional[str],
        user_agent: Optional[str],
    ) -> None:
        account_id = str(account["_id"])
        lock_until = ensure_aware(account.get("lock_until"))
        updated = None

        # A lapsed lock starts a fresh count. Only one concurrent request wins the reset.
        if lock_until and lock_until <= now:
            updated = await collection.find_one_and_update(
                {"_id": account["_id"], "lock_until": {"$lte": now}},
                {"$set": {"login_attempts": 1}, "$unset": {"lock_until": ""}},
                return_document=ReturnDocument.AFTER,
            )
        if updated is None:
            updated = await collection.find_one_and_update(
                {"_id": account["_id"]},
                {"$inc": {"login_attempts": 1}},
                return_document=ReturnDocument.AFTER,
            )
        if updated is None:
            raise AuthenticationError(INVALID_CREDENTIALS)
        attempts = int(updated.get("login_attempts", 0))

        locked = attempts >= settings.MAX_LOGIN_ATTEMPTS
        if locked:
            await collection.update_one(
                {"_id": account["_id"]},
                {"$set": {"lock_until": now + timedelta(hours=settings.LOCKOUT_HOURS)}},
            )
        await security_service.log_authentication_attempt(
            account_id, principal_type, False, ip_address, user_agent, failure_reason="invalid_password"
        )

        if locked:
            logger.warning("Locking %s %s after %d failed logins", principal_type.value, account_id, attempts)
            await security_service.log_security_event(
                SecurityEvent(
                    event_type=SecurityEventType.ACCOUNT_LOCKED,
                    user_id=account_id,
                    user_type=principal_type,
                    severity=SecuritySeverity.HIGH,
                    success=False,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    additional_data={"login_attempts": attempts, "lockout_hours": settings.LOCKOUT_HOURS},
                )
            )
            await notification_service.notify_security_alert(
                account_id,
                principal_type,
                "account_locked",
                f"Your account was locked for {settings.LOCKOUT_HOURS} hours after {attempts} failed sign-in attempts",
                data={"ip_address": ip_address},
            )

        await security_service.detect_suspicious_activity(account_id, ip_address, principal_type)

    async def get_principal(self, principal_type: UserType, principal_id: str) -> Dict[str, Any]:
        """
        Load an active account by ID.

        Raises:
            NotFoundError: Unknown, deleted or malformed ID.
        """
        principal_type = UserType(principal_type)
        account = await self._collection(principal_type).find_one(
            {"_id": to_object_id(principal_id, "Account"), "deleted_at": None}
        )
        if not account:
            raise NotFoundError("Account not found", details={"id": principal_id})
        return to_public(account)

    async def logout(self, token: str, principal: Dict[str, Any]) -> None:
        principal_type = UserType(principal["principal_type"])
        await security_service.blacklist_token(token, principal["id"], reason="logout", user_type=principal_type)
        session_id = principal.get("session_id")
        if session_id:
            try:
                await security_service.revoke_session(session_id, reason="logout")
            except NotFoundError:
                logger.debug("Session %s already gone at logout", session_id)
        logger.info("%s %s logged out", principal_type.value, principal["id"])

    async def logout_all(self, principal: Dict[str, Any]) -> int:
        """Revoke every other session of the caller."""
        return await security_service.revoke_all_user_sessions(
            principal["id"],
            exclude_session_id=principal.get("session_id"),
            reason="logout_all",
            user_type=UserType(principal["principal_type"]),
        )

    async def change_password(
        self,
        principal: Dict[str, Any],
        current_password: str,
        new_password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        """
        Replace the password after verifying the current one.

        Recording the change revokes all sessions, including the caller's.

        Raises:
            AuthenticationError: Current password is wrong.
            ValidationError: New password equals the current one.
        """
        principal_type = UserType(principal["principal_type"])
        collection = self._collection(principal_type)
        account = await collection.find_one({"_id": to_object_id(principal["id"], "Account")})
        if not account:
            raise NotFoundError("Account not found")

        if not verify_password(current_password, account.get("password")):
            raise AuthenticationError("Current password is incorrect")
        if current_password == new_password:
            raise ValidationError("New password must differ from the current password")

        await collection.update_one(
            {"_id": account["_id"]},
            {
                "$set": {
                    "password": hash_password(new_password),
                    "password_changed_at": datetime.now(timezone.utc),
                    "updated_at": datetime.now(timezone.utc),
                }
            },
        )
        await security_service.log_password_change(principal["id"], principal_type, ip_address, user_agent)


auth_service = AuthService()
