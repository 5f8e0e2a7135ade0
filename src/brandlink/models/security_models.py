"""
Security layer data models: audit events, login sessions and revoked tokens.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class SecurityEventType(str, Enum):
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILED = "login_failed"
    PASSWORD_CHANGE = "password_change"
    PASSWORD_RESET = "password_reset"
    TOKEN_REFRESH = "token_refresh"
    TOKEN_INVALIDATED = "token_invalidated"
    SESSION_REVOKED = "session_revoked"
    ALL_SESSIONS_REVOKED = "all_sessions_revoked"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"
    ACCOUNT_LOCKED = "account_locked"
    ACCOUNT_UNLOCKED = "account_unlocked"
    EMAIL_VERIFIED = "email_verified"
    PHONE_VERIFIED = "phone_verified"
    TWO_FACTOR_ENABLED = "two_factor_enabled"
    TWO_FACTOR_DISABLED = "two_factor_disabled"
    API_KEY_CREATED = "api_key_created"
    API_KEY_REVOKED = "api_key_revoked"
    SECURITY_SETTINGS_CHANGED = "security_settings_changed"


class SecuritySeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class UserType(str, Enum):
    BUSINESS = "business"
    MANUFACTURER = "manufacturer"
    USER = "user"


# Event types that invalidate every session of the affected account.
SESSION_INVALIDATING_EVENTS = {
    SecurityEventType.PASSWORD_CHANGE,
    SecurityEventType.PASSWORD_RESET,
    SecurityEventType.SUSPICIOUS_ACTIVITY,
    SecurityEventType.ACCOUNT_LOCKED,
    SecurityEventType.TWO_FACTOR_DISABLED,
}

SEVERITY_RISK_POINTS = {
    SecuritySeverity.CRITICAL: 10,
    SecuritySeverity.HIGH: 5,
    SecuritySeverity.MEDIUM: 2,
    SecuritySeverity.LOW: 1,
}
FAILED_EVENT_RISK_POINTS = 2
MAX_RISK_SCORE = 100


class SecurityEvent(BaseModel):
    """
    A security audit record.

    Attributes:
        event_type: What happened.
        user_id: Account the event concerns.
        user_type: Principal kind of that account.
        severity: Drives session invalidation and risk scoring.
        success: `False` for failed attempts (adds to the risk score).
        ip_address / user_agent: Request origin.
        token_id / session_id: Token or session involved, when applicable.
        additional_data: Free-form context.
    """

    event_type: SecurityEventType = Field(..., description="Event type")
    user_id: str = Field(..., description="Affected account ID")
    user_type: UserType = Field(UserType.USER, description="Principal kind of the account")
    severity: SecuritySeverity = Field(SecuritySeverity.LOW, description="Event severity")
    success: bool = Field(True, description="Whether the action succeeded")
    ip_address: Optional[str] = Field(None, description="Client IP address")
    user_agent: Optional[str] = Field(None, description="Client user agent")
    device_fingerprint: Optional[str] = Field(None, description="Client device fingerprint")
    token_id: Optional[str] = Field(None, description="Related token ID")
    session_id: Optional[str] = Field(None, description="Related session ID")
    additional_data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: Optional[datetime] = Field(None, description="Set on persistence when omitted")
    expires_at: Optional[datetime] = Field(None, description="TTL expiry, set on persistence")


class SessionRecord(BaseModel):
    session_id: str
    user_id: str
    user_type: UserType
    token_id: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    device_fingerprint: Optional[str] = None
    created_at: datetime
    last_activity: datetime
    expires_at: datetime
    is_active: bool = True
    revoked_at: Optional[datetime] = None
    revoked_reason: Optional[str] = None


class BlacklistedToken(BaseModel):
    token_id: str
    user_id: str
    token_hash: str
    reason: str
    blacklisted_at: datetime
    expires_at: datetime


class SuspiciousActivityResult(BaseModel):
    is_suspicious: bool
    reasons: List[str] = Field(default_factory=list)
    metrics: Dict[str, int] = Field(default_factory=dict)


class SecurityAuditReport(BaseModel):
    user_id: str
    period_days: int
    total_events: int
    events_by_type: Dict[str, int]
    events_by_severity: Dict[str, int]
    failed_events: int
    active_sessions: int
    recent_events: List[Dict[str, Any]]
    risk_score: int
    risk_level: str


class RevokeSessionResponse(BaseModel):
    message: str
    session_id: Optional[str] = None
    revoked_count: Optional[int] = None
