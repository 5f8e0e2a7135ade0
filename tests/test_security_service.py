from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
from jose import jwt
from pymongo.errors import PyMongoError

from brandlink.models.security_models import SecurityEvent, SecurityEventType, SecuritySeverity, UserType
from brandlink.services.security_service import (
    SecurityService,
    calculate_risk_score,
    extract_token_id,
    hash_token,
    risk_level_for,
)


@pytest.fixture
def mock_db_manager(collection_factory):
    with patch("brandlink.services.security_service.db_manager") as mock:
        mock.get_collection.return_value = collection_factory()
        yield mock


def test_risk_score_sums_severity_and_failures():
    events = [
        {"severity": "critical", "success": True},
        {"severity": "high", "success": False},
        {"severity": "low"},
    ]
    # 10 + (5 + 2) + 1
    assert calculate_risk_score(events) == 18


def test_risk_score_is_capped():
    events = [{"severity": "critical", "success": False}] * 20
    assert calculate_risk_score(events) == 100


def test_risk_score_unknown_severity_counts_as_low():
    assert calculate_risk_score([{"severity": "bogus"}]) == 1


@pytest.mark.parametrize(
    "score,level",
    [(0, "low"), (19, "low"), (20, "medium"), (49, "medium"), (50, "high"), (79, "high"), (80, "critical")],
)
def test_risk_level_thresholds(score, level):
    assert risk_level_for(score) == level


def test_extract_token_id_prefers_jti():
    token = jwt.encode({"sub": "abc", "jti": "token-123"}, "k", algorithm="HS256")
    assert extract_token_id(token) == "token-123"


def test_extract_token_id_falls_back_to_hash_prefix():
    assert extract_token_id("not-a-jwt") == hash_token("not-a-jwt")[:16]


def test_session_invalidating_events():
    should = SecurityService.should_invalidate_sessions
    assert should(SecurityEventType.LOGIN_SUCCESS, SecuritySeverity.CRITICAL)
    assert should(SecurityEventType.PASSWORD_CHANGE, SecuritySeverity.LOW)
    assert should(SecurityEventType.ACCOUNT_LOCKED, SecuritySeverity.HIGH)
    assert not should(SecurityEventType.LOGIN_FAILED, SecuritySeverity.MEDIUM)
    assert not should(SecurityEventType.ALL_SESSIONS_REVOKED, SecuritySeverity.HIGH)


@pytest.mark.asyncio
async def test_log_security_event_sets_retention(mock_db_manager):
    service = SecurityService()
    collection = mock_db_manager.get_collection.return_value

    event_id = await service.log_security_event(
        SecurityEvent(
            event_type=SecurityEventType.LOGIN_FAILED,
            user_id="u1",
            user_type=UserType.BUSINESS,
            severity=SecuritySeverity.MEDIUM,
            success=False,
        )
    )

    assert event_id == "507f1f77bcf86cd799439011"
    document = collection.insert_one.call_args[0][0]
    assert document["event_type"] == "login_failed"
    assert document["user_type"] == "business"
    assert (document["expires_at"] - document["timestamp"]).days == 90
    collection.update_many.assert_not_called()


@pytest.mark.asyncio
async def test_password_change_revokes_all_sessions(mock_db_manager):
    service = SecurityService()
    collection = mock_db_manager.get_collection.return_value
    collection.update_many.return_value = MagicMock(modified_count=3)

    await service.log_password_change("u1", UserType.USER)

    # Session revocation deactivates every active session of the account
    query, update = collection.update_many.call_args[0]
    assert query == {"user_id": "u1", "is_active": True}
    assert update["$set"]["is_active"] is False
    assert update["$set"]["revoked_reason"] == "security_event_password_change"

    # The cascade itself is recorded but does not cascade again
    logged_types = [c[0][0]["event_type"] for c in collection.insert_one.call_args_list]
    assert logged_types == ["password_change", "all_sessions_revoked"]
    assert collection.update_many.call_count == 1


@pytest.mark.asyncio
async def test_log_security_event_survives_database_failure(mock_db_manager):
    service = SecurityService()
    mock_db_manager.get_collection.return_value.insert_one.side_effect = PyMongoError("down")

    result = await service.log_authentication_attempt("u1", UserType.USER, success=True)

    assert result is None


@pytest.mark.asyncio
async def test_is_session_valid(mock_db_manager):
    service = SecurityService()
    collection = mock_db_manager.get_collection.return_value
    future = datetime.now(timezone.utc) + timedelta(hours=1)

    collection.find_one.return_value = {"session_id": "s1", "is_active": True, "expires_at": future}
    assert await service.is_session_valid("s1") is True

    # Naive datetimes read back from MongoDB are treated as UTC
    collection.find_one.return_value = {
        "session_id": "s1",
        "is_active": True,
        "expires_at": datetime.utcnow() - timedelta(minutes=1),
    }
    assert await service.is_session_valid("s1") is False

    collection.find_one.return_value = {"session_id": "s1", "is_active": False, "expires_at": future}
    assert await service.is_session_valid("s1") is False

    collection.find_one.return_value = None
    assert await service.is_session_valid("s1") is False


@pytest.mark.asyncio
async def test_blacklist_token_uses_jti_and_expiry(mock_db_manager):
    service = SecurityService()
    collection = mock_db_manager.get_collection.return_value
    exp = int((datetime.now(timezone.utc) + timedelta(hours=2)).timestamp())
    token = jwt.encode({"sub": "u1", "jti": "jti-1", "exp": exp}, "k", algorithm="HS256")

    token_id = await service.blacklist_token(token, "u1", reason="logout")

    assert token_id == "jti-1"
    query, update = collection.update_one.call_args[0]
    assert query == {"token_id": "jti-1"}
    assert update["$setOnInsert"]["expires_at"] == datetime.fromtimestamp(exp, tz=timezone.utc)
    assert collection.update_one.call_args[1]["upsert"] is True


@pytest.mark.asyncio
async def test_detect_suspicious_activity_thresholds(mock_db_manager):
    service = SecurityService()
    collection = mock_db_manager.get_collection.return_value
    collection.count_documents.side_effect = [5, 2]
    collection.distinct.return_value = ["1.1.1.1", "2.2.2.2", None]

    result = await service.detect_suspicious_activity("u1", "1.1.1.1", UserType.BUSINESS)

    assert result.is_suspicious is True
    assert result.reasons == ["excessive_failed_logins"]
    assert result.metrics == {"failed_logins": 5, "unique_ips": 2, "recent_sessions": 2}
    logged = [c[0][0]["event_type"] for c in collection.insert_one.call_args_list]
    assert "suspicious_activity" in logged


@pytest.mark.asyncio
async def test_detect_suspicious_activity_quiet_account(mock_db_manager):
    service = SecurityService()
    collection = mock_db_manager.get_collection.return_value
    collection.count_documents.side_effect = [0, 1]
    collection.distinct.return_value = ["1.1.1.1"]

    result = await service.detect_suspicious_activity("u1")

    assert result.is_suspicious is False
    assert result.reasons == []
    collection.insert_one.assert_not_called()


@pytest.mark.asyncio
async def test_revoke_missing_session_raises(mock_db_manager):
    from brandlink.utils.errors import NotFoundError

    service = SecurityService()
    mock_db_manager.get_collection.return_value.find_one.return_value = None

    with pytest.raises(NotFoundError):
        await service.revoke_session("missing")


@pytest.mark.asyncio
async def test_audit_report(mock_db_manager, fake_cursor):
    service = SecurityService()
    collection = mock_db_manager.get_collection.return_value
    events = [
        {"event_type": "login_failed", "severity": "medium", "success": False},
        {"event_type": "login_success", "severity": "low", "success": True},
    ]
    collection.find.side_effect = [fake_cursor(events), fake_cursor([{"session_id": "s1"}])]

    report = await service.get_security_audit_report("u1", days=7)

    assert report.total_events == 2
    assert report.events_by_type == {"login_failed": 1, "login_success": 1}
    assert report.failed_events == 1
    assert report.active_sessions == 1
    assert report.risk_score == 5
    assert report.risk_level == "low"


@pytest.mark.asyncio
async def test_cleanup_expired_data(mock_db_manager):
    collection = mock_db_manager.get_collection.return_value
    collection.update_many.return_value = MagicMock(modified_count=3)
    collection.delete_many.return_value = MagicMock(deleted_count=7)

    counts = await SecurityService().cleanup_expired_data()

    assert counts == {"expired_sessions": 3, "expired_blacklist_entries": 7}
    query, update = collection.update_many.call_args[0]
    assert query["is_active"] is True
    assert "$lt" in query["expires_at"]
    assert update["$set"] == {"is_active": False, "revoked_reason": "expired"}
    assert "$lt" in collection.delete_many.call_args[0][0]["expires_at"]


@pytest.mark.asyncio
async def test_system_security_metrics(mock_db_manager, fake_cursor):
    collection = mock_db_manager.get_collection.return_value
    collection.aggregate = MagicMock(
        side_effect=[
            fake_cursor([{"_id": "login_failed", "count": 4}, {"_id": "suspicious_activity", "count": 2}]),
            fake_cursor([{"_id": "medium", "count": 4}, {"_id": "high", "count": 2}]),
            fake_cursor([{"_id": "u1", "event_count": 5}, {"_id": "u2", "event_count": 1}]),
        ]
    )
    collection.count_documents.side_effect = [12, 3]

    metrics = await SecurityService().get_system_security_metrics(days=14)

    assert metrics["period_days"] == 14
    assert metrics["total_events"] == 6
    assert metrics["events_by_type"] == {"login_failed": 4, "suspicious_activity": 2}
    assert metrics["events_by_severity"] == {"medium": 4, "high": 2}
    assert metrics["top_users"][0] == {"user_id": "u1", "event_count": 5}
    assert metrics["active_sessions"] == 12
    assert metrics["blacklisted_tokens"] == 3
    assert metrics["suspicious_activity_count"] == 2
    match = collection.aggregate.call_args_list[0][0][0][0]
    assert "$gte" in match["$match"]["timestamp"]
