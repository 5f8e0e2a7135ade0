from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

from bson import ObjectId
import pytest

from brandlink.models.auth_models import RegisterBusinessRequest
from brandlink.models.security_models import SecurityEventType, UserType
from brandlink.services.auth_service import (
    AuthService,
    create_access_token,
    decode_access_token,
    hash_password,
    is_account_locked,
    verify_password,
)
from brandlink.utils.errors import (
    AccountLockedError,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
)

PASSWORD = "Sup3rSecret"


@pytest.fixture(scope="module")
def password_hash():
    return hash_password(PASSWORD)


@pytest.fixture
def accounts(collection_factory):
    with patch("brandlink.services.auth_service.db_manager") as mock:
        collection = collection_factory()
        mock.get_collection.return_value = collection
        yield collection


@pytest.fixture
def mock_security_service():
    with patch("brandlink.services.auth_service.security_service") as mock:
        mock.log_authentication_attempt = AsyncMock()
        mock.log_security_event = AsyncMock()
        mock.detect_suspicious_activity = AsyncMock()
        mock.create_session = AsyncMock()
        mock.blacklist_token = AsyncMock()
        mock.revoke_session = AsyncMock()
        mock.revoke_all_user_sessions = AsyncMock(return_value=2)
        mock.log_password_change = AsyncMock()
        yield mock


@pytest.fixture(autouse=True)
def mock_notifications():
    with patch("brandlink.services.auth_service.notification_service") as mock:
        mock.notify_security_alert = AsyncMock()
        yield mock


def _account(password_hash, **overrides):
    account = {
        "_id": ObjectId(),
        "email": "owner@acme.com",
        "password": password_hash,
        "is_active": True,
        "login_attempts": 0,
    }
    account.update(overrides)
    return account


def test_password_hashing(password_hash):
    """Test bcrypt hashing and verification."""
    assert password_hash != PASSWORD
    assert verify_password(PASSWORD, password_hash)
    assert not verify_password("wrong-password1", password_hash)
    assert not verify_password(PASSWORD, None)
    assert not verify_password(PASSWORD, "not-a-bcrypt-hash")


def test_access_token_round_trip():
    token, expires_at = create_access_token("abc123", UserType.MANUFACTURER, "sess_1", token_id="jti-9")

    payload = decode_access_token(token)

    assert payload["sub"] == "abc123"
    assert payload["type"] == "manufacturer"
    assert payload["sid"] == "sess_1"
    assert payload["jti"] == "jti-9"
    assert payload["exp"] == int(expires_at.timestamp())


def test_expired_token_is_rejected():
    token, _ = create_access_token("abc123", UserType.USER, "sess_1", expires_delta=timedelta(seconds=-10))

    with pytest.raises(AuthenticationError) as exc_info:
        decode_access_token(token)
    assert exc_info.value.code == "token_expired"


def test_garbage_token_is_rejected():
    with pytest.raises(AuthenticationError) as exc_info:
        decode_access_token("definitely.not.ajwt")
    assert exc_info.value.code == "invalid_token"


def test_is_account_locked():
    now = datetime.now(timezone.utc)
    assert is_account_locked({"lock_until": now + timedelta(minutes=5)}, now)
    assert not is_account_locked({"lock_until": now - timedelta(minutes=5)}, now)
    assert not is_account_locked({}, now)
    # Naive values from MongoDB are UTC
    assert is_account_locked({"lock_until": (now + timedelta(minutes=5)).replace(tzinfo=None)}, now)


@pytest.mark.asyncio
async def test_register_rejects_duplicate_email(accounts, mock_security_service):
    accounts.find_one.return_value = {"_id": ObjectId(), "email": "owner@acme.com"}
    request = RegisterBusinessRequest(email="Owner@Acme.com", password=PASSWORD, business_name="Acme")

    with pytest.raises(ConflictError):
        await AuthService().register(UserType.BUSINESS, request)
    accounts.insert_one.assert_not_called()


@pytest.mark.asyncio
async def test_register_business_hides_password(accounts, mock_security_service):
    accounts.find_one.return_value = None
    accounts.insert_one.return_value = MagicMock(inserted_id=ObjectId())
    request = RegisterBusinessRequest(email="Owner@Acme.com", password=PASSWORD, business_name="  Acme  ")

    account = await AuthService().register(UserType.BUSINESS, request)

    stored = accounts.insert_one.call_args[0][0]
    assert stored["email"] == "owner@acme.com"
    assert stored["business_name"] == "Acme"
    assert stored["plan"] == "foundation"
    assert verify_password(PASSWORD, stored["password"])
    assert "password" not in account
    assert account["id"]


@pytest.mark.asyncio
async def test_login_success_opens_session(accounts, mock_security_service, password_hash):
    account = _account(password_hash, login_attempts=2)
    accounts.find_one.return_value = account

    response = await AuthService().login(UserType.BUSINESS, "OWNER@acme.com", PASSWORD, ip_address="10.0.0.1")

    assert response.principal_id == str(account["_id"])
    assert response.principal_type == UserType.BUSINESS
    assert response.token_type == "bearer"
    assert response.session_id.startswith("sess_")
    payload = decode_access_token(response.access_token)
    assert payload["sid"] == response.session_id

    mock_security_service.create_session.assert_awaited_once()
    _, update = accounts.update_one.call_args[0]
    assert update["$set"]["login_attempts"] == 0
    mock_security_service.log_authentication_attempt.assert_awaited_once_with(
        str(account["_id"]), UserType.BUSINESS, True, "10.0.0.1", None
    )


@pytest.mark.asyncio
async def test_login_unknown_email(accounts, mock_security_service):
    accounts.find_one.return_value = None

    with pytest.raises(AuthenticationError):
        await AuthService().login(UserType.USER, "nobody@acme.com", PASSWORD)
    mock_security_service.create_session.assert_not_called()


@pytest.mark.asyncio
async def test_login_wrong_password_counts_attempt(accounts, mock_security_service, password_hash, mock_notifications):
    account = _account(password_hash, login_attempts=1)
    accounts.find_one.return_value = account
    accounts.find_one_and_update.return_value = {**account, "login_attempts": 2}

    with pytest.raises(AuthenticationError):
        await AuthService().login(UserType.USER, "owner@acme.com", "Wrong-pass1")

    query, update = accounts.find_one_and_update.call_args[0]
    assert query == {"_id": account["_id"]}
    assert update == {"$inc": {"login_attempts": 1}}
    accounts.update_one.assert_not_called()
    mock_security_service.log_security_event.assert_not_called()
    mock_notifications.notify_security_alert.assert_not_called()
    mock_security_service.detect_suspicious_activity.assert_awaited_once()


@pytest.mark.asyncio
async def test_concurrent_failures_use_the_stored_count(accounts, mock_security_service, password_hash):
    # Another request already counted a failure after this one read the account
    account = _account(password_hash, login_attempts=3)
    accounts.find_one.return_value = account
    accounts.find_one_and_update.return_value = {**account, "login_attempts": 5}

    with pytest.raises(AuthenticationError):
        await AuthService().login(UserType.USER, "owner@acme.com", "Wrong-pass1")

    _, update = accounts.update_one.call_args[0]
    assert "lock_until" in update["$set"]
    event = mock_security_service.log_security_event.call_args[0][0]
    assert event.additional_data["login_attempts"] == 5


@pytest.mark.asyncio
async def test_fifth_failure_locks_account(accounts, mock_security_service, password_hash, mock_notifications):
    account = _account(password_hash, login_attempts=4)
    accounts.find_one.return_value = account
    accounts.find_one_and_update.return_value = {**account, "login_attempts": 5}

    with pytest.raises(AuthenticationError):
        await AuthService().login(UserType.MANUFACTURER, "owner@acme.com", "Wrong-pass1")

    _, update = accounts.update_one.call_args[0]
    assert update["$set"]["lock_until"] > datetime.now(timezone.utc) + timedelta(hours=1)
    event = mock_security_service.log_security_event.call_args[0][0]
    assert event.event_type == SecurityEventType.ACCOUNT_LOCKED
    assert event.user_type == UserType.MANUFACTURER
    args = mock_notifications.notify_security_alert.call_args[0]
    assert args[:3] == (str(account["_id"]), UserType.MANUFACTURER, "account_locked")


@pytest.mark.asyncio
async def test_locked_account_is_refused_even_with_correct_password(accounts, mock_security_service, password_hash):
    lock_until = datetime.now(timezone.utc) + timedelta(hours=1)
    accounts.find_one.return_value = _account(password_hash, login_attempts=5, lock_until=lock_until)

    with pytest.raises(AccountLockedError) as exc_info:
        await AuthService().login(UserType.BUSINESS, "owner@acme.com", PASSWORD)

    assert exc_info.value.status_code == 423
    kwargs = mock_security_service.log_authentication_attempt.call_args[1]
    assert kwargs["failure_reason"] == "account_locked"
    mock_security_service.create_session.assert_not_called()


@pytest.mark.asyncio
async def test_expired_lock_restarts_the_count(accounts, mock_security_service, password_hash):
    lock_until = datetime.now(timezone.utc) - timedelta(minutes=1)
    account = _account(password_hash, login_attempts=5, lock_until=lock_until)
    accounts.find_one.return_value = account
    accounts.find_one_and_update.return_value = {**account, "login_attempts": 1}

    with pytest.raises(AuthenticationError):
        await AuthService().login(UserType.BUSINESS, "owner@acme.com", "Wrong-pass1")

    query, update = accounts.find_one_and_update.call_args[0]
    assert query == {"_id": account["_id"], "lock_until": {"$lte": query["lock_until"]["$lte"]}}
    assert update == {"$set": {"login_attempts": 1}, "$unset": {"lock_until": ""}}
    assert accounts.find_one_and_update.await_count == 1
    accounts.update_one.assert_not_called()


@pytest.mark.asyncio
async def test_deactivated_account(accounts, mock_security_service, password_hash):
    accounts.find_one.return_value = _account(password_hash, is_active=False)

    with pytest.raises(AuthorizationError):
        await AuthService().login(UserType.USER, "owner@acme.com", PASSWORD)


@pytest.mark.asyncio
async def test_logout_blacklists_and_revokes(mock_security_service):
    principal = {"id": "u1", "principal_type": "user", "session_id": "sess_1"}

    await AuthService().logout("token-value", principal)

    mock_security_service.blacklist_token.assert_awaited_once_with(
        "token-value", "u1", reason="logout", user_type=UserType.USER
    )
    mock_security_service.revoke_session.assert_awaited_once_with("sess_1", reason="logout")


@pytest.mark.asyncio
async def test_logout_all_keeps_current_session(mock_security_service):
    principal = {"id": "u1", "principal_type": "business", "session_id": "sess_1"}

    revoked = await AuthService().logout_all(principal)

    assert revoked == 2
    kwargs = mock_security_service.revoke_all_user_sessions.call_args[1]
    assert kwargs["exclude_session_id"] == "sess_1"


@pytest.mark.asyncio
async def test_change_password(accounts, mock_security_service, password_hash):
    account = _account(password_hash)
    accounts.find_one.return_value = account
    principal = {"id": str(account["_id"]), "principal_type": "user"}

    await AuthService().change_password(principal, PASSWORD, "N3wPassword")

    _, update = accounts.update_one.call_args[0]
    assert verify_password("N3wPassword", update["$set"]["password"])
    mock_security_service.log_password_change.assert_awaited_once()


@pytest.mark.asyncio
async def test_change_password_requires_current(accounts, mock_security_service, password_hash):
    account = _account(password_hash)
    accounts.find_one.return_value = account
    principal = {"id": str(account["_id"]), "principal_type": "user"}

    with pytest.raises(AuthenticationError):
        await AuthService().change_password(principal, "Wrong-pass1", "N3wPassword")
    accounts.update_one.assert_not_called()
