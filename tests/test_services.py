"""
Unit tests for business logic (services layer).
Tests service functions with mocked database calls.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from fastapi import HTTPException
from datetime import datetime, UTC
from sqlalchemy.exc import OperationalError
from account_service.services import register_user, authenticate_user, logout_user, verify_email
from account_service.schemas import UserRegister, UserLogin
from account_service.crud import DuplicateEmailError
from account_service.auth import hash_password
from account_service.models import UserStatus

PASSWORD = "password123"
PASSWORD_HASH = hash_password(PASSWORD)


class MockUser:
    """Mock User object for testing with all required fields."""
    def __init__(self, id: int, name: str, email: str, status: str = UserStatus.ACTIVE.value):
        self.id = id
        self.name = name
        self.email = email
        self.hashed_password = PASSWORD_HASH
        self.status = status
        self.registered_at = datetime.now(UTC)
        self.last_login_at = None
        self.verification_token = None

    @property
    def is_blocked(self) -> bool:
        return self.status == UserStatus.BLOCKED.value


def create_mock_user(id: int, name: str, email: str, status: str = UserStatus.ACTIVE.value):
    """Create a mock User object with all required fields."""
    return MockUser(id, name, email, status)


@pytest.mark.asyncio
class TestRegisterUser:
    """Test register_user service function."""

    async def test_register_success(self):
        """Email is normalized and a verification email is scheduled."""
        data = UserRegister(name="  Test User ", email="Test@Example.com", password=PASSWORD)
        created = create_mock_user(1, "Test User", "test@example.com", UserStatus.UNVERIFIED.value)

        with patch('account_service.services.insert_user', new_callable=AsyncMock, return_value=created) as mock_insert, \
             patch('account_service.services.notifier') as mock_notifier:
            result = await register_user(data)

        assert result.id == 1
        assert result.message == "Registration successful! Verification email sent."

        name, email, hashed, token = mock_insert.call_args.args
        assert name == "Test User"
        assert email == "test@example.com"
        assert hashed != PASSWORD
        assert len(token) >= 32
        mock_notifier.send_verification_email.assert_called_once_with("test@example.com", "Test User", token)

    async def test_register_duplicate_email(self):
        data = UserRegister(name="Test User", email="test@example.com", password=PASSWORD)

        with patch('account_service.services.insert_user', new_callable=AsyncMock,
                   side_effect=DuplicateEmailError("test@example.com")), \
             patch('account_service.services.notifier') as mock_notifier:
            with pytest.raises(HTTPException) as exc_info:
                await register_user(data)

        assert exc_info.value.status_code == 400
        assert exc_info.value.detail["error"] == "DUPLICATE_EMAIL"
        assert exc_info.value.detail["details"]["email"] == "test@example.com"
        mock_notifier.send_verification_email.assert_not_called()

    async def test_register_store_failure(self):
        data = UserRegister(name="Test User", email="test@example.com", password=PASSWORD)

        with patch('account_service.services.insert_user', new_callable=AsyncMock,
                   side_effect=OperationalError("INSERT", {}, Exception("db down"))), \
             patch('account_service.services.notifier'):
            with pytest.raises(HTTPException) as exc_info:
                await register_user(data)

        assert exc_info.value.status_code == 500
        assert exc_info.value.detail["error"] == "OPERATION_FAILED"
        assert "db down" not in exc_info.value.detail["message"]

    async def test_notifier_failure_does_not_fail_registration(self):
        data = UserRegister(name="Test User", email="test@example.com", password=PASSWORD)
        created = create_mock_user(1, "Test User", "test@example.com", UserStatus.UNVERIFIED.value)
        failing_notifier = MagicMock()
        failing_notifier.send_verification_email.side_effect = RuntimeError("no loop")

        with patch('account_service.services.insert_user', new_callable=AsyncMock, return_value=created), \
             patch('account_service.services.notifier', failing_notifier):
            result = await register_user(data)

        assert result.id == 1


@pytest.mark.asyncio
class TestAuthenticateUser:
    """Test authenticate_user service function."""

    async def test_login_success_binds_session(self, client_session):
        user = create_mock_user(7, "Test User", "test@example.com")

        with patch('account_service.services.select_user_by_email', new_callable=AsyncMock, return_value=user) as mock_select, \
             patch('account_service.services.record_login', new_callable=AsyncMock, return_value=True) as mock_record:
            result = await authenticate_user(UserLogin(email=" TEST@example.com", password=PASSWORD), client_session)

        mock_select.assert_called_once_with("test@example.com")
        assert mock_record.call_args.args[0] == 7
        assert result.user.id == 7
        assert result.user.last_login_at is not None
        assert await client_session.get_user_id() == 7
        assert client_session.cookie_action == "set"

    async def test_unverified_user_may_login(self, client_session):
        user = create_mock_user(3, "New User", "new@example.com", UserStatus.UNVERIFIED.value)

        with patch('account_service.services.select_user_by_email', new_callable=AsyncMock, return_value=user), \
             patch('account_service.services.record_login', new_callable=AsyncMock, return_value=True):
            result = await authenticate_user(UserLogin(email="new@example.com", password=PASSWORD), client_session)

        assert result.user.status == UserStatus.UNVERIFIED.value

    async def test_unknown_email_and_wrong_password_look_the_same(self, client_session):
        user = create_mock_user(1, "Test User", "test@example.com")

        with patch('account_service.services.select_user_by_email', new_callable=AsyncMock, return_value=None):
            with pytest.raises(HTTPException) as unknown:
                await authenticate_user(UserLogin(email="nobody@example.com", password=PASSWORD), client_session)

        with patch('account_service.services.select_user_by_email', new_callable=AsyncMock, return_value=user):
            with pytest.raises(HTTPException) as wrong:
                await authenticate_user(UserLogin(email="test@example.com", password="wrong"), client_session)

        assert unknown.value.status_code == wrong.value.status_code == 401
        assert unknown.value.detail == wrong.value.detail
        assert unknown.value.detail["error"] == "INVALID_CREDENTIALS"
        assert await client_session.get_user_id() is None

    async def test_blocked_user_rejected(self, client_session):
        user = create_mock_user(1, "Test User", "test@example.com", UserStatus.BLOCKED.value)

        with patch('account_service.services.select_user_by_email', new_callable=AsyncMock, return_value=user), \
             patch('account_service.services.record_login', new_callable=AsyncMock) as mock_record:
            with pytest.raises(HTTPException) as exc_info:
                await authenticate_user(UserLogin(email="test@example.com", password=PASSWORD), client_session)

        assert exc_info.value.status_code == 403
        assert exc_info.value.detail["error"] == "ACCOUNT_BLOCKED"
        mock_record.assert_not_called()
        assert client_session.session_id is None

    async def test_blocked_user_wrong_password_gets_generic_error(self, client_session):
        user = create_mock_user(1, "Test User", "test@example.com", UserStatus.BLOCKED.value)

        with patch('account_service.services.select_user_by_email', new_callable=AsyncMock, return_value=user):
            with pytest.raises(HTTPException) as exc_info:
                await authenticate_user(UserLogin(email="test@example.com", password="wrong"), client_session)

        assert exc_info.value.detail["error"] == "INVALID_CREDENTIALS"

    async def test_session_store_failure_leaves_last_login_untouched(self):
        """A login that could not store its session is not a login."""
        user = create_mock_user(1, "Test User", "test@example.com")
        store = MagicMock()
        store.set = AsyncMock(return_value=False)
        store.delete = AsyncMock(return_value=True)
        from account_service.sessions import ClientSession
        session = ClientSession(store)

        with patch('account_service.services.select_user_by_email', new_callable=AsyncMock, return_value=user), \
             patch('account_service.services.record_login', new_callable=AsyncMock, return_value=True) as mock_record:
            with pytest.raises(HTTPException) as exc_info:
                await authenticate_user(UserLogin(email="test@example.com", password=PASSWORD), session)

        assert exc_info.value.status_code == 500
        assert exc_info.value.detail["error"] == "OPERATION_FAILED"
        assert session.cookie_action is None
        mock_record.assert_not_called()

    async def test_store_failure_recording_login_signs_out(self, client_session):
        user = create_mock_user(1, "Test User", "test@example.com")

        with patch('account_service.services.select_user_by_email', new_callable=AsyncMock, return_value=user), \
             patch('account_service.services.record_login', new_callable=AsyncMock,
                   side_effect=OperationalError("UPDATE", {}, Exception("db down"))):
            with pytest.raises(HTTPException) as exc_info:
                await authenticate_user(UserLogin(email="test@example.com", password=PASSWORD), client_session)

        assert exc_info.value.status_code == 500
        assert client_session.cookie_action == "clear"
        assert await client_session.get_user_id() is None


@pytest.mark.asyncio
class TestLogoutUser:
    """Test logout_user service function."""

    async def test_logout_clears_session(self, client_session):
        await client_session.set_user_id(5)

        result = await logout_user(client_session)

        assert result.message == "You have been signed out."
        assert await client_session.get_user_id() is None
        assert client_session.cookie_action == "clear"

    async def test_logout_without_session(self, client_session):
        result = await logout_user(client_session)

        assert result.message == "You have been signed out."


@pytest.mark.asyncio
class TestVerifyEmail:
    """Test verify_email service function."""

    async def test_verify_success(self):
        user = create_mock_user(1, "Test User", "test@example.com")

        with patch('account_service.services.consume_verification_token', new_callable=AsyncMock, return_value=user) as mock_consume:
            result = await verify_email(" tok-1 ")

        mock_consume.assert_called_once_with("tok-1")
        assert "verified" in result.message

    @pytest.mark.parametrize("token", [None, "", "   "])
    async def test_blank_token_rejected(self, token):
        with patch('account_service.services.consume_verification_token', new_callable=AsyncMock) as mock_consume:
            with pytest.raises(HTTPException) as exc_info:
                await verify_email(token)

        mock_consume.assert_not_called()
        assert exc_info.value.detail["error"] == "INVALID_TOKEN"
        assert exc_info.value.detail["details"]["redirect"] == "/auth/login"

    async def test_unknown_token_rejected(self):
        with patch('account_service.services.consume_verification_token', new_callable=AsyncMock, return_value=None):
            with pytest.raises(HTTPException) as exc_info:
                await verify_email("missing")

        assert exc_info.value.status_code == 400
        assert exc_info.value.detail["error"] == "INVALID_TOKEN"
