"""Unit tests for AuthService: registration, login and current user."""

from uuid import uuid4

import pytest

from fleetauth.exceptions import (
    AccountDeactivated,
    DuplicateEmail,
    DuplicateOrganizationSlug,
    InvalidAccessToken,
    InvalidCredentials,
    PersistenceFailure,
)
from fleetauth.models.auth import RegisterRequest
from fleetauth.models.user import UserRole
from fleetauth.services.hashing import hash_password, hash_token, verify_password

PASSWORD = "Pw12345!"


def _register_request(**overrides) -> RegisterRequest:
    data = {
        "email": "a@x.com",
        "password": PASSWORD,
        "first_name": "Alice",
        "last_name": "Smith",
        "organization_name": "Acme Equipment",
        "organization_slug": "acme",
    }
    data.update(overrides)
    return RegisterRequest(**data)


class TestRegister:

    async def test_creates_organization_admin_and_session(self, auth_service, store):
        result = await auth_service.register(_register_request())

        assert result.organization.slug == "acme"
        assert result.organization.subscription_status == "trial"
        assert result.organization.trial_ends_at is not None
        assert result.user.role == UserRole.ADMIN
        assert result.user.organization_id == result.organization.id
        assert store.refresh_token_for(hash_token(result.session.refresh_token)) is not None

    async def test_password_is_hashed(self, auth_service, store):
        result = await auth_service.register(_register_request())

        stored = store.users[result.user.id]
        assert stored.password_hash != PASSWORD
        assert verify_password(PASSWORD, stored.password_hash)
        assert "password_hash" not in result.user.model_dump()

    async def test_duplicate_slug(self, auth_service):
        await auth_service.register(_register_request())

        with pytest.raises(DuplicateOrganizationSlug):
            await auth_service.register(_register_request(email="b@x.com"))

    async def test_duplicate_email(self, auth_service):
        await auth_service.register(_register_request())

        with pytest.raises(DuplicateEmail):
            await auth_service.register(_register_request(organization_slug="other"))

    async def test_failure_leaves_no_partial_state(self, auth_service, store):
        store.fail_on.add("create_refresh_token")

        with pytest.raises(PersistenceFailure):
            await auth_service.register(_register_request())

        assert store.organizations == {}
        assert store.users == {}
        assert store.refresh_tokens == {}

    async def test_registered_user_can_log_in(self, auth_service):
        await auth_service.register(_register_request())

        result = await auth_service.login("a@x.com", PASSWORD)

        assert result.user.email == "a@x.com"
        assert result.session.refresh_token


class TestLogin:

    @pytest.fixture
    def user(self, store):
        return store.add_user(
            email="alice@example.com",
            password_hash=hash_password(PASSWORD, rounds=4),
        )

    async def test_valid_credentials(self, auth_service, user):
        result = await auth_service.login("alice@example.com", PASSWORD)

        assert result.user.id == user.id
        assert result.organization.id == user.organization_id
        assert result.session.expires_in == "15m"

    async def test_email_is_case_insensitive(self, auth_service, user):
        result = await auth_service.login("ALICE@example.com", PASSWORD)
        assert result.user.id == user.id

    async def test_records_last_login(self, auth_service, store, user):
        result = await auth_service.login("alice@example.com", PASSWORD)

        assert store.users[user.id].last_login_at is not None
        assert result.user.last_login_at == store.users[user.id].last_login_at

    async def test_last_login_failure_is_not_fatal(self, auth_service, store, user):
        store.fail_on.add("update_last_login")

        result = await auth_service.login("alice@example.com", PASSWORD)

        assert result.session.access_token
        assert store.users[user.id].last_login_at is None

    async def test_wrong_password(self, auth_service, user):
        with pytest.raises(InvalidCredentials):
            await auth_service.login("alice@example.com", "Wrong-password1")

    async def test_unknown_email_same_error(self, auth_service):
        with pytest.raises(InvalidCredentials) as exc_info:
            await auth_service.login("ghost@example.com", PASSWORD)
        assert exc_info.value.detail == "Invalid credentials"

    async def test_deactivated_account(self, auth_service, store, user):
        store.users[user.id].is_active = False

        with pytest.raises(AccountDeactivated):
            await auth_service.login("alice@example.com", PASSWORD)

    async def test_deactivated_account_with_wrong_password_is_generic(self, auth_service, store, user):
        store.users[user.id].is_active = False

        with pytest.raises(InvalidCredentials):
            await auth_service.login("alice@example.com", "Wrong-password1")

    async def test_failed_login_issues_no_session(self, auth_service, store, user):
        with pytest.raises(InvalidCredentials):
            await auth_service.login("alice@example.com", "Wrong-password1")
        assert store.refresh_tokens == {}


class TestGetMe:

    async def test_returns_user_and_organization(self, auth_service, store):
        user = store.add_user()

        me, organization = await auth_service.get_me(user.id)

        assert me.id == user.id
        assert organization.id == user.organization_id
        assert "password_hash" not in me.model_dump()

    async def test_unknown_user(self, auth_service):
        with pytest.raises(InvalidAccessToken):
            await auth_service.get_me(uuid4())

    async def test_deactivated_user(self, auth_service, store):
        user = store.add_user(is_active=False)

        with pytest.raises(AccountDeactivated):
            await auth_service.get_me(user.id)
