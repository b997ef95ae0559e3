import pytest

from chatdesk.core.config import Settings
from chatdesk.core.security import decode_access_token, hash_password
from chatdesk.domain.enums import UserRole
from chatdesk.services.auth_service import AuthService
from chatdesk.services.errors import AuthenticationError, EmailAlreadyRegisteredError

SETTINGS = Settings(_env_file=None, auth_secret="auth-service-test-secret", auth_token_ttl_minutes=30)


@pytest.fixture
def service(session, users) -> AuthService:
    return AuthService(session=session, users=users, settings=SETTINGS)


@pytest.mark.asyncio
async def test_register_creates_agent_and_issues_token(service, session) -> None:
    auth = await service.register(" Maya ", "Maya@Example.com ", "hunter22")

    assert auth.user.name == "Maya"
    assert auth.user.email == "maya@example.com"
    assert auth.user.role == UserRole.AGENT
    assert auth.token_type == "bearer"
    assert decode_access_token(auth.access_token, SETTINGS.auth_secret).user_id == auth.user.id
    assert session.commits == 1


@pytest.mark.asyncio
async def test_register_rejects_duplicates_and_weak_passwords(service) -> None:
    await service.register("Maya", "maya@example.com", "hunter22")

    with pytest.raises(EmailAlreadyRegisteredError):
        await service.register("Other", "MAYA@example.com", "hunter22")
    with pytest.raises(ValueError, match="at least"):
        await service.register("Lee", "lee@example.com", "123")
    with pytest.raises(ValueError, match="email"):
        await service.register("Lee", "not-an-email", "hunter22")


@pytest.mark.asyncio
async def test_login_checks_password_and_activity(service, users) -> None:
    active = users.add("Maya", password_hash=hash_password("hunter22"))
    users.add("Gone", password_hash=hash_password("hunter22"), is_active=False)

    auth = await service.login(" MAYA@example.com", "hunter22")

    assert auth.user.id == active.id
    assert active.last_login_at is not None
    with pytest.raises(AuthenticationError):
        await service.login("maya@example.com", "wrong")
    with pytest.raises(AuthenticationError, match="inactive"):
        await service.login("gone@example.com", "hunter22")
    with pytest.raises(AuthenticationError):
        await service.login("nobody@example.com", "hunter22")


@pytest.mark.asyncio
async def test_update_details_guards_email_uniqueness(service, users) -> None:
    maya = users.add("Maya")
    users.add("Lee")

    updated = await service.update_details(maya, name="Maya K", avatar_url=" ")

    assert updated.name == "Maya K"
    assert updated.avatar_url is None
    with pytest.raises(EmailAlreadyRegisteredError):
        await service.update_details(maya, email="lee@example.com")


@pytest.mark.asyncio
async def test_update_password_requires_current_password(service, users) -> None:
    maya = users.add("Maya", password_hash=hash_password("hunter22"))

    with pytest.raises(AuthenticationError):
        await service.update_password(maya, "wrong", "new-password")
    await service.update_password(maya, "hunter22", "new-password")

    assert (await service.login("maya@example.com", "new-password")).user.id == maya.id
