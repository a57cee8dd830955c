"""
Tests for the account flows: register, login, token resolution, logout.
"""

from unittest.mock import AsyncMock, patch

import pytest

from auth.errors import EmailAlreadyRegisteredError, HashFormatError
from auth.jwt import TokenValidator
from auth.password import CredentialHasher
from auth.service import AuthService
from database.user_store import UserStore
from tests.conftest import T0


@pytest.fixture
def service(store, issuer, validator, hasher):
    return AuthService(store, issuer=issuer, validator=validator, hasher=hasher)


async def _registered(service, email="u1@example.com", password="hunter2"):
    return await service.register(email, password, name="U", lastname="One")


class TestRegister:
    @pytest.mark.asyncio
    async def test_register_stores_hash_not_plaintext(self, service, hasher):
        user = await _registered(service)
        assert user.password_hash != "hunter2"
        assert hasher.verify("hunter2", user.password_hash)
        assert not hasher.verify("wrong", user.password_hash)
        assert user.role == 0
        assert user.token is None and user.token_expires_at is None

    @pytest.mark.asyncio
    async def test_duplicate_email(self, service):
        await _registered(service)
        with pytest.raises(EmailAlreadyRegisteredError):
            await _registered(service, password="other")

    @pytest.mark.asyncio
    async def test_duplicate_email_lost_race(self, service, store):
        await _registered(service)

        # both requests saw no existing account; the unique constraint decides
        with patch.object(store, "find_by_email", new_callable=AsyncMock, return_value=None):
            with pytest.raises(EmailAlreadyRegisteredError):
                await _registered(service, password="other")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("password", ["", "x" * 73])
    async def test_unusable_password_rejected_up_front(self, service, store, password):
        with pytest.raises(ValueError):
            await _registered(service, password=password)
        assert await store.find_by_email("u1@example.com") is None


class TestLogin:
    @pytest.mark.asyncio
    async def test_login_sets_token_and_expiry(self, service):
        await _registered(service)
        user = await service.login("u1@example.com", "hunter2")
        assert user is not None
        assert user.token
        assert user.token_expires_at == T0 + 3600 * 1000

    @pytest.mark.asyncio
    async def test_wrong_password(self, service):
        await _registered(service)
        assert await service.login("u1@example.com", "wrong") is None

    @pytest.mark.asyncio
    async def test_unknown_email(self, service):
        assert await service.login("nobody@example.com", "hunter2") is None

    @pytest.mark.asyncio
    async def test_unknown_email_still_runs_bcrypt(self, service, hasher):
        with patch.object(
            hasher, "verify_dummy_async", wraps=hasher.verify_dummy_async
        ) as dummy:
            assert await service.login("nobody@example.com", "hunter2") is None
        dummy.assert_awaited_once_with("hunter2")

    @pytest.mark.asyncio
    async def test_known_email_skips_dummy_verify(self, service, hasher):
        await _registered(service)
        with patch.object(hasher, "verify_dummy_async", new_callable=AsyncMock) as dummy:
            assert await service.login("u1@example.com", "wrong") is None
        dummy.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_corrupt_hash_is_surfaced(self, service, store):
        user = await _registered(service)
        user.password_hash = "corrupted"
        await store.update(user)
        with pytest.raises(HashFormatError):
            await service.login("u1@example.com", "hunter2")

    @pytest.mark.asyncio
    async def test_login_upgrades_weak_hash(self, session, store, issuer, validator):
        await AuthService(store, issuer, validator).register("u1@example.com", "hunter2")

        stronger = UserStore(session, hasher=CredentialHasher(rounds=5))
        user = await AuthService(stronger, issuer, validator).login("u1@example.com", "hunter2")
        assert user is not None
        assert user.password_hash.startswith("$2b$05$")
        assert stronger.hasher.verify("hunter2", user.password_hash)


class TestResolve:
    @pytest.mark.asyncio
    async def test_resolves_right_after_login(self, service):
        registered = await _registered(service)
        user = await service.login("u1@example.com", "hunter2")
        assert await service.authenticate(user.token) is registered

    @pytest.mark.asyncio
    async def test_scenario_thirty_minutes_ok_sixty_one_rejected(self, service, clock):
        await _registered(service)
        user = await service.login("u1@example.com", "hunter2")
        token = user.token

        clock.advance(minutes=30)
        assert await service.authenticate(token) is user

        clock.advance(minutes=31)
        assert await service.authenticate(token) is None

    @pytest.mark.asyncio
    async def test_rejected_exactly_at_expiry(self, service, clock):
        await _registered(service)
        user = await service.login("u1@example.com", "hunter2")
        clock.advance(minutes=60)
        assert await service.authenticate(user.token) is None

    @pytest.mark.asyncio
    async def test_relogin_supersedes_old_token(self, service, clock):
        await _registered(service)
        first = (await service.login("u1@example.com", "hunter2")).token
        clock.advance(seconds=1)
        second = (await service.login("u1@example.com", "hunter2")).token

        assert first != second
        assert await service.authenticate(first) is None
        assert await service.authenticate(second) is not None

    @pytest.mark.asyncio
    async def test_store_expiry_is_authoritative(self, service, store, clock):
        await _registered(service)
        user = await service.login("u1@example.com", "hunter2")
        user.token_expires_at = T0 + 60 * 1000
        await store.update(user)

        clock.advance(minutes=2)
        assert await service.authenticate(user.token) is None

    @pytest.mark.asyncio
    async def test_claimed_expiry_is_enforced(self, service, store, clock):
        await _registered(service)
        user = await service.login("u1@example.com", "hunter2")
        user.token_expires_at = T0 + 3 * 3600 * 1000
        await store.update(user)

        clock.advance(minutes=59)
        assert await service.authenticate(user.token) is user

        # stored expiry is still two hours away, the exp claim is not
        clock.advance(minutes=1)
        assert await service.authenticate(user.token) is None

    @pytest.mark.asyncio
    async def test_foreign_signature_is_rejected(self, service, store, clock):
        await _registered(service)
        user = await service.login("u1@example.com", "hunter2")
        foreign = TokenValidator("some-other-secret-of-sufficient-length", clock=clock)
        assert await foreign.resolve(user.token, store) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("token", ["", "garbage", "a.b.c"])
    async def test_garbage_is_rejected(self, service, token):
        assert await service.authenticate(token) is None

    @pytest.mark.asyncio
    async def test_valid_token_for_other_user_is_rejected(self, service, issuer):
        alice = await _registered(service, email="alice@example.com")
        await _registered(service, email="bob@example.com")
        bob = await service.login("bob@example.com", "hunter2")

        # correctly signed for alice, but never stored on her record
        forged = issuer.issue(alice.user_id).token
        assert await service.authenticate(forged) is None
        assert await service.authenticate(bob.token) is bob


class TestLogoutAndPasswordChange:
    @pytest.mark.asyncio
    async def test_logout_clears_token(self, service):
        await _registered(service)
        user = await service.login("u1@example.com", "hunter2")
        token = user.token

        await service.logout(user)
        assert user.token is None and user.token_expires_at is None
        assert await service.authenticate(token) is None

    @pytest.mark.asyncio
    async def test_change_password(self, service, hasher):
        user = await _registered(service)
        assert await service.change_password(user, "hunter2", "new-secret")
        assert hasher.verify("new-secret", user.password_hash)
        assert await service.login("u1@example.com", "hunter2") is None
        assert await service.login("u1@example.com", "new-secret") is not None

    @pytest.mark.asyncio
    async def test_change_password_wrong_current(self, service, hasher):
        user = await _registered(service)
        original = user.password_hash
        assert not await service.change_password(user, "wrong", "new-secret")
        assert user.password_hash == original

    @pytest.mark.asyncio
    @pytest.mark.parametrize("new_password", ["", "x" * 73])
    async def test_rejected_new_password_leaves_account_usable(
        self, service, hasher, new_password
    ):
        user = await _registered(service)
        original = user.password_hash

        with pytest.raises(ValueError):
            await service.change_password(user, "hunter2", new_password)
        assert not user.password_changed
        assert user.password_hash == original

        assert await service.login("u1@example.com", "hunter2") is user
        assert await service.change_password(user, "hunter2", "new-secret")
        assert hasher.verify("new-secret", user.password_hash)
