"""Tests for the session controller: auth flows, pending role, epoch gating."""

import asyncio
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from careersync.core import db
from careersync.core.cache import LocalCache, open_cache
from careersync.core.config import CacheConfig
from careersync.core.schemas import Job, User
from careersync.identity.base import (
    AuthEvent,
    AuthListener,
    AuthUser,
    IdentityProvider,
    Session,
    SignUpResult,
)
from careersync.identity.errors import RATE_LIMIT_MESSAGE, IdentityError, RateLimitError
from careersync.remote.sqlite_store import SqliteRemoteStore
from careersync.session.controller import SessionController
from careersync.session.state import SessionStore
from careersync.sync.reconciler import Reconciler, SyncedView


class FakeIdentity(IdentityProvider):
    """In-memory identity provider with scriptable failures."""

    def __init__(self) -> None:
        self.users: dict[str, tuple[str, AuthUser]] = {}
        self.session: Session | None = None
        self.fail_with: IdentityError | None = None
        self.require_verification = False
        self.listeners: list[AuthListener] = []

    def add_user(self, user_id: str, email: str, password: str, **metadata: Any) -> None:
        self.users[email] = (password, AuthUser(id=user_id, email=email, user_metadata=metadata))

    async def sign_up(self, email: str, password: str, metadata: dict[str, Any]) -> SignUpResult:
        self._maybe_fail()
        self.add_user(f"id-{email}", email, password, **metadata)
        if self.require_verification:
            return SignUpResult(pending_verification=True)
        self.session = Session(user=self.users[email][1])
        return SignUpResult(session=self.session)

    async def sign_in(self, email: str, password: str) -> Session:
        self._maybe_fail()
        stored = self.users.get(email)
        if stored is None or stored[0] != password:
            raise IdentityError("Invalid login credentials", status=400)
        self.session = Session(user=stored[1])
        return self.session

    async def sign_in_with_oauth(self, provider: str) -> str:
        self._maybe_fail()
        return f"https://auth.example/{provider}"

    async def sign_out(self) -> None:
        self._maybe_fail()
        self.session = None

    async def get_session(self) -> Session | None:
        return self.session

    async def update_user(self, metadata: dict[str, Any]) -> AuthUser:
        assert self.session is not None
        user = self.session.user
        updated = user.model_copy(update={"user_metadata": {**user.user_metadata, **metadata}})
        self.session = Session(user=updated)
        return updated

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        self.listeners.append(listener)
        return lambda: self.listeners.remove(listener)

    def _maybe_fail(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with


class SlowReconciler:
    """Reconciler stand-in that blocks until released."""

    def __init__(self) -> None:
        self.gate = asyncio.Event()

    async def reconcile(self, user: User) -> SyncedView:
        await self.gate.wait()
        return SyncedView(user_id=user.id, jobs=[Job(id="late", employer_id=user.id, title="Late")])


@pytest.fixture
def cache(tmp_path: Path) -> LocalCache:
    return open_cache(CacheConfig(path=str(tmp_path / "cache.db")))


@pytest.fixture
def remote(tmp_path: Path) -> SqliteRemoteStore:
    return SqliteRemoteStore(db.init_db(tmp_path / "remote.db"))


@pytest.fixture
def identity() -> FakeIdentity:
    fake = FakeIdentity()
    fake.add_user("e1", "hr@acme.com", "pw", full_name="Acme HR", role="employer")
    fake.add_user("c1", "cara@x.com", "pw", full_name="Cara")
    return fake


def _controller(
    identity: FakeIdentity,
    cache: LocalCache,
    remote: SqliteRemoteStore,
    store: SessionStore | None = None,
) -> tuple[SessionController, SessionStore]:
    store = store or SessionStore()
    return SessionController(identity, store, Reconciler(remote, cache), cache), store


class TestSignIn:
    async def test_loads_role_scoped_data(
        self, identity: FakeIdentity, cache: LocalCache, remote: SqliteRemoteStore,
    ) -> None:
        await remote.insert_job(Job(id="j1", employer_id="e1", title="Engineer"))
        await remote.insert_job(Job(id="j2", employer_id="e2", title="Designer"))
        controller, store = _controller(identity, cache, remote)

        user = await controller.sign_in(" hr@acme.com ", "pw")

        assert user.role == "employer"
        assert store.state.is_active
        assert store.state.loaded
        assert [j.id for j in store.state.jobs] == ["j1"]

    async def test_bad_credentials(self, identity: FakeIdentity, cache: LocalCache, remote: SqliteRemoteStore) -> None:
        controller, store = _controller(identity, cache, remote)
        with pytest.raises(IdentityError, match="Invalid login credentials"):
            await controller.sign_in("hr@acme.com", "wrong")
        assert store.state.phase == "anonymous"

    async def test_rate_limit_message(self, identity: FakeIdentity, cache: LocalCache, remote: SqliteRemoteStore) -> None:
        identity.fail_with = IdentityError("email rate limit exceeded", status=429)
        controller, _ = _controller(identity, cache, remote)
        with pytest.raises(RateLimitError) as exc_info:
            await controller.sign_in("hr@acme.com", "pw")
        assert str(exc_info.value) == RATE_LIMIT_MESSAGE


class TestSignUp:
    async def test_activates_with_chosen_role(
        self, identity: FakeIdentity, cache: LocalCache, remote: SqliteRemoteStore,
    ) -> None:
        controller, store = _controller(identity, cache, remote)
        user = await controller.sign_up("new@x.com", "pw", "Newbie", "employer", address="Berlin")
        assert user is not None
        assert user.role == "employer"
        assert user.address == "Berlin"
        assert store.state.user == user

    async def test_verification_pending(
        self, identity: FakeIdentity, cache: LocalCache, remote: SqliteRemoteStore,
    ) -> None:
        identity.require_verification = True
        controller, store = _controller(identity, cache, remote)
        assert await controller.sign_up("new@x.com", "pw", "Newbie", "candidate") is None
        assert not store.state.is_active
        assert store.state.phase == "anonymous"


class TestPendingRole:
    async def test_oauth_role_applied_and_consumed(
        self, identity: FakeIdentity, cache: LocalCache, remote: SqliteRemoteStore,
    ) -> None:
        controller, store = _controller(identity, cache, remote)
        url = await controller.begin_oauth("google", "employer")
        assert url == "https://auth.example/google"
        assert cache.get_pending_role() == "employer"

        # The provider signs the user in after the redirect.
        identity.session = Session(user=identity.users["cara@x.com"][1])
        await controller.handle_event(AuthEvent(type="SIGNED_IN", session=identity.session))

        assert store.state.user is not None and store.state.user.role == "employer"
        assert cache.get_pending_role() is None
        assert identity.session.user.user_metadata["role"] == "employer"

    async def test_oauth_failure_clears_role(
        self, identity: FakeIdentity, cache: LocalCache, remote: SqliteRemoteStore,
    ) -> None:
        identity.fail_with = IdentityError("provider disabled")
        controller, _ = _controller(identity, cache, remote)
        with pytest.raises(IdentityError):
            await controller.begin_oauth("github", "employer")
        assert cache.get_pending_role() is None

    async def test_restore_peeks_without_consuming(
        self, identity: FakeIdentity, cache: LocalCache, remote: SqliteRemoteStore,
    ) -> None:
        cache.set_pending_role("employer")
        identity.session = Session(user=identity.users["cara@x.com"][1])
        controller, store = _controller(identity, cache, remote)
        await controller.start()
        assert store.state.user is not None and store.state.user.role == "employer"
        assert cache.get_pending_role() == "employer"


class TestEvents:
    async def test_start_subscribes_once(
        self, identity: FakeIdentity, cache: LocalCache, remote: SqliteRemoteStore,
    ) -> None:
        controller, _ = _controller(identity, cache, remote)
        await controller.start()
        await controller.start()
        assert len(identity.listeners) == 1
        controller.stop()
        assert identity.listeners == []

    async def test_signed_out_event(self, identity: FakeIdentity, cache: LocalCache, remote: SqliteRemoteStore) -> None:
        controller, store = _controller(identity, cache, remote)
        await controller.sign_in("cara@x.com", "pw")
        await controller.handle_event(AuthEvent(type="SIGNED_OUT"))
        assert store.state.user is None
        assert store.state.applications == ()

    async def test_token_refresh_keeps_data(
        self, identity: FakeIdentity, cache: LocalCache, remote: SqliteRemoteStore,
    ) -> None:
        await remote.insert_job(Job(id="j1", employer_id="e1", title="Engineer"))
        controller, store = _controller(identity, cache, remote)
        await controller.sign_in("hr@acme.com", "pw")
        epoch = store.state.epoch
        await controller.handle_event(AuthEvent(type="TOKEN_REFRESHED", session=identity.session))
        assert store.state.epoch == epoch
        assert [j.id for j in store.state.jobs] == ["j1"]

    async def test_password_recovery(
        self, identity: FakeIdentity, cache: LocalCache, remote: SqliteRemoteStore,
    ) -> None:
        controller, store = _controller(identity, cache, remote)
        await controller.start(recovering_password=True)
        assert store.state.phase == "recovering_password"
        identity.session = Session(user=identity.users["cara@x.com"][1])
        await controller.handle_event(AuthEvent(type="TOKEN_REFRESHED", session=identity.session))
        assert store.state.phase == "recovering_password"


class TestSignOut:
    async def test_clears_even_when_provider_fails(
        self, identity: FakeIdentity, cache: LocalCache, remote: SqliteRemoteStore,
    ) -> None:
        controller, store = _controller(identity, cache, remote)
        await controller.sign_in("cara@x.com", "pw")
        identity.fail_with = IdentityError("network down")
        await controller.sign_out()
        assert store.state.user is None


class TestStaleReconciliation:
    async def test_late_result_dropped_after_sign_out(
        self, identity: FakeIdentity, cache: LocalCache,
    ) -> None:
        reconciler = SlowReconciler()
        store = SessionStore()
        controller = SessionController(identity, store, reconciler, cache)  # type: ignore[arg-type]

        sign_in = asyncio.create_task(controller.sign_in("hr@acme.com", "pw"))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert store.state.is_active
        await controller.sign_out()

        reconciler.gate.set()
        await sign_in
        assert store.state.user is None
        assert store.state.jobs == ()
        assert not store.state.loaded


class TestProfile:
    async def test_update_profile(self, identity: FakeIdentity, cache: LocalCache, remote: SqliteRemoteStore) -> None:
        controller, store = _controller(identity, cache, remote)
        await controller.sign_in("cara@x.com", "pw")
        user = await controller.update_profile({"full_name": "Cara Jones", "phone": "555"})
        assert user is not None
        assert user.name == "Cara Jones"
        assert user.phone == "555"
        assert store.state.user == user

    async def test_refresh_without_session(
        self, identity: FakeIdentity, cache: LocalCache, remote: SqliteRemoteStore,
    ) -> None:
        controller, _ = _controller(identity, cache, remote)
        assert await controller.refresh() is None
