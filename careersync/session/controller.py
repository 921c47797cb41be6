"""Session controller: turns identity events into state intents and reconciliations.

Role assignment on sign-in:
  1. A pending role in the cache (chosen before a redirect-based sign-in)
     wins; it is written to the identity metadata and then removed
  2. Otherwise the role stored in the user's metadata
  3. Otherwise 'candidate'
"""

import logging
from collections.abc import Callable
from typing import Any

from careersync.core.cache import LocalCache
from careersync.core.schemas import User, UserRole
from careersync.identity.base import AuthEvent, IdentityProvider, Session, user_from_session
from careersync.identity.errors import IdentityError, friendly_identity_error
from careersync.session.state import (
    AuthenticationFailed,
    AuthenticationStarted,
    DataLoaded,
    PasswordRecoveryStarted,
    SessionActivated,
    SessionStore,
    SignedOut,
    VerificationPending,
)
from careersync.sync.reconciler import Reconciler, SyncedView

logger = logging.getLogger(__name__)


class SessionController:
    """Owns the link between the identity provider and the session store.

    Usage::

        controller = SessionController(identity, store, reconciler, cache)
        await controller.start()          # restore session + listen for events
        user = await controller.sign_in(email, password)
    """

    def __init__(
        self,
        identity: IdentityProvider,
        store: SessionStore,
        reconciler: Reconciler,
        cache: LocalCache,
    ) -> None:
        self._identity = identity
        self._store = store
        self._reconciler = reconciler
        self._cache = cache
        self._unsubscribe: Callable[[], None] | None = None

    async def start(self, recovering_password: bool = False) -> None:
        """Subscribe to auth events and restore any existing session."""
        if self._unsubscribe is None:
            self._unsubscribe = self._identity.subscribe(self.handle_event)
        if recovering_password:
            self._store.dispatch(PasswordRecoveryStarted())
            return
        session = await self._identity.get_session()
        if session is not None:
            # Peek only: the pending role is consumed on the SIGNED_IN event.
            user = user_from_session(session, self._cache.get_pending_role())
            await self._activate(user)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def handle_event(self, event: AuthEvent) -> None:
        logger.debug("Auth event %s", event.type)
        if event.type == "PASSWORD_RECOVERY":
            self._store.dispatch(PasswordRecoveryStarted())
        elif event.type in ("SIGNED_IN", "TOKEN_REFRESHED") and event.session is not None:
            if self._store.state.phase == "recovering_password" and event.type == "TOKEN_REFRESHED":
                return
            user = await self._resolve_user(event.session)
            await self._activate(user)
        elif event.type == "SIGNED_OUT":
            self._clear_session()

    # -- user-initiated flows -------------------------------------------------------

    async def sign_in(self, email: str, password: str) -> User:
        """Password sign-in. Raises a user-presentable IdentityError on failure."""
        self._store.dispatch(AuthenticationStarted())
        try:
            session = await self._identity.sign_in(email.strip(), password)
        except IdentityError as e:
            self._store.dispatch(AuthenticationFailed())
            raise friendly_identity_error(e) from e
        user = await self._resolve_user(session)
        await self._activate(user)
        return user

    async def sign_up(
        self,
        email: str,
        password: str,
        name: str,
        role: UserRole,
        address: str | None = None,
    ) -> User | None:
        """Register a user. Returns None while email verification is pending."""
        self._store.dispatch(AuthenticationStarted())
        metadata: dict[str, Any] = {"full_name": name, "role": role}
        if address:
            metadata["address"] = address
        try:
            result = await self._identity.sign_up(email.strip(), password, metadata)
        except IdentityError as e:
            self._store.dispatch(AuthenticationFailed())
            raise friendly_identity_error(e) from e
        if result.session is None:
            self._store.dispatch(VerificationPending())
            logger.info("Verification pending for %s", email.strip())
            return None
        user = user_from_session(result.session)
        await self._activate(user)
        return user

    async def begin_oauth(self, provider: str, role: UserRole) -> str:
        """Start a redirect sign-in, remembering the chosen role across the redirect."""
        self._cache.set_pending_role(role)
        try:
            return await self._identity.sign_in_with_oauth(provider)
        except IdentityError as e:
            self._cache.clear_pending_role()
            raise friendly_identity_error(e) from e

    async def sign_out(self) -> None:
        try:
            await self._identity.sign_out()
        except IdentityError as e:
            logger.warning("Identity sign-out failed, clearing local session anyway: %s", e)
        self._clear_session()

    async def update_profile(self, metadata: dict[str, Any]) -> User | None:
        """Persist profile metadata and refresh the in-memory user."""
        try:
            auth_user = await self._identity.update_user(metadata)
        except IdentityError as e:
            raise friendly_identity_error(e) from e
        current = self._store.state.user
        if current is None or current.id != auth_user.id:
            return None
        user = user_from_session(Session(user=auth_user), current.role)
        self._store.dispatch(SessionActivated(user=user))
        return self._store.state.user

    async def refresh(self) -> SyncedView | None:
        """Re-run reconciliation for the active session."""
        state = self._store.state
        if not state.is_active or state.user is None:
            return None
        return await self._load(state.user, state.epoch)

    # -- internals ----------------------------------------------------------------

    async def _resolve_user(self, session: Session) -> User:
        pending = self._cache.get_pending_role()
        if pending is not None:
            try:
                await self._identity.update_user({"role": pending})
            except IdentityError as e:
                logger.warning("Could not persist pending role '%s': %s", pending, e)
            self._cache.clear_pending_role()
        return user_from_session(session, pending)

    async def _activate(self, user: User) -> None:
        before = self._store.state.epoch
        state = self._store.dispatch(SessionActivated(user=user))
        if state.epoch != before:
            logger.info("Session active for %s '%s'", user.role, user.id)
            await self._load(user, state.epoch)

    async def _load(self, user: User, epoch: int) -> SyncedView | None:
        try:
            view = await self._reconciler.reconcile(user)
        except Exception:  # noqa: BLE001
            logger.exception("Reconciliation failed for '%s'", user.id)
            return None
        self._store.dispatch(DataLoaded(epoch=epoch, view=view))
        return view

    def _clear_session(self) -> None:
        self._store.dispatch(SignedOut())
        self._cache.clear_pending_role()
