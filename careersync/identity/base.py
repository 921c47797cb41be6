"""Abstract identity provider and the session types it hands out."""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, Literal, get_args

from pydantic import BaseModel, ConfigDict, Field

from careersync.core.schemas import User, UserRole

AuthEventType = Literal["SIGNED_IN", "SIGNED_OUT", "TOKEN_REFRESHED", "PASSWORD_RECOVERY"]


class AuthUser(BaseModel):
    """The identity provider's view of a user; profile lives in ``user_metadata``."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str = ""
    phone: str | None = None
    user_metadata: dict[str, Any] = Field(default_factory=dict)


class Session(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str = ""
    user: AuthUser


class SignUpResult(BaseModel):
    """Outcome of a sign-up: a session, or a pending email verification."""

    model_config = ConfigDict(frozen=True)

    session: Session | None = None
    pending_verification: bool = False


class AuthEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: AuthEventType
    session: Session | None = None


AuthListener = Callable[[AuthEvent], Awaitable[None]]


class IdentityProvider(ABC):
    """Black-box identity service. Failures raise ``IdentityError``."""

    @abstractmethod
    async def sign_up(self, email: str, password: str, metadata: dict[str, Any]) -> SignUpResult:
        """Register a user with profile metadata (full_name, role, address)."""

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> Session:
        """Authenticate with email and password."""

    @abstractmethod
    async def sign_in_with_oauth(self, provider: str) -> str:
        """Start a redirect-based sign-in. Returns the URL to send the user to."""

    @abstractmethod
    async def sign_out(self) -> None:
        """End the current session."""

    @abstractmethod
    async def get_session(self) -> Session | None:
        """Return the current session, if any."""

    @abstractmethod
    async def update_user(self, metadata: dict[str, Any]) -> AuthUser:
        """Merge ``metadata`` into the current user's metadata."""

    @abstractmethod
    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        """Deliver auth events to ``listener``. Returns a callable that unsubscribes."""


def user_from_session(session: Session, role_override: UserRole | None = None) -> User:
    """Build the application User from a session, applying a pending role if given."""
    auth_user = session.user
    metadata = auth_user.user_metadata
    role = role_override or metadata.get("role")
    if role not in get_args(UserRole):
        role = "candidate"
    name = metadata.get("full_name") or auth_user.email.split("@")[0] or "User"
    return User(
        id=auth_user.id,
        name=name,
        email=auth_user.email,
        role=role,
        phone=metadata.get("phone") or auth_user.phone,
        address=metadata.get("address"),
    )
