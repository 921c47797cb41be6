"""Session state machine and the single writer of shared state.

Phases::

    anonymous --AuthenticationStarted--> authenticating
    anonymous/authenticating --SessionActivated--> active(user)
    any --PasswordRecoveryStarted--> recovering_password
    recovering_password --SessionActivated--> active(user)
    authenticating --AuthenticationFailed--> anonymous
    authenticating --VerificationPending--> anonymous
    any --SignedOut--> anonymous

Every session change bumps ``epoch``. A ``DataLoaded`` intent carries the
epoch it was started under and is dropped when the session has moved on,
so a late reconciliation can never repopulate state for a stale user.
"""

import logging
from collections.abc import Callable
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from careersync.core.schemas import ActivityEntry, Application, Job, SavedResume, User
from careersync.sync.activity import DEFAULT_MAX_ENTRIES, prepend_entry
from careersync.sync.reconciler import SyncedView

logger = logging.getLogger(__name__)

SessionPhase = Literal["anonymous", "authenticating", "recovering_password", "active"]


class AppState(BaseModel):
    """Immutable snapshot handed to consumers."""

    model_config = ConfigDict(frozen=True)

    phase: SessionPhase = "anonymous"
    user: User | None = None
    epoch: int = 0
    loaded: bool = False
    jobs: tuple[Job, ...] = ()
    applications: tuple[Application, ...] = ()
    resumes: tuple[SavedResume, ...] = ()
    active_analysis: dict[str, Any] | None = None
    activities: tuple[ActivityEntry, ...] = ()
    application_owners: dict[str, str] = Field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.phase == "active" and self.user is not None


class _Intent(BaseModel):
    model_config = ConfigDict(frozen=True)


class AuthenticationStarted(_Intent):
    pass


class AuthenticationFailed(_Intent):
    pass


class VerificationPending(_Intent):
    """Sign-up accepted, but no session until the email is confirmed."""


class PasswordRecoveryStarted(_Intent):
    pass


class SessionActivated(_Intent):
    user: User


class SignedOut(_Intent):
    pass


class DataLoaded(_Intent):
    epoch: int
    view: SyncedView


class ProfileRenamed(_Intent):
    name: str


class JobAdded(_Intent):
    job: Job


class JobReplaced(_Intent):
    job: Job


class JobsCleared(_Intent):
    pass


class ApplicationAdded(_Intent):
    application: Application
    owner_id: str


class ApplicationReplaced(_Intent):
    application: Application


class ResumeAdded(_Intent):
    resume: SavedResume


class AnalysisActivated(_Intent):
    analysis: dict[str, Any]


class ActivityRecorded(_Intent):
    entry: ActivityEntry
    max_entries: int = DEFAULT_MAX_ENTRIES


Intent = (
    AuthenticationStarted
    | AuthenticationFailed
    | VerificationPending
    | PasswordRecoveryStarted
    | SessionActivated
    | SignedOut
    | DataLoaded
    | ProfileRenamed
    | JobAdded
    | JobReplaced
    | JobsCleared
    | ApplicationAdded
    | ApplicationReplaced
    | ResumeAdded
    | AnalysisActivated
    | ActivityRecorded
)

_SESSION_INTENTS = (
    AuthenticationStarted,
    AuthenticationFailed,
    VerificationPending,
    PasswordRecoveryStarted,
    SessionActivated,
    SignedOut,
    DataLoaded,
)


def reduce(state: AppState, intent: Intent) -> AppState:
    """Return the state that results from applying ``intent`` to ``state``."""
    if isinstance(intent, _SESSION_INTENTS):
        return _reduce_session(state, intent)
    if not state.is_active:
        logger.debug("Ignoring %s outside an active session", type(intent).__name__)
        return state
    return _reduce_data(state, intent)


def _reduce_session(state: AppState, intent: Intent) -> AppState:
    if isinstance(intent, AuthenticationStarted):
        if state.phase != "anonymous":
            return state
        return state.model_copy(update={"phase": "authenticating"})

    if isinstance(intent, (AuthenticationFailed, VerificationPending)):
        if state.phase != "authenticating":
            return state
        return state.model_copy(update={"phase": "anonymous"})

    if isinstance(intent, PasswordRecoveryStarted):
        return AppState(phase="recovering_password", epoch=state.epoch + 1)

    if isinstance(intent, SessionActivated):
        current = state.user
        if (
            state.phase == "active"
            and current is not None
            and current.id == intent.user.id
            and current.role == intent.user.role
        ):
            # Token refresh or metadata change for the same session: keep data.
            return state.model_copy(update={"user": intent.user})
        return AppState(phase="active", user=intent.user, epoch=state.epoch + 1)

    if isinstance(intent, SignedOut):
        return AppState(epoch=state.epoch + 1)

    if isinstance(intent, DataLoaded):
        if (
            not state.is_active
            or intent.epoch != state.epoch
            or state.user is None
            or intent.view.user_id != state.user.id
        ):
            logger.info("Dropping stale reconciliation for '%s'", intent.view.user_id)
            return state
        view = intent.view
        return state.model_copy(update={
            "loaded": True,
            "jobs": tuple(view.jobs),
            "applications": tuple(view.applications),
            "resumes": tuple(view.resumes),
            "active_analysis": view.active_analysis,
            "application_owners": dict(view.application_owners),
        })

    return state


def _reduce_data(state: AppState, intent: Intent) -> AppState:
    if isinstance(intent, ProfileRenamed) and state.user is not None:
        return state.model_copy(update={"user": state.user.model_copy(update={"name": intent.name})})

    if isinstance(intent, JobAdded):
        return state.model_copy(update={"jobs": (intent.job, *state.jobs)})

    if isinstance(intent, JobReplaced):
        jobs = tuple(intent.job if j.id == intent.job.id else j for j in state.jobs)
        return state.model_copy(update={"jobs": jobs})

    if isinstance(intent, JobsCleared):
        return state.model_copy(update={"jobs": ()})

    if isinstance(intent, ApplicationAdded):
        owners = {**state.application_owners, intent.application.id: intent.owner_id}
        return state.model_copy(update={
            "applications": (intent.application, *state.applications),
            "application_owners": owners,
        })

    if isinstance(intent, ApplicationReplaced):
        apps = tuple(
            intent.application if a.id == intent.application.id else a
            for a in state.applications
        )
        return state.model_copy(update={"applications": apps})

    if isinstance(intent, ResumeAdded):
        return state.model_copy(update={
            "resumes": (intent.resume, *state.resumes),
            "active_analysis": intent.resume.data,
        })

    if isinstance(intent, AnalysisActivated):
        return state.model_copy(update={"active_analysis": intent.analysis})

    if isinstance(intent, ActivityRecorded):
        activities = prepend_entry(state.activities, intent.entry, intent.max_entries)
        return state.model_copy(update={"activities": activities})

    return state


StateListener = Callable[[AppState], None]


class SessionStore:
    """Holds the current AppState; ``dispatch`` is the only way to change it.

    Usage::

        store = SessionStore()
        store.subscribe(render)
        store.dispatch(SessionActivated(user=user))
    """

    def __init__(self, initial: AppState | None = None) -> None:
        self._state = initial or AppState()
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> AppState:
        return self._state

    def dispatch(self, intent: Intent) -> AppState:
        new_state = reduce(self._state, intent)
        if new_state is not self._state:
            self._state = new_state
            for listener in list(self._listeners):
                listener(new_state)
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener called after every state change. Returns an unsubscriber."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
