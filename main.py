"""CLI entry point for the career sync client."""

import argparse
import asyncio
import json
import logging
import sys
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from careersync.core.cache import LocalCache, open_cache
from careersync.core.config import Settings
from careersync.core.db import init_db
from careersync.core.schemas import Job, User
from careersync.remote.sqlite_store import SqliteRemoteStore
from careersync.session.state import DataLoaded, SessionActivated, SessionStore
from careersync.sync.mutations import MutationCoordinator
from careersync.sync.reconciler import Reconciler, SyncedView


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML file (default: built-in settings)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )


def _add_user(parser: argparse.ArgumentParser, role: str | None = None) -> None:
    parser.add_argument("--user-id", required=True, help="Acting user id")
    parser.add_argument("--email", default="", help="Acting user email")
    parser.add_argument("--name", default="", help="Acting user display name")
    if role is None:
        parser.add_argument(
            "--role",
            default="candidate",
            choices=["candidate", "employer"],
            help="Acting user role (default: candidate)",
        )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Career sync client - reconcile and mutate jobs and applications",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # --- reconcile ---
    reconcile_parser = subparsers.add_parser(
        "reconcile", help="Print the role-scoped view for a user as JSON",
    )
    _add_user(reconcile_parser)
    _add_common(reconcile_parser)

    # --- post-job ---
    post_parser = subparsers.add_parser("post-job", help="Post a job as an employer")
    _add_user(post_parser, role="employer")
    post_parser.add_argument("--job-id", default=None, help="Job id (default: random)")
    post_parser.add_argument("--title", required=True)
    post_parser.add_argument("--company", default="")
    post_parser.add_argument("--location", default="")
    post_parser.add_argument("--salary", default="")
    post_parser.add_argument("--type", dest="employment_type", default="")
    post_parser.add_argument("--description", default="")
    post_parser.add_argument(
        "--requirement",
        action="append",
        default=[],
        help="Requirement line (repeatable)",
    )
    _add_common(post_parser)

    # --- apply ---
    apply_parser = subparsers.add_parser("apply", help="Apply to a job as a candidate")
    _add_user(apply_parser, role="candidate")
    apply_parser.add_argument("--job-id", required=True)
    _add_common(apply_parser)

    # --- set-status ---
    status_parser = subparsers.add_parser(
        "set-status", help="Change an application's status as the owning employer",
    )
    _add_user(status_parser, role="employer")
    status_parser.add_argument("--application-id", required=True)
    status_parser.add_argument("--status", required=True)
    status_parser.add_argument(
        "--interview-date",
        default=None,
        help="ISO date/time of the interview (with --status Interview)",
    )
    _add_common(status_parser)

    args = parser.parse_args(argv)
    if not hasattr(args, "role"):
        args.role = "employer" if args.command in ("post-job", "set-status") else "candidate"
    return args


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def load_settings(path: str | None) -> Settings:
    if path is None:
        return Settings()
    return Settings.from_yaml(path)


def _user_from_args(args: argparse.Namespace) -> User:
    return User(
        id=args.user_id,
        name=args.name or args.email.split("@")[0] or "User",
        email=args.email,
        role=args.role,
    )


def _dump(data: Any) -> str:
    return json.dumps(data, indent=2, default=str)


def view_to_json(view: SyncedView) -> str:
    """Export a reconciled view as a JSON string (camelCase records)."""
    return _dump({
        "jobs": [j.model_dump(mode="json", by_alias=True) for j in view.jobs],
        "applications": [a.model_dump(mode="json", by_alias=True) for a in view.applications],
        "resumes": [r.model_dump(mode="json") for r in view.resumes],
    })


async def _with_session(
    settings: Settings,
    user: User,
    action: Callable[[MutationCoordinator, SessionStore, SyncedView], Awaitable[str]],
) -> str:
    """Open the stores, activate ``user``, reconcile, then run ``action``."""
    cache: LocalCache = open_cache(settings.cache)
    conn = init_db(settings.remote.path)
    try:
        remote = SqliteRemoteStore(conn)
        store = SessionStore()
        epoch = store.dispatch(SessionActivated(user=user)).epoch
        view = await Reconciler(remote, cache).reconcile(user)
        store.dispatch(DataLoaded(epoch=epoch, view=view))
        coordinator = MutationCoordinator(store, cache, remote, settings=settings)
        output = await action(coordinator, store, view)
        await coordinator.replicator.drain()
        for failure in coordinator.replicator.failures:
            print(f"Warning: remote {failure.operation} failed: {failure.error}", file=sys.stderr)
        return output
    finally:
        conn.close()
        cache.close()


async def cmd_reconcile(settings: Settings, args: argparse.Namespace) -> str:
    async def action(_c: MutationCoordinator, _s: SessionStore, view: SyncedView) -> str:
        return view_to_json(view)

    return await _with_session(settings, _user_from_args(args), action)


async def cmd_post_job(settings: Settings, args: argparse.Namespace) -> str:
    job = Job(
        id=args.job_id or uuid.uuid4().hex,
        title=args.title,
        company=args.company,
        location=args.location,
        salary=args.salary,
        employment_type=args.employment_type,
        description=args.description,
        requirements=args.requirement,
    )

    async def action(coordinator: MutationCoordinator, _s: SessionStore, _v: SyncedView) -> str:
        posted = await coordinator.post_job(job)
        if posted is None:
            msg = f"Job '{job.id}' was not posted"
            raise ValueError(msg)
        return _dump(posted.model_dump(mode="json", by_alias=True))

    return await _with_session(settings, _user_from_args(args), action)


async def cmd_apply(settings: Settings, args: argparse.Namespace) -> str:
    async def action(coordinator: MutationCoordinator, store: SessionStore, _v: SyncedView) -> str:
        job = next((j for j in store.state.jobs if j.id == args.job_id), None)
        if job is None:
            msg = f"Job not found: {args.job_id}"
            raise ValueError(msg)
        application = await coordinator.apply_to_job(job)
        if application is None:
            msg = f"Could not apply to job '{args.job_id}'"
            raise ValueError(msg)
        return _dump(application.model_dump(mode="json", by_alias=True))

    return await _with_session(settings, _user_from_args(args), action)


async def cmd_set_status(settings: Settings, args: argparse.Namespace) -> str:
    interview_date = datetime.fromisoformat(args.interview_date) if args.interview_date else None

    async def action(coordinator: MutationCoordinator, _s: SessionStore, _v: SyncedView) -> str:
        updated = await coordinator.update_application_status(
            args.application_id, args.status, interview_date,
        )
        if updated is None:
            msg = f"Application '{args.application_id}' was not updated"
            raise ValueError(msg)
        return _dump(updated.model_dump(mode="json", by_alias=True))

    return await _with_session(settings, _user_from_args(args), action)


_COMMANDS = {
    "reconcile": cmd_reconcile,
    "post-job": cmd_post_job,
    "apply": cmd_apply,
    "set-status": cmd_set_status,
}


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = load_settings(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        output = asyncio.run(_COMMANDS[args.command](settings, args))
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    print(output)


if __name__ == "__main__":
    main()
