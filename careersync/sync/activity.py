"""Bounded, most-recent-first activity log."""

import uuid

from careersync.core.schemas import ActivityCategory, ActivityEntry

DEFAULT_MAX_ENTRIES = 20

# Checked in order; first keyword found in the lowercased title wins.
_TITLE_KEYWORDS: list[tuple[str, ActivityCategory]] = [
    ("resume", "resume"),
    ("interview", "interview"),
    ("job", "job_match"),
    ("skill", "skills"),
]
_FALLBACK_CATEGORY: ActivityCategory = "cover_letter"


def classify_title(title: str) -> ActivityCategory:
    """Infer a category from an entry title. Used only when none is given."""
    lowered = title.lower()
    for keyword, category in _TITLE_KEYWORDS:
        if keyword in lowered:
            return category
    return _FALLBACK_CATEGORY


def make_entry(
    title: str,
    meta: str = "",
    category: ActivityCategory | None = None,
) -> ActivityEntry:
    return ActivityEntry(
        id=uuid.uuid4().hex,
        type=category or classify_title(title),
        title=title,
        meta=meta,
    )


def prepend_entry(
    entries: tuple[ActivityEntry, ...],
    entry: ActivityEntry,
    max_entries: int = DEFAULT_MAX_ENTRIES,
) -> tuple[ActivityEntry, ...]:
    """Return a new log with ``entry`` first; oldest entries past the cap are dropped."""
    return (entry, *entries)[:max_entries]
