"""Watcher data models.

Watcher kinds are pydantic models so that their configuration is validated
once, at definition time, and round-trips through JSON exactly.  Watcher
and WatcherEvent are plain dataclasses, serialised by hand so that the
persisted shape stays under our control.

Key classes
-----------
WatcherKindBase  — common fields (interval_secs, one_shot) + helpers
<Kind>Watch      — one model per kind, selected by its ``type`` discriminant
Watcher          — the persisted unit of monitoring intent
WatcherEvent     — transient record handed to the event sink on a trigger
<kind>_payload() — consistent trigger payload shapes for checkers to return

Kind quick-reference
--------------------
interval   interval_secs                                   (recurring timer)
email      sender?, subject_contains?                      (min 60s)
calendar   lookahead_hours                                 (min 300s)
github     repo, events[], github_token?                   (min 30s)
file       path
message    keyword
scheduled  cron_expr, task                                 (interval = cron resolution)
one_shot   at (unix timestamp), task                       (always one-shot)

New kinds are added with ``@register_kind`` on a WatcherKindBase subclass;
a matching checker must be registered with the CheckerRegistry before
watchers of that kind can be scheduled.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, ClassVar, Literal, Mapping, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from vigil.exceptions import ConfigError, UnknownKindError

# ---------------------------------------------------------------------------
# Kind registry
# ---------------------------------------------------------------------------

_KINDS: dict[str, type["WatcherKindBase"]] = {}

_K = TypeVar("_K", bound=type["WatcherKindBase"])


def register_kind(cls: _K) -> _K:
    """Class decorator: make *cls* resolvable by its ``type`` discriminant."""
    kind_type = cls.model_fields["type"].default
    if not isinstance(kind_type, str) or not kind_type:
        raise TypeError(f"{cls.__name__} must declare a string default for 'type'")
    _KINDS[kind_type] = cls
    return cls


def kind_types() -> list[str]:
    """Return every registered kind discriminant."""
    return sorted(_KINDS)


def parse_kind(data: Mapping[str, Any] | "WatcherKindBase") -> "WatcherKindBase":
    """Build a validated kind from its serialised form.

    Raises:
        UnknownKindError: ``type`` is missing or not registered.
        ConfigError:      the variant's fields failed validation.
    """
    if isinstance(data, WatcherKindBase):
        return data
    kind_type = data.get("type")
    cls = _KINDS.get(kind_type) if isinstance(kind_type, str) else None
    if cls is None:
        raise UnknownKindError(str(kind_type))
    try:
        return cls.model_validate(dict(data))
    except ValidationError as exc:
        errors = exc.errors(include_url=False, include_context=False)
        fields = ", ".join(".".join(str(p) for p in e["loc"]) or kind_type for e in errors)
        raise ConfigError(f"Invalid '{kind_type}' watcher: {fields}", errors=errors) from exc


# ---------------------------------------------------------------------------
# Kind models
# ---------------------------------------------------------------------------


class WatcherKindBase(BaseModel):
    """Fields every watcher kind carries."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    MIN_INTERVAL_SECS: ClassVar[float] = 0.0
    POLLING: ClassVar[bool] = False
    EVENT_DRIVEN: ClassVar[bool] = False
    SCHEDULED: ClassVar[bool] = False

    type: str
    interval_secs: float = Field(gt=0, description="Seconds between checks.")
    one_shot: bool = Field(default=False, description="Deactivate after the first trigger.")

    def effective_interval(self) -> float:
        """Interval actually used for scheduling, clamped to the kind's minimum."""
        return max(self.interval_secs, self.MIN_INTERVAL_SECS)

    @property
    def is_polling(self) -> bool:
        return self.POLLING

    @property
    def is_event_driven(self) -> bool:
        return self.EVENT_DRIVEN

    @property
    def is_scheduled(self) -> bool:
        return self.SCHEDULED

    def describe(self) -> str:
        return f"{self.type} watcher (every {self.interval_secs:g}s)"

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


@register_kind
class IntervalWatch(WatcherKindBase):
    """Fires every ``interval_secs`` seconds."""

    type: Literal["interval"] = "interval"
    SCHEDULED: ClassVar[bool] = True

    def describe(self) -> str:
        mode = "once after" if self.one_shot else "every"
        return f"Interval watcher ({mode} {self.interval_secs:g}s)"


@register_kind
class EmailWatch(WatcherKindBase):
    """Watches a mailbox for messages matching sender / subject filters."""

    type: Literal["email"] = "email"
    MIN_INTERVAL_SECS: ClassVar[float] = 60.0
    POLLING: ClassVar[bool] = True

    interval_secs: float = Field(default=300.0, gt=0)
    sender: str | None = None
    subject_contains: str | None = None

    def describe(self) -> str:
        desc = f"Email watcher (every {self.interval_secs:g}s)"
        if self.sender:
            desc += f" from: {self.sender}"
        if self.subject_contains:
            desc += f" subject contains: {self.subject_contains}"
        return desc


@register_kind
class CalendarWatch(WatcherKindBase):
    """Watches a calendar for events starting within ``lookahead_hours``."""

    type: Literal["calendar"] = "calendar"
    MIN_INTERVAL_SECS: ClassVar[float] = 300.0
    POLLING: ClassVar[bool] = True

    interval_secs: float = Field(default=300.0, gt=0)
    lookahead_hours: int = Field(default=24, gt=0)

    def describe(self) -> str:
        return (
            f"Calendar watcher ({self.lookahead_hours}h lookahead, "
            f"every {self.interval_secs:g}s)"
        )


@register_kind
class GitHubWatch(WatcherKindBase):
    """Watches a repository for new events (pushes, pull requests, issues)."""

    type: Literal["github"] = "github"
    MIN_INTERVAL_SECS: ClassVar[float] = 30.0
    POLLING: ClassVar[bool] = True

    interval_secs: float = Field(default=60.0, gt=0)
    repo: str
    events: list[str] = Field(default_factory=list)
    github_token: str | None = Field(default=None, repr=False)

    @field_validator("repo")
    @classmethod
    def _owner_slash_repo(cls, v: str) -> str:
        owner, sep, name = v.partition("/")
        if not sep or not owner or not name or "/" in name:
            raise ValueError("repo must be in 'owner/repo' format")
        return v

    def describe(self) -> str:
        events = ", ".join(self.events) or "all"
        return (
            f"GitHub watcher for {self.repo} (events: {events}, "
            f"every {self.interval_secs:g}s)"
        )


@register_kind
class FileWatch(WatcherKindBase):
    """Watches a file or directory for changes."""

    type: Literal["file"] = "file"
    EVENT_DRIVEN: ClassVar[bool] = True

    interval_secs: float = Field(default=5.0, gt=0)
    path: str = Field(min_length=1)

    def describe(self) -> str:
        return f"File watcher for {self.path}"


@register_kind
class MessageWatch(WatcherKindBase):
    """Watches incoming messages for a keyword."""

    type: Literal["message"] = "message"
    EVENT_DRIVEN: ClassVar[bool] = True

    interval_secs: float = Field(default=5.0, gt=0)
    keyword: str = Field(min_length=1)

    def describe(self) -> str:
        return f"Message watcher for keyword: {self.keyword}"


@register_kind
class ScheduledWatch(WatcherKindBase):
    """Runs ``task`` on a cron schedule.

    ``interval_secs`` is the resolution at which cron slots are noticed.
    """

    type: Literal["scheduled"] = "scheduled"
    SCHEDULED: ClassVar[bool] = True

    interval_secs: float = Field(default=60.0, gt=0)
    cron_expr: str
    task: str = ""

    @field_validator("cron_expr")
    @classmethod
    def _valid_cron(cls, v: str) -> str:
        from croniter import croniter

        if not croniter.is_valid(v):
            raise ValueError(f"invalid cron expression: {v!r}")
        return v

    def describe(self) -> str:
        return f"Scheduled task '{self.task}' (cron: {self.cron_expr})"


@register_kind
class OneShotWatch(WatcherKindBase):
    """Runs ``task`` once, as soon as the ``at`` timestamp has passed."""

    type: Literal["one_shot"] = "one_shot"
    SCHEDULED: ClassVar[bool] = True

    interval_secs: float = Field(default=1.0, gt=0)
    one_shot: Literal[True] = True
    at: float
    task: str = ""

    def describe(self) -> str:
        when = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(self.at))
        return f"One-shot task '{self.task}' at {when}"


# ---------------------------------------------------------------------------
# Watcher: the persisted unit
# ---------------------------------------------------------------------------


@dataclass
class Watcher:
    """A persisted definition of a condition to monitor plus its action.

    ``action`` and ``reply_channel`` are opaque: they are forwarded to the
    event sink verbatim and never interpreted here.
    """

    kind: WatcherKindBase
    action: str
    reply_channel: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    active: bool = True
    created_at: float = field(default_factory=time.time)

    @property
    def one_shot(self) -> bool:
        return self.kind.one_shot

    def description(self) -> str:
        return self.kind.describe()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.to_dict(),
            "action": self.action,
            "reply_channel": self.reply_channel,
            "active": self.active,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Watcher":
        return cls(
            id=d["id"],
            kind=parse_kind(d["kind"]),
            action=d.get("action", ""),
            reply_channel=d.get("reply_channel", ""),
            active=bool(d.get("active", True)),
            created_at=float(d.get("created_at", time.time())),
        )


# ---------------------------------------------------------------------------
# WatcherEvent: transient record emitted on each trigger
# ---------------------------------------------------------------------------


@dataclass
class WatcherEvent:
    """What the event sink receives when a watcher's condition fires."""

    watcher_id: str
    kind: str                 # discriminant of the firing watcher, e.g. "email"
    reply_channel: str
    action: str
    payload: Any              # produced by the checker; opaque here
    triggered_at: float = field(default_factory=time.time)

    @classmethod
    def for_watcher(cls, watcher: Watcher, payload: Any) -> "WatcherEvent":
        return cls(
            watcher_id=watcher.id,
            kind=watcher.kind.type,
            reply_channel=watcher.reply_channel,
            action=watcher.action,
            payload=payload,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "watcher_id": self.watcher_id,
            "kind": self.kind,
            "reply_channel": self.reply_channel,
            "action": self.action,
            "payload": self.payload,
            "triggered_at": self.triggered_at,
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "WatcherEvent":
        return cls(
            watcher_id=d["watcher_id"],
            kind=d.get("kind", ""),
            reply_channel=d.get("reply_channel", ""),
            action=d.get("action", ""),
            payload=d.get("payload"),
            triggered_at=float(d.get("triggered_at", time.time())),
        )


# ---------------------------------------------------------------------------
# Trigger payloads
# ---------------------------------------------------------------------------
#
# Checkers may return any JSON-serialisable payload.  These helpers give the
# common kinds one consistent shape, tagged with an ``event`` name.


def email_payload(sender: str, subject: str, body: str = "") -> dict[str, Any]:
    """Payload for a matching message in a watched mailbox."""
    return {"event": "email_received", "from": sender, "subject": subject, "body": body}


def calendar_payload(title: str, starts_at: float) -> dict[str, Any]:
    """Payload for a calendar event inside the lookahead window."""
    return {"event": "calendar_event", "title": title, "time": starts_at}


def file_changed_payload(path: str, change_type: str) -> dict[str, Any]:
    return {"event": "file_changed", "path": path, "change_type": change_type}


def github_payload(event_type: str, data: Mapping[str, Any]) -> dict[str, Any]:
    """Payload for a repository event; ``event`` becomes ``github_<event_type>``."""
    return {"event": f"github_{event_type}", "data": dict(data)}


def message_payload(keyword: str, text: str, sender: str | None = None) -> dict[str, Any]:
    return {"event": "message_received", "keyword": keyword, "text": text, "from": sender}


def task_payload(task: str, **extra: Any) -> dict[str, Any]:
    """Payload for a scheduled or one-shot task coming due."""
    return {"event": "task_triggered", "task": task, **extra}
