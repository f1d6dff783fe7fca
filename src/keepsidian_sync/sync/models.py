"""Data contracts for the sync engine.

Defines the value objects passed between the pull and push pipelines:

- ``Resolution``: Enum of actions the resolver can choose for a note.
- ``AttachmentRef``: A reference from a note to a binary attachment.
- ``Note``: The canonical unit of synchronisation.
- ``ExistingFileState``: Snapshot of a local note file at decision time.
- ``AttachmentState`` / ``AttachmentResult``: Per-attachment reconciliation.
- ``RemoteNote`` / ``NotePage``: Payloads returned by the note service.
- ``AttachmentPayload`` / ``PushCandidate``: Outgoing push payloads.
- ``PushNoteResult`` / ``PushBatchResponse``: Results of a push batch.
- ``NoteOutcome`` / ``PassContext`` / ``SyncCallbacks``: Per-pass bookkeeping.

Pydantic models are frozen (immutable).  ``PassContext`` is a plain
dataclass because a pipeline appends to it while the pass runs.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class Resolution(str, Enum):
    """Action chosen for one incoming note."""

    CREATE = "create"
    OVERWRITE = "overwrite"
    SKIP = "skip"
    MERGE = "merge"
    FORK = "fork"


class AttachmentRef(BaseModel):
    """Reference from a note to a binary attachment.

    Attributes:
        identifier: Remote URL (pull) or vault path (push).
        display_name: Preferred local file name, when the service sends one.
    """

    identifier: str
    display_name: str | None = None

    model_config = {"frozen": True}


class Note(BaseModel):
    """A note in structured form.

    Attributes:
        title: Note title; the local file is ``<title>.md``.
        body: Note content after the frontmatter block.
        frontmatter: Pass-through frontmatter fields in insertion order.
            Reserved timestamp and label keys live in the typed fields
            below instead.
        created: Creation time reported by the note service.
        updated: Last modification time reported by the note service.
        labels: Note labels.
        attachment_refs: Attachments referenced by the note, in order.
    """

    title: str
    body: str = ""
    frontmatter: dict[str, str] = Field(default_factory=dict)
    created: datetime | None = None
    updated: datetime | None = None
    labels: frozenset[str] = frozenset()
    attachment_refs: list[AttachmentRef] = Field(default_factory=list)

    model_config = {"frozen": True}

    @field_validator("frontmatter")
    @classmethod
    def _check_frontmatter(cls, value: dict[str, str]) -> dict[str, str]:
        cleaned: dict[str, str] = {}
        for key, val in value.items():
            key = key.strip()
            if not key or ":" in key or "\n" in key:
                raise ValueError(f"Invalid frontmatter key: {key!r}")
            if "\n" in val:
                raise ValueError(
                    f"Frontmatter value for {key!r} spans several lines"
                )
            cleaned[key] = val.strip()
        return cleaned

    @field_validator("labels")
    @classmethod
    def _check_labels(cls, value: frozenset[str]) -> frozenset[str]:
        for label in value:
            if "\n" in label:
                raise ValueError(f"Label {label!r} spans several lines")
        return frozenset(
            label.strip() for label in value if label and label.strip()
        )


class ExistingFileState(BaseModel):
    """Snapshot of a local note file, built fresh for every decision.

    Attributes:
        body: File body after the frontmatter block.
        frontmatter: Every frontmatter field of the file, in order.
        created_stamp: ``GoogleKeepCreatedDate`` from the frontmatter.
        updated_stamp: ``GoogleKeepUpdatedDate`` from the frontmatter.
        fs_created_time: File system creation time.
        fs_modified_time: File system modification time.
        sync_stamp: ``KeepSidianLastSyncedDate`` from the frontmatter.
        raw_frontmatter: Frontmatter block exactly as written, or ``None``
            when the file has none.
    """

    body: str
    frontmatter: dict[str, str] = Field(default_factory=dict)
    raw_frontmatter: str | None = None
    created_stamp: datetime | None = None
    updated_stamp: datetime | None = None
    fs_created_time: datetime | None = None
    fs_modified_time: datetime | None = None
    sync_stamp: datetime | None = None

    model_config = {"frozen": True}

    @property
    def effective_modified_time(self) -> datetime | None:
        """File mtime, else frontmatter updated stamp, else creation time."""
        return (
            self.fs_modified_time
            or self.updated_stamp
            or self.fs_created_time
        )


class AttachmentState(BaseModel):
    """Transient view of one attachment during a pass."""

    path: str
    exists_locally: bool
    is_byte_identical: bool = False
    local_modified_time: datetime | None = None
    remote_data: bytes | None = None

    model_config = {"frozen": True}


class AttachmentResult(BaseModel):
    """Outcome of reconciling one attachment."""

    downloaded: bool = False
    skipped: bool = False
    malformed: bool = False

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Remote payloads
# ---------------------------------------------------------------------------


class RemoteNote(BaseModel):
    """A note as returned by the note service, before normalisation."""

    title: str | None = None
    text: str | None = None
    created: str | None = None
    updated: str | None = None
    labels: list[str] = Field(default_factory=list)
    blob_urls: list[str | None] = Field(default_factory=list)
    blob_names: list[str] = Field(default_factory=list)
    archived: bool = False
    trashed: bool = False

    model_config = {"frozen": True, "extra": "ignore"}


class NotePage(BaseModel):
    """One page of remote notes."""

    notes: list[RemoteNote] = Field(default_factory=list)
    total_notes: int | None = None

    model_config = {"frozen": True, "extra": "ignore"}


class AttachmentPayload(BaseModel):
    """A base64-encoded attachment included in a push."""

    name: str
    mime_type: str
    data: str

    model_config = {"frozen": True}


class PushCandidate(BaseModel):
    """A local note selected for upload.

    Attributes:
        file_path: Store path of the note file.
        relative_path: Path relative to the save location; results from
            the service are matched back on this value.
        title: Note title.
        content: Full file text as sent to the service.
        body: Body after the frontmatter block.
        frontmatter: Every frontmatter field of the file, in order.
        raw_frontmatter: Frontmatter block exactly as written, or ``None``.
        last_sync_stamp: Sync stamp read from the file, if any.
        modified_since_sync: Whether the file changed after its stamp.
        attachment_payloads: Attachments that changed since the stamp.
        missing_attachments: Referenced attachments absent locally.
    """

    file_path: str
    relative_path: str
    title: str
    content: str
    body: str
    frontmatter: dict[str, str] = Field(default_factory=dict)
    raw_frontmatter: str | None = None
    last_sync_stamp: datetime | None = None
    modified_since_sync: bool = False
    attachment_payloads: list[AttachmentPayload] = Field(
        default_factory=list
    )
    missing_attachments: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}

    def to_payload(self) -> dict:
        """Wire shape of this candidate for the push endpoint."""
        payload: dict = {
            "path": self.relative_path,
            "title": self.title,
            "content": self.content,
        }
        if self.attachment_payloads:
            payload["attachments"] = [
                a.model_dump() for a in self.attachment_payloads
            ]
        return payload


class PushNoteResult(BaseModel):
    """Per-note result reported by the push endpoint."""

    path: str
    success: bool = True
    error: str | None = None
    message: str | None = None

    model_config = {"frozen": True, "extra": "ignore"}


class PushBatchResponse(BaseModel):
    """Response of one push batch."""

    results: list[PushNoteResult] = Field(default_factory=list)

    model_config = {"frozen": True, "extra": "ignore"}


# ---------------------------------------------------------------------------
# Pass bookkeeping
# ---------------------------------------------------------------------------


class NoteOutcome(BaseModel):
    """What happened to one note during a pass.

    Attributes:
        path: Store path that was written or inspected.
        title: Note title.
        action: Resolution value for pulls; ``"push"`` or ``"skip"``
            for pushes.
        success: ``False`` when the note failed and was left untouched.
        detail: Human-readable detail (error text, attachment counts).
    """

    path: str
    title: str
    action: str
    success: bool = True
    detail: str | None = None

    model_config = {"frozen": True}


@dataclass
class SyncCallbacks:
    """Progress hooks invoked synchronously by the pipelines."""

    on_total_known: Callable[[int], None] | None = None
    on_item_processed: Callable[[], None] | None = None

    def total_known(self, total: int) -> None:
        if self.on_total_known is not None:
            self.on_total_known(total)

    def item_processed(self) -> None:
        if self.on_item_processed is not None:
            self.on_item_processed()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PassContext:
    """State of one pull or push pass.

    Created by the caller (or by the pipeline when omitted), filled in
    while the pass runs and handed back for reporting.
    """

    mode: str
    callbacks: SyncCallbacks = field(default_factory=SyncCallbacks)
    started_at: datetime = field(default_factory=_utcnow)
    completed_at: datetime | None = None
    outcomes: list[NoteOutcome] = field(default_factory=list)
    error: str | None = None

    def record(self, outcome: NoteOutcome) -> None:
        self.outcomes.append(outcome)

    def finish(self, error: str | None = None) -> None:
        self.completed_at = _utcnow()
        self.error = error

    def with_action(self, action: str) -> list[NoteOutcome]:
        """Successful outcomes whose action is *action*."""
        return [
            o for o in self.outcomes if o.success and o.action == action
        ]

    @property
    def failures(self) -> list[NoteOutcome]:
        return [o for o in self.outcomes if not o.success]

    @property
    def processed(self) -> int:
        return len(self.outcomes)
