"""Note model codec: frontmatter split/join, timestamps, parse/serialize.

A note file on disk always has the shape::

    ---
    GoogleKeepCreatedDate: 2024-01-01T00:00:00.000Z
    GoogleKeepUpdatedDate: 2024-01-02T00:00:00.000Z
    GoogleKeepLabels: home, todo
    KeepSidianLastSyncedDate: 2024-01-02T00:00:05.000Z
    ---
    body text

The frontmatter block is read as a flat ``Key: value`` list.  Keys are
compared verbatim and values are kept as strings; the created/updated
timestamps and the labels are lifted into typed ``Note`` fields,
everything else passes through untouched in insertion order.  Lines the
flat reader cannot use (comments, list items, nested values) are
ignored when reading; rewrites of an existing file go through
``update_frontmatter_block`` so those lines survive.

Labels are joined with ``, ``; a comma or backslash inside a label is
escaped with a backslash.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from .models import AttachmentRef, Note, RemoteNote

logger = logging.getLogger(__name__)

CREATED_KEY = "GoogleKeepCreatedDate"
UPDATED_KEY = "GoogleKeepUpdatedDate"
LABELS_KEY = "GoogleKeepLabels"
URL_KEY = "GoogleKeepUrl"
TITLE_KEY = "Title"

_DELIMITER = "---"


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 string; naive values are taken as UTC.

    Returns ``None`` for empty or unparsable input.
    """
    if not value or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        logger.debug("Ignoring unparsable timestamp %r", value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime) -> str:
    """Format as UTC ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return (
        value.strftime("%Y-%m-%dT%H:%M:%S.")
        + f"{value.microsecond // 1000:03d}Z"
    )


# ---------------------------------------------------------------------------
# Frontmatter block
# ---------------------------------------------------------------------------


def split_frontmatter_block(text: str) -> tuple[str | None, str]:
    """Split *text* into ``(block, body)`` without interpreting the block.

    A block is recognised only when the first line is ``---`` and a later
    line is exactly ``---``.  *block* is the raw text between the two
    delimiter lines, or ``None`` when there is no block.  The body is
    everything after the closing delimiter line, byte for byte.
    """
    lines = text.split("\n")
    if lines[0].rstrip("\r") != _DELIMITER:
        return None, text

    for index in range(1, len(lines)):
        if lines[index].rstrip("\r") == _DELIMITER:
            return "\n".join(lines[1:index]), "\n".join(lines[index + 1 :])

    return None, text


def split_frontmatter(text: str) -> tuple[dict[str, str], str, bool]:
    """Split *text* into ``(fields, body, has_block)``."""
    block, body = split_frontmatter_block(text)
    if block is None:
        return {}, text, False
    return parse_frontmatter_lines(block.split("\n")), body, True


def _field_key(line: str) -> str | None:
    """Key of a top-level ``Key: value`` line, else ``None``."""
    if not line or line[0].isspace() or line[0] in "-#":
        return None
    key, sep, _ = line.partition(":")
    key = key.strip()
    return key if sep and key else None


def parse_frontmatter_lines(lines: list[str]) -> dict[str, str]:
    """Parse ``Key: value`` lines; lines without a key are ignored."""
    fields: dict[str, str] = {}
    for line in lines:
        key = _field_key(line)
        if key is None:
            continue
        fields[key] = line.partition(":")[2].strip()
    return fields


def join_frontmatter_block(block: str | None, body: str) -> str:
    """Inverse of ``split_frontmatter_block``."""
    if block is None:
        return body
    return f"{_DELIMITER}\n{block}\n{_DELIMITER}\n{body}"


def join_frontmatter(fields: dict[str, str], body: str) -> str:
    """Write *fields* as a fresh frontmatter block above *body*."""
    block = "\n".join(f"{key}: {value}" for key, value in fields.items())
    return join_frontmatter_block(block, body)


def update_frontmatter_block(
    block: str | None,
    updates: dict[str, str],
    remove: tuple[str, ...] = (),
) -> str:
    """Set or drop single keys in a raw frontmatter *block*.

    A key listed in *updates* has its line rewritten in place; one that
    is missing is appended.  A key in *remove* (and not in *updates*)
    loses its line.  A rewritten or dropped key also loses the indented
    or ``-`` item lines that follow it.  Every other line, including
    comments, lists and nested values, is kept as written.
    """
    pending = dict(updates)
    kept: list[str] = []
    dropping = False
    for line in block.split("\n") if block else []:
        key = _field_key(line.rstrip("\r"))
        if key is None:
            if dropping and (line[:1].isspace() or line.startswith("-")):
                continue
            dropping = False
            kept.append(line)
            continue
        dropping = False
        if key in pending:
            kept.append(f"{key}: {pending.pop(key)}")
            dropping = True
        elif key in updates or key in remove:
            dropping = True
        else:
            kept.append(line)
    kept.extend(f"{key}: {value}" for key, value in pending.items())
    return "\n".join(kept)


# ---------------------------------------------------------------------------
# Note <-> markdown
# ---------------------------------------------------------------------------


def _format_labels(labels: frozenset[str]) -> str:
    return ", ".join(
        label.replace("\\", "\\\\").replace(",", "\\,")
        for label in sorted(labels)
    )


def _parse_labels(value: str | None) -> frozenset[str]:
    if not value:
        return frozenset()
    labels: list[str] = []
    current: list[str] = []
    escaped = False
    for char in value:
        if escaped:
            current.append(char)
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == ",":
            labels.append("".join(current))
            current = []
        else:
            current.append(char)
    labels.append("".join(current))
    return frozenset(label.strip() for label in labels if label.strip())


def note_from_fields(
    title: str, fields: dict[str, str], body: str
) -> Note:
    """Build a ``Note`` from already split frontmatter *fields*."""
    passthrough = {
        k: v
        for k, v in fields.items()
        if k not in (CREATED_KEY, UPDATED_KEY, LABELS_KEY)
    }
    return Note(
        title=title,
        body=body,
        frontmatter=passthrough,
        created=parse_timestamp(fields.get(CREATED_KEY)),
        updated=parse_timestamp(fields.get(UPDATED_KEY)),
        labels=_parse_labels(fields.get(LABELS_KEY)),
    )


def parse_note(text: str, title: str) -> Note:
    """Parse the markdown *text* of the file named ``<title>.md``."""
    fields, body, _ = split_frontmatter(text)
    return note_from_fields(title, fields, body)


def note_fields(note: Note) -> dict[str, str]:
    """Every frontmatter field of *note*: typed keys first, then the rest."""
    fields: dict[str, str] = {}
    if note.created is not None:
        fields[CREATED_KEY] = format_timestamp(note.created)
    if note.updated is not None:
        fields[UPDATED_KEY] = format_timestamp(note.updated)
    if note.labels:
        fields[LABELS_KEY] = _format_labels(note.labels)
    for key, value in note.frontmatter.items():
        fields.setdefault(key, value)
    return fields


def serialize_note(note: Note) -> str:
    """Render *note* as ``---\\n<frontmatter>\\n---\\n<body>``."""
    return join_frontmatter(note_fields(note), note.body)


# ---------------------------------------------------------------------------
# Remote payload normalisation
# ---------------------------------------------------------------------------


def normalize_note(remote: RemoteNote) -> Note:
    """Turn a service payload into a ``Note``.

    Title and text are trimmed.  A frontmatter block embedded in the text
    is split out; payload timestamps win over embedded ones.  Attachment
    URLs are paired with ``blob_names`` by position; empty URLs are kept
    so the attachment engine can report them as malformed.
    """
    text = (remote.text or "").strip()
    fields, body, has_block = split_frontmatter(text)
    if has_block:
        body = body.strip()

    base = note_from_fields((remote.title or "").strip(), fields, body)

    refs = []
    for index, url in enumerate(remote.blob_urls):
        name = (
            remote.blob_names[index]
            if index < len(remote.blob_names)
            else None
        )
        refs.append(
            AttachmentRef(
                identifier=url or "", display_name=(name or None)
            )
        )

    return Note(
        title=base.title,
        body=base.body,
        frontmatter=base.frontmatter,
        created=parse_timestamp(remote.created) or base.created,
        updated=parse_timestamp(remote.updated) or base.updated,
        labels=base.labels | frozenset(remote.labels),
        attachment_refs=refs,
    )
