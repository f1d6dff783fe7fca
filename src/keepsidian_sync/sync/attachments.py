"""Attachment reconciliation for both sync directions.

Pull: every ``AttachmentRef`` of an incoming note is resolved to a URL and
a file name under ``<save location>/media``.  The remote bytes are always
fetched; they are written only when no local file exists or the local
bytes differ.

Push: embeds (``![[name.png]]``) and image links (``![alt](media/a.png)``)
in a note are resolved to files under the media folder.  Only files
modified after the note's sync stamp are read and base64-encoded into the
outgoing payload.
"""

from __future__ import annotations

import base64
import logging
import posixpath
import re
from collections.abc import Awaitable, Callable
from datetime import datetime
from urllib.parse import unquote, urljoin, urlparse

from ..errors import AttachmentError, SyncError
from ..store import (
    FileStore,
    build_media_path,
    dirname,
    ensure_folder,
    media_folder_path,
    normalize_path,
)
from .models import (
    AttachmentPayload,
    AttachmentRef,
    AttachmentResult,
    AttachmentState,
)

logger = logging.getLogger(__name__)

BytesFetcher = Callable[[str], Awaitable[bytes]]

_EMBED_PATTERN = re.compile(r"!\[\[([^\]]+)\]\]")
_IMAGE_LINK_PATTERN = re.compile(r"!\[[^\]]*\]\(([^)]+)\)")

_MIME_TYPES: dict[str, str] = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "webp": "image/webp",
    "svg": "image/svg+xml",
    "bmp": "image/bmp",
    "heic": "image/heic",
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "m4a": "audio/m4a",
    "ogg": "audio/ogg",
    "mp4": "video/mp4",
    "mov": "video/quicktime",
    "avi": "video/x-msvideo",
    "pdf": "application/pdf",
    "txt": "text/plain",
    "md": "text/markdown",
    "csv": "text/csv",
    "tsv": "text/tab-separated-values",
    "json": "application/json",
    "html": "text/html",
}


# =============================================================================
# Pull
# =============================================================================


def resolve_attachment_url(identifier: str, server_url: str) -> str | None:
    """Absolute URL for *identifier*, or ``None`` if it is malformed.

    Server-relative identifiers (``/blobs/1``) are joined to *server_url*.
    """
    identifier = (identifier or "").strip()
    if not identifier:
        return None

    parsed = urlparse(identifier)
    if parsed.scheme in ("http", "https") and parsed.netloc:
        return identifier
    if parsed.scheme or not identifier.startswith("/") or not server_url:
        return None
    return urljoin(server_url.rstrip("/") + "/", identifier)


def _sanitize_file_name(name: str) -> str:
    return re.sub(r"[\\/]", "_", name)


def derive_file_name(url: str, display_name: str | None = None) -> str | None:
    """Local file name for an attachment.

    The name reported by the service wins; otherwise the last URL path
    segment is used.
    """
    if display_name and display_name.strip():
        return _sanitize_file_name(display_name.strip())
    segments = [s for s in urlparse(url).path.split("/") if s]
    if not segments:
        return None
    return _sanitize_file_name(unquote(segments[-1]))


async def reconcile_attachment(
    store: FileStore,
    save_location: str,
    ref: AttachmentRef,
    fetch_bytes: BytesFetcher,
    server_url: str = "",
) -> AttachmentResult:
    """Download one attachment unless the local copy is byte-identical.

    A malformed reference is logged and reported as ``malformed``.

    Raises:
        AttachmentError: If the remote bytes could not be fetched or the
            local file could not be read or written.
    """
    url = resolve_attachment_url(ref.identifier, server_url)
    file_name = derive_file_name(url, ref.display_name) if url else None
    if url is None or file_name is None:
        logger.warning(
            "Skipping malformed attachment reference %r", ref.identifier
        )
        return AttachmentResult(malformed=True)

    path = build_media_path(save_location, file_name)
    try:
        data = await fetch_bytes(url)
        exists = await store.exists(path)
        local = await store.read_binary(path) if exists else None
        state = AttachmentState(
            path=path,
            exists_locally=exists,
            is_byte_identical=local is not None and local == data,
            local_modified_time=(
                (await store.stat(path)).modified_time if exists else None
            ),
            remote_data=data,
        )
        if state.is_byte_identical:
            logger.debug("Attachment %s unchanged", path)
            return AttachmentResult(skipped=True)
        if state.exists_locally:
            logger.info(
                "Replacing %s (local copy modified %s)",
                path,
                state.local_modified_time or "at an unknown time",
            )

        await ensure_folder(store, media_folder_path(save_location))
        await store.write_binary(path, data)
    except SyncError as exc:
        raise AttachmentError(
            f"Failed to download attachment from {url}: {exc}", ref.identifier
        ) from exc

    logger.debug("Attachment %s written (%d bytes)", path, len(data))
    return AttachmentResult(downloaded=True)


async def process_attachments(
    store: FileStore,
    save_location: str,
    refs: list[AttachmentRef],
    fetch_bytes: BytesFetcher,
    server_url: str = "",
) -> tuple[int, int]:
    """Reconcile every attachment of one note, in order.

    Returns:
        ``(downloaded, skipped_identical)`` counts.

    Raises:
        AttachmentError: On the first transport or store failure; later
            attachments of the note are not processed.
    """
    downloaded = 0
    skipped = 0
    for ref in refs:
        result = await reconcile_attachment(
            store, save_location, ref, fetch_bytes, server_url
        )
        downloaded += int(result.downloaded)
        skipped += int(result.skipped)
    return downloaded, skipped


# =============================================================================
# Push
# =============================================================================


def _clean_target(raw: str) -> str | None:
    target = raw.split("|")[0].split("#")[0]
    target = target.strip().removeprefix("<").removesuffix(">").strip()
    if not target or "://" in target:
        return None
    return normalize_path(unquote(target))


def _is_under(path: str, folder: str) -> bool:
    return path.startswith(folder + "/")


def extract_attachment_references(
    content: str, note_path: str, save_location: str
) -> list[str]:
    """Store paths of the media files a note embeds, deduplicated in order.

    A target is tried as a vault path, as a path relative to the save
    location, as a bare file name inside the media folder, and relative
    to the note's folder.  Only candidates inside the media folder count.
    """
    media_folder = media_folder_path(save_location)
    media_name = posixpath.basename(media_folder)
    note_dir = dirname(note_path)
    references: dict[str, None] = {}

    targets = [m.group(1) for m in _EMBED_PATTERN.finditer(content)]
    targets += [m.group(1) for m in _IMAGE_LINK_PATTERN.finditer(content)]

    for raw in targets:
        target = _clean_target(raw)
        if target is None:
            continue

        candidates = []
        if _is_under(target, media_folder):
            candidates.append(target)
        else:
            if _is_under(target, media_name):
                candidates.append(normalize_path(f"{save_location}/{target}"))
            if "/" not in target:
                candidates.append(normalize_path(f"{media_folder}/{target}"))
            candidates.append(normalize_path(f"{note_dir}/{target}"))

        for candidate in candidates:
            if _is_under(candidate, media_folder):
                references.setdefault(candidate, None)

    return list(references)


def guess_mime_type(file_name: str) -> str:
    _, dot, extension = file_name.rpartition(".")
    if not dot:
        extension = ""
    return _MIME_TYPES.get(extension.lower(), "application/octet-stream")


def encode_attachment(name: str, data: bytes) -> AttachmentPayload:
    return AttachmentPayload(
        name=name,
        mime_type=guess_mime_type(name),
        data=base64.b64encode(data).decode("ascii"),
    )


async def collect_attachments(
    store: FileStore,
    content: str,
    note_path: str,
    save_location: str,
    last_synced: datetime | None,
) -> tuple[list[AttachmentPayload], list[str]]:
    """Encode the attachments of a note that changed since *last_synced*.

    An attachment is included when there is no stamp, when its
    modification time is unknown, or when it is later than the stamp.
    Unlike the note file itself no tolerance applies.

    Returns:
        ``(payloads, missing)`` where *missing* lists referenced store
        paths that do not exist locally.

    Raises:
        AttachmentError: If an existing attachment cannot be read.
    """
    payloads: list[AttachmentPayload] = []
    missing: list[str] = []

    references = extract_attachment_references(
        content, note_path, save_location
    )
    for path in references:
        try:
            if not await store.exists(path):
                missing.append(path)
                continue
            if last_synced is not None:
                modified = (await store.stat(path)).modified_time
                if modified is not None and modified <= last_synced:
                    continue
            data = await store.read_binary(path)
        except SyncError as exc:
            raise AttachmentError(
                f"Failed to read attachment {path}: {exc}", path
            ) from exc
        payloads.append(encode_attachment(posixpath.basename(path), data))

    return payloads, missing
