"""One-off rewrites of note files written by older releases."""

from __future__ import annotations

import logging
import re

from ..store import FileStore, list_markdown_files
from .note import CREATED_KEY, UPDATED_KEY, URL_KEY

logger = logging.getLogger(__name__)

LEGACY_KEYS = {
    "google-keep-created-date": CREATED_KEY,
    "google-keep-updated-date": UPDATED_KEY,
    "google-keep-url": URL_KEY,
}

_BLOCK_PATTERN = re.compile(r"\A---\r?\n(.*?)\r?\n---", re.DOTALL)


def rename_legacy_keys(block: str) -> str:
    """Rename hyphenated frontmatter keys in *block* to PascalCase."""
    for legacy, current in LEGACY_KEYS.items():
        block = re.sub(
            rf"(^[ \t]*){re.escape(legacy)}([ \t]*:)",
            rf"\g<1>{current}\g<2>",
            block,
            flags=re.MULTILINE,
        )
    return block


async def ensure_pascal_case_frontmatter(
    store: FileStore, save_location: str
) -> int:
    """Rewrite legacy frontmatter keys in every note under *save_location*.

    Only the frontmatter block changes; the body is kept as is.  A file
    that fails is logged and the others are still processed.

    Returns:
        Number of files rewritten.
    """
    rewritten = 0
    for path in await list_markdown_files(store, save_location):
        try:
            content = await store.read(path)
            match = _BLOCK_PATTERN.match(content)
            if match is None:
                continue
            block = match.group(1)
            updated = rename_legacy_keys(block)
            if updated == block:
                continue
            await store.write(
                path,
                content[: match.start(1)] + updated + content[match.end(1) :],
            )
        except Exception as exc:
            logger.error("Failed to migrate frontmatter of %s: %s", path, exc)
            continue
        logger.info("Renamed legacy frontmatter keys in %s", path)
        rewritten += 1
    return rewritten
