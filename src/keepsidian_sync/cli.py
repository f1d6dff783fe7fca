"""Command line entry point for keepsidian-sync.

Subcommands:

- ``pull``: import notes from the note service into the save location.
- ``push``: upload locally modified notes.
- ``sync``: pull, then push.
- ``migrate``: rename legacy frontmatter keys in existing notes.
- ``init-config``: write a starter ``.keepsidian/config.yml``.

User-facing messages go to stderr; reports go to stdout.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Any

from dotenv import load_dotenv

from . import __version__
from .config import DEFAULT_SAVE_LOCATION, Config, load_config
from .config_loader import load_config_files, write_starter_config
from .config_schema import UnifiedConfig, build_config, to_yaml_fallbacks
from .core.client import KeepClient
from .core.remote import KeepRemote
from .errors import SyncError, to_user_message
from .logger import setup_logging
from .store import LocalFileStore
from .sync.engine import SyncEngine
from .sync.models import PassContext, SyncCallbacks
from .sync.reporter import format_pass_report, report_to_json

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    print(msg, file=sys.stderr, flush=True)


class _ProgressPrinter:
    """Prints ``processed/total`` to stderr as notes complete."""

    def __init__(self) -> None:
        self.total: int | None = None
        self.done = 0

    def on_total_known(self, total: int) -> None:
        self.total = total
        self.done = 0

    def on_item_processed(self) -> None:
        self.done += 1
        if self.total:
            _stderr_print(f"  {self.done}/{self.total}")

    def callbacks(self) -> SyncCallbacks:
        return SyncCallbacks(
            on_total_known=self.on_total_known,
            on_item_processed=self.on_item_processed,
        )


def _load_unified(vault: str | None) -> UnifiedConfig:
    return build_config(load_config_files(vault))


def _load_settings(
    args: argparse.Namespace, unified: UnifiedConfig
) -> Config:
    return load_config(
        server_url=args.server_url,
        email=args.email,
        token=args.token,
        save_location=args.save_location,
        vault_root=args.vault,
        insecure=args.insecure,
        debug=args.debug,
        yaml_fallbacks=to_yaml_fallbacks(unified),
    )


def _layout(
    args: argparse.Namespace, unified: UnifiedConfig
) -> tuple[str, str]:
    """Vault root and save location without requiring credentials."""
    vault = (
        args.vault
        or os.getenv("KEEPSIDIAN_VAULT")
        or unified.sync.vault_root
        or "."
    )
    save_location = (
        args.save_location
        or os.getenv("KEEPSIDIAN_SAVE_LOCATION")
        or unified.sync.save_location
        or DEFAULT_SAVE_LOCATION
    )
    return vault, save_location.strip().strip("/")


def _print_reports(contexts: list[PassContext], as_json: bool) -> None:
    if as_json:
        payload: Any = [report_to_json(c) for c in contexts]
        if len(payload) == 1:
            payload = payload[0]
        print(json.dumps(payload, indent=2))
        return
    print("\n\n".join(format_pass_report(c) for c in contexts))


async def _run_passes(args: argparse.Namespace, config: Config) -> int:
    client = KeepClient(config)
    engine = SyncEngine(
        KeepRemote(client),
        LocalFileStore(config.vault_root),
        config.save_location,
        page_size=config.page_size,
    )
    callbacks = None if args.json else _ProgressPrinter().callbacks()

    if args.command == "pull":
        contexts = [await engine.pull(callbacks)]
    elif args.command == "push":
        contexts = [await engine.push(callbacks)]
    else:
        contexts = await engine.run(callbacks)

    _print_reports(contexts, args.json)
    return 1 if any(c.failures for c in contexts) else 0


async def _run_migrate(vault: str, save_location: str) -> int:
    engine = SyncEngine(None, LocalFileStore(vault), save_location)
    count = await engine.migrate()
    _stderr_print(f"Updated frontmatter in {count} note(s)")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="keepsidian-sync",
        description="Synchronise Google Keep notes with a folder of markdown files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Import notes into ./Google Keep using settings from .env
  keepsidian-sync pull

  # Two-way sync of a specific vault
  keepsidian-sync sync --vault ~/Obsidian/Notes --save-location Keep

  # Push local edits and print a JSON report
  keepsidian-sync push --json

  # Create <vault>/.keepsidian/config.yml with commented defaults
  keepsidian-sync init-config
        """,
    )
    parser.add_argument(
        "command",
        choices=["pull", "push", "sync", "migrate", "init-config"],
        help="Operation to run",
    )
    parser.add_argument(
        "--vault",
        help="Vault root directory (overrides KEEPSIDIAN_VAULT and config files)",
    )
    parser.add_argument(
        "--save-location",
        help="Folder inside the vault holding the notes (overrides KEEPSIDIAN_SAVE_LOCATION)",
    )
    parser.add_argument(
        "--server-url",
        help="Note service URL (overrides KEEPSIDIAN_SERVER_URL and config files)",
    )
    parser.add_argument(
        "--email",
        help="Account email (overrides KEEPSIDIAN_EMAIL and config files)",
    )
    parser.add_argument(
        "--token",
        help="Sync token (overrides KEEPSIDIAN_TOKEN and config files)"
        " (visible in process list -- prefer KEEPSIDIAN_TOKEN env var for security)",
    )
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Skip SSL certificate verification (use only for development)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--log-file",
        help="Also write log records to this file",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the pass report as JSON",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"keepsidian-sync version {__version__}",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, run the command and return the exit code."""
    args = _build_parser().parse_args(argv)

    # .env first so ${VAR} interpolation in config files can use it
    load_dotenv()

    if args.command == "init-config":
        setup_logging(debug=args.debug, log_file=args.log_file)
        path = write_starter_config(args.vault)
        _stderr_print(f"Config file: {path}")
        return 0

    try:
        unified = _load_unified(args.vault)
    except Exception as e:
        _stderr_print(f"ERROR: Could not load config file: {e}")
        return 1

    setup_logging(
        debug=args.debug,
        log_file=args.log_file or unified.logging.file,
        level=unified.logging.level,
    )

    if args.command == "migrate":
        vault, save_location = _layout(args, unified)
        try:
            return asyncio.run(_run_migrate(vault, save_location))
        except SyncError as e:
            _stderr_print(f"ERROR: {to_user_message(e)}: {e}")
            return 1

    try:
        config = _load_settings(args, unified)
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        return 1

    if config.debug and not args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        return asyncio.run(_run_passes(args, config))
    except SyncError as e:
        logger.error("Sync failed: %s", e)
        _stderr_print(f"ERROR: {to_user_message(e)}: {e}")
        return 1


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    run()
