"""Configuration for the keepsidian-sync command line.

Reads note-service connection settings and the local save location from
CLI args, environment variables, .env files, and YAML config file
fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    KEEPSIDIAN_SERVER_URL: Note service URL (required)
    KEEPSIDIAN_EMAIL: Account email (required)
    KEEPSIDIAN_TOKEN: Sync token (required)
    KEEPSIDIAN_SAVE_LOCATION: Folder inside the vault holding the notes
        (optional, default: "Google Keep")
    KEEPSIDIAN_VAULT: Vault root directory (optional, default: ".")
    KEEPSIDIAN_PAGE_SIZE: Notes fetched per page (optional, default: 50)
    KEEPSIDIAN_INSECURE: Skip SSL verification (optional, default: false)
    KEEPSIDIAN_DEBUG: Enable debug logging (optional, default: false)
"""

import logging
import os
import re
from dataclasses import dataclass
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_SAVE_LOCATION = "Google Keep"
DEFAULT_PAGE_SIZE = 50

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass
class Config:
    server_url: str
    email: str
    token: str
    save_location: str = DEFAULT_SAVE_LOCATION
    vault_root: str = "."
    page_size: int = DEFAULT_PAGE_SIZE
    insecure: bool = False
    debug: bool = False


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If the URL or email is malformed, the token is empty,
            or the save location is blank.
    """
    config.server_url = config.server_url.strip()

    if not config.server_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid server URL '{config.server_url}': must start with http:// or https://"
        )

    parsed = urlparse(config.server_url)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid server URL '{config.server_url}': URL must include a hostname"
        )

    config.server_url = config.server_url.removesuffix("/")

    if not _EMAIL_PATTERN.match(config.email.strip()):
        raise ValueError(
            f"Invalid email '{config.email}'. Set KEEPSIDIAN_EMAIL environment variable."
        )

    if not config.token.strip():
        raise ValueError(
            "Sync token cannot be empty. Set KEEPSIDIAN_TOKEN environment variable."
        )

    config.save_location = config.save_location.strip().strip("/")
    if not config.save_location:
        raise ValueError("Save location cannot be empty.")

    if not (1 <= config.page_size <= 500):
        raise ValueError(
            f"Invalid page size {config.page_size}: must be a number between 1 and 500"
        )

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def load_config(
    server_url: str | None = None,
    email: str | None = None,
    token: str | None = None,
    save_location: str | None = None,
    vault_root: str | None = None,
    insecure: bool = False,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        server_url: Override note service URL.
        email: Override account email.
        token: Override sync token.
        save_location: Override the folder notes are saved to.
        vault_root: Override the vault root directory.
        insecure: Skip SSL verification (CLI flag).
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Flattened values from the YAML ``keep`` and
            ``sync`` sections. Used as fallback when CLI arg and env var
            are both unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If required config (URL, email, token) is missing
            after checking all sources.
    """
    fb = yaml_fallbacks or {}

    # --- Required string fields: CLI > env > YAML > error ---

    final_url = (
        server_url
        or os.getenv("KEEPSIDIAN_SERVER_URL")
        or fb.get("server_url")
    )
    if not final_url:
        raise ValueError(
            "Server URL not found. Set KEEPSIDIAN_SERVER_URL environment variable, "
            "pass --server-url CLI argument, or add 'server_url' to config.yml."
        )

    final_email = email or os.getenv("KEEPSIDIAN_EMAIL") or fb.get("email")
    if not final_email:
        raise ValueError(
            "Email not found. Set KEEPSIDIAN_EMAIL environment variable, "
            "pass --email CLI argument, or add 'email' to config.yml."
        )

    final_token = token or os.getenv("KEEPSIDIAN_TOKEN") or fb.get("token")
    if not final_token:
        raise ValueError(
            "Sync token not found. Set KEEPSIDIAN_TOKEN environment variable, "
            "pass --token CLI argument, or add 'token' to config.yml."
        )

    # --- Optional string fields: CLI > env > YAML > default ---

    final_save_location = (
        save_location
        or os.getenv("KEEPSIDIAN_SAVE_LOCATION")
        or fb.get("save_location")
        or DEFAULT_SAVE_LOCATION
    )
    final_vault_root = (
        vault_root
        or os.getenv("KEEPSIDIAN_VAULT")
        or fb.get("vault_root")
        or "."
    )

    # --- Boolean fields: CLI > env > YAML > default ---

    if insecure:
        final_insecure = True
    else:
        env_insecure = _get_bool_env("KEEPSIDIAN_INSECURE")
        if env_insecure is not None:
            final_insecure = env_insecure
        else:
            final_insecure = bool(fb.get("insecure", False))

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("KEEPSIDIAN_DEBUG")
        if env_debug is not None:
            final_debug = env_debug
        else:
            final_debug = bool(fb.get("debug", False))

    # --- Numeric fields: env > YAML > default ---

    page_size_raw = os.getenv("KEEPSIDIAN_PAGE_SIZE")
    if page_size_raw is not None:
        try:
            final_page_size = int(page_size_raw)
        except ValueError:
            raise ValueError(
                f"Invalid KEEPSIDIAN_PAGE_SIZE '{page_size_raw}': must be a number between 1 and 500"
            ) from None
    elif "page_size" in fb:
        final_page_size = int(fb["page_size"])
    else:
        final_page_size = DEFAULT_PAGE_SIZE

    config = Config(
        server_url=final_url.strip(),
        email=final_email.strip(),
        token=final_token.strip(),
        save_location=final_save_location,
        vault_root=final_vault_root,
        page_size=final_page_size,
        insecure=final_insecure,
        debug=final_debug,
    )

    validate_config(config)

    return config
