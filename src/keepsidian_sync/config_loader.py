"""
YAML config files for keepsidian-sync.

Settings can live next to the notes they describe, in
``<vault>/.keepsidian/config.yml``, or in a per-user file shared by every
vault.  ``KEEPSIDIAN_CONFIG`` names one more file that outranks both.

Each file holds up to three sections (``keep``, ``sync``, ``logging``,
see ``config_schema``).  A section from a higher-ranked file replaces
the same section from a lower-ranked one as a whole.  ``${VAR}`` and
``${VAR:-default}`` in string values are expanded after merging.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

VAULT_CONFIG = Path(".keepsidian") / "config.yml"
USER_CONFIG = Path(".config") / "keepsidian" / "config.yml"

_ENV_REFERENCE = re.compile(
    r"\$\{(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?::-(?P<default>[^}]*))?\}"
)


def expand_env(value: Any) -> Any:
    """Expand environment references in every string inside *value*.

    An unset or empty variable expands to its default, or to ``""``.
    Text that is not a complete ``${NAME}`` reference is left alone.
    """
    if isinstance(value, str):
        return _ENV_REFERENCE.sub(
            lambda m: os.environ.get(m["name"]) or m["default"] or "", value
        )
    if isinstance(value, dict):
        return {key: expand_env(item) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_env(item) for item in value]
    return value


def _vault_dir(vault: str | None) -> Path:
    return Path(vault or os.getenv("KEEPSIDIAN_VAULT") or ".").expanduser()


def config_search_paths(vault: str | None = None) -> list[Path]:
    """Candidate config files for *vault*, highest rank first."""
    paths = []
    explicit = os.getenv("KEEPSIDIAN_CONFIG")
    if explicit:
        paths.append(Path(explicit).expanduser())
    paths.append(_vault_dir(vault) / VAULT_CONFIG)
    paths.append(Path.home() / USER_CONFIG)
    return paths


def find_config_files(vault: str | None = None) -> list[Path]:
    """The candidates from ``config_search_paths`` that exist."""
    return [path for path in config_search_paths(vault) if path.is_file()]


def read_config_file(path: Path) -> dict[str, Any]:
    """Parse one config file.

    An empty file reads as ``{}``.

    Raises:
        ValueError: If the file is not valid YAML or its top level is not
            a mapping of sections.
    """
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValueError(f"{path} is not valid YAML: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(
            f"{path} must contain keep/sync/logging sections, "
            f"not a {type(data).__name__}"
        )
    return data


def load_config_files(vault: str | None = None) -> dict[str, Any]:
    """Merge every config file found for *vault* into one dict.

    Returns ``{}`` when there is no config file at all.
    """
    merged: dict[str, Any] = {}
    for path in reversed(find_config_files(vault)):
        logger.debug("Reading config file %s", path)
        merged.update(read_config_file(path))
    return expand_env(merged)


_STARTER_CONFIG = """\
# keepsidian-sync settings for this vault.
#
# Values may reference environment variables, e.g. ${KEEPSIDIAN_TOKEN}.
# Command line options and KEEPSIDIAN_* variables override this file.
#
# keep:
#   server_url: https://keepsidian.example.com
#   email: you@example.com
#   token: ${KEEPSIDIAN_TOKEN}
#   insecure: false
#
# sync:
#   save_location: Google Keep
#   page_size: 50
#
# logging:
#   level: INFO
#   file: null
"""


def write_starter_config(vault: str | None = None) -> Path:
    """Create ``<vault>/.keepsidian/config.yml`` with commented settings.

    Nothing is written when a config file for *vault* already exists; the
    highest-ranked one is returned instead.
    """
    existing = find_config_files(vault)
    if existing:
        logger.debug("Config file already present: %s", existing[0])
        return existing[0]

    path = _vault_dir(vault) / VAULT_CONFIG
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", path)
    return path
