"""Unified configuration schema for keepsidian_sync.

Defines Pydantic models for the YAML config structure with dedicated
sections for the note-service connection, the local sync layout and
logging. ``to_yaml_fallbacks`` flattens a validated config into the
fallback dict consumed by ``config.load_config``.

Usage:
    from keepsidian_sync.config_schema import build_config, to_yaml_fallbacks

    raw = load_config_files()
    unified = build_config(raw)
    config = load_config(yaml_fallbacks=to_yaml_fallbacks(unified))
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class KeepConfig(BaseModel):
    """Note service connection settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    server_url: str | None = Field(
        default=None, description="Note service URL"
    )
    email: str | None = Field(default=None, description="Account email")
    token: str | None = Field(default=None, description="Sync token")
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Local layout of the synchronised notes."""

    save_location: str | None = Field(
        default=None,
        description="Folder (relative to the vault) holding the notes",
    )
    vault_root: str | None = Field(
        default=None, description="Vault root directory"
    )
    page_size: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Notes requested per page during a pull (1-500)",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has sensible defaults, so ``UnifiedConfig()``
    (zero-config) is always valid.
    """

    keep: KeepConfig = Field(default_factory=KeepConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_config_files()``.

    Handles missing sections gracefully; anything absent gets defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


# ---------------------------------------------------------------------------
# Adapter: UnifiedConfig -> load_config fallbacks
# ---------------------------------------------------------------------------


def to_yaml_fallbacks(unified: UnifiedConfig) -> dict:
    """Flatten the ``keep`` and ``sync`` sections for ``load_config``.

    ``None`` values are dropped so that built-in defaults still apply.

    Args:
        unified: The unified config produced by ``build_config()``.

    Returns:
        Dict keyed by ``load_config`` field names.
    """
    fallbacks: dict = {}
    for section in (unified.keep, unified.sync):
        for key, value in section.model_dump().items():
            if value is not None:
                fallbacks[key] = value
    return fallbacks
