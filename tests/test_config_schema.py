"""Tests for the unified config schema and adapter functions.

Tests the Pydantic models in config_schema.py (UnifiedConfig, KeepConfig,
SyncConfig, LoggingConfig), the build_config() factory, and the
to_yaml_fallbacks() adapter consumed by load_config().
"""

import pytest
from pydantic import ValidationError

from keepsidian_sync.config_schema import (
    KeepConfig,
    LoggingConfig,
    SyncConfig,
    UnifiedConfig,
    build_config,
    to_yaml_fallbacks,
)

# ---------------------------------------------------------------------------
# UnifiedConfig tests
# ---------------------------------------------------------------------------


class TestUnifiedConfig:
    """Tests for the top-level UnifiedConfig model."""

    def test_empty_config_has_defaults(self):
        """UnifiedConfig() is valid with every section defaulted."""
        config = UnifiedConfig()
        assert config.keep.server_url is None
        assert config.keep.insecure is False
        assert config.sync.save_location is None
        assert config.sync.page_size == 50
        assert config.logging.level == "INFO"
        assert config.logging.file is None

    def test_full_config(self):
        """All sections parse from nested dicts."""
        config = UnifiedConfig(
            keep={
                "server_url": "https://keep.example.com",
                "email": "user@example.com",
                "token": "tok",
                "insecure": True,
            },
            sync={"save_location": "Keep", "vault_root": "~/Vault"},
            logging={"level": "DEBUG", "file": "/tmp/keepsidian.log"},
        )
        assert config.keep.server_url == "https://keep.example.com"
        assert config.sync.vault_root == "~/Vault"
        assert config.logging.file == "/tmp/keepsidian.log"

    def test_frozen(self):
        config = UnifiedConfig()
        with pytest.raises(ValidationError):
            config.keep = KeepConfig(server_url="https://x.example.com")


class TestSyncConfig:
    @pytest.mark.parametrize("size", [0, 501])
    def test_page_size_bounds(self, size):
        with pytest.raises(ValidationError):
            SyncConfig(page_size=size)

    def test_page_size_valid(self):
        assert SyncConfig(page_size=500).page_size == 500


class TestLoggingConfig:
    def test_defaults(self):
        config = LoggingConfig()
        assert config.level == "INFO"
        assert config.file is None


# ---------------------------------------------------------------------------
# build_config tests
# ---------------------------------------------------------------------------


class TestBuildConfig:
    def test_empty_dict(self):
        assert build_config({}) == UnifiedConfig()

    def test_partial_sections(self):
        config = build_config({"sync": {"save_location": "Notes"}})
        assert config.sync.save_location == "Notes"
        assert config.keep.server_url is None

    def test_invalid_type_raises(self):
        with pytest.raises(ValidationError):
            build_config({"keep": {"insecure": "not-a-bool"}})


# ---------------------------------------------------------------------------
# to_yaml_fallbacks tests
# ---------------------------------------------------------------------------


class TestToYamlFallbacks:
    def test_none_values_dropped(self):
        fallbacks = to_yaml_fallbacks(UnifiedConfig())
        assert "server_url" not in fallbacks
        assert "save_location" not in fallbacks
        assert fallbacks["page_size"] == 50
        assert fallbacks["insecure"] is False

    def test_sections_flattened(self):
        unified = build_config(
            {
                "keep": {"server_url": "https://k.example.com", "token": "t"},
                "sync": {"save_location": "Keep", "page_size": 10},
                "logging": {"level": "ERROR"},
            }
        )

        fallbacks = to_yaml_fallbacks(unified)

        assert fallbacks["server_url"] == "https://k.example.com"
        assert fallbacks["token"] == "t"
        assert fallbacks["save_location"] == "Keep"
        assert fallbacks["page_size"] == 10
        assert "level" not in fallbacks
