"""
Tests for LineageSettings and the YAML/environment loader.
"""

import pytest
from pydantic import ValidationError

from lineage.settings import (
    KeyType,
    LineageSettings,
    load_settings,
    read_yaml_settings,
)


class TestLineageSettingsDefaults:
    """Default values."""

    def test_defaults(self):
        settings = LineageSettings()
        assert settings.url == "sqlite:///:memory:"
        assert settings.table_name == "hierarchies"
        assert settings.key_type == KeyType.INT
        assert settings.max_depth == 10
        assert settings.events.enabled is True
        assert settings.snapshots.enabled is True
        assert settings.snapshots.table_name == "hierarchy_snapshots"
        assert settings.key_map == {}
        assert settings.enforce_key_map == {}


class TestLineageSettingsValidation:
    """Coercion of string inputs."""

    def test_key_type_from_string(self):
        assert LineageSettings(key_type="UUID").key_type == KeyType.UUID

    def test_invalid_key_type(self):
        with pytest.raises(ValidationError) as exc_info:
            LineageSettings(key_type="bigint")
        assert "Invalid key type" in str(exc_info.value)

    @pytest.mark.parametrize("raw", ["", "null", "None", " none "])
    def test_max_depth_unbounded_strings(self, raw):
        assert LineageSettings(max_depth=raw).max_depth is None

    def test_max_depth_numeric_string(self):
        assert LineageSettings(max_depth="3").max_depth == 3

    def test_max_depth_negative_rejected(self):
        with pytest.raises(ValidationError):
            LineageSettings(max_depth=-1)

    def test_max_depth_garbage_rejected(self):
        with pytest.raises(ValidationError):
            LineageSettings(max_depth="deep")


class TestLoadSettings:
    """Precedence: overrides > environment > YAML > defaults."""

    def test_yaml_section(self, tmp_path):
        path = tmp_path / "lineage.yaml"
        path.write_text(
            "lineage:\n"
            "  table_name: org_tree\n"
            "  max_depth: 4\n"
            "  snapshots:\n"
            "    enabled: false\n"
        )
        settings = load_settings(path, env={})
        assert settings.table_name == "org_tree"
        assert settings.max_depth == 4
        assert settings.snapshots.enabled is False

    def test_yaml_without_section(self, tmp_path):
        path = tmp_path / "lineage.yaml"
        path.write_text("key_type: string\n")
        assert read_yaml_settings(path) == {"key_type": "string"}

    def test_yaml_must_be_mapping(self, tmp_path):
        path = tmp_path / "lineage.yaml"
        path.write_text("- one\n- two\n")
        with pytest.raises(ValueError):
            read_yaml_settings(path)

    def test_env_overrides_yaml(self, tmp_path):
        path = tmp_path / "lineage.yaml"
        path.write_text("lineage:\n  max_depth: 4\n  events:\n    enabled: true\n")
        env = {"LINEAGE_MAX_DEPTH": "none", "LINEAGE_EVENTS_ENABLED": "false"}

        settings = load_settings(path, env=env)
        assert settings.max_depth is None
        assert settings.events.enabled is False

    def test_overrides_win(self):
        env = {"LINEAGE_TABLE": "from_env", "LINEAGE_SNAPSHOTS_TABLE": "snaps_env"}
        settings = load_settings(
            env=env,
            overrides={"table_name": "explicit", "snapshots": {"enabled": False}},
        )
        assert settings.table_name == "explicit"
        # Nested override merges with the environment value
        assert settings.snapshots.table_name == "snaps_env"
        assert settings.snapshots.enabled is False

    def test_no_sources_gives_defaults(self):
        assert load_settings(env={}) == LineageSettings()
