"""Tests for layered build configuration selection."""

import os
from unittest.mock import MagicMock, patch

import pytest
import yaml

from gki_builder.profiles.presets import ONEPLUS_ACE5
from gki_builder.profiles.selection import (
    BuildOverrides,
    ProfileNotFoundError,
    resolve_profile,
    select_build_config,
)


@pytest.fixture
def no_env():
    """Return empty environment overrides."""
    return BuildOverrides.model_construct()


class TestResolveProfile:
    """Test resolve_profile function."""

    def test_default(self):
        """None should resolve to the default preset."""
        assert resolve_profile(None) == ONEPLUS_ACE5

    def test_builtin(self):
        """Built-in IDs should resolve first."""
        assert resolve_profile("oneplus_ace5") is ONEPLUS_ACE5

    def test_file(self, tmp_path):
        """A path should load a profile file."""
        path = tmp_path / "custom.yaml"
        path.write_text(
            yaml.dump(
                {
                    "profile_id": "custom",
                    "name": "Custom",
                    "build": {
                        "device_name": "oneplus_12",
                        "repo_manifest": "oneplus12_v.xml",
                        "kernel_suffix": "-custom",
                    },
                }
            )
        )

        profile = resolve_profile(str(path))
        assert profile.build.device_name == "oneplus_12"

    def test_not_found(self, tmp_path):
        """Unknown references should raise ProfileNotFoundError."""
        with pytest.raises(ProfileNotFoundError) as exc_info:
            resolve_profile(str(tmp_path / "nope.yaml"))
        assert exc_info.value.code == "profile_not_found"


class TestBuildOverrides:
    """Test environment overrides."""

    def test_reads_prefixed_env(self):
        """GKI_BUILD_* variables should populate the overrides."""
        with patch.dict(
            os.environ,
            {"GKI_BUILD_ENABLE_KPM": "false", "GKI_BUILD_KERNEL_SUFFIX": "-ci"},
        ):
            overrides = BuildOverrides()
            assert overrides.as_updates() == {
                "enable_kpm": False,
                "kernel_suffix": "-ci",
            }

    def test_reads_dotenv_file(self, tmp_path, monkeypatch):
        """A .env file in the working directory is read like the environment."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("GKI_BUILD_DEVICE_NAME", raising=False)
        monkeypatch.delenv("GKI_BUILD_KSU_VERSION_LABEL", raising=False)
        (tmp_path / ".env").write_text(
            "GKI_BUILD_DEVICE_NAME=oneplus_12\nGKI_BUILD_KSU_VERSION_LABEL=ci\n"
        )

        overrides = BuildOverrides()
        assert overrides.device_name == "oneplus_12"
        assert overrides.ksu_version_label == "ci"


class TestSelectBuildConfig:
    """Test select_build_config layering."""

    def test_profile_only(self, no_env):
        """Without overrides the profile's config is used."""
        config = select_build_config(ONEPLUS_ACE5, env_overrides=no_env)
        assert config == ONEPLUS_ACE5.build

    def test_env_over_profile(self):
        """Environment overrides should win over the profile."""
        env = BuildOverrides.model_construct(enable_lz4kd=False)
        config = select_build_config(ONEPLUS_ACE5, env_overrides=env)
        assert config.enable_lz4kd is False
        assert config.enable_kpm is True

    def test_cli_over_env(self):
        """CLI flags should win over the environment."""
        env = BuildOverrides.model_construct(kernel_suffix="-env")
        config = select_build_config(
            ONEPLUS_ACE5,
            cli_overrides={"kernel_suffix": "-cli", "enable_kpm": None},
            env_overrides=env,
        )
        assert config.kernel_suffix == "-cli"
        assert config.enable_kpm is True

    def test_prompts_for_unset_fields(self, no_env):
        """Interactive prompts should fill fields not set on the CLI."""
        prompt = MagicMock(return_value="-prompted")
        confirm = MagicMock(return_value=False)

        config = select_build_config(
            ONEPLUS_ACE5,
            env_overrides=no_env,
            prompt=prompt,
            confirm=confirm,
        )

        assert config.kernel_suffix == "-prompted"
        assert config.enable_kpm is False
        assert config.enable_lz4kd is False
        assert confirm.call_count == 2

    def test_prompt_skips_cli_fields(self, no_env):
        """Fields set on the CLI should not be prompted for."""
        prompt = MagicMock(return_value="")
        confirm = MagicMock(return_value=False)

        config = select_build_config(
            ONEPLUS_ACE5,
            cli_overrides={"enable_kpm": True, "enable_lz4kd": True},
            env_overrides=no_env,
            prompt=prompt,
            confirm=confirm,
        )

        confirm.assert_not_called()
        assert config.enable_kpm is True

    def test_empty_suffix_answer_keeps_default(self, no_env):
        """An empty answer keeps the current suffix."""
        config = select_build_config(
            ONEPLUS_ACE5,
            env_overrides=no_env,
            prompt=MagicMock(return_value="   "),
            confirm=MagicMock(side_effect=lambda _q, default: default),
        )
        assert config.kernel_suffix == ONEPLUS_ACE5.build.kernel_suffix
