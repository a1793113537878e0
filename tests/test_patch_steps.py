"""Tests for the declarative patch plan and companion repositories."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from gki_builder.patches.companions import (
    COMPANION_REPOS,
    CompanionRepo,
    clone_companions,
)
from gki_builder.patches.steps import FULL_PATCH_PLAN, PatchStep, build_patch_plan
from gki_builder.profiles.schema import BuildConfig
from gki_builder.types import ApplyMode, PatchTool, StepAction


def _config(**flags) -> BuildConfig:
    return BuildConfig(
        device_name="dev",
        repo_manifest="dev.xml",
        kernel_suffix="-test",
        **flags,
    )


class TestPatchPlan:
    """Tests for build_patch_plan function."""

    def test_full_plan_order(self):
        """With LZ4KD enabled every step runs, in fixed order."""
        names = [s.name for s in build_patch_plan(_config(enable_lz4kd=True))]
        assert names == [
            "copy-susfs-patch",
            "copy-syscall-hooks-patch",
            "copy-susfs-fs",
            "copy-susfs-include",
            "copy-lz4-patch",
            "copy-lz4-asm",
            "copy-zstd-patch",
            "apply-susfs",
            "copy-hide-patch",
            "apply-hide",
            "apply-syscall-hooks",
            "apply-lz4",
            "apply-zstd",
        ]

    def test_lz4kd_disabled(self):
        """Without LZ4KD the compression steps are left out."""
        plan = build_patch_plan(_config())
        assert all(step.feature != "lz4kd" for step in plan)
        assert len(plan) == len(FULL_PATCH_PLAN) - 5

    def test_kpm_does_not_change_plan(self):
        """KPM has no patch steps."""
        assert build_patch_plan(_config(enable_kpm=True)) == build_patch_plan(_config())

    def test_plan_is_stable(self):
        """Identical configs give identical plans."""
        assert build_patch_plan(_config(enable_lz4kd=True)) == build_patch_plan(
            _config(enable_lz4kd=True)
        )

    def test_failure_policies(self):
        """Only the hide and syscall hook patches are fatal apply steps."""
        plan = {s.name: s for s in FULL_PATCH_PLAN}
        fatal_applies = {
            s.name
            for s in FULL_PATCH_PLAN
            if s.action is StepAction.APPLY and s.mode is ApplyMode.FATAL
        }
        assert fatal_applies == {"apply-hide", "apply-syscall-hooks"}
        assert plan["apply-susfs"].mode is ApplyMode.BEST_EFFORT
        assert plan["apply-lz4"].tool is PatchTool.GIT_APPLY

    def test_unique_names(self):
        """Step names should be unique."""
        names = [s.name for s in FULL_PATCH_PLAN]
        assert len(names) == len(set(names))


class TestPatchCommand:
    """Tests for PatchStep.patch_command."""

    def test_patch_with_fuzz(self):
        """patch steps with fuzz pass -F."""
        step = PatchStep("s", StepAction.APPLY, "a.patch", "tree", fuzz=3)
        assert step.patch_command() == ["patch", "-p1", "-F", "3"]

    def test_patch_without_fuzz(self):
        """patch steps default to -p1."""
        step = PatchStep("s", StepAction.APPLY, "a.patch", "tree")
        assert step.patch_command() == ["patch", "-p1"]

    def test_git_apply(self):
        """git-apply steps use git apply."""
        step = PatchStep("s", StepAction.APPLY, "a.patch", "tree", tool=PatchTool.GIT_APPLY)
        assert step.patch_command() == ["git", "apply", "-p1"]

    def test_copy_has_no_command(self):
        """Copy steps have no patch command."""
        step = PatchStep("s", StepAction.COPY, "a", "b")
        with pytest.raises(ValueError):
            step.patch_command()


class TestCompanions:
    """Tests for companion repository cloning."""

    def test_clone_command(self):
        """Branch, quiet and depth options should be honored."""
        repo = CompanionRepo("r", "https://example.com/r.git", branch="b", quiet=True, depth=1)
        assert repo.clone_command(Path("/w/r")) == [
            "git",
            "clone",
            "-q",
            "https://example.com/r.git",
            "-b",
            "b",
            "--depth=1",
            "/w/r",
        ]

    def test_susfs_branch(self):
        """SUSFS is cloned from its android14-6.1 branch."""
        susfs = next(r for r in COMPANION_REPOS if r.name == "susfs4ksu")
        assert susfs.branch == "gki-android14-6.1"

    def test_clone_failures_are_warnings(self, tmp_path):
        """Failed clones should be reported, not raised."""
        with patch("subprocess.run") as mock_run:
            mock_run.side_effect = [
                MagicMock(returncode=0),
                MagicMock(returncode=128),
                MagicMock(returncode=0),
            ]
            warnings = clone_companions(tmp_path)

        assert len(warnings) == 1
        assert "kernel_patches" in warnings[0]
        assert mock_run.call_count == len(COMPANION_REPOS)
