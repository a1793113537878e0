"""Tests for host preparation: workspace, dependencies and ccache."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import httpx
import pytest
import respx

from gki_builder.environment.ccache import (
    SENTINEL_NAME,
    ccache_dir_for,
    ccache_environment,
    ensure_ccache,
)
from gki_builder.environment.deps import (
    ensure_git_identity,
    ensure_packages,
    ensure_repo_tool,
    find_missing_packages,
    install_packages,
)
from gki_builder.environment.workspace import Workspace
from gki_builder.errors import EnvironmentSetupError


class TestWorkspace:
    """Tests for the Workspace layout."""

    def test_layout(self, tmp_path):
        """All paths should derive from root and device name."""
        ws = Workspace.for_device(tmp_path, "oneplus_ace5", tmp_path / "out")

        assert ws.root == tmp_path / "kernel_oneplus_ace5"
        assert ws.kernel_workspace == ws.root / "kernel_workspace"
        assert ws.common == ws.root / "kernel_workspace/kernel_platform/common"
        assert ws.kernelsu == ws.kernel_platform / "KernelSU"
        assert ws.image == ws.common / "out/arch/arm64/boot/Image"
        assert ws.anykernel_dir == ws.root / "AnyKernel3"

    def test_localversion_scripts(self, tmp_path):
        """Three version scripts should be mutated."""
        ws = Workspace.for_device(tmp_path, "dev", tmp_path / "out")
        scripts = ws.localversion_scripts()
        assert scripts == [
            ws.kernel_platform / "common/scripts/setlocalversion",
            ws.kernel_platform / "msm-kernel/scripts/setlocalversion",
            ws.kernel_platform / "external/dtc/scripts/setlocalversion",
        ]

    def test_ensure_and_remove(self, tmp_path):
        """ensure creates the directories; remove deletes the workspace."""
        ws = Workspace.for_device(tmp_path, "dev", tmp_path / "out")
        ws.ensure()
        assert ws.kernel_workspace.is_dir()
        assert ws.logs_dir.is_dir()

        ws.remove()
        assert not ws.root.exists()

    def test_ensure_failure(self, tmp_path):
        """A file in the way should raise EnvironmentSetupError."""
        blocker = tmp_path / "kernel_dev"
        blocker.write_text("not a dir")
        ws = Workspace.for_device(tmp_path, "dev", tmp_path / "out")

        with pytest.raises(EnvironmentSetupError) as exc_info:
            ws.ensure()
        assert exc_info.value.code == "workspace_error"


class TestPackages:
    """Tests for system package checks."""

    def test_find_missing(self):
        """Packages dpkg does not know are reported missing."""

        def fake_run(cmd, **kwargs):
            return MagicMock(returncode=0 if cmd[-1] == "git" else 1)

        with patch("subprocess.run", side_effect=fake_run):
            assert find_missing_packages(["git", "ccache", "bc"]) == ["ccache", "bc"]

    def test_install_uses_sudo(self):
        """use_sudo should prefix apt-get."""
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0)
            install_packages(["bc"], use_sudo=True)

        cmds = [c[0][0] for c in mock_run.call_args_list]
        assert cmds == [
            ["sudo", "apt-get", "update"],
            ["sudo", "apt-get", "install", "-y", "bc"],
        ]

    def test_install_failure(self):
        """apt-get failures become EnvironmentSetupError."""
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=100, stderr="")
            with pytest.raises(EnvironmentSetupError) as exc_info:
                install_packages(["bc"])
        assert exc_info.value.code == "dependency_install_failed"

    def test_ensure_packages_all_installed(self):
        """Nothing is installed when every package is present."""
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0)
            assert ensure_packages(["git", "bc"]) == []

        cmds = [c[0][0] for c in mock_run.call_args_list]
        assert all(cmd[0] == "dpkg" for cmd in cmds)


class TestGitIdentity:
    """Tests for ensure_git_identity function."""

    def test_already_configured(self):
        """Existing identity is left alone."""
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0, stdout="someone\n")
            assert ensure_git_identity("Builder", "b@example.com") is False
        assert mock_run.call_count == 2

    def test_sets_identity(self):
        """Missing identity is written globally."""

        def fake_run(cmd, **kwargs):
            if len(cmd) == 4:
                return MagicMock(returncode=1, stdout="")
            return MagicMock(returncode=0)

        with patch("subprocess.run", side_effect=fake_run) as mock_run:
            assert ensure_git_identity("Builder", "b@example.com") is True

        written = [c[0][0] for c in mock_run.call_args_list if len(c[0][0]) == 5]
        assert ["git", "config", "--global", "user.name", "Builder"] in written
        assert ["git", "config", "--global", "user.email", "b@example.com"] in written


class TestRepoTool:
    """Tests for ensure_repo_tool function."""

    def test_already_on_path(self, tmp_path):
        """An existing repo binary is used as-is."""
        with patch("shutil.which", return_value="/usr/bin/repo"):
            with httpx.Client() as client:
                path = ensure_repo_tool(client, tmp_path / "repo", "https://example.com/repo")
        assert path == Path("/usr/bin/repo")

    @respx.mock
    def test_downloads_when_missing(self, tmp_path):
        """A missing repo binary is downloaded and made executable."""
        respx.get("https://example.com/repo").mock(
            return_value=httpx.Response(200, content=b"#!/usr/bin/env python3\n")
        )

        with patch("shutil.which", return_value=None):
            with httpx.Client() as client:
                path = ensure_repo_tool(client, tmp_path / "repo", "https://example.com/repo")

        assert path == tmp_path / "repo"
        assert path.read_bytes().startswith(b"#!")

    @respx.mock
    def test_download_failure(self, tmp_path):
        """Download failures become EnvironmentSetupError."""
        respx.get("https://example.com/repo").mock(return_value=httpx.Response(500))

        with patch("shutil.which", return_value=None):
            with httpx.Client() as client:
                with pytest.raises(EnvironmentSetupError) as exc_info:
                    ensure_repo_tool(client, tmp_path / "repo", "https://example.com/repo")
        assert exc_info.value.code == "repo_install_failed"

    def test_installed_path_wins(self, tmp_path):
        """An executable launcher at the install path is reused without lookup or download."""
        launcher = tmp_path / "bin" / "repo"
        launcher.parent.mkdir()
        launcher.write_text("#!/bin/sh\n")
        launcher.chmod(0o755)

        with patch("shutil.which") as mock_which, patch("subprocess.run") as mock_run:
            with httpx.Client() as client:
                path = ensure_repo_tool(client, launcher, "https://example.com/repo")

        assert path == launcher
        mock_which.assert_not_called()
        mock_run.assert_not_called()

    @respx.mock
    def test_sudo_install(self, tmp_path):
        """With use_sudo the download is moved into place by sudo install."""
        respx.get("https://example.com/repo").mock(
            return_value=httpx.Response(200, content=b"#!/usr/bin/env python3\n")
        )
        launcher = tmp_path / "bin" / "repo"

        with patch("shutil.which", return_value=None), patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0)
            with httpx.Client() as client:
                path = ensure_repo_tool(
                    client, launcher, "https://example.com/repo", use_sudo=True
                )

        assert path == launcher
        cmd = mock_run.call_args[0][0]
        assert cmd[:5] == ["sudo", "install", "-D", "-m", "0755"]
        assert cmd[-1] == str(launcher)
        assert not launcher.exists()


class TestCcache:
    """Tests for ccache setup."""

    def test_dir_per_device(self, tmp_path):
        """Each device gets its own cache directory."""
        assert ccache_dir_for(tmp_path, "oneplus_ace5") == tmp_path / ".ccache_oneplus_ace5"

    def test_environment(self, tmp_path):
        """The build environment should point ccache at the device cache."""
        env = ccache_environment(tmp_path, "8G")
        assert env["CCACHE_DIR"] == str(tmp_path)
        assert env["CCACHE_MAXSIZE"] == "8G"
        assert env["CCACHE_NOHASHDIR"] == "true"
        assert env["CCACHE_HARDLINK"] == "true"
        assert "%compiler%" in env["CCACHE_COMPILERCHECK"]

    def test_initializes_once(self, tmp_path):
        """ccache -M runs only until the sentinel exists."""
        cache_dir = tmp_path / ".ccache_dev"

        with patch("shutil.which", return_value="/usr/bin/ccache"), patch(
            "subprocess.run"
        ) as mock_run:
            mock_run.return_value = MagicMock(returncode=0)
            assert ensure_ccache(cache_dir, "8G") is True
            assert ensure_ccache(cache_dir, "8G") is False

        assert mock_run.call_count == 1
        assert mock_run.call_args[0][0] == ["ccache", "-M", "8G"]
        assert (cache_dir / SENTINEL_NAME).is_file()

    def test_ccache_not_installed(self, tmp_path):
        """Without ccache nothing is initialized."""
        with patch("shutil.which", return_value=None):
            assert ensure_ccache(tmp_path / ".ccache_dev", "8G") is False
        assert not (tmp_path / ".ccache_dev").exists()
