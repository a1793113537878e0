"""Tests for AnyKernel3 packaging and artifact publishing."""

import json
import zipfile
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from gki_builder.builds.package import (
    MANIFEST_NAME,
    archive_name,
    clone_template,
    create_archive,
    generate_manifest,
    package_kernel,
    strip_template,
)
from gki_builder.errors import PackagingError
from gki_builder.types import ArtifactInfo

TEMPLATE_URL = "https://example.com/AnyKernel3.git"


def _make_template(root: Path) -> Path:
    """Create an AnyKernel3-like template directory."""
    root.mkdir(parents=True)
    (root / "anykernel.sh").write_text("#!/sbin/sh\n")
    (root / "push.sh").write_text("adb push\n")
    (root / ".git").mkdir()
    (root / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
    (root / ".github").mkdir()
    (root / ".github" / "ci.yml").write_text("on: push\n")
    (root / "tools").mkdir()
    (root / "tools" / "ak3-core.sh").write_text("core\n")
    (root / "META-INF" / "com" / "google" / "android").mkdir(parents=True)
    (root / "META-INF" / "com" / "google" / "android" / "update-binary").write_text("bin\n")
    return root


class TestArchiveName:
    """Tests for archive_name function."""

    def test_format(self):
        """Name is AnyKernel3_<version>_<device>_<tag>.zip."""
        assert (
            archive_name(12345, "oneplus_ace5", "SuKiSu")
            == "AnyKernel3_12345_oneplus_ace5_SuKiSu.zip"
        )


class TestTemplate:
    """Tests for template preparation."""

    def test_strip_template(self, tmp_path):
        """.git and push.sh are removed."""
        template = _make_template(tmp_path / "AnyKernel3")

        removed = strip_template(template)

        assert removed == [".git", "push.sh"]
        assert not (template / ".git").exists()
        assert not (template / "push.sh").exists()
        assert (template / "anykernel.sh").exists()

    def test_strip_template_idempotent(self, tmp_path):
        """A second strip removes nothing."""
        template = _make_template(tmp_path / "AnyKernel3")
        strip_template(template)
        assert strip_template(template) == []

    def test_clone_failure_with_existing_template(self, tmp_path):
        """A failed clone over an existing template is tolerated."""
        template = _make_template(tmp_path / "AnyKernel3")

        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=128)
            clone_template(TEMPLATE_URL, template)

    def test_clone_failure_without_template(self, tmp_path):
        """A failed clone with no template is fatal."""
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=128)
            with pytest.raises(PackagingError) as exc_info:
                clone_template(TEMPLATE_URL, tmp_path / "AnyKernel3")

        assert exc_info.value.code == "template_clone_failed"


class TestCreateArchive:
    """Tests for create_archive function."""

    def test_contents(self, tmp_path):
        """Entries are relative to the template; hidden top-level entries are skipped."""
        template = _make_template(tmp_path / "AnyKernel3")
        strip_template(template)
        (template / "Image").write_bytes(b"kernel")

        archive = create_archive(template, tmp_path / "out.zip")

        with zipfile.ZipFile(archive) as zf:
            names = set(zf.namelist())
            assert zf.read("Image") == b"kernel"

        assert "anykernel.sh" in names
        assert "tools/ak3-core.sh" in names
        assert "META-INF/com/google/android/update-binary" in names
        assert not any(n.startswith(".git") for n in names)
        assert "push.sh" not in names

    def test_archive_inside_template_is_skipped(self, tmp_path):
        """An archive written into the template never contains itself."""
        template = _make_template(tmp_path / "AnyKernel3")
        archive_path = template / "AnyKernel3_1_dev_tag.zip"
        archive_path.write_bytes(b"stale")

        create_archive(template, archive_path)

        with zipfile.ZipFile(archive_path) as zf:
            assert archive_path.name not in zf.namelist()

    def test_deterministic_order(self, tmp_path):
        """Entries are written in sorted order."""
        template = _make_template(tmp_path / "AnyKernel3")
        strip_template(template)

        archive = create_archive(template, tmp_path / "out.zip")

        with zipfile.ZipFile(archive) as zf:
            names = [n.rstrip("/") for n in zf.namelist()]
        assert names.index("META-INF") < names.index("anykernel.sh") < names.index("tools")


class TestGenerateManifest:
    """Tests for generate_manifest function."""

    def test_summary(self):
        """Manifest summarizes the artifacts."""
        artifacts = [
            ArtifactInfo("a.zip", "/o/a.zip", 10, "aa", "anykernel3"),
            ArtifactInfo("Image", "/o/Image", 5, "bb", "kernel"),
        ]

        manifest = generate_manifest(artifacts, {"device_name": "dev"}, version=12345)

        assert manifest["kernel_version"] == 12345
        assert manifest["build_inputs"] == {"device_name": "dev"}
        assert manifest["summary"] == {"total_artifacts": 2, "total_size_bytes": 15}
        assert manifest["artifacts"][0]["kind"] == "anykernel3"


class TestPackageKernel:
    """Tests for package_kernel function."""

    def test_end_to_end(self, tmp_path):
        """Image is packaged and published with a manifest."""
        template = _make_template(tmp_path / "AnyKernel3")
        image = tmp_path / "boot" / "Image"
        image.parent.mkdir()
        image.write_bytes(b"kernel")
        output_dir = tmp_path / "output"
        archive_path = tmp_path / archive_name(12345, "dev", "SuKiSu")

        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=128)
            result = package_kernel(
                image=image,
                template_dir=template,
                template_url=TEMPLATE_URL,
                archive_path=archive_path,
                output_dir=output_dir,
                build_inputs={"device_name": "dev"},
                version=12345,
            )

        assert result.archive_path == output_dir / "AnyKernel3_12345_dev_SuKiSu.zip"
        assert result.image_path.read_bytes() == b"kernel"
        with zipfile.ZipFile(result.archive_path) as zf:
            assert zf.read("Image") == b"kernel"

        manifest = json.loads((output_dir / MANIFEST_NAME).read_text())
        assert [a["kind"] for a in manifest["artifacts"]] == ["anykernel3", "kernel"]
        assert manifest["kernel_version"] == 12345

    def test_missing_image(self, tmp_path):
        """Packaging without an image is an error."""
        with pytest.raises(PackagingError) as exc_info:
            package_kernel(
                image=tmp_path / "Image",
                template_dir=tmp_path / "AnyKernel3",
                template_url=TEMPLATE_URL,
                archive_path=tmp_path / "a.zip",
                output_dir=tmp_path / "output",
            )
        assert exc_info.value.code == "image_missing"
