"""Tests for the setlocalversion edits."""

import pytest

from gki_builder.errors import AnchorNotFoundError, GkiBuildError
from gki_builder.source.localversion import (
    DIRTY_NORMALIZE_LINE,
    apply_suffix,
    apply_suffix_file,
    mutate_version_scripts,
    strip_dirty,
    strip_dirty_file,
)

SCRIPT = """#!/bin/sh
res="${res} -dirty"
scm_version() {
  printf '%s' " -dirty"
}
echo "$res"
"""


class TestStripDirty:
    """Tests for strip_dirty function."""

    def test_removes_markers(self):
        """Every ' -dirty' marker should be removed."""
        result = strip_dirty(SCRIPT)
        assert " -dirty" not in result

    def test_inserts_normalization_before_last_line(self):
        """The sed normalization line goes right before the final line."""
        lines = strip_dirty(SCRIPT).splitlines()
        assert lines[-2] == DIRTY_NORMALIZE_LINE
        assert lines[-1] == 'echo "$res"'

    def test_idempotent(self):
        """Applying twice should equal applying once."""
        once = strip_dirty(SCRIPT)
        assert strip_dirty(once) == once

    def test_existing_normalization_kept(self):
        """A script that already normalizes is left alone."""
        text = "res=$(echo \"$res\" | sed 's/-dirty//g')\necho \"$res\"\n"
        assert strip_dirty(text) == text

    def test_empty(self):
        """Empty input stays empty."""
        assert strip_dirty("") == ""


class TestApplySuffix:
    """Tests for apply_suffix function."""

    def test_replaces_final_echo(self):
        """The final echo should print the literal suffix."""
        result = apply_suffix(SCRIPT, "-android14-@hipuu")
        assert result.splitlines()[-1] == 'echo "-android14-@hipuu"'
        assert result.endswith("\n")

    def test_only_final_line(self):
        """Earlier echo "$res" lines are untouched."""
        text = 'echo "$res"\nfoo\necho "$res"\n'
        result = apply_suffix(text, "-x")
        assert result == 'echo "$res"\nfoo\necho "-x"\n'

    def test_idempotent(self):
        """Applying the same suffix twice is a no-op."""
        once = apply_suffix(SCRIPT, "-x")
        assert apply_suffix(once, "-x") == once

    def test_missing_anchor(self, tmp_path):
        """A script without the anchor should fail loudly."""
        with pytest.raises(AnchorNotFoundError) as exc_info:
            apply_suffix("echo done\n", "-x", tmp_path / "setlocalversion")
        assert exc_info.value.code == "anchor_not_found"

    def test_different_suffix_already_applied(self):
        """A different suffix already in place is not the anchor."""
        once = apply_suffix(SCRIPT, "-x")
        with pytest.raises(AnchorNotFoundError):
            apply_suffix(once, "-y")

    def test_empty_script(self):
        """An empty script has no anchor."""
        with pytest.raises(AnchorNotFoundError):
            apply_suffix("", "-x")


class TestFileEdits:
    """Tests for the in-place file helpers."""

    def test_strip_dirty_file_reports_change(self, tmp_path):
        """Should return True only when the file changed."""
        script = tmp_path / "setlocalversion"
        script.write_text(SCRIPT)

        assert strip_dirty_file(script) is True
        assert strip_dirty_file(script) is False

    def test_apply_suffix_file_reports_change(self, tmp_path):
        """Should return True only when the file changed."""
        script = tmp_path / "setlocalversion"
        script.write_text(SCRIPT)

        assert apply_suffix_file(script, "-x") is True
        assert apply_suffix_file(script, "-x") is False

    def test_missing_file(self, tmp_path):
        """A missing script should raise a fatal error."""
        with pytest.raises(GkiBuildError) as exc_info:
            strip_dirty_file(tmp_path / "missing")
        assert exc_info.value.code == "file_not_found"


class TestMutateVersionScripts:
    """Tests for mutate_version_scripts function."""

    def test_all_scripts(self, tmp_path):
        """Every script should be stripped and suffixed."""
        scripts = []
        for tree in ("common", "msm-kernel", "external/dtc"):
            script = tmp_path / tree / "scripts" / "setlocalversion"
            script.parent.mkdir(parents=True)
            script.write_text(SCRIPT)
            scripts.append(script)

        mutate_version_scripts(scripts, "-android14-12345")

        for script in scripts:
            text = script.read_text()
            assert " -dirty" not in text
            assert DIRTY_NORMALIZE_LINE in text
            assert text.splitlines()[-1] == 'echo "-android14-12345"'

    def test_rerun_is_stable(self, tmp_path):
        """A second run with the same suffix leaves the files unchanged."""
        script = tmp_path / "setlocalversion"
        script.write_text(SCRIPT)

        mutate_version_scripts([script], "-x")
        first = script.read_text()
        mutate_version_scripts([script], "-x")

        assert script.read_text() == first
