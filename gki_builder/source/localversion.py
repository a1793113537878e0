"""Edits to the kernel's setlocalversion scripts.

Two textual edits are made to each script:

- strip every " -dirty" marker and make sure the computed result is
  normalized with a `sed 's/-dirty//g'` line before the final line;
- replace the final `echo "$res"` with a literal suffix.

Both edits are idempotent. The suffix edit requires its anchor: a final
line that is neither `echo "$res"` nor the already-applied suffix raises
AnchorNotFoundError.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from gki_builder.errors import AnchorNotFoundError, GkiBuildError

logger = logging.getLogger(__name__)

DIRTY_MARKER = " -dirty"
DIRTY_NORMALIZED_PATTERN = re.compile(r"res=.*s/-dirty")
DIRTY_NORMALIZE_LINE = "res=$(echo \"$res\" | sed 's/-dirty//g')"
SUFFIX_ANCHOR = 'echo "$res"'


def suffix_line(suffix: str) -> str:
    """Return the final script line that prints the given suffix."""
    return f'echo "{suffix}"'


def strip_dirty(text: str) -> str:
    """Remove -dirty markers and insert the normalization line if missing.

    Args:
        text: Script content.

    Returns:
        Updated script content.
    """
    text = text.replace(DIRTY_MARKER, "")
    lines = text.splitlines(keepends=True)
    if not lines:
        return text
    if any(DIRTY_NORMALIZED_PATTERN.search(line) for line in lines):
        return text
    lines.insert(len(lines) - 1, DIRTY_NORMALIZE_LINE + "\n")
    return "".join(lines)


def apply_suffix(text: str, suffix: str, path: Path | None = None) -> str:
    """Replace the final `echo "$res"` with a literal suffix.

    Args:
        text: Script content.
        suffix: Kernel suffix to print.
        path: Script path, for error messages.

    Returns:
        Updated script content.

    Raises:
        AnchorNotFoundError: If the final line is not the expected anchor.
    """
    lines = text.splitlines(keepends=True)
    where = path or Path("<setlocalversion>")
    if not lines:
        raise AnchorNotFoundError(where, SUFFIX_ANCHOR)

    last = lines[-1]
    body = last.rstrip("\n")
    ending = last[len(body):]
    target = suffix_line(suffix)

    if SUFFIX_ANCHOR in body:
        lines[-1] = body.replace(SUFFIX_ANCHOR, target, 1) + ending
    elif body.strip() == target:
        return text
    else:
        raise AnchorNotFoundError(where, SUFFIX_ANCHOR)

    return "".join(lines)


def _read_script(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise GkiBuildError(
            f"Version script not found: {path}", code="file_not_found"
        ) from None


def strip_dirty_file(path: Path) -> bool:
    """Apply strip_dirty to a script in place.

    Returns:
        True if the file changed.
    """
    original = _read_script(path)
    updated = strip_dirty(original)
    if updated == original:
        return False
    path.write_text(updated, encoding="utf-8")
    return True


def apply_suffix_file(path: Path, suffix: str) -> bool:
    """Apply apply_suffix to a script in place.

    Returns:
        True if the file changed.
    """
    original = _read_script(path)
    updated = apply_suffix(original, suffix, path)
    if updated == original:
        return False
    path.write_text(updated, encoding="utf-8")
    return True


def mutate_version_scripts(scripts: list[Path], suffix: str) -> None:
    """Strip -dirty markers, then set the suffix, in every script.

    Raises:
        GkiBuildError: If a script is missing.
        AnchorNotFoundError: If a script lacks the suffix anchor.
    """
    logger.info("Cleaning dirty tags...")
    for script in scripts:
        strip_dirty_file(script)

    logger.info("Modifying kernel version string to %r", suffix)
    for script in scripts:
        apply_suffix_file(script, suffix)


__all__ = [
    "DIRTY_NORMALIZE_LINE",
    "SUFFIX_ANCHOR",
    "apply_suffix",
    "apply_suffix_file",
    "mutate_version_scripts",
    "strip_dirty",
    "strip_dirty_file",
    "suffix_line",
]
