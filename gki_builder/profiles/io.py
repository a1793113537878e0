"""Reading and writing build profile files.

Profiles are stored as YAML (`.yaml`/`.yml`) or JSON (`.json`); the
extension picks the parser. Either way the document must be a mapping that
validates as a BuildProfile.
"""

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml

from gki_builder.profiles.schema import BuildProfile


def _require_mapping(data: Any, path: Path, kind: str) -> dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level of a {kind} profile must be a mapping")
    return data


def load_yaml(path: Path) -> dict[str, Any]:
    """Parse a YAML profile document.

    An empty file yields an empty dict; any non-mapping document raises
    ValueError. Parser errors (yaml.YAMLError) propagate unchanged.
    """
    text = path.read_text(encoding="utf-8")
    return _require_mapping(yaml.safe_load(text), path, "YAML")


def load_json(path: Path) -> dict[str, Any]:
    """Parse a JSON profile document (must be an object)."""
    text = path.read_text(encoding="utf-8")
    return _require_mapping(json.loads(text), path, "JSON")


_READERS: dict[str, Callable[[Path], dict[str, Any]]] = {
    ".yaml": load_yaml,
    ".yml": load_yaml,
    ".json": load_json,
}


def load_profile(path: Path) -> BuildProfile:
    """Read and validate one profile file.

    Raises:
        FileNotFoundError: If path does not exist.
        ValueError: For an unknown extension or a non-mapping document.
        pydantic.ValidationError: If the document is not a valid profile.
    """
    reader = _READERS.get(path.suffix.lower())
    if reader is None:
        known = ", ".join(sorted(_READERS))
        raise ValueError(f"Unsupported file extension '{path.suffix}' (expected one of {known})")
    return BuildProfile.model_validate(reader(path))


def profile_to_yaml_string(profile: BuildProfile) -> str:
    """Render a profile as YAML, keeping field order."""
    payload = profile.model_dump(mode="json", exclude_none=True)
    rendered: str = yaml.safe_dump(payload, sort_keys=False, allow_unicode=True)
    return rendered


def profile_to_json_string(profile: BuildProfile) -> str:
    """Render a profile as indented JSON."""
    payload = profile.model_dump(mode="json", exclude_none=True)
    return json.dumps(payload, indent=2, ensure_ascii=False)


def load_profiles_from_directory(directory: Path, pattern: str = "*.yaml") -> list[BuildProfile]:
    """Load every profile in directory matching pattern, in filename order.

    Raises:
        FileNotFoundError: If directory is not a directory.
    """
    if not directory.is_dir():
        raise FileNotFoundError(f"Profile directory not found: {directory}")
    return [load_profile(path) for path in sorted(directory.glob(pattern))]


__all__ = [
    "load_json",
    "load_profile",
    "load_profiles_from_directory",
    "load_yaml",
    "profile_to_json_string",
    "profile_to_yaml_string",
]
