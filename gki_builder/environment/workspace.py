"""Workspace layout for a build run.

All paths are derived from the workspace root and the device name; nothing
else in the pipeline builds paths from scratch.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from gki_builder.errors import EnvironmentSetupError

logger = logging.getLogger(__name__)

# Version scripts whose output forms the kernel release string
LOCALVERSION_TREES = ("common", "msm-kernel", "external/dtc")

# Trees carrying ABI protected export lists
ABI_PROTECTED_TREES = ("common", "msm-kernel")


@dataclass(frozen=True)
class Workspace:
    """Fixed directory layout of one build run."""

    root: Path
    output_dir: Path

    @classmethod
    def for_device(cls, workspace_root: Path, device_name: str, output_dir: Path) -> Workspace:
        """Create the layout for a device under a workspace root."""
        return cls(root=workspace_root / f"kernel_{device_name}", output_dir=output_dir)

    @property
    def kernel_workspace(self) -> Path:
        """The repo sync root; companion repositories are cloned here."""
        return self.root / "kernel_workspace"

    @property
    def kernel_platform(self) -> Path:
        return self.kernel_workspace / "kernel_platform"

    @property
    def common(self) -> Path:
        """The GKI kernel tree that is patched and built."""
        return self.kernel_platform / "common"

    @property
    def kernelsu(self) -> Path:
        return self.kernel_platform / "KernelSU"

    @property
    def boot_dir(self) -> Path:
        return self.common / "out" / "arch" / "arm64" / "boot"

    @property
    def image(self) -> Path:
        return self.boot_dir / "Image"

    @property
    def logs_dir(self) -> Path:
        return self.root / "logs"

    @property
    def anykernel_dir(self) -> Path:
        return self.root / "AnyKernel3"

    def localversion_scripts(self) -> list[Path]:
        """Return the setlocalversion scripts to mutate."""
        return [
            self.kernel_platform / tree / "scripts" / "setlocalversion"
            for tree in LOCALVERSION_TREES
        ]

    def log_path(self, name: str) -> Path:
        """Return the log file path for a named step."""
        return self.logs_dir / f"{name}.log"

    def ensure(self) -> None:
        """Create the workspace directories.

        Raises:
            EnvironmentSetupError: If a directory cannot be created.
        """
        for directory in (self.root, self.kernel_workspace, self.logs_dir):
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise EnvironmentSetupError(
                    f"Failed to create directory {directory}: {e}",
                    code="workspace_error",
                ) from e

    def remove(self) -> None:
        """Delete the whole workspace."""
        if not self.root.exists():
            return
        logger.info("Removing workspace %s", self.root)
        shutil.rmtree(self.root)


__all__ = ["ABI_PROTECTED_TREES", "LOCALVERSION_TREES", "Workspace"]
