"""GKI Kernel Builder - Orchestration for customized Android GKI kernel builds.

This package drives the external tools (repo, git, patch, make) that sync,
patch, build and package a SukiSU/SUSFS-enabled GKI kernel into an
AnyKernel3 flashable archive.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
