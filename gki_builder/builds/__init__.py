"""Build orchestration module.

This module handles:
- Defconfig injection
- Running make with the prebuilt toolchain
- Optional KPM post-patch of the kernel image
- AnyKernel3 packaging and artifact manifests
"""

# Access submodules directly: gki_builder.builds.runner, etc.
