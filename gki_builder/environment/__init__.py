"""Host and workspace preparation.

This module handles:
- System package checks and installation
- Git identity and repo launcher setup
- Per-device ccache initialization
- The fixed workspace directory layout
"""

from gki_builder.environment.workspace import Workspace

__all__ = ["Workspace"]
