"""Patch application pipeline.

This module handles:
- Cloning the companion patch repositories
- The fixed, ordered patch plan
- Executing the plan with a per-step failure policy
"""

from gki_builder.patches.executor import StepOutcome, execute_plan
from gki_builder.patches.steps import FULL_PATCH_PLAN, PatchStep, build_patch_plan

__all__ = [
    "FULL_PATCH_PLAN",
    "PatchStep",
    "StepOutcome",
    "build_patch_plan",
    "execute_plan",
]
