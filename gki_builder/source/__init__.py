"""Kernel source acquisition and mutation.

This module handles:
- repo init/sync from a manifest
- SukiSU setup and version computation
- setlocalversion edits (-dirty removal, kernel suffix)
"""
