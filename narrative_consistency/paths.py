"""
narrative_consistency/paths.py -- Storage path resolution.

Uses platformdirs for the per-user data directory so universe documents
survive package upgrades.
"""

from __future__ import annotations

import os

from platformdirs import user_data_dir

_APP_NAME = "NarrativeConsistency"
_APP_AUTHOR = "NarrativeConsistency"


def get_user_data_dir() -> str:
    """Return the platform-appropriate user data directory."""
    path = user_data_dir(_APP_NAME, _APP_AUTHOR)
    os.makedirs(path, exist_ok=True)
    return path


def get_default_storage_dir() -> str:
    """Return the directory holding one JSON document per universe."""
    path = os.path.join(get_user_data_dir(), "universes")
    os.makedirs(path, exist_ok=True)
    return path
