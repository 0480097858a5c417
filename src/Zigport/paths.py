"""Filesystem helpers for declared package paths."""

from __future__ import annotations

import os
from pathlib import Path

from Zigport.config import load_settings
from Zigport.models import PathRelativity


def create_absolute_path(
    path: str,
    relativity: str | None,
    document_path: str | None,
    *,
    user_data_dir: str | None = None,
) -> str:
    """Turn a declared package path into an absolute one.

    ``relativeToZap`` resolves against the directory of the document itself,
    ``relativeToHome`` against the user's home and ``relativeToUserData``
    against the configured user-data directory. ``absolute``, a missing
    relativity, or an unknown one leave the path untouched.
    """
    if relativity is None or relativity == PathRelativity.absolute.value:
        return path
    if relativity == PathRelativity.relative_to_zap.value:
        if document_path is None:
            return path
        return os.path.normpath(os.path.join(os.path.dirname(document_path), path))
    if relativity == PathRelativity.relative_to_home.value:
        return os.path.normpath(os.path.join(Path.home(), path))
    if relativity == PathRelativity.relative_to_user_data.value:
        base = user_data_dir or load_settings().user_data_dir
        return os.path.normpath(os.path.join(base, path))
    return path


def package_path_exists(path: str) -> bool:
    return Path(path).exists()
