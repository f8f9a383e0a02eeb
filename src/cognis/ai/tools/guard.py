"""Confine caller-supplied paths to the workspace."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from cognis.core.errors import WorkspaceError


class WorkspaceGuard:
    def resolve(self, workspace: Optional[Path], requested: str) -> Path:
        """Normalize ``requested`` against ``workspace``; it must stay inside it."""
        if workspace is None:
            raise WorkspaceError("Workspace is not configured")

        root = Path(os.path.normpath(os.path.abspath(workspace)))
        candidate = Path(requested).expanduser()
        if not candidate.is_absolute():
            candidate = root / candidate
        resolved = Path(os.path.normpath(os.path.abspath(candidate)))

        if resolved != root and not resolved.is_relative_to(root):
            raise WorkspaceError(f"Path escapes workspace: {requested}")
        return resolved
