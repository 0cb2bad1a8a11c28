"""Gitignore-style exclusion of workspace paths."""

from __future__ import annotations

from typing import Iterable

import pathspec


class PathFilter:
    """Matches workspace-relative paths against exclude globs (`**` aware)."""

    def __init__(self, patterns: Iterable[str] = ()):
        self.patterns: tuple[str, ...] = tuple(patterns)
        self._spec = pathspec.PathSpec.from_lines("gitwildmatch", self.patterns)

    def is_excluded(self, relative_path: str) -> bool:
        if not self.patterns:
            return False
        return self._spec.match_file(relative_path.replace("\\", "/"))

    def __repr__(self) -> str:
        return f"PathFilter({list(self.patterns)!r})"
