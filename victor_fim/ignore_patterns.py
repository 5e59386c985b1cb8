# Copyright 2025 Vijaykumar Singh <singhvjd@gmail.com>
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Path filtering for cross-file prompt context.

Centralizes which files may contribute content to a completion prompt so
the engagement tracker and the prompt builder agree:
- Version control and package metadata files are never tracked
- Hidden directories (starting with '.') are excluded by convention
- Project ``.gitignore`` entries and configured globs are honored
"""

import logging
import re
from fnmatch import fnmatch
from pathlib import Path, PurePath
from typing import Iterable, List, Optional, Sequence

logger = logging.getLogger(__name__)

# Files matching this are never tracked as engagement candidates.
# Matches whole path components only, so "digits.py" is tracked.
TRACKING_EXCLUDE_REGEX = re.compile(
    r"(^|[\\/])(\.git|\.hg)([\\/]|$)"
    r"|(^|[\\/])(\.gitignore|\.gitattributes|\.gitmodules|\.hgignore|package\.json)$"
)


def is_tracking_excluded(path: str) -> bool:
    """Check if a path is version-control or package metadata.

    Example:
        >>> is_tracking_excluded("/repo/.git/COMMIT_EDITMSG")
        True
        >>> is_tracking_excluded("/repo/src/main.py")
        False
    """
    return TRACKING_EXCLUDE_REGEX.search(path) is not None


def is_hidden_path(path: PurePath) -> bool:
    """Check if any component of the path is a hidden directory.

    Excludes '.' and '..' which are special directory entries.
    """
    for part in path.parts[:-1]:
        if part.startswith(".") and part not in (".", ".."):
            return True
    return False


def load_gitignore_patterns(root: Optional[Path]) -> List[str]:
    """Read glob patterns from ``root/.gitignore``.

    Comments, blank lines and negations are skipped.
    """
    if root is None:
        return []
    gitignore = root / ".gitignore"
    if not gitignore.is_file():
        return []
    try:
        lines = gitignore.read_text().splitlines()
    except OSError as e:
        logger.debug(f"Could not read {gitignore}: {e}")
        return []

    patterns = []
    for line in lines:
        line = line.strip()
        if not line or line.startswith("#") or line.startswith("!"):
            continue
        patterns.append(line)
    return patterns


def _matches(relative: PurePath, pattern: str) -> bool:
    anchored = pattern.startswith("/")
    pattern = pattern.strip("/")
    if not pattern:
        return False

    if fnmatch(relative.as_posix(), pattern):
        return True
    if anchored:
        return fnmatch(relative.parts[0], pattern) if relative.parts else False
    # Unanchored patterns match any path component (directory or file name)
    return any(fnmatch(part, pattern) for part in relative.parts)


def should_ignore_for_context(
    path: str,
    patterns: Sequence[str] = (),
    root: Optional[Path] = None,
) -> bool:
    """Check if a file must be kept out of the prompt context.

    Args:
        path: Absolute or workspace-relative file path
        patterns: Glob patterns (gitignore-like) to exclude
        root: Workspace root used to relativize absolute paths

    Returns:
        True if the file should be ignored
    """
    candidate = PurePath(path)
    if root is not None:
        try:
            candidate = candidate.relative_to(root)
        except ValueError:
            pass

    if is_tracking_excluded(candidate.as_posix()):
        return True
    if is_hidden_path(candidate):
        return True
    return any(_matches(candidate, pattern) for pattern in patterns)


def get_effective_patterns(
    configured: Iterable[str],
    root: Optional[Path] = None,
) -> List[str]:
    """Merge configured globs with the workspace ``.gitignore``."""
    patterns = list(configured)
    for pattern in load_gitignore_patterns(root):
        if pattern not in patterns:
            patterns.append(pattern)
    return patterns
