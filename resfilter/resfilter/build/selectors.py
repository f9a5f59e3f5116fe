"""Ant-style include/exclude matching for resource registration."""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Iterable, Iterator

logger = logging.getLogger(__name__)

DEFAULT_INCLUDES: list[str] = ["**/**"]


@lru_cache(maxsize=256)
def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Translate an ant-style pattern to a regular expression.

    ``**`` spans any number of directories, ``*`` and ``?`` stay within one
    path segment. A trailing ``/`` is shorthand for ``/**``.

    Args:
        pattern: Pattern using ``/`` as separator

    Returns:
        Compiled regular expression anchored at both ends
    """
    normalized = pattern.replace("\\", "/").lstrip("/")
    if normalized.endswith("/"):
        normalized += "**"

    parts: list[str] = []
    segments = normalized.split("/")
    for index, segment in enumerate(segments):
        last = index == len(segments) - 1
        if segment == "**":
            # Matches zero or more whole directories (or everything when last).
            parts.append(".*" if last else "(?:[^/]*/)*")
            continue
        regex = ""
        for char in segment:
            if char == "*":
                regex += "[^/]*"
            elif char == "?":
                regex += "[^/]"
            else:
                regex += re.escape(char)
        parts.append(regex if last else f"{regex}/")

    return re.compile("^" + "".join(parts) + "$")


def matches_any(relative_path: str, patterns: Iterable[str]) -> bool:
    """Return True when the '/'-separated path matches one of the patterns."""
    return any(compile_pattern(pattern).match(relative_path) for pattern in patterns)


def iter_selected_files(
    source_dir: Path,
    includes: Iterable[str] | None,
    excludes: Iterable[str] | None,
) -> Iterator[tuple[Path, str]]:
    """Yield files under ``source_dir`` selected by includes and excludes.

    Args:
        source_dir: Root directory to scan
        includes: Patterns a file must match (defaults to everything)
        excludes: Patterns that drop a file even when included

    Returns:
        Iterator of (file path, relative posix path), sorted by relative path
    """
    include_list = list(includes or DEFAULT_INCLUDES)
    exclude_list = list(excludes or [])

    if not source_dir.is_dir():
        logger.debug(f"Source directory does not exist: {source_dir}")
        return

    candidates = sorted(
        (path.relative_to(source_dir).as_posix(), path)
        for path in source_dir.rglob("*")
        if path.is_file()
    )
    for rel_posix, path in candidates:
        if not matches_any(rel_posix, include_list):
            continue
        if matches_any(rel_posix, exclude_list):
            logger.debug(f"Excluded resource: {rel_posix}")
            continue
        yield path, rel_posix
