"""
Program discovery utilities.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

LOG = logging.getLogger(__name__)

_NAME_HEADER = re.compile(r"^--\s*program:\s*(?P<name>.+?)\s*$")


def program_name(path: Path, source: str) -> str:
    """
    Use a leading ``-- program: <name>`` comment when present, else the stem.
    """

    for line in source.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        match = _NAME_HEADER.match(stripped)
        if match:
            return match.group("name")
        break
    return path.stem


def _read(path: Path) -> Optional[str]:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        LOG.exception("Failed to read script %s", path)
        return None


def discover_programs(directory: Path) -> Dict[str, str]:
    programs: Dict[str, str] = {}
    if not directory.is_dir():
        LOG.warning("Programs directory %s does not exist", directory)
        return programs
    for entry in sorted(directory.glob("*.lua")):
        source = _read(entry)
        if source is None:
            continue
        name = program_name(entry, source)
        if name in programs:
            LOG.warning("Duplicate program name %r in %s; keeping the first", name, entry)
            continue
        programs[name] = source
    return programs


def read_libraries(directory: Optional[Path]) -> List[Tuple[str, str]]:
    libraries: List[Tuple[str, str]] = []
    if directory is None or not directory.is_dir():
        return libraries
    for entry in sorted(directory.glob("*.lua")):
        source = _read(entry)
        if source is not None:
            libraries.append((entry.name, source))
    return libraries
